from __future__ import annotations

import secrets
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from satlog.core.logging import summarize_payload
from satlog.db.repo.user_data_repo import UserDataRepo
from satlog.sync.data_types import DataType
from satlog.sync.errors import PrimaryWriteUnavailableError, SliceStoreError

logger = structlog.get_logger("satlog.sync.store")


class SliceStore(Protocol):
    async def fetch_slice(self, user_id: str, data_type: DataType) -> object | None: ...

    async def upsert_slice(self, user_id: str, data_type: DataType, value: object) -> None: ...

    async def delete_slice(self, user_id: str, data_type: DataType) -> bool: ...


def _operation_id() -> str:
    return secrets.token_hex(4)


class SqlSliceStore:
    """Remote store keeping one ``user_data`` row per (user, data type).

    A missing row is reported as ``None`` rather than an error. Writes go
    through the on-conflict upsert first and fall back to a locking
    select-then-update when that path is unavailable.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from satlog.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def fetch_slice(self, user_id: str, data_type: DataType) -> object | None:
        op_id = _operation_id()
        logger.debug("slice_store_fetch_started", op_id=op_id, user_id=user_id, data_type=data_type.value)
        try:
            async with self._session_factory() as session:
                data = await UserDataRepo.get_data(
                    session,
                    user_id=user_id,
                    data_type=data_type.value,
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "slice_store_fetch_failed",
                op_id=op_id,
                user_id=user_id,
                data_type=data_type.value,
                error_type=type(exc).__name__,
            )
            raise SliceStoreError(f"failed to fetch {data_type.value}: {exc}") from exc

        logger.debug(
            "slice_store_fetch_succeeded",
            op_id=op_id,
            found=data is not None,
            size=len(data) if isinstance(data, (list, dict)) else None,
        )
        return data

    async def fetch_all(self, user_id: str) -> dict[str, object]:
        try:
            async with self._session_factory() as session:
                rows = await UserDataRepo.list_for_user(session, user_id=user_id)
        except SQLAlchemyError as exc:
            raise SliceStoreError(f"failed to fetch slices for user {user_id}: {exc}") from exc
        return {row.data_type: row.data for row in rows}

    async def upsert_slice(self, user_id: str, data_type: DataType, value: object) -> None:
        op_id = _operation_id()
        logger.debug(
            "slice_store_upsert_started",
            op_id=op_id,
            user_id=user_id,
            data_type=data_type.value,
            payload=summarize_payload(value),
        )
        try:
            async with self._session_factory.begin() as session:
                await UserDataRepo.upsert_on_conflict(
                    session,
                    user_id=user_id,
                    data_type=data_type.value,
                    data=value,
                )
            logger.debug("slice_store_upsert_succeeded", op_id=op_id, path="on_conflict")
            return
        except (PrimaryWriteUnavailableError, SQLAlchemyError) as exc:
            logger.info(
                "slice_store_upsert_primary_unavailable",
                op_id=op_id,
                data_type=data_type.value,
                error_type=type(exc).__name__,
            )

        try:
            async with self._session_factory.begin() as session:
                await UserDataRepo.upsert_by_merge(
                    session,
                    user_id=user_id,
                    data_type=data_type.value,
                    data=value,
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "slice_store_upsert_failed",
                op_id=op_id,
                user_id=user_id,
                data_type=data_type.value,
                error_type=type(exc).__name__,
            )
            raise SliceStoreError(f"failed to save {data_type.value}: {exc}") from exc
        logger.debug("slice_store_upsert_succeeded", op_id=op_id, path="merge")

    async def delete_slice(self, user_id: str, data_type: DataType) -> bool:
        try:
            async with self._session_factory.begin() as session:
                return await UserDataRepo.delete(
                    session,
                    user_id=user_id,
                    data_type=data_type.value,
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "slice_store_delete_failed",
                user_id=user_id,
                data_type=data_type.value,
                error_type=type(exc).__name__,
            )
            raise SliceStoreError(f"failed to delete {data_type.value}: {exc}") from exc
