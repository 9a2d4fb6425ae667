from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from satlog.db.models.user_data import UserData
from satlog.sync.errors import PrimaryWriteUnavailableError


class UserDataRepo:
    @staticmethod
    async def get_data(
        session: AsyncSession,
        *,
        user_id: str,
        data_type: str,
    ) -> object | None:
        stmt = select(UserData.data).where(
            UserData.user_id == user_id,
            UserData.data_type == data_type,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(session: AsyncSession, *, user_id: str) -> list[UserData]:
        stmt = (
            select(UserData)
            .where(UserData.user_id == user_id)
            .order_by(UserData.data_type.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def upsert_on_conflict(
        session: AsyncSession,
        *,
        user_id: str,
        data_type: str,
        data: object,
    ) -> None:
        bind = session.get_bind()
        if bind.dialect.name != "postgresql":
            raise PrimaryWriteUnavailableError(
                f"on-conflict upsert is not available for dialect {bind.dialect.name}"
            )

        stmt = postgresql_insert(UserData).values(
            user_id=user_id,
            data_type=data_type,
            data=data,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_user_data_user_data_type",
            set_={
                "data": stmt.excluded.data,
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)

    @staticmethod
    async def upsert_by_merge(
        session: AsyncSession,
        *,
        user_id: str,
        data_type: str,
        data: object,
    ) -> None:
        stmt = (
            select(UserData)
            .where(
                UserData.user_id == user_id,
                UserData.data_type == data_type,
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            session.add(UserData(user_id=user_id, data_type=data_type, data=data))
        else:
            row.data = data
            row.updated_at = func.now()
        await session.flush()

    @staticmethod
    async def delete(
        session: AsyncSession,
        *,
        user_id: str,
        data_type: str,
    ) -> bool:
        stmt = (
            delete(UserData)
            .where(
                UserData.user_id == user_id,
                UserData.data_type == data_type,
            )
            .returning(UserData.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
