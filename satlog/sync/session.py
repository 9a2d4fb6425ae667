from __future__ import annotations

from collections.abc import Callable, Iterable
from time import monotonic

from satlog.sync.backup import LocalBackupStore
from satlog.sync.client import SyncClient
from satlog.sync.constants import SyncPolicy, build_sync_policy
from satlog.sync.data_types import DataType
from satlog.sync.store import SliceStore


class UserSyncSession:
    """One ``SyncClient`` per data type for whichever user is signed in."""

    def __init__(
        self,
        *,
        store: SliceStore,
        backup: LocalBackupStore | None = None,
        policy: SyncPolicy | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._store = store
        self._backup = backup
        self._policy = policy or build_sync_policy()
        self._clock = clock
        self._user_id: str | None = None
        self._clients: dict[DataType, SyncClient] = {}

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def client(self, data_type: DataType) -> SyncClient:
        existing = self._clients.get(data_type)
        if existing is not None:
            return existing

        created = SyncClient(
            data_type,
            store=self._store,
            backup=self._backup,
            user_id=self._user_id,
            policy=self._policy,
            clock=self._clock,
        )
        self._clients[data_type] = created
        return created

    def bind_user(self, user_id: str | None) -> None:
        self._user_id = user_id
        for slice_client in self._clients.values():
            slice_client.bind_user(user_id)

    async def load_all(self, data_types: Iterable[DataType] | None = None) -> dict[DataType, object]:
        loaded: dict[DataType, object] = {}
        for data_type in data_types or tuple(self._clients):
            loaded[data_type] = await self.client(data_type).load()
        return loaded
