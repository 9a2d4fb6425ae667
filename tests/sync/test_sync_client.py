from __future__ import annotations

import asyncio

import pytest

from satlog.sync.backup import LocalBackupStore
from satlog.sync.data_types import DataType
from satlog.sync.errors import UnsupportedSliceOperationError
from tests.sync.fakes import (
    USER_ID,
    FakeClock,
    FakeRedis,
    FakeSliceStore,
    fast_policy,
    make_client,
    wait_for_upserts,
)


def _question(question_id: str) -> dict[str, str]:
    return {"id": question_id, "questionText": f"Question {question_id}"}


@pytest.mark.asyncio
async def test_load_returns_remote_value_and_clears_loading() -> None:
    store = FakeSliceStore()
    store.records[(USER_ID, DataType.ALL_QUIZZES)] = [{"id": "q-1"}]
    client = make_client(DataType.ALL_QUIZZES, store=store)

    assert client.loading is True
    value = await client.load()

    assert value == [{"id": "q-1"}]
    assert client.loading is False
    assert client.error is None


@pytest.mark.asyncio
async def test_load_of_missing_record_yields_type_default() -> None:
    store = FakeSliceStore()
    answers = make_client(DataType.QUESTION_ANSWERS, store=store)
    quizzes = make_client(DataType.ALL_QUIZZES, store=store)

    assert await answers.load() == {}
    assert await quizzes.load() == []


@pytest.mark.asyncio
async def test_load_with_unexpected_shape_falls_back_to_default() -> None:
    store = FakeSliceStore()
    store.records[(USER_ID, DataType.QUESTION_ANSWERS)] = ["not", "a", "mapping"]
    client = make_client(DataType.QUESTION_ANSWERS, store=store)

    assert await client.load() == {}


@pytest.mark.asyncio
async def test_load_is_throttled_within_min_interval() -> None:
    store = FakeSliceStore()
    clock = FakeClock()
    client = make_client(DataType.ALL_QUIZZES, store=store, clock=clock)

    await client.load()
    await client.load()
    assert store.fetch_calls == 1
    assert client.loading is False

    clock.advance(1.0)
    await client.load()
    assert store.fetch_calls == 2


@pytest.mark.asyncio
async def test_load_without_user_skips_store() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.ALL_QUIZZES, store=store, user_id=None)

    assert await client.load() == []
    assert store.fetch_calls == 0
    assert client.loading is False


@pytest.mark.asyncio
async def test_load_retries_with_exponential_backoff_then_reports_error() -> None:
    store = FakeSliceStore()
    store.fail_fetch = True
    clock = FakeClock()
    client = make_client(DataType.ALL_QUIZZES, store=store, clock=clock)

    value = await client.load()

    assert value == []
    assert store.fetch_calls == 4
    assert client._sleep.calls == [1.0, 2.0, 4.0]
    assert client.error is not None
    assert client.error.startswith("Failed to load sat_master_log_all_quizzes")
    assert client.breaker.is_open() is False


@pytest.mark.asyncio
async def test_breaker_opens_after_consecutive_failures_and_recovers_after_cooldown() -> None:
    store = FakeSliceStore()
    store.fail_fetch = True
    clock = FakeClock()
    client = make_client(DataType.ALL_QUIZZES, store=store, clock=clock)

    await client.load()
    assert store.fetch_calls == 4

    await client.load()
    assert store.fetch_calls == 5
    assert client.breaker.is_open() is True
    assert client.error == "Too many failed requests for sat_master_log_all_quizzes. Temporarily disabled."

    clock.advance(1.0)
    await client.load()
    assert store.fetch_calls == 5
    assert await client.save([{"id": "q-1"}]) is False
    assert store.upsert_calls == []

    store.fail_fetch = False
    store.records[(USER_ID, DataType.ALL_QUIZZES)] = [{"id": "q-remote"}]
    clock.advance(30.0)

    assert await client.load() == [{"id": "q-remote"}]
    assert client.breaker.consecutive_failures == 0
    assert client.error is None


@pytest.mark.asyncio
async def test_save_updates_value_optimistically_and_writes_through() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.ALL_QUIZZES, store=store)
    store.upsert_gate = asyncio.Event()

    task = asyncio.create_task(client.save([{"id": "q-1"}]))
    await wait_for_upserts(store, 1)
    assert client.value == [{"id": "q-1"}]

    store.upsert_gate.set()
    assert await task is True
    assert store.records[(USER_ID, DataType.ALL_QUIZZES)] == [{"id": "q-1"}]


@pytest.mark.asyncio
async def test_save_rejects_oversized_slice_without_touching_store() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.QUESTIONS, store=store)
    oversized = [_question(str(index)) for index in range(5001)]

    assert await client.save(oversized) is False
    assert store.upsert_calls == []
    assert client.value == []
    assert client.error is not None
    assert "exceeds the limit of 5000" in client.error


@pytest.mark.asyncio
async def test_concurrent_saves_coalesce_into_one_trailing_write() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.ALL_QUIZZES, store=store)
    store.upsert_gate = asyncio.Event()

    first = asyncio.create_task(client.save([{"id": "a"}]))
    await wait_for_upserts(store, 1)

    assert await client.save([{"id": "a"}, {"id": "b"}]) is True
    assert await client.save([{"id": "a"}, {"id": "b"}, {"id": "c"}]) is True
    assert len(store.upsert_calls) == 1
    assert client.value == [{"id": "a"}, {"id": "b"}, {"id": "c"}]

    store.upsert_gate.set()
    assert await first is True

    assert store.upsert_calls == [
        [{"id": "a"}],
        [{"id": "a"}, {"id": "b"}, {"id": "c"}],
    ]
    assert store.records[(USER_ID, DataType.ALL_QUIZZES)] == [{"id": "a"}, {"id": "b"}, {"id": "c"}]


@pytest.mark.asyncio
async def test_save_timeout_is_reported_as_failure() -> None:
    store = FakeSliceStore()
    store.upsert_gate = asyncio.Event()
    client = make_client(
        DataType.ALL_QUIZZES,
        store=store,
        policy=fast_policy(save_timeout_seconds=0.01),
    )

    assert await client.save([{"id": "q-1"}]) is False
    assert client.error == "Failed to save sat_master_log_all_quizzes: timed out"
    assert client.value == [{"id": "q-1"}]
    assert client.breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_load_keeps_local_value_while_write_is_pending() -> None:
    store = FakeSliceStore()
    store.records[(USER_ID, DataType.ALL_QUIZZES)] = [{"id": "stale"}]
    client = make_client(DataType.ALL_QUIZZES, store=store)
    store.upsert_gate = asyncio.Event()

    saving = asyncio.create_task(client.save([{"id": "fresh"}]))
    await wait_for_upserts(store, 1)

    assert await client.load() == [{"id": "fresh"}]

    store.upsert_gate.set()
    assert await saving is True


@pytest.mark.asyncio
async def test_failed_save_is_restored_from_local_backup_on_next_load() -> None:
    store = FakeSliceStore()
    clock = FakeClock()
    backup = LocalBackupStore(FakeRedis())
    old_item = _question("old")
    new_item = _question("new")
    store.records[(USER_ID, DataType.QUESTIONS)] = [old_item]
    client = make_client(DataType.QUESTIONS, store=store, clock=clock, backup=backup)

    assert await client.load() == [old_item]

    store.fail_upsert = True
    assert await client.save([old_item, new_item]) is False
    assert await backup.read_failed_save(USER_ID, DataType.QUESTIONS) == [old_item, new_item]

    store.fail_upsert = False
    clock.advance(2.0)
    assert await client.load() == [old_item, new_item]


@pytest.mark.asyncio
async def test_successful_save_clears_failed_save_backup() -> None:
    store = FakeSliceStore()
    backup = LocalBackupStore(FakeRedis())
    client = make_client(DataType.QUESTIONS, store=store, backup=backup)

    store.fail_upsert = True
    await client.save([_question("a")])
    assert await backup.read_failed_save(USER_ID, DataType.QUESTIONS) != []

    store.fail_upsert = False
    assert await client.save([_question("a")]) is True
    assert await backup.read_failed_save(USER_ID, DataType.QUESTIONS) == []


@pytest.mark.asyncio
async def test_append_survives_remote_failure_through_incremental_backup() -> None:
    store = FakeSliceStore()
    backup = LocalBackupStore(FakeRedis())
    client = make_client(DataType.QUESTIONS, store=store, backup=backup)
    store.fail_upsert = True

    assert await client.append_incremental([_question("x")]) is True

    assert client.value == [_question("x")]
    assert await backup.read_incremental(USER_ID, DataType.QUESTIONS) == [_question("x")]
    assert client.error is not None


@pytest.mark.asyncio
async def test_append_clears_incremental_backup_once_written() -> None:
    store = FakeSliceStore()
    backup = LocalBackupStore(FakeRedis())
    client = make_client(DataType.QUESTIONS, store=store, backup=backup)

    assert await client.append_incremental([_question("x"), _question("y")]) is True

    assert store.records[(USER_ID, DataType.QUESTIONS)] == [_question("x"), _question("y")]
    assert await backup.read_incremental(USER_ID, DataType.QUESTIONS) == []


@pytest.mark.asyncio
async def test_append_beyond_size_limit_stays_local() -> None:
    store = FakeSliceStore()
    backup = LocalBackupStore(FakeRedis())
    client = make_client(
        DataType.QUESTIONS,
        store=store,
        backup=backup,
        policy=fast_policy(max_slice_items=2),
    )

    assert await client.append_incremental([_question("a"), _question("b"), _question("c")]) is True

    assert store.upsert_calls == []
    assert len(client.value) == 3
    assert len(await backup.read_incremental(USER_ID, DataType.QUESTIONS)) == 3


@pytest.mark.asyncio
async def test_append_is_rejected_for_non_question_slices() -> None:
    client = make_client(DataType.ALL_QUIZZES, store=FakeSliceStore())

    with pytest.raises(UnsupportedSliceOperationError):
        await client.append_incremental([{"id": "q-1"}])

    assert client.contract().append_questions is None


@pytest.mark.asyncio
async def test_backup_is_ignored_for_slices_without_local_backup() -> None:
    store = FakeSliceStore()
    redis = FakeRedis()
    client = make_client(DataType.ALL_QUIZZES, store=store, backup=LocalBackupStore(redis))
    store.fail_upsert = True

    assert await client.save([{"id": "q-1"}]) is False
    assert redis.data == {}


@pytest.mark.asyncio
async def test_delete_resets_value_and_clears_backups() -> None:
    store = FakeSliceStore()
    redis = FakeRedis()
    backup = LocalBackupStore(redis)
    client = make_client(DataType.QUESTIONS, store=store, backup=backup)
    store.fail_upsert = True
    await client.append_incremental([_question("x")])
    store.fail_upsert = False
    store.records[(USER_ID, DataType.QUESTIONS)] = [_question("x")]

    assert await client.delete() is True

    assert client.value == []
    assert (USER_ID, DataType.QUESTIONS) not in store.records
    assert redis.data == {}


@pytest.mark.asyncio
async def test_delete_failure_keeps_value_and_sets_error() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.ALL_QUIZZES, store=store)
    await client.save([{"id": "q-1"}])
    store.fail_delete = True

    assert await client.delete() is False
    assert client.value == [{"id": "q-1"}]
    assert client.error is not None


@pytest.mark.asyncio
async def test_bind_user_resets_state_and_detaches_from_store() -> None:
    store = FakeSliceStore()
    store.records[(USER_ID, DataType.ALL_QUIZZES)] = [{"id": "q-1"}]
    client = make_client(DataType.ALL_QUIZZES, store=store)
    await client.load()

    client.bind_user(None)

    assert client.value == []
    assert client.loading is False
    assert client.error is None
    assert await client.save([{"id": "q-2"}]) is False
    assert await client.load() == []
    assert store.fetch_calls == 1


@pytest.mark.asyncio
async def test_refresh_marks_loading_and_reloads() -> None:
    store = FakeSliceStore()
    clock = FakeClock()
    client = make_client(DataType.ALL_QUIZZES, store=store, clock=clock)
    await client.load()

    store.records[(USER_ID, DataType.ALL_QUIZZES)] = [{"id": "q-9"}]
    clock.advance(5.0)

    assert await client.refresh() == [{"id": "q-9"}]
    assert client.loading is False


@pytest.mark.asyncio
async def test_contract_exposes_value_and_bound_operations() -> None:
    store = FakeSliceStore()
    client = make_client(DataType.QUESTIONS, store=store)

    contract = client.contract()
    assert contract.value == []
    assert await contract.append_questions([_question("a")]) is True
    assert await contract.upsert_data([_question("b")]) is True
    assert store.records[(USER_ID, DataType.QUESTIONS)] == [_question("b")]
