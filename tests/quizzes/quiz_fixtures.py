from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

from satlog.quizzes.manager import QuizLifecycleManager
from satlog.sync.client import SyncClient
from satlog.sync.data_types import DataType
from tests.sync.fakes import FakeClock, FakeSliceStore, make_client


def _question(question_id: str, **overrides: Any) -> dict[str, Any]:
    question = {
        "id": question_id,
        "questionText": f"Question {question_id}",
        "answerChoices": {"A": "one", "B": "two", "C": "three", "D": "four"},
        "correctAnswer": "A",
        "section": "Math",
        "domain": "Algebra",
        "questionType": "multiple-choice",
    }
    question.update(overrides)
    return question


def _ticking_now(start: datetime | None = None):
    ticks = itertools.count()
    base = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    return lambda: base + timedelta(minutes=next(ticks))


def _sequential_ids():
    counter = itertools.count(1)
    return lambda: f"quiz-{next(counter)}"


def _build_manager(
    store: FakeSliceStore | None = None,
    clock: FakeClock | None = None,
    **kwargs: Any,
) -> tuple[QuizLifecycleManager, SyncClient, FakeSliceStore]:
    store = store or FakeSliceStore()
    client = make_client(DataType.ALL_QUIZZES, store=store, clock=clock)
    kwargs.setdefault("now", _ticking_now())
    kwargs.setdefault("id_factory", _sequential_ids())
    return QuizLifecycleManager(client, **kwargs), client, store
