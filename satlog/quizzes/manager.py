from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

from satlog.quizzes.answers import count_correct, percentage_score
from satlog.quizzes.constants import (
    CATEGORY_FIELDS,
    MIXED_CATEGORY,
    QUIZ_STATUS_RANK,
    QuizStatus,
)
from satlog.quizzes.errors import (
    InvalidQuizTransitionError,
    QuizClientMismatchError,
    QuizPersistenceError,
)
from satlog.quizzes.models import Quiz, normalize_quiz_id, record_keys, record_number, split_quiz_records
from satlog.quizzes.sanitize import sanitize_questions
from satlog.sync.client import SyncClient
from satlog.sync.data_types import DataType

logger = structlog.get_logger("satlog.quizzes.manager")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_quiz_id() -> str:
    return uuid4().hex


def _coerce_quiz(quiz: Quiz | Mapping[str, Any]) -> Quiz:
    return quiz if isinstance(quiz, Quiz) else Quiz.from_record(record_keys(quiz))


def derive_categories(questions: Sequence[Mapping[str, Any]]) -> dict[str, str]:
    categories: dict[str, str] = {}
    for field in CATEGORY_FIELDS:
        values = {question.get(field) for question in questions}
        first = questions[0].get(field) if questions else None
        categories[field] = first if first and len(values) == 1 else MIXED_CATEGORY
    return categories


def renumber_after_delete(quizzes: Iterable[Quiz], deleted_number: int) -> list[Quiz]:
    renumbered: list[Quiz] = []
    for quiz in quizzes:
        if quiz.quiz_number > deleted_number:
            quiz = quiz.model_copy(update={"quiz_number": quiz.quiz_number - 1})
        renumbered.append(quiz)
    return renumbered


def check_transition(current: QuizStatus | None, target: QuizStatus, *, via_completion: bool = False) -> None:
    if current is None:
        return
    if QUIZ_STATUS_RANK[target] < QUIZ_STATUS_RANK[current]:
        raise InvalidQuizTransitionError(f"quiz cannot move from {current.value} back to {target.value}")
    if (
        target is QuizStatus.COMPLETED
        and current is not QuizStatus.COMPLETED
        and not via_completion
    ):
        raise InvalidQuizTransitionError("quizzes are completed only through finish or complete")


class QuizLifecycleManager:
    """Quiz creation, numbering and status transitions over the all-quizzes slice.

    The manager stores nothing itself: the whole quiz array is the persisted
    record and every change is written back through the sync client. A local
    snapshot serves synchronous reads between round-trips.
    """

    def __init__(
        self,
        client: SyncClient,
        *,
        now: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_quiz_id,
        max_field_bytes: int | None = None,
    ) -> None:
        if client.data_type is not DataType.ALL_QUIZZES:
            raise QuizClientMismatchError(
                f"quiz manager needs the {DataType.ALL_QUIZZES.value} slice, got {client.data_type.value}"
            )
        self._client = client
        self._now = now
        self._id_factory = id_factory
        self._max_field_bytes = max_field_bytes
        self._quizzes: list[Quiz]
        self._unreadable: list[Any]
        self._quizzes, self._unreadable = split_quiz_records(client.value)
        self._background_tasks: set[asyncio.Task[bool]] = set()
        self.pending_reconcile = False

    def _now_iso(self) -> str:
        return self._now().isoformat()

    # Readers

    def all_quizzes(self) -> list[Quiz]:
        return list(self._quizzes)

    def unreadable_records(self) -> list[Any]:
        return list(self._unreadable)

    def by_status(self, status: QuizStatus | str) -> list[Quiz]:
        status = QuizStatus(status)
        return [quiz for quiz in self._quizzes if quiz.status is status]

    def planned(self) -> list[Quiz]:
        return self.by_status(QuizStatus.PLANNED)

    def in_progress(self) -> list[Quiz]:
        return self.by_status(QuizStatus.IN_PROGRESS)

    def completed(self) -> list[Quiz]:
        return self.by_status(QuizStatus.COMPLETED)

    def find_by_id(self, quiz_id: object) -> Quiz | None:
        target = normalize_quiz_id(quiz_id)
        for quiz in self._quizzes:
            if quiz.normalized_id == target:
                return quiz
        return None

    def find_by_number(self, quiz_number: int) -> Quiz | None:
        for quiz in self._quizzes:
            if quiz.quiz_number == quiz_number:
                return quiz
        return None

    def next_number(self) -> int:
        numbers = [quiz.quiz_number for quiz in self._quizzes]
        unreadable_numbers = (record_number(record) for record in self._unreadable)
        numbers.extend(number for number in unreadable_numbers if number is not None)
        return max(numbers) + 1 if numbers else 1

    def _index_of(self, quiz_id: object) -> int | None:
        target = normalize_quiz_id(quiz_id)
        for index, quiz in enumerate(self._quizzes):
            if quiz.normalized_id == target:
                return index
        return None

    # Builders

    def _new_shell(self, questions: Sequence[Mapping[str, Any]], **fields: Any) -> Quiz:
        return Quiz(
            id=self._id_factory(),
            quiz_number=self.next_number(),
            questions=[
                {**question, "userAnswer": None, "isCorrect": None, "flagged": False}
                for question in questions
            ],
            categories=derive_categories(questions),
            **fields,
        )

    def create_new(self, questions: Sequence[Mapping[str, Any]], start_time: str | None = None) -> Quiz:
        start_time = start_time or self._now_iso()
        return self._new_shell(
            questions,
            status=QuizStatus.IN_PROGRESS,
            start_time=start_time,
            last_updated=start_time,
        )

    def create_planned(self, questions: Sequence[Mapping[str, Any]], planned_date: str) -> Quiz:
        return self._new_shell(
            questions,
            status=QuizStatus.PLANNED,
            planned_date=planned_date,
            start_time=None,
            last_updated=self._now_iso(),
        )

    # Persistence

    def _records(self) -> list[Any]:
        # Records that failed to parse are written back unchanged.
        return [*(quiz.to_record() for quiz in self._quizzes), *self._unreadable]

    async def _persist(self) -> bool:
        return await self._client.save(self._records())

    async def _persist_or_raise(self, action: str) -> None:
        if await self._persist():
            return
        self.pending_reconcile = True
        logger.warning("quiz_persist_failed", action=action, error=self._client.error)
        raise QuizPersistenceError(f"failed to persist quizzes after {action}: {self._client.error}")

    def _persist_in_background(self, action: str) -> asyncio.Task[bool]:
        records = self._records()
        task = asyncio.get_running_loop().create_task(self._background_persist(records, action))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _background_persist(self, records: list[Any], action: str) -> bool:
        try:
            persisted = await self._client.save(records)
        except Exception:
            logger.exception("quiz_background_persist_crashed", action=action)
            persisted = False
        if not persisted:
            self.pending_reconcile = True
            logger.warning(
                "quiz_background_persist_failed",
                action=action,
                error=self._client.error,
            )
        return persisted

    async def drain(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*tuple(self._background_tasks))

    async def reconcile(self) -> bool:
        if not self.pending_reconcile:
            return True
        if not await self._persist():
            logger.warning("quiz_reconcile_failed", error=self._client.error)
            return False
        self.pending_reconcile = False
        logger.info("quiz_reconcile_succeeded", quizzes=len(self._quizzes))
        return True

    async def refresh(self) -> list[Quiz]:
        await self.reconcile()
        await self._client.refresh()
        if self._client.error is None:
            self._quizzes, self._unreadable = split_quiz_records(self._client.value)
        return self.all_quizzes()

    # Mutators

    async def add(self, quiz: Quiz | Mapping[str, Any]) -> Quiz:
        quiz = _coerce_quiz(quiz)
        self._quizzes = [*self._quizzes, quiz]
        await self._persist_or_raise("add")
        await self.refresh()
        return quiz

    def update(self, quiz_id: object, patch: Mapping[str, Any]) -> Quiz | None:
        index = self._index_of(quiz_id)
        if index is None:
            return None

        existing = self._quizzes[index]
        updated = Quiz.from_record(
            {
                **existing.to_record(),
                **record_keys(patch),
                "id": existing.id,
                "lastUpdated": self._now_iso(),
            }
        )
        check_transition(existing.status, updated.status)
        self._quizzes = [*self._quizzes[:index], updated, *self._quizzes[index + 1 :]]
        self._persist_in_background("update")
        return updated

    async def save(self, quiz: Quiz | Mapping[str, Any]) -> bool:
        incoming = _coerce_quiz(quiz).model_copy(update={"last_updated": self._now_iso()})
        index = self._index_of(incoming.id)
        if index is None:
            self._quizzes = [*self._quizzes, incoming]
        else:
            check_transition(self._quizzes[index].status, incoming.status)
            self._quizzes = [*self._quizzes[:index], incoming, *self._quizzes[index + 1 :]]

        persisted = await self._persist()
        if not persisted:
            self.pending_reconcile = True
            logger.warning("quiz_save_failed", quiz_id=incoming.normalized_id, error=self._client.error)
        return persisted

    def _replace_or_append(self, quiz: Quiz) -> None:
        index = self._index_of(quiz.id)
        if index is None:
            self._quizzes = [*self._quizzes, quiz]
        else:
            self._quizzes = [*self._quizzes[:index], quiz, *self._quizzes[index + 1 :]]

    async def finish(
        self,
        quiz: Quiz | Mapping[str, Any],
        synced_questions: Sequence[Mapping[str, Any]],
        answers: Mapping[str, Any],
        flagged: Iterable[Any],
        elapsed_seconds: int | float = 0,
    ) -> Quiz:
        quiz = Quiz.from_record(quiz)
        current = self.find_by_id(quiz.id) or quiz
        already_completed = current.status is QuizStatus.COMPLETED

        correct = count_correct(synced_questions)
        total = len(synced_questions)
        now_iso = self._now_iso()
        completed = Quiz.from_record(
            {
                **quiz.to_record(),
                "id": current.id,
                "quizNumber": current.quiz_number,
                "questions": sanitize_questions(synced_questions, max_field_bytes=self._max_field_bytes),
                "userAnswers": dict(answers),
                "flaggedQuestions": list(flagged),
                "timeSpent": elapsed_seconds or quiz.time_spent or 0,
                "score": percentage_score(correct, total),
                "totalQuestions": total,
                "correctAnswers": correct,
                "status": QuizStatus.COMPLETED.value,
                "endTime": current.end_time if already_completed and current.end_time else now_iso,
                "date": current.date if already_completed and current.date else now_iso,
                "lastUpdated": now_iso,
            }
        )

        self._replace_or_append(completed)
        await self._persist_or_raise("finish")
        await self.refresh()
        logger.info(
            "quiz_finished",
            quiz_id=completed.normalized_id,
            quiz_number=completed.quiz_number,
            score=completed.score,
            total_questions=total,
        )
        return completed

    async def complete(self, quiz_id: object, final_data: Mapping[str, Any]) -> Quiz | None:
        existing = self.find_by_id(quiz_id)
        if existing is None:
            return None

        now_iso = self._now_iso()
        merged = {**existing.to_record(), **record_keys(final_data)}
        completed = Quiz.from_record(
            {
                **merged,
                "id": existing.id,
                "quizNumber": existing.quiz_number,
                "questions": sanitize_questions(
                    merged.get("questions") or [],
                    max_field_bytes=self._max_field_bytes,
                ),
                "status": QuizStatus.COMPLETED.value,
                "endTime": existing.end_time or now_iso,
                "lastUpdated": now_iso,
            }
        )
        self._replace_or_append(completed)
        await self._persist_or_raise("complete")
        await self.refresh()
        return completed

    def delete(self, quiz_id: object) -> bool:
        target = self.find_by_id(quiz_id)
        if target is None:
            logger.info("quiz_delete_not_found", quiz_id=normalize_quiz_id(quiz_id))
            return False

        remaining = [quiz for quiz in self._quizzes if quiz.normalized_id != target.normalized_id]
        self._quizzes = renumber_after_delete(remaining, target.quiz_number)
        self._persist_in_background("delete")
        return True

    async def delete_all(self) -> None:
        self._quizzes = []
        self._unreadable = []
        await self._persist_or_raise("delete_all")
        await self.refresh()

    async def update_all(self, quizzes: Iterable[Quiz | Mapping[str, Any]]) -> list[Quiz]:
        replacement = [Quiz.from_record(quiz) for quiz in quizzes]
        current_rank: dict[str, QuizStatus] = {}
        for quiz in self._quizzes:
            known = current_rank.get(quiz.normalized_id)
            if known is None or QUIZ_STATUS_RANK[quiz.status] > QUIZ_STATUS_RANK[known]:
                current_rank[quiz.normalized_id] = quiz.status
        for quiz in replacement:
            check_transition(current_rank.get(quiz.normalized_id), quiz.status, via_completion=True)

        self._quizzes = replacement
        await self._persist_or_raise("update_all")
        await self.refresh()
        return self.all_quizzes()
