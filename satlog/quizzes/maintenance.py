from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from satlog.quizzes.constants import QUIZ_STATUS_RANK
from satlog.quizzes.manager import QuizLifecycleManager
from satlog.quizzes.models import Quiz

logger = structlog.get_logger("satlog.quizzes.maintenance")


@dataclass(slots=True)
class QuizRepairReport:
    duplicates_removed: int
    renumbered: int
    persisted: bool


def _preference(quiz: Quiz) -> tuple[int, str]:
    return (QUIZ_STATUS_RANK[quiz.status], quiz.last_updated or "")


def dedupe_quiz_ids(quizzes: Sequence[Quiz]) -> list[Quiz]:
    """Keep one quiz per id: the furthest along, then the most recently updated.

    The survivor takes the position of the first occurrence.
    """
    chosen: dict[str, Quiz] = {}
    order: list[str] = []
    for quiz in quizzes:
        key = quiz.normalized_id
        current = chosen.get(key)
        if current is None:
            order.append(key)
            chosen[key] = quiz
        elif _preference(quiz) > _preference(current):
            chosen[key] = quiz
    return [chosen[key] for key in order]


def normalize_numbering(quizzes: Sequence[Quiz]) -> list[Quiz]:
    ranked = sorted(range(len(quizzes)), key=lambda index: (quizzes[index].quiz_number, index))
    numbers = {index: position for position, index in enumerate(ranked, start=1)}
    return [
        quiz if quiz.quiz_number == numbers[index] else quiz.model_copy(update={"quiz_number": numbers[index]})
        for index, quiz in enumerate(quizzes)
    ]


async def repair_quiz_collection(manager: QuizLifecycleManager) -> QuizRepairReport:
    current = manager.all_quizzes()
    deduped = dedupe_quiz_ids(current)
    repaired = normalize_numbering(deduped)
    duplicates_removed = len(current) - len(deduped)
    renumbered = sum(1 for before, after in zip(deduped, repaired) if before.quiz_number != after.quiz_number)

    if not duplicates_removed and not renumbered:
        return QuizRepairReport(duplicates_removed=0, renumbered=0, persisted=False)

    logger.info(
        "quiz_collection_repair_started",
        duplicates_removed=duplicates_removed,
        renumbered=renumbered,
    )
    await manager.update_all(repaired)
    return QuizRepairReport(
        duplicates_removed=duplicates_removed,
        renumbered=renumbered,
        persisted=True,
    )
