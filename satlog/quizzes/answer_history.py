from __future__ import annotations

from typing import Any

from satlog.quizzes.errors import QuizClientMismatchError
from satlog.quizzes.models import Quiz, normalize_quiz_id
from satlog.sync.client import SyncClient
from satlog.sync.data_types import DataType


class AnswerHistoryRecorder:
    """Per-question answer log kept in the question-answers slice."""

    def __init__(self, client: SyncClient) -> None:
        if client.data_type is not DataType.QUESTION_ANSWERS:
            raise QuizClientMismatchError(
                f"answer history needs the {DataType.QUESTION_ANSWERS.value} slice, got {client.data_type.value}"
            )
        self._client = client

    def _current(self) -> dict[str, list[dict[str, Any]]]:
        value = self._client.value
        if not isinstance(value, dict):
            return {}
        return {str(key): list(entries) for key, entries in value.items() if isinstance(entries, list)}

    def history_for(self, question_id: object) -> list[dict[str, Any]]:
        return self._current().get(str(question_id), [])

    async def record(self, quiz: Quiz) -> bool:
        quiz_key = normalize_quiz_id(quiz.id)
        history = self._current()
        for question in quiz.questions:
            answer = question.get("userAnswer")
            if not answer:
                continue
            question_key = str(question.get("id"))
            entries = [
                entry
                for entry in history.get(question_key, [])
                if normalize_quiz_id(entry.get("quizId")) != quiz_key
            ]
            entries.append(
                {
                    "quizId": quiz.id,
                    "answer": answer,
                    "isCorrect": bool(question.get("isCorrect")),
                    "date": quiz.date,
                }
            )
            history[question_key] = entries
        return await self._client.save(history)
