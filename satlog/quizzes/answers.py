from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from satlog.quizzes.constants import CHOICE_LETTERS


def _answer_letter(value: Any, answer_choices: Mapping[str, Any] | None) -> Any:
    if not value or not answer_choices or value in CHOICE_LETTERS:
        return value
    for letter, text in answer_choices.items():
        if text == value:
            return letter
    return value


def _lookup_answer(user_answers: Mapping[Any, Any], question: Mapping[str, Any]) -> Any:
    question_id = question.get("id")
    answer = user_answers.get(str(question_id))
    if answer is None:
        answer = user_answers.get(question_id)
    if answer is None:
        answer = question.get("userAnswer")
    return answer


def sync_answers(
    questions: Iterable[Mapping[str, Any]],
    user_answers: Mapping[Any, Any],
) -> list[dict[str, Any]]:
    """Fold the answer map back into the questions and recompute ``isCorrect``.

    Answers given as choice text are converted to the choice letter so that
    they compare equal to a letter-valued ``correctAnswer``.
    """
    synced: list[dict[str, Any]] = []
    for question in questions:
        choices = question.get("answerChoices")
        if not isinstance(choices, Mapping):
            choices = None
        answer = _answer_letter(_lookup_answer(user_answers, question), choices)
        correct = _answer_letter(question.get("correctAnswer"), choices)
        synced.append(
            {
                **question,
                "userAnswer": answer,
                "isCorrect": answer is not None and answer == correct,
            }
        )
    return synced


def count_correct(questions: Iterable[Mapping[str, Any]]) -> int:
    return sum(1 for question in questions if question.get("isCorrect"))


def percentage_score(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up: 1 of 8 scores 13.
    return int(100 * correct / total + 0.5)
