from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from satlog.quizzes.constants import QuizStatus

logger = structlog.get_logger("satlog.quizzes.models")


def normalize_quiz_id(quiz_id: object) -> str:
    return str(quiz_id).strip()


class Quiz(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str | int
    quiz_number: int = Field(ge=1)
    status: QuizStatus
    questions: list[dict[str, Any]] = Field(default_factory=list)
    user_answers: dict[str, Any] = Field(default_factory=dict)
    current_question_index: int = Field(default=0, ge=0)
    flagged_questions: list[Any] = Field(default_factory=list)
    eliminated_options: dict[str, list[Any]] = Field(default_factory=dict)
    elimination_mode: bool = False
    categories: dict[str, str] | None = None
    start_time: str | None = None
    planned_date: str | None = None
    end_time: str | None = None
    date: str | None = None
    last_updated: str | None = None
    time_spent: int | float = Field(default=0, ge=0)
    score: int | None = None
    correct_answers: int | None = None
    total_questions: int | None = None

    # Older records store null for these instead of omitting them.
    @field_validator(
        "questions",
        "user_answers",
        "current_question_index",
        "flagged_questions",
        "eliminated_options",
        "elimination_mode",
        "time_spent",
        mode="before",
    )
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value

    @property
    def normalized_id(self) -> str:
        return normalize_quiz_id(self.id)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    @classmethod
    def from_record(cls, record: Any) -> Quiz:
        if isinstance(record, Quiz):
            return record
        return cls.model_validate(record)


def record_keys(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Rename field-name keys (``current_question_index``) to their wire alias."""
    renamed: dict[str, Any] = {}
    for key, value in patch.items():
        field = Quiz.model_fields.get(key)
        renamed[(field.alias or key) if field is not None else key] = value
    return renamed


def record_number(record: Any) -> int | None:
    if not isinstance(record, Mapping):
        return None
    number = record.get("quizNumber")
    if isinstance(number, bool):
        return None
    if isinstance(number, str) and number.strip().isdigit():
        number = int(number.strip())
    if isinstance(number, int) and number >= 1:
        return number
    return None


def split_quiz_records(records: Iterable[Any] | None) -> tuple[list[Quiz], list[Any]]:
    """Parse stored records, keeping the ones that fail validation untouched.

    Unreadable records are returned as-is so that writing the collection
    back never drops them.
    """
    quizzes: list[Quiz] = []
    unreadable: list[Any] = []
    for record in records or ():
        try:
            quizzes.append(Quiz.from_record(record))
        except ValidationError as exc:
            logger.warning(
                "quiz_record_kept_unparsed",
                quiz_id=record.get("id") if isinstance(record, Mapping) else None,
                errors=exc.error_count(),
            )
            unreadable.append(record)
    return quizzes, unreadable
