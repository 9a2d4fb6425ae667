from __future__ import annotations

from enum import Enum


class DataType(str, Enum):
    QUESTIONS = "sat_master_log_questions"
    QUIZ_HISTORY = "sat_master_log_quiz_history"
    IN_PROGRESS_QUIZZES = "sat_master_log_in_progress_quizzes"
    QUESTION_ANSWERS = "sat_master_log_question_answers"
    ALL_QUIZZES = "sat_master_log_all_quizzes"
    CALENDAR_EVENTS = "sat_master_log_calendar_events"
    CATALOG_QUESTIONS = "sat_master_log_catalog_questions"


MAPPING_DATA_TYPES: frozenset[DataType] = frozenset({DataType.QUESTION_ANSWERS})

# Slices that grow by bulk append and keep a device-local safety copy.
LOCAL_BACKUP_DATA_TYPES: frozenset[DataType] = frozenset({DataType.QUESTIONS})
APPEND_DATA_TYPES: frozenset[DataType] = frozenset({DataType.QUESTIONS})


def default_value(data_type: DataType) -> list[object] | dict[str, object]:
    if data_type in MAPPING_DATA_TYPES:
        return {}
    return []


def supports_local_backup(data_type: DataType) -> bool:
    return data_type in LOCAL_BACKUP_DATA_TYPES


def supports_append(data_type: DataType) -> bool:
    return data_type in APPEND_DATA_TYPES
