from __future__ import annotations

from enum import Enum


class QuizStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


QUIZ_STATUS_RANK: dict[QuizStatus, int] = {
    QuizStatus.PLANNED: 0,
    QuizStatus.IN_PROGRESS: 1,
    QuizStatus.COMPLETED: 2,
}

MIXED_CATEGORY = "Mixed"
CATEGORY_FIELDS: tuple[str, ...] = ("section", "domain", "questionType")

CHOICE_LETTERS: tuple[str, ...] = ("A", "B", "C", "D")

# Dropped from every question of a completed quiz regardless of size.
HEAVY_MEDIA_FIELDS: frozenset[str] = frozenset(
    {
        "image",
        "imageData",
        "imageBase64",
        "questionImage",
        "answerImage",
        "passageImageData",
        "explanationImageData",
        "audio",
        "audioData",
        "video",
        "videoData",
        "attachments",
        "thumbnail",
    }
)

# Kept when remote, vector, or small enough; any other oversized string is dropped.
WHITELISTED_MEDIA_FIELDS: frozenset[str] = frozenset({"passageImage", "explanationImage"})

REMOTE_REFERENCE_PREFIXES: tuple[str, ...] = ("http://", "https://", "storage://")
VECTOR_IMAGE_PREFIXES: tuple[str, ...] = ("data:image/svg+xml", "<svg")
