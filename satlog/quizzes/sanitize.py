from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from satlog.core.config import get_settings
from satlog.quizzes.constants import (
    HEAVY_MEDIA_FIELDS,
    REMOTE_REFERENCE_PREFIXES,
    VECTOR_IMAGE_PREFIXES,
    WHITELISTED_MEDIA_FIELDS,
)


def default_max_field_bytes() -> int:
    return max(1, int(get_settings().quiz_sanitize_max_field_bytes))


def utf8_size(value: str) -> int:
    return len(value.encode("utf-8"))


def is_remote_reference(value: str) -> bool:
    return value.strip().lower().startswith(REMOTE_REFERENCE_PREFIXES)


def is_vector_image(value: str) -> bool:
    return value.lstrip().lower().startswith(VECTOR_IMAGE_PREFIXES)


def _keep_whitelisted_media(value: Any, *, max_field_bytes: int) -> bool:
    if not isinstance(value, str):
        return True
    return is_remote_reference(value) or is_vector_image(value) or utf8_size(value) <= max_field_bytes


def sanitize_question(question: Mapping[str, Any], *, max_field_bytes: int | None = None) -> dict[str, Any]:
    """Strip inline media and oversized strings before a question is persisted.

    Heavy media fields go unconditionally. ``passageImage`` and
    ``explanationImage`` survive only as a remote reference, an SVG literal
    or a value under the byte ceiling. Any other top-level string over the
    ceiling is dropped.
    """
    ceiling = max_field_bytes if max_field_bytes is not None else default_max_field_bytes()
    sanitized: dict[str, Any] = {}
    for field, value in question.items():
        if field in HEAVY_MEDIA_FIELDS:
            continue
        if field in WHITELISTED_MEDIA_FIELDS:
            if _keep_whitelisted_media(value, max_field_bytes=ceiling):
                sanitized[field] = value
            continue
        if isinstance(value, str) and utf8_size(value) > ceiling:
            continue
        sanitized[field] = value
    return sanitized


def sanitize_questions(
    questions: Iterable[Mapping[str, Any]],
    *,
    max_field_bytes: int | None = None,
) -> list[dict[str, Any]]:
    ceiling = max_field_bytes if max_field_bytes is not None else default_max_field_bytes()
    return [sanitize_question(question, max_field_bytes=ceiling) for question in questions]
