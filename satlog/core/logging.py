import json
import logging
import sys

import structlog

PAYLOAD_SUMMARY_MAX_CHARS = 1000


def configure_logging(log_level: str = "INFO") -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def summarize_payload(payload: object, *, max_chars: int = PAYLOAD_SUMMARY_MAX_CHARS) -> str:
    """Render a payload for a log line, cut to ``max_chars``.

    Slices can hold thousands of questions with inline images, so log
    lines only ever carry a bounded prefix of the serialized value.
    """
    try:
        text = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    except (TypeError, ValueError):
        return "[unserializable payload]"
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}... [truncated {len(text) - max_chars} chars]"
