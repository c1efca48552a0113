"""Logging utilities for the detection engine."""

from __future__ import annotations

import logging
import re
from pathlib import Path

_LOGGER_NAME = "source_context"

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"sk-[A-Za-z0-9_-]{20,}"), "[REDACTED-API-KEY]"),
    (
        re.compile(r"api[_-]?key[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9_-]{20,}", re.IGNORECASE),
        "apiKey: [REDACTED]",
    ),
    (
        re.compile(r"token[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9_-]{20,}", re.IGNORECASE),
        "token: [REDACTED]",
    ),
    (
        re.compile(r"password[\"']?\s*[:=]\s*[\"']?[^\s\"',}]{6,}", re.IGNORECASE),
        "password: [REDACTED]",
    ),
)


def redact(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Scrubs credentials out of rendered log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a component logger under the source_context hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure console output and an optional file sink for the engine."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when configured twice.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    redactor = SecretRedactingFilter()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(
        logging.Formatter("[source-context] %(levelname)s %(message)s")
    )
    stream_handler.addFilter(redactor)
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        file_handler.addFilter(redactor)
        logger.addHandler(file_handler)

    return logger


def preview(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


__all__ = [
    "SecretRedactingFilter",
    "configure_logging",
    "get_logger",
    "preview",
    "redact",
]
