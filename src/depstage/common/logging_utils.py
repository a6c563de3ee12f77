"""Logging configuration and structured-logging helpers.

Keeps the structured fields consistent across modules: callers pass
``extra=extra_context(event=..., component=..., ...)`` and the formatter
appends any non-empty context fields after the message in DEBUG mode.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import urllib.parse
from typing import Any, Dict, Optional

from ..constants import Constants

_CONTEXT_KEYS = (
    "event",
    "component",
    "action",
    "outcome",
    "status_code",
    "duration_ms",
    "target",
    "attempt",
    "coordinate",
    "channel",
    "state",
)


class ContextFormatter(logging.Formatter):
    """Formatter that renders structured context fields when present."""

    def __init__(self, fmt: str, include_context: bool):
        super().__init__(fmt)
        self._include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self._include_context:
            return message
        fields = []
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                fields.append(f"{key}={value}")
        if fields:
            message = f"{message} [{' '.join(fields)}]"
        return message


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Level precedence: explicit argument, then DEPSTAGE_LOG_LEVEL, then INFO.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    include_context = level_value <= logging.DEBUG

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_depstage", False):
            root.removeHandler(handler)
            handler.close()

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(ContextFormatter(Constants.LOG_FORMAT, include_context))
    stream._depstage = True  # type: ignore[attr-defined]
    root.addHandler(stream)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            ContextFormatter("%(asctime)s " + Constants.LOG_FORMAT, include_context=True)
        )
        file_handler._depstage = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(level_value)


def extra_context(**kwargs: Any) -> Dict[str, Any]:
    """Build an ``extra`` dict for logger calls, dropping None values."""
    return {k: v for k, v in kwargs.items() if v is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True if DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip credentials and query strings from a URL for logging."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> int:
        """Elapsed milliseconds; running total if still inside the block."""
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)
