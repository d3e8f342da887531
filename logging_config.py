from __future__ import annotations

import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "node_id",
    "risk_tier",
    "risk_score",
    "language",
    "recipient_count",
    "event",
    "subscriber_count",
    "window_size",
    "status",
    "reason",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append whitelisted ``extra`` fields to each line as ``key=value`` pairs."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts: list[str] = []
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is None:
                continue
            context_parts.append(f"{key}={_render_value(value)}")
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def _render_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    text = str(value)
    if " " in text:
        return f'"{text}"'
    return text


def configure_logging(level: str | int | None = None, force: bool = False) -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
