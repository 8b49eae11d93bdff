"""Logging helpers shared by every toolpin module.

Modules log through ``logging.getLogger(__name__)``; this module only owns
root configuration and a few helpers for structured DEBUG records.
"""
from __future__ import annotations

import logging
import os
import sys
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

_CONFIGURED_HANDLER: Optional[logging.Handler] = None


def _env_level() -> int:
    if os.environ.get(Constants.ENV_DEBUG, "").strip().lower() in Constants.TRUTHY:
        return logging.DEBUG
    name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[int] = None) -> None:
    """Install a single stderr handler on the root logger.

    Safe to call more than once; the handler is replaced, not duplicated.
    The level comes from TOOLPIN_LOG_LEVEL (or TOOLPIN_DEBUG) unless given.
    """
    global _CONFIGURED_HANDLER  # pylint: disable=global-statement
    root = logging.getLogger()
    if _CONFIGURED_HANDLER is not None:
        root.removeHandler(_CONFIGURED_HANDLER)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    root.addHandler(handler)
    _CONFIGURED_HANDLER = handler
    root.setLevel(level if level is not None else _env_level())


def is_debug_enabled(logger: logging.Logger) -> bool:
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping for structured log records.

    None values are dropped so records only carry what the caller knew.
    """
    return {k: v for k, v in fields.items() if v is not None}


def safe_url(url: str) -> str:
    """Strip credentials and query strings from a URL before logging it."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<unparseable-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        self._end = None
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.monotonic()
        return round((end - self._start) * 1000.0, 2)
