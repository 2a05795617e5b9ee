"""Run-aware logging for Auditomatic.

Modules log through plain ``logging.getLogger(__name__)``. The scheduler
binds ``run_id`` and the executor binds ``task_id`` / ``model`` with
:class:`LogContext`; both formatters lift those bindings out of the context
and print them as fixed fields, so every line can be traced back to the run
and task that produced it::

    12:04:31 W executor r-1/t-7 ▸ Task t-7 failed: API error: 429  model=gpt-4o
    {"timestamp": ..., "run_id": "r-1", "task_id": "t-7", "extra": {"model": "gpt-4o"}}

``configure_logging`` is what the CLI calls. Setting ``AUDITOMATIC_DEBUG=1``
or ``AUDITOMATIC_LOG_LEVEL`` configures the same handler at import time for
library use.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_PREFIX = "auditomatic"

_log_context: ContextVar[dict[str, Any] | None] = ContextVar("auditomatic_log_context", default=None)

# Bindings rendered as fixed fields rather than trailing key-values.
_RUN_FIELDS = ("run_id", "task_id")

# level -> (marker, ANSI colour)
_LEVELS: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("D", "\033[2m"),
    logging.INFO: ("I", "\033[36m"),
    logging.WARNING: ("W", "\033[33m"),
    logging.ERROR: ("E", "\033[31m"),
    logging.CRITICAL: ("C", "\033[1;31m"),
}
_RESET = "\033[0m"


def _split_context(record: logging.LogRecord) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return ``(run_fields, other_bindings)`` for *record*.

    A ``run_id`` / ``task_id`` passed through ``extra=`` on the logging call
    overrides the bound value.
    """
    other = dict(_log_context.get() or {})
    run: dict[str, Any] = {}
    for key in _RUN_FIELDS:
        value = getattr(record, key, None)
        if value is None:
            value = other.pop(key, None)
        else:
            other.pop(key, None)
        if value is not None:
            run[key] = value
    return run, other


class TextFormatter(logging.Formatter):
    """One line per record: time, level, module, ``run/task``, message.

    Parameters:
        color: Emit ANSI colour codes. The CLI enables this only on a TTY.
    """

    def __init__(self, *, color: bool = True) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        marker, ansi = _LEVELS.get(record.levelno, ("?", ""))
        if not self.color:
            ansi = reset = ""
        else:
            reset = _RESET
        name = record.name.removeprefix(f"{_PREFIX}.")
        run, other = _split_context(record)

        parts = [self.formatTime(record, "%H:%M:%S"), f"{ansi}{marker} {name}{reset}"]
        if "task_id" in run:
            parts.append(f"{run.get('run_id', '-')}/{run['task_id']}")
        elif run:
            parts.append(str(run["run_id"]))
        line = " ".join(parts) + f" ▸ {record.getMessage()}"
        if other:
            line += "  " + " ".join(f"{k}={v}" for k, v in other.items())

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line += f"\n{ansi}{record.exc_text}{reset}"
        return line


class JsonFormatter(logging.Formatter):
    """JSON lines with ``run_id`` / ``task_id`` as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        run, other = _split_context(record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            **run,
            "message": record.getMessage(),
        }
        if other:
            entry["extra"] = other
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_configure_lock = threading.Lock()
_configured = False


def _install(formatter: logging.Formatter, level: int) -> None:
    root = logging.getLogger(_PREFIX)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)


def _level_number(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.WARNING


def configure_logging(level: str | int = "WARNING", fmt: str = "text", *, force: bool = False) -> None:
    """Attach one stderr handler to the ``auditomatic`` logger.

    Later calls are ignored unless *force* is set.

    Args:
        level: Level name or number; unknown names fall back to WARNING.
        fmt: ``"text"`` or ``"json"``.
        force: Replace a handler installed earlier.
    """
    global _configured
    with _configure_lock:
        if _configured and not force:
            return
        if fmt == "json":
            formatter: logging.Formatter = JsonFormatter()
        else:
            formatter = TextFormatter(color=sys.stderr.isatty())
        _install(formatter, _level_number(level))
        _configured = True


def reset_logging() -> None:
    """Drop the installed handler and forget the configuration. For tests."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)


def _configure_from_env() -> None:
    # AUDITOMATIC_DEBUG=1 wins over AUDITOMATIC_LOG_LEVEL.
    if os.environ.get("AUDITOMATIC_DEBUG") == "1":
        level = "DEBUG"
    elif "AUDITOMATIC_LOG_LEVEL" in os.environ:
        level = os.environ["AUDITOMATIC_LOG_LEVEL"]
        if level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            level = "WARNING"
    else:
        return
    configure_logging(level, os.environ.get("AUDITOMATIC_LOG_FORMAT", "text"))


_configure_from_env()


class LogContext:
    """Bind key-values (``run_id``, ``task_id``, ``model``) to records in scope.

    Nested contexts merge with the enclosing one. Bindings live in a
    ``ContextVar``, so concurrent tasks of one run each keep their own
    ``task_id`` while sharing the run's ``run_id``.
    """

    __slots__ = ("_bindings", "_token")

    def __init__(self, **bindings: Any) -> None:
        self._bindings = bindings
        self._token: Any = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**(_log_context.get() or {}), **self._bindings})
        return self

    def __exit__(self, *_: object) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None
