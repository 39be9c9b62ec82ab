"""Structured JSON logger for uplog.

Every log record is emitted as a single-line JSON object on stderr so
that the human-facing output of the CLI (the uploaded URL on stdout) stays
clean and the diagnostics remain machine-readable.

Typical structured output::

    {"ts": "2026-10-19T12:00:00.123456+00:00", "level": "INFO",
     "logger": "uplog.transcode", "message": "transcode complete",
     "op": "transcode", "mime": "image/png", "size": 48213}

Usage::

    from uplog.observability import get_logger

    log = get_logger("uplog.pipeline")
    log.info("run complete", extra={"extra_fields": {"key": "folder/x.webp"}})

Only the ``uplog`` root logger owns a handler.  Module loggers propagate
to it, so a single ``get_logger(level="INFO")`` call adjusts the whole
package.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "uplog"


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys: ``ts``, ``level``, ``logger``, ``message``.  Fields
    passed through ``extra={"extra_fields": {...}}`` are merged into the
    top-level object; ``exception`` and ``stack_info`` appear when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


# ---------------------------------------------------------------------------
# Internal registry -- the root handler is attached exactly once so that
# ``get_logger`` stays idempotent across modules.
# ---------------------------------------------------------------------------
_configured_loggers: set[str] = set()
_root_handler: logging.StreamHandler | None = None


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        return resolved
    return level


def get_logger(
    name: str = ROOT_LOGGER,
    *,
    level: int | str | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Get a logger that writes structured JSON through the uplog root.

    Parameters
    ----------
    name:
        Logger name.  Defaults to ``"uplog"``.  Names below it, such as
        ``"uplog.storage"``, propagate to the root handler.
    level:
        If given, set the level of the ``uplog`` root logger.  Accepts an
        ``int`` or a case-insensitive name (``"INFO"``).  The root starts
        at ``WARNING``.
    stream:
        If given, redirect the root handler to this stream.  Defaults to
        ``sys.stderr`` on first use.

    Returns
    -------
    logging.Logger
        The logger called *name*.  Repeated calls never add duplicate
        handlers.
    """
    global _root_handler

    root = logging.getLogger(ROOT_LOGGER)

    if ROOT_LOGGER not in _configured_loggers:
        root.setLevel(logging.WARNING)
        _root_handler = logging.StreamHandler(stream or sys.stderr)
        _root_handler.setFormatter(StructuredFormatter())
        root.addHandler(_root_handler)
        # Keep records out of the process-wide root logger.
        root.propagate = False
        _configured_loggers.add(ROOT_LOGGER)
    elif stream is not None and _root_handler is not None:
        _root_handler.setStream(stream)

    if level is not None:
        root.setLevel(_resolve_level(level))

    return logging.getLogger(name)
