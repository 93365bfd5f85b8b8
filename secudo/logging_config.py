"""Logging setup for Secudo.

``SEC_LOG_FORMAT`` picks ``text`` (default) or ``json``; ``SEC_LOG_LEVEL``
picks the root level.  Both are read when :func:`setup_logging` runs, so the
lifespan hook and tests see the current environment.

Audit events (denials, role changes, trash operations) are emitted on the
``secudo.audit`` logger with ``action``/``actor``/``project_id`` extras; the
request middleware adds ``request_id``, ``path``, ``method``, ``status_code``
and ``duration_ms``.  In JSON mode every extra becomes a top-level key.
"""

from __future__ import annotations

import logging
import os
import traceback
from typing import Any

from pythonjsonlogger.json import JsonFormatter

import secudo

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"


class StructuredJsonFormatter(JsonFormatter):
    """One JSON object per record; exceptions land in a ``traceback`` list."""

    def __init__(self) -> None:
        super().__init__(fmt=JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S")

    def add_fields(
        self, log_data: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        if record.exc_info and record.exc_info[1] is not None:
            log_data.pop("exc_info", None)
            log_data["traceback"] = traceback.format_exception(*record.exc_info)


def _level_from_env() -> int:
    level = logging.getLevelName(os.environ.get("SEC_LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging() -> None:
    """Install a single stream handler on the root logger."""
    level = _level_from_env()
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if os.environ.get("SEC_LOG_FORMAT", "text").lower() == "json":
        handler.setFormatter(StructuredJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_startup_info(supports_trash: bool) -> None:
    logging.getLogger("secudo").info(
        "Secudo started (trash %s)",
        "enabled" if supports_trash else "disabled",
        extra={
            "version": secudo.__version__,
            "db_path": os.environ.get("SEC_DB_PATH", "secudo.db"),
            "rate_limit_config": os.environ.get("SEC_RATE_LIMIT", "100/minute"),
            "project_trash": supports_trash,
        },
    )
