"""JSONL logging for the issue tracker.

Every record is one JSON object on its own line in ``<log_dir>/tracker.log``.
Callers attach issue and tool context through ``extra=``; the keys listed in
``RECORD_FIELDS`` are copied into the output when present, so a transition
line looks like::

    {"ts": "...Z", "level": "INFO", "logger": "issue_tracker.engine",
     "msg": "issue_transition", "issue_id": "...", "agent": "bob",
     "classification": "bug", "from_status": "created", "to_status": "in_progress"}
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "issue_tracker"
LOG_FILENAME = "tracker.log"
ROTATE_BYTES = 5 * 1024 * 1024
ROTATE_BACKUPS = 3

# (LogRecord attribute, JSON key)
RECORD_FIELDS: tuple[tuple[str, str], ...] = (
    ("issue_id", "issue_id"),
    ("agent", "agent"),
    ("classification", "classification"),
    ("from_status", "from_status"),
    ("to_status", "to_status"),
    ("issue_count", "issue_count"),
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
    ("error", "error"),
)

_lock = threading.Lock()


def _utc_stamp(created: float) -> str:
    return datetime.fromtimestamp(created, UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TrackerLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": _utc_stamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in RECORD_FIELDS:
            if attr in record.__dict__:
                entry[key] = record.__dict__[attr]
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return json.dumps(entry, default=str, ensure_ascii=False)


def _tracker_handlers(logger: logging.Logger) -> list[RotatingFileHandler]:
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def setup_logging(log_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Route the ``issue_tracker`` logger hierarchy to ``<log_dir>/tracker.log``.

    Repeated calls with the same directory keep the existing handler. A call
    with another directory closes the old handler and opens a new one.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = (log_dir / LOG_FILENAME).resolve()

    with _lock:
        for handler in _tracker_handlers(logger):
            if Path(handler.baseFilename) == log_path:
                logger.setLevel(level)
                return logger
            logger.removeHandler(handler)
            handler.close()

        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path, maxBytes=ROTATE_BYTES, backupCount=ROTATE_BACKUPS, encoding="utf-8")
        handler.setFormatter(TrackerLogFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
