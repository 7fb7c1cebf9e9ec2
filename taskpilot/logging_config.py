"""Logging setup: console + optional JSON-lines file."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ClientConfig

LOGGER_NAME = "taskpilot"


class JSONFormatter(logging.Formatter):
    """JSON Lines format for structured log files.

    Records logged by a polling session carry the task id, so one task's
    history can be filtered out of a shared log file.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        task_id = record.__dict__.get("task_id")
        if task_id is not None:
            entry["task_id"] = task_id
        return json.dumps(entry)


def setup_logger(config: ClientConfig) -> logging.Logger:
    """Create the client logger with console and optional JSON-lines file handlers."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    # Don't add handlers if already configured (avoids duplicates on re-init)
    if logger.handlers:
        return logger

    # Console goes to stderr; stdout carries command output
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    ))
    logger.addHandler(console)

    if config.structured_log:
        log_dir = Path(config.project_dir) / config.log_dir
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"client-{datetime.now().strftime('%Y%m%d-%H%M%S')}.jsonl"
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    return logger
