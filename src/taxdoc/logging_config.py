"""JSON logging for the service and the on-disk ingestion audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "taxdoc.ingest.audit"
AUDIT_LOG_FILE = "ingest_audit.log"


class JSONLineFormatter(logging.Formatter):
    """One JSON object per record; dict messages from telemetry are merged in."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line: dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, dict):
            line.update(record.msg)
        else:
            line["message"] = record.getMessage()
        if record.exc_info and "exc" not in line:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def build_logging_config(log_dir: Path, level: str = "INFO") -> dict[str, Any]:
    """``dictConfig`` payload: stderr for everything, a file for audit events only."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": JSONLineFormatter}},
        "handlers": {
            "stderr": {"class": "logging.StreamHandler", "formatter": "json"},
            "ingest_audit": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / AUDIT_LOG_FILE),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level, "handlers": ["stderr"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {
                "level": "INFO",
                "handlers": ["ingest_audit"],
                "propagate": False,
            }
        },
    }


def configure_logging(log_dir: str | Path | None = None) -> None:
    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.config.dictConfig(build_logging_config(directory, level))
