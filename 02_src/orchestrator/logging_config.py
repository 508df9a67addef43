"""Structured logging configuration for the agent orchestrator."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Attributes callers attach with extra={...}
CONTEXT_FIELDS = ("agent_id", "execution_id", "attempt")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Third-party loggers that are too chatty at DEBUG/INFO
QUIET_LOGGERS = {
    "aiosqlite": "WARNING",
    "uvicorn.access": "WARNING",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with agent context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    console_format: str | None = None,
) -> None:
    """
    Configure the root logger for the orchestrator process.

    The rotating log file always gets JSON; the console gets JSON unless
    ``console_format`` is "text".

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
                   Defaults to the LOG_LEVEL env var, then INFO.
        log_file: Log file path. Defaults to LOG_FILE, then 04_logs/app.log.
        console_format: "json" or "text". Defaults to LOG_FORMAT, then "json".
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_path = Path(log_file or os.getenv("LOG_FILE") or DEFAULT_LOG_PATH)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    console_format = (console_format or os.getenv("LOG_FORMAT", "json")).lower()
    if console_format not in ("json", "text"):
        raise ValueError(f"Unknown log format: {console_format}")

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
                "text": {"format": TEXT_FORMAT},
            },
            "handlers": {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": str(log_path),
                    "maxBytes": 10 * 1024 * 1024,
                    "backupCount": 5,
                    "formatter": "json",
                    "encoding": "utf-8",
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": console_format,
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                name: {"level": quiet_level} for name, quiet_level in QUIET_LOGGERS.items()
            },
            "root": {
                "level": level,
                "handlers": ["file", "console"],
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Logger for a module; pass ``__name__``."""
    return logging.getLogger(name)
