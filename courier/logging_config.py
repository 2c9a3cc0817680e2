"""Structured logging configuration for courier."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

LOG_LEVEL_ENV = "COURIER_LOG_LEVEL"
LOG_FORMAT_ENV = "COURIER_LOG_FORMAT"  # "json" | "text" (default)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name. Configures root courier logger on first use."""
    logger = logging.getLogger("courier" if name == "courier" else f"courier.{name}")
    if not logger.handlers and logger.level == logging.NOTSET:
        _configure_courier_logging()
    return logger


def _configure_courier_logging() -> None:
    root = logging.getLogger("courier")
    if root.handlers:
        return
    level_name = (os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    if (os.environ.get(LOG_FORMAT_ENV) or "text").lower() == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    root.addHandler(handler)


class _JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            obj["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(obj).decode("utf-8")
