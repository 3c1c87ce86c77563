from __future__ import annotations

import json
import logging
from logging import Logger
from pathlib import Path
from typing import Any, Dict, Optional

from .helpers import PROJECT_ROOT

_DEFAULT_LOGGER_NAME = "promptkit"

# Attributes present on every LogRecord; anything else arrived through ``extra=``.
_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra`` context flattened in."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RECORD_FIELDS or key in payload:
                continue
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_formatter(trace_format: str) -> logging.Formatter:
    if trace_format.lower() == "jsonl":
        return JsonFormatter()
    return logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")


def setup_logger(
    level: str = "INFO",
    trace_format: str = "text",
    output_dir: Optional[str] = None,
    name: str = _DEFAULT_LOGGER_NAME,
) -> Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        # Logger already configured; only adjust level.
        logger.setLevel(level.upper())
        return logger

    logger.setLevel(level.upper())
    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(trace_format))
    logger.addHandler(handler)

    if output_dir:
        directory = Path(output_dir)
        if not directory.is_absolute():
            directory = PROJECT_ROOT / directory
        directory.mkdir(parents=True, exist_ok=True)
        suffix = "jsonl" if trace_format.lower() == "jsonl" else "log"
        file_handler = logging.FileHandler(directory / f"{name}.{suffix}", encoding="utf-8")
        file_handler.setFormatter(_build_formatter(trace_format))
        logger.addHandler(file_handler)
    return logger


def get_logger(name: Optional[str] = None) -> Logger:
    """Return a logger under the package root so configured handlers apply."""
    if not name:
        return logging.getLogger(_DEFAULT_LOGGER_NAME)
    if name != _DEFAULT_LOGGER_NAME and not name.startswith(_DEFAULT_LOGGER_NAME + "."):
        name = f"{_DEFAULT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


__all__ = ["setup_logger", "get_logger", "JsonFormatter"]
