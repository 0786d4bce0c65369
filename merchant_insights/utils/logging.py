"""
Logging setup shared by the CLI, the importer and the analytics precomputer.

Everything goes through the standard library `logging` tree. Records are
rendered either as one pipe-separated console line or as one JSON object per
line. Fields passed with `extra=` (file names, row counts, timings) become
top-level JSON keys, so per-file import results and per-query timings can be
filtered without parsing the message text.

    configure_logging(level="INFO", json_logs=True)
    log = get_logger(__name__)
    log.info("Batch flushed", extra={"file": "activities_20240101.csv", "rows": 5000})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional, Union

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
CONSOLE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers that stay at WARNING regardless of the requested level.
QUIET_LOGGERS = ("psycopg.pool",)

_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }
    # older call sites nest their fields under a single `extra` attribute
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def _json_formatter(record: logging.LogRecord) -> str:
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(_extra_fields(record))
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, `extra=` fields promoted to top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def _level_name(level: Union[str, int]) -> str:
    if isinstance(level, int):
        return logging.getLevelName(level)
    return level.strip().upper()


def configure_logging(level: Union[str, int] = "INFO", json_logs: bool = False) -> None:
    """
    (Re)configure the root logger for a pipeline run.

    Parameters
    ----------
    level : str | int
        Level name in any case ("info", "WARNING") or a numeric level.
    json_logs : bool
        Emit JSON lines instead of the console format.
    """
    level_name = _level_name(level)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"format": CONSOLE_FORMAT, "datefmt": CONSOLE_DATEFMT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level_name,
                }
            },
            "root": {"handlers": ["default"], "level": level_name},
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
