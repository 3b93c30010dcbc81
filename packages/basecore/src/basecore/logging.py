"""
Logging setup for basecore consumers.

Configures stdlib logging once per process. Context passed through
``extra={...}`` is rendered by both formatters.
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

from basecore.settings import get_settings

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

_configured = False


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(_extra_fields(record))
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class ContextFormatter(logging.Formatter):
    """Plain text formatter that appends `extra` context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += " | " + " ".join(f"{k}={v}" for k, v in extra.items())
        return line


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure root logging. Safe to call multiple times.

    Args:
        level: Override for LOG_LEVEL
        json_output: Override for LOG_JSON
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    json_output = settings.LOG_JSON if json_output is None else json_output

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "text": {
                    "()": ContextFormatter,
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_output else "text",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
    _configured = True
