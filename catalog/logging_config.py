"""Logging setup driven by ``LoggingSettings``.

Call ``setup_logging()`` once at process start (API lifespan or ``main.py``).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

from .config import LoggingSettings, settings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per log line with ``ts``, ``level`` and ``logger`` fields."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("json_ensure_ascii", False)
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["ts"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def setup_logging(config: LoggingSettings | None = None) -> None:
    """Configure the root logger.

    Replaces existing root handlers so repeated calls (e.g. uvicorn reload)
    do not duplicate output.
    """
    config = config or settings.logging

    if config.format == "json":
        formatter: logging.Formatter = JsonFormatter("%(message)s")
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(config.level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
