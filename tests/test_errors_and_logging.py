"""Error chaining and logging setup."""
from __future__ import annotations

import json
import logging
import sys

import pytest

from catalog.config import LoggingSettings
from catalog.errors import IngestionError, describe_chain
from catalog.logging_config import JsonFormatter, setup_logging


def test_describe_chain_joins_causes():
    try:
        try:
            raise ConnectionError("connection refused")
        except ConnectionError as e:
            raise IngestionError("Failed to load users from external source") from e
    except IngestionError as exc:
        assert describe_chain(exc) == "Failed to load users from external source: connection refused"


def test_describe_chain_skips_repeated_messages():
    try:
        try:
            raise ValueError("boom")
        except ValueError as e:
            raise IngestionError("Failed to load users from external source: boom") from e
    except IngestionError as exc:
        assert describe_chain(exc) == "Failed to load users from external source: boom"


def test_describe_chain_uses_type_name_for_empty_message():
    assert describe_chain(IngestionError()) == "IngestionError"


def test_json_formatter():
    record = logging.LogRecord("catalog.test", logging.INFO, __file__, 1, "loaded %d users", (3,), None)
    line = JsonFormatter("%(message)s").format(record)
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["logger"] == "catalog.test"
    assert payload["message"] == "loaded 3 users"
    assert payload["ts"].endswith("+00:00")


def test_json_formatter_keeps_unicode_and_tracebacks():
    try:
        raise IngestionError("source down")
    except IngestionError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("catalog.test", logging.ERROR, __file__, 1, "no match for Élodie", (), exc_info)

    line = JsonFormatter("%(message)s").format(record)

    assert "Élodie" in line
    payload = json.loads(line)
    assert payload["level"] == "ERROR"
    assert "IngestionError: source down" in payload["exc_info"]


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_replaces_handlers(restore_root_logger, tmp_path):
    log_file = tmp_path / "catalog.log"
    config = LoggingSettings(level="debug", format="json", file=str(log_file))

    setup_logging(config)
    setup_logging(config)

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    assert all(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    for handler in root.handlers:
        handler.close()
