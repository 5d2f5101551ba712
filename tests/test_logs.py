"""Tests for structured logging."""

import json
import logging

import pytest

from keyprobe.logs import JsonFormatter, KeyValueFormatter, configure_logging, record_fields


def make_record(msg="upstream call failed", **fields):
    record = logging.LogRecord("keyprobe.service", logging.WARNING, __file__, 1, msg, (), None)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_keyprobe_logger():
    logger = logging.getLogger("keyprobe")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_record_fields_only_extra():
    record = make_record(operation="chat", status=429)
    assert record_fields(record) == {"operation": "chat", "status": 429}


def test_key_value_formatter():
    line = KeyValueFormatter().format(make_record(operation="chat", detail="Rate limit reached"))
    assert "WARNING keyprobe.service upstream call failed" in line
    assert "operation=chat" in line
    assert 'detail="Rate limit reached"' in line


def test_json_formatter():
    payload = json.loads(JsonFormatter().format(make_record(status=401, error_type="invalid_key")))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "keyprobe.service"
    assert payload["event"] == "upstream call failed"
    assert payload["status"] == 401
    assert payload["error_type"] == "invalid_key"


def test_configure_logging_replaces_handler(restore_keyprobe_logger):
    configure_logging("debug", "json")
    logger = configure_logging("info", "text")

    assert logger is restore_keyprobe_logger
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, KeyValueFormatter)
