import logging

import pytest

from ticketdesk import logger


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    original = logger.get()
    target = logging.getLogger("tests.capture")
    target.handlers.clear()
    handler = _ListHandler()
    target.addHandler(handler)
    target.setLevel(logging.DEBUG)
    target.propagate = False
    logger.set_logger(target)
    yield handler
    logger.set_logger(original)


def test_new_logger_development(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    log = logger.new_logger("development")
    assert log.level == logging.DEBUG


def test_new_logger_production(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    log = logger.new_logger("production")
    assert log.level == logging.INFO


def test_new_logger_with_log_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "error")
    assert logger.new_logger("development").level == logging.ERROR


def test_new_logger_with_invalid_log_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "invalid_level")
    assert logger.new_logger("development").level == logging.DEBUG


def test_set_and_get():
    original = logger.get()
    try:
        replacement = logging.getLogger("tests.replacement")
        logger.set_logger(replacement)
        assert logger.get() is replacement
    finally:
        logger.set_logger(original)


@pytest.mark.parametrize(
    "func,level",
    [
        (logger.info, logging.INFO),
        (logger.error, logging.ERROR),
        (logger.debug, logging.DEBUG),
        (logger.warn, logging.WARNING),
    ],
)
def test_level_functions(captured, func, level):
    func("test message")
    assert [r.levelno for r in captured.records] == [level]
    assert captured.records[0].getMessage() == "test message"


def test_info_with_fields(captured):
    logger.info("test message", string_field="value", int_field=42, bool_field=True)
    assert captured.records[0].fields == {
        "string_field": "value",
        "int_field": 42,
        "bool_field": True,
    }


def test_with_fields(captured):
    bound = logger.with_fields(key="value")
    bound.info("hello", extra={"fields": {"n": 1}})
    assert captured.records[0].fields == {"key": "value", "n": 1}


def test_fatal_exits(captured):
    with pytest.raises(SystemExit):
        logger.fatal("boom")
    assert captured.records[0].levelno == logging.CRITICAL


def test_sync_returns_none(captured):
    assert logger.sync() is None