import logging
from dataclasses import replace
from logging.handlers import RotatingFileHandler

import pytest

from summit_crm import logging_conf


class RecordingLogtailHandler(logging.Handler):
    def __init__(self, source_token, host=None):
        super().__init__()
        self.source_token = source_token
        self.host = host
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_file_handler_follows_configured_level(settings):
    logging_conf.setup_logging(replace(settings, log_level="warning"))

    root = logging.getLogger()
    file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].level == logging.WARNING
    assert file_handlers[0].baseFilename.endswith("summit_crm.log")
    assert root.level == logging.WARNING


def test_unknown_level_falls_back_to_info(settings):
    logging_conf.setup_logging(replace(settings, log_level="chatty"))
    assert logging.getLogger().level == logging.INFO


def test_better_stack_handler_ships_info_and_above(settings, monkeypatch):
    monkeypatch.setattr(logging_conf, "LogtailHandler", RecordingLogtailHandler)

    logging_conf.setup_logging(
        replace(settings, log_level="DEBUG", betterstack_source_token="tok", betterstack_ingest_host="in.example.com")
    )

    shipped = [h for h in logging.getLogger().handlers if isinstance(h, RecordingLogtailHandler)]
    assert len(shipped) == 1
    assert shipped[0].level == logging.INFO
    assert shipped[0].source_token == "tok"
    assert shipped[0].host == "in.example.com"
    messages = [r.getMessage() for r in shipped[0].records]
    assert "Better Stack log shipping enabled for summit_crm (in.example.com)" in messages


def test_better_stack_failure_keeps_local_logging(settings, monkeypatch):
    def broken_handler(**kwargs):
        raise RuntimeError("bad token")

    monkeypatch.setattr(logging_conf, "LogtailHandler", broken_handler)
    captured = RecordingLogtailHandler("unused")
    logging_conf.logger.addHandler(captured)
    try:
        logging_conf.setup_logging(replace(settings, betterstack_source_token="tok"))
    finally:
        logging_conf.logger.removeHandler(captured)

    warnings = [r.getMessage() for r in captured.records if r.levelno == logging.WARNING]
    assert warnings == ["Could not attach Better Stack handler, continuing with local logs: bad token"]
    assert any(isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers)
