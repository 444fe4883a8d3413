"""Unit tests for structlog configuration."""

import json
import logging

import pytest
import structlog

from pricekeeper.core.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch, tmp_path):
    """Run in an empty directory and undo root-logger changes afterwards."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_level_and_noisy_loggers():
    configure_logging("warning", "text")

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_json_format_emits_app_name(capsys):
    configure_logging("INFO", "json")
    structlog.get_logger("pricekeeper.test").info("price_changed", item_id="openai/gpt-4o")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "price_changed"
    assert event["item_id"] == "openai/gpt-4o"
    assert event["app"] == "pricekeeper"
    assert event["level"] == "info"
