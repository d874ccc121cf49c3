"""
Tests for logging configuration.
"""

import json
import logging

import pytest

from mongo_mirror.logging_config import HumanFormatter, JSONFormatter, setup_logging


def record(message="Copied", **extra):
    rec = logging.LogRecord("mongo_mirror.engine.orchestrator", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(rec, key, value)
    return rec


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "mongo_mirror.engine.orchestrator"
        assert data["message"] == "Copied"
        assert "run_id" not in data

    def test_run_extras(self):
        data = json.loads(JSONFormatter().format(record(run_id="R-1", collection="orders")))

        assert data["run_id"] == "R-1"
        assert data["collection"] == "orders"


class TestHumanFormatter:

    def test_includes_collection(self):
        line = HumanFormatter().format(record(collection="orders"))

        assert "[orchestrator   ]" in line
        assert "(orders) Copied" in line


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_format(self, restore_root):
        setup_logging(level="DEBUG", format_type="json")

        assert restore_root.level == logging.DEBUG
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_env_defaults(self, restore_root, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("LOG_FORMAT", "text")

        setup_logging()

        assert restore_root.level == logging.WARNING
        assert isinstance(restore_root.handlers[0].formatter, HumanFormatter)

    def test_pymongo_quieted(self, restore_root):
        setup_logging(level="DEBUG")
        assert logging.getLogger("pymongo").level == logging.WARNING
