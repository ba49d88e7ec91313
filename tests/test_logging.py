"""Tests for the local log level."""

import logging

import pytest

from household_ledger.audit import configure_logging


@pytest.fixture(autouse=True)
def restore_level():
    ledger_logger = logging.getLogger("household_ledger")
    previous = ledger_logger.level
    yield
    ledger_logger.setLevel(previous)


class TestConfigureLogging:

    def test_explicit_level(self):
        configure_logging("DEBUG")
        assert logging.getLogger("household_ledger.orchestrator").isEnabledFor(logging.DEBUG)

    def test_level_read_from_settings(self, monkeypatch):
        """Test that LOG_LEVEL decides which ledger events are kept."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        configure_logging()

        module_logger = logging.getLogger("household_ledger.services.storage.google_sheets")
        assert module_logger.isEnabledFor(logging.ERROR)
        assert not module_logger.isEnabledFor(logging.WARNING)
