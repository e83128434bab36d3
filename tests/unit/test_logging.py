"""Tests for adminkit logging infrastructure."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from adminkit.logging import (
    ROOT_LOGGER,
    ConsoleFormatter,
    JSONLFormatter,
    log_with_context,
    setup_logging,
)
from adminkit.runtime.settings import AdminSettings


def _record(level: int = logging.INFO, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="adminkit.runtime.service",
        level=level,
        pathname=__file__,
        lineno=10,
        msg="Inserted %s %s",
        args=("User", 1),
        exc_info=None,
        func="create",
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_logger() -> Iterator[logging.Logger]:
    """Undo setup_logging() changes to the adminkit logger."""
    logger = logging.getLogger(ROOT_LOGGER)
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestJSONLFormatter:
    def test_basic_entry(self) -> None:
        entry = json.loads(JSONLFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["component"] == "service"
        assert entry["message"] == "Inserted User 1"
        assert entry["timestamp"].endswith("Z")
        assert "source" not in entry

    def test_context_and_source_for_warnings(self) -> None:
        record = _record(logging.WARNING, context={"field": "email"})
        entry = json.loads(JSONLFormatter().format(record))
        assert entry["context"] == {"field": "email"}
        assert entry["source"]["line"] == 10
        assert entry["source"]["function"] == "create"

    def test_explicit_component(self) -> None:
        entry = json.loads(JSONLFormatter().format(_record(component="audit")))
        assert entry["component"] == "audit"


class TestConsoleFormatter:
    def test_includes_component_and_context(self) -> None:
        line = ConsoleFormatter().format(_record(context={"field": "email"}))
        assert "[service]" in line
        assert "Inserted User 1" in line
        assert "field=email" in line


class TestSetupLogging:
    def test_console_only(self, restore_logger: logging.Logger) -> None:
        logger = setup_logging("debug")
        assert logger is restore_logger
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_file_handler(self, restore_logger: logging.Logger, tmp_path: Path) -> None:
        logger = setup_logging(logging.INFO, log_dir=tmp_path / "logs")
        assert len(logger.handlers) == 2

        logging.getLogger("adminkit.runtime.service").warning("constraint failed")
        for handler in logger.handlers:
            handler.flush()

        lines = (tmp_path / "logs" / "adminkit.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "constraint failed"

    def test_settings_configure_logging(
        self, restore_logger: logging.Logger, tmp_path: Path
    ) -> None:
        settings = AdminSettings(log_level="WARNING", log_format="json")
        logger = settings.configure_logging()
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JSONLFormatter)


class TestLogWithContext:
    def test_attaches_context(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("adminkit.tests")
        with caplog.at_level(logging.INFO, logger="adminkit.tests"):
            log_with_context(logger, logging.INFO, "hello", {"a": 1}, b=2)
        assert caplog.records[-1].context == {"a": 1, "b": 2}  # type: ignore[attr-defined]

    def test_without_context(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("adminkit.tests")
        with caplog.at_level(logging.INFO, logger="adminkit.tests"):
            log_with_context(logger, logging.INFO, "plain")
        assert not hasattr(caplog.records[-1], "context")
