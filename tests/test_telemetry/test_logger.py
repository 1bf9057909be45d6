"""Tests for structured logging configuration."""

import json
import logging
import pathlib

import pytest
import structlog

import crm_agent.telemetry.logger as logger_module
from crm_agent.telemetry.logger import configure_logging, get_logger


@pytest.fixture
def log_dir(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Point file logging at a temporary directory and reconfigure."""
    directory = tmp_path / "logs"
    monkeypatch.setattr(logger_module, "_get_log_dir", lambda: directory)
    monkeypatch.setattr(logger_module, "_get_log_level", lambda: "DEBUG")
    monkeypatch.setattr(logger_module, "_get_log_format", lambda: "console")
    structlog.reset_defaults()
    logging.root.handlers.clear()
    configure_logging()
    return directory


def _last_entry(log_dir: pathlib.Path) -> dict:
    lines = (log_dir / "current.jsonl").read_text(encoding="utf-8").splitlines()
    assert lines
    return json.loads(lines[-1])


class TestLoggerConfiguration:
    """Test logger configuration and setup."""

    def test_get_logger_configures_on_first_call(self) -> None:
        """Test that get_logger configures logging on first call."""
        structlog.reset_defaults()

        log = get_logger("test.module")

        assert structlog.is_configured()
        assert hasattr(log, "info")

    def test_creates_log_directory(self, log_dir: pathlib.Path) -> None:
        """Test that configuring logging creates the log directory."""
        assert log_dir.exists()

    def test_emits_structured_json(self, log_dir: pathlib.Path) -> None:
        """Test that events are written as JSON lines with their fields."""
        log = get_logger("crm_agent.orchestrator.executor")
        log.info("continuation_decided", proceed=True, depth=1, trace_id="trace-123")

        entry = _last_entry(log_dir)
        assert entry["event"] == "continuation_decided"
        assert entry["proceed"] is True
        assert entry["depth"] == 1
        assert entry["trace_id"] == "trace-123"
        assert entry["component"] == "executor"
        assert "T" in entry["timestamp"]

    def test_stdlib_records_are_formatted(self, log_dir: pathlib.Path) -> None:
        """Test that plain logging records end up in the same JSON file."""
        logging.getLogger("some.library").warning("library warning")

        entry = _last_entry(log_dir)
        assert entry["event"] == "library warning"
        assert entry["component"] == "library"
        assert entry["level"] == "warning"

    def test_json_console_format(
        self,
        tmp_path: pathlib.Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Test that APP_LOG_FORMAT=json renders stderr lines as JSON."""
        monkeypatch.setattr(logger_module, "_get_log_dir", lambda: tmp_path / "logs")
        monkeypatch.setattr(logger_module, "_get_log_level", lambda: "INFO")
        monkeypatch.setattr(logger_module, "_get_log_format", lambda: "json")
        structlog.reset_defaults()
        logging.root.handlers.clear()
        configure_logging()

        get_logger("crm_agent.cli").info("session_started", trace_id="trace-9")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "session_started"
        assert entry["trace_id"] == "trace-9"
