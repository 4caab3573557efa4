"""Tests for logging setup."""

from __future__ import annotations

from mcbridge.models.enums import LogLevel
from mcbridge.utils.logger import configure_logging, get_logger


class TestLogging:
    def test_file_sink_and_component(self, tmp_path) -> None:
        log_file = tmp_path / "relay.log"
        configure_logging(LogLevel.DEBUG, str(log_file))
        try:
            get_logger("mcbridge.relay.test").debug("[Game] Bridge connected")
        finally:
            configure_logging(LogLevel.INFO)

        text = log_file.read_text()
        assert "mcbridge.relay.test" in text
        assert "[Game] Bridge connected" in text

    def test_level_filters(self, tmp_path) -> None:
        log_file = tmp_path / "origin.log"
        configure_logging(LogLevel.WARNING, str(log_file))
        try:
            logger = get_logger("mcbridge.origin.test")
            logger.info("quiet")
            logger.warning("loud")
        finally:
            configure_logging(LogLevel.INFO)

        text = log_file.read_text()
        assert "loud" in text
        assert "quiet" not in text

    def test_level_accepts_plain_strings(self) -> None:
        configure_logging("debug")
        configure_logging(LogLevel.INFO)
