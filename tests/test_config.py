# tests/test_config.py
from pathlib import Path

import pytest
from pydantic import ValidationError

from pyairtouch5.config import Settings, build_logging_config


class TestSettings:
    def test_controllers_are_split_on_commas(self) -> None:
        s = Settings(AT5_CONTROLLERS="10.0.0.5, 10.0.0.6,,")
        assert s.AT5_CONTROLLERS == ["10.0.0.5", "10.0.0.6"]

    def test_controllers_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("AT5_CONTROLLERS", "192.168.1.20")
        assert Settings().AT5_CONTROLLERS == ["192.168.1.20"]

    def test_log_level_is_normalized(self) -> None:
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_unknown_log_level_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="chatty")

    def test_session_options(self) -> None:
        options = Settings(AT5_PORT=9100, AT5_CONNECT_ATTEMPTS=5).session_options()
        assert options["port"] == 9100
        assert options["connect_attempts"] == 5
        assert options["silence_timeout"] == 120.0


class TestLoggingConfig:
    def test_library_logger_follows_level(self, tmp_path: Path) -> None:
        config = build_logging_config(tmp_path / "at5.log", "DEBUG")
        assert config["loggers"]["pyairtouch5"]["level"] == "DEBUG"
        assert config["handlers"]["logfile"]["filename"] == str(tmp_path / "at5.log")
