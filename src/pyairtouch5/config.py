# src/pyairtouch5/config.py
import logging.config
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Controller Settings (empty list means discovery)
    AT5_CONTROLLERS: Annotated[list[str], NoDecode] = Field(default_factory=list)
    AT5_PORT: int = Field(default=9005, ge=1, le=65535)
    AT5_DISCOVERY_PORT: int = Field(default=49005, ge=1, le=65535)
    AT5_DISCOVERY_TIMEOUT: float = Field(default=5.0, gt=0, le=60)

    # Session Settings
    AT5_LIVENESS_INTERVAL: float = Field(default=10.0, gt=0)
    AT5_SILENCE_TIMEOUT: float = Field(default=120.0, gt=0)
    AT5_RECONNECT_DELAY: float = Field(default=10.0, ge=0)
    AT5_CONNECT_TIMEOUT: float = Field(default=5.0, gt=0)
    AT5_CONNECT_ATTEMPTS: int = Field(default=3, ge=1, le=10)

    # API Server Settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # MQTT Settings
    MQTT_ENABLED: bool = False
    MQTT_HOST: str = "localhost"
    MQTT_PORT: int = 1883
    MQTT_USER: str | None = None
    MQTT_PASSWORD: str | None = None
    MQTT_TOPIC_PREFIX: str = "hvac/airtouch5"

    LOG_FILE_PATH: str = "~/.cache/pyairtouch5/pyairtouch5.log"
    LOG_LEVEL: str = "INFO"

    @field_validator("AT5_CONTROLLERS", mode="before")
    @classmethod
    def split_controllers(cls, v: str | list[str] | None) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def session_options(self) -> dict:
        """Keyword arguments for ControllerSession."""
        return {
            "port": self.AT5_PORT,
            "liveness_interval": self.AT5_LIVENESS_INTERVAL,
            "silence_timeout": self.AT5_SILENCE_TIMEOUT,
            "reconnect_delay": self.AT5_RECONNECT_DELAY,
            "connect_timeout": self.AT5_CONNECT_TIMEOUT,
            "connect_attempts": self.AT5_CONNECT_ATTEMPTS,
        }


settings = Settings()


def build_logging_config(log_file: Path, level: str) -> dict:
    """dictConfig for the library, the CLI and the API server."""
    formatter = {
        "()": "uvicorn.logging.DefaultFormatter",
        "fmt": "%(levelprefix)s %(asctime)s %(name)s: %(message)s",
        "datefmt": "%H:%M:%S",
    }
    both = ["console", "logfile"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "plain",
                "stream": "ext://sys.stderr",
            },
            "logfile": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "plain",
                "filename": str(log_file),
                "maxBytes": 2 * 1024 * 1024,
                "backupCount": 5,
                "encoding": "utf-8",
            },
        },
        "loggers": {
            "pyairtouch5": {"handlers": both, "level": level},
            "uvicorn.error": {"handlers": both, "level": "INFO"},
            "uvicorn.access": {"handlers": ["logfile"], "level": "WARNING", "propagate": False},
        },
    }


LOG_FILE_PATH = Path(settings.LOG_FILE_PATH).expanduser()
LOG_FILE_PATH.parent.mkdir(parents=True, exist_ok=True)
logging.config.dictConfig(build_logging_config(LOG_FILE_PATH, settings.LOG_LEVEL))
