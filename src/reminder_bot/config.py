from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config.toml")


class MatrixSettings(BaseModel):
    host: str
    access_token: str

    @field_validator("host", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class TwilioSettings(BaseModel):
    account_sid: str
    auth_token: str
    from_num: str
    api_base: str = "https://api.twilio.com"


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="reminder_bot_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    matrix: MatrixSettings
    twilio: TwilioSettings
    database: Path = Path("reminders.db")

    # Messages must start with "<command_prefix>:" to be treated as commands
    command_prefix: str = "testbot"

    tick_interval_seconds: float = 0.5
    sync_timeout_ms: int = 60000
    sync_backoff_seconds: float = 5.0
    # Must outlast the server-side long-poll timeout
    http_timeout_seconds: float = 90.0
    log_level: str = "INFO"

    # Read-only admin API (health + pending reminders)
    enable_admin_api: bool = False
    admin_host: str = "127.0.0.1"
    admin_port: int = 8787
    admin_api_token: str = ""

    @field_validator("command_prefix", mode="after")
    @classmethod
    def _strip_prefix_colon(cls, value: str) -> str:
        value = value.strip().rstrip(":")
        if not value:
            raise ValueError("command_prefix must not be empty")
        return value

    @field_validator("log_level", mode="after")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("http_timeout_seconds", mode="after")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("http_timeout_seconds must be positive")
        return value


def load_settings(path: Path | str = DEFAULT_CONFIG_PATH, **overrides: Any) -> BotSettings:
    """Read ``config.toml`` and build validated settings.

    Keys missing from the file may come from ``reminder_bot_*`` environment
    variables (``reminder_bot_matrix__access_token`` and so on).
    """
    config_path = Path(path)
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"couldn't find {config_path}") from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"failed to read {config_path}: {exc}") from exc

    data.update(overrides)
    try:
        return BotSettings(**data)
    except ValidationError as exc:
        raise ConfigError(f"failed to parse config {config_path}: {exc}") from exc
