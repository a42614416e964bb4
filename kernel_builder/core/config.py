"""Core configuration module.

Settings are read, in decreasing priority, from constructor arguments,
environment variables, ``.env`` and ``config/settings.toml``. The SSH
section is nested: ``SSH__HOST=10.0.2.15`` in the environment or an
``[ssh]`` table in the TOML file.
"""

import os

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class SSHSettings(BaseModel):
    """Connection defaults for the reproducer VM / build worker."""

    host: str = "127.0.0.1"
    port: int = 22
    user: str = "root"
    key_path: str = "~/.ssh/debian-key"

    # Seconds
    timeout: float = 30.0
    max_retries: int = 5
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    keep_alive_interval: float | None = 60.0

    strict_host_key_checking: bool = False
    compression: bool = False

    @field_validator("host")
    @classmethod
    def require_host(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("ssh.host cannot be empty")
        return value

    @field_validator("port")
    @classmethod
    def check_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"ssh.port must be between 1 and 65535, got {value}")
        return value

    @field_validator("max_retries")
    @classmethod
    def require_retries(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ssh.max_retries must be greater than 0")
        return value

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("ssh.timeout must be greater than 0")
        return value

    @field_validator("initial_backoff", "max_backoff")
    @classmethod
    def reject_negative_durations(cls, value: float) -> float:
        if value < 0:
            raise ValueError("durations must not be negative")
        return value


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_nested_delimiter="__",
        toml_file="config/settings.toml",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = os.getenv("ENVIRONMENT", "development")

    # Logging
    log_level: str = "INFO"
    log_format: str | None = None  # "json", "console", or None (auto-detect based on environment)

    # Remote sessions
    ssh: SSHSettings = SSHSettings()
    ssh_max_sessions: int = 32

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("ssh_max_sessions")
    @classmethod
    def require_positive_pool(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ssh_max_sessions must be greater than 0")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
        )


settings = Settings()
