"""Session parameters and connection snapshots."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from kernel_builder.domain.exceptions import ConfigurationError

if TYPE_CHECKING:
    from kernel_builder.core.config import SSHSettings

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """How to reach and authenticate to one remote host, and how hard to retry.

    Durations are in seconds. The config validates itself on construction,
    so an instance that exists is always usable by :class:`Session`.
    """

    host: str = "127.0.0.1"
    port: int = 22
    user: str = "root"
    key_path: PathLike = "~/.ssh/debian-key"
    timeout: float = 30.0
    max_retries: int = 5
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    strict_host_key_checking: bool = False
    compression: bool = False
    keep_alive_interval: Optional[float] = 60.0

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when the config cannot be used."""
        if not self.host:
            raise ConfigurationError("Host cannot be empty")
        if self.max_retries <= 0:
            raise ConfigurationError(
                "Max retries must be greater than 0", host=self.host
            )
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"Port must be between 1 and 65535, got {self.port}", host=self.host
            )
        if self.timeout <= 0:
            raise ConfigurationError(
                f"Timeout must be greater than 0, got {self.timeout}", host=self.host
            )
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ConfigurationError("Backoff durations must not be negative", host=self.host)
        if self.keep_alive_interval is not None and self.keep_alive_interval < 0:
            raise ConfigurationError(
                "Keep-alive interval must not be negative", host=self.host
            )

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"

    def with_host(self, host: str, port: int | None = None) -> "SessionConfig":
        """Copy of this config pointed at another host (e.g. a second VM)."""
        return replace(self, host=host, port=self.port if port is None else port)

    @classmethod
    def from_settings(cls, ssh: "SSHSettings") -> "SessionConfig":
        return cls(
            host=ssh.host,
            port=ssh.port,
            user=ssh.user,
            key_path=ssh.key_path,
            timeout=ssh.timeout,
            max_retries=ssh.max_retries,
            initial_backoff=ssh.initial_backoff,
            max_backoff=ssh.max_backoff,
            strict_host_key_checking=ssh.strict_host_key_checking,
            compression=ssh.compression,
            keep_alive_interval=ssh.keep_alive_interval,
        )

    @staticmethod
    def builder() -> "SessionConfigBuilder":
        return SessionConfigBuilder()


class SessionConfigBuilder:
    """Fluent construction of a :class:`SessionConfig`.

    Anything not set explicitly falls back to the ``[ssh]`` section of the
    application settings.

    Example:
        >>> config = (
        ...     SessionConfig.builder()
        ...     .host("10.0.2.15")
        ...     .port(10022)
        ...     .backoff(1.0, 8.0)
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._fields: dict[str, object] = {}

    def _set(self, name: str, value: object) -> "SessionConfigBuilder":
        self._fields[name] = value
        return self

    def host(self, host: str) -> "SessionConfigBuilder":
        return self._set("host", host)

    def port(self, port: int) -> "SessionConfigBuilder":
        return self._set("port", port)

    def user(self, user: str) -> "SessionConfigBuilder":
        return self._set("user", user)

    def key_path(self, path: PathLike) -> "SessionConfigBuilder":
        return self._set("key_path", path)

    def timeout(self, seconds: float) -> "SessionConfigBuilder":
        return self._set("timeout", seconds)

    def max_retries(self, retries: int) -> "SessionConfigBuilder":
        return self._set("max_retries", retries)

    def backoff(self, initial: float, maximum: float) -> "SessionConfigBuilder":
        self._set("initial_backoff", initial)
        return self._set("max_backoff", maximum)

    def compression(self, enable: bool = True) -> "SessionConfigBuilder":
        return self._set("compression", enable)

    def strict_host_key_checking(self, enable: bool = True) -> "SessionConfigBuilder":
        return self._set("strict_host_key_checking", enable)

    def keep_alive_interval(self, seconds: float) -> "SessionConfigBuilder":
        return self._set("keep_alive_interval", seconds)

    def build(self, ssh: "SSHSettings | None" = None) -> SessionConfig:
        if ssh is None:
            from kernel_builder.core.config import settings

            ssh = settings.ssh
        return replace(SessionConfig.from_settings(ssh), **self._fields)


@dataclass(frozen=True, slots=True)
class ConnectionInfo:
    """Read-only view of a connected session, for diagnostics."""

    host: str
    port: int
    user: str
    connected_since: datetime

    @property
    def uptime(self) -> timedelta:
        return datetime.now(UTC) - self.connected_since


def resolve_key_path(key_path: PathLike) -> Path:
    """Expand and canonicalise a private key path.

    Raises:
        ConfigurationError: the file is missing, not a regular file, or unreadable.
    """
    path = Path(key_path).expanduser()
    try:
        resolved = path.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise ConfigurationError(f"SSH key file not found: {path}") from exc
    if not resolved.is_file():
        raise ConfigurationError(f"SSH key path is not a file: {resolved}")
    if not os.access(resolved, os.R_OK):
        raise ConfigurationError(f"SSH key file is not readable: {resolved}")
    return resolved
