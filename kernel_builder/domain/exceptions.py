"""Domain-level exception hierarchy."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for service-layer errors."""


class SSHError(DomainError):
    """Base for every failure raised by the remote session layer.

    Carries the host and, where relevant, the command so a failure can be
    diagnosed from the log line alone. ``step`` is filled in when the error
    interrupted a batch.
    """

    def __init__(
        self,
        message: str = "",
        *,
        host: str | None = None,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.host = host
        self.command = command
        self.step: int | None = None


class ConfigurationError(SSHError):
    """Invalid session parameters or an unusable key file. Never retried."""


class ConnectionFailed(SSHError):
    """Could not establish a session (or the pool refused to open one)."""

    def __init__(
        self,
        message: str = "",
        *,
        host: str | None = None,
        attempts: int | None = None,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(message, host=host)
        self.attempts = attempts
        self.last_error = last_error


class AuthenticationFailed(ConnectionFailed):
    """The server rejected the private key."""


class HostKeyVerificationFailed(ConnectionFailed):
    """The server's host key is unknown or changed under strict checking."""


class UnexpectedEof(ConnectionFailed):
    """The connection closed before the handshake completed."""


class SSHTimeoutError(SSHError, TimeoutError):
    """A connect attempt, command or liveness probe ran out of time."""


class CommandExecutionFailed(SSHError):
    """A remote command exited non-zero or its channel failed mid-command."""

    def __init__(
        self,
        message: str = "",
        *,
        host: str | None = None,
        command: str | None = None,
        exit_status: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, host=host, command=command)
        self.exit_status = exit_status
        self.stderr = stderr


class SessionFailed(SSHError):
    """Tearing down a session failed."""


class ClientNotInitialized(SSHError):
    """A session was used before ``connect()`` succeeded."""

    def __init__(self, message: str = "Client not initialized", **kwargs) -> None:
        super().__init__(message, **kwargs)


__all__ = [
    "AuthenticationFailed",
    "ClientNotInitialized",
    "CommandExecutionFailed",
    "ConfigurationError",
    "ConnectionFailed",
    "DomainError",
    "HostKeyVerificationFailed",
    "SSHError",
    "SSHTimeoutError",
    "SessionFailed",
    "UnexpectedEof",
]
