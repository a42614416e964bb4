"""Public entrypoints for the SSH service."""

from functools import lru_cache

from kernel_builder.core.config import settings

from .backoff import BackoffPolicy
from .config import ConnectionInfo, SessionConfig, SessionConfigBuilder
from .pool import SessionPool
from .session import CommandResult, Session

__all__ = [
    "BackoffPolicy",
    "CommandResult",
    "ConnectionInfo",
    "Session",
    "SessionConfig",
    "SessionConfigBuilder",
    "SessionPool",
    "get_session_pool",
]


@lru_cache(maxsize=1)
def get_session_pool() -> SessionPool:
    """Provide a process-wide session pool sized from app settings."""
    return SessionPool(max_connections=settings.ssh_max_sessions)
