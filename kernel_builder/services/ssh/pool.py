"""Keyed, bounded registry of connected SSH sessions."""

from __future__ import annotations

import asyncio
from typing import Iterator

from kernel_builder.core import metrics
from kernel_builder.core.logging import get_logger
from kernel_builder.domain.exceptions import ConfigurationError, ConnectionFailed

from .config import SessionConfig
from .session import CommandResult, Session

logger = get_logger(__name__)


class SessionPool:
    """Owns up to ``max_connections`` sessions, keyed by a caller-chosen name.

    Entries are connected lazily by :meth:`get_or_create_connection` and
    live until :meth:`remove_connection` or :meth:`close_all`. The pool does
    no locking of its own: it belongs to one task at a time, and callers that
    share it across tasks must serialise access themselves.
    """

    def __init__(self, max_connections: int) -> None:
        if max_connections <= 0:
            raise ConfigurationError("max_connections must be greater than 0")
        self._max_connections = max_connections
        self._sessions: dict[str, Session] = {}

    @property
    def max_connections(self) -> int:
        return self._max_connections

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def keys(self) -> Iterator[str]:
        return iter(list(self._sessions))

    async def __aenter__(self) -> "SessionPool":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close_all()

    async def get_or_create_connection(self, key: str, config: SessionConfig) -> Session:
        """Return the session for ``key``, connecting a new one if needed.

        ``config`` is ignored when ``key`` already exists. A failed connect
        leaves the pool unchanged.

        Raises:
            ConnectionFailed: the pool is full (no network I/O is attempted),
                or the new session could not connect.
        """
        session = self._sessions.get(key)
        if session is not None:
            return session

        if len(self._sessions) >= self._max_connections:
            raise ConnectionFailed(
                f"Maximum connections reached ({self._max_connections}); "
                f"cannot open {key!r}",
                host=config.host,
            )

        session = Session(config)
        await session.connect()
        self._sessions[key] = session
        metrics.update_pool_size(len(self._sessions))
        logger.info("Opened pooled session %s -> %s", key, config.destination)
        return session

    def get(self, key: str) -> Session:
        """Existing session for ``key``; raises ``KeyError`` if there is none."""
        try:
            return self._sessions[key]
        except KeyError:
            raise KeyError(f"No pooled session named {key!r}") from None

    async def execute(self, key: str, command: str) -> str:
        return await self.get(key).execute(command)

    async def run(self, key: str, command: str) -> CommandResult:
        return await self.get(key).run(command)

    async def remove_connection(self, key: str) -> None:
        """Drop and disconnect ``key``. Unknown keys are ignored."""
        session = self._sessions.pop(key, None)
        if session is None:
            return
        metrics.update_pool_size(len(self._sessions))
        await session.disconnect()

    async def close_all(self) -> None:
        """Disconnect every session; one failure does not stop the others."""
        entries = list(self._sessions.items())
        self._sessions.clear()
        metrics.update_pool_size(0)

        results = await asyncio.gather(
            *(session.disconnect() for _, session in entries), return_exceptions=True
        )
        for (key, _), result in zip(entries, results):
            if isinstance(result, Exception):
                logger.error("Error closing connection %s: %s", key, result)
