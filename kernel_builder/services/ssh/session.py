"""Async SSH sessions to reproducer VMs and build workers, built on top of asyncSSH."""

from __future__ import annotations

import asyncio
import shlex
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional, Sequence

import asyncssh

from kernel_builder.core import metrics
from kernel_builder.core.logging import LoggerAdapter, get_logger
from kernel_builder.domain.exceptions import (
    AuthenticationFailed,
    ClientNotInitialized,
    CommandExecutionFailed,
    ConfigurationError,
    ConnectionFailed,
    HostKeyVerificationFailed,
    SessionFailed,
    SSHError,
    SSHTimeoutError,
    UnexpectedEof,
)

from .backoff import BackoffPolicy
from .config import ConnectionInfo, SessionConfig, SessionConfigBuilder, resolve_key_path

logger = get_logger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 60.0
PROBE_TIMEOUT = 5.0
PROBE_COMMAND = "true"
COMPRESSION_ALGS = ["zlib@openssh.com", "zlib"]
KNOWN_HOSTS_PATH = Path("~/.ssh/known_hosts")


@dataclass(slots=True)
class CommandResult:
    """Structured result for a command executed over SSH."""

    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def _decode_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _resolve_known_hosts(strict: bool) -> str | bytes | None:
    """Map the strict-checking flag onto asyncssh's ``known_hosts`` argument.

    ``None`` accepts whatever key the server presents. Under strict checking
    a missing known_hosts file means no key is trusted.
    """
    if not strict:
        return None
    path = KNOWN_HOSTS_PATH.expanduser()
    if path.is_file():
        return str(path)
    logger.warning("Strict host key checking enabled but %s is missing; all hosts rejected", path)
    return b""


def _load_client_key(path: Path) -> asyncssh.SSHKey:
    """Parse a private key file; import failures become ConfigurationError."""
    try:
        return asyncssh.read_private_key(path)
    except (asyncssh.KeyImportError, OSError) as exc:
        raise ConfigurationError(f"SSH key file could not be loaded: {path}: {exc}") from exc


def _login_shell(command: str) -> str:
    return f"bash -lc {shlex.quote(command)}"


class Session:
    """One authenticated remote-execution channel to a single host.

    The session owns its asyncssh connection exclusively: it is acquired by
    :meth:`connect` and released by :meth:`disconnect` or on leaving an
    ``async with`` block. Commands are serialised through a lock, so a
    session may be shared between tasks but never runs two commands at once.

    Example:
        >>> async with Session(SessionConfig(host="10.0.2.15", port=10022)) as vm:
        ...     await vm.execute("uname -r")
    """

    def __init__(self, config: SessionConfig, *, backoff: BackoffPolicy | None = None) -> None:
        config.validate()
        self._config = config
        self._backoff = backoff or BackoffPolicy(config.initial_backoff, config.max_backoff)
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._connected_at: Optional[datetime] = None
        self._command_lock = asyncio.Lock()
        self._log = LoggerAdapter(logger, {"ssh_host": config.host, "ssh_port": config.port})

    @staticmethod
    def builder() -> SessionConfigBuilder:
        return SessionConfigBuilder()

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def backoff(self) -> BackoffPolicy:
        return self._backoff

    async def __aenter__(self) -> "Session":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def __repr__(self) -> str:
        state = "connected" if self._conn is not None else "unconnected"
        return f"<Session {self._config.destination} {state}>"

    # -- lifecycle -------------------------------------------------------

    async def connect(self) -> None:
        """Connect, retrying transient failures with backoff.

        Raises:
            ConfigurationError: the key file cannot be used; raised before any
                network attempt and never retried.
            ConnectionFailed: every attempt failed. ``attempts`` and
                ``last_error`` describe the final failure.
        """
        cfg = self._config
        key_path = resolve_key_path(cfg.key_path)
        client_key = _load_client_key(key_path)

        if self._conn is not None:
            try:
                await self.disconnect()
            except SessionFailed as exc:
                self._log.warning("Discarding previous connection: %s", exc)

        self._log.info("Connecting to SSH server at %s:%s", cfg.host, cfg.port)
        last_error: SSHError | None = None

        for attempt in range(1, cfg.max_retries + 1):
            try:
                conn = await self._open_connection(key_path, client_key)
            except (ConnectionFailed, SSHTimeoutError) as exc:
                last_error = exc
                metrics.record_connect_attempt(success=False)
                self._log.error(
                    "Connection attempt %d/%d failed: %s", attempt, cfg.max_retries, exc
                )
                if attempt == cfg.max_retries:
                    break
                delay = await self._backoff.wait(attempt)
                self._log.info(
                    "Retrying after %.2fs (attempt %d/%d)", delay, attempt + 1, cfg.max_retries
                )
                continue

            self._conn = conn
            self._connected_at = datetime.now(UTC)
            metrics.record_connect_attempt(success=True)
            self._log.info("Successfully connected to SSH server on attempt %d", attempt)
            return

        raise ConnectionFailed(
            f"Failed to connect to {cfg.destination} after {cfg.max_retries} attempts: "
            f"{last_error}",
            host=cfg.host,
            attempts=cfg.max_retries,
            last_error=last_error,
        ) from last_error

    async def _open_connection(
        self, key_path: Path, client_key: asyncssh.SSHKey
    ) -> asyncssh.SSHClientConnection:
        """A single connect attempt, bounded by the configured timeout."""
        cfg = self._config
        dest = cfg.destination
        try:
            return await asyncio.wait_for(
                asyncssh.connect(
                    host=cfg.host,
                    port=cfg.port,
                    username=cfg.user,
                    client_keys=[client_key],
                    known_hosts=_resolve_known_hosts(cfg.strict_host_key_checking),
                    compression_algs=COMPRESSION_ALGS if cfg.compression else None,
                    keepalive_interval=(
                        DEFAULT_KEEPALIVE_INTERVAL
                        if cfg.keep_alive_interval is None
                        else cfg.keep_alive_interval
                    ),
                ),
                timeout=cfg.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SSHTimeoutError(
                f"Connection to {dest} timed out after {cfg.timeout}s", host=cfg.host
            ) from exc
        except asyncssh.PermissionDenied as exc:
            raise AuthenticationFailed(
                f"Authentication to {dest} with {key_path} failed: {exc}", host=cfg.host
            ) from exc
        except asyncssh.HostKeyNotVerifiable as exc:
            raise HostKeyVerificationFailed(
                f"Host key verification for {dest} failed: {exc}", host=cfg.host
            ) from exc
        except asyncssh.ConnectionLost as exc:
            raise UnexpectedEof(
                f"Connection to {dest} closed unexpectedly: {exc}", host=cfg.host
            ) from exc
        except (asyncssh.Error, OSError) as exc:
            raise ConnectionFailed(f"Failed to connect to {dest}: {exc}", host=cfg.host) from exc

    async def disconnect(self) -> None:
        """Close the connection if one is held. Safe to call repeatedly.

        The session is left unconnected even when closing fails.

        Raises:
            SessionFailed: the underlying connection failed to close cleanly.
        """
        conn, self._conn = self._conn, None
        try:
            if conn is None:
                return
            self._log.info("Disconnecting SSH session")
            metrics.record_disconnect()
            try:
                conn.close()
                await conn.wait_closed()
            except Exception as exc:
                raise SessionFailed(
                    f"Failed to close session to {self._config.destination}: {exc}",
                    host=self._config.host,
                ) from exc
        finally:
            self._connected_at = None

    def connection_info(self) -> ConnectionInfo | None:
        if self._conn is None or self._connected_at is None:
            return None
        return ConnectionInfo(
            host=self._config.host,
            port=self._config.port,
            user=self._config.user,
            connected_since=self._connected_at,
        )

    async def is_connected(self) -> bool:
        """Probe the remote side with a trivial command. Never raises."""
        conn = self._conn
        if conn is None:
            return False
        try:
            result = await asyncio.wait_for(
                conn.run(PROBE_COMMAND, check=False), timeout=PROBE_TIMEOUT
            )
        except Exception as exc:
            self._log.debug("Liveness probe failed: %r", exc)
            return False
        return result.exit_status == 0

    # -- commands --------------------------------------------------------

    def _require_connection(self, command: str) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise ClientNotInitialized(host=self._config.host, command=command)
        return self._conn

    async def _run(self, command: str) -> CommandResult:
        conn = self._require_connection(command)
        cfg = self._config
        self._log.debug("Executing command: %s", command)

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                conn.run(_login_shell(command), check=False, encoding=None),
                timeout=cfg.timeout,
            )
        except asyncio.TimeoutError as exc:
            metrics.record_command("timeout", time.perf_counter() - started)
            raise SSHTimeoutError(
                f"Command timed out after {cfg.timeout}s on {cfg.host}: {command}",
                host=cfg.host,
                command=command,
            ) from exc
        except (asyncssh.Error, OSError) as exc:
            metrics.record_command("error", time.perf_counter() - started)
            raise CommandExecutionFailed(
                f"Failed to execute command on {cfg.host}: {exc}",
                host=cfg.host,
                command=command,
            ) from exc

        exit_status = result.exit_status
        if exit_status is None:
            # terminated by a signal
            exit_status = -1
        stdout = _decode_text(result.stdout)
        stderr = _decode_text(result.stderr)

        status = "success" if exit_status == 0 else "nonzero"
        metrics.record_command(status, time.perf_counter() - started)
        self._log.info("Command executed. Exit status: %s", exit_status)
        self._log.debug("Command output: %s", stdout)
        if stderr:
            self._log.warning("Command error output: %s", stderr)

        return CommandResult(command=command, stdout=stdout, stderr=stderr, exit_status=exit_status)

    def _check(self, result: CommandResult) -> CommandResult:
        if not result.ok:
            raise CommandExecutionFailed(
                f"Command failed with status {result.exit_status} on {self._config.host}: "
                f"{result.command}\nstderr: {result.stderr}",
                host=self._config.host,
                command=result.command,
                exit_status=result.exit_status,
                stderr=result.stderr,
            )
        return result

    async def run(self, command: str) -> CommandResult:
        """Run ``command`` in a login shell and return its result, whatever the exit status."""
        async with self._command_lock:
            return await self._run(command)

    async def execute(self, command: str) -> str:
        """Run ``command`` in a login shell and return its stdout.

        Raises:
            ClientNotInitialized: the session is not connected.
            CommandExecutionFailed: non-zero exit, or the channel failed.
            SSHTimeoutError: the command outlived the configured timeout. The
                remote process is not killed.
        """
        async with self._command_lock:
            return self._check(await self._run(command)).stdout

    async def execute_batch(self, commands: Sequence[str]) -> list[str]:
        """Run ``commands`` in order, stopping at the first failure.

        Returns every stdout in order, or raises the first error with its
        ``step`` (1-based) set.
        """
        total = len(commands)
        outputs: list[str] = []
        async with self._command_lock:
            for step, command in enumerate(commands, start=1):
                self._log.info("Executing batch command %d/%d: %s", step, total, command)
                try:
                    result = self._check(await self._run(command))
                except SSHError as exc:
                    exc.step = step
                    exc.add_note(f"batch step {step}/{total}: {command}")
                    raise
                outputs.append(result.stdout)
        return outputs
