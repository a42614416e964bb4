"""Test configuration and fixtures.

No test touches the network: ``asyncssh.connect`` is replaced by
:class:`FakeSSH`, which hands out :class:`DummyConnection` objects.
"""

import asyncio
from types import SimpleNamespace

import asyncssh
import pytest

from kernel_builder.services.ssh import SessionConfig


def completed(stdout: bytes | str = b"", stderr: bytes | str = b"", exit_status: int | None = 0):
    """Stand-in for asyncssh's SSHCompletedProcess."""
    return SimpleNamespace(stdout=stdout, stderr=stderr, exit_status=exit_status)


async def _echo(command: str):
    return completed(stdout=f"ran {command}".encode())


class DummyConnection:
    def __init__(self, run_impl=_echo):
        self._run_impl = run_impl
        self.commands: list[str] = []
        self.closed = False
        self.close_calls = 0
        self.close_error: Exception | None = None

    async def run(self, command: str, check: bool = False, **kwargs):
        self.commands.append(command)
        return await self._run_impl(command)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    async def wait_closed(self) -> None:
        if self.close_error is not None:
            raise self.close_error


class FakeSSH:
    """Records connect calls; raises queued failures before succeeding."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.failures: list[BaseException] = []
        self.always_fail: BaseException | None = None
        self.connect_delay: float | None = None
        self.run_impl = _echo
        self.connections: list[DummyConnection] = []

    async def connect(self, **kwargs):
        self.calls.append(kwargs)
        if self.connect_delay is not None:
            await asyncio.sleep(self.connect_delay)
        if self.always_fail is not None:
            raise self.always_fail
        if self.failures:
            raise self.failures.pop(0)
        conn = DummyConnection(self.run_impl)
        self.connections.append(conn)
        return conn


@pytest.fixture
def fake_ssh(monkeypatch) -> FakeSSH:
    fake = FakeSSH()
    monkeypatch.setattr("kernel_builder.services.ssh.session.asyncssh.connect", fake.connect)
    return fake


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "debian-key"
    asyncssh.generate_private_key("ssh-ed25519").write_private_key(path)
    return path


@pytest.fixture
def make_config(key_file):
    """Config factory with fast, sleep-free retry defaults."""

    def factory(**overrides) -> SessionConfig:
        params = dict(
            host="10.0.2.15",
            port=10022,
            user="root",
            key_path=key_file,
            timeout=1.0,
            max_retries=3,
            initial_backoff=0.0,
            max_backoff=0.0,
        )
        params.update(overrides)
        return SessionConfig(**params)

    return factory


class SleepRecorder:
    """Replacement for asyncio.sleep that records instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
