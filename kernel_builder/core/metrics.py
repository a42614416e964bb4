"""Prometheus metrics for remote sessions.

Metrics Categories:
- Connection metrics (attempts by outcome, live sessions)
- Command metrics (count and latency by outcome)
- Pool metrics (entries held)
"""

from prometheus_client import Counter, Gauge, Histogram

SSH_CONNECT_ATTEMPTS_TOTAL = Counter(
    "kernel_builder_ssh_connect_attempts_total",
    "Total SSH connect attempts",
    ["status"],  # success, failure
)

SSH_ACTIVE_SESSIONS = Gauge(
    "kernel_builder_ssh_active_sessions",
    "Number of SSH sessions currently connected",
)

SSH_COMMANDS_TOTAL = Counter(
    "kernel_builder_ssh_commands_total",
    "Total remote commands executed",
    ["status"],  # success, nonzero, error, timeout
)

SSH_COMMAND_DURATION_SECONDS = Histogram(
    "kernel_builder_ssh_command_duration_seconds",
    "Remote command duration in seconds",
    ["status"],
    buckets=(0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
)

SSH_POOL_SIZE = Gauge(
    "kernel_builder_ssh_pool_size",
    "Number of sessions held by a session pool",
)


def record_connect_attempt(success: bool) -> None:
    """Record one connect attempt; successful ones also bump the live-session gauge."""
    status = "success" if success else "failure"
    SSH_CONNECT_ATTEMPTS_TOTAL.labels(status=status).inc()
    if success:
        SSH_ACTIVE_SESSIONS.inc()


def record_disconnect() -> None:
    SSH_ACTIVE_SESSIONS.dec()


def record_command(status: str, duration_seconds: float) -> None:
    """Record a finished remote command.

    Args:
        status: One of ``success``, ``nonzero``, ``error`` or ``timeout``.
        duration_seconds: Wall time spent waiting on the remote side.
    """
    SSH_COMMANDS_TOTAL.labels(status=status).inc()
    SSH_COMMAND_DURATION_SECONDS.labels(status=status).observe(duration_seconds)


def update_pool_size(size: int) -> None:
    SSH_POOL_SIZE.set(size)
