"""Exponential backoff with full jitter for SSH connect retries."""

from __future__ import annotations

import asyncio
import random as _random
from typing import Awaitable, Callable

# 2**64 times any sane initial backoff is already far past any max_backoff.
_MAX_EXPONENT = 64


class BackoffPolicy:
    """Delay schedule for retry attempt ``n`` (1-based).

    ``base(n) = min(initial * 2**(n-1), maximum)`` and the actual wait is
    ``base(n)`` plus a jitter drawn uniformly from ``[0, base(n))``.

    Args:
        initial: Base delay before the second attempt, in seconds.
        maximum: Upper bound on the base delay, in seconds.
        random: Source of floats in ``[0, 1)``; inject a constant for tests.
        sleep: Coroutine used to wait; defaults to :func:`asyncio.sleep`.
    """

    def __init__(
        self,
        initial: float,
        maximum: float,
        *,
        random: Callable[[], float] = _random.random,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if initial < 0 or maximum < 0:
            raise ValueError("backoff durations must not be negative")
        self.initial = initial
        self.maximum = maximum
        self._random = random
        self._sleep = sleep

    def base(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError(f"attempt numbers start at 1, got {attempt}")
        exponent = min(attempt - 1, _MAX_EXPONENT)
        return min(self.initial * (2**exponent), self.maximum)

    def jitter(self, base: float) -> float:
        if base <= 0:
            return 0.0
        return self._random() * base

    def delay(self, attempt: int) -> float:
        base = self.base(attempt)
        return base + self.jitter(base)

    async def wait(self, attempt: int) -> float:
        """Sleep for the delay that follows failed ``attempt``; return the delay."""
        delay = self.delay(attempt)
        await self._sleep(delay)
        return delay

    def __repr__(self) -> str:
        return f"BackoffPolicy(initial={self.initial}, maximum={self.maximum})"
