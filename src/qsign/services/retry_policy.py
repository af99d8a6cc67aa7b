"""Retry policy for remote signing calls.

Classifies QTSP failures as recoverable (network, timeout, HTTP 5xx) or
fatal, and runs an async operation with bounded exponential backoff and
jitter. Every remote call chain in the signing services goes through
RetryPolicy.run().

Default plan: 3 retries after the initial attempt (4 tries total), first
delay 1s doubling per retry, capped at 5s, each delay jittered by +/-50%.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import httpx

from qsign.services.errors import RetriesExhaustedError

if TYPE_CHECKING:
    from qsign.core.config import SigningSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_MIN_BACKOFF = 1.0
DEFAULT_MAX_BACKOFF = 5.0
DEFAULT_JITTER = 0.5


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return 500 <= error.response.status_code <= 599
    return isinstance(
        error,
        (httpx.ConnectError, httpx.TimeoutException, ConnectionError, TimeoutError),
    )


def is_recoverable(error: BaseException) -> bool:
    """Check whether an error is worth retrying.

    True for connection failures, timeouts and HTTP 5xx responses, whether
    raised directly or as the ``__cause__`` of a wrapping error. Everything
    else (4xx, parsing, contract violations, business rules) is fatal.
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if _is_transient(current):
            return True
        current = current.__cause__
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff and jitter.

    Attributes:
        max_retries: Retries after the initial attempt.
        min_backoff: First retry delay in seconds.
        max_backoff: Cap for any single delay in seconds.
        jitter: Relative jitter applied to each delay (0.5 = +/-50%).
        sleep: Awaitable sleep function (replaced in tests).
        rng: Random source for jitter.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    min_backoff: float = DEFAULT_MIN_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF
    jitter: float = DEFAULT_JITTER
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, repr=False, compare=False
    )
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: SigningSettings) -> RetryPolicy:
        """Build a policy from the signing settings group."""
        return cls(
            max_retries=settings.max_retries,
            min_backoff=settings.min_backoff,
            max_backoff=settings.max_backoff,
            jitter=settings.jitter,
        )

    @property
    def max_attempts(self) -> int:
        """Total tries including the initial attempt."""
        return self.max_retries + 1

    def compute_backoff(self, retry_number: int) -> float:
        """Delay before the given retry (1-based).

        backoff = min_backoff * 2^(retry_number-1), capped at max_backoff,
        then jittered and clamped to [0, max_backoff].
        """
        base = min(self.min_backoff * (2 ** (retry_number - 1)), self.max_backoff)
        offset = base * self.jitter
        delay = base + self.rng.uniform(-offset, offset)
        return max(0.0, min(delay, self.max_backoff))

    async def run(self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        """Run an operation, retrying recoverable failures.

        The operation factory is called once per attempt so each try is a
        fresh execution of the whole call chain.

        Args:
            operation: Zero-argument coroutine factory.
            operation_name: Label used in logs and in RetriesExhaustedError.

        Returns:
            The operation's result.

        Raises:
            RetriesExhaustedError: All attempts failed recoverably; the last
                failure is the ``__cause__``.
            Exception: Any non-recoverable error, unchanged, on first occurrence.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if not is_recoverable(e):
                    raise
                if attempt > self.max_retries:
                    logger.error(
                        "%s failed after retries. attempts=%d, reason=%s",
                        operation_name,
                        attempt,
                        e,
                    )
                    raise RetriesExhaustedError(operation_name, attempt, e) from e

                delay = self.compute_backoff(attempt)
                logger.warning(
                    "Retrying %s. attempt=%d of %d, delay=%.2fs, reason=%s",
                    operation_name,
                    attempt,
                    self.max_retries,
                    delay,
                    e,
                )
                await self.sleep(delay)
