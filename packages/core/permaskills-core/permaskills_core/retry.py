"""Retry with exponential backoff for network-bound operations.

:class:`RetryPolicy` is a plain value injected into the registry client
and the object store.  It decides *whether* an error is worth another
attempt (:func:`is_retryable`) and *how long* to wait between attempts.
When every attempt fails, the **first** error is raised, since later
failures are usually knock-on effects of the original one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from permaskills_core.exceptions import NetworkError, RegistryError, RegistryErrorCode

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Network failures and malformed registry answers are transient; the rest are not.

    ``NOT_FOUND`` is a definitive answer and is never retried.
    """
    if isinstance(exc, NetworkError):
        return exc.kind != NetworkError.NOT_FOUND
    if isinstance(exc, RegistryError):
        return exc.code is not RegistryErrorCode.NOT_FOUND
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry loop with exponential backoff.

    With the defaults an operation is attempted 3 times (1 initial call
    plus 2 retries), waiting 2s and then 4s.  A third retry would wait
    8s.

    Attributes:
        retries: Extra attempts after the first one.
        base_delay: Delay before the first retry, in seconds.
        multiplier: Factor applied to the delay after each retry.
        retry_on: Predicate selecting retryable exceptions.
        sleep: Awaitable sleep, replaceable in tests.
    """

    retries: int = 2
    base_delay: float = 2.0
    multiplier: float = 2.0
    retry_on: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def delays(self) -> list[float]:
        """Backoff delays, one per retry."""
        return [self.base_delay * self.multiplier**i for i in range(self.retries)]

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str = "operation") -> T:
        """Call *operation* until it succeeds or the attempts run out.

        Args:
            operation: Zero-argument coroutine function.
            name: Label used in log messages.

        Raises:
            Exception: The first error, once every attempt has failed,
                or immediately for a non-retryable error.
        """
        first_error: Exception | None = None
        delays = self.delays()
        for attempt in range(1, self.attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not self.retry_on(exc):
                    raise
                if first_error is None:
                    first_error = exc
                if attempt == self.attempts:
                    break
                delay = delays[attempt - 1]
                _logger.debug(
                    "%s: attempt %d/%d failed (%s); retrying in %.1fs",
                    name,
                    attempt,
                    self.attempts,
                    exc,
                    delay,
                )
                await self.sleep(delay)

        assert first_error is not None
        _logger.warning("%s: giving up after %d attempts", name, self.attempts)
        raise first_error
