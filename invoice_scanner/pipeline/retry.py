"""Retry policy applied uniformly to external capability calls.

One policy object describes attempts, backoff and which errors are worth
retrying; each attempt runs under its own deadline, distinct from the
deadline of the hosting job. A deadline miss is a retryable
``CapabilityTimeout``.

A deadline cannot interrupt a call already running in a worker thread
(``asyncio.to_thread``): the abandoned call keeps its thread until it
returns, and its result is discarded. A retry after a timeout therefore
runs alongside it, so the number of stray threads per job is bounded by
``max_attempts - 1``.

Built on tenacity's ``AsyncRetrying``:
https://tenacity.readthedocs.io/
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import CapabilityTimeout, is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for one capability.

    Attributes:
        max_attempts: Total attempts including the first
        base_delay: Delay before the second attempt; doubles per attempt
        timeout: Per-attempt deadline in seconds (None disables it)
        is_retryable: Classifier deciding whether an error is transient
        max_delay: Upper bound for a single backoff delay
    """

    max_attempts: int
    base_delay: float
    timeout: float | None = None
    is_retryable: Callable[[BaseException], bool] = field(default=is_transient_error)
    max_delay: float = 60.0

    async def run(self, call: Callable[[], Awaitable[T]], operation: str) -> T:
        """Run ``call`` until it succeeds or the policy gives up.

        Non-retryable errors propagate immediately; after the last attempt
        the final error propagates unchanged.

        Args:
            call: Zero-argument coroutine factory, invoked once per attempt
            operation: Name used in logs and timeout messages

        Returns:
            Result of the first successful attempt
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, max=self.max_delay),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._attempt(call, operation)
        raise RuntimeError(f"{operation} exhausted retries")  # pragma: no cover

    async def _attempt(self, call: Callable[[], Awaitable[T]], operation: str) -> T:
        if self.timeout is None:
            return await call()
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CapabilityTimeout(f"{operation} timed out after {self.timeout:g}s") from e


def ocr_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.ocr_max_attempts,
        base_delay=settings.ocr_base_delay_seconds,
        timeout=settings.ocr_timeout_seconds,
    )


def extraction_retry_policy(settings: Settings) -> RetryPolicy:
    """Structuring calls are costlier, so they get fewer attempts by default."""
    return RetryPolicy(
        max_attempts=settings.extraction_max_attempts,
        base_delay=settings.extraction_base_delay_seconds,
        timeout=settings.extraction_timeout_seconds,
    )
