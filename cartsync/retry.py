"""
Fixed-interval retry policy on top of tenacity.

The sleep coroutine is injectable so callers can drive the policy with
virtual time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_fixed,
)

from cartsync.config import REFRESH_MAX_ATTEMPTS, REFRESH_RETRY_MS
from cartsync.errors import QueryNotReady
from cartsync.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry ``retry_on`` exceptions every ``interval`` seconds.

    ``max_attempts=None`` retries forever. Once attempts run out the last
    exception is re-raised.
    """
    interval: float = REFRESH_RETRY_MS / 1000
    max_attempts: Optional[int] = REFRESH_MAX_ATTEMPTS
    retry_on: tuple[type[BaseException], ...] = (QueryNotReady,)
    sleep: Sleep = field(default=asyncio.sleep, compare=False)

    def __post_init__(self):
        if self.interval < 0:
            raise ValueError("interval must be non-negative")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")

    def _retrying(self) -> AsyncRetrying:
        stop = stop_after_attempt(self.max_attempts) if self.max_attempts else stop_never
        return AsyncRetrying(
            sleep=self.sleep,
            stop=stop,
            wait=wait_fixed(self.interval),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

    async def run(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``fn(*args, **kwargs)`` until it stops raising a retryable error."""
        return await self._retrying()(fn, *args, **kwargs)
