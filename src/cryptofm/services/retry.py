"""Retry policy shared by outbound network calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryAfterHook = Callable[[BaseException], "float | None"]
RetryPredicate = Callable[[BaseException], bool]


def _always(_: BaseException) -> bool:
    return True


def _no_hint(_: BaseException) -> float | None:
    return None


@dataclass
class RetryPolicy:
    """Run an async operation with bounded exponential backoff.

    ``retry_after`` lets a provider supply its own delay hint (for example a
    ``Retry-After`` header on a 429 response); when it returns ``None`` the
    exponential delay ``base_delay * 2 ** (attempt - 1)`` is used. Delays are
    capped at ``max_delay``. ``max_attempts=1`` disables retrying.
    """

    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 60.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    should_retry: RetryPredicate = _always
    retry_after: RetryAfterHook = _no_hint
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int, exc: BaseException) -> float:
        """Return the wait before the attempt following ``attempt``."""
        hinted = self.retry_after(exc)
        delay = hinted if hinted is not None else self.base_delay * (2 ** (attempt - 1))
        return max(0.0, min(delay, self.max_delay))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operation",
    ) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except self.retry_on as exc:
                if attempt >= self.max_attempts or not self.should_retry(exc):
                    raise
                delay = self.delay_for(attempt, exc)
                logger.warning(
                    "%s failed: %s. Retrying in %.1fs (attempt %d/%d)",
                    description,
                    exc,
                    delay,
                    attempt,
                    self.max_attempts,
                )
                await self.sleep(delay)


__all__ = ["RetryPolicy"]
