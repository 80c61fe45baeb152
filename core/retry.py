"""Retry policy for calls that may fail transiently."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, TypeVar

from core.exceptions import UpstreamNetworkError, UpstreamTimeoutError, VanityAPIException
from core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_KINDS = frozenset(
    {UpstreamTimeoutError.__name__, UpstreamNetworkError.__name__}
)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff over a fixed set of retryable error kinds"""

    max_attempts: int = 1
    base_delay: float = 0.5
    backoff_factor: float = 2.0
    retryable_error_kinds: FrozenSet[str] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_KINDS
    )

    def is_retryable(self, exc: BaseException) -> bool:
        return (
            isinstance(exc, VanityAPIException)
            and type(exc).__name__ in self.retryable_error_kinds
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following `attempt` (1-based)"""
        return self.base_delay * (self.backoff_factor ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        sleep=asyncio.sleep,
    ) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except VanityAPIException as exc:
                if attempt >= self.max_attempts or not self.is_retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retrying {operation_name} after {type(exc).__name__}",
                    extra={
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "delay": delay,
                    },
                )
                await sleep(delay)
                attempt += 1
