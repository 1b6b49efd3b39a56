"""Retry policy shared by the store calls and the webhook notifier."""

import asyncio
import random
from dataclasses import dataclass
from typing import Callable, Tuple, TypeVar

from core.errors import StoreError
from core.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.1  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.5  # fraction of the delay added at random
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Delay after a failed attempt (0-based), exponential with jitter."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay


async def run_store_call(retry_config: RetryConfig, action: str, func: Callable[..., T], *args) -> T:
    """Run a blocking store call off the loop, retrying transient failures.

    Raises:
        StoreError: The last failure, once it is not transient or the
            attempts are exhausted
    """
    attempts = max(1, retry_config.max_attempts)
    for attempt in range(attempts):
        try:
            return await asyncio.to_thread(func, *args)
        except StoreError as e:
            if not e.transient or attempt + 1 >= attempts:
                raise
            delay = retry_config.get_delay(attempt)
            logger.warning(
                f"{action} failed ({e}), retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{attempts})"
            )
            await asyncio.sleep(delay)
