# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Retry Policy

Single responsibility: Re-run filesystem operations that fail because
another process (IDE, file watcher, indexer) holds a transient lock.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Type

from package_installer.core.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_DELAY = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded fixed-delay retry.

    Errors in retry_on are retried unless they are also in give_up_on.
    Anything else propagates on the first failure.
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: float = DEFAULT_DELAY
    retry_on: Tuple[Type[BaseException], ...] = (OSError,)
    give_up_on: Tuple[Type[BaseException], ...] = (
        FileNotFoundError,
        NotADirectoryError,
        IsADirectoryError,
    )

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def is_retryable(self, error: BaseException) -> bool:
        """Whether error looks like transient contention"""
        if isinstance(error, self.give_up_on):
            return False
        return isinstance(error, self.retry_on)

    async def run(self, operation: Callable[..., Any], *args: Any, description: str = "") -> Any:
        """
        Run a blocking operation in a worker thread, retrying transient errors.

        Args:
            operation: Synchronous callable
            *args: Arguments for operation
            description: What is being attempted, for logs and errors

        Returns:
            Whatever operation returns

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error
        """
        description = description or getattr(operation, "__name__", "operation")
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.to_thread(operation, *args)
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return result
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                last_error = e

                if attempt == self.max_attempts:
                    logger.error(
                        f"{description} failed, retry count exceeded {self.max_attempts}: {e}"
                    )
                    break

                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {self.delay * 1000:.0f}ms: {e}"
                )
                await asyncio.sleep(self.delay)

        raise RetryExhaustedError(description, self.max_attempts, last_error)
