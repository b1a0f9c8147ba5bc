"""Retry policy for individual HTTP operations."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..common.cancellation import CancellationToken
from ..common.errors import NetworkError

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff around one HTTP operation.

    Attempt ``n`` (0-based) that fails is followed by a wait of
    ``min(max_delay, base_delay * 2 ** n)`` seconds, so the default policy
    waits 1s, then 2s, between its three attempts.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failed attempt, in seconds
        max_delay: Upper bound for any single delay
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Backoff after the 0-based ``attempt`` failed."""
        return min(self.max_delay, self.base_delay * (2 ** attempt))

    def call(
        self,
        operation: Callable[[], R],
        operation_name: str,
        retry_on: Tuple[Type[BaseException], ...],
        cancel_token: Optional[CancellationToken] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> R:
        """Run ``operation`` until it succeeds or attempts are exhausted.

        Only exceptions listed in ``retry_on`` are retried; anything else
        propagates on the first occurrence.

        Args:
            operation: Zero-argument callable performing one HTTP operation
            operation_name: Name for logging and error messages
            retry_on: Exception types treated as transient
            cancel_token: Checked before each attempt and during waits
            sleep: Wait function used when no cancel token is given

        Returns:
            Result of ``operation``

        Raises:
            NetworkError: If every attempt failed, chained to the last cause
            ExtractionCancelledError: If cancelled before or between attempts
        """
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(operation_name)

            try:
                return operation()
            except retry_on as e:
                last_error = e

                if attempt + 1 >= self.max_attempts:
                    logger.error(
                        f"{operation_name} failed after {attempt + 1} attempts: {e}"
                    )
                    break

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{operation_name} failed (attempt {attempt + 1}/{self.max_attempts}): {e}. "
                    f"Retrying in {delay:.0f}s..."
                )

                if cancel_token is not None:
                    if cancel_token.wait(delay):
                        cancel_token.raise_if_cancelled(operation_name)
                else:
                    sleep(delay)

        raise NetworkError(
            f"{operation_name} failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
            cause=repr(last_error),
        ) from last_error
