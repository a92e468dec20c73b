"""
Retry Manager for the domain lifecycle system.

Retries transient provider failures (timeouts, 5xx, rate limiting, dropped
connections) with exponential backoff. Client errors and "already exists"
style answers are never retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .enums import ProviderErrorCode
from .exceptions import ExternalProviderError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """
    Manages retry logic with exponential backoff.

    delay(n) = base_delay * 2^n, capped at max_delay.
    """

    TRANSIENT_ERROR_CODES = {
        ProviderErrorCode.TIMEOUT.value,
        ProviderErrorCode.SERVER_ERROR.value,
        ProviderErrorCode.RATE_LIMITED.value,
        ProviderErrorCode.NETWORK_ERROR.value,
    }

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries, delays, and retryable errors
            sleep: Awaitable used between attempts (replaced in tests)
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def is_retryable_error(self, error_code) -> bool:
        """
        Check if an error code indicates a transient error.

        Args:
            error_code: String or ProviderErrorCode
        """
        code = error_code.value if hasattr(error_code, "value") else str(error_code)
        if code in self._config.retryable_errors:
            return True
        return code in self.TRANSIENT_ERROR_CODES

    def is_retryable_exception(self, error: Exception) -> bool:
        """Provider errors decide for themselves; anything else is final."""
        if isinstance(error, ExternalProviderError):
            return error.retryable or self.is_retryable_error(error.code)
        return False

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Optional predicate for exceptions. Defaults to
                is_retryable_exception.

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        check = is_retryable or self.is_retryable_exception
        last_error: Optional[Exception] = None
        attempts = 0

        # Total attempts = 1 initial + max_retries
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(success=True, result=result, attempts=attempts + 1, last_error=None)
            except Exception as e:
                last_error = e
                attempts += 1

                if not check(e) or attempts >= max_attempts:
                    break

                await self._sleep(self._calculate_delay(attempts - 1))

        return RetryResult(success=False, result=None, attempts=attempts, last_error=last_error)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute with retry and re-raise the last error on failure.

        Raises:
            Exception: whatever the final attempt raised
        """
        outcome = await self.execute_with_retry(operation)
        if not outcome.success:
            assert outcome.last_error is not None
            raise outcome.last_error
        return outcome.result
