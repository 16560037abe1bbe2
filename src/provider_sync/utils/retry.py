"""Backoff for transient provider failures during connectivity checks and listing."""

import random
import time
from typing import Callable, TypeVar

from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from provider_sync.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class RetryStrategy:
    """Retries throttling, timeouts and unreachable endpoints with exponential backoff.

    Anything else (bad credentials, missing permissions, cancellation) is
    raised on the first attempt.
    """

    RETRYABLE_ERROR_CODES = {
        'RequestLimitExceeded',
        'Throttling',
        'ThrottlingException',
        'RequestThrottled',
        'RequestTimeout',
        'ServiceUnavailable',
        'Unavailable',
        'InternalError',
        'InternalFailure',
    }

    RETRYABLE_EXCEPTIONS = (
        ConnectionError,
        TimeoutError,
        EndpointConnectionError,
        ReadTimeoutError,
    )

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_retries: Attempts made after the first one
            base_delay: Seconds to wait before the first retry; doubled per retry
            max_delay: Upper bound on a single wait
            jitter: Add up to 10% random extra wait
            sleep: Wait function, replaceable in tests
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.sleep = sleep

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Check whether a failed attempt (0-indexed) should be tried again."""
        if attempt >= self.max_retries:
            return False

        if isinstance(error, ClientError):
            return error.response.get('Error', {}).get('Code', '') in self.RETRYABLE_ERROR_CODES

        return isinstance(error, self.RETRYABLE_EXCEPTIONS)

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)
        return delay

    def execute_with_retry(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Call func until it succeeds or fails with a non-retryable error.

        Raises:
            The last error once retries are exhausted
        """
        attempt = 0
        while True:
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Provider call failed ({self._describe(e)}), "
                    f"retry {attempt + 1}/{self.max_retries} in {delay:.2f}s"
                )
                self.sleep(delay)
                attempt += 1
                continue

            if attempt:
                logger.info(f"Provider call succeeded after {attempt} retries")
            return result

    def _describe(self, error: Exception) -> str:
        if isinstance(error, ClientError):
            details = error.response.get('Error', {})
            return f"{details.get('Code', 'Unknown')}: {details.get('Message', error)}"
        return f"{type(error).__name__}: {error}"
