"""
Exponential backoff with jitter for transient provider errors.

Only throttling, server-side and network errors are retried here. Capacity
and quota rejections are left to the capacity guard, which retries them with
a smaller request instead of the same one.
"""

import asyncio
import inspect
import random
import logging
from typing import Callable, Any

from botocore.exceptions import ClientError


logger = logging.getLogger(__name__)


THROTTLING_CODES = frozenset({'ThrottlingException', 'TooManyRequestsException'})
TRANSIENT_CODES = frozenset({
    'ServiceUnavailableException',
    'InternalServerException',
    'ModelTimeoutException',
    'ModelNotReadyException',
})


def error_code(exception: ClientError) -> str:
    return exception.response.get('Error', {}).get('Code', '')


def http_status(exception: ClientError) -> int:
    return exception.response.get('ResponseMetadata', {}).get('HTTPStatusCode', 0)


class BackoffHandler:
    """
    Retries an async call with exponentially growing, jittered delays.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        max_retries: int = 5,
        backoff_factor: float = 2.0,
        jitter: bool = True
    ):
        """
        Initialize the backoff handler.

        Args:
            base_delay: Initial delay in seconds
            max_delay: Maximum delay in seconds
            max_retries: Maximum number of retry attempts
            backoff_factor: Multiplier for exponential backoff
            jitter: Whether to add random jitter to delays
        """
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    def should_retry(self, exception: Exception) -> bool:
        """
        Determine if an exception is transient.

        Args:
            exception: The exception that occurred

        Returns:
            True for throttling, 5xx and network errors
        """
        if isinstance(exception, ClientError):
            code = error_code(exception)
            if code in THROTTLING_CODES or code in TRANSIENT_CODES:
                return True
            return 500 <= http_status(exception) < 600

        return isinstance(exception, (ConnectionError, TimeoutError, asyncio.TimeoutError))

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the delay for a given retry attempt.

        Args:
            attempt: The current attempt number (0-based)

        Returns:
            Delay in seconds, at most max_delay plus 25% jitter
        """
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)

        if self.jitter:
            delay += delay * 0.25 * random.random()

        return delay

    async def execute_with_backoff(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute a function, retrying transient errors.

        Args:
            func: The function to execute, sync or async
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            The result of the function call

        Raises:
            The first non-transient exception, or the last transient one
            once retries are exhausted
        """
        attempt = 0
        while True:
            try:
                if inspect.iscoroutinefunction(func):
                    result = await func(*args, **kwargs)
                else:
                    result = func(*args, **kwargs)

                if attempt > 0:
                    logger.info(f"Call succeeded after {attempt} retries")
                return result

            except Exception as e:
                if not self.should_retry(e):
                    raise

                if attempt >= self.max_retries:
                    logger.error(f"Max retries ({self.max_retries}) exceeded. Last error: {e}")
                    raise

                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1} failed with {type(e).__name__}: {e}. "
                    f"Retrying in {delay:.2f} seconds..."
                )
                await asyncio.sleep(delay)
                attempt += 1

    def get_error_category(self, exception: Exception) -> str:
        """
        Categorize an exception for logging.

        Args:
            exception: The exception to categorize

        Returns:
            One of throttling, server_error, client_error, aws_error,
            network_error or unknown_error
        """
        if isinstance(exception, ClientError):
            status = http_status(exception)
            if error_code(exception) in THROTTLING_CODES:
                return 'throttling'
            if 500 <= status < 600:
                return 'server_error'
            if 400 <= status < 500:
                return 'client_error'
            return 'aws_error'

        if isinstance(exception, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
            return 'network_error'

        return 'unknown_error'
