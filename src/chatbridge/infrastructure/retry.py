"""Retry policy with exponential backoff for outbound platform calls."""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

import aiohttp
from structlog.stdlib import BoundLogger

from chatbridge.config.models import RetryConfig

T = TypeVar("T")

TRANSIENT_HTTP_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

JITTER_RATIO = 0.25


class TransientHTTPError(Exception):
    """Raised by adapters when a platform answered with a retryable status."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"HTTP {status}")
        self.status = status


class PlatformHTTPError(Exception):
    """Raised by adapters when a platform answered with an error status."""

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message or f"HTTP {status}")
        self.status = status


def is_transient_status(status: int) -> bool:
    """Return True if an HTTP status is worth retrying."""
    return status in TRANSIENT_HTTP_STATUSES


def is_transient_exception(exc: BaseException) -> bool:
    """Classify an exception as transient.

    Timeouts, socket and I/O failures are transient, as are HTTP errors whose
    status is one of 408, 429, 500, 502, 503 or 504. Cancellation never is.

    Args:
        exc: The exception raised by an attempt.

    Returns:
        True if the attempt should be retried.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, aiohttp.ClientResponseError):
        return is_transient_status(exc.status)
    if isinstance(exc, (TransientHTTPError, PlatformHTTPError)):
        return is_transient_status(exc.status)
    return isinstance(
        exc, (TimeoutError, OSError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)
    )


class RetryOutcome(str, Enum):
    """How a retried operation ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryOptions:
    """Backoff parameters.

    Attributes:
        max_retries: Retries after the first attempt.
        initial_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for a single delay in seconds.
        backoff_multiplier: Growth factor between consecutive delays.
        add_jitter: Whether to spread delays by up to 25% either way.
        attempt_timeout: Upper bound in seconds for one attempt, None for no bound.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    add_jitter: bool = True
    attempt_timeout: float | None = None

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryOptions":
        return cls(
            max_retries=config.max_retries,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
            backoff_multiplier=config.backoff_multiplier,
            add_jitter=config.add_jitter,
            attempt_timeout=config.attempt_timeout,
        )


@dataclass
class RetryResult(Generic[T]):
    """Result of a retried operation.

    Attributes:
        outcome: SUCCEEDED when a satisfactory value was produced, FAILED when
            an attempt raised a non-transient exception or transient
            exceptions outlasted the retries, EXHAUSTED when every attempt
            returned a value the caller asked to retry on.
        value: The last value returned by the operation, if any.
        attempts: Number of attempts made.
        total_duration: Wall-clock seconds spent, delays included.
        last_exception: The exception that ended the last failed attempt.
    """

    outcome: RetryOutcome
    value: T | None = None
    attempts: int = 0
    total_duration: float = 0.0
    last_exception: BaseException | None = None

    @property
    def success(self) -> bool:
        return self.outcome == RetryOutcome.SUCCEEDED


class RetryPolicy:
    """Runs async operations with bounded retries and exponential backoff.

    Example:
        >>> policy = RetryPolicy(logger, RetryOptions(max_retries=2))
        >>> result = await policy.execute_http(
        ...     lambda: adapter.post_message(mapping, text),
        ...     operation_name="groupme.post_message",
        ... )
        >>> result.success
        True
    """

    def __init__(
        self,
        logger: BoundLogger,
        options: RetryOptions | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the policy.

        Args:
            logger: Logger for retry diagnostics.
            options: Default options, used when execute() gets none.
            sleep: Coroutine used for backoff delays.
            rng: Random source for jitter.
        """
        self._logger = logger
        self._options = options or RetryOptions()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def options(self) -> RetryOptions:
        return self._options

    def compute_delay(self, retry_number: int, options: RetryOptions | None = None) -> float:
        """Compute the delay before a retry.

        Args:
            retry_number: 1 for the first retry, 2 for the second, and so on.
            options: Backoff parameters, defaulting to the policy's own.

        Returns:
            Delay in seconds, never negative and never above max_delay.
        """
        opts = options or self._options
        delay = opts.initial_delay * opts.backoff_multiplier ** (retry_number - 1)
        delay = min(delay, opts.max_delay)
        if opts.add_jitter and delay > 0:
            delay += delay * self._rng.uniform(-JITTER_RATIO, JITTER_RATIO)
            delay = min(max(delay, 0.0), opts.max_delay)
        return delay

    async def _attempt(
        self, operation: Callable[[], Awaitable[T]], opts: RetryOptions
    ) -> T:
        if opts.attempt_timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=opts.attempt_timeout)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
        should_retry_on_result: Callable[[T], bool] | None = None,
        operation_name: str = "operation",
    ) -> RetryResult[T]:
        """Run an operation, retrying transient failures.

        Makes up to max_retries + 1 attempts. Cancellation is never retried:
        it propagates whether it arrives during an attempt or a delay.

        Args:
            operation: Zero-argument factory producing the awaitable to run.
            options: Backoff parameters, defaulting to the policy's own.
            should_retry_on_result: Predicate marking a returned value as
                unsatisfactory.
            operation_name: Name used in log lines.

        Returns:
            The result describing how the operation ended.
        """
        opts = options or self._options
        max_attempts = opts.max_retries + 1
        started = time.monotonic()
        attempt = 0
        last_value: T | None = None
        last_exception: BaseException | None = None

        while attempt < max_attempts:
            attempt += 1
            try:
                value = await self._attempt(operation, opts)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_exception = e
                if not is_transient_exception(e):
                    self._logger.warning(
                        "Operation failed with non-transient error",
                        operation=operation_name,
                        attempt=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return RetryResult(
                        outcome=RetryOutcome.FAILED,
                        attempts=attempt,
                        total_duration=time.monotonic() - started,
                        last_exception=e,
                    )
                if attempt >= max_attempts:
                    break
                delay = self.compute_delay(attempt, opts)
                self._logger.info(
                    "Transient failure, retrying",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay=round(delay, 3),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)
                continue

            last_value = value
            last_exception = None
            if should_retry_on_result is None or not should_retry_on_result(value):
                if attempt > 1:
                    self._logger.info(
                        "Operation succeeded after retry",
                        operation=operation_name,
                        attempts=attempt,
                    )
                return RetryResult(
                    outcome=RetryOutcome.SUCCEEDED,
                    value=value,
                    attempts=attempt,
                    total_duration=time.monotonic() - started,
                )
            if attempt >= max_attempts:
                break
            delay = self.compute_delay(attempt, opts)
            self._logger.info(
                "Unsatisfactory result, retrying",
                operation=operation_name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=round(delay, 3),
            )
            await self._sleep(delay)

        duration = time.monotonic() - started
        if last_exception is not None:
            self._logger.error(
                "Operation failed after all retries",
                operation=operation_name,
                attempts=attempt,
                error=str(last_exception),
                error_type=type(last_exception).__name__,
            )
            return RetryResult(
                outcome=RetryOutcome.FAILED,
                attempts=attempt,
                total_duration=duration,
                last_exception=last_exception,
            )

        self._logger.warning(
            "Retries exhausted with unsatisfactory result",
            operation=operation_name,
            attempts=attempt,
        )
        return RetryResult(
            outcome=RetryOutcome.EXHAUSTED,
            value=last_value,
            attempts=attempt,
            total_duration=duration,
        )

    async def execute_http(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
        operation_name: str = "http_request",
    ) -> RetryResult[T]:
        """Run an HTTP operation, retrying on transient response statuses.

        The operation returns a response object with a ``status`` attribute;
        a 408, 429 or 5xx gateway status is treated as unsatisfactory.

        Args:
            operation: Zero-argument factory producing the response awaitable.
            options: Backoff parameters, defaulting to the policy's own.
            operation_name: Name used in log lines.

        Returns:
            The result describing how the request ended.
        """
        return await self.execute(
            operation,
            options=options,
            should_retry_on_result=lambda response: is_transient_status(
                getattr(response, "status", 0)
            ),
            operation_name=operation_name,
        )
