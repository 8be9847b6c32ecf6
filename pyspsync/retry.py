"""Bounded retry with exponential backoff and ``Retry-After`` support.

Every remote call made by PySpSync goes through a :class:`RetryExecutor`.
The executor only decides *whether* and *when* to retry; classifying a
response into an error type is the job of the transport layer
(:mod:`pyspsync.api`).
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import httpx

from .config import Config, config
from .exceptions import NetworkError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]

DOWNLOAD_RETRYABLE_STATUSES: frozenset[int] = frozenset(
    {429, 502, 503, 504, 520, 521, 522, 523, 524}
)
UPLOAD_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
PUBLISH_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

# Statuses the transport reports as transient, whatever the call site
TRANSIENT_STATUSES: frozenset[int] = (
    DOWNLOAD_RETRYABLE_STATUSES | UPLOAD_RETRYABLE_STATUSES | PUBLISH_RETRYABLE_STATUSES
)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry one kind of operation."""

    max_retries: int
    """Retries after the first attempt (total attempts = max_retries + 1)"""

    base_delay_ms: int
    """Backoff base; attempt ``n`` waits ``base_delay_ms * 2**n``"""

    retryable_statuses: frozenset[int]
    """HTTP statuses worth retrying for this kind of operation"""

    label: str = "operation"
    """Name used in log messages (e.g. "Upload")"""

    def backoff_ms(self, attempt: int) -> int:
        """Exponential backoff delay for a 0-based attempt number."""
        return self.base_delay_ms * (2**attempt)


def upload_policy(cfg: Config = config) -> RetryPolicy:
    """Policy for Graph upload and folder operations."""
    return RetryPolicy(
        max_retries=cfg.upload_max_retries,
        base_delay_ms=cfg.upload_base_delay_ms,
        retryable_statuses=UPLOAD_RETRYABLE_STATUSES,
        label="Upload",
    )


def download_policy(cfg: Config = config) -> RetryPolicy:
    """Policy for downloads from CDN-fronted URLs."""
    return RetryPolicy(
        max_retries=cfg.download_max_retries,
        base_delay_ms=cfg.download_base_delay_ms,
        retryable_statuses=DOWNLOAD_RETRYABLE_STATUSES,
        label="Download",
    )


def publish_policy(cfg: Config = config) -> RetryPolicy:
    """Policy for preview/publish style HTTP calls."""
    return RetryPolicy(
        max_retries=cfg.publish_max_retries,
        base_delay_ms=cfg.publish_base_delay_ms,
        retryable_statuses=PUBLISH_RETRYABLE_STATUSES,
        label="HTTP",
    )


def get_retry_after_delay(
    headers: Mapping[str, str], now: Optional[float] = None
) -> Optional[int]:
    """Read the ``Retry-After`` header as a delay in milliseconds.

    The header may hold a number of seconds or an HTTP-date. A date in the
    past, a non-positive or non-finite value, or anything unparseable
    counts as absent.

    Args:
        headers: Response headers (case-insensitive mapping)
        now: Current Unix time, for tests (defaults to ``time.time()``)

    Returns:
        Delay in milliseconds, or None if there is no usable hint

    Examples:
        >>> get_retry_after_delay({"Retry-After": "5"})
        5000
        >>> get_retry_after_delay({"Retry-After": "soon"}) is None
        True
    """
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None

    try:
        seconds = float(retry_after)
    except ValueError:
        seconds = None

    if seconds is not None:
        # Non-finite hints such as inf or nan count as absent
        if not math.isfinite(seconds * 1000):
            return None
        millis = round(seconds * 1000)
    else:
        try:
            retry_at = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError):
            return None
        if retry_at is None:
            return None
        current = time.time() if now is None else now
        millis = max(0, round((retry_at.timestamp() - current) * 1000))

    return millis if millis > 0 else None


class RetryExecutor:
    """Runs an async operation with bounded retries.

    The operation is attempted up to ``policy.max_retries + 1`` times. A
    failure is retried only if it is a network error or a
    :class:`TransientError` whose status is in the policy's retryable set;
    every other exception propagates immediately. When all attempts fail,
    the last exception is re-raised unchanged.

    Examples:
        >>> executor = RetryExecutor(upload_policy())
        >>> item = await executor.run(lambda: client.get_item(...), "get item")
    """

    def __init__(self, policy: RetryPolicy, sleep: SleepFunc = asyncio.sleep):
        """Initialize the executor.

        Args:
            policy: Retry budget, backoff base and retryable statuses
            sleep: Coroutine used to wait between attempts (seconds)
        """
        self.policy = policy
        self._sleep = sleep

    def is_retryable(self, error: BaseException) -> bool:
        """Check whether a failure is worth another attempt."""
        if isinstance(error, (NetworkError, httpx.TransportError)):
            return True
        if isinstance(error, TransientError):
            return error.status_code in self.policy.retryable_statuses
        return False

    def compute_delay_ms(self, error: BaseException, attempt: int) -> tuple[int, str]:
        """Pick the wait before the next attempt.

        Returns:
            Tuple of (delay in milliseconds, description of where it came from)
        """
        retry_after_ms = getattr(error, "retry_after_ms", None)
        if retry_after_ms is not None and retry_after_ms > 0:
            return retry_after_ms, "Retry-After header"
        return self.policy.backoff_ms(attempt), "exponential backoff"

    async def run(self, operation: Callable[[], Awaitable[T]], context: str) -> T:
        """Await ``operation()`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument coroutine function; called once per attempt
            context: Description for log messages (e.g. a file path)

        Returns:
            Whatever the successful attempt returned

        Raises:
            Exception: The last error, unchanged, when retries are exhausted or
                the error is not retryable
        """
        label = self.policy.label
        total_attempts = self.policy.max_retries + 1

        for attempt in range(total_attempts):
            try:
                result = await operation()
            except Exception as error:
                if attempt >= self.policy.max_retries or not self.is_retryable(error):
                    raise
                delay_ms, source = self.compute_delay_ms(error, attempt)
                logger.info(
                    f"{label} operation failed for {context}. Retrying in "
                    f"{delay_ms}ms (attempt {attempt + 1}/{total_attempts}) "
                    f"using {source}: {error}"
                )
                await self._sleep(delay_ms / 1000)
                continue

            if attempt > 0:
                logger.info(
                    f"{label} operation succeeded on attempt {attempt + 1} "
                    f"for {context}"
                )
            return result

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{label} operation made no attempts for {context}")


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    context: str,
    policy: Optional[RetryPolicy] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Shortcut for ``RetryExecutor(policy).run(operation, context)``.

    Uses the upload policy when no policy is given.
    """
    executor = RetryExecutor(policy or upload_policy(), sleep=sleep)
    return await executor.run(operation, context)


async def retry_http_operation(
    operation: Callable[[], Awaitable[httpx.Response]],
    context: str,
    policy: Optional[RetryPolicy] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> httpx.Response:
    """Retry an HTTP call that reports failure through its response.

    Unlike :class:`RetryExecutor`, the operation returns a response instead
    of raising on error statuses. A successful response, or one whose
    status is not retryable, is returned immediately. When the budget runs
    out the last response is returned as is so the caller can inspect it.
    Transport errors are retried with plain backoff and re-raised after
    the last attempt.

    Args:
        operation: Zero-argument coroutine function returning a response
        context: Description for log messages (e.g. the publish path)
        policy: Retry policy (defaults to the publish policy)
        sleep: Coroutine used to wait between attempts (seconds)

    Returns:
        The final response
    """
    policy = policy or publish_policy()
    total_attempts = policy.max_retries + 1

    for attempt in range(total_attempts):
        try:
            response = await operation()
        except httpx.TransportError as error:
            if attempt >= policy.max_retries:
                raise
            delay_ms = policy.backoff_ms(attempt)
            logger.info(
                f"{policy.label} operation threw error for {context}. Retrying in "
                f"{delay_ms}ms (attempt {attempt + 1}/{total_attempts}): {error}"
            )
            await sleep(delay_ms / 1000)
            continue

        if response.is_success or response.status_code not in policy.retryable_statuses:
            if attempt > 0:
                if response.is_success:
                    logger.info(
                        f"{policy.label} operation succeeded on attempt "
                        f"{attempt + 1} for {context}"
                    )
                else:
                    logger.info(
                        f"{policy.label} operation was not retried on attempt "
                        f"{attempt + 1} for {context}"
                    )
            return response

        if attempt >= policy.max_retries:
            logger.warning(
                f"{policy.label} operation failed after {total_attempts} attempts "
                f"for {context}: {response.status_code} {response.reason_phrase}"
            )
            return response

        delay_ms = get_retry_after_delay(response.headers) or policy.backoff_ms(attempt)
        logger.info(
            f"{policy.label} operation failed with {response.status_code} for "
            f"{context}. Retrying in {delay_ms}ms "
            f"(attempt {attempt + 1}/{total_attempts})"
        )
        await sleep(delay_ms / 1000)

    raise RuntimeError(f"{policy.label} operation made no attempts for {context}")
