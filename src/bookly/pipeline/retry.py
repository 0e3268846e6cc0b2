"""Exponential backoff around remote extraction for transient failures."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from anthropic import APITimeoutError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from bookly.models import ExtractionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters; delay before retry n is min(initial * 2**n, max)."""

    max_retries: int = 2
    initial_delay_ms: int = 1000
    max_delay_ms: int = 5000


@dataclass
class RetryOutcome:
    """Final state of a retried extraction. ``last_error`` is diagnostic only."""

    result: ExtractionResult | None
    attempts: int
    last_error: BaseException | None = None


def is_transient_error(error: BaseException) -> bool:
    """
    Return True for failures worth retrying: rate limits, quota and timeouts.

    A rate limit is an HTTP 429 status (``status_code`` or ``status``
    attribute) or a message mentioning "quota". Anything else is assumed to
    fail the same way again.
    """
    if isinstance(error, (APITimeoutError, TimeoutError)):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    return "quota" in str(error).lower()


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay_ms = round(retry_state.upcoming_sleep * 1000)
    logger.info(
        "Transient error (%s). Retrying in %dms... (attempt %d)",
        type(error).__name__ if error else "unknown",
        delay_ms,
        retry_state.attempt_number,
    )


async def extract_with_retry(
    extract: Callable[[], Awaitable[ExtractionResult]],
    config: RetryConfig = RetryConfig(),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome:
    """
    Run ``extract`` with exponential backoff on transient errors.

    Non-transient errors stop immediately. Exhausted retries and hard
    failures both come back as an outcome with ``result=None``; nothing is
    raised.

    Args:
        extract: Zero-argument coroutine function performing one attempt
        config: Backoff parameters
        sleep: Awaitable sleep taking seconds (injectable for tests)

    Returns:
        RetryOutcome with the result or the last error
    """
    attempts = 0
    retrying = AsyncRetrying(
        sleep=sleep,
        retry=retry_if_exception(is_transient_error),
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(
            multiplier=config.initial_delay_ms / 1000,
            max=config.max_delay_ms / 1000,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                result = await extract()
    except Exception as e:
        logger.error("Extraction failed after %d attempt(s): %s", attempts, e)
        return RetryOutcome(result=None, attempts=attempts, last_error=e)

    return RetryOutcome(result=result, attempts=attempts)
