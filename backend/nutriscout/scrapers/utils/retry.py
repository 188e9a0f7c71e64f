"""Retry utilities with exponential backoff for outbound HTTP requests."""

from tenacity import (
    RetryCallState,
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)
import httpx
import structlog


logger = structlog.get_logger(__name__)


def is_transient_http_error(exc: BaseException) -> bool:
    """True for network errors, timeouts, 429 and 5xx responses."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TransportError, httpx.TimeoutException))


def log_retry(retry_state: RetryCallState) -> None:
    """Log the failed attempt before tenacity sleeps."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "http_retry_scheduled",
        function=getattr(retry_state.fn, "__qualname__", None),
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


# Reusable retry decorator for HTTP requests (httpx)
http_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception(is_transient_http_error),
    before_sleep=log_retry,
    reraise=True,
)
