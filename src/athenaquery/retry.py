"""Bounded retry for transient status and result lookups.

Lookups are single-shot by default. With ``max_retries > 0`` a
QueryLookupError whose cause looks transient (throttling, 5xx, network)
is retried with exponential backoff; anything else propagates at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from athenaquery.errors import QueryLookupError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERROR_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "InternalServerException",
    "ServiceUnavailableException",
    "RequestLimitExceeded",
}

TRANSIENT_ERROR_PATTERNS = (
    "throttl",
    "rate exceeded",
    "too many requests",
    "service unavailable",
    "temporarily unavailable",
    "connection reset",
    "connection refused",
    "could not connect",
    "timed out",
    "timeout",
)


def _error_code(exc: BaseException) -> Optional[str]:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        return (response.get("Error") or {}).get("Code")
    return None


def is_transient_error(exc: BaseException) -> bool:
    """Return True when an error (or its cause) looks safe to retry."""
    current: Optional[BaseException] = exc
    while current is not None:
        if isinstance(current, (ConnectionError, TimeoutError)):
            return True
        if _error_code(current) in TRANSIENT_ERROR_CODES:
            return True
        message = str(current).lower()
        if any(pattern in message for pattern in TRANSIENT_ERROR_PATTERNS):
            return True
        current = current.__cause__
    return False


async def retry_lookup(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    max_retries: int = 0,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run a lookup, retrying transient QueryLookupErrors with backoff.

    Args:
        operation: Async callable performing one lookup.
        operation_name: Name used in log lines.
        max_retries: Extra attempts after the first (0 disables retry).
        base_delay: Delay before the first retry, doubled each time.
        max_delay: Upper bound for a single delay.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        The operation's result.

    Raises:
        QueryLookupError: The last error, or a non-transient one at once.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except QueryLookupError as exc:
            if attempt >= max_retries or not is_transient_error(exc):
                raise
            delay = min(base_delay * (2**attempt), max_delay)
            attempt += 1
            logger.warning(
                "Transient failure in %s (attempt %d/%d), retrying in %.2fs: %s",
                operation_name,
                attempt,
                max_retries,
                delay,
                exc,
            )
            await sleep(delay)
