"""
Retry configuration for surface API calls.

Centralized tenacity policy shared by every connector:
- Exponential backoff, 1s minimum, 60s maximum
- 3 attempts in total
- Retry on rate limits (429), server errors (5xx), connection failures
  and timeouts
- Fail fast on client errors (400, 401, 403, 404): the connector raises
  ConnectorError, which the policy does not retry

Example:
    >>> @create_retry_decorator()
    ... async def call_surface():
    ...     if response.status_code in NO_RETRY_STATUS_CODES:
    ...         raise ConnectorError("Permanent error")
    ...     response.raise_for_status()
"""

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Total attempts = 1 initial + 2 retries
MAX_ATTEMPTS = 3

MIN_WAIT_SECONDS = 1

MAX_WAIT_SECONDS = 60

# 429: rate limit, 5xx: transient server failure
RETRY_STATUS_CODES = frozenset([429, 500, 502, 503, 504, 529])

# Retrying these cannot succeed (bad request, bad key, no access, bad model)
NO_RETRY_STATUS_CODES = frozenset([400, 401, 403, 404])

# Per attempt. Structured answers with citations can take a while to generate.
REQUEST_TIMEOUT = 120.0


# ============================================================================
# RETRY DECORATOR FACTORY
# ============================================================================


def create_retry_decorator():
    """
    Create the tenacity retry decorator for surface API calls.

    Retries on httpx.HTTPStatusError, httpx.ConnectError and
    httpx.TimeoutException; everything else propagates immediately. The last
    exception is re-raised unchanged once attempts are exhausted.

    Returns:
        Retry decorator, usable on sync and async functions
    """
    return retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception_type(
            (
                httpx.HTTPStatusError,
                httpx.ConnectError,
                httpx.TimeoutException,
            )
        ),
        reraise=True,
    )
