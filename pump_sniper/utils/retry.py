"""
Retry policy for flaky RPC and HTTP calls.

Retries transient failures (rate limits, timeouts, gateway errors) with
exponential backoff and reports the failing endpoint to the endpoint pool.
Any other error propagates on the first attempt.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from ..exceptions import RetryExhausted, RpcException

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_STATUS_CODES = {410, 429, 502, 503}

DISABLED_MARKER = "call or parameters have been disabled"

# JSON-RPC error codes that fail the same way on every endpoint
FATAL_RPC_CODES = {
    -32600,  # invalid request
    -32601,  # method not found
    -32602,  # invalid params
    -32004,  # block not available
    -32007,  # slot skipped
    -32009,  # slot missing in long-term storage
}

# Node behind or rate limited
RETRYABLE_RPC_CODES = {-32005, 429}

# Status codes only count as whole words; signatures and pubkeys in
# error text contain arbitrary digit runs.
RETRYABLE_PATTERN = re.compile(
    r"\b(?:410|429|502|503)\b"
    r"|too many requests"
    r"|\brate[ -]?limit"
    r"|\btime ?out\b|\btimed out\b"
    r"|" + DISABLED_MARKER +
    r"|bad gateway"
    r"|service unavailable",
    re.IGNORECASE,
)


def is_retryable_message(message: str) -> bool:
    return RETRYABLE_PATTERN.search(message or "") is not None


def is_retryable_rpc_error(code: Optional[int], message: str) -> bool:
    """
    Classify a JSON-RPC error object.

    Known codes decide first. Message markers are only consulted for codes
    outside both tables, except for the disabled-method marker which some
    providers send under -32601.
    """
    if DISABLED_MARKER in (message or "").lower():
        return True
    if code in FATAL_RPC_CODES:
        return False
    if code in RETRYABLE_RPC_CODES:
        return True
    return is_retryable_message(message)


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an error as transient (worth retrying) or fatal.

    Typed signals win over message text: an ``RpcException`` with an
    explicit ``retryable`` flag, HTTP status codes and httpx timeout or
    connect errors. Everything else falls back to matching the message.
    """
    if isinstance(error, RpcException):
        if error.retryable is not None:
            return error.retryable
        if error.status is not None:
            return error.status in RETRYABLE_STATUS_CODES
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (httpx.TimeoutException, httpx.ConnectError, asyncio.TimeoutError)):
        return True
    return is_retryable_message(str(error))


@dataclass(frozen=True)
class RetryOptions:
    """Budget and backoff for one guarded call."""
    max_retries: int = 5
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    description: str = "RPC call"
    endpoint: Optional[str] = None

    def with_overrides(self, **overrides) -> "RetryOptions":
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


class RetryPolicy:
    """
    Wraps an async operation with bounded, exponentially backed-off retries.

    Usage:
        policy = RetryPolicy(pool)
        slot = await policy.guard(lambda: rpc.get_slot(), description="getSlot")
    """

    def __init__(
        self,
        pool=None,
        defaults: Optional[RetryOptions] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.pool = pool
        self.defaults = defaults or RetryOptions()
        self._sleep = sleep

    async def guard(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        options: Optional[RetryOptions] = None,
        description: Optional[str] = None,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
        backoff_factor: Optional[float] = None,
        endpoint: Optional[str] = None
    ) -> T:
        opts = (options or self.defaults).with_overrides(
            description=description,
            max_retries=max_retries,
            initial_delay=initial_delay,
            backoff_factor=backoff_factor,
            endpoint=endpoint
        )

        retries_left = opts.max_retries
        current_delay = opts.initial_delay
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if not is_retryable_error(e):
                    logger.debug(f"{opts.description} failed with non-retryable error: {e}")
                    raise

                if retries_left <= 0:
                    logger.warning(
                        f"{opts.description} failed after {attempt} attempts",
                        extra={"extra_data": {"attempts": attempt, "error": str(e)}}
                    )
                    raise RetryExhausted(opts.description, attempt, e) from e

                failed_endpoint = getattr(e, "endpoint", None) or opts.endpoint
                if failed_endpoint and self.pool is not None:
                    self.pool.mark_failed(failed_endpoint)

                logger.debug(
                    f"{opts.description} failed, retrying in {current_delay:.2f}s "
                    f"({retries_left} retries left): {e}"
                )
                await self._sleep(current_delay)
                retries_left -= 1
                current_delay *= opts.backoff_factor
