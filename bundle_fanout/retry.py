"""
Per-endpoint retry sequence for bundle submission.

Each relay endpoint gets its own independent sequence: a request that is
rate limited (HTTP 429) is retried with capped exponential backoff plus
random jitter, anything else that goes wrong ends the sequence at once.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from .endpoints import Endpoint
from .errors import (
    EndpointError,
    RateLimitedError,
    RelayHTTPError,
    RelayRPCError,
    RelayTransportError,
)

logger = logging.getLogger(__name__)

RATE_LIMITED_STATUS = 429

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 1.0     # seconds
    max_delay: float = 20.0     # ceiling before jitter
    jitter: float = 0.5         # uniform [0, jitter) added to every delay
    request_timeout: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the given zero-based attempt."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        return delay + random.random() * self.jitter

@dataclass
class EndpointOutcome:
    endpoint: Endpoint
    attempts: int
    response: Optional[dict[str, Any]] = None
    error: Optional[EndpointError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def bundle_id(self) -> Optional[str]:
        # The relay assigns an id at "result"; it is optional metadata
        if not self.response:
            return None
        result = self.response.get("result")
        return result if isinstance(result, str) else None

    @property
    def reason(self) -> Optional[str]:
        return None if self.error is None else self.error.reason

async def _post_once(
    session: aiohttp.ClientSession,
    endpoint: Endpoint,
    payload: dict[str, Any],
    timeout: aiohttp.ClientTimeout,
) -> dict[str, Any]:
    try:
        async with session.post(endpoint.url, json=payload, timeout=timeout) as response:
            if response.status == RATE_LIMITED_STATUS:
                raise RateLimitedError(endpoint.url, "rate limited (HTTP 429)")
            if not 200 <= response.status < 300:
                raise RelayHTTPError(endpoint.url, response.status, await response.text())
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise RelayTransportError(endpoint.url, str(e) or type(e).__name__) from e

    if not isinstance(body, dict):
        return {}
    if body.get("error"):
        error = body["error"]
        message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
        raise RelayRPCError(endpoint.url, f"bundle rejected: {message}")
    return body

async def send_with_retry(
    session: aiohttp.ClientSession,
    endpoint: Endpoint,
    payload: dict[str, Any],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> EndpointOutcome:
    """
    Submit one payload to one endpoint until it succeeds or gives up.

    Only HTTP 429 is retried. Any other non-2xx status, a transport error,
    or a 2xx body that carries a JSON-RPC "error" member ends the sequence
    at once as a failure.

    Args:
        session: Shared HTTP session
        endpoint: Relay endpoint to post to
        payload: JSON-RPC request body, reused unchanged for every attempt
        policy: Attempt cap, backoff and per-request timeout
        sleep: Coroutine used for backoff waits

    Returns:
        The terminal outcome for this endpoint. Endpoint errors are captured
        in the outcome, never raised.
    """
    policy = policy or RetryPolicy()
    timeout = aiohttp.ClientTimeout(total=policy.request_timeout)

    for attempt in range(policy.max_attempts):
        logger.debug("%s: attempt %d/%d", endpoint.code, attempt + 1, policy.max_attempts)
        try:
            response = await _post_once(session, endpoint, payload, timeout)
        except RateLimitedError as e:
            if attempt == policy.max_attempts - 1:
                logger.warning(
                    "%s: still rate limited after %d attempts, giving up",
                    endpoint.code, policy.max_attempts,
                )
                return EndpointOutcome(endpoint, attempt + 1, error=e)
            delay = policy.backoff(attempt)
            logger.warning(
                "%s: rate limited, retrying in %.2fs (attempt %d/%d)",
                endpoint.code, delay, attempt + 1, policy.max_attempts,
            )
            await sleep(delay)
        except EndpointError as e:
            logger.warning("%s: submission failed (%s): %s", endpoint.code, e.reason, e)
            return EndpointOutcome(endpoint, attempt + 1, error=e)
        else:
            logger.info("%s: bundle accepted on attempt %d", endpoint.code, attempt + 1)
            return EndpointOutcome(endpoint, attempt + 1, response=response)
