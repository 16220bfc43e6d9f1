"""
HTTP helpers shared by the catalog fetchers and the image fetcher.

Network-class failures (timeouts, resets, DNS errors, 429/5xx) are retried
with exponential backoff; everything else propagates on the first attempt.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from catalog_enrichment.errors import CatalogFetchError, NetworkFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}


def is_network_error(error: BaseException) -> bool:
    """True for failures worth another attempt."""
    if isinstance(error, NetworkFetchError):
        return True
    if isinstance(error, CatalogFetchError):
        return False
    if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)):
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status in RETRYABLE_STATUSES
    return isinstance(error, ConnectionError)


def check_response(response: aiohttp.ClientResponse, source: str) -> None:
    """Raise NetworkFetchError for retryable statuses, CatalogFetchError for the rest."""
    if response.status < 400:
        return
    message = f"HTTP {response.status} from {response.url}"
    if response.status in RETRYABLE_STATUSES:
        raise NetworkFetchError(message, source=source, status_code=response.status)
    raise CatalogFetchError(message, source=source, status_code=response.status)


async def retry_with_backoff(operation: Callable[[], Awaitable[T]], max_attempts: int = 3,
                             initial_delay: float = 1.0, description: str = "request") -> T:
    """
    Run `operation`, retrying network-class errors.

    The delay before attempt n+1 is `initial_delay * 2 ** (n - 1)`. When the
    attempts are exhausted the last error is re-raised as a NetworkFetchError.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_network_error(e):
                raise
            last_error = e
            if attempt >= max_attempts:
                break
            delay = initial_delay * (2 ** (attempt - 1))
            logger.warning(f"⚠️ {description} failed ({e!r}), retrying in {delay}s (attempt {attempt}/{max_attempts})")
            await asyncio.sleep(delay)

    if isinstance(last_error, NetworkFetchError):
        raise last_error
    raise NetworkFetchError(
        f"{description} failed after {max_attempts} attempts: {last_error!r}",
        original_error=last_error,
    )


def client_timeout(total: float) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=total, connect=min(10, total))


async def read_json(response: aiohttp.ClientResponse) -> Any:
    """Decode a JSON body regardless of the declared content type."""
    return await response.json(content_type=None)
