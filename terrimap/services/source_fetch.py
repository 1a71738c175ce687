"""
source_fetch.py — GET with bounded retries for external open-data sources.

Open-data APIs throttle and occasionally time out. fetch_with_retry() makes
up to `max_retries` attempts; after failed attempt n (1-based) it waits

    2^n × rate_limited_backoff_seconds   on HTTP 429
    2^n × backoff_seconds                on any other HTTP error or network error

and raises SourceFetchError once the ceiling is reached. The error is fatal
to the criterion being ingested, never to the other criteria.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

import httpx

from terrimap.core.errors import SourceFetchError

logger = logging.getLogger(__name__)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    max_retries: int = 3,
    backoff_seconds: float = 0.5,
    rate_limited_backoff_seconds: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    params: Optional[dict] = None,
) -> httpx.Response:
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    status: Optional[int] = None
    reason = ""
    for attempt in range(1, max_retries + 1):
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            status, reason = None, str(exc) or type(exc).__name__
            delay = 2 ** attempt * backoff_seconds
        else:
            if response.is_success:
                return response
            status, reason = response.status_code, response.reason_phrase
            if status == 429:
                delay = 2 ** attempt * rate_limited_backoff_seconds
            else:
                delay = 2 ** attempt * backoff_seconds

        if attempt < max_retries:
            logger.warning(
                "Fetch %s failed (attempt %d/%d, %s), retrying in %.1fs",
                url, attempt, max_retries, status or reason, delay,
            )
            await sleep(delay)

    raise SourceFetchError(url, max_retries, status=status, reason=reason)
