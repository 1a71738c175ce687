"""
criteria_cache.py — TTL cache over the enabled criterion definitions.

Criteria change only through administrative configuration, yet every map
load asks for them. One CriteriaCache lives on `app.state` (created in the
lifespan) and is injected into routes with the get_criteria_cache
dependency; ingestion and CSV uploads call invalidate().
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Optional

from fastapi import Request

from terrimap.core.database import CRITERIA
from terrimap.models.criteria import Criterion

logger = logging.getLogger(__name__)

CriteriaLoader = Callable[[], Awaitable[list[Criterion]]]


class CriteriaCache:
    def __init__(
        self,
        loader: CriteriaLoader,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._criteria: Optional[list[Criterion]] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return self._criteria is not None and self._clock() - self._loaded_at < self._ttl

    async def get(self) -> list[Criterion]:
        """Enabled criteria in display order, reloaded once the TTL has elapsed."""
        if self._fresh():
            return self._criteria
        async with self._lock:
            if not self._fresh():   # another waiter may have reloaded
                self._criteria = await self._loader()
                self._loaded_at = self._clock()
                logger.debug("Criteria cache reloaded: %d criteria", len(self._criteria))
        return self._criteria

    def invalidate(self) -> None:
        self._criteria = None


def mongo_criteria_loader(db) -> CriteriaLoader:
    """Loader reading enabled criteria from MongoDB."""

    async def load() -> list[Criterion]:
        cursor = db[CRITERIA].find({"enabled": {"$ne": False}}).sort("display_order", 1)
        return [Criterion.from_doc(doc) async for doc in cursor]

    return load


def get_criteria_cache(request: Request) -> Optional[CriteriaCache]:
    """FastAPI dependency — the app's cache, or None when the DB is down."""
    return getattr(request.app.state, "criteria_cache", None)
