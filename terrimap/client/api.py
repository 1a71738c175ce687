"""
api.py — Async HTTP client for the Terrimap API, used by the map client.

    async with GeoApiClient("http://localhost:8000") as api:
        registry = await api.fetch_criteria()
        regions = await api.fetch_geojson(LevelPath.REGIONS, criterion="temperature")

Errors are not swallowed: a failed request raises httpx.HTTPError and the
state machine decides what to keep on screen.
"""

import logging
from typing import Optional

import httpx

from terrimap.client.registry import CriteriaRegistry
from terrimap.models.geo import BoundingBox, LevelPath

logger = logging.getLogger(__name__)


class GeoApiClient:
    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "GeoApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def fetch_geojson(
        self,
        level: LevelPath,
        parent: Optional[str] = None,
        bbox: Optional[BoundingBox] = None,
        criterion: Optional[str] = None,
    ) -> dict:
        params = {}
        if parent:
            params["parent"] = parent
        if bbox is not None:
            params["bbox"] = f"{bbox.min_lng},{bbox.min_lat},{bbox.max_lng},{bbox.max_lat}"
        if criterion:
            params["criterion"] = criterion

        logger.debug("GET geo/%s %s", level.value, params)
        response = await self.http.get(f"/api/v1/geo/{level.value}", params=params)
        response.raise_for_status()
        return response.json()

    async def fetch_criteria(self) -> CriteriaRegistry:
        response = await self.http.get("/api/v1/criteria")
        response.raise_for_status()
        return CriteriaRegistry.from_payload(response.json())

    async def fetch_territory(self, code: str) -> dict:
        response = await self.http.get(f"/api/v1/territories/{code}")
        response.raise_for_status()
        return response.json()
