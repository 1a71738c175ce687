"""
criteria.py — Criterion registry endpoint.

  GET /api/v1/criteria   — enabled criteria keyed by id, in display order

Served from the app's CriteriaCache; the map client loads it once at start.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from terrimap.core.config import settings
from terrimap.services.criteria_cache import CriteriaCache, get_criteria_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/criteria", tags=["criteria"])

_PUBLIC_FIELDS = {
    "id", "name", "name_en", "category", "description",
    "unit", "source", "higher_is_better", "color_scale",
}


@router.get("")
async def list_criteria(cache: Optional[CriteriaCache] = Depends(get_criteria_cache)):
    if cache is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    criteria = await cache.get()
    body = {c.id: c.model_dump(by_alias=True, include=_PUBLIC_FIELDS) for c in criteria}
    return JSONResponse(
        content=body,
        headers={"Cache-Control": f"public, max-age={settings.criteria_cache_ttl}"},
    )
