"""
geo.py — Viewport query endpoint.

Routes:
  GET /api/v1/geo/{level}   — GeoJSON FeatureCollection for one map slice

Query parameters
────────────────
  level      regions | departements | communes (path; anything else → 422)
  parent     territory code of the parent (region for departements,
             département for communes)
  bbox       minLng,minLat,maxLng,maxLat (communes panning only)
  criterion  criterion id; adds criterionValue/criterionScore/criterionRank
             to feature properties when a value is stored

Communes need exactly one of `parent` / `bbox`; the check runs before
MongoDB is touched and answers 400.

Responses are cacheable: geometry and values only change on ingestion runs.

TESTING
───────
  pytest tests/test_routes_geo.py -v
  curl "http://localhost:8000/api/v1/geo/departements?parent=84&criterion=temperature"
  curl "http://localhost:8000/api/v1/geo/communes?bbox=2.2,48.8,2.5,48.9"
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from terrimap.core.config import settings
from terrimap.core.database import CRITERION_VALUES, get_db
from terrimap.core.rate_limit import limiter
from terrimap.models.geo import BoundingBox, LevelPath, ViewportQuery
from terrimap.services.value_store import CriterionValueStore
from terrimap.services.viewport import MongoGeometryBackend, ViewportAssembler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/geo", tags=["geo"])


def get_assembler(db=Depends(get_db)) -> Optional[ViewportAssembler]:
    """Assembler over the live database, or None when MongoDB is down."""
    if db is None:
        return None
    store = CriterionValueStore(db[CRITERION_VALUES], chunk_size=settings.query_chunk_size)
    return ViewportAssembler(MongoGeometryBackend(db), store)


def _cache_control() -> str:
    return (
        f"public, max-age={settings.geo_cache_max_age}, "
        f"stale-while-revalidate={settings.geo_stale_while_revalidate}"
    )


@router.get("/{level}")
@limiter.limit(settings.viewport_rate_limit)
async def get_viewport(
    request: Request,  # required by slowapi
    level: LevelPath,
    parent: Optional[str] = Query(default=None, description="Parent territory code"),
    bbox: Optional[str] = Query(default=None, description="minLng,minLat,maxLng,maxLat"),
    criterion: Optional[str] = Query(default=None, description="Criterion id to join"),
    assembler: Optional[ViewportAssembler] = Depends(get_assembler),
):
    box = None
    if bbox is not None:
        try:
            box = BoundingBox.from_param(bbox)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid bbox: {exc}")

    query = ViewportQuery(level=level.level, parent_code=parent or None, bbox=box, criterion_id=criterion or None)
    query.check_bounds()   # BoundsPolicyViolation → 400 (see terrimap.main)

    if assembler is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    collection = await assembler.assemble(query)
    return JSONResponse(
        content=collection.to_geojson(),
        headers={"Cache-Control": _cache_control()},
    )
