"""
territories.py — Commune detail endpoint.

  GET /api/v1/territories/{code}   — identity, parent département and région,
                                     and every stored criterion value

Backs the map client's detail panel (the terminal state after clicking a
commune). Identity and parents come from the in-memory GeoIndex; only the
criterion values are read from MongoDB.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from terrimap.core.database import CRITERION_VALUES, get_db
from terrimap.models.criteria import CriterionReading, TerritoryDetail, TerritoryRef
from terrimap.models.geo import Level, Territory
from terrimap.services.geo_index import GeoIndex, get_geo_index
from terrimap.services.value_store import CriterionValueStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/territories", tags=["territories"])


def _ref(territory: Optional[Territory]) -> Optional[TerritoryRef]:
    return TerritoryRef(code=territory.code, name=territory.name) if territory else None


@router.get("/{code}")
async def get_territory(
    code: str,
    db=Depends(get_db),
    geo_index: Optional[GeoIndex] = Depends(get_geo_index),
):
    if db is None or geo_index is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    commune = geo_index.get(Level.COMMUNE, code)
    if commune is None:
        raise HTTPException(status_code=404, detail=f"Commune '{code}' not found")

    parents = {t.level: t for t in geo_index.ancestors(commune)}
    region = parents.get(Level.REGION)
    if region is None and commune.region_code:
        # département missing from the index; communes carry their region too
        region = geo_index.get(Level.REGION, commune.region_code)

    values = await CriterionValueStore(db[CRITERION_VALUES]).values_for_territory(code)
    detail = TerritoryDetail(
        code=commune.code,
        name=commune.name,
        level=commune.level.value,
        population=commune.population,
        department=_ref(parents.get(Level.DEPARTMENT)),
        region=_ref(region),
        criteria={
            criterion_id: CriterionReading(value=v.value, score=v.score, rank_national=v.rank_national)
            for criterion_id, v in values.items()
        },
    )
    return detail.model_dump(by_alias=True, exclude_none=True)
