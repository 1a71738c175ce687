"""
viewport.py — Assemble the GeoJSON slice the map shows for one query.

Two paths
─────────
  bbox   (communes panning)  — one aggregation: $geoIntersects on the bbox
                               polygon, then $lookup of the criterion value.
  parent (drill-down) or no  — geometry by level/parent, then a chunked
  filter (regions/depts)       join against the criterion value store.

Result-size policy: a commune query must carry exactly one of parent/bbox.
The check runs before the backend is touched.

Failure semantics
─────────────────
  geometry fetch fails  → GeometryBackendError, the request fails (HTTP 500)
  value join fails      → EnrichmentJoinError, logged; features are returned
                          without criterion properties (the map still renders)
  bbox $lookup fails    → the aggregation is retried once without it
"""

import logging
from typing import Optional, Protocol

from pymongo.errors import PyMongoError

from terrimap.core.database import CRITERION_VALUES, TERRITORIES
from terrimap.core.errors import EnrichmentJoinError, GeometryBackendError
from terrimap.models.criteria import CriterionValue
from terrimap.models.geo import (
    BoundingBox,
    Feature,
    FeatureCollection,
    FeatureProperties,
    Level,
    ViewportQuery,
)
from terrimap.services.value_store import CriterionValueStore

logger = logging.getLogger(__name__)

_GEOMETRY_FIELDS = {"_id": 0, "code": 1, "name": 1, "level": 1, "parent_code": 1, "geometry": 1}


class GeometryBackend(Protocol):
    """Source of territory geometry rows: {code, name, level, parent_code, geometry}."""

    async def by_level(self, level: Level, parent_code: Optional[str]) -> list[dict]:
        ...

    async def in_viewport(
        self,
        level: Level,
        bbox: BoundingBox,
        criterion_id: Optional[str],
    ) -> list[dict]:
        """Rows intersecting *bbox*, each with a `criterion` list of 0 or 1 value docs."""
        ...


class MongoGeometryBackend:
    def __init__(self, db):
        self.db = db

    async def by_level(self, level: Level, parent_code: Optional[str]) -> list[dict]:
        query: dict = {"level": level.value}
        if parent_code is not None:
            query["parent_code"] = parent_code
        try:
            cursor = self.db[TERRITORIES].find(query, _GEOMETRY_FIELDS).sort("code", 1)
            return [doc async for doc in cursor]
        except PyMongoError as exc:
            raise GeometryBackendError(f"Geometry query failed for {level.value}: {exc}") from exc

    async def in_viewport(
        self,
        level: Level,
        bbox: BoundingBox,
        criterion_id: Optional[str],
    ) -> list[dict]:
        pipeline: list[dict] = [
            {"$match": {
                "level": level.value,
                "geometry": {"$geoIntersects": {"$geometry": bbox.to_polygon()}},
            }},
            {"$project": _GEOMETRY_FIELDS},
        ]
        if criterion_id is not None:
            pipeline.append({"$lookup": {
                "from": CRITERION_VALUES,
                "let": {"code": "$code"},
                "pipeline": [
                    {"$match": {"$expr": {"$and": [
                        {"$eq": ["$territory_code", "$$code"]},
                        {"$eq": ["$criterion_id", criterion_id]},
                    ]}}},
                    {"$project": {"_id": 0}},
                    {"$limit": 1},
                ],
                "as": "criterion",
            }})
        try:
            cursor = self.db[TERRITORIES].aggregate(pipeline)
            return [doc async for doc in cursor]
        except PyMongoError as exc:
            raise GeometryBackendError(f"Viewport query failed: {exc}") from exc


def _feature(row: dict, value: Optional[CriterionValue]) -> Feature:
    properties = FeatureProperties(
        code=row["code"],
        name=row.get("name", ""),
        level=row["level"],
        parent_code=row.get("parent_code"),
    )
    if value is not None:
        properties.criterion_value = value.value
        properties.criterion_score = value.score
        properties.criterion_rank = value.rank_national
    return Feature(id=row["code"], properties=properties, geometry=row.get("geometry"))


class ViewportAssembler:
    def __init__(self, backend: GeometryBackend, value_store: CriterionValueStore):
        self.backend = backend
        self.value_store = value_store

    async def assemble(self, query: ViewportQuery) -> FeatureCollection:
        query.check_bounds()

        if query.bbox is not None:
            rows = await self._rows_in_viewport(query)
            try:
                values = _joined_values(rows)
            except EnrichmentJoinError as exc:
                logger.warning("%s; serving geometry only", exc)
                values = {}
            features = [_feature(row, values.get(row["code"])) for row in rows]
            logger.debug("Viewport bbox %s → %d features", query.bbox, len(features))
            return FeatureCollection(features=features)

        rows = await self.backend.by_level(query.level, query.parent_code)
        values: dict[str, CriterionValue] = {}
        if query.criterion_id is not None and rows:
            try:
                values = await self._join_values(query.criterion_id, [row["code"] for row in rows])
            except EnrichmentJoinError as exc:
                logger.warning("%s; serving geometry only", exc)

        features = [_feature(row, values.get(row["code"])) for row in rows]
        logger.debug(
            "Viewport %s parent=%s → %d features (%d with values)",
            query.level.value, query.parent_code, len(features), len(values),
        )
        return FeatureCollection(features=features)

    async def _rows_in_viewport(self, query: ViewportQuery) -> list[dict]:
        """Enriched viewport rows; on failure retried once without the criterion lookup."""
        try:
            return await self.backend.in_viewport(query.level, query.bbox, query.criterion_id)
        except GeometryBackendError as exc:
            if query.criterion_id is None:
                raise
            logger.warning(
                "Enriched viewport query for %s failed (%s); retrying geometry only",
                query.criterion_id, exc,
            )
        return await self.backend.in_viewport(query.level, query.bbox, None)

    async def _join_values(self, criterion_id: str, codes: list[str]) -> dict[str, CriterionValue]:
        try:
            return await self.value_store.query_by_territory_codes(criterion_id, codes)
        except (PyMongoError, KeyError, TypeError, ValueError) as exc:
            raise EnrichmentJoinError(
                f"Criterion join failed for {criterion_id} on {len(codes)} territories: {exc}"
            ) from exc


def _joined_values(rows: list[dict]) -> dict[str, CriterionValue]:
    """Decode the `criterion` lookup field of in_viewport() rows."""
    values = {}
    for row in rows:
        joined = row.get("criterion") or []
        if not joined:
            continue
        try:
            values[row["code"]] = CriterionValue.from_doc(joined[0])
        except (KeyError, TypeError, ValueError) as exc:
            raise EnrichmentJoinError(f"Unreadable criterion value for {row.get('code')}: {exc}") from exc
    return values
