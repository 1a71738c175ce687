"""
geo.py — Pydantic models for territories, viewport queries and GeoJSON output.

Two spellings of the administrative level coexist:
  • Level      — singular, stored in MongoDB and carried in feature properties
                 ("region" | "department" | "commune")
  • LevelPath  — plural, used in the HTTP path and by the map client
                 ("regions" | "departements" | "communes")

GeoJSON output uses camelCase keys (criterionValue, parentCode, ...) because
the map client's paint expressions read them by name. Criterion fields that
have no stored value are left out of the JSON entirely: "no data" must stay
distinguishable from a zero score.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from terrimap.core.errors import BoundsPolicyViolation


class Level(str, Enum):
    REGION = "region"
    DEPARTMENT = "department"
    COMMUNE = "commune"


class LevelPath(str, Enum):
    REGIONS = "regions"
    DEPARTEMENTS = "departements"
    COMMUNES = "communes"

    @property
    def level(self) -> Level:
        return _PATH_TO_LEVEL[self]

    @classmethod
    def from_level(cls, level: Level) -> "LevelPath":
        return {v: k for k, v in _PATH_TO_LEVEL.items()}[level]


_PATH_TO_LEVEL = {
    LevelPath.REGIONS: Level.REGION,
    LevelPath.DEPARTEMENTS: Level.DEPARTMENT,
    LevelPath.COMMUNES: Level.COMMUNE,
}

# Parent level of each level (regions have none).
PARENT_LEVEL = {
    Level.REGION: None,
    Level.DEPARTMENT: Level.REGION,
    Level.COMMUNE: Level.DEPARTMENT,
}


class Centroid(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class Territory(BaseModel):
    """A region, département or commune. Codes are immutable once imported."""

    code: str
    name: str
    level: Level
    parent_code: Optional[str] = None   # department for communes, region for departments
    region_code: Optional[str] = None   # denormalised for communes
    centroid: Optional[Centroid] = None
    population: Optional[int] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "Territory":
        centroid = None
        point = doc.get("centroid")
        if point and point.get("coordinates"):
            lon, lat = point["coordinates"][:2]   # GeoJSON: [lng, lat]
            centroid = Centroid(lat=lat, lon=lon)
        return cls(
            code=doc["code"],
            name=doc.get("name", ""),
            level=doc["level"],
            parent_code=doc.get("parent_code"),
            region_code=doc.get("region_code"),
            centroid=centroid,
            population=doc.get("population"),
        )


class BoundingBox(BaseModel):
    """Viewport rectangle in WGS84 degrees."""

    min_lng: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lng: float = Field(..., ge=-180, le=180)
    max_lat: float = Field(..., ge=-90, le=90)

    @model_validator(mode="after")
    def _ordered(self) -> "BoundingBox":
        if self.min_lng >= self.max_lng or self.min_lat >= self.max_lat:
            raise ValueError("bbox minimums must be smaller than maximums")
        return self

    @classmethod
    def from_param(cls, raw: str) -> "BoundingBox":
        """Parse the `minLng,minLat,maxLng,maxLat` query-string form."""
        parts = [p.strip() for p in raw.split(",")]
        if len(parts) != 4:
            raise ValueError("Expected 4 comma-separated numbers: minLng,minLat,maxLng,maxLat")
        try:
            min_lng, min_lat, max_lng, max_lat = (float(p) for p in parts)
        except ValueError:
            raise ValueError("bbox values must be numbers: minLng,minLat,maxLng,maxLat")
        return cls(min_lng=min_lng, min_lat=min_lat, max_lng=max_lng, max_lat=max_lat)

    def to_polygon(self) -> dict:
        """Closed GeoJSON polygon ring, counter-clockwise."""
        ring = [
            [self.min_lng, self.min_lat],
            [self.max_lng, self.min_lat],
            [self.max_lng, self.max_lat],
            [self.min_lng, self.max_lat],
            [self.min_lng, self.min_lat],
        ]
        return {"type": "Polygon", "coordinates": [ring]}


class ViewportQuery(BaseModel):
    """Request-scoped description of one map data slice."""

    level: Level
    parent_code: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    criterion_id: Optional[str] = None

    def check_bounds(self) -> None:
        """
        Enforce the result-size policy before any backend work.

        Communes need exactly one of parent/bbox: a parent for drill-down,
        a bbox for panning. A bbox is only meaningful for communes.
        """
        if self.level == Level.COMMUNE:
            if self.parent_code is None and self.bbox is None:
                raise BoundsPolicyViolation(
                    'Communes level requires either "parent" (departement code) '
                    'or "bbox" parameter'
                )
            if self.parent_code is not None and self.bbox is not None:
                raise BoundsPolicyViolation('"parent" and "bbox" are mutually exclusive')
        elif self.bbox is not None:
            raise BoundsPolicyViolation('"bbox" is only supported at communes level')


# ── GeoJSON output ────────────────────────────────────────────────────────────

class CamelModel(BaseModel):
    """Base for JSON-facing models: camelCase aliases, snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeatureProperties(CamelModel):
    code: str
    name: str
    level: Level
    parent_code: Optional[str] = None
    criterion_value: Optional[float] = None
    criterion_score: Optional[int] = None
    criterion_rank: Optional[int] = None


class Feature(CamelModel):
    type: Literal["Feature"] = "Feature"
    id: str                                # == territory code (client feature-state key)
    properties: FeatureProperties
    geometry: Optional[dict[str, Any]] = None

    @field_validator("id")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("feature id must be the territory code")
        return v


class FeatureCollection(CamelModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[Feature] = Field(default_factory=list)

    def to_geojson(self) -> dict:
        """JSON-ready dict; absent criterion fields are omitted, not null."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
