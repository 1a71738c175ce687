"""
criteria.py — Pydantic models for criteria, their per-territory values and
the summaries returned by ingestion runs.

Criterion           — definition: polarity, unit, colour ramp
CriterionValue      — one (territory, criterion) row: raw value, score, rank
StationSample       — a sparse point observation, ingestion-time only
UpsertResult        — outcome of a batched upsert
IngestionSummary    — outcome of one criterion's full run
CsvUploadResult     — outcome of a CSV bulk load
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from terrimap.core.errors import UpsertBatchFailure
from terrimap.models.geo import CamelModel


class ColorScale(BaseModel):
    low: str = Field(..., pattern=r"^#[0-9a-fA-F]{6}$")
    mid: str = Field(..., pattern=r"^#[0-9a-fA-F]{6}$")
    high: str = Field(..., pattern=r"^#[0-9a-fA-F]{6}$")


class Criterion(CamelModel):
    """A named indicator. Mutated only by administrative configuration."""

    id: str
    name: str
    name_en: str = ""
    category: str = ""          # climate | cost | services | quality | employment
    description: str = ""
    unit: str = ""
    source: str = ""
    higher_is_better: bool = True
    color_scale: ColorScale
    enabled: bool = True
    display_order: int = 0

    @classmethod
    def from_doc(cls, doc: dict) -> "Criterion":
        return cls(
            id=doc["_id"],
            name=doc["name"],
            name_en=doc.get("name_en", ""),
            category=doc.get("category", ""),
            description=doc.get("description", ""),
            unit=doc.get("unit", ""),
            source=doc.get("source", ""),
            higher_is_better=doc.get("higher_is_better", True),
            color_scale=ColorScale(**doc["color_scale"]),
            enabled=doc.get("enabled", True),
            display_order=doc.get("display_order", 0),
        )

    def to_doc(self) -> dict:
        doc = self.model_dump(exclude={"id"})
        doc["_id"] = self.id
        return doc


class CriterionValue(BaseModel):
    """Stored value of one criterion for one territory. Key: (territory_code, criterion_id)."""

    territory_code: str
    criterion_id: str
    value: float
    score: int = Field(..., ge=0, le=100)
    rank_national: Optional[int] = Field(default=None, ge=1)   # absent on rows loaded without a rank
    source: str = ""
    source_date: date

    def key(self) -> dict:
        return {"territory_code": self.territory_code, "criterion_id": self.criterion_id}

    def to_doc(self) -> dict:
        # BSON has no date type; ISO strings keep lexical == chronological order
        doc = self.model_dump()
        doc["source_date"] = self.source_date.isoformat()
        return doc

    @classmethod
    def from_doc(cls, doc: dict) -> "CriterionValue":
        return cls(
            territory_code=doc["territory_code"],
            criterion_id=doc["criterion_id"],
            value=doc["value"],
            score=doc["score"],
            rank_national=doc.get("rank_national"),
            source=doc.get("source", ""),
            source_date=doc["source_date"],
        )


@dataclass(frozen=True)
class StationSample:
    """A raw point observation (weather station, facility location)."""

    id: str
    lat: float
    lon: float
    value: float


class UpsertResult(BaseModel):
    written: int = 0        # records accepted by the store
    inserted: int = 0       # new rows
    updated: int = 0        # existing rows whose content changed
    failed: int = 0         # records in failed batches
    removed: int = 0        # stale rows deleted by replace()
    failures: list[UpsertBatchFailure] = Field(default_factory=list, exclude=True)

    @property
    def sample_errors(self) -> list[str]:
        """Messages of the first five failed batches."""
        return [f"batch {f.batch}: {f.message}" for f in self.failures[:5]]


class IngestionSummary(CamelModel):
    criterion_id: str
    territories: int = 0
    written: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    removed: int = 0        # rows of territories absent from this run, deleted
    coverage: int = 0       # rows stored for the criterion after the run
    degenerate: bool = False
    sample_errors: list[str] = Field(default_factory=list)


class CsvUploadResult(CamelModel):
    total: int
    written: int
    inserted: int
    updated: int
    failed: int
    skipped: int
    removed: int = 0
    parse_errors: list[str] = Field(default_factory=list)
    sample_errors: list[str] = Field(default_factory=list)


class CriterionReading(CamelModel):
    """One criterion's value as shown in a territory's detail view."""

    value: float
    score: int
    rank_national: Optional[int] = None


class TerritoryRef(CamelModel):
    code: str
    name: str


class TerritoryDetail(CamelModel):
    code: str
    name: str
    level: str
    population: Optional[int] = None
    department: Optional[TerritoryRef] = None
    region: Optional[TerritoryRef] = None
    criteria: dict[str, CriterionReading] = Field(default_factory=dict)
