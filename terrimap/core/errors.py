"""
errors.py — Failure taxonomy of the scoring pipeline and the viewport API.

Hard failures are exceptions; soft ones (degenerate populations, failed
enrichment joins, failed upsert batches) are caught where they happen and
resolved by a documented fallback, but keep a type so logs and run
summaries can name them.

HTTP mapping (see terrimap.main):
  BoundsPolicyViolation  → 400
  UnknownCriterionError  → 404
  GeometryBackendError   → 500
"""

from dataclasses import dataclass, field
from typing import Any, Optional


class TerrimapError(Exception):
    """Base class for every domain error raised by terrimap."""


class SourceFetchError(TerrimapError):
    """An external open-data source could not be fetched after all retries."""

    def __init__(self, url: str, attempts: int, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.attempts = attempts
        self.status = status
        self.reason = reason
        status_part = f"HTTP {status}" if status is not None else "network error"
        super().__init__(f"Failed to fetch {url} after {attempts} attempts ({status_part}) {reason}".strip())


class DegenerateDataError(TerrimapError):
    """A value population has no spread between its 2nd and 98th percentiles."""

    def __init__(self, value: float, size: int):
        self.value = value
        self.size = size
        super().__init__(f"Degenerate population of {size} values (p2 == p98 == {value})")


class EnrichmentJoinError(TerrimapError):
    """Criterion values could not be joined onto viewport geometry."""


class GeometryBackendError(TerrimapError):
    """The geometry backend failed; the whole viewport request fails."""


class BoundsPolicyViolation(TerrimapError):
    """A commune query without a bounding parent or bbox (or with both)."""


class UnknownCriterionError(TerrimapError):
    """No criterion (or no ingestion runner) exists for the given id."""

    def __init__(self, criterion_id: str):
        self.criterion_id = criterion_id
        super().__init__(f"Unknown criterion '{criterion_id}'")


@dataclass
class UpsertBatchFailure:
    """One failed batch of a multi-batch upsert. Recorded, never raised."""

    batch: int                     # 1-based batch number
    message: str
    records: list[Any] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.records)
