"""
ingestion.py — Fetch, spread, score, rank and store one criterion.

Every runner ends the same way:

    values (code → raw value)
      → build_records()   one normalization batch + national ranks
      → CriterionValueStore.replace()   rows of territories left out are deleted
      → IngestionSummary

Runners
───────
  temperature     SYNOP yearly mean per station, nearest-station mapped
  rainfall        SYNOP yearly precipitation total, nearest-station mapped
  hospitalAccess  distance to the nearest commune hosting a health facility

Progress is reported through a `log(line)` callback so the HTTP trigger can
stream it and the CLI can print it. A SourceFetchError aborts the criterion
being run; callers running several criteria keep going with the next one.

CSV bulk load
─────────────
load_csv() accepts `commune_code,value[,score]`. Rows with a missing code or
a non-numeric or infinite value are skipped (the first five reasons are
kept). Missing scores are computed over the uploaded population; ranks are
always computed. The file replaces the criterion's stored values.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re
from collections.abc import Awaitable, Callable, Mapping
from datetime import date
from typing import Optional

import httpx

from terrimap.core.config import settings
from terrimap.core.errors import SourceFetchError, UnknownCriterionError
from terrimap.models.criteria import (
    CsvUploadResult,
    Criterion,
    CriterionValue,
    IngestionSummary,
    StationSample,
    UpsertResult,
)
from terrimap.models.geo import Level
from terrimap.services.geo_index import GeoIndex
from terrimap.services.nearest_station import distance_to_nearest, map_nearest_parallel
from terrimap.services.normalizer import normalize_population
from terrimap.services.ranking import rank
from terrimap.services.source_fetch import fetch_with_retry
from terrimap.services.value_store import CriterionValueStore

logger = logging.getLogger(__name__)

LogFn = Callable[[str], None]

SYNOP_SOURCE = "Météo France (SYNOP)"
BPE_SOURCE = "INSEE - Base Permanente des Équipements"
MAX_SAMPLE_ERRORS = 5


def build_records(
    values: Mapping[str, float],
    criterion: Criterion,
    source: str,
    source_date: date,
    scores: Optional[Mapping[str, int]] = None,
) -> tuple[list[CriterionValue], bool]:
    """
    Turn raw values into storable rows.

    *scores* may pre-supply some scores (CSV uploads); the rest are computed
    over the whole of *values* in one batch. Returns (records, degenerate).
    """
    computed, degenerate = normalize_population(values, criterion.higher_is_better)
    ranks = rank(values, criterion.higher_is_better, tie_break=settings.rank_tie_break)
    scores = scores or {}
    records = [
        CriterionValue(
            territory_code=code,
            criterion_id=criterion.id,
            value=value,
            score=scores.get(code, computed[code]),
            rank_national=ranks[code],
            source=source,
            source_date=source_date,
        )
        for code, value in values.items()
    ]
    return records, degenerate


# ── Pipeline ──────────────────────────────────────────────────────────────────

class IngestionPipeline:
    def __init__(
        self,
        store: CriterionValueStore,
        geo_index: GeoIndex,
        http_client: httpx.AsyncClient,
        log: Optional[LogFn] = None,
        facility_codes: Optional[set[str]] = None,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.geo_index = geo_index
        self.http = http_client
        self._log = log
        self.facility_codes = facility_codes
        self.today = today

    def log(self, line: str) -> None:
        if line.strip():
            logger.info(line.strip())
        if self._log is not None:
            self._log(line)

    async def fetch(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        return await fetch_with_retry(
            self.http,
            url,
            max_retries=settings.fetch_max_retries,
            backoff_seconds=settings.fetch_backoff_seconds,
            rate_limited_backoff_seconds=settings.rate_limited_backoff_seconds,
            params=params,
        )

    async def run(self, criterion: Criterion) -> IngestionSummary:
        runner = RUNNERS.get(criterion.id)
        if runner is None:
            raise UnknownCriterionError(criterion.id)

        self.log(f"Starting ingestion for: {criterion.name}")
        values, source = await runner(self)

        self.log("Calculating scores and ranks...")
        records, degenerate = build_records(values, criterion, source, self.today())
        if degenerate:
            self.log("  Degenerate population: every territory scored 50")

        if records:
            self.log("Upserting to database...")
            result = await self.store.replace(criterion.id, records)
            self.log(f"  Written: {result.written}, inserted: {result.inserted}, "
                     f"updated: {result.updated}, removed: {result.removed}, failed: {result.failed}")
        else:
            self.log("No values produced; stored values left untouched")
            result = UpsertResult()
        coverage = await self.store.coverage(criterion.id)
        self.log(f"  {coverage} territories hold a value")

        return IngestionSummary(
            criterion_id=criterion.id,
            territories=len(values),
            written=result.written,
            inserted=result.inserted,
            updated=result.updated,
            failed=result.failed,
            removed=result.removed,
            coverage=coverage,
            degenerate=degenerate,
            sample_errors=result.sample_errors,
        )

    # ── Station-mapped climate runners ────────────────────────────────────────

    async def fetch_synop_stations(self, aggregate: str, alias: str, extra_where: str) -> list[StationSample]:
        """Yearly per-station aggregate of last year's SYNOP observations."""
        year = self.today().year - 1
        group = "numer_sta,nom,codegeo,latitude,longitude"
        params = {
            "select": f"{aggregate} as {alias},{group}",
            "group_by": group,
            "where": f'date>="{year}-01-01" AND date<="{year}-12-31" AND {extra_where}',
            "limit": 100,
        }
        data = (await self.fetch(settings.synop_api_url, params=params)).json()

        stations = []
        for row in data.get("results") or []:
            if row.get(alias) is None or not row.get("latitude") or not row.get("longitude"):
                continue
            stations.append(StationSample(
                id=str(row.get("numer_sta", "")),
                lat=float(row["latitude"]),
                lon=float(row["longitude"]),
                value=float(row[alias]),
            ))
        self.log(f"  Got {len(stations)} stations with data for {year}")
        return stations

    async def map_stations(self, stations: list[StationSample]) -> dict[str, float]:
        communes = self.geo_index.communes()
        self.log(f"Mapping {len(communes)} communes to nearest station...")
        values = await map_nearest_parallel(communes, stations, chunk_size=settings.nearest_chunk_size)
        self.log(f"  Mapped {len(values)} communes")
        return values


async def _run_temperature(pipeline: IngestionPipeline) -> tuple[dict[str, float], str]:
    pipeline.log("Fetching temperature data from SYNOP API...")
    stations = await pipeline.fetch_synop_stations("avg(tc)", "avg_temp", "tc is not null")
    stations = [StationSample(s.id, s.lat, s.lon, round(s.value, 1)) for s in stations]
    return await pipeline.map_stations(stations), SYNOP_SOURCE


async def _run_rainfall(pipeline: IngestionPipeline) -> tuple[dict[str, float], str]:
    pipeline.log("Fetching precipitation data from SYNOP API...")
    # rr3 = precipitation over the last 3 hours; the yearly sum is the annual total
    stations = await pipeline.fetch_synop_stations("sum(rr3)", "total_precip", "rr3 is not null AND rr3>=0")
    stations = [StationSample(s.id, s.lat, s.lon, float(round(s.value))) for s in stations]
    return await pipeline.map_stations(stations), SYNOP_SOURCE


_COMMUNE_GEO = re.compile(r"COM-([0-9AB]{5})")


async def _fetch_facility_communes(pipeline: IngestionPipeline) -> set[str]:
    """Communes with at least one facility of the configured BPE types."""
    codes: set[str] = set()
    for dept in sorted(t.code for t in pipeline.geo_index.all(Level.DEPARTMENT)):
        for facility_type in settings.hospital_facility_types:
            try:
                response = await pipeline.fetch(
                    settings.bpe_api_url,
                    params={"GEO": f"DEP-{dept}", "FACILITY_TYPE": facility_type},
                )
            except SourceFetchError as exc:
                pipeline.log(f"  Skipping département {dept} ({facility_type}): {exc}")
                continue
            for obs in response.json().get("observations") or []:
                match = _COMMUNE_GEO.fullmatch((obs.get("dimensions") or {}).get("GEO", ""))
                count = ((obs.get("measures") or {}).get("OBS_VALUE_NIVEAU") or {}).get("value") or 0
                if match and count > 0:
                    codes.add(match.group(1))
    return codes


async def _run_hospital_access(pipeline: IngestionPipeline) -> tuple[dict[str, float], str]:
    if pipeline.facility_codes is not None:
        facilities = pipeline.facility_codes
    else:
        pipeline.log("Fetching health facilities from the BPE API...")
        facilities = await _fetch_facility_communes(pipeline)
    pipeline.log(f"  Found {len(facilities)} communes with health facilities")

    pipeline.log("Calculating distance to nearest health facility...")
    distances = distance_to_nearest(pipeline.geo_index.communes(), facilities)
    pipeline.log(f"  Calculated distances for {len(distances)} communes")
    return distances, BPE_SOURCE


Runner = Callable[[IngestionPipeline], Awaitable[tuple[dict[str, float], str]]]

RUNNERS: dict[str, Runner] = {
    "temperature": _run_temperature,
    "rainfall": _run_rainfall,
    "hospitalAccess": _run_hospital_access,
}


# ── CSV bulk load ─────────────────────────────────────────────────────────────

class CsvFormatError(ValueError):
    """The upload cannot be read at all (bad header, no data rows)."""


def parse_csv(text: str) -> tuple[dict[str, float], dict[str, int], list[str], int]:
    """
    Parse `commune_code,value[,score]`.

    Returns (values, supplied scores, first parse errors, skipped row count).
    A code repeated in the file keeps its last row.
    """
    reader = csv.reader(io.StringIO(text.strip()))
    header = [h.strip().lower() for h in next(reader, [])]
    if "commune_code" not in header or "value" not in header:
        raise CsvFormatError("CSV must have commune_code and value columns")
    code_idx, value_idx = header.index("commune_code"), header.index("value")
    score_idx = header.index("score") if "score" in header else None

    values: dict[str, float] = {}
    scores: dict[str, int] = {}
    errors: list[str] = []
    skipped = 0
    for line_no, cols in enumerate(reader, start=2):
        if not any(c.strip() for c in cols):
            continue
        cols = [c.strip() for c in cols]
        code = cols[code_idx] if code_idx < len(cols) else ""
        try:
            value = float(cols[value_idx])
        except (IndexError, ValueError):
            value = None
        if not code or value is None or not math.isfinite(value):
            skipped += 1
            if len(errors) < MAX_SAMPLE_ERRORS:
                errors.append(f"Row {line_no}: invalid commune_code or value")
            continue

        values[code] = value
        scores.pop(code, None)
        if score_idx is not None and score_idx < len(cols) and cols[score_idx]:
            try:
                score = round(float(cols[score_idx]))
            except (ValueError, OverflowError):   # non-numeric, inf
                score = None
            if score is not None and 0 <= score <= 100:
                scores[code] = score

    return values, scores, errors, skipped


async def load_csv(
    text: str,
    criterion: Criterion,
    store: CriterionValueStore,
    source_date: Optional[date] = None,
) -> CsvUploadResult:
    """Parse, score and rank an uploaded CSV; it replaces *criterion*'s stored values."""
    values, scores, parse_errors, skipped = parse_csv(text)
    if not values:
        raise CsvFormatError("No valid data rows found")

    records, _ = build_records(
        values, criterion, criterion.source, source_date or date.today(), scores=scores,
    )
    result = await store.replace(criterion.id, records)
    logger.info(
        "CSV upload for %s: %d rows, %d skipped, %d removed, %d failed",
        criterion.id, len(values), skipped, result.removed, result.failed,
    )
    return CsvUploadResult(
        total=len(values),
        written=result.written,
        inserted=result.inserted,
        updated=result.updated,
        failed=result.failed,
        skipped=skipped,
        removed=result.removed,
        parse_errors=parse_errors,
        sample_errors=result.sample_errors,
    )
