"""
ingestion.py — Administrative data-loading routes.

Routes:
  POST /api/v1/ingestion/{criterion_id}/run    — run one criterion's ingestion,
                                                 streaming progress lines
  POST /api/v1/data/{criterion_id}/upload      — CSV bulk load (multipart `file`)

HOW THE STREAM WORKS
────────────────────
The pipeline runs as a background task and pushes each progress line onto
an asyncio.Queue; the response body drains that queue as `text/plain`
lines. The last line is always a JSON object: the IngestionSummary on
success, or {"error": "..."} when the run failed (a SourceFetchError is
fatal to this criterion only).

Both routes invalidate the criteria cache once values have been written.

TESTING
───────
  pytest tests/test_routes_ingestion.py -v
  curl -N -X POST http://localhost:8000/api/v1/ingestion/temperature/run
  curl -F file=@values.csv http://localhost:8000/api/v1/data/propertyPrice/upload
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from terrimap.core.config import settings
from terrimap.core.database import CRITERIA, CRITERION_VALUES, get_db
from terrimap.core.errors import TerrimapError, UnknownCriterionError
from terrimap.models.criteria import Criterion, IngestionSummary
from terrimap.services.criteria_cache import CriteriaCache, get_criteria_cache
from terrimap.services.geo_index import GeoIndex
from terrimap.services.ingestion import RUNNERS, CsvFormatError, IngestionPipeline, LogFn, load_csv
from terrimap.services.value_store import CriterionValueStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["ingestion"])

# (db, criterion, log) → summary. Overridable in tests.
IngestionRun = Callable[[object, Criterion, LogFn], Awaitable[IngestionSummary]]


async def run_pipeline(db, criterion: Criterion, log: LogFn) -> IngestionSummary:
    """Load the geo index and run *criterion* against live sources."""
    log("Loading territories...")
    geo_index = await GeoIndex.load(db)
    log(f"  {len(geo_index.communes())} communes in database")
    store = CriterionValueStore(db[CRITERION_VALUES], batch_size=settings.upsert_batch_size)
    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=True) as client:
        pipeline = IngestionPipeline(store, geo_index, client, log=log)
        return await pipeline.run(criterion)


def get_ingestion_run() -> IngestionRun:
    return run_pipeline


async def _load_criterion(db, criterion_id: str) -> Criterion:
    doc = await db[CRITERIA].find_one({"_id": criterion_id})
    if doc is None:
        raise UnknownCriterionError(criterion_id)
    return Criterion.from_doc(doc)


async def _stream_run(
    run: IngestionRun,
    db,
    criterion: Criterion,
    cache: Optional[CriteriaCache],
) -> AsyncIterator[str]:
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
    outcome: dict = {}

    async def worker() -> None:
        try:
            summary = await run(db, criterion, queue.put_nowait)
            outcome["summary"] = summary
            if cache is not None:
                cache.invalidate()
        except TerrimapError as exc:
            logger.warning("Ingestion of %s failed: %s", criterion.id, exc)
            outcome["error"] = str(exc)
        except Exception as exc:
            # The response has already started; report in-band instead of a 500
            logger.exception("Ingestion of %s crashed", criterion.id)
            outcome["error"] = f"{type(exc).__name__}: {exc}"
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(worker())
    try:
        while (line := await queue.get()) is not None:
            yield line + "\n"
    finally:
        if not task.done():
            task.cancel()

    if "summary" in outcome:
        yield json.dumps(outcome["summary"].model_dump(by_alias=True, mode="json")) + "\n"
    else:
        yield json.dumps({"error": outcome.get("error", "ingestion aborted")}) + "\n"


@router.post("/ingestion/{criterion_id}/run")
async def trigger_ingestion(
    criterion_id: str,
    db=Depends(get_db),
    cache: Optional[CriteriaCache] = Depends(get_criteria_cache),
    run: IngestionRun = Depends(get_ingestion_run),
):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    criterion = await _load_criterion(db, criterion_id)
    if criterion.id not in RUNNERS:
        raise HTTPException(status_code=400, detail=f"No ingestion runner for {criterion.id}")

    return StreamingResponse(
        _stream_run(run, db, criterion, cache),
        media_type="text/plain",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/data/{criterion_id}/upload")
async def upload_csv(
    criterion_id: str,
    file: UploadFile = File(...),
    db=Depends(get_db),
    cache: Optional[CriteriaCache] = Depends(get_criteria_cache),
):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")

    criterion = await _load_criterion(db, criterion_id)
    try:
        text = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")

    store = CriterionValueStore(db[CRITERION_VALUES], batch_size=settings.upsert_batch_size)
    try:
        result = await load_csv(text, criterion, store)
    except CsvFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if cache is not None:
        cache.invalidate()
    return result.model_dump(by_alias=True)
