#!/usr/bin/env python3
"""
run_ingestion.py — Run criterion ingestion from the command line.

Usage (from the repository root):
    python scripts/run_ingestion.py                       # every criterion with a runner
    python scripts/run_ingestion.py temperature rainfall
    python scripts/run_ingestion.py hospitalAccess --facilities hospitals.txt

--facilities takes a file of commune codes (one per line) hosting a health
facility, instead of querying the BPE API département by département.

A criterion whose source cannot be fetched is reported and skipped; the
others still run. Exit status is 1 if any criterion failed.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

import httpx  # noqa: E402

from terrimap.core.config import settings  # noqa: E402
from terrimap.core.database import CRITERIA, CRITERION_VALUES, close_mongo_connection, connect_to_mongo, db_client  # noqa: E402
from terrimap.core.errors import TerrimapError  # noqa: E402
from terrimap.models.criteria import Criterion  # noqa: E402
from terrimap.services.geo_index import GeoIndex  # noqa: E402
from terrimap.services.ingestion import RUNNERS, IngestionPipeline  # noqa: E402
from terrimap.services.value_store import CriterionValueStore  # noqa: E402


async def run(criterion_ids: list[str], facilities: Optional[set[str]]) -> int:
    await connect_to_mongo()
    db = db_client.db
    if db is None:
        print("ERROR: MongoDB unreachable — check MONGO_URI")
        return 1

    geo_index = await GeoIndex.load(db)
    print(f"{len(geo_index.communes())} communes loaded")
    orphans = geo_index.validate()
    if orphans:
        print(f"⚠ {len(orphans)} territories without a known parent")

    store = CriterionValueStore(
        db[CRITERION_VALUES],
        batch_size=settings.upsert_batch_size,
        chunk_size=settings.query_chunk_size,
    )
    failures = 0
    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=True) as client:
        pipeline = IngestionPipeline(store, geo_index, client, log=print, facility_codes=facilities)
        for criterion_id in criterion_ids:
            print(f"\n=== {criterion_id} ===")
            doc = await db[CRITERIA].find_one({"_id": criterion_id})
            if doc is None:
                print(f"✗ criterion '{criterion_id}' not seeded — run scripts/seed_criteria.py")
                failures += 1
                continue
            try:
                summary = await pipeline.run(Criterion.from_doc(doc))
            except TerrimapError as exc:
                print(f"✗ {exc}")
                failures += 1
                continue
            print(json.dumps(summary.model_dump(by_alias=True), ensure_ascii=False))

    await close_mongo_connection()
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run Terrimap criterion ingestion")
    parser.add_argument("criteria", nargs="*", help=f"Criterion ids (default: {', '.join(RUNNERS)})")
    parser.add_argument("--facilities", type=Path, help="File of facility commune codes, one per line")
    args = parser.parse_args()

    unknown = [c for c in args.criteria if c not in RUNNERS]
    if unknown:
        parser.error(f"no ingestion runner for: {', '.join(unknown)}")

    facility_codes = None
    if args.facilities is not None:
        facility_codes = {line.strip() for line in args.facilities.read_text().splitlines() if line.strip()}

    sys.exit(asyncio.run(run(args.criteria or list(RUNNERS), facility_codes)))
