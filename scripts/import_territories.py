#!/usr/bin/env python3
"""
import_territories.py — One-time geographic import from geo.api.gouv.fr.

Usage (from the repository root):
    python scripts/import_territories.py                  # everything
    python scripts/import_territories.py --regions --departements
    python scripts/import_territories.py --communes

Prerequisites:
    • MONGO_URI env var set (or .env file present)

Run multiple times safely — territories are upserted on (level, code).

What this script writes
───────────────────────
  territories  ← regions, départements and communes with their contour
                 (GeoJSON), centroid (GeoJSON Point) and parent code
  indexes      ← (level, code) unique, (level, parent_code), 2dsphere

A département whose region is neither reported by the API nor in the
static mapping is skipped together with its communes, and listed at the
end. Fix the mapping in terrimap/services/geo_index.py and re-run.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

import httpx  # noqa: E402
from pymongo import UpdateOne  # noqa: E402

from terrimap.core.config import settings  # noqa: E402
from terrimap.core.database import TERRITORIES, close_mongo_connection, connect_to_mongo, db_client, ensure_indexes  # noqa: E402
from terrimap.core.errors import SourceFetchError  # noqa: E402
from terrimap.models.geo import Level  # noqa: E402
from terrimap.services.geo_index import UNMAPPED_REGION, region_for_department  # noqa: E402
from terrimap.services.source_fetch import fetch_with_retry  # noqa: E402

BATCH_SIZE = 100


async def _get_json(client: httpx.AsyncClient, path: str, params: Optional[dict] = None):
    response = await fetch_with_retry(
        client,
        f"{settings.geo_api_base}{path}",
        max_retries=settings.fetch_max_retries,
        backoff_seconds=settings.fetch_backoff_seconds,
        rate_limited_backoff_seconds=settings.rate_limited_backoff_seconds,
        params=params,
    )
    return response.json()


def _center_of(geometry: Optional[dict]) -> Optional[dict]:
    """Centre of the outer rings' bounding box, as a GeoJSON Point."""
    if not geometry:
        return None
    if geometry["type"] == "Polygon":
        rings = geometry["coordinates"][:1]
    elif geometry["type"] == "MultiPolygon":
        rings = [polygon[0] for polygon in geometry["coordinates"] if polygon]
    else:
        return None
    points = [point for ring in rings for point in ring]
    if not points:
        return None
    lngs = [p[0] for p in points]
    lats = [p[1] for p in points]
    return {"type": "Point", "coordinates": [(min(lngs) + max(lngs)) / 2, (min(lats) + max(lats)) / 2]}


def _doc(level: Level, code: str, name: str, geometry, parent_code=None, region_code=None,
         centroid=None, population=None) -> dict:
    return {
        "level": level.value,
        "code": code,
        "name": name,
        "parent_code": parent_code,
        "region_code": region_code,
        "geometry": geometry,
        "centroid": centroid or _center_of(geometry),
        "population": population,
    }


async def _write(db, docs: list[dict]) -> int:
    written = 0
    for start in range(0, len(docs), BATCH_SIZE):
        batch = docs[start:start + BATCH_SIZE]
        ops = [UpdateOne({"level": d["level"], "code": d["code"]}, {"$set": d}, upsert=True) for d in batch]
        await db[TERRITORIES].bulk_write(ops, ordered=False)
        written += len(batch)
    return written


async def import_regions(db, client: httpx.AsyncClient) -> None:
    print("Fetching regions…")
    regions = await _get_json(client, "/regions", {"fields": "code,nom"})
    docs = []
    for region in regions:
        detail = await _get_json(client, f"/regions/{region['code']}", {"fields": "code,nom,contour"})
        docs.append(_doc(Level.REGION, region["code"], region["nom"], detail.get("contour")))
        print(f"  {region['code']}  {region['nom']}")
    print(f"  {await _write(db, docs)} regions upserted")


async def _departements(client: httpx.AsyncClient) -> tuple[list[tuple[dict, str]], list[dict]]:
    """(départements with their region code, unmapped départements)."""
    mapped, unmapped = [], []
    for dept in await _get_json(client, "/departements", {"fields": "code,nom,codeRegion"}):
        region = region_for_department(dept["code"], dept.get("codeRegion"))
        if region is UNMAPPED_REGION:
            unmapped.append(dept)
        else:
            mapped.append((dept, region))
    return mapped, unmapped


async def import_departements(db, client: httpx.AsyncClient) -> list[dict]:
    print("\nFetching départements…")
    mapped, unmapped = await _departements(client)
    docs = []
    for dept, region in mapped:
        detail = await _get_json(client, f"/departements/{dept['code']}", {"fields": "code,nom,contour"})
        docs.append(_doc(Level.DEPARTMENT, dept["code"], dept["nom"], detail.get("contour"),
                         parent_code=region, region_code=region))
    print(f"  {await _write(db, docs)} départements upserted")
    return unmapped


async def import_communes(db, client: httpx.AsyncClient) -> list[dict]:
    print("\nFetching communes by département…")
    mapped, unmapped = await _departements(client)
    total = 0
    for dept, region in mapped:
        try:
            communes = await _get_json(
                client,
                f"/departements/{dept['code']}/communes",
                {"fields": "code,nom,codeDepartement,population,centre,contour", "format": "json"},
            )
        except SourceFetchError as exc:
            print(f"  ✗ {dept['code']}: {exc}")
            continue
        docs = [
            _doc(Level.COMMUNE, c["code"], c["nom"], c.get("contour"),
                 parent_code=dept["code"], region_code=region,
                 centroid=c.get("centre"), population=c.get("population"))
            for c in communes
        ]
        total += await _write(db, docs)
        print(f"  {dept['code']}  {len(docs):>5} communes   (total {total})")
    print(f"  {total} communes upserted")
    return unmapped


async def run(do_regions: bool, do_departements: bool, do_communes: bool) -> None:
    await connect_to_mongo()
    db = db_client.db
    if db is None:
        print("ERROR: MongoDB unreachable — check MONGO_URI")
        sys.exit(1)

    await ensure_indexes(db)
    unmapped: dict[str, dict] = {}
    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds) as client:
        if do_regions:
            await import_regions(db, client)
        if do_departements:
            unmapped.update({d["code"]: d for d in await import_departements(db, client)})
        if do_communes:
            unmapped.update({d["code"]: d for d in await import_communes(db, client)})

    if unmapped:
        print(f"\n⚠ {len(unmapped)} unmapped départements skipped (with their communes):")
        for code, dept in sorted(unmapped.items()):
            print(f"  {code}  {dept.get('nom', '')}")
    print("\n✓ Done")
    await close_mongo_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import French territories into MongoDB")
    parser.add_argument("--regions", action="store_true")
    parser.add_argument("--departements", action="store_true")
    parser.add_argument("--communes", action="store_true")
    args = parser.parse_args()

    everything = not (args.regions or args.departements or args.communes)
    asyncio.run(run(
        everything or args.regions,
        everything or args.departements,
        everything or args.communes,
    ))
