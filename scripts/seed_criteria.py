#!/usr/bin/env python3
"""
seed_criteria.py — Upsert the twelve criterion definitions and ensure indexes.

Usage (from the repository root):
    python scripts/seed_criteria.py
    python scripts/seed_criteria.py --disable sunshine,crimeRate

Prerequisites:
    • MONGO_URI env var set (or .env file present)

Run multiple times safely — definitions are upserted on their id, so edits
here are applied and nothing is duplicated. Criterion values are untouched.
"""

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from terrimap.core.config import settings  # noqa: E402
from terrimap.core.database import CRITERIA, close_mongo_connection, connect_to_mongo, db_client, ensure_indexes  # noqa: E402
from terrimap.models.criteria import ColorScale, Criterion  # noqa: E402

# Colour ramps, low → mid → high
_BLUE_TO_RED = ColorScale(low="#3b82f6", mid="#fbbf24", high="#ef4444")
_GREEN_TO_RED = ColorScale(low="#22c55e", mid="#eab308", high="#dc2626")
_RED_TO_GREEN = ColorScale(low="#fca5a5", mid="#fcd34d", high="#4ade80")

_CRITERIA = [
    Criterion(id="temperature", name="Température moyenne", name_en="Average Temperature",
              category="climate", unit="°C", source="Météo France", higher_is_better=True,
              description="Température moyenne annuelle de la station la plus proche",
              color_scale=_BLUE_TO_RED, display_order=1),
    Criterion(id="sunshine", name="Heures d'ensoleillement", name_en="Sunshine Hours",
              category="climate", unit="h/an", source="Météo France", higher_is_better=True,
              color_scale=ColorScale(low="#94a3b8", mid="#fcd34d", high="#f59e0b"), display_order=2),
    Criterion(id="rainfall", name="Précipitations", name_en="Rainfall",
              category="climate", unit="mm/an", source="Météo France", higher_is_better=False,
              description="Cumul annuel des précipitations de la station la plus proche",
              color_scale=ColorScale(low="#fef3c7", mid="#60a5fa", high="#1e40af"), display_order=3),
    Criterion(id="propertyPrice", name="Prix immobilier", name_en="Property Price",
              category="cost", unit="€/m²", source="DVF", higher_is_better=False,
              color_scale=_GREEN_TO_RED, display_order=4),
    Criterion(id="localTax", name="Taxe foncière", name_en="Property Tax",
              category="cost", unit="%", source="DGFiP", higher_is_better=False,
              color_scale=_GREEN_TO_RED, display_order=5),
    Criterion(id="hospitalAccess", name="Accès hôpital", name_en="Hospital Access",
              category="services", unit="km", source="INSEE", higher_is_better=False,
              description="Distance à la commune équipée la plus proche",
              color_scale=_GREEN_TO_RED, display_order=6),
    Criterion(id="publicTransport", name="Transport en commun", name_en="Public Transport",
              category="services", unit="score", source="transport.data.gouv.fr", higher_is_better=True,
              color_scale=_RED_TO_GREEN, display_order=7),
    Criterion(id="internetSpeed", name="Débit internet", name_en="Internet Speed",
              category="services", unit="Mbps", source="ARCEP", higher_is_better=True,
              color_scale=ColorScale(low="#ef4444", mid="#fbbf24", high="#22c55e"), display_order=8),
    Criterion(id="crimeRate", name="Taux de criminalité", name_en="Crime Rate",
              category="quality", unit="‰", source="SSMSI", higher_is_better=False,
              color_scale=_GREEN_TO_RED, display_order=9),
    Criterion(id="culturalVenues", name="Équipements culturels", name_en="Cultural Venues",
              category="quality", unit="/10k hab", source="Ministère de la Culture", higher_is_better=True,
              color_scale=ColorScale(low="#e2e8f0", mid="#a78bfa", high="#7c3aed"), display_order=10),
    Criterion(id="employmentRate", name="Taux d'emploi", name_en="Employment Rate",
              category="employment", unit="%", source="INSEE", higher_is_better=True,
              color_scale=_RED_TO_GREEN, display_order=11),
    Criterion(id="medianIncome", name="Revenu médian", name_en="Median Income",
              category="employment", unit="€/an", source="INSEE", higher_is_better=True,
              color_scale=_RED_TO_GREEN, display_order=12),
]


async def seed(disabled: set[str]) -> None:
    await connect_to_mongo()
    db = db_client.db
    if db is None:
        print("ERROR: MongoDB unreachable — check MONGO_URI")
        sys.exit(1)

    print("Ensuring indexes…")
    await ensure_indexes(db)

    print("Upserting criteria…")
    for criterion in _CRITERIA:
        criterion.enabled = criterion.id not in disabled
        doc = criterion.to_doc()
        await db[CRITERIA].update_one({"_id": doc.pop("_id")}, {"$set": doc}, upsert=True)
        flag = "" if criterion.enabled else "  (disabled)"
        print(f"  {criterion.display_order:>2}. {criterion.id:<16} {criterion.unit}{flag}")

    total = await db[CRITERIA].count_documents({})
    print(f"\n✓ Done — {total} criteria in '{settings.mongo_db_name}'")
    await close_mongo_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Terrimap criterion definitions into MongoDB")
    parser.add_argument("--disable", default="", help="Comma-separated criterion ids to store as disabled")
    args = parser.parse_args()

    asyncio.run(seed({c.strip() for c in args.disable.split(",") if c.strip()}))
