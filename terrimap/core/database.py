"""
MongoDB connection management using Motor (async driver).

Single DatabaseClient instance shared across all requests via a
module-level singleton. FastAPI's dependency injection (get_db) gives
routes clean access without importing the singleton directly.

Collections
───────────
  territories       regions, départements and communes (geometry + centroid)
  criterion_values  one row per (territory_code, criterion_id)
  criteria          criterion definitions (polarity, unit, colour ramp)

The connection is opened in FastAPI's lifespan (startup) and closed
on shutdown.
"""

import logging
import re

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, GEOSPHERE

from terrimap.core.config import settings

logger = logging.getLogger(__name__)

TERRITORIES = "territories"
CRITERION_VALUES = "criterion_values"
CRITERIA = "criteria"


class DatabaseClient:
    """
    Holds the Motor client and selected database.

    Tests replace .client and .db directly (monkeypatching a class
    attribute is cleaner than replacing module-level vars).
    """

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None


# Module-level singleton, referenced by all app code
db_client = DatabaseClient()


def _uses_tls(uri: str) -> bool:
    return uri.startswith("mongodb+srv://") or "tls=true" in uri.lower()


async def connect_to_mongo() -> None:
    """
    Create the MongoDB connection and validate it with a ping.

    Called once at app startup (via lifespan). When MongoDB is unavailable
    the API still starts; DB-dependent endpoints answer 503 and the health
    check reports the real status.
    """
    logger.info("Connecting to MongoDB at %s", _redact_uri(settings.mongo_uri))
    try:
        kwargs = {"serverSelectionTimeoutMS": 5000}
        if _uses_tls(settings.mongo_uri):
            # certifi's CA bundle makes Atlas TLS work without system certs
            kwargs["tlsCAFile"] = certifi.where()
        db_client.client = AsyncIOMotorClient(settings.mongo_uri, **kwargs)
        db_client.db = db_client.client[settings.mongo_db_name]
        await db_client.client.admin.command("ping")
        logger.info("MongoDB connection established (db: %s)", settings.mongo_db_name)
    except Exception as exc:
        logger.warning(
            "MongoDB unavailable at startup: %s. "
            "API running in degraded mode — DB endpoints will fail.",
            exc,
        )
        db_client.client = None
        db_client.db = None


async def close_mongo_connection() -> None:
    """Close the MongoDB connection gracefully on app shutdown."""
    if db_client.client is not None:
        db_client.client.close()
        logger.info("MongoDB connection closed")


def get_db() -> AsyncIOMotorDatabase | None:
    """
    FastAPI dependency — inject the database into route handlers.

    Returns None when MongoDB is unavailable so routes can answer 503
    instead of crashing.
    """
    return db_client.db


async def ensure_indexes(db) -> None:
    """Idempotent index creation — safe to run multiple times."""
    await db[TERRITORIES].create_index(
        [("level", ASCENDING), ("code", ASCENDING)],
        name="level_code_unique",
        unique=True,
    )
    await db[TERRITORIES].create_index(
        [("level", ASCENDING), ("parent_code", ASCENDING)],
        name="level_parent",
    )
    await db[TERRITORIES].create_index(
        [("geometry", GEOSPHERE)],
        name="geometry_2dsphere",
    )
    await db[CRITERION_VALUES].create_index(
        [("territory_code", ASCENDING), ("criterion_id", ASCENDING)],
        name="territory_criterion_unique",
        unique=True,
    )
    await db[CRITERION_VALUES].create_index(
        [("criterion_id", ASCENDING), ("score", ASCENDING)],
        name="criterion_score",
    )
    logger.info("MongoDB indexes ensured")


def _redact_uri(uri: str) -> str:
    """Strip credentials from URI before logging."""
    return re.sub(r"://[^:]+:[^@]+@", "://<redacted>@", uri)
