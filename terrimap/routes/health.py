"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - The map client, to tell "API down" from "API up but DB unreachable"
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from terrimap.core import database as db_module
from terrimap.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    database: str  # "connected" | "disconnected"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """
    Liveness of the API and its database connection.

    HTTP 200 even when MongoDB is down: viewport and criteria endpoints
    then answer 503 while this one keeps reporting.
    """
    db_status = "disconnected"
    try:
        # Access via module reference so tests can patch db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        database=db_status,
        environment=settings.environment,
    )
