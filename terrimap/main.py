"""
Terrimap API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
maps domain errors to HTTP responses and manages the MongoDB connection
and criteria cache lifecycle.

Extension points:
  - Add new route groups with app.include_router() below
  - Map new domain errors in the exception handler block
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from terrimap.core import database
from terrimap.core.config import settings
from terrimap.core.errors import BoundsPolicyViolation, GeometryBackendError, UnknownCriterionError
from terrimap.core.rate_limit import limiter
from terrimap.routes.criteria import router as criteria_router
from terrimap.routes.geo import router as geo_router
from terrimap.routes.health import router as health_router
from terrimap.routes.ingestion import router as ingestion_router
from terrimap.routes.territories import router as territories_router
from terrimap.services.criteria_cache import CriteriaCache, mongo_criteria_loader
from terrimap.services.geo_index import GeoIndex

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect MongoDB, build the criteria cache and load the geo index on startup.

    In degraded mode (no database) both stay None and the endpoints that
    need them answer 503.
    """
    logger.info("Starting Terrimap API (env: %s)", settings.environment)
    await database.connect_to_mongo()
    if database.db_client.db is not None:
        app.state.criteria_cache = CriteriaCache(
            mongo_criteria_loader(database.db_client.db),
            ttl_seconds=settings.criteria_cache_ttl,
        )
        app.state.geo_index = await GeoIndex.load(database.db_client.db)
    yield
    logger.info("Shutting down Terrimap API")
    app.state.criteria_cache = None
    app.state.geo_index = None
    await database.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Terrimap API",
    description="Territory scoring and choropleth map backend for French regions, départements and communes.",
    version="0.1.0",
    lifespan=lifespan,
    # No interactive docs in production
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)
app.state.criteria_cache = None
app.state.geo_index = None


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Domain errors ─────────────────────────────────────────────────────────────
@app.exception_handler(BoundsPolicyViolation)
async def bounds_policy_handler(request: Request, exc: BoundsPolicyViolation):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(UnknownCriterionError)
async def unknown_criterion_handler(request: Request, exc: UnknownCriterionError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(GeometryBackendError)
async def geometry_backend_handler(request: Request, exc: GeometryBackendError):
    logger.error("Geometry backend failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Failed to fetch geometry data"})


# ─── Middleware ─────────────────────────────────────────────────────────────────
# CORS: the map front-end is served from a different origin in development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(geo_router)
app.include_router(criteria_router)
app.include_router(territories_router)
app.include_router(ingestion_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Terrimap API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
