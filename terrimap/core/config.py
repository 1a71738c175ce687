"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. Every tunable of the scoring pipeline and of the
serving layer lives here so the ingestion scripts and the API agree on
batch sizes, retry ceilings and cache lifetimes.

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── MongoDB ───────────────────────────────────────────────────
    # Local dev default matches a plain `docker run mongo` container.
    mongo_uri: str = "mongodb://localhost:27017/terrimap"
    mongo_db_name: str = "terrimap"

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins for the map front-end.
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── Criterion value store ─────────────────────────────────────
    # Rows per upsert batch and codes per `$in` lookup. Both keep single
    # requests under the backend's payload limits.
    upsert_batch_size: int = 500
    query_chunk_size: int = 500

    # ─── Source fetching (ingestion) ───────────────────────────────
    # Attempt n waits 2^n × fetch_backoff_seconds; a 429 waits
    # 2^n × rate_limited_backoff_seconds instead.
    fetch_max_retries: int = 3
    fetch_backoff_seconds: float = 0.5
    rate_limited_backoff_seconds: float = 1.0
    fetch_timeout_seconds: float = 30.0

    # Territories per worker chunk for the nearest-station mapping.
    nearest_chunk_size: int = 2000

    # Order of equal values when ranking: "input" (source order) or "code".
    rank_tie_break: Literal["input", "code"] = "input"

    # ─── Serving ───────────────────────────────────────────────────
    # Geometry only changes on ingestion runs, so responses are cacheable.
    geo_cache_max_age: int = 3600
    geo_stale_while_revalidate: int = 86400
    criteria_cache_ttl: int = 300
    viewport_rate_limit: str = "120/minute"

    # ─── External open-data sources ────────────────────────────────
    geo_api_base: str = "https://geo.api.gouv.fr"
    synop_api_url: str = (
        "https://public.opendatasoft.com/api/explore/v2.1/catalog/datasets/"
        "donnees-synop-essentielles-omm/records"
    )
    # INSEE Base Permanente des Équipements, queried per département.
    bpe_api_url: str = "https://api.insee.fr/melodi/data/DS_BPE"
    hospital_facility_types_str: str = "D101,D106"

    @property
    def hospital_facility_types(self) -> list[str]:
        return [t.strip() for t in self.hospital_facility_types_str.split(",") if t.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton: import this everywhere instead of instantiating Settings()
settings = Settings()
