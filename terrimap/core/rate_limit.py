"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. The viewport endpoint is the only
hot path worth limiting: every pan of the map issues one request.

Usage in routes:
    from fastapi import Request
    from terrimap.core.rate_limit import limiter

    @router.get("/some-endpoint")
    @limiter.limit(settings.viewport_rate_limit)
    async def my_endpoint(request: Request):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
