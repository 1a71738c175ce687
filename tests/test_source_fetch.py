"""
test_source_fetch.py — Bounded retries with exponential backoff.

Uses httpx.MockTransport and a recording sleep, so nothing waits or hits
the network.

Run:
    pytest tests/test_source_fetch.py -v
"""

import httpx
import pytest

from terrimap.core.errors import SourceFetchError
from terrimap.services.source_fetch import fetch_with_retry

URL = "https://example.test/data"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _client(responses):
    """Client answering with *responses* in order (ints are status codes, exceptions are raised)."""
    queue = list(responses)

    def handler(request):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item, json={"ok": item == 200})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetchWithRetry:

    async def test_success_first_try(self):
        sleep = RecordingSleep()
        async with _client([200]) as client:
            response = await fetch_with_retry(client, URL, sleep=sleep)
        assert response.json() == {"ok": True}
        assert sleep.delays == []

    async def test_server_error_then_success(self):
        sleep = RecordingSleep()
        async with _client([503, 500, 200]) as client:
            response = await fetch_with_retry(client, URL, max_retries=3, backoff_seconds=0.5, sleep=sleep)
        assert response.status_code == 200
        assert sleep.delays == [1.0, 2.0]   # 2^1 × 0.5, 2^2 × 0.5

    async def test_rate_limited_waits_longer(self):
        sleep = RecordingSleep()
        async with _client([429, 200]) as client:
            await fetch_with_retry(
                client, URL, backoff_seconds=0.5, rate_limited_backoff_seconds=1.0, sleep=sleep,
            )
        assert sleep.delays == [2.0]

    async def test_network_error_retried(self):
        sleep = RecordingSleep()
        async with _client([httpx.ConnectError("refused"), 200]) as client:
            response = await fetch_with_retry(client, URL, sleep=sleep)
        assert response.status_code == 200
        assert len(sleep.delays) == 1

    async def test_gives_up_after_ceiling(self):
        sleep = RecordingSleep()
        async with _client([500, 500, 404]) as client:
            with pytest.raises(SourceFetchError) as excinfo:
                await fetch_with_retry(client, URL, max_retries=3, sleep=sleep)
        assert excinfo.value.attempts == 3
        assert excinfo.value.status == 404
        assert len(sleep.delays) == 2   # no wait after the last attempt

    async def test_invalid_ceiling(self):
        async with _client([]) as client:
            with pytest.raises(ValueError):
                await fetch_with_retry(client, URL, max_retries=0)
