"""
test_criteria_cache.py — TTL and explicit invalidation of the criteria cache.

Run:
    pytest tests/test_criteria_cache.py -v
"""

from fakes import FakeCollection, FakeDB

from terrimap.core.database import CRITERIA
from terrimap.models.criteria import ColorScale, Criterion
from terrimap.services.criteria_cache import CriteriaCache, mongo_criteria_loader

RAMP = ColorScale(low="#000000", mid="#777777", high="#ffffff")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return [Criterion(id=f"c{self.calls}", name="C", color_scale=RAMP)]


class TestCriteriaCache:

    async def test_cached_within_ttl(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = CriteriaCache(loader, ttl_seconds=300, clock=clock)
        first = await cache.get()
        clock.now = 299
        assert await cache.get() is first
        assert loader.calls == 1

    async def test_reloads_after_ttl(self):
        loader, clock = CountingLoader(), FakeClock()
        cache = CriteriaCache(loader, ttl_seconds=300, clock=clock)
        await cache.get()
        clock.now = 300
        assert (await cache.get())[0].id == "c2"

    async def test_invalidate_forces_reload(self):
        loader = CountingLoader()
        cache = CriteriaCache(loader, ttl_seconds=300, clock=FakeClock())
        await cache.get()
        cache.invalidate()
        await cache.get()
        assert loader.calls == 2


class TestMongoLoader:

    async def test_enabled_only_in_display_order(self):
        docs = [
            {"_id": "rainfall", "name": "Précipitations", "display_order": 3, "enabled": True,
             "color_scale": RAMP.model_dump()},
            {"_id": "temperature", "name": "Température", "display_order": 1,
             "color_scale": RAMP.model_dump()},
            {"_id": "sunshine", "name": "Soleil", "display_order": 2, "enabled": False,
             "color_scale": RAMP.model_dump()},
        ]
        load = mongo_criteria_loader(FakeDB(**{CRITERIA: FakeCollection(docs)}))
        assert [c.id for c in await load()] == ["temperature", "rainfall"]
