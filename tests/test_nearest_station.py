"""
test_nearest_station.py — Spreading station samples onto territories.

Run:
    pytest tests/test_nearest_station.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from terrimap.models.criteria import StationSample
from terrimap.models.geo import Centroid, Level, Territory
from terrimap.services.nearest_station import (
    distance_to_nearest,
    haversine_km,
    map_nearest,
    map_nearest_parallel,
)


def commune(code, lat, lon):
    return Territory(code=code, name=code, level=Level.COMMUNE, parent_code="75",
                     centroid=Centroid(lat=lat, lon=lon))


PARIS = commune("75056", 48.8566, 2.3522)
MARSEILLE = commune("13055", 43.2965, 5.3698)
LILLE = commune("59350", 50.6292, 3.0573)


class TestHaversine:

    def test_zero_distance(self):
        assert haversine_km(48.85, 2.35, 48.85, 2.35) == 0

    def test_paris_marseille(self):
        assert 655 < haversine_km(48.8566, 2.3522, 43.2965, 5.3698) < 665


class TestMapNearest:

    def test_no_stations_assigns_nothing(self):
        assert map_nearest([PARIS, MARSEILLE], []) == {}

    def test_single_station_covers_everyone(self):
        station = StationSample(id="A", lat=48.85, lon=2.35, value=12)
        assert map_nearest([PARIS, MARSEILLE], [station]) == {"75056": 12, "13055": 12}

    def test_picks_closest_station(self):
        stations = [
            StationSample(id="north", lat=50.57, lon=3.10, value=10.5),
            StationSample(id="south", lat=43.44, lon=5.22, value=15.8),
        ]
        values = map_nearest([PARIS, MARSEILLE, LILLE], stations)
        assert values == {"75056": 10.5, "13055": 15.8, "59350": 10.5}

    def test_exact_tie_keeps_first_station(self):
        stations = [
            StationSample(id="first", lat=48.8566, lon=2.3522, value=1),
            StationSample(id="second", lat=48.8566, lon=2.3522, value=2),
        ]
        assert map_nearest([PARIS], stations) == {"75056": 1}

    def test_territory_without_centroid_skipped(self):
        blank = Territory(code="00000", name="?", level=Level.COMMUNE)
        station = StationSample(id="A", lat=48.85, lon=2.35, value=12)
        assert map_nearest([blank, PARIS], [station]) == {"75056": 12}


class TestMapNearestParallel:

    async def test_same_result_as_sequential(self):
        territories = [commune(f"{i:05d}", 42 + i * 0.05, -4 + i * 0.07) for i in range(150)]
        stations = [
            StationSample(id="A", lat=48.85, lon=2.35, value=12),
            StationSample(id="B", lat=43.30, lon=5.37, value=16),
            StationSample(id="C", lat=47.22, lon=-1.55, value=13),
        ]
        expected = map_nearest(territories, stations)
        with ThreadPoolExecutor(max_workers=4) as pool:
            got = await map_nearest_parallel(territories, stations, chunk_size=17, executor=pool)
        assert got == expected
        assert list(got) == list(expected)

    async def test_no_stations(self):
        assert await map_nearest_parallel([PARIS], []) == {}

    async def test_bad_chunk_size(self):
        station = StationSample(id="A", lat=48.85, lon=2.35, value=12)
        with pytest.raises(ValueError):
            await map_nearest_parallel([PARIS], [station], chunk_size=0)


class TestDistanceToNearest:

    def test_site_is_zero_others_rounded(self):
        distances = distance_to_nearest([PARIS, MARSEILLE, LILLE], {"75056"})
        assert distances["75056"] == 0
        assert distances["59350"] == round(haversine_km(50.6292, 3.0573, 48.8566, 2.3522), 1)
        assert distances["13055"] > distances["59350"]

    def test_no_sites(self):
        assert distance_to_nearest([PARIS, MARSEILLE], set()) == {}
