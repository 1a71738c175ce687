"""
nearest_station.py — Spread sparse point samples onto every territory.

Weather stations and facility locations number in the hundreds while
communes number in the tens of thousands. Each territory takes the value of
the station closest to its centroid (great-circle distance). The scan is a
plain O(territories × stations) loop; at country scale it is split into
chunks of territories that run in an executor (no shared mutable state).

Rules
─────
  • no stations            → empty result, nothing is fabricated
  • one station            → every territory gets its value, however far
  • exact distance tie     → the first station in iteration order wins
  • territory w/o centroid → skipped
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Sequence
from concurrent.futures import Executor
from functools import partial
from typing import Optional

from terrimap.models.criteria import StationSample
from terrimap.models.geo import Territory

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in kilometres."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _nearest(lat: float, lon: float, stations: Sequence[StationSample]) -> tuple[Optional[StationSample], float]:
    best: Optional[StationSample] = None
    best_dist = math.inf
    for station in stations:
        dist = haversine_km(lat, lon, station.lat, station.lon)
        if dist < best_dist:   # strict: first station keeps an exact tie
            best, best_dist = station, dist
    return best, best_dist


def map_nearest(
    territories: Iterable[Territory],
    stations: Sequence[StationSample],
) -> dict[str, float]:
    """Return {territory_code: value of the nearest station}."""
    values: dict[str, float] = {}
    if not stations:
        return values

    for territory in territories:
        if territory.centroid is None:
            continue
        station, _ = _nearest(territory.centroid.lat, territory.centroid.lon, stations)
        if station is not None:
            values[territory.code] = station.value
    return values


def _chunks(items: Sequence, size: int) -> list[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def map_nearest_parallel(
    territories: Sequence[Territory],
    stations: Sequence[StationSample],
    chunk_size: int = 2000,
    executor: Optional[Executor] = None,
) -> dict[str, float]:
    """
    Same result as map_nearest(), computed in territory chunks on *executor*.

    Pass a ProcessPoolExecutor for real parallelism; None uses the event
    loop's default executor, which at least keeps the loop responsive.
    """
    if not stations or not territories:
        return {}
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")

    loop = asyncio.get_running_loop()
    station_list = list(stations)
    chunks = _chunks(list(territories), chunk_size)
    logger.debug(
        "Mapping %d territories onto %d stations in %d chunks",
        len(territories), len(station_list), len(chunks),
    )
    results = await asyncio.gather(*(
        loop.run_in_executor(executor, partial(map_nearest, chunk, station_list))
        for chunk in chunks
    ))

    merged: dict[str, float] = {}
    for partial_result in results:   # gather keeps chunk order
        merged.update(partial_result)
    return merged


def distance_to_nearest(
    territories: Iterable[Territory],
    site_codes: set[str],
) -> dict[str, float]:
    """
    Distance in km (one decimal) from each territory to the nearest site.

    Sites are territories themselves (e.g. communes hosting a hospital);
    a territory that is a site gets 0. No sites → empty result.
    """
    territories = [t for t in territories if t.centroid is not None]
    sites = [
        StationSample(id=t.code, lat=t.centroid.lat, lon=t.centroid.lon, value=0.0)
        for t in territories
        if t.code in site_codes
    ]
    distances: dict[str, float] = {}
    if not sites:
        return distances

    for territory in territories:
        if territory.code in site_codes:
            distances[territory.code] = 0.0
            continue
        _, dist = _nearest(territory.centroid.lat, territory.centroid.lon, sites)
        distances[territory.code] = round(dist, 1)
    return distances
