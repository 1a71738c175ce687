"""
geo_index.py — In-memory index of territory identity, parent links and centroids.

Loaded from the `territories` collection once per ingestion run, and once
per API process (kept on `app.state`, injected with get_geo_index; restart
the API after re-importing territories). It is the leaf dependency of the
nearest-station mapping, which needs every commune centroid, and of the
territory detail view, which walks commune → département → région.

Département → région
────────────────────
geo.api.gouv.fr normally returns `codeRegion` with each département. When it
does not, region_for_department() falls back to the static 2016 mapping
below. A département found in neither is *unmapped*: the function returns
the UNMAPPED_REGION marker, which is not a string and so can never be
stored as a region code by accident. The import skips such départements
(and their communes) and reports them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional, Union

from fastapi import Request

from terrimap.core.database import TERRITORIES
from terrimap.models.geo import PARENT_LEVEL, Level, Territory

logger = logging.getLogger(__name__)

_REGION_DEPARTMENTS = {
    "11": ["75", "77", "78", "91", "92", "93", "94", "95"],              # Île-de-France
    "24": ["18", "28", "36", "37", "41", "45"],                          # Centre-Val de Loire
    "27": ["21", "25", "39", "58", "70", "71", "89", "90"],              # Bourgogne-Franche-Comté
    "28": ["14", "27", "50", "61", "76"],                                # Normandie
    "32": ["02", "59", "60", "62", "80"],                                # Hauts-de-France
    "44": ["08", "10", "51", "52", "54", "55", "57", "67", "68", "88"],  # Grand Est
    "52": ["44", "49", "53", "72", "85"],                                # Pays de la Loire
    "53": ["22", "29", "35", "56"],                                      # Bretagne
    "75": ["16", "17", "19", "23", "24", "33", "40", "47", "64", "79", "86", "87"],
    "76": ["09", "11", "12", "30", "31", "32", "34", "46", "48", "65", "66", "81", "82"],
    "84": ["01", "03", "07", "15", "26", "38", "42", "43", "63", "69", "73", "74"],
    "93": ["04", "05", "06", "13", "83", "84"],                          # Provence-Alpes-Côte d'Azur
    "94": ["2A", "2B"],                                                  # Corse
    "01": ["971"], "02": ["972"], "03": ["973"], "04": ["974"], "06": ["976"],
}

DEPARTMENT_REGION = {
    dept: region for region, depts in _REGION_DEPARTMENTS.items() for dept in depts
}


class _Unmapped:
    def __repr__(self) -> str:
        return "UNMAPPED_REGION"

    def __bool__(self) -> bool:
        return False


UNMAPPED_REGION = _Unmapped()


def region_for_department(dept_code: str, reported: Optional[str] = None) -> Union[str, _Unmapped]:
    """Region code for *dept_code*; *reported* (from the source) wins."""
    if reported:
        return reported
    return DEPARTMENT_REGION.get(dept_code, UNMAPPED_REGION)


class GeoIndex:
    """Lookup structure over an immutable set of territories."""

    def __init__(self, territories: Iterable[Territory]):
        self._by_key: dict[tuple[Level, str], Territory] = {}
        for territory in territories:
            key = (territory.level, territory.code)
            if key in self._by_key:
                logger.warning("Duplicate %s code %s ignored", territory.level.value, territory.code)
                continue
            self._by_key[key] = territory

    @classmethod
    async def load(cls, db) -> "GeoIndex":
        """Read every territory (without geometry) from MongoDB."""
        cursor = db[TERRITORIES].find({}, {"geometry": 0})
        territories = [Territory.from_doc(doc) async for doc in cursor]
        logger.info("Geo index loaded: %d territories", len(territories))
        return cls(territories)

    def __len__(self) -> int:
        return len(self._by_key)

    def get(self, level: Level, code: str) -> Optional[Territory]:
        return self._by_key.get((level, code))

    def all(self, level: Level) -> list[Territory]:
        return [t for (lvl, _), t in self._by_key.items() if lvl == level]

    def communes(self) -> list[Territory]:
        return self.all(Level.COMMUNE)

    def parent(self, territory: Territory) -> Optional[Territory]:
        parent_level = PARENT_LEVEL[territory.level]
        if parent_level is None or territory.parent_code is None:
            return None
        return self.get(parent_level, territory.parent_code)

    def ancestors(self, territory: Territory) -> list[Territory]:
        """Ancestors from the region down to the direct parent."""
        chain = []
        current = self.parent(territory)
        while current is not None:
            chain.append(current)
            current = self.parent(current)
        return list(reversed(chain))

    def validate(self) -> list[Territory]:
        """Territories that break the parent invariant (missing or unknown parent)."""
        orphans = []
        for territory in self._by_key.values():
            if PARENT_LEVEL[territory.level] is not None and self.parent(territory) is None:
                orphans.append(territory)
        if orphans:
            logger.warning("Geo index has %d orphan territories", len(orphans))
        return orphans


def get_geo_index(request: Request) -> Optional[GeoIndex]:
    """FastAPI dependency: the process-wide index, or None in degraded mode."""
    return getattr(request.app.state, "geo_index", None)
