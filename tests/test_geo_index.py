"""
test_geo_index.py — Territory lookups, parent links and region mapping.

Run:
    pytest tests/test_geo_index.py -v
"""

from fakes import FakeCollection, FakeDB

from terrimap.core.database import TERRITORIES
from terrimap.models.geo import Centroid, Level, Territory
from terrimap.services.geo_index import (
    UNMAPPED_REGION,
    GeoIndex,
    region_for_department,
)


def _territories():
    return [
        Territory(code="84", name="Auvergne-Rhône-Alpes", level=Level.REGION),
        Territory(code="69", name="Rhône", level=Level.DEPARTMENT, parent_code="84"),
        Territory(code="38", name="Isère", level=Level.DEPARTMENT, parent_code="84"),
        Territory(code="69123", name="Lyon", level=Level.COMMUNE, parent_code="69", region_code="84",
                  centroid=Centroid(lat=45.76, lon=4.83)),
        Territory(code="38185", name="Grenoble", level=Level.COMMUNE, parent_code="38", region_code="84",
                  centroid=Centroid(lat=45.19, lon=5.72)),
    ]


class TestRegionForDepartment:

    def test_static_mapping(self):
        assert region_for_department("75") == "11"
        assert region_for_department("2A") == "94"
        assert region_for_department("974") == "04"

    def test_reported_region_wins(self):
        assert region_for_department("75", reported="99") == "99"

    def test_unknown_department_is_unmapped(self):
        region = region_for_department("99")
        assert region is UNMAPPED_REGION
        assert not isinstance(region, str)
        assert not region


class TestGeoIndex:

    def test_get_and_levels(self):
        index = GeoIndex(_territories())
        assert len(index) == 5
        assert index.get(Level.COMMUNE, "69123").name == "Lyon"
        assert index.get(Level.REGION, "69123") is None
        assert {t.code for t in index.communes()} == {"69123", "38185"}

    def test_parent_and_ancestors(self):
        index = GeoIndex(_territories())
        lyon = index.get(Level.COMMUNE, "69123")
        assert index.parent(lyon).code == "69"
        assert [t.code for t in index.ancestors(lyon)] == ["84", "69"]
        assert index.ancestors(index.get(Level.REGION, "84")) == []

    def test_validate_reports_orphans(self):
        territories = _territories() + [
            Territory(code="01001", name="L'Abergement", level=Level.COMMUNE, parent_code="01"),
            Territory(code="99", name="Nowhere", level=Level.DEPARTMENT),
        ]
        orphans = GeoIndex(territories).validate()
        assert {t.code for t in orphans} == {"01001", "99"}

    def test_duplicates_ignored(self):
        index = GeoIndex(_territories() + [Territory(code="69", name="Dup", level=Level.DEPARTMENT)])
        assert index.get(Level.DEPARTMENT, "69").name == "Rhône"

    async def test_load_from_collection(self):
        docs = [
            {"level": "region", "code": "84", "name": "ARA", "geometry": {"type": "Polygon"}},
            {"level": "commune", "code": "69123", "name": "Lyon", "parent_code": "69",
             "centroid": {"type": "Point", "coordinates": [4.83, 45.76]}, "geometry": {"type": "Polygon"}},
        ]
        index = await GeoIndex.load(FakeDB(**{TERRITORIES: FakeCollection(docs)}))
        lyon = index.get(Level.COMMUNE, "69123")
        assert lyon.centroid.lat == 45.76
        assert lyon.centroid.lon == 4.83
