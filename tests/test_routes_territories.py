"""
test_routes_territories.py — GET /api/v1/territories/{code}.

Run:
    pytest tests/test_routes_territories.py -v
"""

import pytest
from fakes import FakeCollection, FakeDB

from terrimap.core.database import CRITERION_VALUES, get_db
from terrimap.main import app
from terrimap.models.geo import Centroid, Level, Territory
from terrimap.services.geo_index import GeoIndex, get_geo_index


def _index():
    return GeoIndex([
        Territory(code="84", name="Auvergne-Rhône-Alpes", level=Level.REGION),
        Territory(code="69", name="Rhône", level=Level.DEPARTMENT, parent_code="84"),
        Territory(code="69123", name="Lyon", level=Level.COMMUNE, parent_code="69", region_code="84",
                  population=522250, centroid=Centroid(lat=45.758, lon=4.835)),
        Territory(code="01001", name="L'Abergement-Clémenciat", level=Level.COMMUNE, parent_code="01"),
        # département 38 missing; the commune still names its region
        Territory(code="38185", name="Grenoble", level=Level.COMMUNE, parent_code="38", region_code="84"),
    ])


@pytest.fixture
def db():
    fake = FakeDB(**{
        CRITERION_VALUES: FakeCollection([
            {"territory_code": "69123", "criterion_id": "temperature", "value": 13.1, "score": 64,
             "rank_national": 200, "source": "SYNOP", "source_date": "2025-01-01"},
            {"territory_code": "69123", "criterion_id": "rainfall", "value": 830, "score": 40,
             "rank_national": 9000, "source": "SYNOP", "source_date": "2025-01-01"},
            {"territory_code": "38185", "criterion_id": "temperature", "value": 12.9, "score": 61,
             "source": "CSV", "source_date": "2025-01-01"},
        ]),
    })
    index = _index()
    app.dependency_overrides[get_db] = lambda: fake
    app.dependency_overrides[get_geo_index] = lambda: index
    return fake


class TestTerritoryDetail:

    async def test_commune_with_parents_and_values(self, client, db):
        response = await client.get("/api/v1/territories/69123")

        assert response.status_code == 200
        assert response.json() == {
            "code": "69123",
            "name": "Lyon",
            "level": "commune",
            "population": 522250,
            "department": {"code": "69", "name": "Rhône"},
            "region": {"code": "84", "name": "Auvergne-Rhône-Alpes"},
            "criteria": {
                "temperature": {"value": 13.1, "score": 64, "rankNational": 200},
                "rainfall": {"value": 830, "score": 40, "rankNational": 9000},
            },
        }

    async def test_region_found_when_department_missing(self, client, db):
        response = await client.get("/api/v1/territories/38185")
        body = response.json()
        assert response.status_code == 200
        assert "department" not in body
        assert body["region"] == {"code": "84", "name": "Auvergne-Rhône-Alpes"}

    async def test_value_without_rank(self, client, db):
        response = await client.get("/api/v1/territories/38185")
        assert response.json()["criteria"] == {"temperature": {"value": 12.9, "score": 61}}

    async def test_missing_parents_and_values_omitted(self, client, db):
        response = await client.get("/api/v1/territories/01001")
        body = response.json()
        assert response.status_code == 200
        assert "department" not in body and "region" not in body
        assert body["criteria"] == {}

    async def test_unknown_commune(self, client, db):
        response = await client.get("/api/v1/territories/99999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Commune '99999' not found"

    async def test_department_code_is_not_a_commune(self, client, db):
        response = await client.get("/api/v1/territories/69")
        assert response.status_code == 404

    async def test_no_database(self, client):
        response = await client.get("/api/v1/territories/69123")
        assert response.status_code == 503

    async def test_index_not_loaded(self, client, db):
        app.dependency_overrides[get_geo_index] = lambda: None
        response = await client.get("/api/v1/territories/69123")
        assert response.status_code == 503
