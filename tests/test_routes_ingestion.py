"""
test_routes_ingestion.py — Ingestion trigger (streamed) and CSV upload.

Run:
    pytest tests/test_routes_ingestion.py -v
"""

import json

import pytest
from fakes import FakeCollection, FakeDB

from terrimap.core.database import CRITERIA, CRITERION_VALUES, get_db
from terrimap.core.errors import SourceFetchError
from terrimap.main import app
from terrimap.models.criteria import IngestionSummary
from terrimap.routes.ingestion import get_ingestion_run

RAMP = {"low": "#3b82f6", "mid": "#fbbf24", "high": "#ef4444"}


@pytest.fixture
def db():
    fake = FakeDB(**{
        CRITERIA: FakeCollection([
            {"_id": "temperature", "name": "Température moyenne", "higher_is_better": True, "color_scale": RAMP},
            {"_id": "propertyPrice", "name": "Prix immobilier", "higher_is_better": False,
             "source": "DVF", "color_scale": RAMP},
        ]),
        CRITERION_VALUES: FakeCollection(),
    })
    app.dependency_overrides[get_db] = lambda: fake
    return fake


def _lines(response) -> list[str]:
    return [line for line in response.text.split("\n") if line]


class TestIngestionTrigger:

    async def test_streams_progress_then_summary(self, client, db):
        calls = []

        async def fake_run(database, criterion, log):
            calls.append((database, criterion.id))
            log("Fetching temperature data from SYNOP API...")
            log("  Mapped 3 communes")
            return IngestionSummary(criterion_id=criterion.id, territories=3, written=3, inserted=3)

        app.dependency_overrides[get_ingestion_run] = lambda: fake_run
        response = await client.post("/api/v1/ingestion/temperature/run")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        lines = _lines(response)
        assert lines[:2] == ["Fetching temperature data from SYNOP API...", "  Mapped 3 communes"]
        summary = json.loads(lines[-1])
        assert summary["criterionId"] == "temperature"
        assert (summary["written"], summary["inserted"], summary["failed"]) == (3, 3, 0)
        assert calls == [(db, "temperature")]

    async def test_source_failure_reported_in_stream(self, client, db):
        async def failing_run(database, criterion, log):
            log("Fetching temperature data from SYNOP API...")
            raise SourceFetchError("https://example.test/synop", 3, status=503)

        app.dependency_overrides[get_ingestion_run] = lambda: failing_run
        response = await client.post("/api/v1/ingestion/temperature/run")

        assert response.status_code == 200
        final = json.loads(_lines(response)[-1])
        assert "after 3 attempts" in final["error"]

    async def test_unknown_criterion(self, client, db):
        response = await client.post("/api/v1/ingestion/nightlife/run")
        assert response.status_code == 404
        assert response.json()["detail"] == "Unknown criterion 'nightlife'"

    async def test_criterion_without_runner(self, client, db):
        response = await client.post("/api/v1/ingestion/propertyPrice/run")
        assert response.status_code == 400
        assert response.json()["detail"] == "No ingestion runner for propertyPrice"

    async def test_no_database(self, client):
        response = await client.post("/api/v1/ingestion/temperature/run")
        assert response.status_code == 503


class TestCsvUpload:

    async def test_upload_scores_and_stores(self, client, db):
        csv_body = "commune_code,value\n75056,10000\n13055,4000\n69123,5500\noops,\n"
        response = await client.post(
            "/api/v1/data/propertyPrice/upload",
            files={"file": ("prices.csv", csv_body.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["total"], body["written"], body["inserted"], body["skipped"]) == (3, 3, 3, 1)
        assert body["parseErrors"] == ["Row 5: invalid commune_code or value"]
        stored = {d["territory_code"]: d for d in db[CRITERION_VALUES].docs}
        assert stored["13055"]["rank_national"] == 1
        assert stored["13055"]["criterion_id"] == "propertyPrice"

    async def test_utf8_bom_accepted(self, client, db):
        response = await client.post(
            "/api/v1/data/propertyPrice/upload",
            files={"file": ("prices.csv", "\ufeffcommune_code,value\n75056,1\n".encode("utf-8"), "text/csv")},
        )
        assert response.status_code == 200
        assert response.json()["total"] == 1

    async def test_bad_header(self, client, db):
        response = await client.post(
            "/api/v1/data/propertyPrice/upload",
            files={"file": ("prices.csv", b"code,price\n75056,1\n", "text/csv")},
        )
        assert response.status_code == 400
        assert "commune_code" in response.json()["detail"]

    async def test_not_utf8(self, client, db):
        response = await client.post(
            "/api/v1/data/propertyPrice/upload",
            files={"file": ("prices.csv", "commune_code,value\n75056,é\n".encode("utf-16"), "text/csv")},
        )
        assert response.status_code == 400

    async def test_unknown_criterion(self, client, db):
        response = await client.post(
            "/api/v1/data/nightlife/upload",
            files={"file": ("x.csv", b"commune_code,value\n75056,1\n", "text/csv")},
        )
        assert response.status_code == 404
