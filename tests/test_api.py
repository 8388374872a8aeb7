"""Tests for the FastAPI service."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from app.backend.main import app
from app.backend.services import analysis_service


@pytest.fixture
def api(mock_client):
    analysis_service.set_client(mock_client)
    with TestClient(app) as client:
        yield client
    analysis_service.set_client(None)


class TestIndexAnalysisEndpoint:

    def test_full_report(self, api: TestClient) -> None:
        resp = api.get("/api/indexes/analysis", params={"database": "SalesDB"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["row_count"] == 8
        assert data["rows"][0]["table_name"] == "AuditLog"
        assert data["rows"][0]["index_name"] == "HEAP"

    def test_filters(self, api: TestClient) -> None:
        resp = api.get("/api/indexes/analysis",
                       params={"database": "SalesDB", "table": "Orders", "detail_level": "detailed"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["detail_level"] == "DETAILED"
        assert {r["table_name"] for r in data["rows"]} == {"Orders"}

    def test_repeated_request_served_from_cache(self, api: TestClient, mock_client) -> None:
        params = {"database": "SalesDB", "index": "PK_Orders"}
        first = api.get("/api/indexes/analysis", params=params).json()
        mock_client.mock_catalog["SalesDB"]["indexes"].clear()
        second = api.get("/api/indexes/analysis", params=params).json()
        assert second == first

    @pytest.mark.parametrize("params, status, error", [
        ({"database": "Nope"}, 404, "DatabaseNotFoundError"),
        ({"database": "SalesDB", "table": "Invoices"}, 404, "TableNotFoundError"),
        ({"database": "SalesDB", "index": "IX_Missing"}, 404, "IndexNotFoundError"),
        ({"database": "SalesDB", "detail_level": "FULL"}, 400, "InvalidParameterError"),
    ])
    def test_errors(self, api: TestClient, params, status, error) -> None:
        resp = api.get("/api/indexes/analysis", params=params)
        assert resp.status_code == status
        assert resp.json()["detail"]["error"] == error

    def test_insufficient_privilege(self, api: TestClient, mock_catalog: dict) -> None:
        mock_catalog["permissions"]["view_database_state"] = 0
        resp = api.get("/api/indexes/analysis", params={"database": "SalesDB"})
        assert resp.status_code == 403
        assert "VIEW DATABASE STATE" in resp.json()["detail"]["message"]

    def test_database_required(self, api: TestClient) -> None:
        assert api.get("/api/indexes/analysis").status_code == 422

    def test_concurrent_requests(self, api: TestClient) -> None:
        tables = ["dbo.Customers", "dbo.Orders", "dbo.AuditLog", "archive.Orders"] * 3

        def fetch(table):
            return api.get("/api/indexes/analysis", params={"database": "SalesDB", "table": table})

        with ThreadPoolExecutor(max_workers=6) as pool:
            responses = list(pool.map(fetch, tables))

        assert [r.status_code for r in responses] == [200] * len(tables)
        assert [r.json()["row_count"] for r in responses[:4]] == [3, 2, 2, 1]


class TestReportCache:

    @pytest.fixture(autouse=True)
    def empty_cache(self):
        analysis_service.clear_cache()
        yield
        analysis_service.clear_cache()

    def test_fresh_entry_reused(self, monkeypatch) -> None:
        monkeypatch.setattr(analysis_service.time, "time", lambda: 1000.0)
        assert analysis_service.get_cached("a", lambda: 1, ttl=60) == 1
        assert analysis_service.get_cached("a", lambda: 2, ttl=60) == 1

    def test_expired_entries_dropped_on_store(self, monkeypatch) -> None:
        clock = {"now": 1000.0}
        monkeypatch.setattr(analysis_service.time, "time", lambda: clock["now"])
        analysis_service.get_cached("old", lambda: "stale", ttl=60)
        clock["now"] = 1030.0
        analysis_service.get_cached("recent", lambda: "kept", ttl=60)

        clock["now"] = 1070.0
        analysis_service.get_cached("new", lambda: "fresh", ttl=60)

        assert set(analysis_service._cache) == {"recent", "new"}
        assert set(analysis_service._cache_time) == {"recent", "new"}


def test_health(api: TestClient) -> None:
    resp = api.get("/api/health")
    assert resp.json() == {"status": "healthy", "sql_server": "connected"}


def test_root(api: TestClient) -> None:
    assert "/api/indexes/analysis" in api.get("/").json()["endpoints"]
