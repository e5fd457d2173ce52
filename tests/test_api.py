"""Tests for the FastAPI endpoints."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSource
from lpdash.config import Settings
from lpdash_api import main


@pytest.fixture
def make_client(tmp_path, monkeypatch):
    settings = Settings(
        assumptions_path=str(tmp_path / "assumptions.json"),
        cache_path=str(tmp_path / "cache.sqlite3"),
        load_timeout=5,
    )
    monkeypatch.setattr(main, "get_settings", lambda: settings)

    def factory(source):
        monkeypatch.setattr(main, "get_source", lambda: source)
        main._dataset.reset()
        return TestClient(main.app)

    yield factory
    main._dataset.reset()


class TestMetaOptions:
    def test_fixture_options(self, make_client):
        client = make_client(FakeSource())

        resp = client.get("/meta/options")

        assert resp.status_code == 200
        body = resp.json()
        assert body["origin"] == "fixture"
        assert body["uses_fixture"] is True
        assert body["lp_number"] == ["LP1", "LP2", "LP10-1"]
        assert body["media"] == ["Acom", "Promise"]

    def test_transport_failure_is_502(self, make_client, failing_source):
        client = make_client(failing_source)

        resp = client.get("/meta/options")

        assert resp.status_code == 502
        assert resp.json()["type"] == "TransportFailure"
        assert "API key not valid" in resp.json()["error"]


class TestReport:
    def test_filtered_report(self, make_client):
        client = make_client(FakeSource())

        resp = client.post("/report", json={"filters": {"lp_number": "LP1"}, "assumptions": {"diff_rate": 10}})

        assert resp.status_code == 200
        body = resp.json()
        assert body["row_counts"] == {"records": 6, "filtered": 4}
        assert body["totals"]["cost"] == pytest.approx(50000.0)
        assert body["assumptions"]["diff_rate"] == 10.0
        assert body["est_allowable_cpa_adjusted"] == pytest.approx(body["totals"]["est_allowable_cpa"] * 1.1)
        assert [m["merchant"] for m in body["merchants"]] == ["acom", "promise", "mobit", "aiful"]
        assert body["uses_fixture"] is True

    def test_infinite_diff_rate_is_not_a_server_error(self, make_client):
        client = make_client(FakeSource())

        resp = client.post(
            "/report",
            content=b'{"assumptions": {"diff_rate": Infinity}}',
            headers={"content-type": "application/json"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["est_allowable_cpa_adjusted"] is None
        assert body["table"][-1]["差分率"] == "-"

    def test_empty_request_uses_stored_assumptions(self, make_client):
        client = make_client(FakeSource())
        client.put("/assumptions/main", json={"unit_prices": {"acom": 90000}, "diff_rate": 5})

        body = client.post("/report", json={}).json()

        assert body["assumptions"]["unit_prices"]["acom"] == 90000.0
        assert body["assumptions"]["diff_rate"] == 5.0

    def test_live_data(self, make_client, live_conversions, live_costs):
        client = make_client(FakeSource(live_conversions, live_costs))

        body = client.post("/report", json={"filters": {"start_date": "2025-02-02"}}).json()

        assert body["origin"] == "live"
        assert body["row_counts"]["filtered"] == 1
        assert body["totals"]["cost"] == pytest.approx(6000.0)


class TestExport:
    def test_csv(self, make_client):
        client = make_client(FakeSource())

        resp = client.post("/export?filename=lp.csv", json={})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "lp.csv" in resp.headers["content-disposition"]
        lines = resp.content.decode("utf-8-sig").splitlines()
        assert lines[0].startswith("商材名,mCV,rCV")
        assert lines[-1].startswith("TOTAL,")


class TestAssumptions:
    def test_defaults_then_update(self, make_client):
        client = make_client(FakeSource())

        assert client.get("/assumptions/main").json()["unit_prices"]["acom"] == 85000.0

        resp = client.put("/assumptions/main", json={"unit_est_rates": {"acom": 25}})

        assert resp.status_code == 200
        stored = client.get("/assumptions/main").json()
        assert stored["unit_est_rates"]["acom"] == 25.0
        assert stored["unit_est_rates"]["promise"] == 20.0
        assert client.get("/assumptions/other").json()["unit_est_rates"]["acom"] == 20.0


class TestRefresh:
    def test_refresh_reloads(self, make_client, live_conversions, live_costs):
        source = FakeSource(live_conversions, live_costs)
        client = make_client(source)

        client.get("/meta/options")
        resp = client.post("/refresh")

        assert resp.status_code == 200
        assert resp.json()["records"] == 3
        assert ("conversions", True, False) in source.calls

    def test_cache_clear(self, make_client):
        client = make_client(FakeSource())

        resp = client.post("/cache/clear")

        assert resp.json() == {"cleared": True}
