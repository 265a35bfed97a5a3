"""Tests for the HTTP API."""
import pytest

from carfinder import crud
from carfinder.api.routes import get_scanner
from carfinder.main import app
from carfinder.scanner import ScanResult, StopReason


@pytest.fixture
def created(client):
    resp = client.post("/api/searches", json={
        "name": "Carros RS",
        "human_url": "https://www.olx.com.br/autos-e-pecas/carros-vans-e-utilitarios/estado-rs",
    })
    assert resp.status_code == 201
    return resp.json()


def test_health_is_open(client):
    resp = client.get("/health", headers={"X-Access-Token": ""})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_token_required(client):
    assert client.get("/api/searches", headers={"X-Access-Token": "wrong"}).status_code == 401


def test_search_crud(client, created):
    assert created["check_period_minutes"] == 60
    assert created["model_whitelist"] == []

    resp = client.put(f"/api/searches/{created['id']}", json={"model_blacklist": ["uno"]})
    assert resp.status_code == 200
    assert resp.json()["model_blacklist"] == ["uno"]

    assert [s["id"] for s in client.get("/api/searches").json()] == [created["id"]]
    assert client.delete(f"/api/searches/{created['id']}").status_code == 200
    assert client.get(f"/api/searches/{created['id']}").status_code == 404


def test_create_search_rejects_relative_url(client):
    resp = client.post("/api/searches", json={"name": "x", "human_url": "/autos"})
    assert resp.status_code == 422


def test_update_without_fields(client, created):
    assert client.put(f"/api/searches/{created['id']}", json={}).status_code == 400


def test_alerts_and_status_update(client, created, db, make_listing):
    crud.insert_alerts(db, created["id"], [make_listing(1, "Honda Civic", search_id=created["id"])])

    alerts = client.get(f"/api/searches/{created['id']}/alerts").json()
    assert [a["list_id"] for a in alerts] == ["1"]

    resp = client.put(f"/api/alerts/{alerts[0]['id']}", json={"status": "muted"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "muted"
    assert client.put(f"/api/alerts/{alerts[0]['id']}", json={"status": "bogus"}).status_code == 422
    assert client.put("/api/alerts/9999", json={"status": "seen"}).status_code == 404


def test_opportunities_models_brands_listings(client, created, db, make_listing):
    sid = created["id"]
    prices = ["R$ 10.000", "R$ 11.000", "R$ 12.000", "R$ 15.000", "R$ 20.000"]
    crud.insert_alerts(db, sid, [
        make_listing(i, "Honda Civic", search_id=sid, price=p) for i, p in enumerate(prices)
    ])

    opps = client.get(f"/api/searches/{sid}/opportunities").json()
    assert [o["list_id"] for o in opps] == ["0", "1"]
    assert opps[0]["badges"][0] == "Preço Bom"
    assert client.get("/api/searches/all/opportunities?limit=1").json()[0]["list_id"] == "0"

    models = client.get(f"/api/searches/{sid}/models").json()
    assert models["total"] == 5
    assert models["models"][0]["model"] == "Honda Civic"

    brands = client.get("/api/searches/all/brands").json()
    assert brands == {"brands": [{"brand": "Honda", "count": 5, "percentage": 100}], "total": 5}

    listings = client.get(f"/api/searches/{sid}/listings?sort=price&order=asc&limit=2").json()
    assert listings["total"] == 5
    assert len(listings["listings"]) == 2


def test_scan_one_endpoint(client, created, make_listing):
    class StubScanner:
        def run(self, human_url, search_id):
            return ScanResult(
                listings=[make_listing(7, "Gol", search_id=search_id)],
                sp_min=1, sp_max=2, stop_reason=StopReason.COMPLETED,
                duration_ms=10, requests_count=3, first_list_id="7",
            )

    app.dependency_overrides[get_scanner] = lambda: StubScanner()
    resp = client.post(f"/api/scan/{created['id']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["new_count"] == 1
    assert body["stop_reason"] == "completed"
    assert body["new_ads"][0]["list_id"] == "7"

    logs = client.get(f"/api/searches/{created['id']}/logs").json()
    assert logs[0]["new_listings_count"] == 1

    assert client.post("/api/scan/missing").status_code == 404
