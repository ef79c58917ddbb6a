"""
Tests for the HTTP presentation surface.

The TestClient is used without its context manager so the lifespan (and
its network-bound schedulers) never starts; schedulers are attached to
app.state directly.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from floodwatch.main import create_app
from floodwatch.scheduler.refresh_scheduler import RefreshScheduler

from conftest import MemoryCacheStore, healthy_routes, make_aggregator, make_settings


def _client_with_zone() -> TestClient:
    settings = make_settings()
    app = create_app(settings)
    aggregator = make_aggregator({}, settings=settings)
    scheduler = RefreshScheduler("jalukbari", aggregator, MemoryCacheStore(), app.state.monitor, settings)
    app.state.schedulers = {"jalukbari": scheduler}
    return TestClient(app)


class TestZones:
    def test_unknown_zone_is_404(self):
        client = TestClient(create_app(make_settings()))
        response = client.get("/api/v1/zones/atlantis/risk")
        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "NOT_FOUND"
        assert body["error"]["details"]["zone_id"] == "atlantis"

    def test_zone_state(self):
        client = _client_with_zone()
        response = client.get("/api/v1/zones/jalukbari/risk")
        assert response.status_code == 200
        body = response.json()
        assert body["zone_id"] == "jalukbari"
        assert body["state"] == "cold"
        assert body["icon"] == "cloud"
        assert body["description"] == "Unknown"
        assert body["description_local"] == "অজ্ঞাত"
        assert body["active_warnings"] == []

    def test_refresh_on_stopped_scheduler_is_not_applied(self):
        client = _client_with_zone()
        response = client.post("/api/v1/zones/jalukbari/refresh")
        assert response.status_code == 200
        assert response.json()["applied"] is False

    def test_refresh_unknown_zone(self):
        client = TestClient(create_app(make_settings()))
        assert client.post("/api/v1/zones/atlantis/refresh").status_code == 404


class TestConnectivity:
    def test_publish_offline(self):
        app = create_app(make_settings())
        client = TestClient(app)
        response = client.post("/api/v1/connectivity/offline")
        assert response.status_code == 200
        assert response.json() == {"status": "offline", "subscribers": 0}
        assert app.state.monitor.online is False

    def test_invalid_status(self):
        client = TestClient(create_app(make_settings()))
        assert client.post("/api/v1/connectivity/sideways").status_code == 422


class TestStations:
    def test_list(self):
        client = TestClient(create_app(make_settings()))
        stations = client.get("/api/v1/stations").json()
        assert len(stations) == 5
        guwahati = next(s for s in stations if s["id"] == "brahmaputra-guwahati")
        assert guwahati["danger_level"] == 49.68
        assert guwahati["zones"][0] == "jalukbari"

    def test_history(self):
        client = TestClient(create_app(make_settings()))
        body = client.get("/api/v1/stations/brahmaputra-guwahati/history").json()
        assert body["highest_flood_level"] == 51.46
        assert body["flood_history"][0]["year"] == 2004

    def test_history_unknown_station(self):
        client = TestClient(create_app(make_settings()))
        response = client.get("/api/v1/stations/thames/history")
        assert response.status_code == 404
        assert response.json()["error"]["details"]["station_id"] == "thames"

    def test_liveness(self):
        client = TestClient(create_app(make_settings()))
        assert client.get("/health/live").json() == {"status": "alive"}


class TestDashboard:
    def test_summary_over_requested_zones(self):
        settings = make_settings()
        app = create_app(settings)
        app.state.aggregator = make_aggregator(healthy_routes(rain=8.0), settings=settings)
        body = TestClient(app).get("/api/v1/dashboard/summary?zones=jalukbari,maligaon").json()
        assert body["rainfall"] == 16.0
        assert body["rainy_zones"] == 2
        assert body["warnings"] == 2
        assert [z["zoneId"] for z in body["zones"]] == ["jalukbari", "maligaon"]

    def test_defaults_to_monitored_zones(self):
        settings = make_settings()
        app = create_app(settings)
        app.state.aggregator = make_aggregator(healthy_routes(), settings=settings)
        body = TestClient(app).get("/api/v1/dashboard/summary").json()
        assert [z["zoneId"] for z in body["zones"]] == list(settings.MONITORED_ZONES)

    def test_unknown_zone(self):
        app = create_app(make_settings())
        app.state.aggregator = make_aggregator(healthy_routes())
        response = TestClient(app).get("/api/v1/dashboard/summary?zones=jalukbari,atlantis")
        assert response.status_code == 404
        assert response.json()["error"]["details"]["zone_id"] == "atlantis"

    def test_not_started(self):
        response = TestClient(create_app(make_settings())).get("/api/v1/dashboard/summary")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


class TestAppSettings:
    def test_stations_use_app_baseline_ratio(self):
        client = TestClient(create_app(make_settings(BASELINE_DANGER_RATIO=0.5)))
        guwahati = next(s for s in client.get("/api/v1/stations").json() if s["id"] == "brahmaputra-guwahati")
        assert guwahati["baseline_level"] == 24.84

    def test_known_zone_without_scheduler_is_404(self):
        response = TestClient(create_app(make_settings())).get("/api/v1/zones/maligaon/risk")
        assert response.status_code == 404
