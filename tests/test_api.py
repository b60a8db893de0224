"""
API endpoint tests for FastAPI application.
"""

import pytest
from fastapi.testclient import TestClient

from surfcast.main import app
from surfcast.session import ForecastSession
from tests.fakes import AUCKLAND, make_reconciler, offline_providers


@pytest.fixture
def client():
    """Create a test client whose providers are all down."""
    original = (app.state.reconciler, app.state.session, app.state.tz)
    reconciler = make_reconciler(offline_providers())
    app.state.reconciler = reconciler
    app.state.session = ForecastSession(reconciler, AUCKLAND)
    app.state.tz = AUCKLAND
    try:
        yield TestClient(app)
    finally:
        app.state.reconciler, app.state.session, app.state.tz = original


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestConditionsEndpoint:
    """Tests for the /api/v1/conditions endpoint."""

    def test_offline_dataset(self, client):
        response = client.get("/api/v1/conditions")
        assert response.status_code == 200
        data = response.json()

        assert data["offline"] is True
        assert data["status"] == "offline"
        assert len(data["hours"]) == 24
        for values in data["series"].values():
            assert len(values) == 24
        assert data["tides"]["highs"] or data["tides"]["lows"]

    def test_day_offset(self, client):
        today = client.get("/api/v1/conditions").json()["date"]
        tomorrow = client.get("/api/v1/conditions", params={"day_offset": 1}).json()["date"]
        assert tomorrow > today

    def test_day_offset_outside_window(self, client):
        response = client.get("/api/v1/conditions", params={"day_offset": 8})
        assert response.status_code == 422
        response = client.get("/api/v1/conditions", params={"day_offset": -8})
        assert response.status_code == 422


class TestScoreEndpoint:
    """Tests for the /api/v1/score endpoint."""

    def test_score(self, client):
        response = client.get("/api/v1/score", params={
            "wave_height": 1.5, "wind_speed": 5, "rain": 0, "wind_direction": 180,
            "wave_period": 10, "wave_direction": 0, "air_temp": 20, "water_temp": 16,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["score"] == pytest.approx(6.71, abs=0.01)
        assert data["class"] == "fair"

    def test_score_without_wave_height(self, client):
        response = client.get("/api/v1/score", params={"wind_speed": 5})
        assert response.json() == {"score": 0, "class": "poor"}


class TestViewEndpoints:
    """Tests for the view context endpoints."""

    def test_view_assembles_on_first_use(self, client):
        data = client.get("/api/v1/view").json()
        assert data["day_offset"] == 0
        assert data["dataset"] is not None
        assert data["sequence"] == 1

    def test_navigate(self, client):
        data = client.post("/api/v1/view/navigate", params={"delta": 1}).json()
        assert data["day_offset"] == 1
        assert data["can_go_back"] is True

    def test_navigate_outside_window(self, client):
        response = client.post("/api/v1/view/navigate", params={"delta": 8})
        assert response.status_code == 400
