"""
Tests for health probes and the metrics endpoint.
"""

import pytest
from fastapi.testclient import TestClient

from app import models  # noqa: F401
from app.config import settings
from app.main import app
from app.storage import Base, engine


@pytest.fixture(scope="function")
def client():
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


class TestHealth:
    """Test liveness and readiness probes."""

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_spotify_credentials(self, client, monkeypatch):
        monkeypatch.setattr(settings, "SPOTIFY_CLIENT_SECRET", "")

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {
            "status": "not_ready",
            "reason": "Spotify credentials not configured",
        }

    def test_not_ready_without_schema(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "Database not reachable or schema not applied"


class TestMetrics:
    """Test GET /metrics."""

    def test_metrics_exposed(self, client):
        created = client.post("/messages", json={
            "recipientName": "Sam", "message": "hi", "songId": "abc",
            "songName": "Song", "artistName": "Artist", "albumImage": "",
        }).json()
        client.post(f"/messages/{created['id']}/like")
        client.get("/api/spotify/search")

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert "http_requests_total" in body
        assert 'like_requests_total{result="liked"}' in body
        assert 'search_requests_total{result="missing_query"}' in body
        assert "messages_created_total" in body

    def test_http_metrics_labelled_by_route_template(self, client):
        created = client.post("/messages", json={
            "recipientName": "Sam", "message": "hi", "songId": "abc",
            "songName": "Song", "artistName": "Artist", "albumImage": "",
        }).json()
        client.get(f"/messages/{created['id']}")

        body = client.get("/metrics").text

        assert 'path="/messages/{message_id}"' in body
        assert f'path="/messages/{created["id"]}"' not in body
        assert 'path="/metrics"' not in body

    def test_unmatched_path_uses_raw_path(self, client):
        client.get("/no-such-route")

        body = client.get("/metrics").text

        assert 'path="/no-such-route"' in body
