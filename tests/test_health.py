"""Test health check endpoint."""

from fastapi.testclient import TestClient

from genius_writer.main import app, settings

client = TestClient(app)


def test_health_check():
    """Test that /health returns 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_health_reports_environment():
    data = client.get("/health").json()
    assert "environment" in data


def test_cors_allows_frontend_origin():
    origin = settings.FRONTEND_URL
    response = client.options(
        "/health",
        headers={"Origin": origin, "Access-Control-Request-Method": "GET"},
    )
    assert response.headers.get("access-control-allow-origin") == origin
