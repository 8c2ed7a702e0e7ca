"""Tests for the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from lifesync.main import app


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_list_sensors(client):
    response = client.get("/api/sensors")
    assert response.status_code == 200

    sensors = response.json()
    assert [s["descriptor"]["id"] for s in sensors] == ["1", "2", "3", "4"]
    assert all(s["is_active"] is False for s in sensors)


def test_unknown_sensor(client):
    assert client.post("/api/sensors/99/start").status_code == 404


def test_start_requires_permission(client):
    response = client.post("/api/sensors/1/start")
    assert response.status_code == 403
    assert response.json()["detail"]["remediation"] == "open_permission_settings"


def test_app_sessions_flow(client):
    assert client.post("/api/permission", json={"granted": True}).status_code == 200

    response = client.post("/api/sensors/1/start")
    assert response.status_code == 200
    assert response.json()["is_active"] is True

    response = client.post("/api/foreground", json={"package_name": "com.duolingo"})
    assert response.status_code == 200
    assert response.json()["package_name"] == "com.duolingo"

    sensors = client.get("/api/sensors").json()
    assert sensors[0]["data"]["current_app"] == "Duolingo"

    response = client.post("/api/sensors/1/stop")
    assert response.status_code == 200
    assert response.json()["is_active"] is False


def test_missing_accelerometer(client):
    response = client.post("/api/sensors/3/start")
    assert response.status_code == 503
    assert response.json()["detail"]["remediation"] == "check_device"


def test_app_state(client):
    assert client.post("/api/app-state/sleeping").status_code == 400
    response = client.post("/api/app-state/background")
    assert response.status_code == 200
    assert response.json() == {"state": "background"}


def test_local_points(client):
    response = client.get("/api/points")
    assert response.status_code == 200
    assert set(response.json()) == {"social", "fisica", "afectivo", "cognitivo", "linguistico"}


def test_github_credentials(client):
    response = client.put("/api/github/credentials", json={"token": "ghp_test", "username": "octocat"})
    assert response.status_code == 200
    assert response.json() == {"configured": True}

    response = client.delete("/api/github/credentials")
    assert response.status_code == 200
    assert response.json() == {"configured": False}
