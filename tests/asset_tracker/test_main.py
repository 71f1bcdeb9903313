"""Tests for main application."""

from fastapi.testclient import TestClient
from starlette.routing import Mount

from asset_tracker.config import Settings
from asset_tracker.main import create_app


def test_health_check(test_client: TestClient):
    """Test health check endpoint."""
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "asset_tracker_backend"}


def test_lifespan_opens_database_and_blob_store(test_client: TestClient):
    """Entering the client runs startup; state is available to dependencies."""
    state = test_client.app.state
    assert state.database.is_open is True
    assert state.blob_store.describe()["backend"] == "local"


def test_unknown_route(test_client: TestClient):
    response = test_client.get("/api/does-not-exist")
    assert response.status_code == 404


def test_uploads_mounted_once_across_restarts(test_settings: Settings):
    """Restarting the same app does not stack additional static mounts."""
    app = create_app(test_settings)

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    assert [route.path for route in app.routes if isinstance(route, Mount)] == ["/uploads"]


def test_uploads_not_mounted_for_remote_public_url(test_settings: Settings):
    settings = test_settings.model_copy(update={"blob_public_base_url": "https://cdn.example.com/photos"})

    app = create_app(settings)

    assert not any(isinstance(route, Mount) for route in app.routes)
