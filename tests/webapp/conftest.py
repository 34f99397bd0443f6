"""Pytest fixtures for webapp tests."""

import pytest

from lessonplay.webapp.config import TestConfig


@pytest.fixture
def app(tmp_path):
    """Create test application with storage under tmp_path."""

    class IsolatedConfig(TestConfig):
        INSTANCE_PATH = tmp_path / "instance"
        MANIFESTS_PATH = str(tmp_path / "manifests")
        SNAPSHOTS_PATH = str(tmp_path / "instance" / "snapshots")
        DATABASE_URI = str(tmp_path / "instance" / "lessonplay.db")

    from lessonplay.webapp import create_app

    app = create_app(IsolatedConfig)
    with app.app_context():
        yield app
        app.extensions["lessonplay"].shutdown()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["lessonplay"]


@pytest.fixture
def stored_games(client, linear_manifest_data, branching_manifest_data):
    """Store the linear and branching manifests; returns their gameIds."""
    for data in (linear_manifest_data, branching_manifest_data):
        response = client.post("/api/manifests", json=data)
        assert response.status_code == 201
    return [linear_manifest_data["gameId"], branching_manifest_data["gameId"]]
