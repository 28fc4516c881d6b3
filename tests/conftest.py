import pytest
from fastapi.testclient import TestClient

from main import create_app
from utils.settings import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(database_dir=str(tmp_path), translation_provider="mock", cleanup_interval_seconds=3600)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def session_id(client):
    response = client.get("/api/sessions", params={"user_id": "guest-1", "host_id": "h1"})
    return response.json()["session"]["id"]
