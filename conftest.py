import pytest
from datetime import datetime
from fastapi.testclient import TestClient

from config import Settings
from manager import EventsManager

TIME1 = datetime(2020, 1, 1, 12, 0)
TIME2 = datetime(2020, 1, 1, 16, 0)


@pytest.fixture
def manager():
    return EventsManager()


@pytest.fixture
def settings(tmp_path):
    return Settings(database_path=str(tmp_path / "events.db"), secret_key="test-secret")


@pytest.fixture
def client(settings):
    from main import create_app
    with TestClient(create_app(settings)) as c:
        yield c


def register_and_login(client, username, role, password="password123"):
    """Create an account and return (user_id, auth headers)."""
    response = client.post("/register", json={"username": username, "password": password, "role": role})
    user_id = response.json()["data"]["id"]
    response = client.post("/login", json={"username": username, "password": password})
    return user_id, {"Authorization": f"Bearer {response.json()['access_token']}"}
