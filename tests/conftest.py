"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from studio_api.config import settings
from studio_api.database import StudioDB
from studio_api.main import app
from studio_api.table_engine import TableLifecycleManager

# Test admin API key for authentication
TEST_ADMIN_API_KEY = "test_admin_key_for_testing"

INVENTORY_SCHEMA = [
    {"name": "itemName", "type": "string"},
    {"name": "qty", "type": "number"},
    {"name": "equipped", "type": "boolean"},
]


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point settings at a temporary data directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    database_path = data_dir / "studio.duckdb"

    monkeypatch.setattr(settings, "data_dir", data_dir)
    monkeypatch.setattr(settings, "database_path", database_path)
    monkeypatch.setattr(settings, "admin_api_key", TEST_ADMIN_API_KEY)
    monkeypatch.setattr(settings, "seed_demo_data", False)

    yield {"data_dir": data_dir, "database_path": database_path}


@pytest.fixture
def client(temp_data_dir):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    """Return headers with admin API key for authentication."""
    return {"Authorization": f"Bearer {TEST_ADMIN_API_KEY}"}


@pytest.fixture
def db(temp_data_dir):
    """Initialized StudioDB on a temporary file."""
    studio_db = StudioDB(temp_data_dir["database_path"])
    studio_db.initialize()

    yield studio_db

    studio_db.close()


@pytest.fixture
def manager(db):
    return TableLifecycleManager(db)


@pytest.fixture
def project(db):
    """A project stored directly through the database layer."""
    return db.create_project(name="Neon City", status="in_development")


@pytest.fixture
def api_project(client, admin_headers):
    """A project created through the API."""
    response = client.post(
        "/api/projects", json={"name": "Neon City"}, headers=admin_headers
    )
    assert response.status_code == 201
    return response.json()
