"""Tests for user table endpoints."""

import json
import warnings

import duckdb
import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel

from studio_api.models.responses import UserTableCreate, UserTableResponse, UserTableUpdate
from studio_api.table_engine import TableLifecycleManager

from conftest import INVENTORY_SCHEMA


@pytest.fixture
def inventory(client, admin_headers, api_project):
    response = client.post(
        "/api/user-tables",
        json={
            "projectId": api_project["id"],
            "name": "Inventory",
            "description": "Player items",
            "schemaJson": json.dumps(INVENTORY_SCHEMA),
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestCreateUserTable:
    """Tests for POST /api/user-tables."""

    def test_create_success(self, client: TestClient, admin_headers, api_project):
        response = client.post(
            "/api/user-tables",
            json={
                "projectId": api_project["id"],
                "name": "Inventory",
                "description": "Player items",
                "schemaJson": json.dumps(INVENTORY_SCHEMA),
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["projectId"] == api_project["id"]
        assert data["name"] == "Inventory"
        assert data["description"] == "Player items"
        assert data["physicalTableName"] == f"user_data_table_{data['id']}"
        assert json.loads(data["schemaJson"]) == INVENTORY_SCHEMA

    def test_create_with_inline_schema(self, client: TestClient, admin_headers, api_project):
        response = client.post(
            "/api/user-tables",
            json={
                "projectId": api_project["id"],
                "name": "Quests",
                "schemaJson": [{"name": "title", "type": "string"}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["description"] is None

    @pytest.mark.parametrize("missing", ["projectId", "name", "schemaJson"])
    def test_missing_field_is_validation_error(
        self, client: TestClient, admin_headers, api_project, missing
    ):
        body = {
            "projectId": api_project["id"],
            "name": "Inventory",
            "schemaJson": json.dumps(INVENTORY_SCHEMA),
        }
        del body[missing]

        response = client.post("/api/user-tables", json=body, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_empty_schema(self, client: TestClient, admin_headers, api_project):
        response = client.post(
            "/api/user-tables",
            json={"projectId": api_project["id"], "name": "Inventory", "schemaJson": "[]"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "at least one field" in response.json()["detail"]["message"]

        listed = client.get(f"/api/user-tables/{api_project['id']}", headers=admin_headers)
        assert listed.json() == []

    def test_unsafe_field_name(self, client: TestClient, admin_headers, api_project):
        response = client.post(
            "/api/user-tables",
            json={
                "projectId": api_project["id"],
                "name": "Inventory",
                "schemaJson": json.dumps([{"name": 'x"; DROP TABLE projects; --'}]),
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert client.get("/api/projects", headers=admin_headers).status_code == 200

    def test_unknown_project(self, client: TestClient, admin_headers):
        response = client.post(
            "/api/user-tables",
            json={"projectId": 999, "name": "Inventory", "schemaJson": INVENTORY_SCHEMA},
            headers=admin_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_store_failure_is_500_and_rolled_back(
        self, client: TestClient, admin_headers, api_project, monkeypatch
    ):
        def failing_ddl(self, conn, table_name, fields):
            raise duckdb.IOException("disk full")

        monkeypatch.setattr(TableLifecycleManager, "_create_physical_table", failing_ddl)

        response = client.post(
            "/api/user-tables",
            json={
                "projectId": api_project["id"],
                "name": "Inventory",
                "schemaJson": INVENTORY_SCHEMA,
            },
            headers=admin_headers,
        )

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error"] == "table_creation_failed"
        assert "disk full" in detail["message"]

        listed = client.get(f"/api/user-tables/{api_project['id']}", headers=admin_headers)
        assert listed.json() == []


class TestListUserTables:
    """Tests for GET /api/user-tables/{projectId}."""

    def test_list(self, client: TestClient, admin_headers, api_project, inventory):
        response = client.get(f"/api/user-tables/{api_project['id']}", headers=admin_headers)

        assert response.status_code == 200
        tables = response.json()
        assert [t["id"] for t in tables] == [inventory["id"]]
        assert tables[0]["physicalTableName"] == inventory["physicalTableName"]

    def test_list_unknown_project_is_empty(self, client: TestClient, admin_headers):
        response = client.get("/api/user-tables/999", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == []


class TestUpdateUserTable:
    """Tests for PUT /api/user-tables/{id}."""

    def test_update(self, client: TestClient, admin_headers, inventory):
        schema = INVENTORY_SCHEMA + [{"name": "rarity", "type": "string"}]

        response = client.put(
            f"/api/user-tables/{inventory['id']}",
            json={"name": "Backpack", "description": "Carried", "schemaJson": json.dumps(schema)},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Backpack"
        assert data["description"] == "Carried"
        assert json.loads(data["schemaJson"]) == schema
        assert "message" in data

        inserted = client.post(
            f"/api/user-tables/{inventory['id']}/data",
            json={"itemName": "Sword", "rarity": "epic"},
            headers=admin_headers,
        )
        assert inserted.status_code == 201
        rows = client.get(f"/api/user-tables/{inventory['id']}/data", headers=admin_headers)
        assert rows.json()[0]["rarity"] == "epic"

    def test_update_missing_name(self, client: TestClient, admin_headers, inventory):
        response = client.put(
            f"/api/user-tables/{inventory['id']}",
            json={"schemaJson": json.dumps(INVENTORY_SCHEMA)},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_update_missing_schema(self, client: TestClient, admin_headers, inventory):
        response = client.put(
            f"/api/user-tables/{inventory['id']}",
            json={"name": "Backpack"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_update_removing_field_rejected(self, client: TestClient, admin_headers, inventory):
        response = client.put(
            f"/api/user-tables/{inventory['id']}",
            json={"name": "Inventory", "schemaJson": json.dumps(INVENTORY_SCHEMA[:1])},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["details"]["field"] == "qty"

    def test_update_not_found(self, client: TestClient, admin_headers):
        response = client.put(
            "/api/user-tables/404",
            json={"name": "Inventory", "schemaJson": json.dumps(INVENTORY_SCHEMA)},
            headers=admin_headers,
        )

        assert response.status_code == 404


class TestDeleteUserTable:
    """Tests for DELETE /api/user-tables/{id}."""

    def test_delete(self, client: TestClient, admin_headers, api_project, inventory):
        response = client.delete(f"/api/user-tables/{inventory['id']}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["droppedPhysicalTable"] is True
        assert inventory["physicalTableName"] in data["message"]

        listed = client.get(f"/api/user-tables/{api_project['id']}", headers=admin_headers)
        assert listed.json() == []

    def test_delete_twice(self, client: TestClient, admin_headers, inventory):
        client.delete(f"/api/user-tables/{inventory['id']}", headers=admin_headers)

        response = client.delete(f"/api/user-tables/{inventory['id']}", headers=admin_headers)
        assert response.status_code == 404

        data = client.get(f"/api/user-tables/{inventory['id']}/data", headers=admin_headers)
        assert data.status_code == 404


class TestUserTableData:
    """Tests for GET/POST /api/user-tables/{tableId}/data."""

    def test_inventory_round_trip(self, client: TestClient, admin_headers, inventory):
        response = client.post(
            f"/api/user-tables/{inventory['id']}/data",
            json={"itemName": "Sword", "qty": "3", "equipped": True},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json() == {"id": 1, "itemName": "Sword", "qty": "3", "equipped": True}

        rows = client.get(f"/api/user-tables/{inventory['id']}/data", headers=admin_headers)
        assert rows.status_code == 200
        assert rows.json() == [{"id": 1, "itemName": "Sword", "qty": 3, "equipped": True}]

    def test_empty_table(self, client: TestClient, admin_headers, inventory):
        response = client.get(f"/api/user-tables/{inventory['id']}/data", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == []

    def test_no_valid_data(self, client: TestClient, admin_headers, inventory):
        response = client.post(
            f"/api/user-tables/{inventory['id']}/data",
            json={"color": "red"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_bad_number(self, client: TestClient, admin_headers, inventory):
        response = client.post(
            f"/api/user-tables/{inventory['id']}/data",
            json={"qty": "abc"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["details"]["field"] == "qty"

        rows = client.get(f"/api/user-tables/{inventory['id']}/data", headers=admin_headers)
        assert rows.json() == []

    def test_non_object_body(self, client: TestClient, admin_headers, inventory):
        response = client.post(
            f"/api/user-tables/{inventory['id']}/data",
            json=["Sword"],
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_unknown_table(self, client: TestClient, admin_headers):
        assert client.get("/api/user-tables/404/data", headers=admin_headers).status_code == 404
        response = client.post(
            "/api/user-tables/404/data", json={"itemName": "Sword"}, headers=admin_headers
        )
        assert response.status_code == 404


class TestUserTablesAuth:
    def test_requires_admin_key(self, client: TestClient, api_project):
        response = client.get(f"/api/user-tables/{api_project['id']}")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "unauthorized"


class TestUserTableModels:
    """Tests for the user table request/response models."""

    @pytest.mark.parametrize("model", [UserTableCreate, UserTableUpdate, UserTableResponse])
    def test_no_field_shadows_base_model(self, model):
        assert not set(model.model_fields) & set(dir(BaseModel))

    def test_response_reads_catalog_record(self):
        record = {
            "id": 1,
            "project_id": 2,
            "name": "Inventory",
            "schema_json": '[{"name": "qty"}]',
        }

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            dumped = UserTableResponse(**record).model_dump(by_alias=True)

        assert dumped["schemaJson"] == '[{"name": "qty"}]'
        assert "schema_json" not in dumped

    def test_request_accepts_wire_name(self):
        body = UserTableUpdate.model_validate({"schemaJson": [{"name": "qty"}]})

        assert body.table_schema == [{"name": "qty"}]
