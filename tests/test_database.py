"""Tests for StudioDB."""

import duckdb
import pytest

from studio_api.database import StudioDB
from studio_api.errors import StoreError


class TestLifecycle:
    def test_initialize_creates_file_and_schema(self, temp_data_dir):
        path = temp_data_dir["data_dir"] / "nested" / "studio.duckdb"
        db = StudioDB(path, threads=2, memory_limit="512MB")
        db.initialize()

        try:
            assert path.exists()
            assert db.ping()
            assert db.list_user_tables(1) == []
        finally:
            db.close()

    def test_initialize_is_idempotent(self, db):
        db.initialize()

        assert db.ping()

    def test_reopen_keeps_data(self, temp_data_dir):
        path = temp_data_dir["database_path"]
        db = StudioDB(path)
        db.initialize()
        db.create_project(name="Neon City")
        db.close()

        reopened = StudioDB(path)
        reopened.initialize()
        try:
            assert [p["name"] for p in reopened.list_projects()] == ["Neon City"]
        finally:
            reopened.close()

    def test_closed_store_raises(self, db):
        db.close()

        with pytest.raises(StoreError, match="not initialized"):
            db.list_projects()
        assert db.ping() is False


class TestQueries:
    def test_store_errors_are_wrapped(self, db):
        with pytest.raises(StoreError) as exc_info:
            db.execute("SELECT * FROM no_such_table")

        assert isinstance(exc_info.value.cause, duckdb.Error)

    def test_transaction_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO projects (name) VALUES ('Ghost')")
                raise RuntimeError("abort")

        assert db.list_projects() == []

    def test_transaction_rolls_back_ddl(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute("CREATE TABLE scratch (x INTEGER)")
                raise RuntimeError("abort")

        row = db.execute_one(
            "SELECT COUNT(*) AS n FROM information_schema.tables WHERE table_name = 'scratch'"
        )
        assert row["n"] == 0

    def test_timestamps_are_iso_strings(self, db):
        project = db.create_project(name="Neon City")

        assert isinstance(project["created_at"], str)
        assert "T" in project["created_at"]


class TestProjectsAndCatalog:
    def test_update_project_ignores_none(self, db, project):
        assert db.update_project(project["id"], status=None, progress="90%")

        updated = db.get_project(project["id"])
        assert updated["status"] == "in_development"
        assert updated["progress"] == "90%"

    def test_update_missing_project(self, db):
        assert db.update_project(999, name="X") is False
        assert db.update_project(999) is False

    def test_cascade_delete_counts(self, db, project):
        db.create_task(title="A", project_id=project["id"])
        db.create_build(project["id"], "1.0", "PC", "success")
        with db.transaction() as conn:
            table_id = db.insert_user_table(conn, project["id"], "Inventory", None, "[]")
            db.set_physical_table_name(conn, table_id, "user_data_table_1")
            db.insert_user_table(conn, project["id"], "Orphan", None, "[]")

        counts, physical_tables = db.cascade_delete_project(project["id"])

        assert counts == {"tasks": 1, "builds": 1, "user_tables": 2, "projects": 1}
        assert physical_tables == ["user_data_table_1"]
        assert db.list_user_tables(project["id"]) == []
        assert db.get_project(project["id"]) is None

    def test_user_table_catalog(self, db, project):
        with db.transaction() as conn:
            table_id = db.insert_user_table(conn, project["id"], "Inventory", None, "[]")
            db.set_physical_table_name(conn, table_id, f"user_data_table_{table_id}")

        record = db.get_user_table(table_id)
        assert record["physical_table_name"] == f"user_data_table_{table_id}"
        assert record["updated_at"] is None
        assert db.count_user_tables() == 1

        assert db.delete_user_table(table_id) == 1
        assert db.delete_user_table(table_id) == 0


class TestRecipesAndIngredients:
    def test_recipe_crud(self, db):
        recipe = db.create_recipe(name="Healing Potion", ingredients="Red Herb", difficulty=None)

        assert recipe["difficulty"] is None
        assert db.find_recipe("Healing Potion")["id"] == recipe["id"]
        assert db.update_recipe(recipe["id"], difficulty="easy", name=None)
        assert db.get_recipe(recipe["id"])["name"] == "Healing Potion"
        assert db.delete_recipe(recipe["id"])
        assert db.list_recipes() == []

    def test_missing_records(self, db):
        assert db.update_ingredient(999, rarity="rare") is False
        assert db.update_ingredient(999) is False
        assert db.delete_ingredient(999) is False
        assert db.find_ingredient("Red Herb") is None


class TestActivities:
    def test_log_and_list(self, db):
        db.log_activity("project_created", "first")
        db.log_activity("project_updated", "second")

        activities = db.list_activities(limit=1)

        assert [a["description"] for a in activities] == ["second"]

    def test_log_activity_never_raises(self, db):
        db.close()

        db.log_activity("project_created", "lost")

    def test_seed_only_into_empty_database(self, db):
        assert db.seed_demo_data() is True
        assert db.seed_demo_data() is False

        assert db.count_projects() == 4
        assert len(db.list_builds(db.list_projects()[0]["id"])) == 2
