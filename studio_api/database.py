"""DuckDB store for the studio platform.

One ``StudioDB`` instance owns the single DuckDB connection of the process.
It is created by the application lifespan (``main.lifespan``), stored on
``app.state.db`` and handed to routers and the user table engine through
FastAPI dependencies. Every operation runs on a short-lived cursor of that
connection, which DuckDB treats as an independent connection to the same
database.

Fixed platform tables (projects, tasks, builds, activities) and the user
table catalog (``user_tables_metadata``) live here. Physical user tables are
created in the same database by ``table_engine.TableLifecycleManager``.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from studio_api import metrics
from studio_api.errors import StoreError

logger = structlog.get_logger()


# ============================================
# Schema definitions
# ============================================

STUDIO_SCHEMA = """
-- Game projects
CREATE SEQUENCE IF NOT EXISTS projects_seq;

CREATE TABLE IF NOT EXISTS projects (
    id BIGINT DEFAULT nextval('projects_seq') PRIMARY KEY,
    name VARCHAR NOT NULL,
    current_version VARCHAR,
    status VARCHAR,
    last_updated VARCHAR,
    description VARCHAR,
    team VARCHAR,
    progress VARCHAR,
    created_at TIMESTAMP DEFAULT current_timestamp
);

-- Project tasks (kanban board)
CREATE SEQUENCE IF NOT EXISTS tasks_seq;

CREATE TABLE IF NOT EXISTS tasks (
    id BIGINT DEFAULT nextval('tasks_seq') PRIMARY KEY,
    title VARCHAR NOT NULL,
    description VARCHAR,
    status VARCHAR NOT NULL DEFAULT 'todo',
    assignee VARCHAR,
    priority VARCHAR NOT NULL DEFAULT 'medium',
    project_id BIGINT
);

-- Build history
CREATE SEQUENCE IF NOT EXISTS builds_seq;

CREATE TABLE IF NOT EXISTS builds (
    id BIGINT DEFAULT nextval('builds_seq') PRIMARY KEY,
    project_id BIGINT NOT NULL,
    version VARCHAR NOT NULL,
    platform VARCHAR NOT NULL,
    status VARCHAR NOT NULL,
    timestamp TIMESTAMP DEFAULT current_timestamp,
    duration VARCHAR
);

CREATE INDEX IF NOT EXISTS idx_builds_project ON builds(project_id);

-- Activity feed / audit trail
CREATE SEQUENCE IF NOT EXISTS activities_seq;

CREATE TABLE IF NOT EXISTS activities (
    id BIGINT DEFAULT nextval('activities_seq') PRIMARY KEY,
    type VARCHAR NOT NULL,
    description VARCHAR,
    timestamp TIMESTAMP DEFAULT current_timestamp
);

-- User table catalog: one row per user-defined table.
-- physical_table_name stays NULL until the physical table exists.
-- Note: no FOREIGN KEY to projects, project deletion cascades in code
CREATE SEQUENCE IF NOT EXISTS user_tables_metadata_seq;

CREATE TABLE IF NOT EXISTS user_tables_metadata (
    id BIGINT DEFAULT nextval('user_tables_metadata_seq') PRIMARY KEY,
    project_id BIGINT NOT NULL,
    name VARCHAR NOT NULL,
    description VARCHAR,
    schema_json VARCHAR NOT NULL,
    physical_table_name VARCHAR,
    created_at TIMESTAMP DEFAULT current_timestamp,
    updated_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_user_tables_project ON user_tables_metadata(project_id);

-- Crafting recipes and the ingredient catalog.
-- Names are unique per table; the routers check this before writing.
CREATE SEQUENCE IF NOT EXISTS recipes_seq;

CREATE TABLE IF NOT EXISTS recipes (
    id BIGINT DEFAULT nextval('recipes_seq') PRIMARY KEY,
    name VARCHAR NOT NULL,
    ingredients VARCHAR NOT NULL,
    difficulty VARCHAR
);

CREATE SEQUENCE IF NOT EXISTS ingredients_seq;

CREATE TABLE IF NOT EXISTS ingredients (
    id BIGINT DEFAULT nextval('ingredients_seq') PRIMARY KEY,
    name VARCHAR NOT NULL,
    type VARCHAR,
    rarity VARCHAR
);
"""

PROJECT_COLUMNS = (
    "name",
    "current_version",
    "status",
    "last_updated",
    "description",
    "team",
    "progress",
)

TASK_COLUMNS = ("title", "description", "status", "assignee", "priority", "project_id")
RECIPE_COLUMNS = ("name", "ingredients", "difficulty")
INGREDIENT_COLUMNS = ("name", "type", "rarity")


def _serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def rows_to_dicts(cursor: duckdb.DuckDBPyConnection, rows: list[tuple]) -> list[dict[str, Any]]:
    """Convert fetched rows to dicts keyed by the cursor's column names."""
    col_names = [col[0] for col in cursor.description]
    return [
        {name: _serialize_value(val) for name, val in zip(col_names, row)}
        for row in rows
    ]


class StudioDB:
    """
    Handle to the studio DuckDB database.

    Usage:
        db = StudioDB(settings.database_path)
        db.initialize()
        ...
        db.close()
    """

    def __init__(
        self,
        db_path: Path | str,
        threads: int | None = None,
        memory_limit: str | None = None,
    ) -> None:
        self.db_path = db_path
        self.threads = threads
        self.memory_limit = memory_limit
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._conn_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def initialize(self) -> None:
        """Open the database file and create the platform schema."""
        with self._conn_lock:
            if self._conn is not None:
                return

            if str(self.db_path) != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            conn = duckdb.connect(str(self.db_path))
            try:
                if self.threads:
                    conn.execute(f"SET threads = {int(self.threads)}")
                if self.memory_limit:
                    conn.execute(f"SET memory_limit = '{self.memory_limit}'")
                conn.execute(STUDIO_SCHEMA)
            except Exception:
                conn.close()
                raise

            self._conn = conn
            logger.info("studio_db_schema_created", path=str(self.db_path))

    def close(self) -> None:
        """Close the underlying connection. Safe to call twice."""
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("studio_db_closed", path=str(self.db_path))

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Get a cursor on the shared connection.

        Usage:
            with db.connection() as conn:
                conn.execute("SELECT * FROM projects")
        """
        with self._conn_lock:
            if self._conn is None:
                raise StoreError("Database is not initialized")
            cursor = self._conn.cursor()

        metrics.STORE_CONNECTIONS_ACTIVE.inc()
        try:
            yield cursor
        finally:
            cursor.close()
            metrics.STORE_CONNECTIONS_ACTIVE.dec()

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Run several statements atomically (DuckDB DDL is transactional too).

        Commits when the block exits normally and rolls back on any exception,
        which is re-raised unchanged. A failing rollback is only logged.
        """
        with self.connection() as conn:
            conn.begin()
            try:
                yield conn
                conn.commit()
            except Exception:
                try:
                    conn.rollback()
                except duckdb.Error as e:
                    logger.error("store_rollback_failed", error=str(e))
                raise

    def execute(self, query: str, params: list | None = None) -> list[dict[str, Any]]:
        """Execute a read query and return rows as dicts."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                cursor = conn.execute(query, params or [])
                return rows_to_dicts(cursor, cursor.fetchall())
        except duckdb.Error as e:
            raise StoreError("Read query failed", e)
        finally:
            duration = time.time() - start_time
            metrics.STORE_QUERIES_TOTAL.labels(operation="read").inc()
            metrics.STORE_QUERY_DURATION.labels(operation="read").observe(duration)

    def execute_one(self, query: str, params: list | None = None) -> dict[str, Any] | None:
        """Execute a query and return single result."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_write(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a write query (INSERT, UPDATE, DELETE).

        Returns the rows of a RETURNING clause. Without one DuckDB yields a
        single row holding the affected-row count.
        """
        start_time = time.time()
        try:
            with self.connection() as conn:
                cursor = conn.execute(query, params or [])
                return cursor.fetchall() if cursor.description else []
        except duckdb.Error as e:
            raise StoreError("Write query failed", e)
        finally:
            duration = time.time() - start_time
            metrics.STORE_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.STORE_QUERY_DURATION.labels(operation="write").observe(duration)

    def ping(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            return self.execute_one("SELECT 1 AS ok") == {"ok": 1}
        except StoreError:
            return False

    # ========================================
    # Project operations
    # ========================================

    def create_project(self, **fields: Any) -> dict[str, Any]:
        """Insert a project and return the stored record."""
        columns = [c for c in PROJECT_COLUMNS if fields.get(c) is not None]
        placeholders = ", ".join("?" for _ in columns)
        rows = self.execute_write(
            f"INSERT INTO projects ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
            [fields[c] for c in columns],
        )
        project_id = rows[0][0]
        logger.info("project_created", project_id=project_id, name=fields.get("name"))
        return self.get_project(project_id)

    def get_project(self, project_id: int) -> dict[str, Any] | None:
        """Get project by ID."""
        return self.execute_one("SELECT * FROM projects WHERE id = ?", [project_id])

    def list_projects(self) -> list[dict[str, Any]]:
        return self.execute("SELECT * FROM projects ORDER BY id")

    def update_project(self, project_id: int, **fields: Any) -> bool:
        """Partially update a project. Fields that are None keep their value.

        Returns False if the project does not exist.
        """
        updates = [c for c in PROJECT_COLUMNS if fields.get(c) is not None]
        if not updates:
            return self.get_project(project_id) is not None

        assignments = ", ".join(f"{c} = ?" for c in updates)
        rows = self.execute_write(
            f"UPDATE projects SET {assignments} WHERE id = ? RETURNING id",
            [fields[c] for c in updates] + [project_id],
        )
        if rows:
            logger.info("project_updated", project_id=project_id, fields=updates)
        return bool(rows)

    def cascade_delete_project(self, project_id: int) -> tuple[dict[str, int], list[str]]:
        """
        Delete a project together with its tasks, builds and user table
        catalog rows in one transaction.

        Physical user tables are not touched here. The caller drops them
        after the commit.

        Returns:
            Tuple of (counts of deleted records per table, physical table
            names of the deleted user tables)
        """
        counts: dict[str, int] = {}
        try:
            with self.transaction() as conn:
                for table in ("tasks", "builds"):
                    result = conn.execute(
                        f"DELETE FROM {table} WHERE project_id = ? RETURNING id",
                        [project_id],
                    )
                    counts[table] = len(result.fetchall())

                result = conn.execute(
                    "DELETE FROM user_tables_metadata WHERE project_id = ? "
                    "RETURNING physical_table_name",
                    [project_id],
                )
                user_tables = result.fetchall()
                counts["user_tables"] = len(user_tables)

                result = conn.execute(
                    "DELETE FROM projects WHERE id = ? RETURNING id", [project_id]
                )
                counts["projects"] = len(result.fetchall())
        except duckdb.Error as e:
            raise StoreError("Failed to delete project", e)

        logger.info(
            "cascade_delete_project",
            project_id=project_id,
            deleted_counts=counts,
        )
        return counts, [row[0] for row in user_tables if row[0]]

    def count_projects(self) -> int:
        result = self.execute_one("SELECT COUNT(*) AS n FROM projects")
        return result["n"] if result else 0

    # ========================================
    # Task operations
    # ========================================

    def list_tasks(self, project_id: int | None = None) -> list[dict[str, Any]]:
        if project_id is not None:
            return self.execute(
                "SELECT * FROM tasks WHERE project_id = ? ORDER BY id", [project_id]
            )
        return self.execute("SELECT * FROM tasks ORDER BY id")

    def get_task(self, task_id: int) -> dict[str, Any] | None:
        return self._get_record("tasks", task_id)

    def create_task(self, **fields: Any) -> dict[str, Any]:
        return self.get_task(self._insert_record("tasks", TASK_COLUMNS, fields))

    def update_task(self, task_id: int, **fields: Any) -> bool:
        return self._update_record("tasks", TASK_COLUMNS, task_id, fields)

    def delete_task(self, task_id: int) -> bool:
        return self._delete_record("tasks", task_id)

    # ========================================
    # Recipe and ingredient operations
    # ========================================

    def list_recipes(self) -> list[dict[str, Any]]:
        return self.execute("SELECT * FROM recipes ORDER BY id")

    def get_recipe(self, recipe_id: int) -> dict[str, Any] | None:
        return self._get_record("recipes", recipe_id)

    def find_recipe(self, name: str) -> dict[str, Any] | None:
        return self.execute_one("SELECT * FROM recipes WHERE name = ?", [name])

    def create_recipe(self, **fields: Any) -> dict[str, Any]:
        return self.get_recipe(self._insert_record("recipes", RECIPE_COLUMNS, fields))

    def update_recipe(self, recipe_id: int, **fields: Any) -> bool:
        return self._update_record("recipes", RECIPE_COLUMNS, recipe_id, fields)

    def delete_recipe(self, recipe_id: int) -> bool:
        return self._delete_record("recipes", recipe_id)

    def list_ingredients(self) -> list[dict[str, Any]]:
        return self.execute("SELECT * FROM ingredients ORDER BY id")

    def get_ingredient(self, ingredient_id: int) -> dict[str, Any] | None:
        return self._get_record("ingredients", ingredient_id)

    def find_ingredient(self, name: str) -> dict[str, Any] | None:
        return self.execute_one("SELECT * FROM ingredients WHERE name = ?", [name])

    def create_ingredient(self, **fields: Any) -> dict[str, Any]:
        return self.get_ingredient(self._insert_record("ingredients", INGREDIENT_COLUMNS, fields))

    def update_ingredient(self, ingredient_id: int, **fields: Any) -> bool:
        return self._update_record("ingredients", INGREDIENT_COLUMNS, ingredient_id, fields)

    def delete_ingredient(self, ingredient_id: int) -> bool:
        return self._delete_record("ingredients", ingredient_id)

    # Shared helpers for the fixed tables. Table and column names come from
    # the constants above, never from callers.

    def _get_record(self, table: str, record_id: int) -> dict[str, Any] | None:
        return self.execute_one(f"SELECT * FROM {table} WHERE id = ?", [record_id])

    def _insert_record(
        self, table: str, allowed: tuple[str, ...], fields: dict[str, Any]
    ) -> int:
        columns = [c for c in allowed if fields.get(c) is not None]
        placeholders = ", ".join("?" for _ in columns)
        rows = self.execute_write(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
            [fields[c] for c in columns],
        )
        return rows[0][0]

    def _update_record(
        self, table: str, allowed: tuple[str, ...], record_id: int, fields: dict[str, Any]
    ) -> bool:
        """Set the non-None fields. Returns False if the record does not exist."""
        updates = [c for c in allowed if fields.get(c) is not None]
        if not updates:
            return self._get_record(table, record_id) is not None

        assignments = ", ".join(f"{c} = ?" for c in updates)
        rows = self.execute_write(
            f"UPDATE {table} SET {assignments} WHERE id = ? RETURNING id",
            [fields[c] for c in updates] + [record_id],
        )
        return bool(rows)

    def _delete_record(self, table: str, record_id: int) -> bool:
        rows = self.execute_write(f"DELETE FROM {table} WHERE id = ? RETURNING id", [record_id])
        return bool(rows)

    # ========================================
    # Build operations
    # ========================================

    def list_builds(self, project_id: int | None = None) -> list[dict[str, Any]]:
        if project_id is not None:
            return self.execute(
                "SELECT * FROM builds WHERE project_id = ? ORDER BY id", [project_id]
            )
        return self.execute("SELECT * FROM builds ORDER BY id")

    def create_build(
        self,
        project_id: int,
        version: str,
        platform: str,
        status: str,
        duration: str | None = None,
    ) -> dict[str, Any]:
        rows = self.execute_write(
            """
            INSERT INTO builds (project_id, version, platform, status, duration)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            [project_id, version, platform, status, duration],
        )
        return self.execute_one("SELECT * FROM builds WHERE id = ?", [rows[0][0]])

    # ========================================
    # Activity feed
    # ========================================

    def log_activity(
        self,
        activity_type: str,
        description: str,
        conn: duckdb.DuckDBPyConnection | None = None,
    ) -> None:
        """Append an entry to the activity feed.

        Failures are logged and swallowed: the feed is informational and must
        never turn a successful operation into an error.
        """
        query = "INSERT INTO activities (type, description) VALUES (?, ?)"
        try:
            if conn is not None:
                conn.execute(query, [activity_type, description])
            else:
                self.execute_write(query, [activity_type, description])
        except (duckdb.Error, StoreError) as e:
            logger.error(
                "activity_log_failed",
                activity_type=activity_type,
                error=str(e),
            )

    def list_activities(self, limit: int = 10) -> list[dict[str, Any]]:
        return self.execute(
            "SELECT * FROM activities ORDER BY timestamp DESC, id DESC LIMIT ?",
            [limit],
        )

    # ========================================
    # User table catalog
    # ========================================

    def insert_user_table(
        self,
        conn: duckdb.DuckDBPyConnection,
        project_id: int,
        name: str,
        description: str | None,
        schema_json: str,
    ) -> int:
        """Insert an incomplete catalog row (no physical table yet) and return its id."""
        result = conn.execute(
            """
            INSERT INTO user_tables_metadata (project_id, name, description, schema_json)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            [project_id, name, description, schema_json],
        ).fetchone()
        return result[0]

    def set_physical_table_name(
        self, conn: duckdb.DuckDBPyConnection, table_id: int, physical_table_name: str
    ) -> None:
        """Mark a catalog row complete by recording its physical table."""
        conn.execute(
            "UPDATE user_tables_metadata SET physical_table_name = ? WHERE id = ?",
            [physical_table_name, table_id],
        )

    def update_user_table(
        self,
        conn: duckdb.DuckDBPyConnection,
        table_id: int,
        name: str,
        description: str | None,
        schema_json: str,
    ) -> bool:
        """Update catalog fields. Returns False if no row matched."""
        result = conn.execute(
            """
            UPDATE user_tables_metadata
            SET name = ?, description = ?, schema_json = ?, updated_at = current_timestamp
            WHERE id = ?
            RETURNING id
            """,
            [name, description, schema_json, table_id],
        )
        return bool(result.fetchall())

    def get_user_table(self, table_id: int) -> dict[str, Any] | None:
        """Get a catalog row by ID."""
        return self.execute_one(
            "SELECT * FROM user_tables_metadata WHERE id = ?", [table_id]
        )

    def list_user_tables(self, project_id: int) -> list[dict[str, Any]]:
        """List catalog rows of a project, complete or not, in creation order."""
        return self.execute(
            "SELECT * FROM user_tables_metadata WHERE project_id = ? ORDER BY id",
            [project_id],
        )

    def delete_user_table(self, table_id: int) -> int:
        """Delete a catalog row and return the number of rows deleted."""
        rows = self.execute_write(
            "DELETE FROM user_tables_metadata WHERE id = ? RETURNING id", [table_id]
        )
        return len(rows)

    def count_user_tables(self) -> int:
        result = self.execute_one(
            "SELECT COUNT(*) AS n FROM user_tables_metadata WHERE physical_table_name IS NOT NULL"
        )
        return result["n"] if result else 0

    # ========================================
    # Demo data
    # ========================================

    def seed_demo_data(self) -> bool:
        """Insert demo projects, tasks, builds and activities into an empty database.

        Returns True if data was inserted.
        """
        if self.count_projects() > 0:
            return False

        try:
            with self.transaction() as conn:
                conn.executemany(
                    """
                    INSERT INTO projects
                    (name, current_version, status, last_updated, description, team, progress)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    DEMO_PROJECTS,
                )
                project_ids = [
                    row[0] for row in conn.execute("SELECT id FROM projects ORDER BY id").fetchall()
                ]
                conn.executemany(
                    """
                    INSERT INTO tasks (title, description, status, assignee, priority, project_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [task[:5] + (project_ids[task[5]],) for task in DEMO_TASKS],
                )
                conn.executemany(
                    """
                    INSERT INTO builds (project_id, version, platform, status, duration)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [(project_ids[b[0]],) + b[1:] for b in DEMO_BUILDS],
                )
                conn.executemany(
                    "INSERT INTO activities (type, description) VALUES (?, ?)",
                    DEMO_ACTIVITIES,
                )
        except duckdb.Error as e:
            raise StoreError("Failed to seed demo data", e)

        logger.info("demo_data_seeded", projects=len(DEMO_PROJECTS), tasks=len(DEMO_TASKS))
        return True


DEMO_PROJECTS = [
    ("Neon City", "1.2.0", "in_development", "2024-07-20",
     "Open-world game set in a neon-lit futuristic metropolis.", "Alice,Bob,Charlie", "80%"),
    ("Mystic Isle", "0.9.5", "testing", "2024-07-18",
     "Adventure on a mysterious island: collect treasure, defeat monsters.", "David,Eve", "60%"),
    ("Star Colony", "2.1.0", "released", "2024-07-15",
     "Build and run your own colony on a distant planet.", "Frank,Grace,Heidi", "100%"),
    ("Pixel Dungeon", "1.0.0", "in_development", "2024-07-22",
     "Classic pixel-art dungeon crawler with procedurally generated maps.", "Ivan", "45%"),
]

# (title, description, status, assignee, priority, project index)
DEMO_TASKS = [
    ("Implement authentication", "Sign up, sign in and sign out.", "in-progress", "Zhang", "high", 0),
    ("Design database layout", "Users, projects and tasks tables.", "todo", "Li", "high", 0),
    ("Write API docs", "Document the backend endpoints.", "todo", "Wang", "medium", 1),
    ("Polish overview page", "Improve the project overview UI.", "done", "Zhang", "low", 0),
    ("Enemy AI", "Enemy behaviour and path finding.", "in-progress", "Zhao", "high", 0),
]

# (project index, version, platform, status, duration)
DEMO_BUILDS = [
    (0, "1.2.0", "PC", "success", "5m 12s"),
    (0, "1.2.0", "Android", "failed", "3m 45s"),
    (1, "1.1.5", "PC", "success", "4m 58s"),
]

DEMO_ACTIVITIES = [
    ("build_recorded", "Neon City v1.2.0 built successfully."),
    ("project_updated", "Mystic Isle moved to testing."),
]
