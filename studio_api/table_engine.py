"""User table engine.

A user table is a catalog row in ``user_tables_metadata`` plus one physical
DuckDB table named after the row id (``user_data_table_<id>``). The catalog
row is the source of truth: a row whose ``physical_table_name`` is NULL never
completed creation and has no readable data.

Physical layout::

    CREATE SEQUENCE user_data_table_7_id_seq;
    CREATE TABLE "user_data_table_7" (
        "id" BIGINT DEFAULT nextval('user_data_table_7_id_seq') PRIMARY KEY,
        "itemName" VARCHAR,
        "qty" DOUBLE,
        "equipped" INTEGER
    );

Creation runs in a single DuckDB transaction (catalog insert, DDL, physical
name update), so a failed create leaves neither a catalog row nor a table.
Schema updates are additive: new fields become new columns, existing fields
must keep their name and storage type.
"""

import json
import math
import time
from contextlib import contextmanager
from typing import Any, Generator

import duckdb
import structlog

from studio_api import metrics
from studio_api.database import StudioDB
from studio_api.errors import (
    NotFoundError,
    StoreError,
    TableCreationError,
    ValidationError,
)
from studio_api.schema import (
    ROW_ID_COLUMN,
    FieldSpec,
    load_stored_schema,
    parse_schema,
    quote_identifier,
    serialize_schema,
)

logger = structlog.get_logger()

PHYSICAL_TABLE_PREFIX = "user_data_table_"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def physical_table_name(table_id: int) -> str:
    """Derive the physical table name from a catalog id."""
    return f"{PHYSICAL_TABLE_PREFIX}{int(table_id)}"


def row_id_sequence_name(table_name: str) -> str:
    return f"{table_name}_id_seq"


def _require_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Table name is required")
    return name.strip()


def _require_project_id(project_id: Any) -> int:
    if project_id is None:
        raise ValidationError("projectId is required")
    if isinstance(project_id, bool) or not isinstance(project_id, int):
        raise ValidationError("projectId must be an integer", {"projectId": project_id})
    return project_id


def to_number(field_name: str, value: Any) -> float:
    """Parse a value for a ``number`` field. Must be a finite number."""
    if isinstance(value, bool):
        number = None
    elif isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            number = None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None
    else:
        number = None

    if number is None or not math.isfinite(number):
        raise ValidationError(
            f"Field '{field_name}' must be a number",
            {"field": field_name, "value": value},
        )
    return number


def to_flag(field_name: str, value: Any) -> int:
    """Parse a value for a ``boolean`` field into its 0/1 storage form."""
    if isinstance(value, bool):
        return int(value)
    # Integers are checked before isfinite(), which overflows on huge ints
    if isinstance(value, int) or (isinstance(value, float) and math.isfinite(value)):
        return 1 if value else 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return 1
        if text in _FALSE_STRINGS:
            return 0
    raise ValidationError(
        f"Field '{field_name}' must be a boolean",
        {"field": field_name, "value": value},
    )


def to_storage_value(field: FieldSpec, value: Any) -> Any:
    """Convert a client value to the value bound for the field's column."""
    if value is None:
        return None
    logical_type = field.logical_type
    if logical_type == "number":
        return to_number(field.name, value)
    if logical_type == "boolean":
        return to_flag(field.name, value)
    if isinstance(value, str):
        return value
    return json.dumps(value)


def from_storage_value(field: FieldSpec, value: Any) -> Any:
    """Convert a stored column value back to its logical type."""
    if value is None:
        return None
    logical_type = field.logical_type
    if logical_type == "boolean":
        return bool(value)
    if logical_type == "number":
        return float(value)
    return value


class TableLifecycleManager:
    """
    Create, read, write and delete user tables.

    The manager holds no state besides the store handle; every call re-reads
    the catalog, so there is nothing to invalidate between requests.
    """

    def __init__(self, db: StudioDB):
        self.db = db

    @contextmanager
    def _track(self, operation: str) -> Generator[None, None, None]:
        start_time = time.time()
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            metrics.USER_TABLE_OPERATIONS.labels(operation=operation, status=status).inc()
            metrics.USER_TABLE_OPERATION_DURATION.labels(operation=operation).observe(
                time.time() - start_time
            )

    # ========================================
    # Catalog operations
    # ========================================

    def create_table(
        self,
        project_id: Any,
        name: Any,
        description: str | None,
        schema: Any,
    ) -> dict[str, Any]:
        """
        Create a user table and its physical table.

        Args:
            project_id: Owning project
            name: Display name
            description: Optional description
            schema: Schema descriptor as JSON text or a decoded list

        Returns:
            The complete catalog record

        Raises:
            ValidationError: Bad input, nothing was written
            NotFoundError: Project does not exist
            TableCreationError: The store rejected the DDL; the transaction
                (catalog row included) was rolled back
        """
        with self._track("create"):
            project_id = _require_project_id(project_id)
            name = _require_name(name)
            fields = parse_schema(schema)

            if self.db.get_project(project_id) is None:
                raise NotFoundError(
                    f"Project {project_id} not found", {"projectId": project_id}
                )

            table_id = None
            try:
                with self.db.transaction() as conn:
                    table_id = self.db.insert_user_table(
                        conn, project_id, name, description, serialize_schema(fields)
                    )
                    table_name = physical_table_name(table_id)
                    self._create_physical_table(conn, table_name, fields)
                    self.db.set_physical_table_name(conn, table_id, table_name)
            except duckdb.Error as e:
                logger.error(
                    "user_table_creation_failed",
                    project_id=project_id,
                    name=name,
                    table_id=table_id,
                    error=str(e),
                )
                raise TableCreationError(f"Failed to create table '{name}'", e)

            logger.info(
                "user_table_created",
                table_id=table_id,
                project_id=project_id,
                physical_table=table_name,
                columns=len(fields),
            )
            self.db.log_activity(
                "table_created",
                f"User table '{name}' ({table_name}) created in project {project_id}",
            )
            return self.db.get_user_table(table_id)

    def list_tables(self, project_id: int) -> list[dict[str, Any]]:
        """All catalog records of a project, complete or not, in creation order."""
        with self._track("list"):
            return self.db.list_user_tables(project_id)

    def update_table_metadata(
        self,
        table_id: int,
        name: Any,
        description: str | None,
        schema: Any,
    ) -> dict[str, Any]:
        """
        Update name, description and schema of a user table.

        For a table that has a physical table, every existing field must be
        kept with the same storage type. Fields that are new are added as
        columns in the same transaction as the catalog update.
        """
        with self._track("update"):
            name = _require_name(name)
            fields = parse_schema(schema)

            record = self.db.get_user_table(table_id)
            if record is None:
                raise NotFoundError(f"User table {table_id} not found", {"id": table_id})

            table_name = record["physical_table_name"]
            added: list[FieldSpec] = []
            if table_name:
                added = self._plan_migration(
                    load_stored_schema(record["schema_json"]), fields
                )

            try:
                with self.db.transaction() as conn:
                    for field in added:
                        conn.execute(
                            f"ALTER TABLE {quote_identifier(table_name)} "
                            f"ADD COLUMN {quote_identifier(field.name)} {field.column_type}"
                        )
                    updated = self.db.update_user_table(
                        conn, table_id, name, description, serialize_schema(fields)
                    )
                    if not updated:
                        raise NotFoundError(
                            f"User table {table_id} not found", {"id": table_id}
                        )
            except duckdb.Error as e:
                raise StoreError(f"Failed to update user table {table_id}", e)

            logger.info(
                "user_table_updated",
                table_id=table_id,
                added_columns=[f.name for f in added],
            )
            self.db.log_activity(
                "table_updated", f"User table '{name}' (id {table_id}) updated"
            )
            return self.db.get_user_table(table_id)

    def delete_table(self, table_id: int) -> dict[str, Any]:
        """
        Delete a user table.

        The catalog row is deleted first and decides success. Dropping the
        physical table afterwards is best effort: a failure is logged and the
        table is left for an operator to remove.

        Returns:
            Dict with the id, physical table name and whether one existed
        """
        with self._track("delete"):
            record = self.db.get_user_table(table_id)
            if record is None:
                raise NotFoundError(f"User table {table_id} not found", {"id": table_id})

            if self.db.delete_user_table(table_id) == 0:
                raise NotFoundError(f"User table {table_id} not found", {"id": table_id})

            table_name = record["physical_table_name"]
            if table_name:
                self._drop_best_effort(table_name, table_id=table_id)
                self.db.log_activity(
                    "table_deleted",
                    f"User table '{record['name']}' and physical table {table_name} deleted",
                )
            else:
                self.db.log_activity(
                    "table_deleted",
                    f"User table '{record['name']}' deleted (metadata only)",
                )

            logger.info(
                "user_table_deleted",
                table_id=table_id,
                physical_table=table_name,
            )
            return {
                "id": table_id,
                "physical_table_name": table_name,
                "dropped_physical_table": table_name is not None,
            }

    def delete_project(self, project_id: int) -> dict[str, int]:
        """
        Delete a project with its tasks, builds and user tables.

        The project, its platform records and its user table catalog rows
        are removed in one transaction, so a failure leaves all of them in
        place. Physical tables are dropped after the commit, best effort as
        in delete_table().

        Returns:
            Dict with counts of deleted records per table
        """
        with self._track("delete_project"):
            counts, table_names = self.db.cascade_delete_project(project_id)
            for table_name in table_names:
                self._drop_best_effort(table_name, project_id=project_id)
            return counts

    def _drop_best_effort(self, table_name: str, **context: Any) -> None:
        try:
            self._drop_physical_table(table_name)
        except (duckdb.Error, StoreError) as e:
            logger.error(
                "user_table_drop_failed",
                physical_table=table_name,
                error=str(e),
                **context,
            )

    # ========================================
    # Row operations
    # ========================================

    def get_table_data(self, table_id: int) -> list[dict[str, Any]]:
        """Read all rows of a user table in insertion order, values coerced
        back to their logical types."""
        with self._track("read_rows"):
            record, table_name = self._resolve_complete(table_id)
            fields = load_stored_schema(record["schema_json"])

            rows = self.db.execute(
                f"SELECT * FROM {quote_identifier(table_name)} "
                f"ORDER BY {quote_identifier(ROW_ID_COLUMN)}"
            )
            for row in rows:
                for field in fields:
                    if field.name in row:
                        row[field.name] = from_storage_value(field, row[field.name])
            return rows

    def insert_table_data(self, table_id: int, record: Any) -> dict[str, Any]:
        """
        Insert one row into a user table.

        Only keys that name a schema field are written. Values are validated
        and converted before the insert, so a rejected record writes nothing.

        Returns:
            The client record with the new row id under ``id``
        """
        with self._track("insert_row"):
            if not isinstance(record, dict):
                raise ValidationError("Row data must be a JSON object")

            catalog_record, table_name = self._resolve_complete(table_id)
            fields = load_stored_schema(catalog_record["schema_json"])

            columns: list[str] = []
            values: list[Any] = []
            for field in fields:
                if field.name in record:
                    values.append(to_storage_value(field, record[field.name]))
                    columns.append(quote_identifier(field.name))

            if not columns:
                raise ValidationError(
                    "No valid data to insert: no key matches a table field",
                    {"fields": [f.name for f in fields]},
                )

            placeholders = ", ".join("?" for _ in columns)
            rows = self.db.execute_write(
                f"INSERT INTO {quote_identifier(table_name)} ({', '.join(columns)}) "
                f"VALUES ({placeholders}) RETURNING {quote_identifier(ROW_ID_COLUMN)}",
                values,
            )
            row_id = rows[0][0]

            logger.info("user_table_row_inserted", table_id=table_id, row_id=row_id)
            self.db.log_activity(
                "table_row_inserted", f"Row {row_id} inserted into {table_name}"
            )
            return {ROW_ID_COLUMN: row_id, **{k: v for k, v in record.items() if k != ROW_ID_COLUMN}}

    # ========================================
    # Helpers
    # ========================================

    def _resolve_complete(self, table_id: int) -> tuple[dict[str, Any], str]:
        record = self.db.get_user_table(table_id)
        if record is None:
            raise NotFoundError(f"User table {table_id} not found", {"id": table_id})
        table_name = record["physical_table_name"]
        if not table_name:
            raise NotFoundError(
                f"User table {table_id} has no physical table", {"id": table_id}
            )
        return record, table_name

    def _create_physical_table(
        self,
        conn: duckdb.DuckDBPyConnection,
        table_name: str,
        fields: list[FieldSpec],
    ) -> None:
        sequence = row_id_sequence_name(table_name)
        columns = [
            f"{quote_identifier(ROW_ID_COLUMN)} BIGINT "
            f"DEFAULT nextval('{sequence}') PRIMARY KEY"
        ]
        columns.extend(f"{quote_identifier(f.name)} {f.column_type}" for f in fields)

        conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {sequence}")
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} "
            f"({', '.join(columns)})"
        )

    def _drop_physical_table(self, table_name: str) -> None:
        with self.db.connection() as conn:
            conn.execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}")
            conn.execute(f"DROP SEQUENCE IF EXISTS {row_id_sequence_name(table_name)}")

    @staticmethod
    def _plan_migration(
        current: list[FieldSpec], requested: list[FieldSpec]
    ) -> list[FieldSpec]:
        """Return the requested fields that need a new column.

        Raises:
            ValidationError: If a current field is missing from the request or
                its storage type changed
        """
        requested_by_name = {f.name: f for f in requested}
        for field in current:
            new_field = requested_by_name.get(field.name)
            if new_field is None:
                raise ValidationError(
                    f"Field '{field.name}' cannot be removed from an existing table",
                    {"field": field.name},
                )
            if new_field.column_type != field.column_type:
                raise ValidationError(
                    f"Type of field '{field.name}' cannot change from "
                    f"{field.logical_type} to {new_field.logical_type}",
                    {"field": field.name},
                )

        current_names = {f.name for f in current}
        return [f for f in requested if f.name not in current_names]
