"""Schema descriptors for user tables and the logical-to-column type mapper.

A schema descriptor is the ordered field list a client sends as ``schemaJson``:

    [{"name": "itemName", "type": "string"}, {"name": "qty", "type": "number"}]

Field names become physical column identifiers, so they are checked against a
strict allow-list before they ever reach generated SQL.
"""

from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    RootModel,
    StringConstraints,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from studio_api.errors import StoreError, ValidationError

# Engine-managed primary key column of every physical user table
ROW_ID_COLUMN = "id"

MAX_IDENTIFIER_LENGTH = 63
IDENTIFIER_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"

Identifier = Annotated[
    str,
    StringConstraints(min_length=1, max_length=MAX_IDENTIFIER_LENGTH, pattern=IDENTIFIER_PATTERN),
]

LOGICAL_TYPES = ("string", "number", "boolean")

# Logical type -> DuckDB column type. Booleans are stored as 0/1 integers.
_COLUMN_TYPES = {
    "string": "VARCHAR",
    "number": "DOUBLE",
    "boolean": "INTEGER",
}
DEFAULT_COLUMN_TYPE = "VARCHAR"


def normalize_logical_type(logical_type: str | None) -> str:
    """Return ``string``, ``number``, ``boolean`` or ``unknown``."""
    if not isinstance(logical_type, str):
        return "unknown"
    normalized = logical_type.strip().lower()
    return normalized if normalized in LOGICAL_TYPES else "unknown"


def map_type(logical_type: str | None) -> str:
    """Map a logical field type to the column type used for its physical column.

    Case-insensitive. Absent or unrecognized types fall back to VARCHAR.
    """
    return _COLUMN_TYPES.get(normalize_logical_type(logical_type), DEFAULT_COLUMN_TYPE)


class FieldSpec(BaseModel):
    """One entry of a schema descriptor."""

    model_config = ConfigDict(frozen=True)

    name: Identifier
    type: str | None = None

    @field_validator("type")
    @classmethod
    def blank_type_is_absent(cls, v: str | None) -> str | None:
        return v or None

    @property
    def logical_type(self) -> str:
        return normalize_logical_type(self.type)

    @property
    def column_type(self) -> str:
        return map_type(self.type)


class SchemaDescriptor(RootModel[list[FieldSpec]]):
    """Ordered, non-empty field list of a user table."""

    @model_validator(mode="after")
    def check_field_names(self) -> "SchemaDescriptor":
        if not self.root:
            raise ValueError("must define at least one field")

        seen: set[str] = set()
        for field in self.root:
            # DuckDB identifiers are case-insensitive
            key = field.name.lower()
            if key == ROW_ID_COLUMN:
                raise ValueError(f"Field name '{field.name}' is reserved for the row id column")
            if key in seen:
                raise ValueError(f"Duplicate field name '{field.name}'")
            seen.add(key)
        return self


_STORED_FIELDS = TypeAdapter(list[FieldSpec])


def quote_identifier(name: str) -> str:
    """Double-quote an identifier that already passed FieldSpec validation."""
    return f'"{name}"'


def _schema_error(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors(include_url=False)[0]
    location = list(error["loc"])
    reason = error["msg"].removeprefix("Value error, ")

    if error["type"] == "json_invalid":
        message = f"schemaJson is not valid JSON: {reason}"
    elif location:
        where = f"field #{location[0] + 1}" if isinstance(location[0], int) else str(location[0])
        if len(location) > 1:
            where += f" '{location[1]}'"
        message = f"Invalid schemaJson {where}: {reason}"
    else:
        message = f"Invalid schemaJson: {reason}"

    return ValidationError(message, {"location": location, "type": error["type"]})


def parse_schema(raw: Any) -> list[FieldSpec]:
    """
    Decode and validate a schema descriptor.

    Args:
        raw: JSON text or an already decoded list of ``{"name", "type"}`` objects

    Returns:
        Ordered list of FieldSpec

    Raises:
        ValidationError: On any malformed, empty or unsafe descriptor
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("schemaJson is required")

    try:
        if isinstance(raw, str):
            descriptor = SchemaDescriptor.model_validate_json(raw)
        else:
            descriptor = SchemaDescriptor.model_validate(raw)
    except PydanticValidationError as e:
        raise _schema_error(e)

    return list(descriptor.root)


def serialize_schema(fields: list[FieldSpec]) -> str:
    """Canonical JSON form stored in the metadata record."""
    return _STORED_FIELDS.dump_json(fields, exclude_none=True).decode()


def load_stored_schema(schema_json: str | None) -> list[FieldSpec]:
    """Decode a schema read back from the metadata store.

    Stored schemas were validated on write, so a failure here means the
    store content is corrupt rather than the caller's input is wrong.
    """
    try:
        return _STORED_FIELDS.validate_json(schema_json or "")
    except PydanticValidationError as e:
        raise StoreError("Stored schema could not be decoded", e)
