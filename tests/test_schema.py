"""Tests for schema descriptors and the type mapper."""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from studio_api.errors import StoreError, ValidationError
from studio_api.schema import (
    FieldSpec,
    load_stored_schema,
    map_type,
    parse_schema,
    quote_identifier,
    serialize_schema,
)


class TestMapType:
    """Tests for map_type()."""

    @pytest.mark.parametrize(
        "logical_type,expected",
        [
            ("string", "VARCHAR"),
            ("number", "DOUBLE"),
            ("boolean", "INTEGER"),
            ("NUMBER", "DOUBLE"),
            ("Boolean", "INTEGER"),
            ("date", "VARCHAR"),
            ("", "VARCHAR"),
            (None, "VARCHAR"),
        ],
    )
    def test_mapping(self, logical_type, expected):
        assert map_type(logical_type) == expected

    def test_non_string_input_falls_back_to_text(self):
        assert map_type(42) == "VARCHAR"


class TestFieldSpec:
    def test_logical_type_is_normalized(self):
        assert FieldSpec(name="qty", type="Number").logical_type == "number"
        assert FieldSpec(name="note").logical_type == "unknown"
        assert FieldSpec(name="note", type="blob").logical_type == "unknown"

    def test_blank_type_is_absent(self):
        assert FieldSpec(name="note", type="").type is None

    def test_is_frozen(self):
        field = FieldSpec(name="qty", type="number")

        with pytest.raises(PydanticValidationError):
            field.name = "other"

    @pytest.mark.parametrize("name", ["_item_2", "x" * 63])
    def test_valid_identifiers(self, name):
        assert FieldSpec(name=name).name == name

    @pytest.mark.parametrize("name", ["", "1st", 'bad"name', "x" * 64, 5])
    def test_invalid_identifiers(self, name):
        with pytest.raises(PydanticValidationError):
            FieldSpec(name=name)

    def test_column_type(self):
        assert FieldSpec(name="equipped", type="BOOLEAN").column_type == "INTEGER"


class TestParseSchema:
    """Tests for parse_schema()."""

    def test_parses_json_text(self):
        fields = parse_schema(
            json.dumps([{"name": "itemName", "type": "string"}, {"name": "qty", "type": "number"}])
        )

        assert fields == [
            FieldSpec(name="itemName", type="string"),
            FieldSpec(name="qty", type="number"),
        ]

    def test_accepts_decoded_list(self):
        fields = parse_schema([{"name": "equipped", "type": "boolean"}])

        assert fields == [FieldSpec(name="equipped", type="boolean")]

    def test_type_is_optional(self):
        assert parse_schema([{"name": "note"}]) == [FieldSpec(name="note", type=None)]

    def test_keeps_field_order(self):
        fields = parse_schema([{"name": n, "type": "string"} for n in ("c", "a", "b")])

        assert [f.name for f in fields] == ["c", "a", "b"]

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_schema(self, raw):
        with pytest.raises(ValidationError, match="required"):
            parse_schema(raw)

    def test_invalid_json(self):
        with pytest.raises(ValidationError, match="not valid JSON"):
            parse_schema("[{name: qty}")

    def test_not_a_list(self):
        with pytest.raises(ValidationError, match="valid list"):
            parse_schema('{"name": "qty"}')

    def test_empty_list(self):
        with pytest.raises(ValidationError, match="at least one field"):
            parse_schema("[]")

    def test_entry_not_an_object(self):
        with pytest.raises(ValidationError):
            parse_schema(["qty"])

    def test_entry_without_name(self):
        with pytest.raises(ValidationError):
            parse_schema([{"type": "string"}])

    def test_non_string_type(self):
        with pytest.raises(ValidationError, match="field #1 'type'"):
            parse_schema([{"name": "qty", "type": 5}])

    @pytest.mark.parametrize(
        "name",
        ['bad"name', "two words", "1st", "semi;colon", "a-b", "x" * 64],
    )
    def test_unsafe_identifiers_rejected(self, name):
        with pytest.raises(ValidationError):
            parse_schema([{"name": name, "type": "string"}])

    def test_error_names_the_offending_field(self):
        with pytest.raises(ValidationError, match="field #2 'name'") as exc_info:
            parse_schema([{"name": "ok"}, {"name": "1st"}])

        assert exc_info.value.details["location"] == [1, "name"]

    def test_extra_keys_are_ignored(self):
        fields = parse_schema([{"name": "qty", "type": "number", "label": "Quantity"}])

        assert fields == [FieldSpec(name="qty", type="number")]

    @pytest.mark.parametrize("name", ["id", "ID", "Id"])
    def test_row_id_column_is_reserved(self, name):
        with pytest.raises(ValidationError, match="reserved"):
            parse_schema([{"name": name, "type": "number"}])

    def test_duplicate_names_rejected_case_insensitively(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            parse_schema([{"name": "qty"}, {"name": "QTY"}])

    def test_validation_error_carries_status(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_schema("[]")

        assert exc_info.value.status_code == 400
        assert exc_info.value.to_detail()["error"] == "validation_error"


class TestIdentifiers:
    def test_quote_identifier(self):
        assert quote_identifier("itemName") == '"itemName"'


class TestStoredSchema:
    """Tests for serialize_schema() / load_stored_schema()."""

    def test_serialized_form(self):
        text = serialize_schema([FieldSpec(name="qty", type="number"), FieldSpec(name="note")])

        assert json.loads(text) == [{"name": "qty", "type": "number"}, {"name": "note"}]
        assert load_stored_schema(text) == [
            FieldSpec(name="qty", type="number"),
            FieldSpec(name="note"),
        ]

    def test_corrupt_stored_schema_is_store_error(self):
        with pytest.raises(StoreError, match="could not be decoded"):
            load_stored_schema("{not json")

    def test_stored_schema_must_be_list(self):
        with pytest.raises(StoreError):
            load_stored_schema('{"name": "qty"}')
