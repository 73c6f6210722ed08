"""Tests for SQL type mapping, default formatting and identifier quoting."""

import pytest

from schemaforge.errors import UnsupportedFieldTypeError, ValidationError
from schemaforge.sql import escape_literal, format_default, map_field_to_sql_type, quote_identifier


class TestMapFieldToSqlType:

    @pytest.mark.parametrize(
        "descriptor, expected",
        [
            ({"type": "string", "maxLength": 100}, "VARCHAR(100)"),
            ({"type": "string", "maxLength": 255}, "VARCHAR(255)"),
            ({"type": "string", "maxLength": 256}, "TEXT"),
            ({"type": "string"}, "TEXT"),
            ({"type": "string", "format": "uuid"}, "UUID"),
            ({"type": "string", "format": "email"}, "VARCHAR(255)"),
            ({"type": "string", "format": "date"}, "DATE"),
            ({"type": "string", "format": "date-time"}, "TIMESTAMPTZ"),
            ({"type": "string", "format": "uri"}, "TEXT"),
            ({"type": "integer"}, "INTEGER"),
            ({"type": "number"}, "DECIMAL"),
            ({"type": "number", "precision": 10, "scale": 2}, "DECIMAL(10, 2)"),
            ({"type": "number", "precision": 10}, "DECIMAL"),
            ({"type": "boolean"}, "BOOLEAN"),
            ({"type": "array", "items": {"type": "string"}}, "JSONB"),
            ({"type": "object"}, "JSONB"),
        ],
    )
    def test_mapping(self, descriptor, expected):
        assert map_field_to_sql_type(descriptor) == expected

    def test_explicit_database_type_wins(self):
        descriptor = {"type": "string", "format": "email", "database": {"type": "CITEXT"}}
        assert map_field_to_sql_type(descriptor) == "CITEXT"

    def test_unknown_type_raises(self):
        with pytest.raises(UnsupportedFieldTypeError):
            map_field_to_sql_type({"type": "decimal"})


class TestFormatDefault:

    def test_null(self):
        assert format_default(None, "string") == "NULL"

    def test_string_is_escaped(self):
        assert format_default("O'Brien", "string") == "'O''Brien'"

    def test_boolean(self):
        assert format_default(True, "boolean") == "TRUE"
        assert format_default(False, "boolean") == "FALSE"

    def test_numbers(self):
        assert format_default(0, "integer") == "0"
        assert format_default(9.5, "number") == "9.5"
        assert format_default("12.50", "number") == "12.50"

    def test_non_numeric_number_rejected(self):
        with pytest.raises(ValidationError):
            format_default("twelve", "integer")

    def test_json_object(self):
        assert format_default({"tier": "gold"}, "object") == "'{\"tier\":\"gold\"}'::jsonb"

    def test_json_array(self):
        assert format_default(["a", "b"], "array") == "'[\"a\",\"b\"]'::jsonb"


def test_escape_literal_doubles_quotes():
    assert escape_literal("it's") == "'it''s'"


class TestQuoteIdentifier:

    def test_plain_name_left_bare(self):
        assert quote_identifier("customers") == "customers"

    def test_reserved_word_quoted(self):
        assert quote_identifier("order") == '"order"'

    def test_mixed_case_quoted(self):
        assert quote_identifier("createdAt") == '"createdAt"'

    @pytest.mark.parametrize("name", ["bad name", "x;drop", "1abc", "", "a" * 64])
    def test_unsafe_identifier_rejected(self, name):
        with pytest.raises(ValidationError):
            quote_identifier(name)
