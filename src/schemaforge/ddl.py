"""DDL emission for validated schema definitions."""

from __future__ import annotations

import hashlib
from typing import Optional

from schemaforge.definition import IndexDescriptor, SchemaDefinition, parse_definition
from schemaforge.sql import (
    MAX_IDENTIFIER_LENGTH,
    escape_literal,
    format_default,
    map_field_to_sql_type,
    quote_identifier,
)


def as_definition(definition) -> SchemaDefinition:
    if isinstance(definition, SchemaDefinition):
        return definition
    return parse_definition(definition)


def index_name(table_name: str, index: IndexDescriptor) -> str:
    """Explicit index name, or ``idx_<table>_<field1>_<field2>...``.

    Generated names longer than the identifier limit are cut short and end
    in a hash of the full name, so distinct long names stay distinct.
    """
    if index.name:
        return index.name
    name = f"idx_{table_name}_{'_'.join(index.fields)}"
    if len(name) <= MAX_IDENTIFIER_LENGTH:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{name[:MAX_IDENTIFIER_LENGTH - len(digest) - 1]}_{digest}"


def column_definition(field_name: str, fd, *, required: bool = False) -> str:
    parts = [quote_identifier(field_name), map_field_to_sql_type(fd)]
    if required or fd.database.not_null:
        parts.append("NOT NULL")
    if fd.database.unique:
        parts.append("UNIQUE")
    if fd.has_default:
        parts.append(f"DEFAULT {format_default(fd.default, fd.type)}")
    if fd.database.primary_key:
        parts.append("PRIMARY KEY")
    return " ".join(parts)


def emit_create_index(table_name: str, index: IndexDescriptor, *, if_not_exists: bool = True) -> str:
    unique = "UNIQUE " if index.unique else ""
    guard = "IF NOT EXISTS " if if_not_exists else ""
    method = f" USING {index.type.upper()}" if index.type else ""
    columns = ", ".join(quote_identifier(name) for name in index.fields)
    return (
        f"CREATE {unique}INDEX {guard}{quote_identifier(index_name(table_name, index))} "
        f"ON {quote_identifier(table_name)}{method} ({columns});"
    )


def emit_create_statements(
    table_name: str,
    definition,
    *,
    description: Optional[str] = None,
) -> list[str]:
    """CREATE TABLE, one CREATE INDEX per index, then comments.

    Column order is the insertion order of ``properties``.
    """
    definition = as_definition(definition)
    table = quote_identifier(table_name)

    columns = [
        column_definition(name, fd, required=definition.is_required(name))
        for name, fd in definition.properties.items()
    ]
    statements = [
        f"CREATE TABLE IF NOT EXISTS {table} (\n  " + ",\n  ".join(columns) + "\n);"
    ]

    for index in definition.indexes:
        statements.append(emit_create_index(table_name, index))

    if description:
        statements.append(f"COMMENT ON TABLE {table} IS {escape_literal(description)};")
    for name, fd in definition.properties.items():
        if fd.description:
            statements.append(
                f"COMMENT ON COLUMN {table}.{quote_identifier(name)} IS {escape_literal(fd.description)};"
            )
    return statements


def emit_create(schema) -> str:
    """Full DDL script for a stored schema row."""
    statements = emit_create_statements(
        schema.table_name,
        schema.definition,
        description=schema.description,
    )
    header = f"-- DDL for {schema.model_id} v{schema.version}\n-- Table: {schema.table_name}\n"
    return header + "\n" + "\n\n".join(statements) + "\n"
