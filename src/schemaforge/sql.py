"""SQL type mapping, literal formatting and identifier quoting.

Everything that turns user input into SQL text goes through this module;
the DDL emitter and the migration planner never concatenate raw names or
values themselves.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import json
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from schemaforge.definition import (
    ArrayField,
    BooleanField,
    IntegerField,
    NumberField,
    ObjectField,
    StringField,
    parse_field,
)
from schemaforge.errors import UnsupportedFieldTypeError, ValidationError

MAX_IDENTIFIER_LENGTH = 63
VARCHAR_LIMIT = 255

_SAFE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BARE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# PostgreSQL reserved key words (SQL Key Words appendix, "reserved" column).
RESERVED_WORDS = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "asymmetric",
    "authorization", "binary", "both", "case", "cast", "check", "collate", "collation",
    "column", "concurrently", "constraint", "create", "cross", "current_catalog",
    "current_date", "current_role", "current_schema", "current_time", "current_timestamp",
    "current_user", "default", "deferrable", "desc", "distinct", "do", "else", "end",
    "except", "false", "fetch", "for", "foreign", "freeze", "from", "full", "grant",
    "group", "having", "ilike", "in", "initially", "inner", "intersect", "into", "is",
    "isnull", "join", "lateral", "leading", "left", "like", "limit", "localtime",
    "localtimestamp", "natural", "not", "notnull", "null", "offset", "on", "only", "or",
    "order", "outer", "overlaps", "placing", "primary", "references", "returning",
    "right", "select", "session_user", "similar", "some", "symmetric", "table",
    "tablesample", "then", "to", "trailing", "true", "union", "unique", "user", "using",
    "variadic", "verbose", "when", "where", "window", "with",
})

_FORMAT_TYPES = {
    "uuid": "UUID",
    "email": f"VARCHAR({VARCHAR_LIMIT})",
    "date": "DATE",
    "date-time": "TIMESTAMPTZ",
}


def is_safe_identifier(name: str) -> bool:
    return bool(name) and len(name) <= MAX_IDENTIFIER_LENGTH and bool(_SAFE_IDENTIFIER.match(name))


def quote_identifier(name: str) -> str:
    """Render a table/column/index name, quoting only when PostgreSQL needs it."""
    if not isinstance(name, str) or not is_safe_identifier(name):
        raise ValidationError(f'Invalid identifier: "{name}"')
    if _BARE_IDENTIFIER.match(name) and name not in RESERVED_WORDS:
        return name
    return f'"{name}"'


def escape_literal(value: Any) -> str:
    """Quote a value as a SQL string literal (``'`` doubled)."""
    return "'" + str(value).replace("'", "''") + "'"


def _coerce_field(fd):
    if isinstance(fd, dict):
        try:
            return parse_field(fd)
        except PydanticValidationError as exc:
            raise UnsupportedFieldTypeError(
                f"Unsupported field descriptor: {fd.get('type')!r}",
                [str(err.get("msg")) for err in exc.errors()],
            ) from exc
    return fd


def map_field_to_sql_type(fd) -> str:
    """Resolve the column type for a field descriptor.

    Order: explicit ``database.type``, then ``format``, then ``type``.
    """
    fd = _coerce_field(fd)

    if fd.database.type:
        return fd.database.type

    if fd.format in _FORMAT_TYPES:
        return _FORMAT_TYPES[fd.format]

    if isinstance(fd, StringField):
        if fd.max_length is not None and fd.max_length <= VARCHAR_LIMIT:
            return f"VARCHAR({fd.max_length})"
        return "TEXT"
    if isinstance(fd, BooleanField):
        return "BOOLEAN"
    if isinstance(fd, IntegerField):
        return "INTEGER"
    if isinstance(fd, NumberField):
        if fd.precision is not None and fd.scale is not None:
            return f"DECIMAL({fd.precision}, {fd.scale})"
        return "DECIMAL"
    if isinstance(fd, (ArrayField, ObjectField)):
        return "JSONB"

    raise UnsupportedFieldTypeError(f"Unsupported field type: {getattr(fd, 'type', None)!r}")


def _format_number(value: Any) -> str:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid numeric default: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    try:
        return str(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid numeric default: {value!r}")


def format_default(value: Any, field_type: str | None) -> str:
    """Render a default value as a SQL expression."""
    if value is None:
        return "NULL"
    if field_type == "string":
        return escape_literal(value)
    if field_type == "boolean":
        return "TRUE" if value else "FALSE"
    if field_type in ("number", "integer"):
        return _format_number(value)
    if isinstance(value, (dict, list)):
        return f"{escape_literal(json.dumps(value, separators=(',', ':')))}::jsonb"
    return escape_literal(value)
