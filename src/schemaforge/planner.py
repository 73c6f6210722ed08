"""Diff two schema versions into forward and reverse SQL.

The planner is deliberately conservative:

* Column type changes are emitted as commented ``ALTER ... TYPE`` lines with
  a ``-- WARNING`` marker; nothing rewrites existing data automatically.
* Nullability, default and ``UNIQUE`` changes become ``ALTER COLUMN`` and
  ``ADD/DROP CONSTRAINT`` statements; an index redefined under the same name
  is dropped and recreated.
* Column and table renames are not inferred. They plan as drop + add, which
  loses data, so such changes need a hand-authored migration.

Reverse statements are built by prepending, so applying ``reverse`` after
``forward`` walks the same steps backwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Optional

from schemaforge.ddl import (
    as_definition,
    column_definition,
    emit_create_index,
    emit_create_statements,
    index_name,
)
from schemaforge.definition import IndexDescriptor, SchemaDefinition
from schemaforge.sql import MAX_IDENTIFIER_LENGTH, format_default, map_field_to_sql_type, quote_identifier

logger = logging.getLogger(__name__)

WARNING_MARKER = "-- WARNING:"


@dataclass
class MigrationPlan:
    forward: list[str] = field(default_factory=list)
    reverse: list[str] = field(default_factory=list)
    migration_type: str = "alter"
    added_fields: list[str] = field(default_factory=list)
    removed_fields: list[str] = field(default_factory=list)
    modified_fields: list[str] = field(default_factory=list)
    added_indexes: list[str] = field(default_factory=list)
    dropped_indexes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def is_empty(self) -> bool:
        return not self.forward

    def summary(self) -> str:
        if self.migration_type == "create":
            return "create table"
        parts = []
        if self.added_fields:
            parts.append(f"{len(self.added_fields)} column(s) added")
        if self.removed_fields:
            parts.append(f"{len(self.removed_fields)} column(s) dropped")
        if self.modified_fields:
            parts.append(f"{len(self.modified_fields)} column(s) altered")
        if self.added_indexes:
            parts.append(f"{len(self.added_indexes)} index(es) added")
        if self.dropped_indexes:
            parts.append(f"{len(self.dropped_indexes)} index(es) dropped")
        return ", ".join(parts) or "no changes"

    def to_dict(self) -> dict:
        return {
            "forward": list(self.forward),
            "reverse": list(self.reverse),
            "migrationType": self.migration_type,
            "addedFields": list(self.added_fields),
            "removedFields": list(self.removed_fields),
            "modifiedFields": list(self.modified_fields),
            "addedIndexes": list(self.added_indexes),
            "droppedIndexes": list(self.dropped_indexes),
            "warnings": list(self.warnings),
            "summary": self.summary(),
        }


def default_migration_name(model_id: str, from_version: Optional[str], to_version: str) -> str:
    return f"{model_id}_{from_version or '0.0.0'}_to_{to_version}"


def is_comment_only(statement: str) -> bool:
    lines = [line.strip() for line in statement.splitlines() if line.strip()]
    return all(line.startswith("--") for line in lines)


def _index_shape(index: IndexDescriptor) -> tuple:
    return (tuple(index.fields), index.unique, index.type)


def _indexes_by_name(table_name: str, indexes: list[IndexDescriptor]) -> dict[str, IndexDescriptor]:
    return {index_name(table_name, index): index for index in indexes}


def _matched_by_fields(index: IndexDescriptor, others: dict, names_on_this_side: dict) -> bool:
    """A differently named index over the same columns counts as the same index."""
    return any(
        list(other.fields) == list(index.fields)
        for name, other in others.items()
        if name not in names_on_this_side
    )


def _is_not_null(definition: SchemaDefinition, name: str, fd) -> bool:
    return definition.is_required(name) or fd.database.not_null or fd.database.primary_key


def _default_sql(fd) -> Optional[str]:
    if not fd.has_default:
        return None
    return format_default(fd.default, fd.type)


def unique_constraint_name(table_name: str, column: str) -> str:
    """PostgreSQL's own name for an inline ``UNIQUE`` column constraint."""
    return f"{table_name}_{column}_key"[:MAX_IDENTIFIER_LENGTH]


def _add_column(table: str, name: str, fd, *, required: bool = False) -> str:
    return f"ALTER TABLE {table} ADD COLUMN {column_definition(name, fd, required=required)};"


def _drop_column(table: str, name: str) -> str:
    return f"ALTER TABLE {table} DROP COLUMN {quote_identifier(name)};"


def _set_not_null(table: str, name: str, not_null: bool) -> str:
    action = "SET" if not_null else "DROP"
    return f"ALTER TABLE {table} ALTER COLUMN {quote_identifier(name)} {action} NOT NULL;"


def _set_default(table: str, name: str, default: Optional[str]) -> str:
    column = quote_identifier(name)
    if default is None:
        return f"ALTER TABLE {table} ALTER COLUMN {column} DROP DEFAULT;"
    return f"ALTER TABLE {table} ALTER COLUMN {column} SET DEFAULT {default};"


def _add_unique(table_name: str, name: str) -> str:
    constraint = quote_identifier(unique_constraint_name(table_name, name))
    return (
        f"ALTER TABLE {quote_identifier(table_name)} ADD CONSTRAINT {constraint} "
        f"UNIQUE ({quote_identifier(name)});"
    )


def _drop_unique(table_name: str, name: str) -> str:
    constraint = quote_identifier(unique_constraint_name(table_name, name))
    return f"ALTER TABLE {quote_identifier(table_name)} DROP CONSTRAINT IF EXISTS {constraint};"


def _drop_index(table_name: str, index: IndexDescriptor) -> str:
    return f"DROP INDEX IF EXISTS {quote_identifier(index_name(table_name, index))};"


def _plan_create(to_schema, to_def: SchemaDefinition) -> MigrationPlan:
    plan = MigrationPlan(migration_type="create")
    plan.forward = emit_create_statements(to_schema.table_name, to_def, description=to_schema.description)
    plan.reverse = [f"DROP TABLE IF EXISTS {quote_identifier(to_schema.table_name)};"]
    plan.added_fields = list(to_def.properties)
    plan.added_indexes = [index_name(to_schema.table_name, index) for index in to_def.indexes]
    return plan


def _plan_table_swap(from_schema, from_def, to_schema, to_def) -> MigrationPlan:
    old_table = quote_identifier(from_schema.table_name)
    new_table = quote_identifier(to_schema.table_name)
    warning = (
        f"Table renamed from {from_schema.table_name} to {to_schema.table_name}; "
        "planned as drop + create, rows are not carried over"
    )
    plan = MigrationPlan(migration_type="alter", warnings=[warning])
    plan.forward = (
        [f"{WARNING_MARKER} {warning}. Author a data-preserving migration by hand."]
        + [f"DROP TABLE IF EXISTS {old_table};"]
        + emit_create_statements(to_schema.table_name, to_def, description=to_schema.description)
    )
    plan.reverse = [f"DROP TABLE IF EXISTS {new_table};"] + emit_create_statements(
        from_schema.table_name, from_def, description=from_schema.description
    )
    plan.removed_fields = list(from_def.properties)
    plan.added_fields = list(to_def.properties)
    return plan


def plan(from_schema, to_schema) -> MigrationPlan:
    """Compute forward/reverse statements taking ``from_schema`` to ``to_schema``.

    Both arguments are schema rows (anything with ``table_name``,
    ``definition`` and ``description``). ``from_schema`` may be None for an
    initial CREATE TABLE migration.
    """
    to_def = as_definition(to_schema.definition)
    if from_schema is None:
        return _plan_create(to_schema, to_def)

    from_def = as_definition(from_schema.definition)
    if from_schema.table_name != to_schema.table_name:
        return _plan_table_swap(from_schema, from_def, to_schema, to_def)

    table_name = to_schema.table_name
    table = quote_identifier(table_name)
    from_props = from_def.properties
    to_props = to_def.properties
    from_indexes = _indexes_by_name(table_name, from_def.indexes)
    to_indexes = _indexes_by_name(table_name, to_def.indexes)
    result = MigrationPlan(migration_type="alter")

    def step(forward_sql: str, reverse_sql: Optional[str] = None) -> None:
        result.forward.append(forward_sql)
        if reverse_sql:
            result.reverse.insert(0, reverse_sql)

    def warn(message: str) -> None:
        result.warnings.append(message)
        logger.warning("%s", message)

    # Indexes go before their columns disappear. A redefined index keeps its
    # name, so it is dropped here and recreated at the end.
    rebuilt = [
        name for name, index in to_indexes.items()
        if name in from_indexes and _index_shape(from_indexes[name]) != _index_shape(index)
    ]
    for name, index in from_indexes.items():
        if name in rebuilt or (
            name not in to_indexes and not _matched_by_fields(index, to_indexes, from_indexes)
        ):
            result.dropped_indexes.append(name)
            step(_drop_index(table_name, index), emit_create_index(table_name, index, if_not_exists=False))

    for name, fd in to_props.items():
        if name in from_props:
            continue
        required = to_def.is_required(name)
        result.added_fields.append(name)
        if _is_not_null(to_def, name, fd) and not fd.has_default:
            warn(f"Column {table_name}.{name} is added as NOT NULL without a default; fails on a non-empty table")
        step(_add_column(table, name, fd, required=required), _drop_column(table, name))

    for name, fd in to_props.items():
        if name not in from_props:
            continue
        before = from_props[name]
        changed = False

        from_type = map_field_to_sql_type(before)
        to_type = map_field_to_sql_type(fd)
        if from_type != to_type:
            changed = True
            warning = f"Column type change detected on {table_name}.{name} ({from_type} -> {to_type})"
            result.warnings.append(warning)
            logger.warning("%s; emitted as a commented statement for manual review", warning)
            step(
                f"-- ALTER TABLE {table} ALTER COLUMN {quote_identifier(name)} TYPE {to_type};\n"
                f"{WARNING_MARKER} Column type change detected. Please review manually."
            )

        if before.database.primary_key != fd.database.primary_key:
            changed = True
            warning = f"Primary key change detected on {table_name}.{name}"
            warn(warning)
            step(f"{WARNING_MARKER} {warning}. Please review manually.")

        was_not_null = _is_not_null(from_def, name, before)
        is_not_null = _is_not_null(to_def, name, fd)
        if was_not_null != is_not_null:
            changed = True
            if is_not_null:
                warn(f"Column {table_name}.{name} becomes NOT NULL; fails if existing rows hold NULL")
            step(_set_not_null(table, name, is_not_null), _set_not_null(table, name, was_not_null))

        from_default = _default_sql(before)
        to_default = _default_sql(fd)
        if from_default != to_default:
            changed = True
            step(_set_default(table, name, to_default), _set_default(table, name, from_default))

        if before.database.unique != fd.database.unique:
            changed = True
            if fd.database.unique:
                step(_add_unique(table_name, name), _drop_unique(table_name, name))
            else:
                step(_drop_unique(table_name, name), _add_unique(table_name, name))

        if changed:
            result.modified_fields.append(name)

    for name, fd in from_props.items():
        if name not in to_props:
            result.removed_fields.append(name)
            step(_drop_column(table, name), _add_column(table, name, fd, required=from_def.is_required(name)))

    for name, index in to_indexes.items():
        if name in rebuilt or (
            name not in from_indexes and not _matched_by_fields(index, from_indexes, to_indexes)
        ):
            result.added_indexes.append(name)
            step(emit_create_index(table_name, index, if_not_exists=False), _drop_index(table_name, index))

    return result
