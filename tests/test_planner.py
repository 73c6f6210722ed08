"""Tests for the migration planner."""

import copy
from types import SimpleNamespace

from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from schemaforge.database import build_engine
from schemaforge.ddl import emit_create_statements
from schemaforge.planner import WARNING_MARKER, default_migration_name, is_comment_only, plan


def _schema(definition, table_name="customers", description=None):
    return SimpleNamespace(table_name=table_name, definition=definition, description=description)


class TestCreatePlan:

    def test_initial_migration_creates_table(self, customer_definition):
        result = plan(None, _schema(customer_definition))
        assert result.migration_type == "create"
        assert result.forward[0].startswith("CREATE TABLE IF NOT EXISTS customers")
        assert result.reverse == ["DROP TABLE IF EXISTS customers;"]
        assert result.added_fields == ["id", "name"]
        assert result.summary() == "create table"

    def test_initial_migration_includes_indexes(self, customer_definition):
        customer_definition["indexes"] = [{"fields": ["name"]}]
        result = plan(None, _schema(customer_definition))
        assert result.forward[1] == "CREATE INDEX IF NOT EXISTS idx_customers_name ON customers (name);"
        assert result.added_indexes == ["idx_customers_name"]


class TestAlterPlan:

    def test_add_column(self, customer_definition, customer_v2_definition):
        result = plan(_schema(customer_definition), _schema(customer_v2_definition))
        assert result.forward == ["ALTER TABLE customers ADD COLUMN email VARCHAR(255);"]
        assert result.reverse == ["ALTER TABLE customers DROP COLUMN email;"]
        assert result.added_fields == ["email"]
        assert result.summary() == "1 column(s) added"
        assert not result.has_warnings

    def test_drop_column_restores_default_on_reverse(self, customer_definition):
        before = copy.deepcopy(customer_definition)
        before["properties"]["tier"] = {"type": "string", "maxLength": 10, "default": "basic"}
        result = plan(_schema(before), _schema(customer_definition))
        assert result.forward == ["ALTER TABLE customers DROP COLUMN tier;"]
        assert result.reverse == ["ALTER TABLE customers ADD COLUMN tier VARCHAR(10) DEFAULT 'basic';"]
        assert result.removed_fields == ["tier"]

    def test_added_column_names_are_quoted(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["createdAt"] = {"type": "string", "format": "date-time"}
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ['ALTER TABLE customers ADD COLUMN "createdAt" TIMESTAMPTZ;']

    def test_type_change_is_commented_out(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["name"] = {"type": "string"}
        result = plan(_schema(customer_definition), _schema(after))

        assert result.modified_fields == ["name"]
        assert len(result.forward) == 1
        assert is_comment_only(result.forward[0])
        assert "-- ALTER TABLE customers ALTER COLUMN name TYPE TEXT;" in result.forward[0]
        assert WARNING_MARKER in result.forward[0]
        assert result.reverse == []
        assert result.warnings == ["Column type change detected on customers.name (VARCHAR(100) -> TEXT)"]

    def test_add_and_drop_index(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["indexes"] = [{"fields": ["name"]}]

        added = plan(_schema(customer_definition), _schema(after))
        assert added.forward == ["CREATE INDEX idx_customers_name ON customers (name);"]
        assert added.reverse == ["DROP INDEX IF EXISTS idx_customers_name;"]

        dropped = plan(_schema(after), _schema(customer_definition))
        assert dropped.forward == ["DROP INDEX IF EXISTS idx_customers_name;"]
        assert dropped.dropped_indexes == ["idx_customers_name"]

    def test_index_on_removed_column_dropped_first(self, customer_definition, customer_v2_definition):
        customer_v2_definition["indexes"] = [{"fields": ["email"], "unique": True}]
        result = plan(_schema(customer_v2_definition), _schema(customer_definition))
        assert result.forward == [
            "DROP INDEX IF EXISTS idx_customers_email;",
            "ALTER TABLE customers DROP COLUMN email;",
        ]

    def test_swapping_sides_reverses_the_plan(self, customer_definition, customer_v2_definition):
        customer_v2_definition["indexes"] = [{"fields": ["email"]}]
        a, b = _schema(customer_definition), _schema(customer_v2_definition)
        assert plan(b, a).forward == plan(a, b).reverse

    def test_identical_definitions_plan_nothing(self, customer_definition):
        result = plan(_schema(customer_definition), _schema(copy.deepcopy(customer_definition)))
        assert result.is_empty
        assert result.reverse == []
        assert result.summary() == "no changes"

    def test_table_rename_is_drop_and_create(self, customer_definition):
        result = plan(_schema(customer_definition), _schema(customer_definition, table_name="clients"))
        assert result.has_warnings
        assert result.forward[0].startswith(WARNING_MARKER)
        assert result.forward[1] == "DROP TABLE IF EXISTS customers;"
        assert result.forward[2].startswith("CREATE TABLE IF NOT EXISTS clients")
        assert result.reverse[0] == "DROP TABLE IF EXISTS clients;"

    def test_dropping_required_relaxes_not_null(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["required"] = ["id"]
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ["ALTER TABLE customers ALTER COLUMN name DROP NOT NULL;"]
        assert result.reverse == ["ALTER TABLE customers ALTER COLUMN name SET NOT NULL;"]
        assert result.modified_fields == ["name"]
        assert not result.has_warnings

        tightened = plan(_schema(after), _schema(customer_definition))
        assert tightened.forward == ["ALTER TABLE customers ALTER COLUMN name SET NOT NULL;"]
        assert tightened.warnings == [
            "Column customers.name becomes NOT NULL; fails if existing rows hold NULL"
        ]

    def test_default_change(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["name"]["default"] = "x"
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ["ALTER TABLE customers ALTER COLUMN name SET DEFAULT 'x';"]
        assert result.reverse == ["ALTER TABLE customers ALTER COLUMN name DROP DEFAULT;"]
        assert result.modified_fields == ["name"]

    def test_unique_change(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["name"]["database"] = {"unique": True}
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ["ALTER TABLE customers ADD CONSTRAINT customers_name_key UNIQUE (name);"]
        assert result.reverse == ["ALTER TABLE customers DROP CONSTRAINT IF EXISTS customers_name_key;"]

        relaxed = plan(_schema(after), _schema(customer_definition))
        assert relaxed.forward == result.reverse
        assert relaxed.reverse == result.forward

    def test_constraint_and_default_changes_together(self, customer_v2_definition):
        after = copy.deepcopy(customer_v2_definition)
        after["properties"]["email"]["database"] = {"unique": True, "notNull": True}
        after["properties"]["email"]["default"] = "x@example.com"
        result = plan(_schema(customer_v2_definition), _schema(after))

        assert result.forward == [
            "ALTER TABLE customers ALTER COLUMN email SET NOT NULL;",
            "ALTER TABLE customers ALTER COLUMN email SET DEFAULT 'x@example.com';",
            "ALTER TABLE customers ADD CONSTRAINT customers_email_key UNIQUE (email);",
        ]
        assert result.reverse == [
            "ALTER TABLE customers DROP CONSTRAINT IF EXISTS customers_email_key;",
            "ALTER TABLE customers ALTER COLUMN email DROP DEFAULT;",
            "ALTER TABLE customers ALTER COLUMN email DROP NOT NULL;",
        ]
        assert result.modified_fields == ["email"]
        assert result.summary() == "1 column(s) altered"

    def test_added_column_carries_its_constraints(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["code"] = {"type": "string", "maxLength": 10, "default": "a", "database": {"unique": True}}
        after["required"].append("code")
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ["ALTER TABLE customers ADD COLUMN code VARCHAR(10) NOT NULL UNIQUE DEFAULT 'a';"]
        assert not result.has_warnings

    def test_required_column_without_default_warns(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["code"] = {"type": "string", "maxLength": 10}
        after["required"].append("code")
        result = plan(_schema(customer_definition), _schema(after))
        assert result.forward == ["ALTER TABLE customers ADD COLUMN code VARCHAR(10) NOT NULL;"]
        assert result.warnings == [
            "Column customers.code is added as NOT NULL without a default; fails on a non-empty table"
        ]

    def test_redefined_index_is_rebuilt(self, customer_definition, customer_v2_definition):
        before = copy.deepcopy(customer_definition)
        before["indexes"] = [{"name": "idx_lookup", "fields": ["name"]}]
        customer_v2_definition["indexes"] = [{"name": "idx_lookup", "fields": ["email"], "unique": True}]
        result = plan(_schema(before), _schema(customer_v2_definition))

        assert result.forward == [
            "DROP INDEX IF EXISTS idx_lookup;",
            "ALTER TABLE customers ADD COLUMN email VARCHAR(255);",
            "CREATE UNIQUE INDEX idx_lookup ON customers (email);",
        ]
        assert result.reverse == [
            "DROP INDEX IF EXISTS idx_lookup;",
            "ALTER TABLE customers DROP COLUMN email;",
            "CREATE INDEX idx_lookup ON customers (name);",
        ]
        assert result.dropped_indexes == ["idx_lookup"]
        assert result.added_indexes == ["idx_lookup"]

    def test_unchanged_named_index_is_left_alone(self, customer_definition, customer_v2_definition):
        customer_definition["indexes"] = [{"name": "idx_lookup", "fields": ["name"]}]
        customer_v2_definition["indexes"] = [{"name": "idx_lookup", "fields": ["name"]}]
        result = plan(_schema(customer_definition), _schema(customer_v2_definition))
        assert result.forward == ["ALTER TABLE customers ADD COLUMN email VARCHAR(255);"]

    def test_renamed_index_over_same_fields_is_left_alone(self, customer_definition):
        before = copy.deepcopy(customer_definition)
        before["indexes"] = [{"fields": ["name"]}]
        customer_definition["indexes"] = [{"name": "by_name", "fields": ["name"]}]
        assert plan(_schema(before), _schema(customer_definition)).is_empty


def test_default_migration_name():
    assert default_migration_name("customer", "1.0.0", "1.1.0") == "customer_1.0.0_to_1.1.0"
    assert default_migration_name("customer", None, "1.0.0") == "customer_0.0.0_to_1.0.0"


def test_is_comment_only():
    assert is_comment_only("-- nothing here\n  -- or here")
    assert not is_comment_only("-- header\nDROP TABLE x;")


def _apply(*batches):
    """Run statement lists on a fresh SQLite database and describe ``customers``."""
    engine = build_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    try:
        with engine.begin() as conn:
            for statements in batches:
                for statement in statements:
                    conn.exec_driver_sql(statement)
        inspector = inspect(engine)
        columns = [
            (column["name"], str(column["type"]), column["nullable"], column["default"])
            for column in inspector.get_columns("customers")
        ]
        indexes = sorted(
            (index["name"], tuple(index["column_names"]), bool(index["unique"]))
            for index in inspector.get_indexes("customers")
        )
        return columns, indexes
    finally:
        engine.dispose()


class TestMigratedTableMatchesFreshCreate:

    def test_added_required_column_is_not_null(self, customer_definition):
        after = copy.deepcopy(customer_definition)
        after["properties"]["code"] = {"type": "string", "maxLength": 10, "default": "a"}
        after["required"].append("code")

        columns, _ = _apply(
            emit_create_statements("customers", customer_definition),
            plan(_schema(customer_definition), _schema(after)).forward,
        )
        code = next(column for column in columns if column[0] == "code")
        assert code[2] is False

    def test_add_drop_and_index_changes(self, customer_definition):
        before = copy.deepcopy(customer_definition)
        before["properties"]["legacy"] = {"type": "string"}
        before["indexes"] = [{"name": "idx_lookup", "fields": ["name"]}, {"fields": ["name"]}]

        after = copy.deepcopy(customer_definition)
        after["properties"]["code"] = {"type": "string", "maxLength": 10, "default": "a"}
        after["required"].append("code")
        after["indexes"] = [{"name": "idx_lookup", "fields": ["name", "code"], "unique": True}]

        result = plan(_schema(before), _schema(after))
        migrated = _apply(emit_create_statements("customers", before), result.forward)
        fresh = _apply(emit_create_statements("customers", after))
        assert migrated == fresh

        restored = _apply(emit_create_statements("customers", before), result.forward, result.reverse)
        assert restored == _apply(emit_create_statements("customers", before))
