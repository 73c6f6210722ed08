"""Tests for the schema change log."""

from datetime import datetime, timedelta, timezone
import uuid

import pytest

from schemaforge import changelog
from schemaforge.errors import InvalidStateError, NotFoundError, ValidationError
from schemaforge.metadata import SchemaChange
from schemaforge.registry import SchemaRegistry


class TestAppendOnly:

    def test_entries_cannot_be_updated(self, test_db, make_schema):
        schema = make_schema()
        entry = changelog.get_schema_history(test_db, schema.id)[0]
        entry.changed_by = "mallory"
        with pytest.raises(InvalidStateError):
            test_db.commit()
        test_db.rollback()

    def test_entries_cannot_be_deleted(self, test_db, make_schema):
        schema = make_schema()
        entry = changelog.get_schema_history(test_db, schema.id)[0]
        test_db.delete(entry)
        with pytest.raises(InvalidStateError):
            test_db.commit()
        test_db.rollback()


def test_unknown_change_type_rejected(test_db):
    with pytest.raises(ValidationError):
        changelog.log_change(test_db, schema_id=uuid.uuid4(), change_type="renamed")


def test_changed_at_never_goes_backwards(test_db):
    schema_id = uuid.uuid4()
    future = datetime.now(timezone.utc) + timedelta(hours=1)
    test_db.add(SchemaChange(schema_id=schema_id, change_type="created", change_details={}, changed_at=future))
    test_db.flush()

    entry = changelog.log_change(test_db, schema_id=schema_id, change_type="updated")
    assert entry.changed_at >= future

    history = changelog.get_schema_history(test_db, schema_id)
    assert [item.change_type for item in history] == ["updated", "created"]


def test_history_is_newest_first_and_limited(test_db, make_schema):
    registry = SchemaRegistry(test_db)
    schema = make_schema()
    registry.update(schema.id, {"name": "Customers"})
    registry.activate(schema.id)

    history = changelog.get_schema_history(test_db, schema.id, limit=2)
    assert [entry.change_type for entry in history] == ["activated", "updated"]


def test_recent_changes_span_schemas(test_db, make_schema):
    make_schema()
    make_schema("invoice", table_name="invoices")
    recent = changelog.get_recent_changes(test_db, limit=10)
    assert [entry.change_details["modelId"] for entry in recent] == ["invoice", "customer"]
    assert len(changelog.get_recent_changes(test_db, limit=10, offset=1)) == 1


def test_get_change(test_db, make_schema):
    schema = make_schema()
    entry = changelog.get_schema_history(test_db, schema.id)[0]
    assert changelog.get_change(test_db, entry.id).schema_id == schema.id
    with pytest.raises(NotFoundError):
        changelog.get_change(test_db, 999999)


def test_statistics(test_db, make_schema):
    registry = SchemaRegistry(test_db)
    schema = make_schema()
    make_schema(version="1.1.0")
    registry.activate(schema.id)

    stats = changelog.get_statistics(test_db, days=7)
    assert stats["days"] == 7
    assert stats["total"] == 3
    assert stats["byType"]["created"] == 2
    assert stats["byType"]["activated"] == 1
    assert stats["byType"]["rolled_back"] == 0


class TestDiffSnapshots:

    def test_field_level_diff(self, customer_definition, customer_v2_definition):
        customer_v2_definition["properties"]["name"]["maxLength"] = 200
        del customer_v2_definition["properties"]["id"]
        before = {"name": "Customer", "definition": customer_definition, "updatedAt": "t1"}
        after = {"name": "Customers", "definition": customer_v2_definition, "updatedAt": "t2"}

        diff = changelog.diff_snapshots(before, after)
        assert diff["added"] == ["email"]
        assert diff["removed"] == ["id"]
        assert diff["modified"] == ["name"]
        assert diff["attributes"] == ["name", "definition"]

    def test_missing_snapshots(self):
        assert changelog.diff_snapshots(None, None) == {
            "added": [],
            "removed": [],
            "modified": [],
            "attributes": [],
        }


def test_summarize_change(test_db, make_schema):
    registry = SchemaRegistry(test_db)
    schema = make_schema()
    registry.update(schema.id, {"description": "All customers"})
    entry = changelog.get_schema_history(test_db, schema.id)[0]
    assert changelog.summarize_change(entry) == "customer v1.0.0 updated (description)"
