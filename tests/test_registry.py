"""Tests for the schema registry and its lifecycle transitions."""

import uuid

import pytest
from sqlalchemy.orm import Query, Session

from schemaforge import changelog
from schemaforge.errors import (
    ConflictError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from schemaforge.graph import DependencyGraph
from schemaforge.registry import SchemaRegistry, version_key


def _history_types(test_db: Session, schema_id) -> list[str]:
    return [entry.change_type for entry in changelog.get_schema_history(test_db, schema_id)]


class TestCreate:

    def test_create_starts_as_draft(self, test_db, make_schema):
        schema = make_schema(created_by="alice")
        assert schema.status == "draft"
        assert schema.table_name == "customers"
        assert schema.created_by == "alice"
        assert _history_types(test_db, schema.id) == ["created"]

    def test_create_then_activate_logs_two_entries(self, test_db, make_schema):
        schema = make_schema()
        SchemaRegistry(test_db).activate(schema.id, "alice")
        assert schema.status == "active"
        assert schema.activated_at is not None
        assert _history_types(test_db, schema.id) == ["activated", "created"]

    def test_duplicate_version_conflicts(self, test_db, make_schema):
        make_schema()
        with pytest.raises(ConflictError) as exc_info:
            make_schema()
        assert "Duplicate" in exc_info.value.message
        assert SchemaRegistry(test_db).list(model_id="customer")["total"] == 1

    def test_duplicate_inserted_after_precheck_conflicts(self, test_db, make_schema, monkeypatch):
        make_schema()
        real_first = Query.first
        calls = []

        def first_missing_once(query):
            # The duplicate check is the first lookup in create.
            if not calls:
                calls.append(query)
                return None
            return real_first(query)

        monkeypatch.setattr(Query, "first", first_missing_once)
        with pytest.raises(ConflictError) as exc_info:
            make_schema()
        monkeypatch.undo()

        assert calls
        assert "Duplicate" in exc_info.value.message
        assert SchemaRegistry(test_db).list(model_id="customer")["total"] == 1

    def test_invalid_definition_rejected(self, make_schema):
        definition = {"type": "object", "properties": {"id": {"type": "integer"}}, "required": ["code"]}
        with pytest.raises(ValidationError) as exc_info:
            make_schema(definition=definition)
        assert 'Required field "code" not found in properties' in exc_info.value.errors

    def test_invalid_version_rejected(self, make_schema):
        with pytest.raises(ValidationError):
            make_schema(version="latest")

    def test_invalid_table_name_rejected(self, make_schema):
        with pytest.raises(ValidationError):
            make_schema(table_name="customer-records")


class TestUpdate:

    def test_descriptive_update_on_draft(self, test_db, make_schema):
        schema = make_schema()
        updated = SchemaRegistry(test_db).update(schema.id, {"name": "Customers", "description": "All of them"}, "bob")
        assert updated.name == "Customers"
        assert updated.updated_by == "bob"

        entry = changelog.get_schema_history(test_db, schema.id)[0]
        assert entry.change_type == "updated"
        assert entry.change_details["fields"] == ["name", "description"]
        assert entry.before_snapshot["name"] == "Customer"
        assert entry.after_snapshot["name"] == "Customers"

    def test_definition_update_on_draft(self, test_db, make_schema, customer_v2_definition):
        schema = make_schema()
        updated = SchemaRegistry(test_db).update(schema.id, {"definition": customer_v2_definition})
        assert "email" in updated.definition["properties"]

    def test_definition_frozen_once_active(self, test_db, make_schema, customer_definition, customer_v2_definition):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)

        with pytest.raises(InvalidStateError):
            registry.update(schema.id, {"definition": customer_v2_definition})

        test_db.expire_all()
        assert registry.get(schema.id).definition == customer_definition
        assert _history_types(test_db, schema.id) == ["activated", "created"]

    def test_table_name_frozen_once_active(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        with pytest.raises(InvalidStateError):
            registry.update(schema.id, {"table_name": "clients"})

    def test_descriptive_update_allowed_when_active(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        assert registry.update(schema.id, {"description": "Now documented"}).description == "Now documented"

    def test_unknown_field_rejected(self, test_db, make_schema):
        schema = make_schema()
        with pytest.raises(ValidationError):
            SchemaRegistry(test_db).update(schema.id, {"status": "active"})

    def test_invalid_definition_rejected(self, test_db, make_schema):
        schema = make_schema()
        with pytest.raises(ValidationError):
            SchemaRegistry(test_db).update(schema.id, {"definition": {"type": "object", "properties": {}}})

    def test_system_flag_is_not_updatable(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema(is_system=True)
        with pytest.raises(ValidationError):
            registry.update(schema.id, {"is_system": False})
        with pytest.raises(InvalidStateError):
            registry.delete(schema.id)
        assert registry.get(schema.id).is_system is True

    def test_system_schema_is_read_only(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema(is_system=True)
        with pytest.raises(InvalidStateError):
            registry.update(schema.id, {"description": "edited"})
        assert _history_types(test_db, schema.id) == ["created"]


class TestLifecycle:

    def test_activate_twice_conflicts(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        with pytest.raises(ConflictError):
            registry.activate(schema.id)

    def test_deprecate_and_archive(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        registry.deprecate(schema.id)
        assert schema.status == "deprecated"
        assert schema.deprecated_at is not None

        registry.archive(schema.id)
        assert schema.status == "archived"
        assert _history_types(test_db, schema.id) == ["archived", "deprecated", "activated", "created"]

    def test_deprecated_cannot_be_reactivated(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        registry.deprecate(schema.id)
        with pytest.raises(InvalidStateError):
            registry.activate(schema.id)

    def test_draft_cannot_be_deprecated(self, test_db, make_schema):
        schema = make_schema()
        with pytest.raises(InvalidStateError):
            SchemaRegistry(test_db).deprecate(schema.id)

    def test_active_cannot_be_archived(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        registry.activate(schema.id)
        with pytest.raises(InvalidStateError):
            registry.archive(schema.id)

    def test_draft_can_be_archived(self, test_db, make_schema):
        schema = make_schema()
        assert SchemaRegistry(test_db).archive(schema.id).status == "archived"

    def test_deprecate_warns_about_active_dependents(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        customer = make_schema()
        order = make_schema("order", table_name="orders")
        DependencyGraph(test_db).add_dependency(order.id, customer.id, dependency_type="foreign_key")
        registry.activate(customer.id)
        registry.activate(order.id)

        registry.deprecate(customer.id)
        entry = changelog.get_schema_history(test_db, customer.id)[0]
        assert entry.change_type == "deprecated"
        assert entry.change_details["activeDependents"] == [str(order.id)]
        assert "warning" in entry.change_details


class TestDelete:

    def test_delete_keeps_history(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        schema_id = schema.id
        registry.delete(schema_id, "carol")

        with pytest.raises(NotFoundError):
            registry.get(schema_id)
        entries = changelog.get_schema_history(test_db, schema_id)
        assert [entry.change_type for entry in entries] == ["deleted", "created"]
        assert entries[0].before_snapshot["modelId"] == "customer"
        assert entries[0].changed_by == "carol"

    def test_system_schema_cannot_be_deleted(self, test_db, make_schema):
        schema = make_schema(is_system=True)
        with pytest.raises(InvalidStateError):
            SchemaRegistry(test_db).delete(schema.id)

    def test_active_dependents_block_delete(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        customer = make_schema()
        order = make_schema("order", table_name="orders")
        DependencyGraph(test_db).add_dependency(order.id, customer.id)
        registry.activate(order.id)

        with pytest.raises(DependencyError) as exc_info:
            registry.delete(customer.id)
        assert exc_info.value.details["dependentCount"] == 1
        assert "1 active schemas depend on it" in exc_info.value.message

        registry.deprecate(order.id)
        registry.delete(customer.id)
        assert DependencyGraph(test_db).list_dependencies(order.id) == []

    def test_draft_dependents_do_not_block_delete(self, test_db, make_schema):
        customer = make_schema()
        order = make_schema("order", table_name="orders")
        DependencyGraph(test_db).add_dependency(order.id, customer.id)
        SchemaRegistry(test_db).delete(customer.id)


class TestReads:

    def test_get_unknown_id(self, test_db):
        registry = SchemaRegistry(test_db)
        with pytest.raises(NotFoundError):
            registry.get(uuid.uuid4())
        with pytest.raises(NotFoundError):
            registry.get("not-a-uuid")

    def test_get_latest_uses_version_order(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        make_schema(version="1.2.0")
        newest = make_schema(version="1.10.0")
        make_schema(version="1.9.3")
        assert registry.get_latest("customer").id == newest.id

        registry.archive(newest.id)
        assert registry.get_latest("customer").version == "1.9.3"

    def test_get_latest_unknown_model(self, test_db):
        with pytest.raises(NotFoundError):
            SchemaRegistry(test_db).get_latest("ghost")

    def test_list_filters_and_pagination(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        first = make_schema()
        make_schema(version="1.1.0")
        make_schema("invoice", table_name="invoices")
        registry.activate(first.id)

        assert registry.list(status="active")["total"] == 1
        assert registry.list(model_id="customer")["total"] == 2
        assert registry.list(search="INVOI")["total"] == 1

        page = registry.list(limit=2, order_by="modelId", order_direction="asc")
        assert page["total"] == 3
        assert page["hasMore"] is True
        assert [schema.model_id for schema in page["schemas"]] == ["customer", "customer"]

    def test_list_search_escapes_wildcards(self, test_db, make_schema):
        make_schema()
        assert SchemaRegistry(test_db).list(search="%")["total"] == 0

    def test_list_rejects_unknown_order(self, test_db):
        with pytest.raises(ValidationError):
            SchemaRegistry(test_db).list(order_by="status; drop table schemas")

    def test_get_with_relations(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        customer = make_schema()
        order = make_schema("order", table_name="orders")
        DependencyGraph(test_db).add_dependency(order.id, customer.id, field_name="customer_id")

        payload = registry.get_with_relations(order.id)
        assert payload["dependencies"][0]["dependsOn"]["modelId"] == "customer"
        assert payload["dependencies"][0]["fieldName"] == "customer_id"
        assert payload["migrations"] == []
        assert [change["changeType"] for change in payload["changes"]] == ["created"]

    def test_ddl(self, test_db, make_schema):
        schema = make_schema()
        assert "CREATE TABLE IF NOT EXISTS customers" in SchemaRegistry(test_db).ddl(schema.id)

    def test_statistics(self, test_db, make_schema):
        registry = SchemaRegistry(test_db)
        schema = make_schema()
        make_schema(version="2.0.0", is_system=True)
        registry.activate(schema.id)

        stats = registry.statistics()
        assert stats["total"] == 2
        assert stats["active"] == 1
        assert stats["draft"] == 1
        assert stats["system"] == 1
        assert stats["user"] == 1
        assert stats["migrations"]["total"] == 0


def test_version_key_ordering():
    versions = ["1.10.0", "1.2.0", "2.0.0-rc.1", "2.0.0", "1.3", "0.9.9"]
    assert sorted(versions, key=version_key) == ["0.9.9", "1.2.0", "1.3", "1.10.0", "2.0.0-rc.1", "2.0.0"]


def test_version_key_rejects_garbage():
    with pytest.raises(ValidationError):
        version_key("v1")
