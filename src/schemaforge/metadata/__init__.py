"""Persistent state for schemas, migrations, the change log and dependency edges."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import declarative_base, relationship

from schemaforge.errors import NotFoundError


@compiles(JSONB, "sqlite")
def compile_jsonb_for_sqlite(element, compiler, **kw):
    return compiler.visit_JSON(element, **kw)


Base = declarative_base()

SCHEMA_STATUSES = ("draft", "active", "deprecated", "archived")
MIGRATION_STATUSES = ("pending", "running", "completed", "failed", "rolled_back")
CHANGE_TYPES = ("created", "updated", "activated", "deprecated", "archived", "deleted", "rolled_back")
DEPENDENCY_TYPES = ("foreign_key", "reference", "extends")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


def coerce_uuid(value, label: str = "Schema") -> uuid.UUID:
    """Accept a UUID or its string form; anything else cannot name a row."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found: {value}")


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Schema(Base):
    """A versioned, user-defined table declaration."""

    __tablename__ = "schemas"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    model_id = Column(String(100), nullable=False, index=True)  # Stable logical name, e.g. "customer"
    version = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    table_name = Column(String(100), nullable=False, index=True)

    # type/properties/required/indexes/workflows/permissions
    definition = Column(JSONB, nullable=False)

    status = Column(String(20), nullable=False, default="draft", index=True)
    is_system = Column(Boolean, nullable=False, default=False)
    metadata_json = Column("metadata", JSONB, default=dict)

    created_by = Column(String(255))
    updated_by = Column(String(255))
    activated_at = Column(DateTime(timezone=True))
    deprecated_at = Column(DateTime(timezone=True))
    archived_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    dependencies = relationship(
        "SchemaDependency",
        foreign_keys="SchemaDependency.schema_id",
        back_populates="schema",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("model_id", "version", name="uq_schemas_model_id_version"),
        CheckConstraint(_in_list("status", SCHEMA_STATUSES), name="ck_schemas_status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "modelId": self.model_id,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "tableName": self.table_name,
            "definition": self.definition,
            "status": self.status,
            "isSystem": bool(self.is_system),
            "metadata": self.metadata_json or {},
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "activatedAt": _isoformat(self.activated_at),
            "deprecatedAt": _isoformat(self.deprecated_at),
            "archivedAt": _isoformat(self.archived_at),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


class Migration(Base):
    """A planned transition between two schema versions."""

    __tablename__ = "migrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    migration_name = Column(String(255), nullable=False)
    description = Column(Text)

    # from_schema_id is NULL for an initial CREATE TABLE migration
    from_schema_id = Column(UUID(as_uuid=True), ForeignKey("schemas.id", ondelete="SET NULL"), index=True)
    to_schema_id = Column(UUID(as_uuid=True), ForeignKey("schemas.id", ondelete="SET NULL"), index=True)
    from_version = Column(String(20))
    to_version = Column(String(20), nullable=False)
    migration_type = Column(String(20), nullable=False, default="alter")

    # Ordered SQL statements; frozen once the migration completes.
    forward_statements = Column(JSONB, nullable=False, default=list)
    reverse_statements = Column(JSONB, nullable=False, default=list)

    status = Column(String(20), nullable=False, default="pending", index=True)
    execution_order = Column(Integer, nullable=False, default=0)
    auto_activated = Column(Boolean, nullable=False, default=False)

    applied_at = Column(DateTime(timezone=True))
    applied_by = Column(String(255))
    rolled_back_at = Column(DateTime(timezone=True))
    rolled_back_by = Column(String(255))
    execution_time_ms = Column(Integer)
    error = Column(Text)
    error_stack = Column(Text)

    created_by = Column(String(255))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    from_schema = relationship("Schema", foreign_keys=[from_schema_id])
    to_schema = relationship("Schema", foreign_keys=[to_schema_id])

    __table_args__ = (
        CheckConstraint(_in_list("status", MIGRATION_STATUSES), name="ck_migrations_status"),
        Index("idx_migrations_execution_order", "execution_order", "created_at"),
    )

    def to_dict(self) -> dict:
        forward = list(self.forward_statements or [])
        reverse = list(self.reverse_statements or [])
        return {
            "id": str(self.id),
            "migrationName": self.migration_name,
            "description": self.description,
            "fromSchemaId": str(self.from_schema_id) if self.from_schema_id else None,
            "toSchemaId": str(self.to_schema_id) if self.to_schema_id else None,
            "fromVersion": self.from_version,
            "toVersion": self.to_version,
            "migrationType": self.migration_type,
            "forwardStatements": forward,
            "reverseStatements": reverse,
            "forwardSql": "\n".join(forward),
            "reverseSql": "\n".join(reverse),
            "status": self.status,
            "executionOrder": self.execution_order,
            "autoActivated": bool(self.auto_activated),
            "appliedAt": _isoformat(self.applied_at),
            "appliedBy": self.applied_by,
            "rolledBackAt": _isoformat(self.rolled_back_at),
            "rolledBackBy": self.rolled_back_by,
            "executionTimeMs": self.execution_time_ms,
            "error": self.error,
            "errorStack": self.error_stack,
            "createdBy": self.created_by,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


class SchemaChange(Base):
    """Append-only audit entry for a schema lifecycle event."""

    __tablename__ = "schema_changes"

    # Autoincrement id breaks changed_at ties in insertion order.
    id = Column(Integer, primary_key=True, autoincrement=True)
    # No FK: entries outlive the schema they describe.
    schema_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    change_type = Column(String(20), nullable=False, index=True)
    change_details = Column(JSONB, nullable=False, default=dict)
    before_snapshot = Column(JSONB)
    after_snapshot = Column(JSONB)
    changed_by = Column(String(255))
    changed_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, index=True)
    migration_id = Column(UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_list("change_type", CHANGE_TYPES), name="ck_schema_changes_change_type"),
        Index("idx_schema_changes_schema_changed_at", "schema_id", "changed_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schemaId": str(self.schema_id),
            "changeType": self.change_type,
            "changeDetails": self.change_details or {},
            "beforeSnapshot": self.before_snapshot,
            "afterSnapshot": self.after_snapshot,
            "changedBy": self.changed_by,
            "changedAt": _isoformat(self.changed_at),
            "migrationId": str(self.migration_id) if self.migration_id else None,
        }


class SchemaDependency(Base):
    """Directed edge: schema_id depends on depends_on_schema_id."""

    __tablename__ = "schema_dependencies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    schema_id = Column(UUID(as_uuid=True), ForeignKey("schemas.id", ondelete="CASCADE"), nullable=False, index=True)
    depends_on_schema_id = Column(
        UUID(as_uuid=True),
        ForeignKey("schemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dependency_type = Column(String(20), nullable=False, default="reference")
    field_name = Column(String(255))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    schema = relationship("Schema", foreign_keys=[schema_id], back_populates="dependencies")
    depends_on_schema = relationship("Schema", foreign_keys=[depends_on_schema_id])

    __table_args__ = (
        UniqueConstraint("schema_id", "depends_on_schema_id", name="uq_schema_dependencies_edge"),
        CheckConstraint(_in_list("dependency_type", DEPENDENCY_TYPES), name="ck_schema_dependencies_type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "schemaId": str(self.schema_id),
            "dependsOnSchemaId": str(self.depends_on_schema_id),
            "dependencyType": self.dependency_type,
            "fieldName": self.field_name,
            "createdAt": _isoformat(self.created_at),
        }
