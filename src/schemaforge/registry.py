"""Schema registry: CRUD and the draft -> active -> deprecated -> archived lifecycle.

Every mutation writes its change log entry in the same transaction as the
row change, so a committed schema change always has its audit record.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import re
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schemaforge import changelog
from schemaforge.ddl import emit_create
from schemaforge.errors import (
    ConflictError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from schemaforge.graph import DependencyGraph
from schemaforge.metadata import (
    MIGRATION_STATUSES,
    SCHEMA_STATUSES,
    Migration,
    Schema,
    SchemaDependency,
    coerce_uuid,
)
from schemaforge.validation import validate_definition, validate_table_name

logger = logging.getLogger(__name__)

_VERSION_PATTERN = re.compile(
    r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)

ORDER_COLUMNS = {
    "createdAt": Schema.created_at,
    "updatedAt": Schema.updated_at,
    "modelId": Schema.model_id,
    "version": Schema.version,
    "name": Schema.name,
}

UPDATABLE_FIELDS = ("name", "description", "table_name", "definition", "metadata")
# Fields that change the physical table; frozen once a schema leaves draft.
STRUCTURAL_FIELDS = ("definition", "table_name")

_CAMEL_NAMES = {
    "table_name": "tableName",
}

RELATION_LIMIT = 10


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def version_key(version: str) -> tuple:
    """Sort key for SemVer-like version strings ("1", "1.2", "1.2.3-rc.1")."""
    match = _VERSION_PATTERN.match(version or "")
    if not match:
        raise ValidationError(
            f"Invalid version: {version!r}",
            [f'version "{version}" must look like MAJOR.MINOR.PATCH'],
        )
    major, minor, patch = (int(part or 0) for part in match.group(1, 2, 3))
    pre_release = match.group(4)
    # A release sorts after its own pre-releases.
    return (major, minor, patch, pre_release is None, pre_release or "")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SchemaRegistry:
    """CRUD and lifecycle transitions for schema versions."""

    def __init__(self, db: Session):
        self.db = db

    # Reads

    def get(self, schema_id) -> Schema:
        schema_id = coerce_uuid(schema_id)
        schema = self.db.query(Schema).filter(Schema.id == schema_id).first()
        if not schema:
            raise NotFoundError(f"Schema not found: {schema_id}")
        return schema

    def get_with_relations(self, schema_id) -> dict[str, Any]:
        """Schema payload plus its dependency edges, newest migrations and changes."""
        schema = self.get(schema_id)
        payload = schema.to_dict()

        dependencies = []
        for edge in schema.dependencies:
            item = edge.to_dict()
            target = edge.depends_on_schema
            if target is not None:
                item["dependsOn"] = {
                    "id": str(target.id),
                    "modelId": target.model_id,
                    "version": target.version,
                    "status": target.status,
                }
            dependencies.append(item)
        payload["dependencies"] = dependencies

        migrations = (
            self.db.query(Migration)
            .filter(or_(Migration.from_schema_id == schema.id, Migration.to_schema_id == schema.id))
            .order_by(Migration.created_at.desc())
            .limit(RELATION_LIMIT)
            .all()
        )
        payload["migrations"] = [migration.to_dict() for migration in migrations]
        payload["changes"] = [
            entry.to_dict() for entry in changelog.get_schema_history(self.db, schema.id, limit=RELATION_LIMIT)
        ]
        return payload

    def get_latest(self, model_id: str) -> Schema:
        """Highest version of ``model_id`` that is not archived."""
        candidates = (
            self.db.query(Schema)
            .filter(Schema.model_id == model_id, Schema.status != "archived")
            .all()
        )
        if not candidates:
            raise NotFoundError(f"No schema versions found for model: {model_id}")
        return max(candidates, key=lambda schema: version_key(schema.version))

    def list(
        self,
        *,
        status: Optional[str] = None,
        model_id: Optional[str] = None,
        is_system: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        order_by: str = "createdAt",
        order_direction: str = "DESC",
    ) -> dict[str, Any]:
        if status and status not in SCHEMA_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        if order_by not in ORDER_COLUMNS:
            raise ValidationError(
                f"Invalid orderBy: {order_by}",
                [f"orderBy must be one of: {', '.join(ORDER_COLUMNS)}"],
            )

        query = self.db.query(Schema)
        if status:
            query = query.filter(Schema.status == status)
        if model_id:
            query = query.filter(Schema.model_id == model_id)
        if is_system is not None:
            query = query.filter(Schema.is_system == is_system)
        if search:
            pattern = f"%{_escape_like(search)}%"
            query = query.filter(
                or_(
                    Schema.model_id.ilike(pattern, escape="\\"),
                    Schema.name.ilike(pattern, escape="\\"),
                    Schema.description.ilike(pattern, escape="\\"),
                    Schema.table_name.ilike(pattern, escape="\\"),
                )
            )

        total = query.count()
        column = ORDER_COLUMNS[order_by]
        ordering = column.asc() if order_direction.upper() == "ASC" else column.desc()
        schemas = query.order_by(ordering, Schema.id).offset(offset).limit(limit).all()
        return {
            "schemas": schemas,
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        }

    # Writes

    def create(
        self,
        *,
        model_id: str,
        version: str,
        name: str,
        table_name: str,
        definition: dict[str, Any],
        description: Optional[str] = None,
        is_system: bool = False,
        metadata: Optional[dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> Schema:
        version_key(version)
        validate_table_name(table_name)
        validate_definition(definition).raise_for_errors()

        existing = (
            self.db.query(Schema.id)
            .filter(Schema.model_id == model_id, Schema.version == version)
            .first()
        )
        if existing:
            raise ConflictError(f"Duplicate schema: {model_id} v{version} already exists")

        schema = Schema(
            model_id=model_id,
            version=version,
            name=name,
            description=description,
            table_name=table_name,
            definition=definition,
            status="draft",
            is_system=is_system,
            metadata_json=metadata or {},
            created_by=created_by,
            updated_by=created_by,
        )
        try:
            self.db.add(schema)
            self.db.flush()
            changelog.log_change(
                self.db,
                schema_id=schema.id,
                change_type="created",
                change_details={"modelId": model_id, "version": version, "name": name},
                after_snapshot=schema.to_dict(),
                changed_by=created_by,
            )
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same (model_id, version).
            self.db.rollback()
            raise ConflictError(f"Duplicate schema: {model_id} v{version} already exists") from exc

        self.db.refresh(schema)
        logger.info("Schema created: %s (%s v%s) by %s", schema.id, model_id, version, created_by)
        return schema

    def update(self, schema_id, patch: dict[str, Any], updated_by: Optional[str] = None) -> Schema:
        """Apply a partial update.

        ``definition`` and ``table_name`` may only change while the schema is
        a draft; descriptive fields can be patched at any status.
        System schemas are read-only.
        """
        unknown = [key for key in patch if key not in UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown update fields: {', '.join(unknown)}")

        schema = self.get(schema_id)
        if schema.is_system:
            raise InvalidStateError(f"Schema {schema.id} is a system schema and cannot be modified")
        structural = [key for key in STRUCTURAL_FIELDS if key in patch]
        if structural and schema.status != "draft":
            raise InvalidStateError(
                f"Cannot modify {', '.join(structural)} of a {schema.status} schema; create a new version instead",
                details={"status": schema.status},
            )
        if "definition" in patch:
            validate_definition(patch["definition"]).raise_for_errors()
        if "table_name" in patch:
            validate_table_name(patch["table_name"])
        if not patch:
            return schema

        before = schema.to_dict()
        for key, value in patch.items():
            if key == "metadata":
                schema.metadata_json = value or {}
            else:
                setattr(schema, key, value)
        schema.updated_by = updated_by
        self.db.flush()

        changelog.log_change(
            self.db,
            schema_id=schema.id,
            change_type="updated",
            change_details={"fields": [_CAMEL_NAMES.get(key, key) for key in patch]},
            before_snapshot=before,
            after_snapshot=schema.to_dict(),
            changed_by=updated_by,
        )
        self.db.commit()
        self.db.refresh(schema)
        logger.info("Schema updated: %s (%s v%s) by %s", schema.id, schema.model_id, schema.version, updated_by)
        return schema

    def _transition(self, schema: Schema, to_status: str, from_statuses: tuple[str, ...], actor: Optional[str]) -> None:
        """Move ``schema`` to ``to_status`` if it is still in ``from_statuses``.

        The status check is part of the UPDATE, so a concurrent transition of
        the same row makes this one fail instead of applying twice.
        """
        values: dict[str, Any] = {"status": to_status, "updated_by": actor, "updated_at": _now_utc()}
        if to_status == "active":
            values["activated_at"] = _now_utc()
        elif to_status == "deprecated":
            values["deprecated_at"] = _now_utc()
        elif to_status == "archived":
            values["archived_at"] = _now_utc()
        elif to_status == "draft":
            values["activated_at"] = None

        updated = (
            self.db.query(Schema)
            .filter(Schema.id == schema.id, Schema.status.in_(from_statuses))
            .update(values, synchronize_session="fetch")
        )
        if not updated:
            self.db.rollback()
            raise ConflictError(f"Schema {schema.id} changed status concurrently; retry the request")

    def activate(
        self,
        schema_id,
        activated_by: Optional[str] = None,
        *,
        migration_id=None,
        commit: bool = True,
    ) -> Schema:
        """draft -> active. Re-activating an active schema is a conflict."""
        schema = self.get(schema_id)
        if schema.status == "active":
            raise ConflictError(f"Schema {schema.model_id} v{schema.version} is already active")
        if schema.status != "draft":
            raise InvalidStateError(
                f"Only draft schemas can be activated (current status: {schema.status})",
                details={"status": schema.status},
            )

        before = schema.to_dict()
        self._transition(schema, "active", ("draft",), activated_by)
        details: dict[str, Any] = {"previousStatus": before["status"]}
        if migration_id is not None:
            details["autoActivated"] = True
            details["migrationId"] = str(migration_id)
        changelog.log_change(
            self.db,
            schema_id=schema.id,
            change_type="activated",
            change_details=details,
            before_snapshot=before,
            after_snapshot=schema.to_dict(),
            changed_by=activated_by,
            migration_id=migration_id,
        )
        if commit:
            self.db.commit()
            self.db.refresh(schema)
        logger.info("Schema activated: %s (%s v%s) by %s", schema.id, schema.model_id, schema.version, activated_by)
        return schema

    def revert_to_draft(self, schema: Schema, actor: Optional[str] = None) -> None:
        """active -> draft, only for undoing a migration's auto-activation.

        Does not commit and does not log; the caller records the rollback.
        """
        self._transition(schema, "draft", ("active",), actor)
        logger.info("Schema reverted to draft: %s (%s v%s)", schema.id, schema.model_id, schema.version)

    def deprecate(self, schema_id, deprecated_by: Optional[str] = None) -> Schema:
        schema = self.get(schema_id)
        if schema.status == "deprecated":
            raise InvalidStateError("Schema is already deprecated", details={"status": schema.status})
        if schema.status != "active":
            raise InvalidStateError(
                f"Only active schemas can be deprecated (current status: {schema.status})",
                details={"status": schema.status},
            )

        dependents = DependencyGraph(self.db).get_dependents(schema.id, status="active")
        before = schema.to_dict()
        self._transition(schema, "deprecated", ("active",), deprecated_by)

        details: dict[str, Any] = {"previousStatus": before["status"]}
        if dependents:
            warning = f"{len(dependents)} active schema(s) still depend on this schema"
            details["warning"] = warning
            details["activeDependents"] = [str(dependent.id) for dependent in dependents]
            logger.warning(
                "Deprecating %s (%s v%s): %s", schema.id, schema.model_id, schema.version, warning
            )

        changelog.log_change(
            self.db,
            schema_id=schema.id,
            change_type="deprecated",
            change_details=details,
            before_snapshot=before,
            after_snapshot=schema.to_dict(),
            changed_by=deprecated_by,
        )
        self.db.commit()
        self.db.refresh(schema)
        logger.info("Schema deprecated: %s (%s v%s) by %s", schema.id, schema.model_id, schema.version, deprecated_by)
        return schema

    def archive(self, schema_id, archived_by: Optional[str] = None) -> Schema:
        schema = self.get(schema_id)
        if schema.status == "archived":
            raise InvalidStateError("Schema is already archived", details={"status": schema.status})
        if schema.status not in ("draft", "deprecated"):
            raise InvalidStateError(
                f"Only draft or deprecated schemas can be archived (current status: {schema.status})",
                details={"status": schema.status},
            )

        before = schema.to_dict()
        self._transition(schema, "archived", ("draft", "deprecated"), archived_by)
        changelog.log_change(
            self.db,
            schema_id=schema.id,
            change_type="archived",
            change_details={"previousStatus": before["status"]},
            before_snapshot=before,
            after_snapshot=schema.to_dict(),
            changed_by=archived_by,
        )
        self.db.commit()
        self.db.refresh(schema)
        logger.info("Schema archived: %s (%s v%s) by %s", schema.id, schema.model_id, schema.version, archived_by)
        return schema

    def delete(self, schema_id, deleted_by: Optional[str] = None) -> None:
        schema = self.get(schema_id)
        if schema.is_system:
            raise InvalidStateError("Cannot delete system schemas", details={"isSystem": True})

        dependents = DependencyGraph(self.db).get_dependents(schema.id, status="active")
        if dependents:
            raise DependencyError(
                f"Cannot delete schema: {len(dependents)} active schemas depend on it",
                details={
                    "dependentCount": len(dependents),
                    "dependents": [
                        {"id": str(d.id), "modelId": d.model_id, "version": d.version} for d in dependents
                    ],
                },
            )

        before = schema.to_dict()
        deleted_id = schema.id

        self.db.query(SchemaDependency).filter(
            SchemaDependency.depends_on_schema_id == deleted_id
        ).delete(synchronize_session="fetch")
        self.db.query(Migration).filter(Migration.from_schema_id == deleted_id).update(
            {"from_schema_id": None}, synchronize_session="fetch"
        )
        self.db.query(Migration).filter(Migration.to_schema_id == deleted_id).update(
            {"to_schema_id": None}, synchronize_session="fetch"
        )
        self.db.delete(schema)

        changelog.log_change(
            self.db,
            schema_id=deleted_id,
            change_type="deleted",
            change_details={"modelId": before["modelId"], "version": before["version"]},
            before_snapshot=before,
            changed_by=deleted_by,
        )
        self.db.commit()
        logger.info("Schema deleted: %s (%s v%s) by %s", deleted_id, before["modelId"], before["version"], deleted_by)

    # Derived views

    def ddl(self, schema_id) -> str:
        return emit_create(self.get(schema_id))

    def statistics(self) -> dict[str, Any]:
        stats: dict[str, Any] = {"total": 0, **{status: 0 for status in SCHEMA_STATUSES}, "system": 0, "user": 0}
        for status, count in self.db.query(Schema.status, func.count(Schema.id)).group_by(Schema.status).all():
            stats[status] = int(count)
            stats["total"] += int(count)

        for is_system, count in self.db.query(Schema.is_system, func.count(Schema.id)).group_by(Schema.is_system).all():
            stats["system" if is_system else "user"] = int(count)

        stats["schemasWithDependencies"] = int(
            self.db.query(func.count(func.distinct(SchemaDependency.schema_id))).scalar() or 0
        )

        migrations: dict[str, int] = {"total": 0, **{status: 0 for status in MIGRATION_STATUSES}}
        for status, count in self.db.query(Migration.status, func.count(Migration.id)).group_by(Migration.status).all():
            migrations[status] = int(count)
            migrations["total"] += int(count)
        stats["migrations"] = migrations
        return stats
