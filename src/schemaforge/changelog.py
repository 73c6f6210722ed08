"""Append-only audit trail of schema lifecycle events."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import event, func
from sqlalchemy.orm import Session

from schemaforge.errors import InvalidStateError, NotFoundError, ValidationError
from schemaforge.metadata import CHANGE_TYPES, SchemaChange

logger = logging.getLogger(__name__)

# Snapshot keys that change on every write and say nothing about intent.
_VOLATILE_KEYS = {"updatedAt", "updatedBy"}


@event.listens_for(SchemaChange, "before_update")
def _reject_change_update(mapper, connection, target):
    raise InvalidStateError("Change log entries are append-only")


@event.listens_for(SchemaChange, "before_delete")
def _reject_change_delete(mapper, connection, target):
    raise InvalidStateError("Change log entries are append-only")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def log_change(
    db: Session,
    *,
    schema_id: UUID,
    change_type: str,
    change_details: Optional[dict[str, Any]] = None,
    before_snapshot: Optional[dict[str, Any]] = None,
    after_snapshot: Optional[dict[str, Any]] = None,
    changed_by: Optional[str] = None,
    migration_id: Optional[UUID] = None,
) -> SchemaChange:
    """Append one entry inside the caller's transaction.

    ``changed_at`` never moves backwards for a schema, so a clock step cannot
    reorder its history; equal timestamps fall back to insertion order.
    """
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"Unknown change type: {change_type}")

    changed_at = _now_utc()
    last_changed_at = (
        db.query(func.max(SchemaChange.changed_at))
        .filter(SchemaChange.schema_id == schema_id)
        .scalar()
    )
    if last_changed_at is not None and _as_utc(last_changed_at) > changed_at:
        changed_at = _as_utc(last_changed_at)

    entry = SchemaChange(
        schema_id=schema_id,
        change_type=change_type,
        change_details=change_details or {},
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        changed_by=changed_by,
        changed_at=changed_at,
        migration_id=migration_id,
    )
    db.add(entry)
    db.flush()
    logger.debug("Logged %s change for schema %s", change_type, schema_id)
    return entry


def _properties(snapshot: Optional[dict]) -> dict:
    if not isinstance(snapshot, dict):
        return {}
    definition = snapshot.get("definition")
    if not isinstance(definition, dict):
        return {}
    properties = definition.get("properties")
    return properties if isinstance(properties, dict) else {}


def diff_snapshots(before: Optional[dict], after: Optional[dict]) -> dict[str, list[str]]:
    """Field-level diff between two schema snapshots.

    ``added``/``removed``/``modified`` name definition properties, in the
    insertion order of the snapshot they come from; ``attributes`` lists the
    top-level schema attributes whose value changed.
    """
    before_props = _properties(before)
    after_props = _properties(after)

    added = [name for name in after_props if name not in before_props]
    removed = [name for name in before_props if name not in after_props]
    modified = [
        name for name in after_props
        if name in before_props and before_props[name] != after_props[name]
    ]

    attributes: list[str] = []
    if isinstance(before, dict) and isinstance(after, dict):
        for key in list(before) + [k for k in after if k not in before]:
            if key in _VOLATILE_KEYS:
                continue
            if before.get(key) != after.get(key):
                attributes.append(key)

    return {"added": added, "removed": removed, "modified": modified, "attributes": attributes}


def summarize_change(entry: SchemaChange) -> str:
    details = entry.change_details or {}
    snapshot = entry.after_snapshot or entry.before_snapshot or {}
    label = f"{snapshot.get('modelId', 'schema')} v{snapshot.get('version', '?')}"

    if entry.change_type == "updated":
        fields = details.get("fields") or diff_snapshots(entry.before_snapshot, entry.after_snapshot)["attributes"]
        if fields:
            return f"{label} updated ({', '.join(fields)})"
        return f"{label} updated"
    if entry.change_type == "activated" and details.get("autoActivated"):
        return f"{label} activated by migration {details.get('migrationId')}"
    if entry.change_type == "rolled_back":
        return f"{label} migration {details.get('migrationId')} rolled back"
    return f"{label} {entry.change_type}"


def get_change(db: Session, change_id: int) -> SchemaChange:
    entry = db.query(SchemaChange).filter(SchemaChange.id == change_id).first()
    if not entry:
        raise NotFoundError(f"Change not found: {change_id}")
    return entry


def get_schema_history(db: Session, schema_id: UUID, limit: int = 50) -> list[SchemaChange]:
    """Newest-first history for one schema."""
    return (
        db.query(SchemaChange)
        .filter(SchemaChange.schema_id == schema_id)
        .order_by(SchemaChange.changed_at.desc(), SchemaChange.id.desc())
        .limit(limit)
        .all()
    )


def get_recent_changes(db: Session, limit: int = 100, offset: int = 0) -> list[SchemaChange]:
    """Newest-first changes across all schemas."""
    return (
        db.query(SchemaChange)
        .order_by(SchemaChange.changed_at.desc(), SchemaChange.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_statistics(db: Session, days: int = 30) -> dict[str, Any]:
    """Counts per change type over the trailing ``days`` window."""
    since = _now_utc() - timedelta(days=days)
    rows = (
        db.query(SchemaChange.change_type, func.count(SchemaChange.id))
        .filter(SchemaChange.changed_at >= since)
        .group_by(SchemaChange.change_type)
        .all()
    )
    by_type = {change_type: 0 for change_type in CHANGE_TYPES}
    for change_type, count in rows:
        by_type[change_type] = int(count or 0)
    return {
        "days": days,
        "since": since.isoformat(),
        "total": sum(by_type.values()),
        "byType": by_type,
    }
