"""Migration generation and transactional execution.

A migration runs all of its statements inside one database transaction:
either every statement applies and the migration is ``completed``, or none
do and it is ``failed``. Status moves only along

    pending -> running -> completed | failed
    completed -> rolled_back
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import time
import traceback
from typing import Any, Optional

from sqlalchemy import event, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from schemaforge import changelog
from schemaforge.errors import (
    ExecutionError,
    InvalidStateError,
    NotFoundError,
    SchemaForgeError,
    ValidationError,
)
from schemaforge.metadata import MIGRATION_STATUSES, Migration, coerce_uuid
from schemaforge.planner import MigrationPlan, default_migration_name, is_comment_only, plan
from schemaforge.registry import SchemaRegistry

logger = logging.getLogger(__name__)


@event.listens_for(Migration, "before_update")
def _freeze_applied_statements(mapper, connection, target):
    if target.status not in ("completed", "rolled_back"):
        return
    for attr in ("forward_statements", "reverse_statements"):
        if get_history(target, attr).has_changes():
            raise InvalidStateError("Statements of an applied migration are immutable")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@dataclass
class ExecutionResult:
    migration: Migration
    execution_time_ms: int
    skipped_statements: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "migration": self.migration.to_dict(),
            "executionTime": self.execution_time_ms,
            "skippedStatements": self.skipped_statements,
        }


class MigrationExecutor:
    """Generates migrations between schema versions and applies them."""

    def __init__(self, db: Session):
        self.db = db
        self.registry = SchemaRegistry(db)

    def get(self, migration_id) -> Migration:
        migration_id = coerce_uuid(migration_id, "Migration")
        migration = self.db.query(Migration).filter(Migration.id == migration_id).first()
        if not migration:
            raise NotFoundError(f"Migration not found: {migration_id}")
        return migration

    def list(
        self,
        *,
        status: Optional[str] = None,
        schema_id=None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        if status and status not in MIGRATION_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        query = self.db.query(Migration)
        if status:
            query = query.filter(Migration.status == status)
        if schema_id:
            schema_id = coerce_uuid(schema_id)
            query = query.filter(or_(Migration.from_schema_id == schema_id, Migration.to_schema_id == schema_id))
        total = query.count()
        migrations = (
            query.order_by(Migration.created_at.desc(), Migration.execution_order.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "migrations": migrations,
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        }

    def statistics(self) -> dict[str, Any]:
        stats: dict[str, Any] = {"total": 0, **{status: 0 for status in MIGRATION_STATUSES}}
        for status, count in self.db.query(Migration.status, func.count(Migration.id)).group_by(Migration.status).all():
            stats[status] = int(count)
            stats["total"] += int(count)

        avg_ms, max_ms, min_ms = (
            self.db.query(
                func.avg(Migration.execution_time_ms),
                func.max(Migration.execution_time_ms),
                func.min(Migration.execution_time_ms),
            )
            .filter(Migration.status == "completed")
            .one()
        )
        stats["avgExecutionTime"] = float(avg_ms or 0)
        stats["maxExecutionTime"] = int(max_ms or 0)
        stats["minExecutionTime"] = int(min_ms or 0)
        return stats

    def generate(
        self,
        to_schema_id,
        from_schema_id=None,
        *,
        migration_name: Optional[str] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> tuple[Migration, MigrationPlan]:
        """Plan and store a pending migration taking ``from`` to ``to``."""
        to_schema = self.registry.get(to_schema_id)
        from_schema = self.registry.get(from_schema_id) if from_schema_id else None

        if from_schema is not None:
            if from_schema.id == to_schema.id:
                raise ValidationError("Source and target schema are the same version")
            if from_schema.model_id != to_schema.model_id:
                raise ValidationError(
                    f"Cannot migrate between different models: {from_schema.model_id} -> {to_schema.model_id}"
                )

        migration_plan = plan(from_schema, to_schema)
        from_version = from_schema.version if from_schema else None
        last_order = self.db.query(func.max(Migration.execution_order)).scalar()

        migration = Migration(
            migration_name=migration_name
            or default_migration_name(to_schema.model_id, from_version, to_schema.version),
            description=description or migration_plan.summary(),
            from_schema_id=from_schema.id if from_schema else None,
            to_schema_id=to_schema.id,
            from_version=from_version,
            to_version=to_schema.version,
            migration_type=migration_plan.migration_type,
            forward_statements=list(migration_plan.forward),
            reverse_statements=list(migration_plan.reverse),
            status="pending",
            execution_order=(last_order or 0) + 1,
            created_by=created_by,
        )
        self.db.add(migration)
        self.db.commit()
        self.db.refresh(migration)
        logger.info(
            "Migration generated: %s (%s) %s -> %s, %d statement(s)",
            migration.id,
            migration.migration_name,
            from_version or "-",
            to_schema.version,
            len(migration.forward_statements),
        )
        return migration, migration_plan

    def _run_statements(self, migration: Migration, statements: list[str]) -> int:
        """Run statements in order on the session's connection; returns skipped count."""
        connection = self.db.connection()
        skipped = 0
        for position, statement in enumerate(statements, start=1):
            if is_comment_only(statement):
                skipped += 1
                logger.warning(
                    "Migration %s: statement %d is commented out, skipping: %s",
                    migration.id,
                    position,
                    statement.splitlines()[0] if statement else "",
                )
                continue
            connection.exec_driver_sql(statement)
        return skipped

    def _record_failure(self, migration_id, exc: Exception, elapsed_ms: int) -> None:
        """Mark the migration failed in a fresh transaction, best effort."""
        try:
            migration = self.db.query(Migration).filter(Migration.id == migration_id).first()
            if migration is None:
                return
            migration.status = "failed"
            migration.error = str(exc)
            migration.error_stack = traceback.format_exc()
            migration.execution_time_ms = elapsed_ms
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not record failure of migration %s", migration_id)

    def execute(self, migration_id, executed_by: Optional[str] = None) -> ExecutionResult:
        migration = self.get(migration_id)
        if migration.status != "pending":
            raise InvalidStateError(
                f"Cannot execute migration with status: {migration.status}",
                details={"migrationId": str(migration.id), "status": migration.status},
            )
        target = migration.to_schema
        if target is None:
            raise NotFoundError(f"Target schema of migration {migration.id} no longer exists")

        migration_key = migration.id
        logger.info("Executing migration %s (%s)", migration.id, migration.migration_name)
        started = time.perf_counter()
        try:
            migration.status = "running"
            self.db.flush()

            skipped = self._run_statements(migration, list(migration.forward_statements or []))

            migration.status = "completed"
            migration.applied_at = _now_utc()
            migration.applied_by = executed_by
            migration.execution_time_ms = _elapsed_ms(started)
            migration.error = None
            migration.error_stack = None

            # Activation is idempotent here: only a draft target is promoted.
            if target.status == "draft":
                self.registry.activate(target.id, executed_by, migration_id=migration.id, commit=False)
                migration.auto_activated = True

            self.db.commit()
        except Exception as exc:
            elapsed = _elapsed_ms(started)
            self.db.rollback()
            logger.exception("Migration %s failed after %d ms", migration_key, elapsed)
            self._record_failure(migration_key, exc, elapsed)
            if isinstance(exc, SchemaForgeError):
                raise
            raise ExecutionError(
                f"Migration execution failed: {exc}",
                migration_id=str(migration_key),
                database_message=str(getattr(exc, "orig", None) or exc),
            ) from exc

        self.db.refresh(migration)
        logger.info(
            "Migration completed: %s (%s) in %d ms",
            migration.id,
            migration.migration_name,
            migration.execution_time_ms,
        )
        return ExecutionResult(migration, migration.execution_time_ms, skipped)

    def rollback(self, migration_id, rolled_back_by: Optional[str] = None) -> ExecutionResult:
        """Apply reverse statements; a failure leaves the migration ``completed``."""
        migration = self.get(migration_id)
        if migration.status != "completed":
            raise InvalidStateError(
                f"Cannot rollback migration with status: {migration.status}",
                details={"migrationId": str(migration.id), "status": migration.status},
            )
        if not migration.reverse_statements:
            raise InvalidStateError(
                "Migration does not have reverse statements",
                details={"migrationId": str(migration.id)},
            )

        migration_key = migration.id
        logger.info("Rolling back migration %s (%s)", migration.id, migration.migration_name)
        started = time.perf_counter()
        try:
            skipped = self._run_statements(migration, list(migration.reverse_statements))

            migration.status = "rolled_back"
            migration.rolled_back_at = _now_utc()
            migration.rolled_back_by = rolled_back_by

            target = migration.to_schema
            if target is not None:
                before = target.to_dict()
                reverted = bool(migration.auto_activated and target.status == "active")
                if reverted:
                    self.registry.revert_to_draft(target, rolled_back_by)
                changelog.log_change(
                    self.db,
                    schema_id=target.id,
                    change_type="rolled_back",
                    change_details={
                        "migrationId": str(migration.id),
                        "migrationName": migration.migration_name,
                        "revertedToDraft": reverted,
                    },
                    before_snapshot=before,
                    after_snapshot=target.to_dict(),
                    changed_by=rolled_back_by,
                    migration_id=migration.id,
                )

            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception("Rollback of migration %s failed", migration_key)
            if isinstance(exc, SchemaForgeError):
                raise
            raise ExecutionError(
                f"Migration rollback failed: {exc}",
                migration_id=str(migration_key),
                database_message=str(getattr(exc, "orig", None) or exc),
            ) from exc

        elapsed = _elapsed_ms(started)
        self.db.refresh(migration)
        logger.info("Migration rolled back: %s (%s) in %d ms", migration.id, migration.migration_name, elapsed)
        return ExecutionResult(migration, elapsed, skipped)

    def execute_all_pending(self, executed_by: Optional[str] = None) -> dict[str, Any]:
        """Run pending migrations in (execution_order, created_at) order, stopping at the first failure."""
        pending = (
            self.db.query(Migration)
            .filter(Migration.status == "pending")
            .order_by(Migration.execution_order.asc(), Migration.created_at.asc())
            .all()
        )
        pending_ids = [(migration.id, migration.migration_name) for migration in pending]
        results: dict[str, Any] = {"success": True, "executed": 0, "failed": 0, "migrations": []}
        if not pending_ids:
            results["message"] = "No pending migrations"
            return results

        logger.info("Executing %d pending migration(s)", len(pending_ids))
        for migration_id, migration_name in pending_ids:
            try:
                outcome = self.execute(migration_id, executed_by)
            except SchemaForgeError as exc:
                results["failed"] += 1
                results["success"] = False
                results["migrations"].append(
                    {
                        "migrationId": str(migration_id),
                        "migrationName": migration_name,
                        "success": False,
                        "error": exc.message,
                    }
                )
                logger.error("Stopping batch at migration %s (%s): %s", migration_id, migration_name, exc.message)
                break
            results["executed"] += 1
            results["migrations"].append(
                {
                    "migrationId": str(migration_id),
                    "migrationName": migration_name,
                    "success": True,
                    "executionTime": outcome.execution_time_ms,
                }
            )

        logger.info("Batch finished: %d executed, %d failed", results["executed"], results["failed"])
        return results
