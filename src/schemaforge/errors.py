"""Error taxonomy shared by the engine, the API and the CLI."""

from __future__ import annotations

from typing import Any


class SchemaForgeError(Exception):
    """Base class for every error the engine raises on purpose."""

    kind = "SchemaForgeError"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.kind, "message": self.message, **self.details}


class ValidationError(SchemaForgeError):
    """Definition violates the meta-schema or a cross-field rule."""

    kind = "ValidationError"
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [message])
        super().__init__(message, details={"errors": self.errors})


class UnsupportedFieldTypeError(ValidationError):
    kind = "ValidationError"


class InvalidStateError(SchemaForgeError):
    """Lifecycle transition not permitted from the current status."""

    kind = "InvalidStateError"
    status_code = 400


class DependencyError(SchemaForgeError):
    """Blocked by dependents, or an edge would close a cycle."""

    kind = "DependencyError"
    status_code = 400


class NotFoundError(SchemaForgeError):
    kind = "NotFoundError"
    status_code = 404


class ConflictError(SchemaForgeError):
    """Duplicate (modelId, version) or re-activation."""

    kind = "ConflictError"
    status_code = 409


class ExecutionError(SchemaForgeError):
    """The database rejected migration SQL."""

    kind = "ExecutionError"
    status_code = 500

    def __init__(self, message: str, *, migration_id: str | None = None, database_message: str | None = None):
        self.migration_id = migration_id
        self.database_message = database_message or message
        super().__init__(
            message,
            details={"migrationId": migration_id, "databaseMessage": self.database_message},
        )
