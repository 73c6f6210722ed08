"""Meta-validation of schema definitions.

``validate_definition`` is pure: it never touches the database and returns
every problem it can find in one pass instead of stopping at the first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from schemaforge.definition import SchemaDefinition
from schemaforge.errors import ValidationError
from schemaforge.sql import is_safe_identifier


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}

    def raise_for_errors(self, prefix: str = "Schema validation failed") -> None:
        if not self.valid:
            raise ValidationError(f"{prefix}: {'; '.join(self.errors)}", self.errors)


def _format_loc(loc) -> str:
    return ".".join(str(part) for part in loc)


def _shape_errors(definition: dict) -> list[str]:
    try:
        SchemaDefinition.model_validate(definition)
    except PydanticValidationError as exc:
        messages = []
        for err in exc.errors():
            loc = _format_loc(err.get("loc") or ())
            messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return messages
    return []


def _cross_field_errors(definition: dict) -> list[str]:
    errors: list[str] = []
    properties = definition.get("properties")
    if not isinstance(properties, dict) or not properties:
        errors.append("properties must be a non-empty object")
        properties = properties if isinstance(properties, dict) else {}

    for field_name in properties:
        if not is_safe_identifier(field_name):
            errors.append(f'Field name "{field_name}" is not a safe SQL identifier')

    required = definition.get("required") or []
    if isinstance(required, list):
        for name in required:
            if name not in properties:
                errors.append(f'Required field "{name}" not found in properties')

    indexes = definition.get("indexes") or []
    if isinstance(indexes, list):
        for position, index in enumerate(indexes):
            if not isinstance(index, dict):
                continue
            index_name = index.get("name")
            if index_name is not None and not is_safe_identifier(str(index_name)):
                errors.append(f'Index name "{index_name}" is not a safe SQL identifier')
            for field_name in index.get("fields") or []:
                if field_name not in properties:
                    label = index_name or f"#{position}"
                    errors.append(f'Index {label} field "{field_name}" not found in properties')
    return errors


def validate_definition(definition: Any) -> ValidationResult:
    """Check a definition against the meta-schema and cross-field invariants."""
    if not isinstance(definition, dict):
        return ValidationResult(valid=False, errors=["definition must be an object"])

    errors = _shape_errors(definition) + _cross_field_errors(definition)
    # Shape and cross-field passes can both notice an empty ``properties``.
    deduped = list(dict.fromkeys(errors))
    return ValidationResult(valid=not deduped, errors=deduped)


def validate_table_name(table_name: Any) -> None:
    if not isinstance(table_name, str) or not is_safe_identifier(table_name):
        raise ValidationError(
            f'Table name "{table_name}" is not a safe SQL identifier',
            [f'tableName "{table_name}" must match [A-Za-z_][A-Za-z0-9_]* (max 63 chars)'],
        )
