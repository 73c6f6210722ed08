"""Pydantic request models for the REST API."""

from schemaforge.models.requests import (
    AddDependencyRequest,
    CreateSchemaRequest,
    GenerateMigrationRequest,
    UpdateSchemaRequest,
    ValidateDefinitionRequest,
)

__all__ = [
    "AddDependencyRequest",
    "CreateSchemaRequest",
    "GenerateMigrationRequest",
    "UpdateSchemaRequest",
    "ValidateDefinitionRequest",
]
