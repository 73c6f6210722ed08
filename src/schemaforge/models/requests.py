"""Pydantic request models for API endpoints."""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Accept both the short key and the long form used by older clients.
_DEFINITION_ALIASES = AliasChoices("definition", "schemaDefinition")


class CreateSchemaRequest(BaseModel):
    """Request model for creating a draft schema."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_id: str = Field(..., alias="modelId", min_length=1, max_length=100)
    version: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    table_name: str = Field(..., alias="tableName", min_length=1, max_length=100)
    definition: dict[str, Any] = Field(..., validation_alias=_DEFINITION_ALIASES)
    is_system: bool = Field(False, alias="isSystem")
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateSchemaRequest(BaseModel):
    """Partial update; only the keys present in the body are applied."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    table_name: Optional[str] = Field(None, alias="tableName", min_length=1, max_length=100)
    definition: Optional[dict[str, Any]] = Field(None, validation_alias=_DEFINITION_ALIASES)
    metadata: Optional[dict[str, Any]] = None


class ValidateDefinitionRequest(BaseModel):
    definition: Any = Field(..., validation_alias=_DEFINITION_ALIASES)


class GenerateMigrationRequest(BaseModel):
    """Request model for planning a migration between two schema versions."""
    model_config = ConfigDict(populate_by_name=True)

    to_schema_id: str = Field(..., alias="toSchemaId")
    from_schema_id: Optional[str] = Field(None, alias="fromSchemaId")
    migration_name: Optional[str] = Field(None, alias="migrationName", max_length=255)
    description: Optional[str] = None


class AddDependencyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    depends_on_schema_id: str = Field(..., alias="dependsOnSchemaId")
    dependency_type: str = Field("reference", alias="dependencyType")
    field_name: Optional[str] = Field(None, alias="fieldName", max_length=255)
