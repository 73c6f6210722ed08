"""Router for schema CRUD and lifecycle transitions.

Static paths (``/statistics``, ``/validate``) are declared before the
``/{schema_id}`` routes so they are never captured as an id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schemaforge import changelog
from schemaforge.dependencies import get_actor, get_db
from schemaforge.metadata import coerce_uuid
from schemaforge.models.requests import (
    CreateSchemaRequest,
    UpdateSchemaRequest,
    ValidateDefinitionRequest,
)
from schemaforge.registry import SchemaRegistry
from schemaforge.validation import validate_definition

router = APIRouter(
    prefix="/schemas",
    tags=["schemas"]
)


@router.get("")
async def list_schemas(
    status: Optional[str] = None,
    model_id: Optional[str] = Query(None, alias="modelId"),
    is_system: Optional[bool] = Query(None, alias="isSystem"),
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    order_by: str = Query("createdAt", alias="orderBy"),
    order_direction: str = Query("DESC", alias="orderDirection"),
    db: Session = Depends(get_db),
):
    """List schemas with filters and pagination."""
    result = SchemaRegistry(db).list(
        status=status,
        model_id=model_id,
        is_system=is_system,
        search=search,
        limit=limit,
        offset=offset,
        order_by=order_by,
        order_direction=order_direction,
    )
    return {
        "success": True,
        "schemas": [schema.to_dict() for schema in result["schemas"]],
        "total": result["total"],
        "limit": result["limit"],
        "offset": result["offset"],
        "hasMore": result["hasMore"],
    }


@router.get("/statistics")
async def schema_statistics(db: Session = Depends(get_db)):
    return {"success": True, "statistics": SchemaRegistry(db).statistics()}


@router.post("/validate")
async def validate_schema_definition(body: ValidateDefinitionRequest):
    """Dry-run validation; never touches the database."""
    return {"success": True, "validation": validate_definition(body.definition).to_dict()}


@router.post("", status_code=201)
async def create_schema(
    body: CreateSchemaRequest,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    schema = SchemaRegistry(db).create(
        model_id=body.model_id,
        version=body.version,
        name=body.name,
        description=body.description,
        table_name=body.table_name,
        definition=body.definition,
        is_system=body.is_system,
        metadata=body.metadata,
        created_by=actor,
    )
    return {"success": True, "schema": schema.to_dict()}


@router.get("/latest/{model_id}")
async def get_latest_schema(model_id: str, db: Session = Depends(get_db)):
    """Highest non-archived version of a model."""
    return {"success": True, "schema": SchemaRegistry(db).get_latest(model_id).to_dict()}


@router.get("/{schema_id}")
async def get_schema(
    schema_id: str,
    include_relations: bool = Query(False, alias="includeRelations"),
    db: Session = Depends(get_db),
):
    registry = SchemaRegistry(db)
    if include_relations:
        return {"success": True, "schema": registry.get_with_relations(schema_id)}
    return {"success": True, "schema": registry.get(schema_id).to_dict()}


@router.put("/{schema_id}")
async def update_schema(
    schema_id: str,
    body: UpdateSchemaRequest,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Patch a schema. Definition and table name only change while draft."""
    patch = body.model_dump(exclude_unset=True)
    schema = SchemaRegistry(db).update(schema_id, patch, actor)
    return {"success": True, "schema": schema.to_dict()}


@router.delete("/{schema_id}")
async def delete_schema(
    schema_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    SchemaRegistry(db).delete(schema_id, actor)
    return {"success": True, "message": "Schema deleted"}


@router.post("/{schema_id}/activate")
async def activate_schema(
    schema_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    schema = SchemaRegistry(db).activate(schema_id, actor)
    return {"success": True, "schema": schema.to_dict()}


@router.post("/{schema_id}/deprecate")
async def deprecate_schema(
    schema_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    schema = SchemaRegistry(db).deprecate(schema_id, actor)
    return {"success": True, "schema": schema.to_dict()}


@router.post("/{schema_id}/archive")
async def archive_schema(
    schema_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    schema = SchemaRegistry(db).archive(schema_id, actor)
    return {"success": True, "schema": schema.to_dict()}


@router.post("/{schema_id}/ddl")
async def generate_ddl(schema_id: str, db: Session = Depends(get_db)):
    registry = SchemaRegistry(db)
    schema = registry.get(schema_id)
    return {
        "success": True,
        "ddl": registry.ddl(schema.id),
        "schema": {
            "id": str(schema.id),
            "modelId": schema.model_id,
            "version": schema.version,
            "tableName": schema.table_name,
        },
    }


@router.get("/{schema_id}/changes")
async def schema_history(
    schema_id: str,
    limit: int = Query(50, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    # History outlives the schema row, so a deleted schema still has one.
    changes = changelog.get_schema_history(db, coerce_uuid(schema_id), limit=limit)
    return {"success": True, "changes": [entry.to_dict() for entry in changes]}
