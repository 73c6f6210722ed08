"""Router for dependency edges between schemas."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schemaforge.dependencies import get_db
from schemaforge.graph import DependencyGraph
from schemaforge.models.requests import AddDependencyRequest

router = APIRouter(
    prefix="/schemas",
    tags=["dependencies"]
)


def _schema_summary(schema) -> dict:
    return {
        "id": str(schema.id),
        "modelId": schema.model_id,
        "version": schema.version,
        "name": schema.name,
        "tableName": schema.table_name,
        "status": schema.status,
    }


@router.get("/dependencies/order")
async def execution_order(db: Session = Depends(get_db)):
    """Active schemas in dependency order (dependencies before dependents)."""
    ordered = DependencyGraph(db).execution_order()
    return {"success": True, "order": [_schema_summary(schema) for schema in ordered]}


@router.get("/{schema_id}/dependencies")
async def list_dependencies(schema_id: str, db: Session = Depends(get_db)):
    graph = DependencyGraph(db)
    edges = graph.list_dependencies(schema_id)
    dependents = graph.get_dependents(schema_id)
    return {
        "success": True,
        "dependencies": [edge.to_dict() for edge in edges],
        "dependents": [_schema_summary(schema) for schema in dependents],
    }


@router.post("/{schema_id}/dependencies", status_code=201)
async def add_dependency(
    schema_id: str,
    body: AddDependencyRequest,
    db: Session = Depends(get_db),
):
    """Record that ``schema_id`` depends on another schema; cycles are rejected."""
    edge = DependencyGraph(db).add_dependency(
        schema_id,
        body.depends_on_schema_id,
        dependency_type=body.dependency_type,
        field_name=body.field_name,
    )
    return {"success": True, "dependency": edge.to_dict()}


@router.delete("/{schema_id}/dependencies/{depends_on_id}")
async def remove_dependency(schema_id: str, depends_on_id: str, db: Session = Depends(get_db)):
    DependencyGraph(db).remove_dependency(schema_id, depends_on_id)
    return {"success": True, "message": "Dependency removed"}


@router.get("/{schema_id}/dependencies/tree")
async def dependency_tree(
    schema_id: str,
    direction: str = Query("dependencies"),
    db: Session = Depends(get_db),
):
    return {"success": True, "tree": DependencyGraph(db).dependency_tree(schema_id, direction=direction)}
