"""Router for migration planning and execution."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from schemaforge.dependencies import get_actor, get_db
from schemaforge.executor import MigrationExecutor
from schemaforge.models.requests import GenerateMigrationRequest
from schemaforge.ratelimit import limiter
from schemaforge.settings import settings

router = APIRouter(
    prefix="/schemas/migrations",
    tags=["migrations"]
)


@router.get("")
async def list_migrations(
    status: Optional[str] = None,
    schema_id: Optional[str] = Query(None, alias="schemaId"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List migrations, newest first, optionally filtered by status or schema."""
    result = MigrationExecutor(db).list(status=status, schema_id=schema_id, limit=limit, offset=offset)
    return {
        "success": True,
        "migrations": [migration.to_dict() for migration in result["migrations"]],
        "total": result["total"],
        "limit": result["limit"],
        "offset": result["offset"],
        "hasMore": result["hasMore"],
    }


@router.get("/statistics")
async def migration_statistics(db: Session = Depends(get_db)):
    return {"success": True, "statistics": MigrationExecutor(db).statistics()}


@router.post("", status_code=201)
async def generate_migration(
    body: GenerateMigrationRequest,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Plan a migration between two versions of the same model and store it as pending."""
    migration, plan = MigrationExecutor(db).generate(
        body.to_schema_id,
        body.from_schema_id,
        migration_name=body.migration_name,
        description=body.description,
        created_by=actor,
    )
    return {
        "success": True,
        "migration": migration.to_dict(),
        "summary": plan.summary(),
        "warnings": plan.warnings,
    }


@router.post("/execute-all")
@limiter.limit(settings.migration_rate_limit)
async def execute_all_pending(
    request: Request,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Run every pending migration in order; stops at the first failure."""
    result = MigrationExecutor(db).execute_all_pending(actor)
    if not result["success"]:
        return JSONResponse(status_code=500, content=result)
    return result


@router.get("/{migration_id}")
async def get_migration(migration_id: str, db: Session = Depends(get_db)):
    migration = MigrationExecutor(db).get(migration_id)
    payload = migration.to_dict()
    for key, schema in (("fromSchema", migration.from_schema), ("toSchema", migration.to_schema)):
        payload[key] = (
            {"id": str(schema.id), "modelId": schema.model_id, "version": schema.version, "status": schema.status}
            if schema is not None
            else None
        )
    return {"success": True, "migration": payload}


@router.post("/{migration_id}/execute")
@limiter.limit(settings.migration_rate_limit)
async def execute_migration(
    request: Request,
    migration_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return MigrationExecutor(db).execute(migration_id, actor).to_dict()


@router.post("/{migration_id}/rollback")
@limiter.limit(settings.migration_rate_limit)
async def rollback_migration(
    request: Request,
    migration_id: str,
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return MigrationExecutor(db).rollback(migration_id, actor).to_dict()
