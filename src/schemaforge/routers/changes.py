"""Router for the schema change log."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schemaforge import changelog
from schemaforge.dependencies import get_db

router = APIRouter(
    prefix="/schemas/changes",
    tags=["changes"]
)


@router.get("/recent")
async def recent_changes(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Newest changes across every schema."""
    changes = changelog.get_recent_changes(db, limit=limit, offset=offset)
    return {
        "success": True,
        "changes": [entry.to_dict() for entry in changes],
        "limit": limit,
        "offset": offset,
    }


@router.get("/statistics")
async def change_statistics(
    days: int = Query(30, ge=1),
    db: Session = Depends(get_db),
):
    return {"success": True, "statistics": changelog.get_statistics(db, days=days)}


@router.get("/{change_id:int}")
async def get_change(change_id: int, db: Session = Depends(get_db)):
    """One change entry with its snapshot diff and a readable summary."""
    entry = changelog.get_change(db, change_id)
    return {
        "success": True,
        "change": entry.to_dict(),
        "diff": changelog.diff_snapshots(entry.before_snapshot, entry.after_snapshot),
        "summary": changelog.summarize_change(entry),
    }
