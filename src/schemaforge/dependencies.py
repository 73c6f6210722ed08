"""Shared dependencies for FastAPI endpoints."""

from typing import Optional

from fastapi import Header

from schemaforge.database import get_db

__all__ = ["get_actor", "get_db"]


async def get_actor(x_actor_id: Optional[str] = Header(None, alias="X-Actor-ID")) -> Optional[str]:
    """Identity recorded as created_by/changed_by.

    Authentication happens upstream; the gateway forwards the caller's id in
    ``X-Actor-ID``. Requests without it are recorded with no actor.
    """
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None
