"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_store
from memory.store import SessionStore

router = APIRouter()


@router.get("/health")
def health_check(store: SessionStore = Depends(get_store)):
    """
    Health check endpoint.

    Returns:
        Status dict with the number of live sessions
    """
    return {"status": "ok", "sessions": len(store)}
