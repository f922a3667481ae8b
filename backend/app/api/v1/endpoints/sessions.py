"""
Read surface and maintenance endpoints for conversation sessions.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store
from app.schemas.common import StandardResponse
from app.schemas.voice import ConnectionRequest
from app.utils.exceptions import NotFoundError, ValidationError
from core.logging import get_logger
from memory.models import PreferencesUpdate
from memory.store import SessionStore

router = APIRouter()
logger = get_logger(__name__)


def _require(store: SessionStore, session_id: str):
    session = store.get(session_id)
    if session is None:
        raise NotFoundError(f"Session {session_id} not found")
    return session


@router.post("/cleanup", response_model=StandardResponse)
async def cleanup_sessions(store: SessionStore = Depends(get_store)):
    """Run the idle-session sweep now."""
    evicted = store.cleanup()
    return StandardResponse(data={"evicted": evicted, "remaining": len(store)})


@router.get("/{session_id}", response_model=StandardResponse)
async def get_session(session_id: str, store: SessionStore = Depends(get_store)):
    session = _require(store, session_id)
    return StandardResponse(data=session.model_dump(mode="json", exclude={"transitions"}))


@router.get("/{session_id}/history", response_model=StandardResponse)
async def get_history(
    session_id: str,
    limit: Optional[int] = Query(None, ge=1),
    analysis_type: Optional[str] = None,
    store: SessionStore = Depends(get_store),
):
    """
    Conversation turns for a session, oldest first.

    - limit: keep only the most recent N turns
    - analysis_type: keep only turns whose intent mentions this type
    """
    _require(store, session_id)
    turns = store.conversation_history(session_id, limit=limit, analysis_type=analysis_type)
    return StandardResponse(data=[t.model_dump(mode="json") for t in turns])


@router.get("/{session_id}/analytics", response_model=StandardResponse)
async def get_analytics(session_id: str, store: SessionStore = Depends(get_store)):
    _require(store, session_id)
    return StandardResponse(data=store.session_analytics(session_id))


@router.get("/{session_id}/export", response_model=StandardResponse)
async def export_session(session_id: str, store: SessionStore = Depends(get_store)):
    _require(store, session_id)
    return StandardResponse(data=store.export_session(session_id))


@router.patch("/{session_id}/preferences", response_model=StandardResponse)
async def update_preferences(
    session_id: str,
    update: PreferencesUpdate,
    store: SessionStore = Depends(get_store),
):
    _require(store, session_id)
    async with store.lock(session_id):
        prefs = store.update_preferences(session_id, update)
    return StandardResponse(data=prefs.model_dump())


@router.post("/{session_id}/connections", response_model=StandardResponse)
async def add_connection(
    session_id: str,
    request: ConnectionRequest,
    store: SessionStore = Depends(get_store),
):
    """Link two completed analyses of the same session."""
    _require(store, session_id)
    async with store.lock(session_id):
        added = store.add_cross_analysis_connection(
            session_id,
            request.from_analysis,
            request.to_analysis,
            request.connection_type,
            request.description,
            request.strength,
        )
    if not added:
        raise ValidationError("Both analyses must exist in the session's analysis history")
    return StandardResponse(data=request.model_dump(), message="Connection added")


@router.delete("/{session_id}", response_model=StandardResponse)
async def clear_session(session_id: str, store: SessionStore = Depends(get_store)):
    if not await store.discard(session_id):
        raise NotFoundError(f"Session {session_id} not found")
    logger.info(f"Session {session_id} cleared")
    return StandardResponse(message=f"Session {session_id} cleared")
