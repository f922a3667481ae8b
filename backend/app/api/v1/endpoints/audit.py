from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_audit
from app.schemas.common import StandardResponse
from app.schemas.voice import AuditEventQuery
from app.services.audit import AuditTrail

router = APIRouter()


@router.get("/events", response_model=StandardResponse)
async def list_events(
    session_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    intent: Optional[str] = None,
    mode: Optional[str] = None,
    success: Optional[bool] = None,
    min_confidence: Optional[float] = Query(None, ge=0.0, le=1.0),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    audit: AuditTrail = Depends(get_audit),
):
    """
    Recent audit events, newest first.
    """
    query = AuditEventQuery(
        session_id=session_id,
        correlation_id=correlation_id,
        intent=intent,
        mode=mode,
        success=success,
        min_confidence=min_confidence,
        start=start,
        end=end,
        limit=limit,
    )
    events = audit.query_events(query)
    return StandardResponse(data=[e.model_dump(mode="json") for e in events])
