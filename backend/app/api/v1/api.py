"""
V1 API Router - aggregates all v1 endpoints.
"""
from fastapi import APIRouter
from app.api.v1.endpoints import audit, health, sessions, voice

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(voice.router, prefix="/voice", tags=["voice"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
