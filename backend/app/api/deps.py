"""
Common dependencies for API endpoints.

The conversation engine is built once per application in the lifespan
handler and kept on app.state; endpoints reach it through these helpers.
"""
from typing import Optional

from fastapi import Request

from app.services.audit import AuditTrail
from app.services.capabilities import CapabilityRegistry, default_registry
from app.services.dispatcher import Dispatcher
from app.services.voice_service import VoiceService
from core.config import Settings, settings as default_settings
from memory.store import SessionStore


def build_voice_service(
    config: Optional[Settings] = None,
    registry: Optional[CapabilityRegistry] = None,
    store: Optional[SessionStore] = None,
    audit: Optional[AuditTrail] = None,
) -> VoiceService:
    """
    Wire store, capabilities, dispatcher and audit trail into one engine.

    Args:
        config: Settings instance, defaults to the module-level settings
        registry: Analytical capabilities, defaults to the local reference set
        store: Session store, a fresh in-memory store when omitted
        audit: Audit trail, a fresh one when omitted

    Returns:
        VoiceService instance
    """
    config = config or default_settings
    store = store if store is not None else SessionStore(config)
    dispatcher = Dispatcher(
        store,
        registry if registry is not None else default_registry(),
        timeout_seconds=config.CAPABILITY_TIMEOUT_SECONDS,
    )
    audit = audit if audit is not None else AuditTrail(config)
    return VoiceService(store, dispatcher, audit, config=config)


def get_voice_service(request: Request) -> VoiceService:
    return request.app.state.voice_service


def get_store(request: Request) -> SessionStore:
    return request.app.state.voice_service.store


def get_audit(request: Request) -> AuditTrail:
    return request.app.state.voice_service.audit
