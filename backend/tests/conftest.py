"""
Test configuration and fixtures.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.deps import build_voice_service
from app.main import create_app
from app.services.audit import AuditTrail
from app.services.capabilities import default_registry
from app.services.dispatcher import Dispatcher
from core.config import Settings
from memory.store import SessionStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def config():
    return Settings(
        _env_file=None,
        AUDIT_REDIS_ENABLED=False,
        SESSION_IDLE_TIMEOUT_SECONDS=1800,
        MULTI_TURN_TIMEOUT_SECONDS=300,
        CAPABILITY_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(config, clock):
    return SessionStore(config, clock=clock)


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def dispatcher(store, registry, config):
    return Dispatcher(store, registry, timeout_seconds=config.CAPABILITY_TIMEOUT_SECONDS)


@pytest.fixture
def audit(config):
    return AuditTrail(config)


@pytest.fixture
def service(config, store, registry, audit):
    return build_voice_service(config, registry=registry, store=store, audit=audit)


@pytest.fixture
def client(config, service):
    """
    Create a test client for the FastAPI app with a fresh engine.

    Returns:
        TestClient instance
    """
    with TestClient(create_app(config, service=service)) as test_client:
        yield test_client
