"""
Tests for the audit trail.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.schemas.voice import AuditEvent, AuditEventQuery
from app.services.audit import AuditTrail
from core.config import Settings

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _event(n, **overrides):
    data = dict(
        event_id=f"e{n}",
        correlation_id=f"c{n}",
        session_id="s1",
        timestamp=T0 + timedelta(minutes=n),
        raw_input="show analytics",
        intent="analytics_request",
        confidence=0.8,
        mode="analysis",
        success=True,
    )
    data.update(overrides)
    return AuditEvent(**data)


@pytest.mark.asyncio
async def test_in_memory_log_is_bounded():
    audit = AuditTrail(Settings(_env_file=None, AUDIT_MAX_EVENTS=3))
    for n in range(5):
        await audit.record(_event(n))

    assert len(audit) == 3
    assert [e.event_id for e in audit.query_events()] == ["e4", "e3", "e2"]


@pytest.mark.asyncio
async def test_query_filters(audit):
    await audit.record(_event(1))
    await audit.record(_event(2, session_id="s2", intent="unknown", confidence=0.0, success=False))
    await audit.record(_event(3, mode="clarification", confidence=0.65))

    assert [e.event_id for e in audit.query_events(AuditEventQuery(session_id="s2"))] == ["e2"]
    assert [e.event_id for e in audit.query_events(AuditEventQuery(success=False))] == ["e2"]
    assert [e.event_id for e in audit.query_events(AuditEventQuery(min_confidence=0.7))] == ["e1"]
    assert [e.event_id for e in audit.query_events(AuditEventQuery(mode="clarification"))] == ["e3"]
    assert [e.event_id for e in audit.query_events(AuditEventQuery(start=T0 + timedelta(minutes=2)))] == ["e3", "e2"]
    assert len(audit.query_events(AuditEventQuery(limit=1))) == 1


@pytest.mark.asyncio
async def test_events_are_pushed_to_redis():
    redis_client = AsyncMock()
    audit = AuditTrail(Settings(_env_file=None), redis_client=redis_client)

    event = _event(1)
    await audit.record(event)

    redis_client.rpush.assert_awaited_once_with("voiceops:audit:events", event.model_dump_json())
    redis_client.ltrim.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_failure_is_logged_not_raised(caplog):
    redis_client = AsyncMock()
    redis_client.rpush.side_effect = ConnectionError("redis down")
    audit = AuditTrail(Settings(_env_file=None), redis_client=redis_client)

    await audit.record(_event(1))

    assert len(audit) == 1
    assert redis_client.rpush.await_count == 1
    assert "Audit delivery failed" in caplog.text


@pytest.mark.asyncio
async def test_close_releases_client():
    redis_client = AsyncMock()
    audit = AuditTrail(Settings(_env_file=None), redis_client=redis_client)
    await audit.close()
    redis_client.aclose.assert_awaited_once()
