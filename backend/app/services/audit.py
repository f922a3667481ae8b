"""
Per-turn audit trail.

Events are kept in a bounded in-memory log. When AUDIT_REDIS_ENABLED is set
each event is also pushed as JSON onto a Redis list; delivery is best-effort,
failures are logged and never retried.
"""
import logging
from collections import deque
from typing import Any, Deque, List, Optional

import redis.asyncio as redis

from app.schemas.voice import AuditEvent, AuditEventQuery
from core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, config: Optional[Settings] = None, redis_client: Optional[Any] = None):
        self.config = config or default_settings
        self._events: Deque[AuditEvent] = deque(maxlen=self.config.AUDIT_MAX_EVENTS)
        self.stream_key = self.config.AUDIT_STREAM_KEY

        self.redis_client = redis_client
        if self.redis_client is None and self.config.AUDIT_REDIS_ENABLED:
            self.redis_client = redis.from_url(self.config.REDIS_URL, decode_responses=True)

    def __len__(self) -> int:
        return len(self._events)

    async def record(self, event: AuditEvent) -> None:
        self._events.append(event)
        if self.redis_client is None:
            return
        try:
            await self.redis_client.rpush(self.stream_key, event.model_dump_json())
            await self.redis_client.ltrim(self.stream_key, -self.config.AUDIT_MAX_EVENTS, -1)
        except Exception as e:
            logger.error(f"Audit delivery failed for event {event.event_id}: {e}")

    def query_events(self, query: Optional[AuditEventQuery] = None) -> List[AuditEvent]:
        """Most recent events first, filtered by every criterion that is set."""
        query = query or AuditEventQuery()
        matched: List[AuditEvent] = []
        for event in reversed(self._events):
            if query.session_id and event.session_id != query.session_id:
                continue
            if query.correlation_id and event.correlation_id != query.correlation_id:
                continue
            if query.intent and event.intent != query.intent:
                continue
            if query.mode and event.mode != query.mode:
                continue
            if query.success is not None and event.success != query.success:
                continue
            if query.min_confidence is not None and event.confidence < query.min_confidence:
                continue
            if query.start and event.timestamp < query.start:
                continue
            if query.end and event.timestamp > query.end:
                continue
            matched.append(event)
            if len(matched) >= query.limit:
                break
        return matched

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
