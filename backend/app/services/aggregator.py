import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from memory.models import MultiTurnQuery, QueryPart, Session
from nlu.classifier import is_multi_part_query
from nlu.patterns import MULTI_TURN_START, analysis_type_for, is_comparison_intent

logger = logging.getLogger(__name__)

COMPARISON_AGGREGATE = "comparison"
MULTI_ANALYSIS_AGGREGATE = "multi_analysis"


def aggregate_intents(parts: List[QueryPart]) -> str:
    """
    Fold the intents of every part into one composite intent.

    - comparison: two parts carry the comparison flag, or any part resolved
      to a comparison intent
    - multi_analysis: two or more distinct analysis types across parts
    - otherwise the final part's intent
    """
    flagged = sum(1 for p in parts if p.entities.get("comparison"))
    if flagged >= 2 or any(is_comparison_intent(p.intent) for p in parts):
        return COMPARISON_AGGREGATE

    analysis_types = {analysis_type_for(p.intent) for p in parts} - {None}
    if len(analysis_types) >= 2:
        return MULTI_ANALYSIS_AGGREGATE

    return parts[-1].intent if parts else "unknown"


class MultiTurnAggregator:
    """
    NONE -> OPEN -> COMPLETE state machine kept in Session.multi_turn_query.

    The opening utterance is stored as part 1 (a context part), so a query
    expecting two parts completes on the first continuation turn.
    """

    def __init__(self, expected_parts: int = 2, timeout_seconds: int = 300):
        self.expected_parts = expected_parts
        self.timeout = timedelta(seconds=timeout_seconds)

    def should_open(self, intent: str, raw_input: str) -> bool:
        return intent == MULTI_TURN_START or is_multi_part_query(raw_input)

    @staticmethod
    def has_open(session: Session) -> bool:
        query = session.multi_turn_query
        return query is not None and not query.is_complete

    def open(
        self,
        session: Session,
        utterance: str,
        intent: str,
        entities: Dict[str, Any],
        confidence: float,
        now: datetime,
        expected_parts: Optional[int] = None,
    ) -> MultiTurnQuery:
        if self.has_open(session):
            raise RuntimeError(f"Session {session.session_id} already has an open multi-turn query")

        query = MultiTurnQuery(
            query_id=f"mtq-{uuid.uuid4().hex[:12]}",
            start_time=now,
            originating_utterance=utterance,
            expected_parts=expected_parts or self.expected_parts,
            parts=[
                QueryPart(
                    part_number=1,
                    text=utterance,
                    intent=intent,
                    entities=dict(entities),
                    confidence=confidence,
                    timestamp=now,
                    is_context=True,
                )
            ],
            combined_entities=dict(entities),
        )
        session.multi_turn_query = query
        session.metadata.multi_turn_queries += 1
        return query

    def add_part(
        self,
        session: Session,
        text: str,
        intent: str,
        entities: Dict[str, Any],
        confidence: float,
        now: datetime,
    ) -> MultiTurnQuery:
        """Append a continuation part. Parts are accepted whatever their intent or confidence."""
        query = session.multi_turn_query
        if query is None or query.is_complete:
            raise RuntimeError(f"Session {session.session_id} has no open multi-turn query")

        query.current_part += 1
        query.parts.append(
            QueryPart(
                part_number=query.current_part,
                text=text,
                intent=intent,
                entities=dict(entities),
                confidence=confidence,
                timestamp=now,
            )
        )
        query.combined_entities = {**query.combined_entities, **entities}

        if query.current_part >= query.expected_parts:
            query.is_complete = True
            query.aggregated_intent = aggregate_intents(query.parts)
            logger.info(
                f"Multi-turn query {query.query_id} complete after {query.current_part} parts: "
                f"{query.aggregated_intent}"
            )
        return query

    @staticmethod
    def consume(session: Session) -> Optional[MultiTurnQuery]:
        """Hand out a completed query exactly once and clear the slot."""
        query = session.multi_turn_query
        if query is None or not query.is_complete or query.consumed:
            return None
        query.consumed = True
        session.multi_turn_query = None
        return query

    def expire_stale(self, session: Session, now: datetime) -> bool:
        query = session.multi_turn_query
        if query is None or now - query.start_time <= self.timeout:
            return False
        logger.info(f"Discarding stale multi-turn query {query.query_id} for session {session.session_id}")
        session.multi_turn_query = None
        return True
