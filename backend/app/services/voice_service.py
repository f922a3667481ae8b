import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from app.schemas.voice import AuditEvent, MultiTurnInfo, SpeechOutput, VoiceResponse
from app.services.aggregator import MultiTurnAggregator
from app.services.audit import AuditTrail
from app.services.dispatcher import DispatchResult, Dispatcher, ResolvedCommand
from app.utils.exceptions import DispatchFailure
from core.config import Settings, settings as default_settings
from memory.models import MultiTurnQuery, Session
from memory.store import SessionStore
from nlu.clarification import ClarificationPolicy
from nlu.classifier import IntentClassifier, clamp_confidence
from nlu.entities import EntityExtractor
from nlu.suggestions import contextual_suggestions, suggest_follow_ups

logger = logging.getLogger(__name__)

APOLOGY = "I encountered an issue processing your request. Could you please try rephrasing it?"
MULTI_TURN_OPENED = (
    "I understand you have a multi-part question. I've noted the first part. "
    "Please continue with the next part."
)


class VoiceService:
    """
    Turns one utterance into one response envelope.

    Order of checks per turn:
    1. an open multi-turn query absorbs the utterance as its next part
    2. a multi-part utterance opens a new query
    3. the clarification policy
    4. dispatch to an analytical capability or a UI handler
    Every path appends exactly one conversation turn and emits one audit event.
    """

    def __init__(
        self,
        store: SessionStore,
        dispatcher: Dispatcher,
        audit: AuditTrail,
        config: Optional[Settings] = None,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[EntityExtractor] = None,
        policy: Optional[ClarificationPolicy] = None,
        aggregator: Optional[MultiTurnAggregator] = None,
    ):
        self.config = config or default_settings
        self.store = store
        self.dispatcher = dispatcher
        self.audit = audit
        self.classifier = classifier or IntentClassifier()
        self.extractor = extractor or EntityExtractor()
        self.policy = policy or ClarificationPolicy(self.config.CONFIDENCE_THRESHOLD)
        self.aggregator = aggregator or MultiTurnAggregator(
            self.config.MULTI_TURN_EXPECTED_PARTS, self.config.MULTI_TURN_TIMEOUT_SECONDS
        )

    async def process_turn(
        self, message: str, session_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> VoiceResponse:
        t0 = time.time()

        if not session_id:
            session_id = str(uuid.uuid4())
        correlation_id = str(uuid.uuid4())

        async with self.store.lock(session_id):
            response = await self._process_locked(message, session_id, user_id, correlation_id, t0)

        await self.audit.record(
            AuditEvent(
                event_id=str(uuid.uuid4()),
                correlation_id=correlation_id,
                session_id=session_id,
                timestamp=self.store.clock(),
                raw_input=message,
                intent=response.intent,
                entities=response.entities,
                confidence=response.confidence,
                mode=response.mode,
                success=response.success,
                needs_clarification=response.needs_clarification,
                analysis_id=response.analytical_results.analysis_id if response.analytical_results else None,
                latency_ms=response.meta["latency_ms"],
            )
        )
        return response

    async def _process_locked(
        self, message: str, session_id: str, user_id: Optional[str], correlation_id: str, t0: float
    ) -> VoiceResponse:
        session = self.store.get_or_create(session_id, user_id)
        if user_id and not session.user_id:
            session.user_id = user_id

        now = self.store.clock()
        self.aggregator.expire_stale(session, now)

        classification = self.classifier.classify(message)
        intent = classification.intent
        confidence = clamp_confidence(classification.confidence)
        entities = self.extractor.extract(classification.normalized, intent)
        logger.debug(f"[{correlation_id}] session={session_id} intent={intent} confidence={confidence:.2f}")

        # 1. Continuation of an open multi-turn query
        if self.aggregator.has_open(session):
            query = self.aggregator.add_part(session, message, intent, entities, confidence, now)
            if not query.is_complete:
                result = DispatchResult(
                    spoken_response=(
                        f"Got it, that's part {query.current_part} of {query.expected_parts}. "
                        "Please continue with the next part."
                    ),
                    mode="multi_turn",
                )
                return self._finalize(
                    session, correlation_id, t0, message, intent, confidence, entities, result,
                    success=True, multi_part=True, multi_turn=self._multi_turn_info(query),
                    context={"last_query": message, "conversation_state": "multi_turn"},
                )

            completed = self.aggregator.consume(session)
            info = self._multi_turn_info(completed)
            aggregate = completed.aggregated_intent or intent
            try:
                result = await self.dispatcher.dispatch_multi_turn(session, completed)
            except DispatchFailure as e:
                return self._failed(
                    session, correlation_id, t0, message, aggregate, confidence,
                    completed.combined_entities, e, multi_part=True, multi_turn=info,
                )
            return self._finalize(
                session, correlation_id, t0, message, aggregate, confidence,
                completed.combined_entities, result,
                success=True, multi_part=True, multi_turn=info,
                context=self._success_context(message, entities, result),
            )

        # 2. Start of a multi-turn query
        if self.aggregator.should_open(intent, message):
            query = self.aggregator.open(session, message, intent, entities, confidence, now)
            logger.info(f"Opened multi-turn query {query.query_id} for session {session_id}")
            result = DispatchResult(spoken_response=MULTI_TURN_OPENED, mode="multi_turn")
            return self._finalize(
                session, correlation_id, t0, message, intent, confidence, entities, result,
                success=True, multi_part=True, multi_turn=self._multi_turn_info(query),
                context={"last_query": message, "conversation_state": "multi_turn"},
            )

        # 3. Clarification
        decision = self.policy.evaluate(intent, confidence, entities)
        if decision.needs_clarification:
            suggestions = self._suggestions(session, intent)
            spoken = self.policy.render(intent, decision, suggestions[0] if suggestions else None)
            result = DispatchResult(spoken_response=spoken, mode="clarification")
            return self._finalize(
                session, correlation_id, t0, message, intent, confidence, entities, result,
                success=decision.recognized, needs_clarification=True,
                context={"last_query": message, "conversation_state": "clarifying"},
            )

        # 4. Dispatch
        command = ResolvedCommand(
            text=classification.normalized, intent=intent, entities=entities, confidence=confidence
        )
        try:
            result = await self.dispatcher.dispatch(session, command)
        except DispatchFailure as e:
            return self._failed(session, correlation_id, t0, message, intent, confidence, entities, e)

        return self._finalize(
            session, correlation_id, t0, message, intent, confidence, entities, result,
            success=True, context=self._success_context(message, entities, result),
        )

    def _failed(
        self,
        session: Session,
        correlation_id: str,
        t0: float,
        message: str,
        intent: str,
        confidence: float,
        entities: Dict[str, Any],
        error: DispatchFailure,
        multi_part: bool = False,
        multi_turn: Optional[MultiTurnInfo] = None,
    ) -> VoiceResponse:
        logger.error(f"[{correlation_id}] Dispatch failed for session {session.session_id} ({intent}): {error.message}")
        result = DispatchResult(spoken_response=APOLOGY, mode="error")
        return self._finalize(
            session, correlation_id, t0, message, intent, confidence, entities, result,
            success=False, multi_part=multi_part, multi_turn=multi_turn,
            context={"last_query": message},
        )

    @staticmethod
    def _success_context(message: str, entities: Dict[str, Any], result: DispatchResult) -> Dict[str, Any]:
        context: Dict[str, Any] = {"last_query": message}
        if result.analysis_type:
            context["analysis_type"] = result.analysis_type
        if result.visual_data is not None:
            context["last_results"] = result.visual_data
        if entities.get("strategy"):
            context["active_strategy"] = entities["strategy"]
        if result.mode != "comparison":
            context["conversation_state"] = "active"
        return context

    @staticmethod
    def _multi_turn_info(query: MultiTurnQuery) -> MultiTurnInfo:
        return MultiTurnInfo(
            query_id=query.query_id,
            expected_parts=query.expected_parts,
            current_part=query.current_part,
            is_complete=query.is_complete,
            aggregated_intent=query.aggregated_intent,
        )

    def _suggestions(self, session: Session, intent: str) -> List[str]:
        ctx = session.analytical_context
        limit = self.config.MAX_SUGGESTIONS
        suggestions = suggest_follow_ups(intent, ctx.analysis_history, ctx.active_analyses, limit)
        return suggestions or contextual_suggestions(session, limit)

    def _finalize(
        self,
        session: Session,
        correlation_id: str,
        t0: float,
        message: str,
        intent: str,
        confidence: float,
        entities: Dict[str, Any],
        result: DispatchResult,
        success: bool,
        needs_clarification: bool = False,
        multi_part: bool = False,
        multi_turn: Optional[MultiTurnInfo] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> VoiceResponse:
        session_id = session.session_id
        turn = self.store.append_turn(
            session_id,
            raw_input=message,
            intent=intent,
            entities=entities,
            response=result.spoken_response,
            confidence=confidence,
            success=success,
            needs_clarification=needs_clarification,
            multi_part=multi_part,
            analytical_result=result.analytical_result,
            visualization_commands=result.visualization_commands,
        )
        if context:
            self.store.update_context(session_id, context)

        speech = None
        prefs = session.preferences
        if prefs.auto_speak:
            speech = SpeechOutput(
                text=result.spoken_response,
                voice_id=prefs.preferred_voice,
                speech_rate=prefs.speech_rate,
            )

        return VoiceResponse(
            session_id=session_id,
            correlation_id=correlation_id,
            mode=result.mode,
            intent=intent,
            confidence=confidence,
            entities=entities,
            spoken_response=result.spoken_response,
            success=success,
            needs_clarification=needs_clarification,
            visual_data=result.visual_data,
            action_required=result.action,
            visualization_commands=self.store.drain_pending_commands(session_id),
            multi_turn=multi_turn,
            analytical_results=result.analytical_result,
            follow_up_questions=self._suggestions(session, intent),
            speech=speech,
            meta={
                "latency_ms": int((time.time() - t0) * 1000),
                "turn_id": turn.turn_id,
                "conversation_state": session.current_context.conversation_state,
            },
        )
