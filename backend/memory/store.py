import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from core.config import Settings, settings as default_settings
from memory.models import (
    ActiveAnalysis,
    ActiveChart,
    AnalysisHistoryItem,
    AnalyticalResultRef,
    ComparisonContext,
    ComparisonItem,
    ContextTransition,
    ContextUpdate,
    ConversationTurn,
    CrossAnalysisConnection,
    NavigationEvent,
    Preferences,
    PreferencesUpdate,
    Session,
    SessionContext,
    VisualizationCommand,
    VisualizationState,
    utcnow,
)

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SessionStore:
    """
    In-memory keyed table of per-session conversational state.

    Sessions are created lazily by get_or_create and removed only by clear()
    or the idle sweep in cleanup(). Callers that read-modify-write a session
    hold lock(session_id) for the duration; the store methods themselves do
    not await and therefore never interleave on the event loop.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or default_settings
        self.clock = clock
        self.idle_timeout = timedelta(seconds=self.config.SESSION_IDLE_TIMEOUT_SECONDS)
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    # --- Sessions ---
    def get_or_create(self, session_id: str, user_id: Optional[str] = None) -> Session:
        now = self.clock()
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                session_id=session_id,
                user_id=user_id,
                start_time=now,
                last_activity=now,
            )
            session.preferences.preferred_voice = self.config.DEFAULT_VOICE
            self._sessions[session_id] = session
            logger.debug(f"Created session {session_id}")
        else:
            session.last_activity = now
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """Read-only lookup. Does not create or touch the session."""
        return self._sessions.get(session_id)

    def clear(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False
        if not self.is_locked(session_id):
            self._locks.pop(session_id, None)
        if removed.multi_turn_query and not removed.multi_turn_query.is_complete:
            logger.info(f"Discarded open multi-turn query {removed.multi_turn_query.query_id}")
        return True

    async def discard(self, session_id: str) -> bool:
        """
        Clear a session once any turn in flight for it has finished.

        The lock entry is kept so turns already waiting on it stay serialized.
        """
        async with self.lock(session_id):
            return self.clear(session_id)

    def cleanup(self) -> int:
        """
        Evict every session idle for longer than the configured threshold.

        Idle time is checked before looking at the lock; sessions with a turn
        in flight are skipped even when their timestamp is stale.
        """
        now = self.clock()
        evicted = 0
        for session_id in list(self._sessions.keys()):
            session = self._sessions[session_id]
            if now - session.last_activity <= self.idle_timeout:
                continue
            if self.is_locked(session_id):
                logger.debug(f"Skipping eviction of busy session {session_id}")
                continue
            del self._sessions[session_id]
            self._locks.pop(session_id, None)
            evicted += 1

        if evicted:
            logger.info(f"Session cleanup evicted {evicted} idle session(s)")
        return evicted

    # --- Conversation ---
    def append_turn(
        self,
        session_id: str,
        raw_input: str,
        intent: str,
        entities: Dict[str, Any],
        response: str,
        confidence: float,
        success: bool,
        needs_clarification: bool = False,
        multi_part: bool = False,
        analytical_result: Optional[AnalyticalResultRef] = None,
        visualization_commands: Optional[List[VisualizationCommand]] = None,
    ) -> ConversationTurn:
        session = self.get_or_create(session_id)
        confidence = max(0.0, min(1.0, confidence))

        turn = ConversationTurn(
            turn_id=new_id("turn"),
            timestamp=self.clock(),
            raw_input=raw_input,
            resolved_intent=intent,
            entities=dict(entities),
            response=response,
            confidence=confidence,
            success=success,
            needs_clarification=needs_clarification,
            multi_part=multi_part,
            analytical_result=analytical_result,
            visualization_commands=visualization_commands or None,
        )

        meta = session.metadata
        meta.interaction_count += 1
        if success:
            meta.successful_commands += 1
        else:
            meta.failed_commands += 1
        if visualization_commands:
            meta.visualization_interactions += 1
        if needs_clarification:
            meta.clarification_requests += 1

        total = len(session.conversation_turns) + 1
        meta.average_confidence = (meta.average_confidence * (total - 1) + confidence) / total

        session.conversation_turns.append(turn)
        return turn

    def conversation_history(
        self,
        session_id: str,
        limit: Optional[int] = None,
        analysis_type: Optional[str] = None,
    ) -> List[ConversationTurn]:
        session = self.get(session_id)
        if session is None:
            return []

        history = session.conversation_turns
        if analysis_type:
            history = [t for t in history if analysis_type in t.resolved_intent]
        if limit and limit > 0:
            history = history[-limit:]
        return list(history)

    def update_context(
        self,
        session_id: str,
        update: Union[ContextUpdate, Dict[str, Any]],
        trigger: str = "user_interaction",
    ) -> SessionContext:
        """Merge only the provided fields into the session context."""
        session = self.get_or_create(session_id)
        if isinstance(update, dict):
            update = ContextUpdate(**update)
        changes = update.model_dump(exclude_unset=True)

        before = session.current_context
        merged = before.model_copy(update=changes)

        if changes.get("analysis_type") and changes["analysis_type"] != before.analysis_type:
            topics = list(before.topic_history)
            if changes["analysis_type"] not in topics:
                topics.append(changes["analysis_type"])
            merged.topic_history = topics[-self.config.MAX_TOPIC_HISTORY:]
            if "conversation_state" not in changes:
                merged.conversation_state = "active"

        session.current_context = merged
        self._record_transition(session, before, changes, trigger)
        return merged

    def _record_transition(
        self, session: Session, before: SessionContext, changes: Dict[str, Any], trigger: str
    ) -> None:
        previous = before.model_dump(mode="json", include=set(changes.keys()))
        current = session.current_context.model_dump(mode="json", include=set(changes.keys()))
        session.transitions.append(
            ContextTransition(
                from_context=previous,
                to_context=current,
                trigger=trigger,
                timestamp=self.clock(),
            )
        )
        limit = self.config.MAX_CONTEXT_TRANSITIONS
        if len(session.transitions) > limit:
            session.transitions = session.transitions[-limit:]

    def update_preferences(
        self, session_id: str, update: Union[PreferencesUpdate, Dict[str, Any]]
    ) -> Preferences:
        session = self.get_or_create(session_id)
        if isinstance(update, dict):
            update = PreferencesUpdate(**update)
        session.preferences = session.preferences.model_copy(
            update=update.model_dump(exclude_unset=True)
        )
        return session.preferences

    # --- Analyses ---
    def add_active_analysis(
        self,
        session_id: str,
        analysis_type: str,
        parameters: Optional[Dict[str, Any]] = None,
        priority: str = "medium",
        query: str = "",
    ) -> str:
        session = self.get_or_create(session_id)
        analysis = ActiveAnalysis(
            id=new_id("analysis"),
            type=analysis_type,
            parameters=parameters or {},
            priority=priority,
            query=query,
            start_time=self.clock(),
        )
        session.analytical_context.active_analyses.append(analysis)
        return analysis.id

    def _find_active(self, session: Session, analysis_id: str) -> Optional[ActiveAnalysis]:
        for analysis in session.analytical_context.active_analyses:
            if analysis.id == analysis_id:
                return analysis
        return None

    def mark_processing(self, session_id: str, analysis_id: str) -> bool:
        session = self.get_or_create(session_id)
        analysis = self._find_active(session, analysis_id)
        if analysis is None:
            return False
        analysis.status = "processing"
        return True

    def complete_analysis(
        self,
        session_id: str,
        analysis_id: str,
        results: Dict[str, Any],
        summary: str = "",
        confidence: float = 0.0,
        cross_references: Optional[List[str]] = None,
    ) -> bool:
        """Move an analysis from active to history. Unknown ids are a logged no-op."""
        session = self.get_or_create(session_id)
        analysis = self._find_active(session, analysis_id)
        if analysis is None:
            logger.warning(
                f"complete_analysis: unknown analysis {analysis_id} in session {session_id}"
            )
            return False

        ctx = session.analytical_context
        ctx.active_analyses = [a for a in ctx.active_analyses if a.id != analysis_id]
        ctx.analysis_history.append(
            AnalysisHistoryItem(
                id=analysis.id,
                type=analysis.type,
                timestamp=self.clock(),
                started_at=analysis.start_time,
                parameters=analysis.parameters,
                summary=summary,
                results=results,
                voice_query=analysis.query,
                confidence=max(0.0, min(1.0, confidence)),
                cross_references=cross_references or [],
            )
        )
        return True

    def fail_analysis(self, session_id: str, analysis_id: str, reason: str = "") -> bool:
        session = self.get_or_create(session_id)
        analysis = self._find_active(session, analysis_id)
        if analysis is None:
            logger.warning(f"fail_analysis: unknown analysis {analysis_id} in session {session_id}")
            return False

        ctx = session.analytical_context
        ctx.active_analyses = [a for a in ctx.active_analyses if a.id != analysis_id]
        session.metadata.failed_analyses += 1
        logger.warning(f"Analysis {analysis_id} ({analysis.type}) failed: {reason}")
        return True

    def has_analysis(self, session_id: str, analysis_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        return any(h.id == analysis_id for h in session.analytical_context.analysis_history)

    def add_cross_analysis_connection(
        self,
        session_id: str,
        from_id: str,
        to_id: str,
        connection_type: str,
        description: str = "",
        strength: float = 0.5,
    ) -> bool:
        if not (self.has_analysis(session_id, from_id) and self.has_analysis(session_id, to_id)):
            logger.warning(
                f"Cross-analysis connection rejected in session {session_id}: "
                f"{from_id} -> {to_id} references an unknown analysis"
            )
            return False

        session = self.get_or_create(session_id)
        session.analytical_context.cross_analysis_connections.append(
            CrossAnalysisConnection(
                from_analysis=from_id,
                to_analysis=to_id,
                connection_type=connection_type,
                strength=strength,
                description=description,
            )
        )
        session.metadata.cross_analysis_requests += 1
        return True

    def enable_comparison_mode(
        self,
        session_id: str,
        items: List[ComparisonItem],
        criteria: List[str],
        mode: str = "side_by_side",
    ) -> ComparisonContext:
        session = self.get_or_create(session_id)
        comparison = ComparisonContext(
            items=items,
            criteria=criteria,
            mode=mode,
            baseline_item=items[0].id if items else None,
        )
        session.analytical_context.comparison_mode = True
        session.analytical_context.comparison_context = comparison
        self.update_context(session_id, {"conversation_state": "comparing"}, trigger="comparison")
        return comparison

    # --- Visualization ---
    def update_visualization_state(
        self,
        session_id: str,
        current_view: Optional[str] = None,
        zoom_level: Optional[float] = None,
        filter_state: Optional[Dict[str, Any]] = None,
    ) -> VisualizationState:
        session = self.get_or_create(session_id)
        state = session.visualization_state

        if current_view and current_view != state.current_view:
            state.navigation_history.append(
                NavigationEvent(
                    timestamp=self.clock(),
                    from_view=state.current_view,
                    to_view=current_view,
                )
            )
            state.navigation_history = state.navigation_history[-self.config.MAX_NAVIGATION_HISTORY:]
            state.navigation_events += 1
            state.current_view = current_view
            session.metadata.voice_navigation_usage += 1
        if zoom_level is not None:
            state.zoom_level = zoom_level
        if filter_state is not None:
            state.filter_state = {**state.filter_state, **filter_state}
        return state

    def add_active_chart(
        self,
        session_id: str,
        chart_type: str,
        data_source: str,
        state: Optional[Dict[str, Any]] = None,
    ) -> str:
        session = self.get_or_create(session_id)
        chart = ActiveChart(
            id=new_id("chart"),
            type=chart_type,
            data_source=data_source,
            last_interaction=self.clock(),
            state=state or {},
        )
        charts = session.visualization_state.active_charts
        charts.append(chart)
        session.visualization_state.active_charts = charts[-self.config.MAX_ACTIVE_CHARTS:]
        return chart.id

    def execute_visualization_command(
        self, session_id: str, command: VisualizationCommand
    ) -> VisualizationCommand:
        """Queue a command for the UI and apply its effect on the tracked state."""
        session = self.get_or_create(session_id)
        state = session.visualization_state
        params = command.parameters

        if command.type in ("navigate", "zoom") and params.get("zoom_level") is not None:
            state.zoom_level = float(params["zoom_level"])
        elif command.type == "filter" and params.get("filter_by"):
            state.filter_state = {**state.filter_state, "filter_by": params["filter_by"]}
        elif command.type == "transform" and params.get("new_type") and state.active_charts:
            chart = state.active_charts[-1]
            chart.type = params["new_type"]
            chart.last_interaction = self.clock()

        state.pending_commands.append(command)
        state.navigation_events += 1
        session.metadata.voice_navigation_usage += 1
        return command

    def drain_pending_commands(self, session_id: str) -> List[VisualizationCommand]:
        session = self.get(session_id)
        if session is None:
            return []
        pending = session.visualization_state.pending_commands
        session.visualization_state.pending_commands = []
        return pending

    # --- Read surface ---
    def session_analytics(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.get(session_id)
        if session is None:
            return None

        meta = session.metadata
        history = session.analytical_context.analysis_history
        nav = session.visualization_state.navigation_history
        turns = session.conversation_turns
        interactions = meta.interaction_count or 1

        durations = [(h.timestamp - h.started_at).total_seconds() for h in history]
        type_counts = Counter(h.type for h in history)
        view_counts = Counter(n.to_view for n in nav)
        multi_part_turns = [t for t in turns if t.multi_part]

        return {
            **meta.model_dump(),
            "session_duration_seconds": (self.clock() - session.start_time).total_seconds(),
            "analytical_insights": {
                "total_analyses": len(history),
                "active_analyses": len(session.analytical_context.active_analyses),
                "average_analysis_seconds": sum(durations) / len(durations) if durations else 0.0,
                "most_used_analysis_type": type_counts.most_common(1)[0][0] if type_counts else "none",
                "cross_analysis_connections": len(session.analytical_context.cross_analysis_connections),
            },
            "visualization_insights": {
                "total_charts": len(session.visualization_state.active_charts),
                "navigation_events": session.visualization_state.navigation_events,
                "most_visited_view": view_counts.most_common(1)[0][0] if view_counts else session.visualization_state.current_view,
            },
            "conversation_insights": {
                "average_turn_length": (
                    sum(len(t.raw_input) + len(t.response) for t in turns) / (len(turns) * 2)
                    if turns else 0.0
                ),
                "multi_turn_success": (
                    sum(1 for t in multi_part_turns if t.success) / len(multi_part_turns)
                    if multi_part_turns else 1.0
                ),
                "clarification_rate": meta.clarification_requests / interactions,
                "voice_navigation_rate": meta.voice_navigation_usage / interactions,
            },
        }

    def export_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.get(session_id)
        if session is None:
            return None

        data = session.model_dump(mode="json", exclude={"transitions"})
        if data.get("user_id"):
            data["user_id"] = "[REDACTED]"

        return {
            "session": data,
            "transitions": [t.model_dump(mode="json") for t in session.transitions],
            "analytics": self.session_analytics(session_id),
            "dependencies": [
                c.model_dump() for c in session.analytical_context.cross_analysis_connections
            ],
        }
