import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError
from starlette.concurrency import run_in_threadpool

from app.schemas.voice import ActionRequired
from app.services.aggregator import COMPARISON_AGGREGATE, MULTI_ANALYSIS_AGGREGATE
from app.services.capabilities import (
    AnalyticalCapability,
    CapabilityRegistry,
    CapabilityRequest,
    CapabilityResult,
)
from app.utils.exceptions import DispatchFailure
from app.utils.helpers import stable_score
from memory.models import (
    AnalyticalResultRef,
    ComparisonItem,
    MultiTurnQuery,
    Session,
    VisualizationCommand,
)
from memory.store import SessionStore
from nlu.patterns import (
    CLARIFICATION,
    COMPARISON_PREFIX,
    NAVIGATION,
    VISUALIZATION_PREFIX,
    analysis_type_for,
    is_comparison_intent,
    is_visualization_intent,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolvedCommand:
    text: str
    intent: str
    entities: Dict[str, Any]
    confidence: float


@dataclass
class DispatchResult:
    spoken_response: str
    mode: str
    visual_data: Optional[Dict[str, Any]] = None
    action: Optional[ActionRequired] = None
    visualization_commands: List[VisualizationCommand] = field(default_factory=list)
    analytical_result: Optional[AnalyticalResultRef] = None
    analysis_type: Optional[str] = None


# analysis type -> (priority, navigation target, chart registered for the result)
ANALYSIS_ROUTES: Dict[str, Tuple[str, Optional[str], str]] = {
    "impact": ("high", "/dashboard", "cascade"),
    "optimization": ("high", "/optimization", "roi_comparison"),
    "sustainability": ("medium", None, "emissions"),
    "analytics": ("high", "/analytics", "kpi_trend"),
    "explainability": ("medium", None, "decision_tree"),
}

# entity keys forwarded as analysis parameters
ANALYSIS_PARAMETER_KEYS = ["strategy", "number", "percentage", "time_period", "urgency", "disruption_target", "comparison"]

DEFAULT_COMPARISON_CRITERIA = ["cost", "risk", "timeline"]
MULTI_TURN_COMPARISON_CRITERIA = ["cost", "risk", "sustainability"]
RANKED_STRATEGIES = ["Automation", "Diversification", "Analytics", "Optimization"]


def _discard_outcome(task: "asyncio.Future") -> None:
    if not task.cancelled():
        task.exception()


class Dispatcher:
    """
    Routes a resolved intent to an analytical capability or to navigation,
    visualization, comparison or elaboration handling, and folds the outcome
    back into the session store.
    """

    def __init__(self, store: SessionStore, registry: CapabilityRegistry, timeout_seconds: float = 10.0):
        self.store = store
        self.registry = registry
        self.timeout = timeout_seconds

    async def dispatch(self, session: Session, command: ResolvedCommand) -> DispatchResult:
        intent = command.intent
        analysis_type = analysis_type_for(intent)

        if analysis_type:
            return await self.handle_analysis(session, analysis_type, command)
        if is_visualization_intent(intent):
            return self.handle_visualization(session, command)
        if is_comparison_intent(intent):
            return self.handle_comparison(session, command)
        if intent == NAVIGATION:
            return self.handle_navigation(session, command)
        if intent == CLARIFICATION:
            return self.handle_elaboration(session)

        return DispatchResult(
            spoken_response="I'm not sure how to act on that yet. Could you rephrase it as an analysis request?",
            mode="clarification",
        )

    # --- Analytical capabilities ---
    async def run_analysis(
        self,
        session: Session,
        analysis_type: str,
        entities: Dict[str, Any],
        query: str,
        priority: Optional[str] = None,
    ) -> Tuple[AnalyticalResultRef, CapabilityResult]:
        capability = self.registry.get(analysis_type)
        if capability is None:
            raise DispatchFailure(f"No capability registered for {analysis_type}", capability=analysis_type)

        default_priority, _, chart_type = ANALYSIS_ROUTES[analysis_type]
        parameters = {k: entities[k] for k in ANALYSIS_PARAMETER_KEYS if k in entities}
        analysis_id = self.store.add_active_analysis(
            session.session_id, analysis_type, parameters, priority or default_priority, query
        )
        self.store.mark_processing(session.session_id, analysis_id)
        logger.info(f"Running {analysis_type} analysis {analysis_id} for session {session.session_id}")

        request = CapabilityRequest(
            analysis_type=analysis_type,
            entities=entities,
            parameters=self._session_parameters(session),
        )
        try:
            raw = await self._call(capability, request)
            result = raw if isinstance(raw, CapabilityResult) else CapabilityResult.model_validate(raw)
        except asyncio.TimeoutError:
            self.store.fail_analysis(session.session_id, analysis_id, "timeout")
            raise DispatchFailure(f"{analysis_type} capability timed out", capability=analysis_type)
        except SchemaValidationError as e:
            self.store.fail_analysis(session.session_id, analysis_id, "malformed payload")
            raise DispatchFailure(f"{analysis_type} capability returned malformed data", capability=analysis_type) from e
        except Exception as e:
            self.store.fail_analysis(session.session_id, analysis_id, str(e))
            raise DispatchFailure(f"{analysis_type} capability failed: {e}", capability=analysis_type) from e

        self.store.complete_analysis(
            session.session_id,
            analysis_id,
            results=result.payload,
            summary=result.summary,
            confidence=result.confidence,
            cross_references=result.cross_references,
        )
        self.store.add_active_chart(session.session_id, chart_type, data_source=analysis_id)

        ref = AnalyticalResultRef(
            analysis_id=analysis_id,
            type=analysis_type,
            confidence=result.confidence,
            cross_references=result.cross_references,
        )
        return ref, result

    async def _call(self, capability: AnalyticalCapability, request: CapabilityRequest) -> Any:
        # worker threads cannot be interrupted, so an expired call is abandoned, not cancelled
        task = asyncio.ensure_future(run_in_threadpool(capability.run, request))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            task.add_done_callback(_discard_outcome)
            raise asyncio.TimeoutError()
        return task.result()

    async def handle_analysis(self, session: Session, analysis_type: str, command: ResolvedCommand) -> DispatchResult:
        ref, result = await self.run_analysis(session, analysis_type, command.entities, command.text)
        _, target, _ = ANALYSIS_ROUTES[analysis_type]
        return DispatchResult(
            spoken_response=result.summary,
            mode="analysis",
            visual_data=result.payload,
            action=ActionRequired(type="navigate", target=target) if target else None,
            analytical_result=ref,
            analysis_type=analysis_type,
        )

    def _session_parameters(self, session: Session) -> Dict[str, Any]:
        prefs = session.preferences
        history = session.analytical_context.analysis_history
        return {
            "risk_tolerance": prefs.risk_tolerance,
            "time_horizon": prefs.time_horizon,
            "sustainability_priority": prefs.sustainability_priority,
            "analysis_depth": prefs.preferred_analysis_depth,
            "active_strategy": session.current_context.active_strategy,
            "last_query": session.current_context.last_query,
            "last_analysis_type": history[-1].type if history else None,
        }

    # --- Visualization ---
    def handle_visualization(self, session: Session, command: ResolvedCommand) -> DispatchResult:
        viz_type = command.intent[len(VISUALIZATION_PREFIX):]
        entities = command.entities
        state = session.visualization_state

        if viz_type == "chart_navigation":
            action, zoom = self._navigation_action(command.text, entities, state.zoom_level)
            viz = VisualizationCommand(
                type="zoom" if action.startswith("zoom") else "navigate",
                target=entities.get("chart_type", "current_chart"),
                parameters={"zoom_level": zoom, "action": action},
            )
            description = f"Zoomed to {zoom}x magnification." if action.startswith("zoom") else "Navigation updated."
        elif viz_type == "data_filtering":
            viz = VisualizationCommand(
                type="filter",
                target="active_charts",
                parameters={"filter_by": entities.get("filter_by"), "criteria": entities.get("criteria", [])},
            )
            description = f"Filtered data by {entities.get('filter_by') or 'specified criteria'}."
        elif viz_type == "chart_type":
            new_type = entities.get("chart_type", "bar")
            viz = VisualizationCommand(type="transform", target="current_chart", parameters={"new_type": new_type})
            description = f"Converted to {new_type} chart format."
        else:
            viz = VisualizationCommand(
                type="highlight",
                target="data_points",
                parameters={"criteria": entities.get("criteria", "important")},
            )
            description = "Highlighted important data points for better visibility."

        self.store.execute_visualization_command(session.session_id, viz)
        return DispatchResult(
            spoken_response=f"I've updated the visualization as requested. {description}",
            mode="visualization",
            action=ActionRequired(type="visualize", target="current_view"),
            visualization_commands=[viz],
        )

    @staticmethod
    def _navigation_action(text: str, entities: Dict[str, Any], current_zoom: float) -> Tuple[str, float]:
        if "reset" in text:
            return "reset", 1.0
        if "pan left" in text:
            return "pan_left", current_zoom
        if "pan right" in text:
            return "pan_right", current_zoom

        zoom_out = "zoom out" in text
        if "zoom_level" in entities:
            level = float(entities["zoom_level"])
            return ("zoom_in" if level > current_zoom else "zoom_out"), level
        level = current_zoom / 1.5 if zoom_out else current_zoom * 1.5
        return ("zoom_out" if zoom_out else "zoom_in"), round(level, 2)

    # --- Comparison ---
    def handle_comparison(self, session: Session, command: ResolvedCommand) -> DispatchResult:
        comp_type = command.intent[len(COMPARISON_PREFIX):]
        entities = command.entities

        if comp_type == "baseline_comparison":
            variance = {"efficiency": 12, "cost": -8}
            return DispatchResult(
                spoken_response=(
                    "Comparing against the established baseline. Current performance is 12% above "
                    "baseline in efficiency and 8% below in cost optimization."
                ),
                mode="comparison",
                visual_data={"baseline_comparison": True, "variance": variance},
                action=ActionRequired(type="display", target="baseline_comparison"),
            )

        if comp_type == "multi_comparison":
            criteria = entities.get("criteria", ["roi", "risk", "timeline"])
            ranking = self._rank(RANKED_STRATEGIES, criteria)
            items = [
                ComparisonItem(id=f"strategy_{i + 1}", label=name, data={"name": name})
                for i, name in enumerate(RANKED_STRATEGIES)
            ]
            self.store.enable_comparison_mode(session.session_id, items, criteria)
            leader = ranking[0]
            return DispatchResult(
                spoken_response=(
                    f"Ranking all strategies on {', '.join(criteria)}: {leader['name']} leads with "
                    f"an overall score of {leader['score']}, followed by {ranking[1]['name']}."
                ),
                mode="comparison",
                visual_data={"strategies": [i.model_dump() for i in items], "ranking": ranking},
                action=ActionRequired(type="compare", target="multi_strategy_comparison"),
            )

        names = entities.get("compare_items", ["Strategy A", "Strategy B"])
        criteria = entities.get("criteria", DEFAULT_COMPARISON_CRITERIA)
        return self._compare_items(session, names, criteria, target="comparison_view")

    def _compare_items(self, session: Session, names: List[str], criteria: List[str], target: str) -> DispatchResult:
        items = [
            ComparisonItem(id=f"item_{i + 1}", label=name, data={"name": name})
            for i, name in enumerate(names)
        ]
        self.store.enable_comparison_mode(session.session_id, items, criteria)
        results = [
            {"name": name, "scores": {c: stable_score(name, c) for c in criteria}}
            for name in names
        ]
        return DispatchResult(
            spoken_response=f"Comparing {' and '.join(names)} based on {', '.join(criteria)}.",
            mode="comparison",
            visual_data={"items": [i.model_dump() for i in items], "criteria": criteria, "results": results},
            action=ActionRequired(type="compare", target=target),
        )

    @staticmethod
    def _rank(names: List[str], criteria: List[str]) -> List[Dict[str, Any]]:
        scored = [
            {"name": n, "score": round(sum(stable_score(n, c) for c in criteria) / len(criteria), 1)}
            for n in names
        ]
        scored.sort(key=lambda s: s["score"], reverse=True)
        for rank, entry in enumerate(scored, start=1):
            entry["rank"] = rank
        return scored

    # --- Navigation & elaboration ---
    def handle_navigation(self, session: Session, command: ResolvedCommand) -> DispatchResult:
        last_query = (session.current_context.last_query or "").lower()
        text = command.text

        target, response = "/dashboard", "I'll take you to the dashboard."
        for source in (text, last_query):
            if "analytics" in source:
                target, response = "/analytics", "Opening the analytics dashboard for you."
                break
            if "optimization" in source or "roi" in source:
                target, response = "/optimization", "Navigating to the ROI optimization page."
                break
            if "sustainability" in source:
                target, response = "/dashboard", "Showing you the sustainability metrics."
                break

        self.store.update_visualization_state(session.session_id, current_view=target.strip("/"))
        self.store.update_context(session.session_id, {"current_page": target}, trigger="navigation")
        return DispatchResult(
            spoken_response=response,
            mode="navigation",
            action=ActionRequired(type="navigate", target=target),
        )

    def handle_elaboration(self, session: Session) -> DispatchResult:
        history = session.analytical_context.analysis_history
        if not history:
            return DispatchResult(
                spoken_response=(
                    "There's no previous analysis to elaborate on yet. You can ask me about "
                    "impact analysis, ROI optimization, sustainability metrics, or analytics."
                ),
                mode="elaboration",
            )

        latest = history[-1]
        figures = ", ".join(
            f"{k.replace('_', ' ')}: {v}" for k, v in latest.results.items()
            if isinstance(v, (int, float, str)) and not isinstance(v, bool)
        )
        spoken = f"Here's more detail on the {latest.type} analysis. {latest.summary}"
        if figures:
            spoken += f" Key figures are {figures}."
        return DispatchResult(
            spoken_response=spoken,
            mode="elaboration",
            visual_data=latest.results,
        )

    # --- Completed multi-turn queries ---
    async def dispatch_multi_turn(self, session: Session, query: MultiTurnQuery) -> DispatchResult:
        aggregate = query.aggregated_intent or "unknown"
        combined_text = " ".join(p.text for p in query.parts)

        if aggregate == COMPARISON_AGGREGATE:
            return self._compare_multi_turn(session, query)
        if aggregate == MULTI_ANALYSIS_AGGREGATE:
            return await self._run_multiple_analyses(session, query, combined_text)

        command = ResolvedCommand(
            text=query.parts[-1].text.strip().lower(),
            intent=aggregate,
            entities=dict(query.combined_entities),
            confidence=query.parts[-1].confidence,
        )
        if (
            analysis_type_for(aggregate)
            or is_visualization_intent(aggregate)
            or is_comparison_intent(aggregate)
            or aggregate in (NAVIGATION, CLARIFICATION)
        ):
            result = await self.dispatch(session, command)
            result.spoken_response = f"I've processed your multi-part request. {result.spoken_response}"
            return result

        return DispatchResult(
            spoken_response=f"I've processed your multi-part request: {combined_text}. Here's the combined view.",
            mode="multi_turn",
            visual_data={"combined_query": combined_text, "parts": len(query.parts)},
            action=ActionRequired(type="display", target="results"),
        )

    def _compare_multi_turn(self, session: Session, query: MultiTurnQuery) -> DispatchResult:
        names: List[str] = []
        for part in query.parts:
            for item in part.entities.get("compare_items", []) or [part.entities.get("strategy")]:
                if item and item not in names:
                    names.append(item)
        if len(names) < 2:
            names = names + ["Strategy A", "Strategy B"][len(names):]

        criteria: List[str] = []
        for part in query.parts:
            criteria.extend(c for c in part.entities.get("criteria", []) if c not in criteria)

        result = self._compare_items(
            session, names, criteria or MULTI_TURN_COMPARISON_CRITERIA, target="comparison_dashboard"
        )
        result.spoken_response = (
            f"I'm comparing {len(names)} items across {len(criteria or MULTI_TURN_COMPARISON_CRITERIA)} criteria. "
            f"{result.spoken_response}"
        )
        return result

    async def _run_multiple_analyses(self, session: Session, query: MultiTurnQuery, combined_text: str) -> DispatchResult:
        analysis_types: List[str] = []
        for part in query.parts:
            analysis_type = analysis_type_for(part.intent)
            if analysis_type and analysis_type not in analysis_types:
                analysis_types.append(analysis_type)

        refs: List[AnalyticalResultRef] = []
        summaries: List[str] = []
        payloads: Dict[str, Any] = {}
        for analysis_type in analysis_types:
            ref, result = await self.run_analysis(
                session, analysis_type, dict(query.combined_entities), combined_text, priority="high"
            )
            if refs:
                self.store.add_cross_analysis_connection(
                    session.session_id,
                    refs[-1].analysis_id,
                    ref.analysis_id,
                    "enhancement",
                    f"{refs[-1].type} analysis requested together with {analysis_type} in one multi-part query",
                )
            refs.append(ref)
            summaries.append(result.summary)
            payloads[analysis_type] = result.payload

        return DispatchResult(
            spoken_response=(
                f"I'm running {len(analysis_types)} different analyses: {', '.join(analysis_types)}. "
                + " ".join(summaries)
            ),
            mode="multi_analysis",
            visual_data={
                "analyses": analysis_types,
                "analysis_ids": [r.analysis_id for r in refs],
                "results": payloads,
            },
            action=ActionRequired(type="display", target="multi_analysis_dashboard"),
            analytical_result=refs[-1] if refs else None,
            analysis_type=analysis_types[-1] if analysis_types else None,
        )
