"""
Tests for the in-memory session store.
"""
import asyncio

import pytest

from memory.models import ComparisonItem, VisualizationCommand


def _completed(store, session_id, analysis_type="impact"):
    analysis_id = store.add_active_analysis(session_id, analysis_type, {"number": 1.0}, "high", "q")
    store.complete_analysis(session_id, analysis_id, {"total": 1}, summary="done", confidence=0.9)
    return analysis_id


def test_get_or_create_is_lazy(store):
    assert store.get("s1") is None
    session = store.get_or_create("s1", user_id="u1")
    assert store.get("s1") is session
    assert session.user_id == "u1"
    assert session.preferences.preferred_voice == "Sarah"
    assert len(store) == 1


def test_get_does_not_create(store):
    store.get("missing")
    assert "missing" not in store


def test_append_turn_updates_metadata(store):
    store.append_turn("s1", "hi", "unknown", {}, "?", 0.0, success=False, needs_clarification=True)
    store.append_turn("s1", "show analytics", "analytics_request", {}, "ok", 0.8, success=True)

    meta = store.get("s1").metadata
    assert meta.interaction_count == 2
    assert meta.successful_commands == 1
    assert meta.failed_commands == 1
    assert meta.clarification_requests == 1
    assert meta.average_confidence == pytest.approx(0.4)


def test_append_turn_clamps_confidence(store):
    turn = store.append_turn("s1", "x", "unknown", {}, "?", 1.7, success=True)
    assert turn.confidence == 1.0


def test_conversation_history_filters(store):
    for intent in ["impact_analysis", "roi_optimization", "impact_analysis"]:
        store.append_turn("s1", intent, intent, {}, "ok", 0.9, success=True)

    assert len(store.conversation_history("s1")) == 3
    assert len(store.conversation_history("s1", limit=2)) == 2
    assert [t.resolved_intent for t in store.conversation_history("s1", analysis_type="impact")] == [
        "impact_analysis",
        "impact_analysis",
    ]
    assert store.conversation_history("missing") == []


def test_update_context_merges_only_provided_fields(store):
    store.update_context("s1", {"analysis_type": "impact", "active_strategy": "automation"})
    ctx = store.update_context("s1", {"last_query": "next question"})

    assert ctx.analysis_type == "impact"
    assert ctx.active_strategy == "automation"
    assert ctx.last_query == "next question"
    assert ctx.conversation_state == "active"
    assert ctx.topic_history == ["impact"]
    assert len(store.get("s1").transitions) == 2


def test_topic_history_is_bounded_and_distinct(store, config):
    for t in ["impact", "optimization", "impact", "analytics"]:
        store.update_context("s1", {"analysis_type": t})
    assert store.get("s1").current_context.topic_history == ["impact", "optimization", "analytics"]


def test_analysis_lifecycle(store):
    analysis_id = store.add_active_analysis("s1", "impact", {"number": 1.0}, "high", "q")
    session = store.get("s1")
    assert session.analytical_context.active_analyses[0].status == "pending"

    assert store.mark_processing("s1", analysis_id)
    assert session.analytical_context.active_analyses[0].status == "processing"

    assert store.complete_analysis("s1", analysis_id, {"total": 1}, summary="done", confidence=0.9)
    assert session.analytical_context.active_analyses == []
    assert session.analytical_context.analysis_history[0].id == analysis_id
    assert store.has_analysis("s1", analysis_id)


def test_complete_unknown_analysis_is_noop(store, caplog):
    store.get_or_create("s1")
    assert not store.complete_analysis("s1", "analysis-missing", {})
    assert store.get("s1").analytical_context.analysis_history == []
    assert "unknown analysis" in caplog.text


def test_fail_analysis(store):
    analysis_id = store.add_active_analysis("s1", "optimization")
    assert store.fail_analysis("s1", analysis_id, "boom")
    session = store.get("s1")
    assert session.analytical_context.active_analyses == []
    assert session.analytical_context.analysis_history == []
    assert session.metadata.failed_analyses == 1


def test_cross_analysis_connection_requires_history(store):
    first = _completed(store, "s1")
    pending = store.add_active_analysis("s1", "optimization")

    assert not store.add_cross_analysis_connection("s1", first, pending, "dependency")
    assert store.get("s1").analytical_context.cross_analysis_connections == []

    second = _completed(store, "s1", "optimization")
    assert store.add_cross_analysis_connection("s1", first, second, "dependency", "cost feeds ROI", 0.8)
    connections = store.get("s1").analytical_context.cross_analysis_connections
    assert len(connections) == 1
    assert connections[0].strength == 0.8
    assert store.get("s1").metadata.cross_analysis_requests == 1


def test_enable_comparison_mode(store):
    items = [ComparisonItem(id="a", label="A"), ComparisonItem(id="b", label="B")]
    comparison = store.enable_comparison_mode("s1", items, ["cost"])
    session = store.get("s1")

    assert session.analytical_context.comparison_mode
    assert comparison.baseline_item == "a"
    assert session.current_context.conversation_state == "comparing"


def test_visualization_state_navigation(store):
    store.update_visualization_state("s1", current_view="analytics")
    store.update_visualization_state("s1", current_view="analytics")
    state = store.update_visualization_state("s1", current_view="optimization", zoom_level=2.0)

    assert state.current_view == "optimization"
    assert state.zoom_level == 2.0
    assert [(e.from_view, e.to_view) for e in state.navigation_history] == [
        ("dashboard", "analytics"),
        ("analytics", "optimization"),
    ]


def test_active_charts_are_bounded(store, config):
    for i in range(config.MAX_ACTIVE_CHARTS + 3):
        store.add_active_chart("s1", "bar", data_source=f"a{i}")
    charts = store.get("s1").visualization_state.active_charts
    assert len(charts) == config.MAX_ACTIVE_CHARTS
    assert charts[-1].data_source == f"a{config.MAX_ACTIVE_CHARTS + 2}"


def test_execute_and_drain_visualization_commands(store):
    store.add_active_chart("s1", "bar", data_source="a1")
    store.execute_visualization_command("s1", VisualizationCommand(type="zoom", target="c", parameters={"zoom_level": 3.0}))
    store.execute_visualization_command("s1", VisualizationCommand(type="transform", target="c", parameters={"new_type": "pie"}))

    state = store.get("s1").visualization_state
    assert state.zoom_level == 3.0
    assert state.active_charts[-1].type == "pie"

    drained = store.drain_pending_commands("s1")
    assert [c.type for c in drained] == ["zoom", "transform"]
    assert store.drain_pending_commands("s1") == []


def test_update_preferences(store):
    prefs = store.update_preferences("s1", {"risk_tolerance": "conservative"})
    assert prefs.risk_tolerance == "conservative"
    assert prefs.preferred_voice == "Sarah"


def test_clear(store):
    store.get_or_create("s1")
    assert store.clear("s1")
    assert not store.clear("s1")
    assert store.get("s1") is None


@pytest.mark.asyncio
async def test_discard_waits_for_turn_in_flight(store):
    store.get_or_create("s1")
    lock = store.lock("s1")
    await lock.acquire()

    clearing = asyncio.ensure_future(store.discard("s1"))
    await asyncio.sleep(0.01)
    assert not clearing.done()
    assert store.get("s1") is not None

    lock.release()
    assert await clearing
    assert store.get("s1") is None
    assert not await store.discard("s1")


def test_cleanup_evicts_only_idle_sessions(store, clock, config):
    store.get_or_create("old")
    clock.advance(config.SESSION_IDLE_TIMEOUT_SECONDS)
    store.get_or_create("fresh")

    # exactly at the threshold is not idle enough
    assert store.cleanup() == 0

    clock.advance(1)
    assert store.cleanup() == 1
    assert "old" not in store
    assert "fresh" in store

    revived = store.get_or_create("old")
    assert revived.conversation_turns == []


@pytest.mark.asyncio
async def test_cleanup_skips_locked_sessions(store, clock, config):
    store.get_or_create("busy")
    clock.advance(config.SESSION_IDLE_TIMEOUT_SECONDS + 1)

    async with store.lock("busy"):
        assert store.cleanup() == 0
    assert store.cleanup() == 1


def test_session_analytics_and_export(store):
    store.get_or_create("s1", user_id="alice")
    _completed(store, "s1")
    store.append_turn("s1", "impact?", "impact_analysis", {}, "done", 0.9, success=True)
    store.update_visualization_state("s1", current_view="analytics")

    analytics = store.session_analytics("s1")
    assert analytics["interaction_count"] == 1
    assert analytics["analytical_insights"]["total_analyses"] == 1
    assert analytics["analytical_insights"]["most_used_analysis_type"] == "impact"
    assert analytics["visualization_insights"]["most_visited_view"] == "analytics"

    exported = store.export_session("s1")
    assert exported["session"]["user_id"] == "[REDACTED]"
    assert exported["analytics"]["interaction_count"] == 1
    assert store.export_session("missing") is None
