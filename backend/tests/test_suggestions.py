"""
Tests for follow-up and contextual suggestions.
"""
from datetime import datetime, timezone

from memory.models import (
    ActiveAnalysis,
    ActiveChart,
    AnalysisHistoryItem,
    ComparisonContext,
    MultiTurnQuery,
    Session,
)
from nlu.suggestions import (
    COMPARISON_PROMPTS,
    FOLLOW_UP_TEMPLATES,
    MULTI_TURN_PROMPTS,
    contextual_suggestions,
    suggest_follow_ups,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _history(*types):
    return [
        AnalysisHistoryItem(id=f"a{i}", type=t, timestamp=T0, started_at=T0)
        for i, t in enumerate(types)
    ]


def _session():
    return Session(session_id="s1", start_time=T0, last_activity=T0)


def test_templates_for_analytical_intents():
    for intent, templates in FOLLOW_UP_TEMPLATES.items():
        assert suggest_follow_ups(intent, [], []) == templates


def test_empty_for_other_intents():
    assert suggest_follow_ups("navigation", _history("impact", "optimization"), []) == []
    assert suggest_follow_ups("unknown", [], []) == []


def test_history_and_pending_prompts():
    active = [ActiveAnalysis(id="p1", type="analytics")]
    suggestions = suggest_follow_ups("impact_analysis", _history("impact", "optimization"), active)

    assert len(suggestions) == 5
    assert "You have 1 analysis pending. Would you like to check the status?" in suggestions
    assert "Would you like to compare impact with optimization?" in suggestions


def test_limit_is_respected():
    suggestions = suggest_follow_ups("impact_analysis", _history("impact", "optimization"), [], limit=2)
    assert len(suggestions) == 2


def test_follow_ups_are_deterministic():
    history = _history("sustainability", "analytics")
    first = suggest_follow_ups("analytics_request", history, [])
    assert all(suggest_follow_ups("analytics_request", history, []) == first for _ in range(3))


def test_contextual_open_multi_turn_query():
    session = _session()
    session.multi_turn_query = MultiTurnQuery(
        query_id="q1", start_time=T0, originating_utterance="first x then y", expected_parts=2
    )
    assert contextual_suggestions(session) == MULTI_TURN_PROMPTS


def test_contextual_comparison_and_charts():
    session = _session()
    session.analytical_context.comparison_mode = True
    session.analytical_context.comparison_context = ComparisonContext(criteria=["cost"])
    session.visualization_state.active_charts.append(ActiveChart(id="c1", type="cascade", data_source="a1"))

    suggestions = contextual_suggestions(session, limit=10)
    assert suggestions[:3] == COMPARISON_PROMPTS
    assert "Would you like me to explain the current visualization?" in suggestions


def test_contextual_empty_for_fresh_session():
    assert contextual_suggestions(_session()) == []
