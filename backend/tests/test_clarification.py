"""
Tests for the clarification policy.
"""
import pytest

from nlu.clarification import (
    DEFAULT_SUGGESTION,
    UNRECOGNIZED_TEMPLATE,
    ClarificationPolicy,
)


@pytest.fixture
def policy():
    return ClarificationPolicy(threshold=0.7)


def test_unknown_always_needs_clarification(policy):
    decision = policy.evaluate("unknown", 0.0, {"strategy": "automation"})
    assert decision.needs_clarification
    assert not decision.recognized
    assert decision.reason == "no_match"


def test_low_confidence(policy):
    decision = policy.evaluate("analytics_request", 0.65, {})
    assert decision.needs_clarification
    assert decision.recognized
    assert decision.reason == "low_confidence"


def test_threshold_is_inclusive(policy):
    assert not policy.evaluate("analytics_request", 0.7, {}).needs_clarification


@pytest.mark.parametrize("entities,missing", [
    ({}, True),
    ({"strategy": "automation"}, False),
    ({"number": 5.0}, False),
    ({"disruption_target": "supplier"}, False),
    ({"time_period": "month"}, True),
])
def test_impact_required_entities(policy, entities, missing):
    assert policy.evaluate("impact_analysis", 0.9, entities).needs_clarification is missing


def test_roi_needs_strategy_or_comparison(policy):
    assert policy.evaluate("roi_optimization", 0.9, {}).needs_clarification
    assert not policy.evaluate("roi_optimization", 0.9, {"comparison": True}).needs_clarification


@pytest.mark.parametrize("intent", [
    "sustainability_analysis",
    "navigation",
    "clarification",
    "visualization_data_filtering",
    "comparison_multi_comparison",
])
def test_intents_without_required_entities(policy, intent):
    assert not policy.evaluate(intent, 0.9, {}).needs_clarification


def test_unlisted_label_needs_clarification(policy):
    assert policy.evaluate("something_new", 0.95, {}).needs_clarification


def test_render_templates(policy):
    unrecognized = policy.evaluate("unknown", 0.0, {})
    assert ClarificationPolicy.render("unknown", unrecognized, "ignored") == UNRECOGNIZED_TEMPLATE

    partial = policy.evaluate("impact_analysis", 0.9, {})
    text = ClarificationPolicy.render("impact_analysis", partial, "Would you like to see the cascade effects?")
    assert text.startswith("I think you're asking about impact analysis")
    assert text.endswith("Would you like to see the cascade effects?")

    assert ClarificationPolicy.render("impact_analysis", partial, None).endswith(DEFAULT_SUGGESTION)
