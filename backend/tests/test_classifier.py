"""
Tests for intent classification.
"""
import re

import pytest

from nlu.classifier import IntentClassifier, is_multi_part_query
from nlu.patterns import IntentRule


@pytest.fixture
def classifier():
    return IntentClassifier()


def test_impact_question_scores_above_threshold(classifier):
    result = classifier.classify("What's the financial impact if our main supplier fails?")
    assert result.intent == "impact_analysis"
    assert result.confidence >= 0.7
    assert result.confidence <= 1.0


def test_unrecognized_utterance(classifier):
    result = classifier.classify("xyz abc unclear")
    assert result.intent == "unknown"
    assert result.confidence == 0.0


def test_empty_utterance(classifier):
    result = classifier.classify("   ")
    assert result.intent == "unknown"
    assert result.confidence == 0.0


def test_normalizes_case_and_whitespace(classifier):
    result = classifier.classify("  WHAT IS OUR CARBON FOOTPRINT  ")
    assert result.normalized == "what is our carbon footprint"
    assert result.intent == "sustainability_analysis"


def test_visualization_and_comparison_namespaces(classifier):
    assert classifier.classify("zoom in on the chart").intent == "visualization_chart_navigation"
    assert classifier.classify("difference between automation and diversification").intent == (
        "comparison_direct_comparison"
    )


def test_classification_is_deterministic(classifier):
    text = "Calculate the ROI calculation for automation"
    results = {classifier.classify(text) for _ in range(5)}
    assert len(results) == 1


def test_score_formula():
    rule = IntentRule(re.compile("carbon.*footprint"), "sustainability_analysis")
    text = "carbon footprint"
    # full-length match at position 0
    assert IntentClassifier.score(text, rule) == pytest.approx(1.0)

    text = "what is our carbon footprint"
    expected = 0.6 + 0.3 * len("carbon footprint") / len(text)
    assert IntentClassifier.score(text, rule) == pytest.approx(expected)


def test_ties_keep_first_registered_rule():
    rules = [
        IntentRule(re.compile("report"), "first"),
        IntentRule(re.compile("report"), "second"),
    ]
    assert IntentClassifier(rules).classify("report").intent == "first"


def test_confidence_is_clamped():
    rule = IntentRule(re.compile("go"), "navigation", base_confidence=0.95)
    assert IntentClassifier([rule]).classify("go").confidence == 1.0


@pytest.mark.parametrize("utterance", [
    "Analyze the disruption and then show the costs",
    "after that, open the dashboard",
    "first check emissions, then the ROI",
    "impact analysis followed by a comparison",
    "next, the analytics",
])
def test_multi_part_indicators(utterance):
    assert is_multi_part_query(utterance)


@pytest.mark.parametrize("utterance", [
    "What's the financial impact if our main supplier fails?",
    "the nextgen warehouse report",
    "compare automation with diversification",
])
def test_single_part_utterances(utterance):
    assert not is_multi_part_query(utterance)
