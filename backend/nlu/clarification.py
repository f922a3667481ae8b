from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from nlu.patterns import (
    CLARIFICATION,
    NAVIGATION,
    UNKNOWN_INTENT,
    is_comparison_intent,
    is_visualization_intent,
)

Entities = Dict[str, Any]
EntityPredicate = Callable[[Entities], bool]


def _never(entities: Entities) -> bool:
    return False


def _always(entities: Entities) -> bool:
    return True


def _missing_all(*keys: str) -> EntityPredicate:
    """Missing when none of the keys is present."""
    def predicate(entities: Entities) -> bool:
        return not any(k in entities for k in keys)
    return predicate


# intent -> "required entity missing" predicate
REQUIRED_ENTITY_RULES: Dict[str, EntityPredicate] = {
    "impact_analysis": _missing_all("strategy", "number", "disruption_target"),
    "roi_optimization": _missing_all("strategy", "comparison"),
    "sustainability_analysis": _never,
    "analytics_request": _never,
    "explainability_request": _never,
    NAVIGATION: _never,
    CLARIFICATION: _never,
    UNKNOWN_INTENT: _always,
}

UNRECOGNIZED_TEMPLATE = (
    "I didn't quite understand that. Could you please rephrase your question? "
    "You can ask me about impact analysis, ROI optimization, sustainability "
    "metrics, or analytics."
)
PARTIAL_TEMPLATE = (
    "I think you're asking about {topic}, but I need a bit more information. {suggestion}"
)
DEFAULT_SUGGESTION = "Could you provide more details?"


@dataclass(frozen=True)
class ClarificationDecision:
    needs_clarification: bool
    recognized: bool
    reason: Optional[str] = None


class ClarificationPolicy:
    def __init__(self, threshold: float = 0.7, rules: Optional[Dict[str, EntityPredicate]] = None):
        self.threshold = threshold
        self.rules = rules if rules is not None else REQUIRED_ENTITY_RULES

    def required_entity_missing(self, intent: str, entities: Entities) -> bool:
        predicate = self.rules.get(intent)
        if predicate is None:
            if is_visualization_intent(intent) or is_comparison_intent(intent):
                return False
            return True
        return predicate(entities)

    def evaluate(self, intent: str, confidence: float, entities: Entities) -> ClarificationDecision:
        recognized = intent != UNKNOWN_INTENT and confidence > 0
        if not recognized:
            return ClarificationDecision(True, False, "no_match")
        if confidence < self.threshold:
            return ClarificationDecision(True, True, "low_confidence")
        if self.required_entity_missing(intent, entities):
            return ClarificationDecision(True, True, "missing_entity")
        return ClarificationDecision(False, True)

    @staticmethod
    def render(intent: str, decision: ClarificationDecision, top_suggestion: Optional[str]) -> str:
        if not decision.recognized:
            return UNRECOGNIZED_TEMPLATE
        topic = intent.replace("_", " ")
        return PARTIAL_TEMPLATE.format(topic=topic, suggestion=top_suggestion or DEFAULT_SUGGESTION)
