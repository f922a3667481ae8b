from dataclasses import dataclass
from typing import List, Optional, Pattern

from nlu.patterns import (
    MULTI_PART_INDICATORS,
    UNKNOWN_INTENT,
    IntentRule,
    build_rule_table,
)


def normalize(text: str) -> str:
    return (text or "").strip().lower()


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class Classification:
    intent: str
    confidence: float
    normalized: str


class IntentClassifier:
    """
    Scores an utterance against every rule and keeps the best (label, score).

    Score for a matching rule:
    - base confidence (0.6)
    - plus up to 0.3 in proportion to matched span / utterance length
    - plus 0.1 when the match starts at position 0
    clamped to [0, 1]. Strictly-greater comparison keeps the first-registered
    rule on ties.
    """

    def __init__(self, rules: Optional[List[IntentRule]] = None):
        self.rules = rules if rules is not None else build_rule_table()

    def classify(self, utterance: str) -> Classification:
        text = normalize(utterance)
        best_intent = UNKNOWN_INTENT
        best_confidence = 0.0

        if not text:
            return Classification(best_intent, best_confidence, text)

        for rule in self.rules:
            score = self.score(text, rule)
            if score > best_confidence:
                best_confidence = score
                best_intent = rule.intent_label

        return Classification(best_intent, best_confidence, text)

    @staticmethod
    def score(text: str, rule: IntentRule) -> float:
        match = rule.pattern.search(text)
        if not match:
            return 0.0

        confidence = rule.base_confidence
        confidence += (len(match.group(0)) / len(text)) * 0.3
        if match.start() == 0:
            confidence += 0.1
        return clamp_confidence(confidence)


def is_multi_part_query(
    utterance: str, indicators: Optional[List[Pattern[str]]] = None
) -> bool:
    """Heuristic for utterances that announce more than one request."""
    indicators = indicators if indicators is not None else MULTI_PART_INDICATORS
    return any(p.search(utterance or "") for p in indicators)
