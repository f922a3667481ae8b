"""
Declarative intent rule tables.

Rules are evaluated in registration order: core intents first, then the
visualization namespace, then the comparison namespace. Order matters only
for ties, where the first-registered rule wins.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Pattern, Tuple

VISUALIZATION_PREFIX = "visualization_"
COMPARISON_PREFIX = "comparison_"

UNKNOWN_INTENT = "unknown"
MULTI_TURN_START = "multi_turn_start"
NAVIGATION = "navigation"
CLARIFICATION = "clarification"

# intent label -> analysis type understood by the capabilities
ANALYTICAL_INTENTS: Dict[str, str] = {
    "impact_analysis": "impact",
    "roi_optimization": "optimization",
    "sustainability_analysis": "sustainability",
    "analytics_request": "analytics",
    "explainability_request": "explainability",
}


@dataclass(frozen=True)
class IntentRule:
    pattern: Pattern[str]
    intent_label: str
    base_confidence: float = 0.6


CORE_PATTERNS: List[Tuple[str, List[str]]] = [
    ("impact_analysis", [
        r"what.*impact.*if",
        r"analyze.*disruption",
        r"financial.*effect",
        r"cost.*breakdown",
        r"cascade.*analysis",
        r"delivery.*delay",
    ]),
    ("roi_optimization", [
        r"roi.*calculation",
        r"return.*investment",
        r"payback.*period",
        r"compare.*strategies",
        r"optimize.*investment",
        r"best.*strategy",
    ]),
    ("sustainability_analysis", [
        r"carbon.*footprint",
        r"environmental.*impact",
        r"sustainability.*score",
        r"green.*alternatives",
        r"emissions.*analysis",
        r"eco.*friendly",
    ]),
    ("analytics_request", [
        r"show.*analytics",
        r"real.*time.*data",
        r"performance.*metrics",
        r"trend.*analysis",
        r"anomaly.*detection",
        r"network.*diagram",
    ]),
    ("explainability_request", [
        r"explain.*decision",
        r"why.*recommend",
        r"confidence.*score",
        r"reasoning.*behind",
        r"how.*calculated",
        r"decision.*tree",
    ]),
    (NAVIGATION, [
        r"go.*to",
        r"show.*me",
        r"navigate.*to",
        r"open.*dashboard",
        r"switch.*to",
    ]),
    (MULTI_TURN_START, [
        r"first.*then",
        r"after.*that.*show",
        r"also.*analyze",
        r"compare.*and.*then",
        r"multiple.*analysis",
    ]),
    (CLARIFICATION, [
        r"what.*do.*you.*mean",
        r"can.*you.*explain",
        r"more.*details",
        r"elaborate",
        r"tell.*me.*more",
    ]),
]

VISUALIZATION_PATTERNS: List[Tuple[str, List[str]]] = [
    ("chart_navigation", [
        r"zoom.*in",
        r"zoom.*out",
        r"pan.*left",
        r"pan.*right",
        r"reset.*view",
    ]),
    ("data_filtering", [
        r"filter.*by",
        r"show.*only",
        r"hide.*data",
        r"exclude.*from",
        r"focus.*on",
    ]),
    ("chart_type", [
        r"show.*as.*bar.*chart",
        r"convert.*to.*line",
        r"display.*pie.*chart",
        r"switch.*to.*heatmap",
    ]),
    ("data_highlighting", [
        r"highlight.*point",
        r"emphasize.*data",
        r"mark.*important",
        r"focus.*attention",
    ]),
]

COMPARISON_PATTERNS: List[Tuple[str, List[str]]] = [
    ("direct_comparison", [
        r"compare.*with",
        r"versus",
        r"vs\.",
        r"difference.*between",
        r"side.*by.*side",
    ]),
    ("baseline_comparison", [
        r"against.*baseline",
        r"compared.*to.*standard",
        r"relative.*to",
        r"benchmark.*against",
    ]),
    ("multi_comparison", [
        r"compare.*all",
        r"rank.*strategies",
        r"best.*among",
        r"evaluate.*options",
    ]),
]

# Connectives that mark an utterance as the first half of a multi-part request
MULTI_PART_INDICATORS: List[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"and then",
        r"after that",
        r"also show",
        r"first.*then",
        r"followed by",
        r"\bnext\b",
    ]
]


def _compile(table: List[Tuple[str, List[str]]], prefix: str = "") -> List[IntentRule]:
    return [
        IntentRule(pattern=re.compile(p, re.IGNORECASE), intent_label=f"{prefix}{label}")
        for label, patterns in table
        for p in patterns
    ]


def build_rule_table() -> List[IntentRule]:
    """Flatten the three namespaces into one ordered rule list."""
    return (
        _compile(CORE_PATTERNS)
        + _compile(VISUALIZATION_PATTERNS, VISUALIZATION_PREFIX)
        + _compile(COMPARISON_PATTERNS, COMPARISON_PREFIX)
    )


def is_visualization_intent(intent: str) -> bool:
    return intent.startswith(VISUALIZATION_PREFIX)


def is_comparison_intent(intent: str) -> bool:
    return intent.startswith(COMPARISON_PREFIX)


def analysis_type_for(intent: str):
    """Map an intent label to its analysis type, or None for non-analytical intents."""
    return ANALYTICAL_INTENTS.get(intent)
