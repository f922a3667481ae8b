"""
Follow-up prompts derived from intent, analysis history and active analyses.
"""
from typing import Dict, List, Sequence

from memory.models import ActiveAnalysis, AnalysisHistoryItem, Session
from nlu.patterns import ANALYTICAL_INTENTS

FOLLOW_UP_TEMPLATES: Dict[str, List[str]] = {
    "impact_analysis": [
        "Would you like to see the cascade effects?",
        "Should I break down the costs by category?",
        "Do you want to compare multiple scenarios?",
    ],
    "roi_optimization": [
        "Would you like to adjust the risk parameters?",
        "Should I show the payback timeline?",
        "Do you want to see alternative strategies?",
    ],
    "sustainability_analysis": [
        "Would you like to see green alternatives?",
        "Should I show the emissions breakdown?",
        "Do you want to set environmental targets?",
    ],
    "analytics_request": [
        "Would you like to see real-time metrics?",
        "Should I show trend analysis?",
        "Do you want to explore the network diagram?",
    ],
    "explainability_request": [
        "Would you like to see the decision tree?",
        "Should I walk through the confidence factors?",
        "Do you want to compare this with an alternative recommendation?",
    ],
}

# keyed by analysis type, for session-level suggestions
ANALYSIS_TYPE_TEMPLATES: Dict[str, List[str]] = {
    analysis_type: FOLLOW_UP_TEMPLATES[intent]
    for intent, analysis_type in ANALYTICAL_INTENTS.items()
}

MULTI_TURN_PROMPTS = [
    "Continue with the next part of your analysis",
]
COMPARISON_PROMPTS = [
    "Would you like to add another item to compare?",
    "Should I highlight the key differences?",
    "Do you want to change the comparison criteria?",
]
CHART_PROMPTS = [
    "Would you like me to explain the current visualization?",
    "Should I zoom in on a specific data point?",
    "Do you want to filter the data differently?",
]


def _history_prompts(
    history: Sequence[AnalysisHistoryItem], active: Sequence[ActiveAnalysis]
) -> List[str]:
    prompts: List[str] = []

    pending = [a for a in active if a.status == "pending"]
    if pending:
        noun = "analysis" if len(pending) == 1 else "analyses"
        prompts.append(f"You have {len(pending)} {noun} pending. Would you like to check the status?")

    if len(history) > 1:
        previous, latest = history[-2], history[-1]
        if previous.type != latest.type:
            prompts.append(f"Would you like to compare {previous.type} with {latest.type}?")

    return prompts


def suggest_follow_ups(
    intent: str,
    history: Sequence[AnalysisHistoryItem],
    active_analyses: Sequence[ActiveAnalysis],
    limit: int = 5,
) -> List[str]:
    """
    Ordered follow-up prompts for an intent.

    Never empty for the five analytical intents, always empty otherwise.
    The output depends only on the arguments.
    """
    templates = FOLLOW_UP_TEMPLATES.get(intent)
    if not templates:
        return []
    return (list(templates) + _history_prompts(history, active_analyses))[:limit]


def contextual_suggestions(session: Session, limit: int = 5) -> List[str]:
    """Session-level prompts used when the current intent has no templates."""
    query = session.multi_turn_query
    if query is not None and not query.is_complete:
        return list(MULTI_TURN_PROMPTS)

    ctx = session.analytical_context
    suggestions: List[str] = []
    if ctx.comparison_mode and ctx.comparison_context is not None:
        suggestions.extend(COMPARISON_PROMPTS)

    suggestions.extend(_history_prompts(ctx.analysis_history, ctx.active_analyses))

    if session.visualization_state.active_charts:
        suggestions.extend(CHART_PROMPTS)

    analysis_type = session.current_context.analysis_type
    if analysis_type:
        suggestions.extend(ANALYSIS_TYPE_TEMPLATES.get(analysis_type, []))

    return suggestions[:limit]
