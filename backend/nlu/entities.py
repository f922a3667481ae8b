import re
from typing import Any, Dict

from nlu.patterns import is_comparison_intent, is_visualization_intent

NUMBER_RE = re.compile(r"\b(\d+(?:\.\d+)?)\b")
PERCENT_RE = re.compile(r"\b(\d+(?:\.\d+)?)\s*(?:%|percent\b)")
TIME_PERIOD_RE = re.compile(r"\b(day|week|month|year|quarter)s?\b")
STRATEGY_RE = re.compile(r"\b(automation|diversification|analytics|optimization)\b")
COMPARISON_RE = re.compile(r"\b(compar(?:e|ed|es|ing|ison)|versus|vs)\b")
HIGH_URGENCY_RE = re.compile(r"\b(urgent|urgently|immediate|immediately|asap)\b")
LOW_URGENCY_RE = re.compile(r"\b(when possible|eventually|no rush|low priority)\b")
DISRUPTION_TARGET_RE = re.compile(
    r"\b(supplier|port|factory|warehouse|carrier|plant|route)s?\b"
)

ZOOM_RE = re.compile(r"zoom.*?(\d+(?:\.\d+)?)")
CHART_TYPE_RE = re.compile(r"\b(bar|line|pie|scatter|heatmap)\b")
FILTER_RE = re.compile(r"(?:filter(?:\s+\w+)*?\s+by|show\s+only|focus\s+on)\s+(\w+)")

COMPARE_ITEMS_RES = [
    re.compile(r"compare\s+(\w+).*?\s(?:with|and|vs\.?|versus|against)\s+(\w+)"),
    re.compile(r"difference\s+between\s+(\w+)\s+and\s+(\w+)"),
    re.compile(r"(\w+)\s+(?:vs\.?|versus)\s+(\w+)"),
]
CRITERIA_RE = re.compile(r"based\s+on\s+(\w+(?:\s+and\s+\w+)*)")


class EntityExtractor:
    """
    Pulls structured values out of a normalized utterance.

    Absent entities are omitted from the result so that required-entity
    checks are plain key-presence tests.
    """

    def extract(self, text: str, intent: str) -> Dict[str, Any]:
        entities: Dict[str, Any] = {}

        number = NUMBER_RE.search(text)
        if number:
            entities["number"] = float(number.group(1))

        percent = PERCENT_RE.search(text)
        if percent:
            entities["percentage"] = float(percent.group(1))

        period = TIME_PERIOD_RE.search(text)
        if period:
            entities["time_period"] = period.group(1)

        strategy = STRATEGY_RE.search(text)
        if strategy:
            entities["strategy"] = strategy.group(1)

        if COMPARISON_RE.search(text):
            entities["comparison"] = True

        if HIGH_URGENCY_RE.search(text):
            entities["urgency"] = "high"
        elif LOW_URGENCY_RE.search(text):
            entities["urgency"] = "low"

        target = DISRUPTION_TARGET_RE.search(text)
        if target:
            entities["disruption_target"] = target.group(1)

        if is_visualization_intent(intent):
            entities.update(self._visualization_entities(text))
        if is_comparison_intent(intent):
            entities.update(self._comparison_entities(text))

        return entities

    def _visualization_entities(self, text: str) -> Dict[str, Any]:
        found: Dict[str, Any] = {}

        zoom = ZOOM_RE.search(text)
        if zoom:
            found["zoom_level"] = float(zoom.group(1))

        chart = CHART_TYPE_RE.search(text)
        if chart:
            found["chart_type"] = chart.group(1)

        target = FILTER_RE.search(text)
        if target:
            found["filter_by"] = target.group(1)

        return found

    def _comparison_entities(self, text: str) -> Dict[str, Any]:
        found: Dict[str, Any] = {}

        for pattern in COMPARE_ITEMS_RES:
            items = pattern.search(text)
            if items:
                found["compare_items"] = [items.group(1), items.group(2)]
                break

        criteria = CRITERIA_RE.search(text)
        if criteria:
            found["criteria"] = re.split(r"\s+and\s+", criteria.group(1))

        return found
