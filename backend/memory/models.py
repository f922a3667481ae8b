from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AnalysisType = Literal["impact", "optimization", "sustainability", "analytics", "explainability"]
Priority = Literal["low", "medium", "high"]
ConnectionType = Literal["dependency", "comparison", "validation", "enhancement"]
ConversationState = Literal["greeting", "active", "clarifying", "multi_turn", "comparing"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalyticalResultRef(BaseModel):
    analysis_id: str
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    cross_references: List[str] = []


class VisualizationCommand(BaseModel):
    type: Literal["navigate", "zoom", "filter", "highlight", "transform", "compare"]
    target: str
    parameters: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True


class ConversationTurn(BaseModel):
    """One processed utterance. Never edited after it is appended."""
    model_config = ConfigDict(frozen=True)

    turn_id: str
    timestamp: datetime
    raw_input: str
    resolved_intent: str
    entities: Dict[str, Any] = {}
    response: str
    confidence: float = Field(ge=0.0, le=1.0)
    success: bool
    needs_clarification: bool = False
    multi_part: bool = False
    analytical_result: Optional[AnalyticalResultRef] = None
    visualization_commands: Optional[List[VisualizationCommand]] = None


class QueryPart(BaseModel):
    part_number: int
    text: str
    intent: str
    entities: Dict[str, Any] = {}
    confidence: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)
    is_context: bool = False


class MultiTurnQuery(BaseModel):
    query_id: str
    start_time: datetime
    originating_utterance: str
    expected_parts: int
    current_part: int = 1
    parts: List[QueryPart] = []
    is_complete: bool = False
    aggregated_intent: Optional[str] = None
    combined_entities: Dict[str, Any] = {}
    consumed: bool = False


class ActiveAnalysis(BaseModel):
    id: str
    type: AnalysisType
    status: Literal["pending", "processing"] = "pending"
    parameters: Dict[str, Any] = {}
    priority: Priority = "medium"
    query: str = ""
    start_time: datetime = Field(default_factory=utcnow)


class AnalysisHistoryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: AnalysisType
    timestamp: datetime
    started_at: datetime
    parameters: Dict[str, Any] = {}
    summary: str = ""
    results: Dict[str, Any] = {}
    voice_query: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    cross_references: List[str] = []


class CrossAnalysisConnection(BaseModel):
    from_analysis: str
    to_analysis: str
    connection_type: ConnectionType
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    description: str = ""


class ComparisonItem(BaseModel):
    id: str
    type: str = "strategy"
    label: str
    data: Dict[str, Any] = {}


class ComparisonContext(BaseModel):
    items: List[ComparisonItem] = []
    criteria: List[str] = []
    mode: Literal["side_by_side", "overlay", "sequential"] = "side_by_side"
    baseline_item: Optional[str] = None


class AnalyticalContext(BaseModel):
    active_analyses: List[ActiveAnalysis] = []
    analysis_history: List[AnalysisHistoryItem] = []
    cross_analysis_connections: List[CrossAnalysisConnection] = []
    comparison_mode: bool = False
    comparison_context: Optional[ComparisonContext] = None


class ActiveChart(BaseModel):
    id: str
    type: str
    data_source: str
    is_voice_controlled: bool = True
    last_interaction: datetime = Field(default_factory=utcnow)
    state: Dict[str, Any] = {}


class NavigationEvent(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    from_view: str
    to_view: str
    trigger: Literal["voice", "click", "auto"] = "voice"


class VisualizationState(BaseModel):
    current_view: str = "dashboard"
    active_charts: List[ActiveChart] = []
    pending_commands: List[VisualizationCommand] = []
    zoom_level: float = 1.0
    filter_state: Dict[str, Any] = {}
    navigation_history: List[NavigationEvent] = []
    navigation_events: int = 0
    voice_control_enabled: bool = True


class SessionContext(BaseModel):
    current_page: str = "/"
    analysis_type: Optional[AnalysisType] = None
    active_strategy: Optional[str] = None
    last_query: Optional[str] = None
    last_results: Optional[Dict[str, Any]] = None
    conversation_state: ConversationState = "greeting"
    topic_history: List[str] = []
    explanation_depth: Literal["summary", "detailed", "comprehensive"] = "detailed"


class ContextUpdate(BaseModel):
    """Partial update for SessionContext; only fields that are set are merged."""
    current_page: Optional[str] = None
    analysis_type: Optional[AnalysisType] = None
    active_strategy: Optional[str] = None
    last_query: Optional[str] = None
    last_results: Optional[Dict[str, Any]] = None
    conversation_state: Optional[ConversationState] = None
    explanation_depth: Optional[Literal["summary", "detailed", "comprehensive"]] = None


class ContextTransition(BaseModel):
    from_context: Dict[str, Any]
    to_context: Dict[str, Any]
    trigger: str
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True


class Preferences(BaseModel):
    preferred_voice: str = "Sarah"
    speech_rate: float = Field(default=1.0, ge=0.5, le=2.0)
    volume: float = Field(default=0.8, ge=0.0, le=1.0)
    auto_speak: bool = True
    language: str = "en-US"
    risk_tolerance: Literal["conservative", "moderate", "aggressive"] = "moderate"
    time_horizon: Literal["short", "medium", "long"] = "medium"
    sustainability_priority: Priority = "medium"
    preferred_analysis_depth: Literal["summary", "detailed", "comprehensive"] = "detailed"
    voice_navigation_enabled: bool = True


class PreferencesUpdate(BaseModel):
    preferred_voice: Optional[str] = None
    speech_rate: Optional[float] = Field(default=None, ge=0.5, le=2.0)
    volume: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    auto_speak: Optional[bool] = None
    language: Optional[str] = None
    risk_tolerance: Optional[Literal["conservative", "moderate", "aggressive"]] = None
    time_horizon: Optional[Literal["short", "medium", "long"]] = None
    sustainability_priority: Optional[Priority] = None
    preferred_analysis_depth: Optional[Literal["summary", "detailed", "comprehensive"]] = None
    voice_navigation_enabled: Optional[bool] = None


class SessionMetadata(BaseModel):
    interaction_count: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    average_confidence: float = 0.0
    voice_navigation_usage: int = 0
    multi_turn_queries: int = 0
    visualization_interactions: int = 0
    cross_analysis_requests: int = 0
    clarification_requests: int = 0
    failed_analyses: int = 0


class Session(BaseModel):
    session_id: str
    user_id: Optional[str] = None
    start_time: datetime
    last_activity: datetime
    conversation_turns: List[ConversationTurn] = []
    current_context: SessionContext = Field(default_factory=SessionContext)
    analytical_context: AnalyticalContext = Field(default_factory=AnalyticalContext)
    visualization_state: VisualizationState = Field(default_factory=VisualizationState)
    multi_turn_query: Optional[MultiTurnQuery] = None
    preferences: Preferences = Field(default_factory=Preferences)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    transitions: List[ContextTransition] = []
