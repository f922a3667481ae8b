from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from memory.models import AnalyticalResultRef, VisualizationCommand

ResponseMode = Literal[
    "analysis",
    "multi_analysis",
    "clarification",
    "multi_turn",
    "visualization",
    "comparison",
    "navigation",
    "elaboration",
    "error",
]


class VoiceRequest(BaseModel):
    message: str = Field(min_length=1)
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class ActionRequired(BaseModel):
    type: Literal["navigate", "display", "calculate", "export", "visualize", "compare"]
    target: str
    parameters: Dict[str, Any] = {}


class MultiTurnInfo(BaseModel):
    is_multi_turn: bool = True
    query_id: str
    expected_parts: int
    current_part: int
    is_complete: bool = False
    aggregated_intent: Optional[str] = None


class SpeechOutput(BaseModel):
    """What an external text-to-speech consumer should say, and with which voice."""
    text: str
    voice_id: Optional[str] = None
    speech_rate: float = 1.0


class VoiceResponse(BaseModel):
    session_id: str
    correlation_id: str
    mode: ResponseMode
    intent: str
    confidence: float
    entities: Dict[str, Any] = {}
    spoken_response: str
    success: bool = True
    needs_clarification: bool = False
    visual_data: Optional[Dict[str, Any]] = None
    action_required: Optional[ActionRequired] = None
    visualization_commands: List[VisualizationCommand] = []
    multi_turn: Optional[MultiTurnInfo] = None
    analytical_results: Optional[AnalyticalResultRef] = None
    follow_up_questions: List[str] = []
    speech: Optional[SpeechOutput] = None
    meta: Optional[Dict[str, Any]] = None


class ConnectionRequest(BaseModel):
    from_analysis: str
    to_analysis: str
    connection_type: Literal["dependency", "comparison", "validation", "enhancement"] = "enhancement"
    description: str = ""
    strength: float = Field(default=0.5, ge=0.0, le=1.0)


class AuditEvent(BaseModel):
    event_id: str
    correlation_id: str
    session_id: str
    timestamp: datetime
    raw_input: str
    intent: str
    entities: Dict[str, Any] = {}
    confidence: float
    mode: str
    success: bool
    needs_clarification: bool = False
    analysis_id: Optional[str] = None
    latency_ms: int = 0


class AuditEventQuery(BaseModel):
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None
    intent: Optional[str] = None
    mode: Optional[str] = None
    success: Optional[bool] = None
    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=1000)
