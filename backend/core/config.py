from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# config.py -> core -> backend -> repo root
_ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_PATH) if _ENV_PATH.exists() else ".env",
        extra="ignore",
    )

    # Intent resolution
    CONFIDENCE_THRESHOLD: float = Field(default=0.7, ge=0.0, le=1.0)
    MAX_SUGGESTIONS: int = 5

    # Multi-turn queries
    MULTI_TURN_EXPECTED_PARTS: int = Field(default=2, ge=2)
    MULTI_TURN_TIMEOUT_SECONDS: int = 300

    # Sessions
    SESSION_IDLE_TIMEOUT_SECONDS: int = 1800
    CLEANUP_INTERVAL_SECONDS: int = 300
    MAX_TOPIC_HISTORY: int = 10
    MAX_ACTIVE_CHARTS: int = 10
    MAX_NAVIGATION_HISTORY: int = 20
    MAX_CONTEXT_TRANSITIONS: int = 100
    DEFAULT_VOICE: str = "Sarah"

    # Analytical capabilities
    CAPABILITY_TIMEOUT_SECONDS: float = 10.0

    # Audit (Redis mirror is optional)
    REDIS_URL: str = "redis://localhost:6379/0"
    AUDIT_REDIS_ENABLED: bool = False
    AUDIT_STREAM_KEY: str = "voiceops:audit:events"
    AUDIT_MAX_EVENTS: int = 10000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None


settings = Settings()
