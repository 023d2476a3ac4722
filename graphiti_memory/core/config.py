"""Configuration management with pydantic-settings."""

from functools import lru_cache

from pydantic import BaseModel as PydanticBaseModel
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError

DEFAULT_DECISION_KEYWORDS: tuple[str, ...] = (
    "decided",
    "must",
    "should",
    "prefer",
    "constraint",
    "require",
    "chose",
    "always",
    "never",
    "schema",
    "architecture",
    "agreed",
    "design",
    "selected",
)


class RetrievalSettings(PydanticBaseModel):
    """Result caps and scope split for turn-time retrieval."""

    project_max_facts: int = Field(default=50, gt=0)
    project_max_entities: int = Field(default=30, gt=0)
    user_max_facts: int = Field(default=20, gt=0)
    user_max_entities: int = Field(default=10, gt=0)
    drift_max_facts: int = Field(default=20, gt=0)  # Lightweight drift-check search
    snapshot_lookback: int = Field(default=10, gt=0)  # Episodes scanned for a snapshot primer
    project_share: float = Field(default=0.7, ge=0.0, le=1.0)


class CompactionSettings(PydanticBaseModel):
    """
    Compaction digest heuristics and preemptive compaction knobs.
    Env vars (with env_nested_delimiter='__'): GRAPHITI_COMPACTION__THRESHOLD,
    GRAPHITI_COMPACTION__COOLDOWN_SECONDS, GRAPHITI_COMPACTION__AUTO_RESUME, ...
    """

    decision_share: float = Field(default=0.4, ge=0.0, le=1.0)
    active_share: float = Field(default=0.35, ge=0.0, le=1.0)
    project_share: float = Field(default=0.7, ge=0.0, le=1.0)
    active_window_days: int = Field(default=7, ge=0)
    decision_keywords: tuple[str, ...] = Field(default=DEFAULT_DECISION_KEYWORDS)
    query_context_count: int = Field(default=3, gt=0)
    query_max_chars: int = Field(default=500, gt=0)

    # Preemptive compaction
    enabled: bool = Field(default=True)
    threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    min_tokens: int = Field(default=50_000, ge=0)
    cooldown_seconds: float = Field(default=60.0, ge=0.0)
    auto_resume: bool = Field(default=True)
    resume_delay_seconds: float = Field(default=0.5, ge=0.0)

    @model_validator(mode="after")
    def validate_tier_shares(self) -> "CompactionSettings":
        if self.decision_share + self.active_share > 1.0:
            raise ValueError("decision_share + active_share must not exceed 1.0")
        return self


class Settings(BaseSettings):
    """Plugin settings with nested configuration."""

    endpoint: str = Field(default="http://localhost:8000/mcp")
    group_id_prefix: str = Field(default="opencode")

    drift_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    fact_stale_days: int = Field(default=30, ge=0)

    injection_budget_ratio: float = Field(default=0.05, ge=0.0, le=1.0)
    compaction_budget_ratio: float = Field(default=0.1, ge=0.0, le=1.0)
    chars_per_token: int = Field(default=4, gt=0)
    default_context_limit: int = Field(default=200_000, gt=0)

    idle_flush_min_bytes: int = Field(default=50, ge=0)
    snapshot_max_chars: int = Field(default=1200, ge=0)
    enable_compaction_save: bool = Field(default=True)

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    compaction: CompactionSettings = Field(default_factory=CompactionSettings)

    model_config = {
        "env_prefix": "GRAPHITI_",
        "env_file": ".env",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Return cached settings.

    Cached for the process lifetime; call ``get_settings.cache_clear()`` after
    changing environment variables (the test suite does this after each test).
    """
    return Settings()


def load_settings(**overrides) -> Settings:
    """Build settings with explicit overrides, raising ``ConfigurationError`` on bad values."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid plugin configuration: {e}") from e
