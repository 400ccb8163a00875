"""Data models for the memory relevance engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

EntityType = Literal["language", "framework", "database", "tool", "cloud", "project"]
QueryType = Literal["topic", "intent", "entity", "git", "recent", "project"]


class ProjectProfile(BaseModel):
    """Project context produced by the external project detector."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: Optional[str] = None
    language: Optional[str] = None
    frameworks: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    git: Optional[dict[str, Any]] = None
    confidence: float = 0.0


# -- Conversation analysis --


class Topic(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    weight: float = Field(ge=0.0, le=1.0)


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: EntityType
    confidence: float = Field(ge=0.0, le=1.0)


class Intent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    confidence: float = Field(ge=0.0, le=1.0)


class CodeContext(BaseModel):
    """Code-related signals found in the conversation."""

    model_config = ConfigDict(frozen=True)

    has_code_blocks: bool = False
    has_inline_code: bool = False
    has_file_paths: bool = False
    has_error_messages: bool = False
    has_commands: bool = False
    has_urls: bool = False
    languages: list[str] = Field(default_factory=list)
    is_code_related: bool = False


class AnalysisMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    length: int = 0
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Analysis(BaseModel):
    """Result of analyzing one conversation snapshot."""

    model_config = ConfigDict(frozen=True)

    topics: list[Topic] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    intent: Optional[Intent] = None
    code_context: Optional[CodeContext] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


class TopicChange(BaseModel):
    """Difference between two consecutive analyses."""

    model_config = ConfigDict(frozen=True)

    has_topic_shift: bool = False
    new_topics: list[Topic] = Field(default_factory=list)
    changed_intents: bool = False
    significance_score: float = Field(default=0.0, ge=0.0, le=1.0)


# -- Memories --


class MemoryQuery(BaseModel):
    """A retrieval query synthesized from the conversation."""

    model_config = ConfigDict(frozen=True)

    query: str
    type: QueryType
    weight: float = Field(ge=0.0, le=1.0)
    limit: int = Field(default=1, ge=1)


class ScoreBreakdown(BaseModel):
    time_decay: float
    tag_relevance: float
    content_relevance: float
    content_quality: float
    backend_quality: float
    type_bonus: float
    recency_bonus: float
    conversation_relevance: Optional[float] = None
    project_affinity: str = "high"


class Memory(BaseModel):
    """A record from the remote memory store.

    Only the documented fields are interpreted; anything else the store sends
    is kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    content_hash: str
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    memory_type: Optional[str] = None
    created_at: Optional[Union[float, str]] = None
    created_at_iso: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    relevance_score: Optional[float] = None
    score_breakdown: Optional[ScoreBreakdown] = None
    has_conversation_context: bool = False
    query_context: Optional[MemoryQuery] = None

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(t) for t in value if t is not None]

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        return value

    @field_validator("created_at_iso", "memory_type", mode="before")
    @classmethod
    def _coerce_optional_str(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @property
    def timestamp(self) -> Optional[Union[float, str]]:
        """Creation time as sent by the store (``created_at`` first)."""
        return self.created_at or self.created_at_iso


# -- Sessions --


class SessionContext(BaseModel):
    """What the host knows about the session when the updater starts."""

    session_id: Optional[str] = None
    project: ProjectProfile = Field(default_factory=ProjectProfile)
    working_directory: Optional[str] = None


class SessionSummary(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    outcome: Optional[dict[str, Any]] = None


class CrossSessionContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recent_sessions: list[SessionSummary] = Field(
        default_factory=list, alias="recentSessions"
    )


class UpdateResult(BaseModel):
    """Outcome of a conversation update or a session-start load."""

    processed: bool
    reason: Optional[str] = None
    update_count: Optional[int] = None
    memories_injected: int = 0
    significance_score: Optional[float] = None
    topics: list[str] = Field(default_factory=list)
    has_conversation_context: bool = False
    has_cross_session_context: bool = False
    error: Optional[str] = None


# -- Age analysis --


class AgeDistribution(BaseModel):
    avg_age: float = 0.0
    median_age: float = 0.0
    p75_age: float = 0.0
    p90_age: float = 0.0
    recent_count: int = 0
    stale_count: int = 0
    total_count: int = 0
    is_stale: bool = False
    recommended_adjustments: dict[str, float] = Field(default_factory=dict)
    reason: Optional[str] = None


class GitCommit(BaseModel):
    model_config = ConfigDict(extra="allow")

    date: datetime
    message: str = ""


class GitContext(BaseModel):
    """Repository activity reported by the host at session start."""

    model_config = ConfigDict(populate_by_name=True)

    recent_commits: list[GitCommit] = Field(default_factory=list, alias="recentCommits")
    keywords: list[str] = Field(default_factory=list, alias="developmentKeywords")

    @field_validator("keywords", mode="before")
    @classmethod
    def _coerce_keywords(cls, value: Any) -> list[str]:
        # Hosts send either a bare list or {"keywords": [...], ...}.
        if isinstance(value, dict):
            value = value.get("keywords")
        if not isinstance(value, (list, tuple)):
            return []
        return [str(k) for k in value if isinstance(k, str) and k]


class GitWeightAdjustment(BaseModel):
    weight: float
    reason: str
    adjusted: bool = False
