"""Configuration with environment variable overrides and the hooks JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Memory relevance engine settings."""

    # Hooks configuration document
    config_path: Path = Path.home() / ".claude" / "hooks" / "config.json"

    # Memory service
    memory_endpoint: str = "https://localhost:8443"
    memory_api_key: str = ""
    max_memories_per_session: int = 8
    request_timeout_s: float = 5.0
    verify_tls: bool = False

    # Dynamic updates
    update_threshold: float = 0.3
    max_memories_per_update: int = 3
    update_cooldown_ms: int = 30_000
    max_updates_per_session: int = 10
    debounce_ms: int = 5_000
    enable_cross_session_context: bool = True

    # Scoring
    time_decay_rate: float = 0.1
    git_context_weight: float = 1.2

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "MEMORY_RELEVANCE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


class UpdaterOptions(BaseModel):
    """Gating and selection knobs for the dynamic context updater."""

    model_config = ConfigDict(frozen=True)

    update_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_memories_per_update: int = Field(default=3, ge=1)
    update_cooldown_ms: int = Field(default=30_000, ge=0)
    max_updates_per_session: int = Field(default=10, ge=0)
    debounce_ms: int = Field(default=5_000, ge=0)
    enable_cross_session_context: bool = True
    time_decay_rate: float = 0.1
    git_context_weight: float = 1.2
    request_timeout_s: float = Field(default=5.0, gt=0.0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> UpdaterOptions:
        settings = settings or get_settings()
        return cls(
            update_threshold=settings.update_threshold,
            max_memories_per_update=settings.max_memories_per_update,
            update_cooldown_ms=settings.update_cooldown_ms,
            max_updates_per_session=settings.max_updates_per_session,
            debounce_ms=settings.debounce_ms,
            enable_cross_session_context=settings.enable_cross_session_context,
            time_decay_rate=settings.time_decay_rate,
            git_context_weight=settings.git_context_weight,
            request_timeout_s=settings.request_timeout_s,
        )


# -- Hooks JSON document --


class MemoryServiceConfig(BaseModel):
    """The ``memoryService`` block: where and how to reach the remote store."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: str
    api_key: str = Field(default="", alias="apiKey")
    max_memories_per_session: int = Field(default=8, ge=1, alias="maxMemoriesPerSession")


class TopicChangeConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    # Milliseconds allowed for each memory service request.
    timeout: int = Field(default=5_000, gt=0)
    min_significance_score: float = Field(
        default=0.3, ge=0.0, le=1.0, alias="minSignificanceScore"
    )
    max_memories_per_update: int = Field(default=3, ge=1, alias="maxMemoriesPerUpdate")


class HooksSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic_change: TopicChangeConfig = Field(
        default_factory=TopicChangeConfig, alias="topicChange"
    )


class HooksConfig(BaseModel):
    """Top-level hooks configuration document."""

    model_config = ConfigDict(populate_by_name=True)

    memory_service: MemoryServiceConfig = Field(alias="memoryService")
    hooks: HooksSection = Field(default_factory=HooksSection)

    @classmethod
    def defaults(cls, settings: Settings | None = None) -> HooksConfig:
        settings = settings or get_settings()
        return cls(
            memory_service=MemoryServiceConfig(
                endpoint=settings.memory_endpoint,
                api_key=settings.memory_api_key,
                max_memories_per_session=settings.max_memories_per_session,
            ),
            hooks=HooksSection(
                topic_change=TopicChangeConfig(
                    timeout=int(settings.request_timeout_s * 1000),
                    min_significance_score=settings.update_threshold,
                    max_memories_per_update=settings.max_memories_per_update,
                )
            ),
        )

    def updater_options(self, settings: Settings | None = None) -> UpdaterOptions:
        """Updater options from settings, with this document's overrides applied."""
        base = UpdaterOptions.from_settings(settings)
        topic_change = self.hooks.topic_change
        return base.model_copy(
            update={
                "update_threshold": topic_change.min_significance_score,
                "max_memories_per_update": topic_change.max_memories_per_update,
                "request_timeout_s": topic_change.timeout / 1000,
            }
        )


_warned_config_fallback = False


def load_hooks_config(path: Optional[Path] = None) -> HooksConfig:
    """Load the hooks JSON document, falling back to defaults when unusable.

    The fallback warning is logged once per process.
    """
    global _warned_config_fallback
    settings = get_settings()
    path = path or settings.config_path

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return HooksConfig.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        if not _warned_config_fallback:
            logger.warning("Using default configuration (%s): %s", path, exc)
            _warned_config_fallback = True
        return HooksConfig.defaults(settings)
