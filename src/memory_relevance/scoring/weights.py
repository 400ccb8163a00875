"""Named weight profiles for the relevance scorer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class WeightProfile(BaseModel):
    """Per-factor weights for the additive relevance model.

    ``type_bonus`` is carried for callers that inspect the profile; the type
    bonus itself is added unweighted, as is the recency bonus.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    time_decay: float = 0.0
    tag_relevance: float = 0.0
    content_relevance: float = 0.0
    content_quality: float = 0.0
    backend_quality: float = 0.0
    conversation_relevance: float = 0.0
    type_bonus: float = 0.0

    def merge(self, overrides: Optional[Mapping[str, Any] | WeightProfile] = None) -> WeightProfile:
        """Return a copy with the given per-factor weights replaced.

        Accepts snake_case or camelCase factor names; unknown names are ignored.
        """
        if not overrides:
            return self
        if isinstance(overrides, WeightProfile):
            overrides = overrides.model_dump(exclude_unset=True)

        update: dict[str, float] = {}
        for key, value in overrides.items():
            field = _FIELD_ALIASES.get(key, key)
            if field in WeightProfile.model_fields and value is not None:
                update[field] = float(value)
        return self.model_copy(update=update)


_FIELD_ALIASES = {
    "timeDecay": "time_decay",
    "tagRelevance": "tag_relevance",
    "contentRelevance": "content_relevance",
    "contentQuality": "content_quality",
    "backendQuality": "backend_quality",
    "conversationRelevance": "conversation_relevance",
    "typeBonus": "type_bonus",
}


WITH_CONVERSATION_CONTEXT = WeightProfile(
    time_decay=0.15,
    tag_relevance=0.25,
    content_relevance=0.10,
    content_quality=0.15,
    backend_quality=0.15,
    conversation_relevance=0.20,
    type_bonus=0.05,
)

WITHOUT_CONVERSATION_CONTEXT = WeightProfile(
    time_decay=0.20,
    tag_relevance=0.30,
    content_relevance=0.10,
    content_quality=0.20,
    backend_quality=0.20,
    type_bonus=0.05,
)

# Overrides the dynamic updater applies on top of WITH_CONVERSATION_CONTEXT.
CONVERSATION_BIASED_OVERRIDES: dict[str, float] = {
    "time_decay": 0.2,
    "tag_relevance": 0.3,
    "content_relevance": 0.15,
    "conversation_relevance": 0.35,
}


def default_profile(include_conversation_context: bool) -> WeightProfile:
    if include_conversation_context:
        return WITH_CONVERSATION_CONTEXT
    return WITHOUT_CONVERSATION_CONTEXT
