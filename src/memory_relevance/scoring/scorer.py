"""Multi-factor relevance scoring of memories against project and conversation context.

The final score is a weighted sum of per-factor scores plus two unweighted
adjustments (memory type and recency), followed by multiplicative penalties:

    score = sum(weight[f] * factor[f]) + type_bonus + recency_bonus
    score *= 0.5            if content quality < 0.2
    score *= 0.5            if the project is only weakly related (no name match)
    score  = 0              if the memory has no project affinity at all
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel

from memory_relevance.analysis.patterns import CODE_INDICATORS, INTENT_KEYWORDS
from memory_relevance.models import Analysis, Memory, ProjectProfile, ScoreBreakdown
from memory_relevance.scoring.weights import WeightProfile, default_profile

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400.0

GENERIC_SUMMARY_PATTERNS = (
    re.compile(r"## 🎯 Topics Discussed\s*-\s*implementation\s*-\s*\.\.\.?$", re.MULTILINE),
    re.compile(r"Topics Discussed.*implementation.*\.\.\..*$", re.DOTALL),
    re.compile(r"Session Summary.*implementation.*\.\.\..*$", re.DOTALL),
    re.compile(
        r"^# Session Summary.*Date.*Project.*Topics Discussed.*implementation.*\.\.\..*$",
        re.DOTALL,
    ),
)

MEANINGFUL_INDICATORS = (
    "decided", "implemented", "changed", "fixed", "created", "updated",
    "because", "reason", "approach", "solution", "result", "impact",
    "learned", "discovered", "found", "issue", "problem", "challenge",
)

TECHNICAL_KEYWORDS = (
    "architecture", "decision", "implementation", "bug", "fix",
    "feature", "config", "setup", "deployment", "performance",
)

TYPE_BONUSES = {
    "decision": 0.3,
    "architecture": 0.3,
    "reference": 0.2,
    "insight": 0.2,
    "session": 0.15,
    "bug-fix": 0.15,
    "feature": 0.1,
    "note": 0.05,
    "todo": 0.05,
    "temporary": -0.1,
}

# (max age in days, bonus), checked in order
RECENCY_TIERS = ((7, 0.15), (14, 0.10), (30, 0.05))

AFFINITY_HIGH = "high"
AFFINITY_LOW = "low"
AFFINITY_FILTERED = "none (filtered)"


class RelevanceResult(BaseModel):
    final_score: float
    breakdown: ScoreBreakdown
    weights: WeightProfile
    has_conversation_context: bool = False


# -- Timestamps --


def parse_memory_time(value: Union[float, str, None]) -> Optional[datetime]:
    """Parse epoch seconds or an ISO-8601 string into an aware datetime."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip())
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    except (ValueError, OverflowError, OSError):
        return None
    return None


def days_since(value: Union[float, str, None], now: Optional[datetime] = None) -> Optional[float]:
    moment = parse_memory_time(value)
    if moment is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (now - moment).total_seconds() / SECONDS_PER_DAY


# -- Individual factors --


def calculate_time_decay(
    memory_date: Union[float, str, None],
    decay_rate: float = 0.1,
    now: Optional[datetime] = None,
) -> float:
    """Exponential decay on age in days, floored at 0.01; 0.5 when the date is unusable."""
    age = days_since(memory_date, now)
    if age is None:
        return 0.5
    try:
        decay = math.exp(-decay_rate * age)
    except OverflowError:
        # Far-future dates overflow; they are as fresh as it gets.
        decay = 1.0
    return max(0.01, min(1.0, decay))


def _project_terms(project: ProjectProfile) -> list[str]:
    terms = [project.name, project.language, *project.frameworks, *project.tools]
    return [t.lower() for t in terms if t]


def calculate_tag_relevance(memory_tags: Sequence[str], project: ProjectProfile) -> float:
    if not memory_tags:
        return 0.3

    context_tags = _project_terms(project)
    if not context_tags:
        return 0.5

    tags = [t.lower() for t in memory_tags]
    # Exact matches only, so one project's tags don't leak into another.
    overlap = sum(1 for ctx in context_tags if ctx in tags) / len(context_tags)

    score = overlap
    if project.name and project.name.lower() in tags:
        score += 0.3
    if project.language and project.language.lower() in tags:
        score += 0.2
    for framework in project.frameworks:
        if any(framework.lower() in tag for tag in tags):
            score += 0.1

    return max(0.1, min(1.0, score))


def calculate_content_relevance(content: str, project: ProjectProfile) -> float:
    if not content:
        return 0.3

    text = content.lower()
    keywords = _project_terms(project) + list(TECHNICAL_KEYWORDS)

    hits = 0
    keyword_score = 0.0
    for keyword in keywords:
        occurrences = text.count(keyword)
        if occurrences > 0:
            hits += 1
            keyword_score += math.log(1 + occurrences) * 0.1

    score = min(1.0, hits / len(keywords) + keyword_score)
    return max(0.1, score)


def calculate_content_quality(content: str) -> float:
    """Penalize boilerplate session summaries and short or repetitive content."""
    if not content:
        return 0.1

    text = content.strip()
    if any(p.search(text) for p in GENERIC_SUMMARY_PATTERNS):
        return 0.05
    if len(text) < 50:
        return 0.2

    lowered = text.lower()
    meaningful = sum(1 for word in MEANINGFUL_INDICATORS if word in lowered)

    words = [w for w in text.split() if len(w) > 2]
    unique_words = {w.lower() for w in words}
    diversity = len(unique_words) / max(len(words), 1)

    score = (
        min(0.4, meaningful * 0.08)
        + min(0.3, diversity * 0.5)
        + min(0.3, len(text) / 1000)
    )
    return max(0.05, min(1.0, score))


def calculate_backend_quality(memory: Memory) -> float:
    """Quality score attached by the memory service, or a neutral 0.5."""
    score = memory.metadata.get("quality_score")
    if _is_number(score):
        return float(score)
    flattened = (memory.model_extra or {}).get("quality_score")
    if _is_number(flattened):
        return float(flattened)
    return 0.5


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def calculate_type_bonus(memory_type: Optional[str]) -> float:
    if not memory_type:
        return 0.0
    return TYPE_BONUSES.get(memory_type.lower(), 0.0)


def calculate_recency_bonus(
    memory_date: Union[float, str, None], now: Optional[datetime] = None
) -> float:
    age = days_since(memory_date, now)
    if age is None or age < 0:
        return 0.0
    for max_days, bonus in RECENCY_TIERS:
        if age <= max_days:
            return bonus
    return 0.0


def calculate_conversation_relevance(memory: Memory, analysis: Optional[Analysis]) -> float:
    """How well a memory lines up with the current conversation.

    Only factors that matched contribute, and the sum is divided by the number
    of matched factors.
    """
    if analysis is None or not memory.content:
        return 0.3

    content = memory.content.lower()
    total = 0.0
    matched = 0

    for topic in analysis.topics:
        count = content.count(topic.name.lower())
        if count > 0:
            total += topic.confidence * min(count * 0.2, 0.8)
            matched += 1

    for entity in analysis.entities:
        if entity.name.lower() in content:
            total += entity.confidence * 0.3
            matched += 1

    if analysis.intent is not None:
        words = INTENT_KEYWORDS.get(analysis.intent.name, ())
        intent_hits = sum(1 for w in words if w in content)
        if intent_hits > 0:
            total += analysis.intent.confidence * (intent_hits / len(words))
            matched += 1

    if analysis.code_context is not None and analysis.code_context.is_code_related:
        code_hits = sum(1 for w in CODE_INDICATORS if w in content)
        if code_hits > 0:
            total += 0.4 * (code_hits / len(CODE_INDICATORS))
            matched += 1

    normalized = total / matched if matched else 0.3
    return max(0.1, min(1.0, normalized))


def project_affinity(memory: Memory, project: ProjectProfile) -> bool:
    """True when the project name appears in a tag or in the content."""
    if not project.name:
        return False
    name = project.name.lower()
    if any(name in tag.lower() for tag in memory.tags):
        return True
    return name in memory.content.lower()


# -- Aggregation --


def calculate_relevance_score(
    memory: Memory,
    project: ProjectProfile,
    weights: Optional[Union[Mapping[str, float], WeightProfile]] = None,
    time_decay_rate: float = 0.1,
    include_conversation_context: bool = False,
    conversation_analysis: Optional[Analysis] = None,
    now: Optional[datetime] = None,
) -> RelevanceResult:
    w = default_profile(include_conversation_context).merge(weights)
    timestamp = memory.timestamp

    time_score = calculate_time_decay(timestamp, time_decay_rate, now)
    tag_score = calculate_tag_relevance(memory.tags, project)
    content_score = calculate_content_relevance(memory.content, project)
    quality_score = calculate_content_quality(memory.content)
    backend_score = calculate_backend_quality(memory)
    type_bonus = calculate_type_bonus(memory.memory_type)
    recency_bonus = calculate_recency_bonus(timestamp, now)

    final = (
        time_score * w.time_decay
        + tag_score * w.tag_relevance
        + content_score * w.content_relevance
        + quality_score * w.content_quality
        + backend_score * w.backend_quality
        + type_bonus
        + recency_bonus
    )

    conversation_score: Optional[float] = None
    if include_conversation_context and conversation_analysis is not None:
        conversation_score = calculate_conversation_relevance(memory, conversation_analysis)
        final += conversation_score * w.conversation_relevance

    if quality_score < 0.2:
        final *= 0.5

    if project_affinity(memory, project):
        affinity = AFFINITY_HIGH
    elif tag_score >= 0.3:
        affinity = AFFINITY_LOW
        final *= 0.5
    else:
        affinity = AFFINITY_FILTERED
        final = 0.0

    breakdown = ScoreBreakdown(
        time_decay=time_score,
        tag_relevance=tag_score,
        content_relevance=content_score,
        content_quality=quality_score,
        backend_quality=backend_score,
        type_bonus=type_bonus,
        recency_bonus=recency_bonus,
        conversation_relevance=conversation_score,
        project_affinity=affinity,
    )

    return RelevanceResult(
        final_score=max(0.0, min(1.0, final)),
        breakdown=breakdown,
        weights=w,
        has_conversation_context=include_conversation_context,
    )


def score_memory_relevance(
    memories: Iterable[Memory],
    project: ProjectProfile,
    weights: Optional[Union[Mapping[str, float], WeightProfile]] = None,
    time_decay_rate: float = 0.1,
    include_conversation_context: bool = False,
    conversation_analysis: Optional[Analysis] = None,
    now: Optional[datetime] = None,
) -> list[Memory]:
    """Score memories and return scored copies, highest relevance first."""
    memories = list(memories)
    logger.debug("Scoring %d memories for project: %s", len(memories), project.name)

    scored: list[Memory] = []
    for memory in memories:
        result = calculate_relevance_score(
            memory,
            project,
            weights=weights,
            time_decay_rate=time_decay_rate,
            include_conversation_context=include_conversation_context,
            conversation_analysis=conversation_analysis,
            now=now,
        )
        scored.append(
            memory.model_copy(
                update={
                    "relevance_score": result.final_score,
                    "score_breakdown": result.breakdown,
                    "has_conversation_context": result.has_conversation_context,
                }
            )
        )

    scored.sort(key=lambda m: m.relevance_score, reverse=True)

    for rank, memory in enumerate(scored[:3], start=1):
        logger.debug("  %d. Score: %.3f - %s", rank, memory.relevance_score, memory.content[:60])

    return scored


def filter_by_relevance(memories: Iterable[Memory], min_score: float = 0.3) -> list[Memory]:
    memories = list(memories)
    filtered = [m for m in memories if (m.relevance_score or 0.0) >= min_score]
    logger.debug(
        "Filtered %d/%d memories above threshold %s", len(filtered), len(memories), min_score
    )
    return filtered
