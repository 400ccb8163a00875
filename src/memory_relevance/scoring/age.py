"""Memory age analysis and adaptive git-context weighting.

The analysis functions only recommend; callers decide whether to act on the
result. ``boost_git_memories`` applies a chosen git weight to scored memories.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from memory_relevance.models import AgeDistribution, GitContext, GitWeightAdjustment, Memory
from memory_relevance.scoring.scorer import SECONDS_PER_DAY, parse_memory_time

logger = logging.getLogger(__name__)

# Memories without a usable timestamp count as this old.
UNKNOWN_AGE_DAYS = 365.0
RECENT_DAYS = 14
STALE_DAYS = 30


def _memory_age_days(memory: Memory, now: datetime) -> float:
    moment = parse_memory_time(memory.created_at_iso) if memory.created_at_iso else None
    if moment is None and memory.created_at:
        moment = parse_memory_time(memory.created_at)
    if moment is None:
        return UNKNOWN_AGE_DAYS
    return (now - moment).total_seconds() / SECONDS_PER_DAY


def analyze_memory_age_distribution(
    memories: Iterable[Memory], now: Optional[datetime] = None
) -> AgeDistribution:
    """Summarize how old a batch of memories is and whether it looks stale."""
    now = now or datetime.now(timezone.utc)
    ages = sorted(_memory_age_days(m, now) for m in memories)
    if not ages:
        return AgeDistribution()

    total = len(ages)
    avg_age = sum(ages) / total
    median_age = ages[total // 2]
    p75_age = ages[int(total * 0.75)]
    p90_age = ages[int(total * 0.90)]

    recent_count = sum(1 for age in ages if age <= RECENT_DAYS)
    stale_count = sum(1 for age in ages if age > STALE_DAYS)
    recent_ratio = recent_count / total
    is_stale = median_age > STALE_DAYS or recent_ratio < 0.2

    adjustments: dict[str, float] = {}
    reason: Optional[str] = None
    if is_stale:
        adjustments = {"time_decay": 0.50, "tag_relevance": 0.20, "recency_bonus": 0.25}
        reason = (
            f"Stale memory set detected (median: {round(median_age)}d old, "
            f"{round(recent_ratio * 100)}% recent)"
        )
    elif avg_age <= RECENT_DAYS:
        adjustments = {"time_decay": 0.30, "tag_relevance": 0.30}
        reason = f"Recent memory set (avg: {round(avg_age)}d old)"

    logger.debug(
        "Memory ages: avg=%.0fd median=%.0fd p75=%.0fd recent=%d%% stale=%s (%s)",
        avg_age,
        median_age,
        p75_age,
        round(recent_ratio * 100),
        is_stale,
        reason or "no adjustments needed",
    )

    return AgeDistribution(
        avg_age=avg_age,
        median_age=median_age,
        p75_age=p75_age,
        p90_age=p90_age,
        recent_count=recent_count,
        stale_count=stale_count,
        total_count=total,
        is_stale=is_stale,
        recommended_adjustments=adjustments,
        reason=reason,
    )


def calculate_adaptive_git_weight(
    git_context: Optional[GitContext],
    age_distribution: AgeDistribution,
    configured_weight: float = 1.2,
    now: Optional[datetime] = None,
) -> GitWeightAdjustment:
    """Reduce the git-context boost when commit activity and memory ages disagree."""
    if git_context is None or not git_context.recent_commits:
        return GitWeightAdjustment(weight=configured_weight, reason="No recent git activity")

    now = now or datetime.now(timezone.utc)
    latest = git_context.recent_commits[0].date
    if latest.tzinfo is None:
        latest = latest.replace(tzinfo=timezone.utc)
    commit_age = (now - latest).total_seconds() / SECONDS_PER_DAY

    if commit_age <= 7 and age_distribution.median_age > STALE_DAYS:
        weight = max(1.0, configured_weight * 0.7)
        reason = (
            f"Recent commits ({round(commit_age)}d ago) but stale memories "
            f"(median: {round(age_distribution.median_age)}d) - reducing git boost"
        )
        logger.info("%s: %.1f -> %.1f", reason, configured_weight, weight)
        return GitWeightAdjustment(weight=weight, reason=reason, adjusted=True)

    if commit_age <= RECENT_DAYS and age_distribution.avg_age <= RECENT_DAYS:
        return GitWeightAdjustment(
            weight=configured_weight,
            reason=(
                f"Recent commits and memories aligned ({round(commit_age)}d commits, "
                f"{round(age_distribution.avg_age)}d avg memory age)"
            ),
        )

    if commit_age > RECENT_DAYS and age_distribution.recent_count > 0:
        weight = max(1.0, configured_weight * 0.85)
        reason = (
            f"Older commits ({round(commit_age)}d ago) with some recent memories "
            "- slightly reducing git boost"
        )
        logger.info("%s: %.1f -> %.1f", reason, configured_weight, weight)
        return GitWeightAdjustment(weight=weight, reason=reason, adjusted=True)

    return GitWeightAdjustment(weight=configured_weight, reason="Using configured weight")


def boost_git_memories(memories: Iterable[Memory], weight: float) -> list[Memory]:
    """Scale the scores of git-derived memories by ``weight``, capped at 1.0, and re-sort."""
    boosted: list[Memory] = []
    for memory in memories:
        query = memory.query_context
        if query is not None and query.type == "git" and weight != 1.0:
            score = min(1.0, (memory.relevance_score or 0.0) * weight)
            memory = memory.model_copy(update={"relevance_score": score})
        boosted.append(memory)
    boosted.sort(key=lambda m: m.relevance_score or 0.0, reverse=True)
    return boosted
