"""Render selected memories into the text block injected into the conversation."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

from memory_relevance.models import (
    Analysis,
    CrossSessionContext,
    Memory,
    ProjectProfile,
    TopicChange,
)
from memory_relevance.scoring.scorer import parse_memory_time

HEADER = "🧠 **Dynamic Context Update**"
SESSION_HEADER = "🧠 **Memory Context Loaded**"
SEPARATOR = "---"
MAX_MEMORIES = 3
MAX_SESSIONS = 2
MAX_TAGS = 3
CONTENT_PREVIEW_CHARS = 100


def relevance_indicator(score: Optional[float]) -> str:
    score = score or 0.0
    if score > 0.7:
        return "🔥"
    if score > 0.5:
        return "⭐"
    return "💡"


def format_time_ago(timestamp: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    diff_seconds = (now - timestamp).total_seconds()

    minutes = int(diff_seconds // 60)
    hours = int(diff_seconds // 3600)
    days = int(diff_seconds // 86400)

    if minutes < 60:
        return f"{minutes} minutes ago"
    if hours < 24:
        return f"{hours} hours ago"
    if days < 7:
        return f"{days} days ago"
    return timestamp.date().isoformat()


def _preview(content: str) -> str:
    if len(content) > CONTENT_PREVIEW_CHARS:
        return content[:CONTENT_PREVIEW_CHARS] + "..."
    return content


def format_context_update(
    memories: Sequence[Memory],
    analysis: Analysis,
    change: TopicChange,
    cross_session: Optional[CrossSessionContext] = None,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Build the injection text, or None when there is nothing to inject."""
    if not memories:
        return None

    lines = ["", HEADER, ""]

    if change.new_topics:
        lines.append(
            "**New topics detected**: " + ", ".join(t.name for t in change.new_topics)
        )
    if change.changed_intents and analysis.intent is not None:
        lines.append(f"**Focus shifted to**: {analysis.intent.name}")
    lines.append("")

    if cross_session is not None and cross_session.recent_sessions:
        lines.append("**Recent session context**:")
        for session in cross_session.recent_sessions[:MAX_SESSIONS]:
            outcome = (session.outcome or {}).get("type") or "Session"
            when = format_time_ago(session.end_time, now) if session.end_time else "recently"
            lines.append(f"• {outcome} completed {when}")
        lines.append("")

    lines.append("**Relevant context**:")
    for memory in memories[:MAX_MEMORIES]:
        lines.append(f"{relevance_indicator(memory.relevance_score)} {_preview(memory.content)}")
        if memory.tags:
            lines.append(f"   *{', '.join(memory.tags[:MAX_TAGS])}*")
        lines.append("")

    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


def format_session_context(
    memories: Sequence[Memory],
    project: ProjectProfile,
    limit: int = 8,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Build the block loaded at session start, or None when nothing qualified."""
    if not memories:
        return None

    lines = ["", SESSION_HEADER, ""]
    details = [project.name or "unknown project"]
    if project.language:
        details.append(project.language)
    if project.frameworks:
        details.append(", ".join(project.frameworks[:MAX_TAGS]))
    lines.append("**Project**: " + " · ".join(details))
    lines.append("")

    lines.append("**Relevant memories**:")
    for memory in memories[:limit]:
        line = f"{relevance_indicator(memory.relevance_score)} {_preview(memory.content)}"
        moment = parse_memory_time(memory.created_at_iso or memory.created_at)
        if moment is not None:
            line += f" ({format_time_ago(moment, now)})"
        lines.append(line)
        if memory.tags:
            lines.append(f"   *{', '.join(memory.tags[:MAX_TAGS])}*")
        lines.append("")

    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"
