"""Build retrieval queries from a conversation change or from a fresh session."""

from __future__ import annotations

from typing import Optional

from memory_relevance.models import (
    Analysis,
    GitContext,
    MemoryQuery,
    ProjectProfile,
    TopicChange,
)

MAX_QUERIES = 4
MAX_ENTITY_QUERIES = 2


def generate_memory_queries(
    analysis: Analysis,
    change: TopicChange,
    project: Optional[ProjectProfile] = None,
) -> list[MemoryQuery]:
    """Build at most four queries, highest weight first."""
    queries: list[MemoryQuery] = []

    for topic in change.new_topics:
        if topic.confidence > 0.4:
            queries.append(
                MemoryQuery(query=topic.name, type="topic", weight=topic.confidence, limit=2)
            )

    intent = analysis.intent
    if change.changed_intents and intent is not None and intent.confidence > 0.5:
        project_name = project.name if project and project.name else ""
        queries.append(
            MemoryQuery(
                query=f"{intent.name} {project_name}".strip(),
                type="intent",
                weight=intent.confidence,
                limit=1,
            )
        )

    confident_entities = [e for e in analysis.entities if e.confidence > 0.7]
    for entity in confident_entities[:MAX_ENTITY_QUERIES]:
        queries.append(
            MemoryQuery(
                query=f"{entity.name} {entity.type}",
                type="entity",
                weight=entity.confidence,
                limit=1,
            )
        )

    queries.sort(key=lambda q: q.weight, reverse=True)
    return queries[:MAX_QUERIES]


RECENT_SLOT_RATIO = 0.6
MAX_GIT_MEMORIES = 3


def generate_session_queries(
    project: ProjectProfile,
    git_context: Optional[GitContext] = None,
    max_memories: int = 8,
) -> list[MemoryQuery]:
    """Queries for the session-start load, in retrieval priority order.

    Repository activity first, then recent project work, then general
    project context to fill whatever is left.
    """
    name = project.name or "project"
    keywords = git_context.keywords if git_context is not None else []
    queries: list[MemoryQuery] = []

    git_limit = 0
    if keywords:
        git_limit = min(MAX_GIT_MEMORIES, max_memories)
        queries.append(
            MemoryQuery(
                query=f"{name} recent development {' '.join(keywords[:8])}",
                type="git",
                weight=1.0,
                limit=git_limit,
            )
        )

    recent = f"recent {name} development decisions insights"
    branch = (project.git or {}).get("branch")
    if isinstance(branch, str) and branch:
        recent += f" {branch}"
    if keywords:
        recent += " " + " ".join(keywords[:3])
    remaining = max(max_memories - git_limit, 0)
    queries.append(
        MemoryQuery(
            query=recent,
            type="recent",
            weight=0.8,
            limit=max(int(remaining * RECENT_SLOT_RATIO), 2),
        )
    )

    queries.append(
        MemoryQuery(query=f"{name} project context", type="project", weight=0.6, limit=max_memories)
    )
    return queries
