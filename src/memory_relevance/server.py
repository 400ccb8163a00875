"""MCP server entry point using FastMCP with stdio transport."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP

from memory_relevance.analysis.analyzer import analyze_conversation as _analyze
from memory_relevance.config import get_settings, load_hooks_config
from memory_relevance.models import GitContext, Memory, ProjectProfile, SessionContext
from memory_relevance.scoring.scorer import score_memory_relevance
from memory_relevance.updater import DynamicContextUpdater

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stderr,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

# One updater per server process; it is re-initialized when the project changes.
_updater: DynamicContextUpdater | None = None

mcp = FastMCP("memory-relevance")


def _get_updater(project: ProjectProfile) -> DynamicContextUpdater:
    global _updater
    if _updater is None:
        config = load_hooks_config()
        _updater = DynamicContextUpdater(options=config.updater_options())
        _updater.initialize(SessionContext(project=project))
    elif project.name and project.name != _updater.project.name:
        _updater.initialize(SessionContext(project=project))
    return _updater


@mcp.tool()
async def analyze_conversation(conversation_text: str) -> dict:
    """Extract topics, entities, intent and code context from conversation text.

    Args:
        conversation_text: The conversation text to analyze.
    """
    return _analyze(conversation_text).model_dump(mode="json")


@mcp.tool()
async def score_memories(
    memories: list[dict],
    project: dict,
    conversation_text: Optional[str] = None,
) -> dict:
    """Score memory records for relevance to a project and, optionally, a conversation.

    Args:
        memories: Memory records with content_hash, content, tags and optional
                  memory_type, created_at and metadata.quality_score.
        project: Project profile with name, language, frameworks and tools.
        conversation_text: Current conversation; enables conversation-aware scoring.
    """
    records = [Memory.model_validate(m) for m in memories]
    analysis = _analyze(conversation_text) if conversation_text else None
    scored = score_memory_relevance(
        records,
        ProjectProfile.model_validate(project),
        time_decay_rate=get_settings().time_decay_rate,
        include_conversation_context=analysis is not None,
        conversation_analysis=analysis,
    )
    return {
        "memories": [m.model_dump(mode="json") for m in scored],
        "total": len(scored),
    }


@mcp.tool()
async def load_session_context(
    project: Optional[dict] = None,
    git_context: Optional[dict] = None,
) -> dict:
    """Load the most relevant project memories at the start of a session.

    Call this once when a session opens. Memories loaded here are not
    repeated by later update_context calls.

    Args:
        project: Optional project profile with name, language, frameworks and tools.
        git_context: Optional repository activity with recentCommits (date, message)
                     and developmentKeywords.
    """
    updater = _get_updater(ProjectProfile.model_validate(project or {}))
    git = GitContext.model_validate(git_context) if git_context else None
    injected: list[str] = []
    result = await updater.load_session_context(
        load_hooks_config().memory_service, git, injected.append
    )
    return {
        "result": result.model_dump(),
        "context": injected[0] if injected else None,
    }


@mcp.tool()
async def update_context(conversation_text: str, project: Optional[dict] = None) -> dict:
    """Check whether the conversation moved enough to load more memories, and load them.

    Call this after each user turn. Returns the update result and, when an
    update happened, the context text to show the assistant.

    Args:
        conversation_text: The current conversation text.
        project: Optional project profile with name, language, frameworks and tools.
    """
    updater = _get_updater(ProjectProfile.model_validate(project or {}))
    injected: list[str] = []
    result = await updater.process_conversation_update(
        conversation_text, load_hooks_config().memory_service, injected.append
    )
    return {
        "result": result.model_dump(),
        "context": injected[0] if injected else None,
    }


def main():
    """Run the MCP server with stdio transport."""
    logger.info("Starting memory relevance MCP server...")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
