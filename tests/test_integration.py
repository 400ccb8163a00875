"""Integration tests: MCP server tools over the analyze -> score -> update flow."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from conftest import make_record
from memory_relevance import server
from memory_relevance.config import UpdaterOptions
from memory_relevance.models import SessionContext
from memory_relevance.updater import DynamicContextUpdater

SQLITE_DEBUG_TEXT = (
    "Let me debug this SQLite performance issue in the mcp-memory-service database."
)
PROJECT = {"name": "mcp-memory-service", "language": "Python"}


@pytest.mark.asyncio
async def test_analyze_conversation_tool():
    result = await server.analyze_conversation(SQLITE_DEBUG_TEXT)

    assert [t["name"] for t in result["topics"]] == ["database", "debugging"]
    assert result["intent"]["name"] == "problem-solving"
    assert "analyzed_at" in result["metadata"]


@pytest.mark.asyncio
async def test_score_memories_tool():
    memories = [
        make_record("azure", "Azure function cold start tuning", ["azure", "serverless"]),
        make_record(
            "wal",
            "Decided to use SQLite-vec for storage",
            ["mcp-memory-service", "decision", "sqlite-vec"],
            "decision",
            days_old=2,
        ),
    ]

    result = await server.score_memories(memories, PROJECT, SQLITE_DEBUG_TEXT)

    assert result["total"] == 2
    first, second = result["memories"]
    assert first["content_hash"] == "wal"
    assert first["relevance_score"] > 0.7
    assert first["score_breakdown"]["recency_bonus"] == 0.15
    assert first["score_breakdown"]["type_bonus"] == 0.3
    assert first["has_conversation_context"]
    assert second["relevance_score"] == 0.0
    assert second["score_breakdown"]["project_affinity"] == "none (filtered)"


@pytest.mark.asyncio
async def test_update_context_tool(memory_service, clock):
    memory_service.records = [
        make_record(
            "hash-a",
            "Decided to enable WAL mode for the SQLite database because writers were blocking",
            ["mcp-memory-service", "sqlite"],
            "decision",
        )
    ]
    updater = DynamicContextUpdater(
        options=UpdaterOptions(debounce_ms=0),
        client_factory=memory_service.client_factory,
        clock=clock,
    )
    updater.initialize(SessionContext(project=server.ProjectProfile.model_validate(PROJECT)))

    with patch.object(server, "_updater", updater):
        first = await server.update_context(SQLITE_DEBUG_TEXT, PROJECT)
        clock.advance(60)
        second = await server.update_context(SQLITE_DEBUG_TEXT, PROJECT)

    assert first["result"]["processed"] is True
    assert first["result"]["memories_injected"] == 1
    assert "WAL mode" in first["context"]
    assert second["result"]["reason"] == "insufficient_change"
    assert second["context"] is None


def test_project_change_reinitializes_updater(memory_service, clock):
    updater = DynamicContextUpdater(options=UpdaterOptions(debounce_ms=0), clock=clock)
    updater.initialize(SessionContext(project=server.ProjectProfile(name="first")))
    updater.loaded_hashes.add("seen")

    with patch.object(server, "_updater", updater):
        same = server._get_updater(server.ProjectProfile(name="first"))
        assert same.loaded_hashes == {"seen"}

        switched = server._get_updater(server.ProjectProfile(name="second"))
        assert switched is updater
        assert switched.project.name == "second"
        assert switched.loaded_hashes == set()


@pytest.mark.asyncio
async def test_load_session_context_tool(memory_service, clock):
    memory_service.records = [
        make_record(
            "hash-a",
            "Decided to enable WAL mode for the SQLite database because writers were blocking",
            ["mcp-memory-service", "sqlite"],
            "decision",
        ),
        make_record("azure", "Azure function cold start tuning", ["azure", "serverless"]),
    ]
    updater = DynamicContextUpdater(
        options=UpdaterOptions(debounce_ms=0),
        client_factory=memory_service.client_factory,
        clock=clock,
    )
    updater.initialize(SessionContext(project=server.ProjectProfile.model_validate(PROJECT)))

    with patch.object(server, "_updater", updater):
        loaded = await server.load_session_context(
            PROJECT,
            {"recentCommits": [], "developmentKeywords": {"keywords": ["sqlite"]}},
        )
        update = await server.update_context(SQLITE_DEBUG_TEXT, PROJECT)

    assert loaded["result"]["processed"] is True
    assert loaded["result"]["memories_injected"] == 1
    assert "🧠 **Memory Context Loaded**" in loaded["context"]
    assert "WAL mode" in loaded["context"]
    assert memory_service.queries[0] == "mcp-memory-service recent development sqlite"
    # The session load already covered the only related memory
    assert update["result"]["reason"] == "no_high_relevance_memories"
