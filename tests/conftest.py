"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import httpx
import pytest

import memory_relevance.config as config_module
from memory_relevance.config import MemoryServiceConfig, Settings
from memory_relevance.models import ProjectProfile
from memory_relevance.retrieval.client import MemoryServiceClient

DAY = 86_400


@pytest.fixture(autouse=True)
def test_settings(tmp_path):
    """Override settings so no test reads the user's real configuration."""
    settings = Settings(
        config_path=tmp_path / "config.json",
        memory_endpoint="https://memory.test",
        memory_api_key="test-key-not-real",
    )
    original = config_module._settings
    original_warned = config_module._warned_config_fallback
    config_module._settings = settings
    config_module._warned_config_fallback = False
    yield settings
    config_module._settings = original
    config_module._warned_config_fallback = original_warned


@pytest.fixture
def project():
    return ProjectProfile(name="mcp-memory-service", language="Python")


@pytest.fixture
def store_config():
    return MemoryServiceConfig(endpoint="https://memory.test", api_key="test-key-not-real")


def make_record(
    content_hash: str,
    content: str,
    tags: list[str],
    memory_type: Optional[str] = None,
    days_old: Optional[float] = 1.0,
    **extra: Any,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "content_hash": content_hash,
        "content": content,
        "tags": tags,
        "memory_type": memory_type,
        "created_at": time.time() - days_old * DAY if days_old is not None else None,
    }
    record.update(extra)
    return record


def tool_response(records: list[dict[str, Any]], as_json: bool = False) -> dict[str, Any]:
    """A JSON-RPC ``tools/call`` response carrying ``records`` the way the service does."""
    payload = {"results": records, "total_found": len(records)}
    text = json.dumps(payload) if as_json else str(payload)
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {"content": [{"type": "text", "text": text}]},
    }


class FakeMemoryService:
    """In-process stand-in for the remote memory service, served via httpx.MockTransport."""

    def __init__(self, records: Optional[list[dict[str, Any]]] = None) -> None:
        self.records = records or []
        self.requests: list[httpx.Request] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    @property
    def queries(self) -> list[str]:
        return [json.loads(r.content)["params"]["arguments"]["query"] for r in self.requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return httpx.Response(200, json=tool_response(self.records))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client_factory(self, config: MemoryServiceConfig) -> MemoryServiceClient:
        return MemoryServiceClient(config.endpoint, config.api_key, transport=self.transport)


@pytest.fixture
def memory_service():
    return FakeMemoryService()


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
