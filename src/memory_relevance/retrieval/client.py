"""JSON-RPC client for the remote memory service's ``retrieve_memory`` tool.

The service answers ``tools/call`` with a text blob that embeds the result
list under a ``'results'`` key, often as a Python-style repr rather than
JSON. The blob is never evaluated: the list is cut out with a quote-aware
bracket matcher and decoded as JSON, or as Python literals when that fails.

Every failure mode (timeout, transport error, JSON-RPC error, unparseable
result) is logged and surfaces as an empty list.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import re
import time
from collections.abc import Iterable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from memory_relevance.config import MemoryServiceConfig, Settings, get_settings
from memory_relevance.models import Memory

logger = logging.getLogger(__name__)

RETRIEVE_TOOL = "retrieve_memory"
DEFAULT_TIMEOUT_S = 5.0

_RESULTS_KEY_RE = re.compile(r"""['"]results['"]\s*:\s*\[""")


class MemoryServiceClient:
    """Async client for one memory service endpoint."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_S,
        verify_tls: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = endpoint.rstrip("/") + "/mcp"
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            verify=verify_tls,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: MemoryServiceConfig,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> MemoryServiceClient:
        """Client for ``config``; ``timeout`` overrides the settings default."""
        settings = settings or get_settings()
        return cls(
            config.endpoint,
            config.api_key,
            timeout=timeout if timeout is not None else settings.request_timeout_s,
            verify_tls=settings.verify_tls,
            transport=transport,
        )

    async def __aenter__(self) -> MemoryServiceClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query(
        self,
        query: str,
        limit: int = 3,
        exclude_hashes: Iterable[str] = (),
    ) -> list[Memory]:
        """Retrieve memories for ``query``, minus any whose hash is excluded."""
        payload = {
            "jsonrpc": "2.0",
            "id": int(time.time() * 1000),
            "method": "tools/call",
            "params": {
                "name": RETRIEVE_TOOL,
                "arguments": {"query": query, "limit": limit},
            },
        }

        try:
            # The transport timeout is per phase; this bounds the whole call.
            response = await asyncio.wait_for(
                self._client.post(self._url, json=payload), timeout=self._timeout
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.TimeoutException, TimeoutError):
            logger.error("Memory service request timed out: %s", query[:100])
            return []
        except httpx.HTTPError as exc:
            logger.error("Memory service request failed: %s", exc)
            return []
        except ValueError as exc:
            logger.error("Failed to parse memory response: %s", exc)
            return []

        if not isinstance(data, dict):
            logger.error("Unexpected memory response: %r", data)
            return []
        if data.get("error"):
            logger.error("Memory service error: %s", data["error"])
            return []

        excluded = set(exclude_hashes)
        memories = [
            m for m in parse_memory_results(data.get("result")) if m.content_hash not in excluded
        ]
        logger.info("Retrieved %d new memories for query: %s", len(memories), query[:100])
        return memories


async def query_memory_service(
    endpoint: str,
    api_key: str,
    query: str,
    limit: int = 3,
    exclude_hashes: Iterable[str] = (),
    timeout: float = DEFAULT_TIMEOUT_S,
    verify_tls: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[Memory]:
    """One-shot retrieval against ``endpoint``."""
    async with MemoryServiceClient(
        endpoint, api_key, timeout=timeout, verify_tls=verify_tls, transport=transport
    ) as client:
        return await client.query(query, limit=limit, exclude_hashes=exclude_hashes)


# -- Result parsing --


def parse_memory_results(result: Any) -> list[Memory]:
    """Pull memory records out of a ``tools/call`` result.

    Records that fail validation (for example, no ``content_hash``) are skipped.
    """
    try:
        text = result["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return []
    if not isinstance(text, str):
        return []

    blob = extract_results_literal(text)
    if blob is None:
        return []

    try:
        records = parse_results_blob(blob)
    except (ValueError, SyntaxError, TypeError, RecursionError, MemoryError) as exc:
        # literal_eval raises TypeError on unhashable keys; deep nesting exhausts the stack.
        logger.error("Error parsing memory results: %s: %s", type(exc).__name__, exc)
        return []

    memories: list[Memory] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        # Some service versions wrap each record: {"memory": {...}, "similarity_score": x}
        if isinstance(record.get("memory"), dict):
            record = record["memory"]
        try:
            memories.append(Memory.model_validate(record))
        except ValidationError as exc:
            logger.warning("Skipping invalid memory record: %s", exc.errors()[:1])
    return memories


def extract_results_literal(text: str) -> Optional[str]:
    """Return the ``[...]`` following the first ``'results':`` key, or None.

    Brackets inside quoted strings are ignored, so tags lists and content
    with brackets don't cut the list short.
    """
    match = _RESULTS_KEY_RE.search(text)
    if match is None:
        return None

    start = match.end() - 1
    depth = 0
    quote: Optional[str] = None
    escape_next = False

    for pos in range(start, len(text)):
        ch = text[pos]

        if quote is not None:
            if escape_next:
                escape_next = False
            elif ch == "\\":
                escape_next = True
            elif ch == quote:
                quote = None
            continue

        if ch in ("'", '"'):
            quote = ch
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]

    return None


def parse_results_blob(blob: str) -> list[Any]:
    """Decode a results list as JSON, falling back to Python literals only."""
    try:
        value = json.loads(blob)
    except json.JSONDecodeError:
        value = ast.literal_eval(blob)
    if not isinstance(value, list):
        raise ValueError(f"results is a {type(value).__name__}, not a list")
    return value
