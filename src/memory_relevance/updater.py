"""Dynamic context updates during an active conversation.

One ``DynamicContextUpdater`` owns the state of one session: the previous
analysis, the hashes of memories already injected, and the update counters.
Calls are gated by a cooldown and a per-session cap, then coalesced through
a debounce timer so only the latest text in a burst is processed. Everyone
who called during that window receives the same result.

The same updater also performs the session-start load, which seeds the set
of injected hashes before the first conversation update.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Optional, Protocol, Union

from pydantic import ValidationError

from memory_relevance.analysis.analyzer import analyze_conversation
from memory_relevance.analysis.changes import detect_topic_changes
from memory_relevance.config import MemoryServiceConfig, UpdaterOptions
from memory_relevance.formatting.formatter import format_context_update, format_session_context
from memory_relevance.models import (
    Analysis,
    CrossSessionContext,
    GitContext,
    Memory,
    MemoryQuery,
    ProjectProfile,
    SessionContext,
    UpdateResult,
)
from memory_relevance.retrieval.client import MemoryServiceClient
from memory_relevance.retrieval.queries import generate_memory_queries, generate_session_queries
from memory_relevance.scoring.age import (
    analyze_memory_age_distribution,
    boost_git_memories,
    calculate_adaptive_git_weight,
)
from memory_relevance.scoring.scorer import filter_by_relevance, score_memory_relevance
from memory_relevance.scoring.weights import (
    CONVERSATION_BIASED_OVERRIDES,
    WITH_CONVERSATION_CONTEXT,
    WITHOUT_CONVERSATION_CONTEXT,
)

logger = logging.getLogger(__name__)

Injector = Callable[[str], Union[None, Awaitable[None]]]
ClientFactory = Callable[[MemoryServiceConfig], MemoryServiceClient]

# Only memories scoring above this are injected.
MIN_INJECTION_SCORE = 0.3
# Memories without project affinity score exactly 0.
MIN_SESSION_SCORE = 0.01
# Stale-set recommendations applied to the session-start weights.
CALIBRATED_FACTORS = ("time_decay", "tag_relevance")
CROSS_SESSION_MAX_SESSIONS = 2
CROSS_SESSION_MAX_DAYS = 3


class SessionTracker(Protocol):
    """Source of summaries from earlier sessions on the same project."""

    def get_conversation_context(
        self,
        project: ProjectProfile,
        max_previous_sessions: int = ...,
        max_days_back: int = ...,
    ) -> Any: ...


class DynamicContextUpdater:
    """Decides when to pull more memories into the conversation, and which ones."""

    def __init__(
        self,
        options: Optional[UpdaterOptions] = None,
        session_tracker: Optional[SessionTracker] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.options = options or UpdaterOptions.from_settings()
        self._tracker = session_tracker
        self._client_factory = client_factory or self._default_client
        self._clock = clock
        self._lock = asyncio.Lock()
        self._session: Optional[SessionContext] = None
        self._generation = 0
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Future[UpdateResult]] = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._reset_state()

    def _reset_state(self) -> None:
        self.last_analysis: Optional[Analysis] = None
        self.last_update_at = 0.0  # epoch milliseconds
        self.update_count = 0
        self.loaded_hashes: set[str] = set()

    @property
    def project(self) -> ProjectProfile:
        return self._session.project if self._session else ProjectProfile()

    def _default_client(self, config: MemoryServiceConfig) -> MemoryServiceClient:
        return MemoryServiceClient.from_config(config, timeout=self.options.request_timeout_s)

    # -- Public API --

    def initialize(self, session_context: Optional[SessionContext] = None) -> None:
        """Start tracking a new session."""
        self.reset()
        self._session = session_context or SessionContext()
        logger.info(
            "Dynamic context updater initialized for project: %s",
            self._session.project.name or "unknown",
        )

    async def process_conversation_update(
        self,
        conversation_text: str,
        store_config: MemoryServiceConfig,
        injector: Optional[Injector] = None,
    ) -> UpdateResult:
        """Schedule an update for ``conversation_text`` and wait for its outcome."""
        if not self._should_process_update():
            return UpdateResult(processed=False, reason="rate_limited")

        generation = self._generation
        loop = asyncio.get_running_loop()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        if self._pending is None or self._pending.done():
            self._pending = loop.create_future()
        future = self._pending

        self._debounce_handle = loop.call_later(
            self.options.debounce_ms / 1000,
            self._start_debounced,
            future,
            generation,
            conversation_text,
            store_config,
            injector,
        )
        return await asyncio.shield(future)

    async def load_session_context(
        self,
        store_config: MemoryServiceConfig,
        git_context: Optional[GitContext] = None,
        injector: Optional[Injector] = None,
    ) -> UpdateResult:
        """Load the opening set of project memories for a new session.

        Memories are retrieved by git activity, recent work and general project
        context, up to ``maxMemoriesPerSession``. A stale set recalibrates the
        time-decay and tag weights, and git-derived memories get the adaptive
        git boost. Everything loaded here is excluded from later updates. The
        load does not count toward the update cap or the cooldown.
        """
        async with self._lock:
            generation = self._generation
            try:
                return await self._load_session_context(
                    store_config, git_context, injector, generation
                )
            except Exception as exc:
                logger.exception("Error loading session context")
                return UpdateResult(processed=False, reason="error", error=str(exc))

    def reset(self) -> None:
        """Drop all session state and cancel any pending update."""
        logger.info("Resetting dynamic context updater")
        self._generation += 1
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(UpdateResult(processed=False, reason="reset"))
        self._pending = None
        self._reset_state()

    def get_stats(self) -> dict[str, Any]:
        return {
            "update_count": self.update_count,
            "loaded_memories_count": len(self.loaded_hashes),
            "last_update_time": self.last_update_at,
            "has_session_tracker": self._tracker is not None,
            "is_initialized": self._session is not None,
        }

    # -- Debounce plumbing --

    def _should_process_update(self) -> bool:
        now_ms = self._clock() * 1000
        if now_ms - self.last_update_at < self.options.update_cooldown_ms:
            return False
        if self.update_count >= self.options.max_updates_per_session:
            return False
        return True

    def _start_debounced(
        self,
        future: asyncio.Future[UpdateResult],
        generation: int,
        conversation_text: str,
        store_config: MemoryServiceConfig,
        injector: Optional[Injector],
    ) -> None:
        self._debounce_handle = None
        if self._pending is future:
            self._pending = None
        task = asyncio.ensure_future(
            self._run_debounced(future, generation, conversation_text, store_config, injector)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_debounced(
        self,
        future: asyncio.Future[UpdateResult],
        generation: int,
        conversation_text: str,
        store_config: MemoryServiceConfig,
        injector: Optional[Injector],
    ) -> None:
        async with self._lock:
            # Another pass may have finished, or reset() run, while this one waited.
            if generation != self._generation:
                result = UpdateResult(processed=False, reason="reset")
            elif not self._should_process_update():
                result = UpdateResult(processed=False, reason="rate_limited")
            else:
                try:
                    result = await self.perform_context_update(
                        conversation_text, store_config, injector, generation
                    )
                except Exception as exc:
                    logger.exception("Error processing conversation update")
                    result = UpdateResult(processed=False, reason="error", error=str(exc))
        if not future.done():
            future.set_result(result)

    # -- The update pass --

    async def perform_context_update(
        self,
        conversation_text: str,
        store_config: MemoryServiceConfig,
        injector: Optional[Injector] = None,
        generation: Optional[int] = None,
    ) -> UpdateResult:
        """Run one full analysis, retrieval, scoring and injection pass."""
        if generation is None:
            generation = self._generation

        analysis = analyze_conversation(conversation_text, min_topic_confidence=0.3)
        change = detect_topic_changes(self.last_analysis, analysis)

        if not change.has_topic_shift or change.significance_score < self.options.update_threshold:
            logger.info(
                "No significant changes detected (score: %.2f)", change.significance_score
            )
            self.last_analysis = analysis
            return UpdateResult(
                processed=False,
                reason="insufficient_change",
                significance_score=change.significance_score,
            )

        logger.info(
            "Significant conversation change detected (score: %.2f), new topics: %s",
            change.significance_score,
            ", ".join(t.name for t in change.new_topics),
        )

        queries = generate_memory_queries(analysis, change, self.project)
        if not queries:
            self.last_analysis = analysis
            return UpdateResult(processed=False, reason="no_actionable_queries")

        memories = await self._retrieve_relevant_memories(queries, store_config)
        if generation != self._generation:
            return UpdateResult(processed=False, reason="reset")
        if not memories:
            self.last_analysis = analysis
            return UpdateResult(processed=False, reason="no_relevant_memories")

        age = analyze_memory_age_distribution(memories)
        if age.reason:
            logger.debug("Retrieved memory ages: %s", age.reason)

        selected = self._select_memories(memories, analysis)
        if not selected:
            self.last_analysis = analysis
            return UpdateResult(processed=False, reason="no_high_relevance_memories")

        cross_session = await self._fetch_cross_session_context()
        if generation != self._generation:
            return UpdateResult(processed=False, reason="reset")

        update_text = format_context_update(selected, analysis, change, cross_session)

        # Committed before injecting: a failed injection must not be retried
        # with the same memories later in this session.
        self.loaded_hashes.update(m.content_hash for m in selected)

        if injector is not None and update_text is not None:
            await self._inject(injector, update_text)
        if generation != self._generation:
            return UpdateResult(processed=False, reason="reset")

        self.last_analysis = analysis
        self.last_update_at = self._clock() * 1000
        self.update_count += 1

        logger.info(
            "Context update completed (update #%d), injected %d memories",
            self.update_count,
            len(selected),
        )

        return UpdateResult(
            processed=True,
            update_count=self.update_count,
            memories_injected=len(selected),
            significance_score=change.significance_score,
            topics=[t.name for t in change.new_topics],
            has_conversation_context=True,
            has_cross_session_context=cross_session is not None,
        )

    async def _retrieve_relevant_memories(
        self, queries: Sequence[MemoryQuery], store_config: MemoryServiceConfig
    ) -> list[Memory]:
        """Run queries in order, keeping the first copy of each memory."""
        collected: list[Memory] = []
        seen: set[str] = set()
        exclude = frozenset(self.loaded_hashes)

        async with self._client_factory(store_config) as client:
            for query in queries:
                try:
                    found = await client.query(
                        query.query, limit=query.limit, exclude_hashes=exclude
                    )
                except Exception:
                    logger.warning("Memory query failed: %s", query.query, exc_info=True)
                    continue
                for memory in found:
                    if memory.content_hash in seen:
                        continue
                    seen.add(memory.content_hash)
                    collected.append(memory.model_copy(update={"query_context": query}))

        return collected

    async def _load_session_context(
        self,
        store_config: MemoryServiceConfig,
        git_context: Optional[GitContext],
        injector: Optional[Injector],
        generation: int,
    ) -> UpdateResult:
        limit = store_config.max_memories_per_session
        queries = generate_session_queries(self.project, git_context, limit)
        memories = (await self._retrieve_relevant_memories(queries, store_config))[:limit]
        if generation != self._generation:
            return UpdateResult(processed=False, reason="reset")
        if not memories:
            return UpdateResult(processed=False, reason="no_relevant_memories")

        age = analyze_memory_age_distribution(memories)
        weights = WITHOUT_CONVERSATION_CONTEXT
        if age.is_stale:
            weights = weights.merge(
                {k: age.recommended_adjustments[k] for k in CALIBRATED_FACTORS}
            )
            logger.info("Auto-calibrated scoring weights: %s", age.reason)

        scored = score_memory_relevance(
            memories,
            self.project,
            weights=weights,
            time_decay_rate=self.options.time_decay_rate,
        )
        git_weight = calculate_adaptive_git_weight(
            git_context, age, self.options.git_context_weight
        )
        scored = boost_git_memories(scored, git_weight.weight)

        selected = filter_by_relevance(scored, min_score=MIN_SESSION_SCORE)
        if not selected:
            return UpdateResult(processed=False, reason="no_high_relevance_memories")

        self.loaded_hashes.update(m.content_hash for m in selected)
        context_text = format_session_context(selected, self.project, limit=limit)
        if injector is not None and context_text is not None:
            await self._inject(injector, context_text)
        if generation != self._generation:
            return UpdateResult(processed=False, reason="reset")

        logger.info(
            "Session context loaded: %d memories (git weight %.2f)",
            len(selected),
            git_weight.weight,
        )
        return UpdateResult(processed=True, memories_injected=len(selected))

    def _select_memories(self, memories: Sequence[Memory], analysis: Analysis) -> list[Memory]:
        scored = score_memory_relevance(
            memories,
            self.project,
            weights=WITH_CONVERSATION_CONTEXT.merge(CONVERSATION_BIASED_OVERRIDES),
            time_decay_rate=self.options.time_decay_rate,
            include_conversation_context=True,
            conversation_analysis=analysis,
        )
        selected = [m for m in scored if (m.relevance_score or 0.0) > MIN_INJECTION_SCORE]
        return selected[: self.options.max_memories_per_update]

    async def _fetch_cross_session_context(self) -> Optional[CrossSessionContext]:
        if not self.options.enable_cross_session_context or self._tracker is None:
            return None

        try:
            context = self._tracker.get_conversation_context(
                self.project,
                max_previous_sessions=CROSS_SESSION_MAX_SESSIONS,
                max_days_back=CROSS_SESSION_MAX_DAYS,
            )
            if inspect.isawaitable(context):
                context = await context
        except Exception:
            logger.warning("Cross-session context unavailable", exc_info=True)
            return None

        if context is None or isinstance(context, CrossSessionContext):
            return context
        try:
            return CrossSessionContext.model_validate(context)
        except ValidationError:
            logger.warning("Ignoring malformed cross-session context", exc_info=True)
            return None

    async def _inject(self, injector: Injector, update_text: str) -> None:
        try:
            outcome = injector(update_text)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Context injection failed")
