"""Memory retrieval and injection pipeline."""

import asyncio
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar

from ..client.graphiti import GraphMemoryClient
from ..core.config import RetrievalSettings
from ..core.enums import SourceDescription
from ..core.schemas import Episode
from ..session.state import PendingInjection, SessionState
from ..utils.logging_config import get_logger
from .budget import split_budget, truncate
from .normalizer import (
    ScopeContext,
    deduplicate_context,
    format_memory_context,
    parse_timestamp,
)

logger = get_logger(__name__)

T = TypeVar("T")

SNAPSHOT_HEADER = "## Session Snapshot"
SNAPSHOT_INSTRUCTION = (
    "> Most recent session snapshot; use to restore active strategy and open questions."
)
SECTION_SEPARATOR = "\n\n"
SNAPSHOT_OVERHEAD = len(SNAPSHOT_HEADER) + len(SNAPSHOT_INSTRUCTION) + 2


@dataclass
class ScopedRetrieval:
    """Deduplicated results for the project scope and (optionally) the user scope."""

    project: ScopeContext = field(default_factory=ScopeContext)
    user: ScopeContext = field(default_factory=ScopeContext)

    @property
    def empty(self) -> bool:
        return self.project.empty and self.user.empty


@dataclass
class InjectionResult:
    context: str
    fact_uuids: list[str]
    fact_count: int
    entity_count: int


class MemoryRetriever:
    """Dual-scope fact/entity search against the graph service.

    Every search degrades to an empty result on failure.
    """

    def __init__(self, client: GraphMemoryClient, settings: RetrievalSettings | None = None) -> None:
        self.client = client
        self.settings = settings or RetrievalSettings()

    async def _safe(self, what: str, call: Callable[[], Awaitable[list[T]]]) -> list[T]:
        try:
            return await call()
        except Exception:
            logger.warning("graph_search_failed", search=what, exc_info=True)
            return []

    async def _empty(self) -> list:
        return []

    async def retrieve(
        self,
        query: str,
        group_id: str,
        user_group_id: str | None = None,
    ) -> ScopedRetrieval:
        s = self.settings
        with_user = bool(user_group_id)
        project_facts, project_entities, user_facts, user_entities = await asyncio.gather(
            self._safe(
                "project_facts",
                lambda: self.client.search_facts(query, [group_id], s.project_max_facts),
            ),
            self._safe(
                "project_entities",
                lambda: self.client.search_entities(query, [group_id], s.project_max_entities),
            ),
            self._safe(
                "user_facts",
                lambda: self.client.search_facts(query, [user_group_id], s.user_max_facts),
            )
            if with_user
            else self._empty(),
            self._safe(
                "user_entities",
                lambda: self.client.search_entities(query, [user_group_id], s.user_max_entities),
            )
            if with_user
            else self._empty(),
        )
        return ScopedRetrieval(
            project=deduplicate_context(project_facts, project_entities),
            user=deduplicate_context(user_facts, user_entities),
        )

    async def latest_snapshot(self, group_id: str) -> Episode | None:
        """Most recent ``session-snapshot`` episode of a group, if any."""
        try:
            episodes = await self.client.get_episodes(group_id, self.settings.snapshot_lookback)
        except Exception:
            logger.error("session_snapshot_load_failed", group_id=group_id, exc_info=True)
            return None
        snapshots = [
            e for e in episodes if e.source_description == SourceDescription.SESSION_SNAPSHOT.value
        ]
        if not snapshots:
            return None
        epoch = datetime.min.replace(tzinfo=UTC)
        return max(snapshots, key=lambda e: parse_timestamp(e.created_at) or epoch)


def _without_visible(scope: ScopeContext, visible: Collection[str]) -> ScopeContext:
    if not visible:
        return scope
    return ScopeContext(
        facts=[f for f in scope.facts if f.uuid not in visible],
        entities=scope.entities,
    )


def format_snapshot_primer(content: str, budget: int) -> str:
    body = truncate(content, budget)
    if not body.strip():
        return ""
    return "\n".join([SNAPSHOT_HEADER, SNAPSHOT_INSTRUCTION, body])


class MemoryInjectionPipeline:
    """
    Turns a user message into a budgeted memory context for the prompt.

    Steps: dual-scope retrieval, dedup and orphan pruning, removal of facts
    already visible in the transcript, per-scope formatting, optional session
    snapshot primer, then a 70/30 project/user split of the remaining budget
    in which each scope keeps whole lines only.
    """

    def __init__(
        self,
        retriever: MemoryRetriever,
        fact_stale_days: int = 30,
        snapshot_max_chars: int = 1200,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.retriever = retriever
        self.fact_stale_days = fact_stale_days
        self.snapshot_max_chars = snapshot_max_chars
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _snapshot_primer(self, group_id: str, budget: int) -> str:
        snapshot = await self.retriever.latest_snapshot(group_id)
        if snapshot is None or not snapshot.content:
            return ""
        return format_snapshot_primer(
            snapshot.content, min(budget - SNAPSHOT_OVERHEAD, self.snapshot_max_chars)
        )

    async def build(
        self,
        state: SessionState,
        message: str,
        use_user_scope: bool,
        budget: int,
    ) -> InjectionResult | None:
        """Retrieve and format memory context. Returns ``None`` when there is nothing to inject.

        Only the facts whose lines fit in the returned context are reported in
        ``fact_uuids``.
        """
        now = self._clock()
        user_group_id = state.user_group_id if use_user_scope else None
        retrieved = await self.retriever.retrieve(message, state.group_id, user_group_id)

        project = _without_visible(retrieved.project, state.visible_fact_uuids)
        user = _without_visible(retrieved.user, state.visible_fact_uuids)
        if project.empty and user.empty:
            logger.debug("memory_injection_skipped", reason="no_results")
            return None

        primer = ""
        if use_user_scope and budget > 0:
            primer = await self._snapshot_primer(state.group_id, budget)

        remaining = budget
        if primer:
            remaining -= len(primer) + len(SECTION_SEPARATOR)
        if use_user_scope:
            remaining -= len(SECTION_SEPARATOR)
            project_budget, user_budget = split_budget(remaining, self.retriever.settings.project_share)
        else:
            project_budget, user_budget = max(0, remaining), 0

        project_text, project_facts, project_entities = format_memory_context(
            project.facts, project.entities, now, project_budget, self.fact_stale_days, scope="project"
        )
        user_text, user_facts, user_entities = format_memory_context(
            user.facts, user.entities, now, user_budget, self.fact_stale_days, scope="user"
        )
        if not project_text and not user_text:
            logger.debug("memory_injection_skipped", reason="nothing_fits_budget", budget=budget)
            return None

        context = SECTION_SEPARATOR.join(s for s in (primer, project_text, user_text) if s)

        included = [f.uuid for f in project_facts]
        included += [f.uuid for f in user_facts if f.uuid not in included]
        return InjectionResult(
            context=context,
            fact_uuids=included,
            fact_count=len(project_facts) + len(user_facts),
            entity_count=len(project_entities) + len(user_entities),
        )

    async def inject(
        self,
        state: SessionState,
        message: str,
        use_user_scope: bool,
        budget: int,
        baseline_uuids: Collection[str] | None = None,
    ) -> InjectionResult | None:
        """Build context and hand it to the session for the prompt-transform step.

        ``baseline_uuids`` replaces the included facts as the drift baseline
        (used when re-injecting after a drift check).
        """
        result = await self.build(state, message, use_user_scope, budget)
        if result is None:
            return None
        state.pending_injection = PendingInjection(
            turn=state.message_count,
            context=result.context,
            fact_uuids=result.fact_uuids,
        )
        state.last_injection_fact_uuids = (
            set(baseline_uuids) if baseline_uuids is not None else set(result.fact_uuids)
        )
        logger.info(
            "memory_context_prepared",
            fact_count=result.fact_count,
            entity_count=result.entity_count,
            context_length=len(result.context),
            user_scope=use_user_scope,
        )
        return result
