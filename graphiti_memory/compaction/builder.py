"""Compaction context: a tiered knowledge digest that survives summarisation."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from ..client.graphiti import GraphMemoryClient
from ..core.config import CompactionSettings
from ..core.enums import EpisodeSource, FactTier, SourceDescription
from ..core.schemas import Fact
from ..retrieval.budget import select_within_budget, split_budget, split_tiers, truncate
from ..retrieval.classifier import FactClassifier
from ..retrieval.normalizer import (
    ScopeContext,
    annotate_stale,
    filter_valid,
    format_entity_line,
    format_fact_line,
)
from ..retrieval.pipeline import MemoryRetriever
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

DIGEST_HEADER = "## Persistent Knowledge (preserve these facts during compaction)"
DIGEST_FOOTER = "Keep the decisions and constraints above intact in the compacted summary."
SECTION_SEPARATOR = "\n\n"

TIER_TITLES = {
    FactTier.DECISION: "### Decisions",
    FactTier.ACTIVE: "### Active Context",
    FactTier.BACKGROUND: "### Background",
}
ENTITIES_TITLE = "### Entities"


class CompactionContextBuilder:
    """
    Builds the digest appended to the host's compaction prompt.

    Each scope is classified into decision / active / background tiers and
    filled tier by tier within its own budget, so high-value facts are kept
    even when the budget only fits a fraction of what was retrieved.
    """

    def __init__(
        self,
        retriever: MemoryRetriever,
        settings: CompactionSettings | None = None,
        fact_stale_days: int = 30,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.retriever = retriever
        self.settings = settings or CompactionSettings()
        self.classifier = FactClassifier(
            keywords=self.settings.decision_keywords,
            active_window_days=self.settings.active_window_days,
        )
        self.fact_stale_days = fact_stale_days
        self._clock = clock or (lambda: datetime.now(UTC))

    def build_query(self, context_strings: Sequence[str]) -> str:
        joined = " ".join(context_strings[: self.settings.query_context_count])
        return joined[: self.settings.query_max_chars]

    def _tier_block(self, tier: FactTier, facts: list[Fact], budget: int, now: datetime) -> str:
        lines = [format_fact_line(annotate_stale(f, now, self.fact_stale_days)) for f in facts]
        selected = select_within_budget(lines, lines, budget)
        if not selected:
            return ""
        return "\n".join([TIER_TITLES[tier], *selected])

    def format_scope(self, title: str, scope: ScopeContext, budget: int, now: datetime) -> str:
        """One scope's digest section, truncated to ``budget``."""
        if budget <= 0 or scope.empty:
            return ""
        s = self.settings
        classified = self.classifier.classify(filter_valid(scope.facts, now), now)
        tier_budgets = split_tiers(budget, s.decision_share, s.active_share)

        blocks = []
        for tier, tier_budget in zip(FactTier, tier_budgets):
            block = self._tier_block(tier, classified.tier(tier), tier_budget, now)
            if block:
                blocks.append(block)
        if scope.entities:
            blocks.append("\n".join([ENTITIES_TITLE, *(format_entity_line(e) for e in scope.entities)]))
        if not blocks:
            return ""
        return truncate(SECTION_SEPARATOR.join([title, *blocks]), budget)

    async def build(
        self,
        context_strings: Sequence[str],
        group_id: str,
        user_group_id: str | None,
        budget: int,
    ) -> list[str]:
        """Return the strings to append to the compaction context (possibly none)."""
        query = self.build_query(context_strings)
        if not query.strip():
            return []

        retrieved = await self.retriever.retrieve(query, group_id, user_group_id)
        if retrieved.empty:
            return []

        now = self._clock()
        overhead = len(DIGEST_HEADER) + len(DIGEST_FOOTER) + 3 * len(SECTION_SEPARATOR)
        remaining = max(0, budget - overhead)
        if user_group_id:
            project_budget, user_budget = split_budget(remaining, self.settings.project_share)
        else:
            project_budget, user_budget = remaining, 0

        project = self.format_scope("## Project Knowledge", retrieved.project, project_budget, now)
        user = self.format_scope("## User Knowledge", retrieved.user, user_budget, now)
        if not project and not user:
            return []

        parts = [DIGEST_HEADER, project, user, DIGEST_FOOTER]
        digest = truncate(SECTION_SEPARATOR.join(p for p in parts if p), budget)
        logger.info(
            "compaction_context_built",
            project_facts=len(retrieved.project.facts),
            user_facts=len(retrieved.user.facts),
            digest_length=len(digest),
        )
        return [digest] if digest else []


async def save_compaction_summary(
    client: GraphMemoryClient,
    group_id: str,
    session_id: str,
    summary: str,
) -> bool:
    """Persist the host's compaction summary verbatim. Returns ``True`` on success."""
    if not summary:
        return False
    try:
        await client.add_episode(
            name=f"Session compaction: {session_id}",
            body=summary,
            group_id=group_id,
            source=EpisodeSource.TEXT,
            source_description=SourceDescription.COMPACTION_SUMMARY.value,
        )
    except Exception:
        logger.error("compaction_summary_save_failed", session_id=session_id, exc_info=True)
        return False
    logger.info("compaction_summary_saved", session_id=session_id)
    return True
