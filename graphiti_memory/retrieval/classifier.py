"""Fact tier classifier for compaction prioritisation."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..core.config import DEFAULT_DECISION_KEYWORDS
from ..core.enums import FactTier
from ..core.schemas import Fact
from .normalizer import parse_timestamp


@dataclass
class ClassifiedFacts:
    """Exhaustive, disjoint partition of a fact list."""

    decisions: list[Fact] = field(default_factory=list)
    active: list[Fact] = field(default_factory=list)
    background: list[Fact] = field(default_factory=list)

    def tier(self, tier: FactTier) -> list[Fact]:
        return {
            FactTier.DECISION: self.decisions,
            FactTier.ACTIVE: self.active,
            FactTier.BACKGROUND: self.background,
        }[tier]

    def __len__(self) -> int:
        return len(self.decisions) + len(self.active) + len(self.background)


class FactClassifier:
    """
    Partitions facts into decision / active / background tiers.

    Decision keywords (whole word, case-insensitive) win over recency; a fact
    whose ``valid_at`` falls within ``active_window_days`` of ``now`` is active;
    everything else is background.
    """

    def __init__(
        self,
        keywords: Sequence[str] = DEFAULT_DECISION_KEYWORDS,
        active_window_days: int = 7,
    ) -> None:
        escaped = "|".join(re.escape(k) for k in keywords if k)
        self._pattern = re.compile(rf"\b(?:{escaped})\b", re.IGNORECASE) if escaped else None
        self._window = timedelta(days=active_window_days)

    def is_decision(self, fact: Fact) -> bool:
        return bool(self._pattern and self._pattern.search(fact.fact))

    def is_active(self, fact: Fact, now: datetime) -> bool:
        valid_at = parse_timestamp(fact.valid_at)
        if valid_at is None:
            return False
        return now - self._window <= valid_at <= now

    def tier_of(self, fact: Fact, now: datetime) -> FactTier:
        if self.is_decision(fact):
            return FactTier.DECISION
        if self.is_active(fact, now):
            return FactTier.ACTIVE
        return FactTier.BACKGROUND

    def classify(self, facts: Iterable[Fact], now: datetime) -> ClassifiedFacts:
        result = ClassifiedFacts()
        for fact in facts:
            result.tier(self.tier_of(fact, now)).append(fact)
        return result


def classify_facts(facts: Iterable[Fact], now: datetime) -> ClassifiedFacts:
    """Classify with the default keyword set and a 7 day active window."""
    return FactClassifier().classify(facts, now)
