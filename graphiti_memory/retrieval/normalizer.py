"""Fact/entity normalization: dedup, validity filtering, staleness and formatting.

All functions are pure; facts are frozen models, so annotation returns a copy.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..core.schemas import Entity, Fact
from .budget import LINE_SEPARATOR_CHARS, select_within_budget

SECONDS_PER_DAY = 24 * 60 * 60

MEMORY_HEADER = "# Persistent Memory"
MEMORY_INSTRUCTION = (
    "> Background context only; do not reference in titles, summaries, "
    "or opening responses unless directly relevant."
)
FACTS_HEADER = "## Known Facts"
ENTITIES_HEADER = "## Known Entities"

_VISIBLE_UUIDS_RE = re.compile(r'<memory\b[^>]*\bdata-uuids="([^"]*)"')


@dataclass
class ScopeContext:
    """Deduplicated facts and standalone entities for one group scope."""

    facts: list[Fact] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.facts and not self.entities

    @property
    def fact_uuids(self) -> list[str]:
        return [f.uuid for f in self.facts]


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC. Unparsable -> None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_fact_valid(fact: Fact, now: datetime) -> bool:
    invalid_at = parse_timestamp(fact.invalid_at)
    if invalid_at is not None and invalid_at < now:
        return False
    valid_at = parse_timestamp(fact.valid_at)
    if valid_at is not None and valid_at > now:
        return False
    return True


def filter_valid(facts: Iterable[Fact], now: datetime) -> list[Fact]:
    """Drop facts outside their validity window, most recent ``valid_at`` first."""
    indexed = [(i, f) for i, f in enumerate(facts) if is_fact_valid(f, now)]

    def _key(entry: tuple[int, Fact]) -> tuple[float, int]:
        index, fact = entry
        valid_at = parse_timestamp(fact.valid_at)
        ts = valid_at.timestamp() if valid_at is not None else float("-inf")
        return (-ts, index)

    return [f for _, f in sorted(indexed, key=_key)]


def fact_age_days(fact: Fact, now: datetime) -> int | None:
    valid_at = parse_timestamp(fact.valid_at)
    if valid_at is None:
        return None
    return int((now - valid_at).total_seconds() // SECONDS_PER_DAY)


def annotate_stale(fact: Fact, now: datetime, stale_days: int) -> Fact:
    """Prefix the fact text with its age when it is at least ``stale_days`` old."""
    age = fact_age_days(fact, now)
    if age is None or age < 0 or age < stale_days:
        return fact
    return fact.model_copy(update={"fact": f"[stale: {age} days ago] {fact.fact}"})


def prepare_facts(facts: Iterable[Fact], now: datetime, stale_days: int) -> list[Fact]:
    """Validity filter, recency sort and stale annotation in one pass."""
    return [annotate_stale(f, now, stale_days) for f in filter_valid(facts, now)]


def deduplicate_facts(facts: Iterable[Fact]) -> list[Fact]:
    seen: set[str] = set()
    deduped: list[Fact] = []
    for fact in facts:
        if fact.uuid in seen:
            continue
        seen.add(fact.uuid)
        deduped.append(fact)
    return deduped


def deduplicate_entities(entities: Iterable[Entity]) -> list[Entity]:
    seen: set[str] = set()
    deduped: list[Entity] = []
    for entity in entities:
        if entity.uuid in seen:
            continue
        seen.add(entity.uuid)
        deduped.append(entity)
    return deduped


def prune_orphan_entities(facts: Iterable[Fact], entities: Iterable[Entity]) -> list[Entity]:
    """Keep only entities not already referenced by any fact."""
    referenced: set[str] = set()
    for fact in facts:
        referenced |= fact.referenced_entity_uuids()
    return [e for e in entities if e.uuid not in referenced]


def deduplicate_context(facts: Iterable[Fact], entities: Iterable[Entity]) -> ScopeContext:
    deduped = deduplicate_facts(facts)
    return ScopeContext(
        facts=deduped,
        entities=prune_orphan_entities(deduped, deduplicate_entities(entities)),
    )


def format_fact_line(fact: Fact) -> str:
    names = [n.name for n in (fact.source_node, fact.target_node) if n is not None and n.name]
    suffix = f" [{' -> '.join(names)}]" if names else ""
    return f"- {fact.fact}{suffix}"


def format_entity_line(entity: Entity) -> str:
    labels = f" ({', '.join(entity.labels)})" if entity.labels else ""
    summary = f": {entity.summary}" if entity.summary else ""
    return f"- {entity.name}{labels}{summary}"


def _scope_header(scope: str | None) -> str:
    return f"{MEMORY_HEADER} ({scope})" if scope else MEMORY_HEADER


def _section_cost(title: str) -> int:
    # blank line plus the section title, each on its own line
    return 2 * LINE_SEPARATOR_CHARS + len(title)


def _render_scope(scope: str | None, fact_lines: Sequence[str], entity_lines: Sequence[str]) -> str:
    if not fact_lines and not entity_lines:
        return ""
    sections = [_scope_header(scope), MEMORY_INSTRUCTION]
    if fact_lines:
        sections += ["", FACTS_HEADER, *fact_lines]
    if entity_lines:
        sections += ["", ENTITIES_HEADER, *entity_lines]
    return "\n".join(sections)


def format_memory_context(
    facts: Sequence[Fact],
    entities: Sequence[Entity],
    now: datetime,
    budget: int,
    stale_days: int = 30,
    scope: str | None = None,
) -> tuple[str, list[Fact], list[Entity]]:
    """Render a scope block of at most ``budget`` characters.

    Whole fact and entity lines are kept or dropped, never cut. Returns the
    text together with the facts and entities that made it in, so callers
    can record exactly what the reader will see.
    """
    prepared = prepare_facts(facts, now, stale_days)
    remaining = budget - len(_scope_header(scope)) - LINE_SEPARATOR_CHARS - len(MEMORY_INSTRUCTION)
    if remaining <= 0 or (not prepared and not entities):
        return "", [], []

    fact_lines = [format_fact_line(f) for f in prepared]
    kept_facts = select_within_budget(
        fact_lines, list(zip(fact_lines, prepared)), remaining - _section_cost(FACTS_HEADER)
    )
    if kept_facts:
        remaining -= _section_cost(FACTS_HEADER)
        remaining -= sum(len(line) + LINE_SEPARATOR_CHARS for line, _ in kept_facts)

    entity_lines = [format_entity_line(e) for e in entities]
    kept_entities = select_within_budget(
        entity_lines, list(zip(entity_lines, entities)), remaining - _section_cost(ENTITIES_HEADER)
    )
    text = _render_scope(
        scope,
        [line for line, _ in kept_facts],
        [line for line, _ in kept_entities],
    )
    return text, [f for _, f in kept_facts], [e for _, e in kept_entities]


def extract_visible_uuids(text: str) -> list[str]:
    """Fact UUIDs listed on ``<memory data-uuids="...">`` blocks inside ``text``."""
    uuids: list[str] = []
    for match in _VISIBLE_UUIDS_RE.finditer(text or ""):
        uuids.extend(u.strip() for u in match.group(1).split(",") if u.strip())
    return uuids
