"""Topic drift detection over fact identifier sets."""

from collections.abc import Collection
from dataclasses import dataclass

from ..client.graphiti import GraphMemoryClient
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def jaccard_similarity(left: Collection[str], right: Collection[str]) -> float:
    """``|A & B| / |A | B|``; two empty sets are identical (1.0)."""
    a, b = set(left), set(right)
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


@dataclass
class DriftCheck:
    """Outcome of one drift check."""

    similarity: float
    current_uuids: set[str]
    drifted: bool


class DriftDetector:
    """Compares the facts relevant to the current message with the last injection."""

    def __init__(self, client: GraphMemoryClient, threshold: float = 0.5, max_facts: int = 20) -> None:
        self.client = client
        self.threshold = threshold
        self.max_facts = max_facts

    def evaluate(self, current: Collection[str], last_injected: Collection[str]) -> DriftCheck:
        similarity = jaccard_similarity(current, last_injected)
        return DriftCheck(
            similarity=similarity,
            current_uuids=set(current),
            drifted=similarity < self.threshold,
        )

    async def check(
        self,
        message: str,
        group_id: str,
        last_injected: Collection[str],
    ) -> DriftCheck | None:
        """Run the lightweight project search. Returns ``None`` when the search fails."""
        try:
            facts = await self.client.search_facts(message, [group_id], self.max_facts)
        except Exception:
            logger.warning("drift_check_failed", group_id=group_id, exc_info=True)
            return None
        return self.evaluate({f.uuid for f in facts}, last_injected)
