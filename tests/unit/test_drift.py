"""Unit tests for Jaccard drift detection."""

from unittest.mock import AsyncMock

import pytest
from factories import make_fact

from graphiti_memory.core.exceptions import GraphToolError
from graphiti_memory.retrieval.drift import DriftDetector, jaccard_similarity


class TestJaccard:
    def test_identical_sets(self):
        assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0

    def test_both_empty_is_no_drift(self):
        assert jaccard_similarity(set(), set()) == 1.0

    def test_one_empty_is_zero(self):
        assert jaccard_similarity({"a"}, set()) == 0.0
        assert jaccard_similarity(set(), {"a"}) == 0.0

    def test_partial_overlap(self):
        assert jaccard_similarity({"a", "b", "c"}, {"b", "c", "d"}) == pytest.approx(0.5)

    @pytest.mark.parametrize(
        ("left", "right"),
        [({"a"}, {"b"}), ({"a", "b"}, {"a"}), ({"x", "y", "z"}, {"x", "y", "z", "w"})],
    )
    def test_bounds(self, left, right):
        assert 0.0 <= jaccard_similarity(left, right) <= 1.0


class TestDriftDetector:
    @pytest.mark.asyncio
    async def test_disjoint_results_drift(self, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f3"), make_fact("f4")])
        detector = DriftDetector(graph_client, threshold=0.5, max_facts=20)

        check = await detector.check("new topic", "proj__main", {"f1", "f2"})

        assert check is not None and check.drifted
        assert check.similarity == 0.0
        assert check.current_uuids == {"f3", "f4"}
        graph_client.search_facts.assert_awaited_once_with("new topic", ["proj__main"], 20)

    @pytest.mark.asyncio
    async def test_same_results_do_not_drift(self, graph_client):
        graph_client.search_facts = AsyncMock(return_value=[make_fact("f1"), make_fact("f2")])
        detector = DriftDetector(graph_client, threshold=0.5)

        check = await detector.check("same topic", "proj__main", {"f1", "f2"})

        assert check is not None and not check.drifted

    def test_threshold_is_strict(self, graph_client):
        detector = DriftDetector(graph_client, threshold=0.5)
        assert not detector.evaluate({"a", "b"}, {"b", "c", "a", "d"}).drifted

    @pytest.mark.asyncio
    async def test_search_failure_returns_none(self, graph_client):
        graph_client.search_facts = AsyncMock(side_effect=GraphToolError("search_memory_facts"))
        detector = DriftDetector(graph_client)

        assert await detector.check("anything", "proj__main", {"f1"}) is None
