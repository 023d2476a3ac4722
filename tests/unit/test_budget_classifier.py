"""Unit tests for budget arithmetic and the fact tier classifier."""

import pytest
from factories import NOW, iso_days_ago, make_fact

from graphiti_memory.core.enums import FactTier
from graphiti_memory.retrieval.budget import (
    calculate_injection_budget,
    select_within_budget,
    split_budget,
    split_tiers,
    truncate,
)
from graphiti_memory.retrieval.classifier import FactClassifier, classify_facts
from graphiti_memory.retrieval.normalizer import format_fact_line


class TestSplitBudget:
    @pytest.mark.parametrize(
        ("total", "ratio", "expected"),
        [(1000, 0.7, (700, 300)), (10, 0.7, (7, 3)), (0, 0.7, (0, 0)), (999, 1.0, (999, 0))],
    )
    def test_split(self, total, ratio, expected):
        assert split_budget(total, ratio) == expected

    @pytest.mark.parametrize("total", [1, 3, 17, 333, 12345])
    def test_conservation(self, total):
        a, b = split_budget(total, 0.7)
        assert a >= 0 and b >= 0 and a + b == total

    def test_tiers_background_takes_remainder(self):
        assert split_tiers(700, 0.4, 0.35) == (280, 245, 175)
        assert sum(split_tiers(101, 0.4, 0.35)) == 101

    @pytest.mark.parametrize(("total", "ratio", "expected"), [(700, 0.35, 245), (100, 0.29, 29), (3, 0.7, 2)])
    def test_exact_products_are_not_rounded_down(self, total, ratio, expected):
        assert split_budget(total, ratio)[0] == expected


class TestSelectWithinBudget:
    def test_zero_budget_selects_nothing(self):
        assert select_within_budget(["a"], ["x"], 0) == []

    def test_oversized_line_skipped_not_truncated(self):
        lines = ["x" * 50, "short"]
        assert select_within_budget(lines, ["big", "small"], 10) == ["small"]

    def test_budget_exhaustion_never_exceeds_budget(self):
        facts = [make_fact(f"f{i}", "y" * 66) for i in range(100)]
        lines = [format_fact_line(f) for f in facts]
        selected = select_within_budget(lines, facts, 2000)
        used = sum(len(format_fact_line(f)) + 1 for f in selected)
        assert used <= 2000
        assert len(selected) == 2000 // (len(lines[0]) + 1)

    def test_truncate_is_prefix_cut(self):
        assert truncate("abcdef", 3) == "abc"
        assert truncate("abc", -1) == ""

    def test_injection_budget_from_context_window(self):
        assert calculate_injection_budget(200_000) == 40_000
        assert calculate_injection_budget(200_000, ratio=0.1, chars_per_token=4) == 80_000


class TestFactClassifier:
    def test_decision_keywords(self):
        facts = [
            make_fact("f1", "The system must use a microservices architecture"),
            make_fact("f2", "Database schema includes users table"),
            make_fact("f3", "Decided to use PostgreSQL instead of MySQL"),
            make_fact("f4", "Team agreed on REST API design"),
        ]
        assert len(classify_facts(facts, NOW).decisions) == 4

    def test_keywords_match_whole_words_only(self):
        facts = [make_fact("f1", "The user prefers dark mode"), make_fact("f2", "Musty basement")]
        result = classify_facts(facts, NOW)
        assert len(result.background) == 2

    def test_case_insensitive(self):
        assert FactClassifier().tier_of(make_fact("f1", "NEVER deploy on Fridays"), NOW) == FactTier.DECISION

    def test_active_by_recency(self):
        facts = [
            make_fact("f1", "Recent update", valid_at="2026-02-10T00:00:00Z"),
            make_fact("f2", "Older update", valid_at="2025-12-01T00:00:00Z"),
        ]
        result = classify_facts(facts, NOW)
        assert [f.uuid for f in result.active] == ["f1"]
        assert [f.uuid for f in result.background] == ["f2"]

    def test_decision_wins_over_recency(self):
        fact = make_fact("f1", "We chose Redis", valid_at=iso_days_ago(1))
        assert FactClassifier().tier_of(fact, NOW) == FactTier.DECISION

    def test_mixed_partition_is_exhaustive_and_disjoint(self):
        facts = [
            make_fact("f1", "System should use microservices"),
            make_fact("f2", "Recent change", valid_at="2026-02-10T00:00:00Z"),
            make_fact("f3", "Decided to use TypeScript"),
            make_fact("f4", "Must be GDPR compliant"),
            make_fact("f5", "User mentioned preferences"),
        ]
        result = classify_facts(facts, NOW)
        assert (len(result.decisions), len(result.active), len(result.background)) == (3, 1, 1)
        ids = [f.uuid for tier in FactTier for f in result.tier(tier)]
        assert sorted(ids) == sorted(f.uuid for f in facts)
        assert len(result) == len(facts)

    def test_custom_keywords_and_window(self):
        classifier = FactClassifier(keywords=("ticket",), active_window_days=30)
        assert classifier.tier_of(make_fact("f1", "Ticket opened"), NOW) == FactTier.DECISION
        assert classifier.tier_of(make_fact("f2", "x", valid_at=iso_days_ago(20)), NOW) == FactTier.ACTIVE

    def test_empty_input(self):
        assert len(classify_facts([], NOW)) == 0
