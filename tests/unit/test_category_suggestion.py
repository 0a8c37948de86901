"""
Tests for Category Learning
============================

Ranking of categorized history rows against a new description/amount.
"""

import uuid
from decimal import Decimal

from spare_finance.api.categories.suggestion import normalize_description, rank_candidates

GROCERIES = uuid.uuid4()
DINING = uuid.uuid4()
WEEKLY = uuid.uuid4()


def rows(category_id, amounts, description="corner market", subcategory_id=None):
    return [(description, Decimal(a), category_id, subcategory_id) for a in amounts]


class TestNormalizeDescription:

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_description("  Corner   MARKET \t#12 ") == "corner market #12"

    def test_empty_values(self):
        assert normalize_description(None) == ""
        assert normalize_description("   ") == ""


class TestRankCandidates:
    """Confidence levels and match types."""

    def test_no_history(self):
        assert rank_candidates([], "corner market", Decimal("10")) is None

    def test_other_descriptions_do_not_match(self):
        history = rows(GROCERIES, ["10", "10", "10"], description="bakery")
        assert rank_candidates(history, "corner market", Decimal("10")) is None

    def test_three_exact_matches_are_high(self):
        suggestion = rank_candidates(rows(GROCERIES, ["42.00"] * 3), "corner market", Decimal("42"))

        assert suggestion.category_id == GROCERIES
        assert suggestion.confidence == "high"
        assert suggestion.match_type == "description_and_amount"
        assert suggestion.match_count == 3

    def test_amount_tolerance_is_under_one_cent(self):
        history = rows(GROCERIES, ["42.005", "42.005", "42.005"])
        assert rank_candidates(history, "corner market", Decimal("42")).confidence == "high"

        history = rows(GROCERIES, ["42.01", "42.01", "42.01"])
        assert rank_candidates(history, "corner market", Decimal("42")).match_type == "description_only"

    def test_five_description_matches_are_high(self):
        history = rows(GROCERIES, ["10", "20", "30", "40", "50"])
        suggestion = rank_candidates(history, "corner market", Decimal("99"))

        assert suggestion.confidence == "high"
        assert suggestion.match_type == "description_only"
        assert suggestion.match_count == 5

    def test_medium_and_low(self):
        medium = rank_candidates(rows(GROCERIES, ["8", "8"]), "corner market", Decimal("8"))
        assert medium.confidence == "medium"
        assert medium.match_type == "description_and_amount"

        low = rank_candidates(rows(GROCERIES, ["8"]), "corner market", Decimal("8"))
        assert low.confidence == "low"
        assert low.match_count == 1

    def test_exact_matches_outweigh_description_matches(self):
        history = rows(DINING, ["5", "6"]) + rows(GROCERIES, ["12.99", "12.99"])
        suggestion = rank_candidates(history, "corner market", Decimal("12.99"))

        assert suggestion.category_id == GROCERIES
        assert suggestion.confidence == "medium"

    def test_subcategory_is_part_of_the_group(self):
        history = rows(GROCERIES, ["3"] * 3, subcategory_id=WEEKLY)
        suggestion = rank_candidates(history, "corner market", Decimal("3"))

        assert suggestion.subcategory_id == WEEKLY

    def test_first_seen_group_wins_between_high_matches(self):
        # DINING is seen first through an unrelated description
        history = (
            rows(DINING, ["1"], description="bakery")
            + rows(GROCERIES, ["7"] * 3)
            + rows(DINING, ["7"] * 3)
        )
        suggestion = rank_candidates(history, "corner market", Decimal("7"))

        assert suggestion.category_id == DINING
        assert suggestion.confidence == "high"

    def test_rows_without_description_are_ignored(self):
        history = [(None, Decimal("7"), DINING, None)] + rows(GROCERIES, ["7"] * 3) + rows(DINING, ["7"] * 3)
        assert rank_candidates(history, "corner market", Decimal("7")).category_id == GROCERIES
