"""
Tests for ballot tabulation and tie-break.

Validates:
- Outright winner
- Tie broken by lowest cost
- Equal-cost tie broken by lowest option id
- Ballots outside the category are rejected
"""

from __future__ import annotations

import pytest

from bean_republic.simulation.engine import tabulate
from bean_republic.simulation.errors import InvalidReference
from bean_republic.simulation.schema import PolicyCategory, PolicyOption, VoteTally


def _category(cost_1: int, cost_2: int, cost_3: int) -> PolicyCategory:
    return PolicyCategory(
        id="access",
        name="Access to Education",
        options=[
            PolicyOption(id=1, title="Separate", cost=cost_1),
            PolicyOption(id=2, title="Quotas", cost=cost_2),
            PolicyOption(id=3, title="Full", cost=cost_3),
        ],
    )


def _tally(**ballots: int) -> VoteTally:
    return VoteTally(category_id="access", ballots=ballots)


class TestTabulate:
    """Test vote counting and winner selection."""

    def test_tie_goes_to_lower_cost(self):
        category = _category(2, 1, 3)
        result = tabulate(category, _tally(s1=1, s2=1, s3=2, user=2))
        assert result.counts == {1: 2, 2: 2, 3: 0}
        assert result.max_count == 2
        assert result.leaders == [1, 2]
        assert result.winner == 2
        assert result.tie_broken

    def test_outright_winner_skips_tie_break(self):
        category = _category(1, 2, 3)
        result = tabulate(category, _tally(s1=3, s2=3, s3=3, user=1))
        assert result.counts == {1: 1, 2: 0, 3: 3}
        assert result.winner == 3
        assert result.leaders == [3]
        assert not result.tie_broken

    def test_equal_cost_tie_goes_to_lowest_id(self):
        category = _category(2, 2, 1)
        result = tabulate(category, _tally(s1=2, s2=1, user=3, s3=3, s4=2, s5=1))
        # Three-way tie: option 3 is cheapest.
        assert result.winner == 3

        result = tabulate(category, _tally(s1=2, s2=1, user=2, s3=1))
        assert result.leaders == [1, 2]
        assert result.winner == 1

    def test_tie_break_is_stable_across_ballot_order(self):
        category = _category(2, 2, 2)
        a = tabulate(category, _tally(s1=3, s2=2, user=1))
        b = tabulate(category, _tally(user=1, s2=2, s1=3))
        assert a.winner == b.winner == 1

    def test_single_ballot(self):
        result = tabulate(_category(3, 2, 1), _tally(user=2))
        assert result.winner == 2
        assert not result.tie_broken

    def test_ballot_for_unknown_option_rejected(self):
        with pytest.raises(InvalidReference):
            tabulate(_category(1, 2, 3), _tally(s1=7, user=1))
