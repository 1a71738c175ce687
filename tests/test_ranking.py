"""
test_ranking.py — National ranks.

Run:
    pytest tests/test_ranking.py -v
"""

import random

import pytest

from terrimap.services.ranking import rank


class TestRank:

    def test_ties_keep_input_order(self):
        assert rank({"A": 10, "B": 5, "C": 10}, higher_is_better=True) == {"A": 1, "C": 2, "B": 3}

    def test_lower_is_better_ranks_ascending(self):
        assert rank({"A": 10, "B": 5, "C": 7}, higher_is_better=False) == {"B": 1, "C": 2, "A": 3}

    def test_tie_break_by_code(self):
        ranks = rank({"C": 10, "B": 5, "A": 10}, higher_is_better=True, tie_break="code")
        assert ranks == {"A": 1, "C": 2, "B": 3}

    def test_unknown_tie_break_rejected(self):
        with pytest.raises(ValueError):
            rank({"A": 1}, True, tie_break="random")

    def test_bijection_onto_one_to_n(self):
        rng = random.Random(7)
        values = {f"{i:05d}": float(rng.randint(0, 20)) for i in range(500)}
        for higher_is_better in (True, False):
            ranks = rank(values, higher_is_better)
            assert sorted(ranks.values()) == list(range(1, len(values) + 1))
            assert set(ranks) == set(values)

    def test_empty(self):
        assert rank({}, True) == {}
