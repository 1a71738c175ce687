"""
ranking.py — Dense national ranks for one criterion.

Entries are ordered by value (descending when higher is better, ascending
otherwise) and ranked 1..n by position. Python's sort is stable, so
territories with equal values keep their input order: with
{"A": 10, "B": 5, "C": 10} and higher_is_better=True, A gets 1, C gets 2
and B gets 3. The result is always a bijection onto 1..n.

Pass tie_break="code" to order equal values by territory code instead,
which makes ranks independent of how the source happened to list them.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

TieBreak = Literal["input", "code"]


def rank(
    values: Mapping[str, float],
    higher_is_better: bool,
    tie_break: TieBreak = "input",
) -> dict[str, int]:
    """Return {territory_code: rank}, rank 1 being the best value."""
    entries = list(values.items())
    if tie_break == "code":
        entries.sort(key=lambda item: item[0])
    elif tie_break != "input":
        raise ValueError(f"Unknown tie_break '{tie_break}'")

    entries.sort(key=lambda item: item[1], reverse=higher_is_better)
    return {code: position for position, (code, _) in enumerate(entries, start=1)}
