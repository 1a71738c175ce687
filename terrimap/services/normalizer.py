"""
normalizer.py — Percentile-clipped min-max scoring of raw criterion values.

Raw measurements arrive in arbitrary units (°C, €/m², ‰ ...). Each one is
mapped onto a 0–100 score against the whole population of its criterion:

    p2, p98 = values at sorted indexes floor(n*0.02), floor(n*0.98)
    raw     = clip((value - p2) / (p98 - p2) * 100, 0, 100)
    score   = round(raw)            if higher is better
              round(100 - raw)      otherwise

Clipping at the 2nd/98th percentiles absorbs data-entry outliers (a single
commune with a 10× value) without compressing the useful range for every
other territory. Scores are only comparable within one normalization batch,
so always score a criterion's entire population at once, preferably through
normalize_population().

USAGE
─────
    from terrimap.services.normalizer import normalize, normalize_population

    normalize(55, [10, 20, 30, 40, 50, 60, 70, 80, 90, 100], True)   # → 50
    normalize_population({"75056": 11.2, "13055": 15.8}, True)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping

from terrimap.core.errors import DegenerateDataError

logger = logging.getLogger(__name__)

_LOW_PERCENTILE = 0.02
_HIGH_PERCENTILE = 0.98

# Score given to every territory when the population carries no signal.
NEUTRAL_SCORE = 50


def percentile_bounds(population: Iterable[float]) -> tuple[float, float]:
    """
    Return (p2, p98) of *population* by index, without interpolation.

    Raises ValueError for an empty population and DegenerateDataError
    when p2 == p98.
    """
    ordered = sorted(population)
    n = len(ordered)
    if n == 0:
        raise ValueError("cannot compute percentiles of an empty population")

    p2 = ordered[math.floor(n * _LOW_PERCENTILE)]
    p98 = ordered[math.floor(n * _HIGH_PERCENTILE)]
    if p98 == p2:
        raise DegenerateDataError(p2, n)
    return p2, p98


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def score_between(value: float, p2: float, p98: float, higher_is_better: bool) -> int:
    """Score *value* against precomputed, non-degenerate bounds."""
    raw = (value - p2) / (p98 - p2) * 100
    raw = max(0.0, min(100.0, raw))
    return _round_half_up(raw if higher_is_better else 100 - raw)


def normalize(value: float, population: Iterable[float], higher_is_better: bool) -> int:
    """
    Convert *value* into an integer score in [0, 100] relative to *population*.

    An empty or constant population yields NEUTRAL_SCORE for every input.
    """
    try:
        p2, p98 = percentile_bounds(population)
    except (ValueError, DegenerateDataError):
        return NEUTRAL_SCORE
    return score_between(value, p2, p98, higher_is_better)


def normalize_population(
    values: Mapping[str, float],
    higher_is_better: bool,
) -> tuple[dict[str, int], bool]:
    """
    Score every entry of *values* in one batch.

    Returns (scores keyed like *values*, degenerate flag). A degenerate
    population is not an error: every territory gets NEUTRAL_SCORE and the
    flag lets the caller report it in the run summary.
    """
    if not values:
        return {}, False

    try:
        p2, p98 = percentile_bounds(values.values())
    except DegenerateDataError as exc:
        logger.warning("%s — every territory scored %d", exc, NEUTRAL_SCORE)
        return {code: NEUTRAL_SCORE for code in values}, True

    logger.debug("Normalizing %d values between p2=%s and p98=%s", len(values), p2, p98)
    scores = {
        code: score_between(value, p2, p98, higher_is_better)
        for code, value in values.items()
    }
    return scores, False
