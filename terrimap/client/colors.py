"""
colors.py — Choropleth colours for a criterion's 0–100 scores.

Scores are mapped onto the criterion's three-stop ramp (low → mid → high).
For a lower-is-better criterion the ramp is walked backwards, so the "good"
end of the ramp always lands on the good scores.

build_fill_color() returns a MapLibre `fill-color` expression:

    ["case",
       hover?            → HOVER_COLOR,
       no criterionScore → NO_DATA_COLOR,
       interpolate(linear, criterionScore, 0 → c0, 10 → c1, ... 100 → c10)]
"""

import math
import re
from typing import Optional

from terrimap.client.config import DEFAULT_COLOR, HOVER_COLOR, NO_DATA_COLOR
from terrimap.models.criteria import Criterion

_HEX = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)
_FALLBACK_RGB = (128, 128, 128)


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    match = _HEX.match(color)
    if not match:
        return _FALLBACK_RGB
    return tuple(int(part, 16) for part in match.groups())


def _rgb_to_hex(rgb: tuple[int, int, int]) -> str:
    return "#" + "".join(f"{channel:02x}" for channel in rgb)


def _mix(color1: str, color2: str, t: float) -> str:
    rgb1, rgb2 = _hex_to_rgb(color1), _hex_to_rgb(color2)
    return _rgb_to_hex(tuple(math.floor(a + (b - a) * t + 0.5) for a, b in zip(rgb1, rgb2)))


def interpolate_color(score: float, criterion: Criterion) -> str:
    """Colour of *score* (clamped to 0–100) on *criterion*'s ramp."""
    normalized = max(0.0, min(100.0, score)) / 100
    position = normalized if criterion.higher_is_better else 1 - normalized
    scale = criterion.color_scale
    if position <= 0.5:
        return _mix(scale.low, scale.mid, position * 2)
    return _mix(scale.mid, scale.high, (position - 0.5) * 2)


def generate_color_stops(criterion: Criterion, steps: int = 10) -> list[tuple[float, str]]:
    """`steps + 1` evenly spaced (score, colour) stops from 0 to 100."""
    if steps < 1:
        raise ValueError("steps must be positive")
    return [
        (i / steps * 100, interpolate_color(i / steps * 100, criterion))
        for i in range(steps + 1)
    ]


def build_fill_color(criterion: Optional[Criterion]) -> list:
    hover = ["boolean", ["feature-state", "hover"], False]
    if criterion is None:
        return ["case", hover, HOVER_COLOR, DEFAULT_COLOR]

    stops = []
    for score, color in generate_color_stops(criterion):
        stops.extend([score, color])
    return [
        "case",
        hover, HOVER_COLOR,
        ["!", ["has", "criterionScore"]], NO_DATA_COLOR,
        ["interpolate", ["linear"], ["get", "criterionScore"], *stops],
    ]
