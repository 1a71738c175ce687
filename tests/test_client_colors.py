"""
test_client_colors.py — Score → colour mapping and the fill-color expression.

Run:
    pytest tests/test_client_colors.py -v
"""

import pytest

from terrimap.client.colors import build_fill_color, generate_color_stops, interpolate_color
from terrimap.client.config import DEFAULT_COLOR, HOVER_COLOR, NO_DATA_COLOR
from terrimap.models.criteria import ColorScale, Criterion

GREYS = ColorScale(low="#000000", mid="#646464", high="#c8c8c8")


def _criterion(higher_is_better=True):
    return Criterion(id="c", name="C", higher_is_better=higher_is_better, color_scale=GREYS)


class TestInterpolateColor:

    @pytest.mark.parametrize("score,expected", [
        (0, "#000000"),
        (25, "#323232"),
        (50, "#646464"),
        (75, "#969696"),
        (100, "#c8c8c8"),
    ])
    def test_higher_is_better_walks_low_to_high(self, score, expected):
        assert interpolate_color(score, _criterion()) == expected

    def test_lower_is_better_is_inverted(self):
        criterion = _criterion(higher_is_better=False)
        assert interpolate_color(0, criterion) == "#c8c8c8"
        assert interpolate_color(100, criterion) == "#000000"
        assert interpolate_color(50, criterion) == "#646464"

    def test_scores_are_clamped(self):
        assert interpolate_color(140, _criterion()) == "#c8c8c8"
        assert interpolate_color(-3, _criterion()) == "#000000"

    def test_channels_round_half_up(self):
        faint = Criterion(id="f", name="F", color_scale=ColorScale(low="#000000", mid="#010101", high="#030303"))
        assert interpolate_color(25, faint) == "#010101"   # 0.5 rounds up


class TestColorStops:

    def test_eleven_stops_by_default(self):
        stops = generate_color_stops(_criterion())
        assert [score for score, _ in stops] == [i * 10.0 for i in range(11)]
        assert stops[0][1] == "#000000" and stops[-1][1] == "#c8c8c8"

    def test_invalid_steps(self):
        with pytest.raises(ValueError):
            generate_color_stops(_criterion(), steps=0)


class TestFillColorExpression:

    def test_without_criterion(self):
        expr = build_fill_color(None)
        assert expr == ["case", ["boolean", ["feature-state", "hover"], False], HOVER_COLOR, DEFAULT_COLOR]

    def test_missing_score_painted_as_no_data(self):
        expr = build_fill_color(_criterion())
        assert expr[0] == "case"
        assert expr[2] == HOVER_COLOR
        assert expr[3] == ["!", ["has", "criterionScore"]]
        assert expr[4] == NO_DATA_COLOR

    def test_interpolation_over_score(self):
        interpolate = build_fill_color(_criterion())[5]
        assert interpolate[:3] == ["interpolate", ["linear"], ["get", "criterionScore"]]
        stops = interpolate[3:]
        assert len(stops) == 22
        assert stops[:2] == [0.0, "#000000"]
        assert stops[-2:] == [100.0, "#c8c8c8"]
