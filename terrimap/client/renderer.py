"""
renderer.py — The map surface as seen by the client state machine.

MapRenderer is the narrow slice of a MapLibre-like map the client needs.
LayerManager owns the four objects drawn per level and keeps their order
fixed:

    remove:  highlight → line → fill → source
    add:     source → fill → line → highlight

All four share the level's id prefix (`communes-source`, `communes-fill`,
...), so a reload at the same level replaces rather than stacks layers.
"""

import logging
from collections.abc import Iterable
from typing import Any, Optional, Protocol

from terrimap.client.colors import build_fill_color
from terrimap.client.config import FILL_OPACITY, HIGHLIGHT_COLOR, ZOOM_THRESHOLDS
from terrimap.models.criteria import Criterion
from terrimap.models.geo import LevelPath

logger = logging.getLogger(__name__)

Bounds = tuple[tuple[float, float], tuple[float, float]]


class MapRenderer(Protocol):
    def has_source(self, source_id: str) -> bool: ...
    def add_source(self, source_id: str, spec: dict) -> None: ...
    def remove_source(self, source_id: str) -> None: ...
    def has_layer(self, layer_id: str) -> bool: ...
    def add_layer(self, spec: dict) -> None: ...
    def remove_layer(self, layer_id: str) -> None: ...
    def set_feature_state(self, source_id: str, feature_id: Any, state: dict) -> None: ...
    def fit_bounds(self, bounds: Bounds, padding: int, duration: int) -> None: ...
    def fly_to(self, center: tuple[float, float], zoom: float, duration: int) -> None: ...


def source_id(level: LevelPath) -> str:
    return f"{level.value}-source"


def layer_ids(level: LevelPath) -> tuple[str, str, str]:
    """(fill, line, highlight) layer ids for *level*."""
    return f"{level.value}-fill", f"{level.value}-line", f"{level.value}-highlight"


def _outer_rings(geometry: Optional[dict]) -> Iterable[list]:
    if not geometry:
        return []
    if geometry.get("type") == "Polygon":
        return geometry["coordinates"][:1]
    if geometry.get("type") == "MultiPolygon":
        return [polygon[0] for polygon in geometry["coordinates"] if polygon]
    return []


def feature_bounds(features: Iterable[dict]) -> Optional[Bounds]:
    """South-west / north-east corners around the outer rings of *features*."""
    lngs: list[float] = []
    lats: list[float] = []
    for feature in features:
        for ring in _outer_rings(feature.get("geometry")):
            for lng, lat, *_ in ring:
                lngs.append(lng)
                lats.append(lat)
    if not lngs:
        return None
    return (min(lngs), min(lats)), (max(lngs), max(lats))


class LayerManager:
    def __init__(self, renderer: MapRenderer):
        self.renderer = renderer

    def remove(self, level: LevelPath) -> None:
        fill_id, line_id, highlight_id = layer_ids(level)
        for layer_id in (highlight_id, line_id, fill_id):
            if self.renderer.has_layer(layer_id):
                self.renderer.remove_layer(layer_id)
        if self.renderer.has_source(source_id(level)):
            self.renderer.remove_source(source_id(level))

    def replace(self, level: LevelPath, collection: dict, criterion: Optional[Criterion]) -> None:
        """Swap *level*'s source and layers for *collection*, painted for *criterion*."""
        self.remove(level)

        src = source_id(level)
        fill_id, line_id, highlight_id = layer_ids(level)
        min_zoom, max_zoom = ZOOM_THRESHOLDS[level]
        zoom_range = {"minzoom": min_zoom, "maxzoom": max_zoom}

        self.renderer.add_source(src, {"type": "geojson", "data": collection, "promoteId": "id"})
        self.renderer.add_layer({
            "id": fill_id, "type": "fill", "source": src,
            "paint": {"fill-color": build_fill_color(criterion), "fill-opacity": FILL_OPACITY},
            **zoom_range,
        })
        self.renderer.add_layer({
            "id": line_id, "type": "line", "source": src,
            "paint": {
                "line-color": "#000000",
                "line-width": ["interpolate", ["linear"], ["zoom"], 5, 0.5, 10, 1.5],
                "line-opacity": 0.3,
            },
            **zoom_range,
        })
        self.renderer.add_layer({
            "id": highlight_id, "type": "line", "source": src,
            "paint": {
                "line-color": HIGHLIGHT_COLOR,
                "line-width": 2,
                "line-opacity": ["case", ["boolean", ["feature-state", "hover"], False], 1, 0],
            },
            **zoom_range,
        })
        logger.debug("Layers for %s replaced (%d features)", level.value, len(collection.get("features", [])))
