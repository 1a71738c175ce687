"""Hover feature-state bookkeeping: at most one hovered feature per source."""

from typing import Any, Optional

from terrimap.client.renderer import MapRenderer


class HoverTracker:
    def __init__(self, renderer: MapRenderer):
        self.renderer = renderer
        self._hovered: dict[str, Any] = {}

    def hovered(self, source_id: str) -> Optional[Any]:
        return self._hovered.get(source_id)

    def enter(self, source_id: str, feature_id: Any) -> None:
        if feature_id is None:
            return
        current = self._hovered.get(source_id)
        if current == feature_id:
            return
        if current is not None:
            self.renderer.set_feature_state(source_id, current, {"hover": False})
        self._hovered[source_id] = feature_id
        self.renderer.set_feature_state(source_id, feature_id, {"hover": True})

    def leave(self, source_id: str) -> None:
        current = self._hovered.pop(source_id, None)
        if current is not None:
            self.renderer.set_feature_state(source_id, current, {"hover": False})

    def forget(self, source_id: str) -> None:
        """Drop state for a source that was removed (its feature states went with it)."""
        self._hovered.pop(source_id, None)
