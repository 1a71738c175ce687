"""
state_machine.py — Level-of-detail state machine of the map client.

States are the three levels (regions, departements, communes). Each carries
an optional parent filter and the active criterion.

Transitions
───────────
  zoom below the départements band      → regions, parent cleared
  zoom into the départements band       → departements (only from regions,
                                          no parent)
  click region                          → departements(parent=region)
  click département                     → communes(parent=département)
  click commune                         → detail (terminal, nothing reloads)
  breadcrumb France / region / dépt     → regions / departements / communes
  criterion change                      → reload current level and parent

Communes are never entered by zooming: a commune query needs a bounding
parent, which only a click or a navigation supplies.

Loads run as asyncio tasks. Every transition bumps a sequence token and a
response is drawn only if its token is still the latest one, so a slow
answer for a level the user already left never overwrites a newer one. A
failed load leaves the previous layers on screen.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from terrimap.client.api import GeoApiClient
from terrimap.client.config import (
    CAMERA_DURATION_MS,
    DEFAULT_ZOOM,
    FIT_PADDING,
    FRANCE_CENTER,
    ZOOM_THRESHOLDS,
)
from terrimap.client.hover import HoverTracker
from terrimap.client.registry import CriteriaRegistry
from terrimap.client.renderer import LayerManager, MapRenderer, feature_bounds, source_id
from terrimap.models.geo import LevelPath

logger = logging.getLogger(__name__)

FRANCE = "france"


@dataclass(frozen=True)
class BreadcrumbItem:
    level: str                 # "france" | "region" | "department"
    name: str
    code: Optional[str] = None


_HOME = BreadcrumbItem(level=FRANCE, name="France")


class MapStateMachine:
    def __init__(self, api: GeoApiClient, renderer: MapRenderer, registry: CriteriaRegistry):
        self.api = api
        self.renderer = renderer
        self.registry = registry
        self.layers = LayerManager(renderer)
        self.hover = HoverTracker(renderer)

        self.level = LevelPath.REGIONS
        self.parent_code: Optional[str] = None
        self.criterion_id: Optional[str] = None
        self.breadcrumb: list[BreadcrumbItem] = [_HOME]
        self.selected: Optional[dict] = None
        self.detail: Optional[dict] = None
        self.last_error: Optional[Exception] = None

        self.collections: dict[LevelPath, dict] = {}
        self.drawn_level: Optional[LevelPath] = None   # level whose layers are on screen
        self._hover_source: Optional[str] = None
        self._token = 0
        self._task: Optional[asyncio.Task] = None

    # ── Loading ───────────────────────────────────────────────────────────────

    @property
    def token(self) -> int:
        return self._token

    def _transition(self, level: LevelPath, parent_code: Optional[str]) -> asyncio.Task:
        self.level = level
        self.parent_code = parent_code
        self.selected = None
        self._token += 1
        logger.debug("→ %s parent=%s (token %d)", level.value, parent_code, self._token)
        self._task = asyncio.create_task(self._load(self._token, level, parent_code, self.criterion_id))
        return self._task

    async def _load(
        self,
        token: int,
        level: LevelPath,
        parent_code: Optional[str],
        criterion_id: Optional[str],
    ) -> None:
        try:
            collection = await self.api.fetch_geojson(level, parent=parent_code, criterion=criterion_id)
        except httpx.HTTPError as exc:
            if token == self._token:
                self.last_error = exc
            logger.warning("Loading %s (parent=%s) failed, keeping previous layer: %s", level.value, parent_code, exc)
            return

        if token != self._token:
            logger.debug("Discarding stale %s response (token %d < %d)", level.value, token, self._token)
            return

        self.last_error = None
        src = source_id(level)
        self.hover.forget(src)
        if self._hover_source == src:
            self._hover_source = None
        self.layers.replace(level, collection, self.registry.get(criterion_id))
        self.collections[level] = collection
        self.drawn_level = level

    async def idle(self) -> None:
        """Wait for the latest scheduled load (tests and scripted navigation)."""
        if self._task is not None:
            await self._task

    def start(self) -> asyncio.Task:
        """Initial load: all regions, no parent."""
        self.breadcrumb = [_HOME]
        return self._transition(LevelPath.REGIONS, None)

    # ── Camera ────────────────────────────────────────────────────────────────

    def _fit_to(self, level: LevelPath, code: str, geometry: Optional[dict] = None) -> None:
        if geometry is not None:
            candidates = [{"geometry": geometry}]
        else:
            features = self.collections.get(level, {}).get("features", [])
            candidates = [f for f in features if f.get("id") == code]
        bounds = feature_bounds(candidates)
        if bounds is not None:
            self.renderer.fit_bounds(bounds, padding=FIT_PADDING, duration=CAMERA_DURATION_MS)

    # ── Events ────────────────────────────────────────────────────────────────

    def on_zoom(self, zoom: float) -> Optional[asyncio.Task]:
        departements_min = ZOOM_THRESHOLDS[LevelPath.DEPARTEMENTS][0]
        if zoom < departements_min:
            if self.level == LevelPath.REGIONS and self.parent_code is None:
                return None
            self.breadcrumb = [_HOME]
            return self._transition(LevelPath.REGIONS, None)
        if self.level == LevelPath.REGIONS:
            return self._transition(LevelPath.DEPARTEMENTS, None)
        return None

    def on_click(self, feature: dict) -> Optional[asyncio.Task]:
        props = feature.get("properties") or {}
        code = props.get("code") or feature.get("id")
        name = props.get("name", code)
        level = props.get("level")

        if level == "region":
            self._fit_to(LevelPath.REGIONS, code, feature.get("geometry"))
            self.breadcrumb = [_HOME, BreadcrumbItem("region", name, code)]
            return self._transition(LevelPath.DEPARTEMENTS, code)

        if level == "department":
            self._fit_to(LevelPath.DEPARTEMENTS, code, feature.get("geometry"))
            regions = [item for item in self.breadcrumb if item.level == "region"]
            self.breadcrumb = [_HOME, *regions, BreadcrumbItem("department", name, code)]
            return self._transition(LevelPath.COMMUNES, code)

        if level == "commune":
            self.selected = props
            self.detail = None
            self._task = asyncio.create_task(self._load_detail(code))
            return self._task

        logger.debug("Click on feature without a known level ignored: %s", props)
        return None

    async def _load_detail(self, code: str) -> None:
        try:
            detail = await self.api.fetch_territory(code)
        except httpx.HTTPError as exc:
            logger.warning("Loading detail of %s failed: %s", code, exc)
            return
        if self.selected is not None and self.selected.get("code") == code:
            self.detail = detail

    def on_breadcrumb(self, index: int) -> Optional[asyncio.Task]:
        if not 0 <= index < len(self.breadcrumb):
            raise IndexError(f"breadcrumb index {index} out of range")
        item = self.breadcrumb[index]

        if item.level == FRANCE:
            self.renderer.fly_to(FRANCE_CENTER, DEFAULT_ZOOM, duration=CAMERA_DURATION_MS)
            self.breadcrumb = [_HOME]
            return self._transition(LevelPath.REGIONS, None)

        self.breadcrumb = self.breadcrumb[:index + 1]
        if item.level == "region":
            self._fit_to(LevelPath.REGIONS, item.code)
            return self._transition(LevelPath.DEPARTEMENTS, item.code)
        self._fit_to(LevelPath.DEPARTEMENTS, item.code)
        return self._transition(LevelPath.COMMUNES, item.code)

    def on_hover(self, feature_id, source: Optional[str] = None) -> None:
        """
        Hover *feature_id* of *source*, by default the layer on screen.

        While a transition is loading, the pointer is still over the
        previous level's features, not over self.level's.
        """
        if source is None:
            if self.drawn_level is None:
                return
            source = source_id(self.drawn_level)
        if self._hover_source is not None and self._hover_source != source:
            self.hover.leave(self._hover_source)
        self.hover.enter(source, feature_id)
        self._hover_source = source

    def on_hover_end(self) -> None:
        if self._hover_source is not None:
            self.hover.leave(self._hover_source)
            self._hover_source = None

    def set_criterion(self, criterion_id: Optional[str]) -> asyncio.Task:
        if criterion_id is not None and criterion_id not in self.registry:
            raise KeyError(f"Unknown criterion '{criterion_id}'")
        self.criterion_id = criterion_id
        return self._transition(self.level, self.parent_code)

    def navigate_to(
        self,
        region: Optional[BreadcrumbItem] = None,
        department: Optional[BreadcrumbItem] = None,
    ) -> asyncio.Task:
        """URL-style navigation: the deepest given territory decides the level."""
        crumbs = [_HOME]
        if region is not None:
            crumbs.append(BreadcrumbItem("region", region.name, region.code))
        if department is not None:
            crumbs.append(BreadcrumbItem("department", department.name, department.code))
        self.breadcrumb = crumbs

        if department is not None:
            return self._transition(LevelPath.COMMUNES, department.code)
        if region is not None:
            return self._transition(LevelPath.DEPARTEMENTS, region.code)
        return self._transition(LevelPath.REGIONS, None)
