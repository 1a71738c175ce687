"""
Map client constants: camera defaults, zoom bands per level and colours.

Zoom bands are [min, max) in MapLibre zoom units; each level's layers are
only drawn inside its band.
"""

from terrimap.models.geo import LevelPath

FRANCE_CENTER = (2.2137, 46.2276)
DEFAULT_ZOOM = 5

ZOOM_THRESHOLDS = {
    LevelPath.REGIONS: (0, 6),
    LevelPath.DEPARTEMENTS: (6, 9),
    LevelPath.COMMUNES: (9, 18),
}

# ── Paint ─────────────────────────────────────────────────────────────────────
NO_DATA_COLOR = "#e2e8f0"
HOVER_COLOR = "#4CAF50"
DEFAULT_COLOR = "#2196F3"
HIGHLIGHT_COLOR = "#FFC107"
FILL_OPACITY = 0.6

FIT_PADDING = 50
CAMERA_DURATION_MS = 1000
