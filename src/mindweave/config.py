"""Configuration constants for mindweave."""

import os
from pathlib import Path

# Directory holding mind-map snapshots. First directory which is found is used.
DOCUMENT_DIRECTORIES: list[Path] = [
    Path("~/.local/share/mindweave").expanduser(),
    Path("~/.mindweave").expanduser(),
    Path("~/.config/mindweave").expanduser(),
]

DEFAULT_DOCUMENT_NAME = "mindmap.json"

# Environment override for the document the MCP server works on.
DOCUMENT_ENV_VAR = "MINDWEAVE_DOCUMENT"

# --- Node geometry ---

# Used only until a view reports the rendered size of a node.
DEFAULT_NODE_WIDTH = 80.0
DEFAULT_NODE_HEIGHT = 40.0

# --- Free-space locator ---

SPACING_MARGIN = 20.0
SPIRAL_MIN_RADIUS = 120.0
SPIRAL_MAX_RADIUS = 1200.0
SPIRAL_RADIUS_STEP = 40.0
SPIRAL_ANGLE_STEP = 15.0  # degrees
FALLBACK_OFFSET: tuple[float, float] = (200.0, 0.0)

# Above this many occupied rectangles the search is sent to a worker.
OFFLOAD_THRESHOLD = 40
OFFLOAD_TIMEOUT = 0.5  # seconds
GRID_COLUMNS = 8

# --- Force simulation (d3-force conventions) ---

CHARGE_STRENGTH = -300.0
CHARGE_DISTANCE_MIN = 1.0
COLLISION_RADIUS = 60.0
POSITION_STRENGTH = 0.1
LINK_DISTANCE = 150.0
LINK_STRENGTH = 0.5
ALPHA_START = 0.3
ALPHA_MIN = 0.001
ALPHA_DECAY = 0.0228
VELOCITY_DECAY = 0.4
MAX_TICKS = 300
TICK_INTERVAL = 1 / 60

# --- Rigid-body collision ---

COLLISION_MARGIN = 3.0
SETTLE_STEPS = 60
RESIZE_DEBOUNCE_DELAY = 0.1  # seconds
RESIZE_TOLERANCE = 2.0  # pixels; smaller changes are ignored


def resolve_data_directory() -> Path:
    """Return the first existing document directory, or the preferred default."""
    for candidate in DOCUMENT_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DOCUMENT_DIRECTORIES[0]


def resolve_document_path() -> Path:
    """Return the snapshot path, honouring the environment override."""
    override = os.environ.get(DOCUMENT_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return resolve_data_directory() / DEFAULT_DOCUMENT_NAME
