"""Central configuration for the marathon route GPX extractor.

Module-level values are defaults read from environment variables (optionally
via a local ``.env``). The pipelines never read them directly: the
``load_*_settings`` helpers assemble explicit settings objects that are
passed into each run, so the core stays testable without the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from .assembly import parse_segment_instructions
from .errors import ConfigurationError
from .grid import bounds_from_bbox
from .models import SegmentInstruction, TileCoordinate


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_pair(key: str, default: Tuple[int, int]) -> Tuple[int, int]:
    """Read an ``"x,y"`` integer pair, falling back to ``default`` when malformed."""
    value = os.getenv(key)
    if value is None:
        return default
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2:
        return default
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return default


# Load .env from the current directory or any parent folder.
load_dotenv()


# ---------------------------------------------------------------------------
# Mapbox vector tiles
# ---------------------------------------------------------------------------
MAPBOX_TILE_URL_TEMPLATE = (
    "https://api.mapbox.com/v4/{tilesets}/{z}/{x}/{y}.vector.pbf"
)

# Tilesets requested together; the marathon course lives in a geocentric one.
MAPBOX_TILESETS = _env_str(
    "MAPBOX_TILESETS",
    "mapbox.mapbox-terrain-v2,mapbox.mapbox-streets-v7,"
    "geocentric.24kvp202,geocentric.0rz5vmpj,geocentric.1tryr4je",
)

# Billing SKU sent by the web map that published the course. Empty disables it.
MAPBOX_SKU = _env_str("MAPBOX_SKU", "101U7kfJrad7a")

# Name of the env var holding the token. Read at settings load time, never here.
MAPBOX_TOKEN_ENV = "MAPBOX_ACCESS_TOKEN"

# Layer carrying the course line inside the decoded tiles.
TARGET_LAYER_NAME = _env_str("TARGET_LAYER_NAME", "mcm-2018-marathon-v1-31s1ih")


# ---------------------------------------------------------------------------
# Tile grid
# ---------------------------------------------------------------------------
# Slippy tile bounds (x = column, y = row) covering the course at TILE_ZOOM.
TILE_ZOOM = _env_int("TILE_ZOOM", 15)
TILE_TOP_LEFT = _env_pair("TILE_TOP_LEFT", (9365, 12531))
TILE_BOTTOM_RIGHT = _env_pair("TILE_BOTTOM_RIGHT", (9376, 12540))

# Optional "west,south,east,north" WGS84 box; when set it replaces the tile
# bounds above and is converted to tiles at TILE_ZOOM.
TILE_BBOX = _env_str("TILE_BBOX", "")

# Include the bottom-right row and column in the walk.
TILE_BOUNDS_INCLUSIVE = _env_bool("TILE_BOUNDS_INCLUSIVE", True)

# Walk row by row (y outer) instead of column by column.
TILE_WALK_ROW_MAJOR = _env_bool("TILE_WALK_ROW_MAJOR", False)

# Fixed pause after every processed tile.
RATE_LIMIT_DELAY_MS = _env_int("RATE_LIMIT_DELAY_MS", 100)

# Random extra pause of up to this many ms on top of the fixed delay.
RATE_LIMIT_JITTER_MS = _env_int("RATE_LIMIT_JITTER_MS", 0)

# Log progress whenever this many more percent of the tiles are done.
PROGRESS_STEP_PERCENT = _env_int("PROGRESS_STEP_PERCENT", 10)

# Skip tiles whose payload cannot be decoded instead of aborting the run.
SKIP_BAD_TILES = _env_bool("MARATHON_SKIP_BAD_TILES", False)

# "tippecanoe" shells out to tippecanoe-decode; "mvt" decodes in-process.
TILE_DECODER = _env_str("TILE_DECODER", "tippecanoe")
TIPPECANOE_DECODE_BIN = _env_str("TIPPECANOE_DECODE_BIN", "tippecanoe-decode")
DECODER_TIMEOUT = _env_float("DECODER_TIMEOUT", 60.0)

OUTPUT_GPX_PATH = _env_str("OUTPUT_GPX_PATH", "output.gpx")


# ---------------------------------------------------------------------------
# ArcGIS feature service
# ---------------------------------------------------------------------------
# Query endpoint of the layer, e.g. ``.../FeatureServer/0/query``. Required.
ARCGIS_FEATURE_URL = _env_str("ARCGIS_FEATURE_URL", "")

# Value of ``attributes.course`` identifying the marathon paths.
ARCGIS_COURSE_NAME = _env_str("ARCGIS_COURSE_NAME", "Marathon")

# Ordered stitching plan, e.g. "0,3r,2" (r = walk that path backwards).
ARCGIS_SEGMENT_INSTRUCTIONS = _env_str("ARCGIS_SEGMENT_INSTRUCTIONS", "")

# Used when the payload carries no spatialReference.
ARCGIS_DEFAULT_EPSG = _env_int("ARCGIS_DEFAULT_EPSG", 3857)

ARCGIS_ROUTE_NAME = _env_str("ARCGIS_ROUTE_NAME", "Marathon")
ARCGIS_OUTPUT_GPX_PATH = _env_str("ARCGIS_OUTPUT_GPX_PATH", "route.gpx")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
# Request timeout in seconds.
REQUEST_TIMEOUT = _env_float("REQUEST_TIMEOUT", 15.0)

# Transport failures are fatal; raise this above 0 to retry 5xx responses.
HTTP_MAX_RETRIES = _env_int("HTTP_MAX_RETRIES", 0)

HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4


@dataclass(frozen=True)
class TileGridSettings:
    """Everything one run of the tile pipeline needs."""

    access_token: str
    top_left: TileCoordinate
    bottom_right: TileCoordinate
    target_layer: str = TARGET_LAYER_NAME
    output_path: Path = Path(OUTPUT_GPX_PATH)
    rate_limit_delay_ms: int = RATE_LIMIT_DELAY_MS
    rate_limit_jitter_ms: int = RATE_LIMIT_JITTER_MS
    inclusive: bool = TILE_BOUNDS_INCLUSIVE
    row_major: bool = TILE_WALK_ROW_MAJOR
    skip_bad_tiles: bool = SKIP_BAD_TILES
    decoder: str = TILE_DECODER
    tilesets: str = MAPBOX_TILESETS
    sku: str = MAPBOX_SKU
    progress_step_percent: int = PROGRESS_STEP_PERCENT

    @property
    def zoom(self) -> int:
        return self.top_left.z


@dataclass(frozen=True)
class FeatureServiceSettings:
    """Everything one run of the ArcGIS pipeline needs."""

    feature_url: str
    instructions: Tuple[SegmentInstruction, ...]
    course_name: str = ARCGIS_COURSE_NAME
    route_name: str = ARCGIS_ROUTE_NAME
    output_path: Path = Path(ARCGIS_OUTPUT_GPX_PATH)
    default_epsg: int = ARCGIS_DEFAULT_EPSG


def read_access_token() -> str:
    """Return the Mapbox token from the environment or raise ConfigurationError."""
    token = (os.getenv(MAPBOX_TOKEN_ENV) or "").strip()
    if not token:
        raise ConfigurationError(
            f"{MAPBOX_TOKEN_ENV} not set; export it or add it to a .env file"
        )
    return token


def parse_bbox(text: str) -> Tuple[float, float, float, float]:
    """Parse ``"west,south,east,north"`` into four floats."""
    parts = [part.strip() for part in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"expected west,south,east,north but got {text!r}")
    try:
        west, south, east, north = (float(part) for part in parts)
    except ValueError:
        raise ValueError(f"expected numbers in {text!r}") from None
    return west, south, east, north


def load_tile_grid_settings() -> TileGridSettings:
    access_token = read_access_token()
    bbox = os.getenv("TILE_BBOX", TILE_BBOX).strip()
    if bbox:
        try:
            top_left, bottom_right = bounds_from_bbox(parse_bbox(bbox), TILE_ZOOM)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid TILE_BBOX: {exc}") from exc
    else:
        top_left = TileCoordinate(*TILE_TOP_LEFT, TILE_ZOOM)
        bottom_right = TileCoordinate(*TILE_BOTTOM_RIGHT, TILE_ZOOM)
    return TileGridSettings(
        access_token=access_token, top_left=top_left, bottom_right=bottom_right
    )


def load_feature_service_settings(
    feature_url: Optional[str] = None, instructions: Optional[str] = None
) -> FeatureServiceSettings:
    """Build ArcGIS settings; explicit arguments win over the environment."""
    url = (feature_url or os.getenv("ARCGIS_FEATURE_URL") or ARCGIS_FEATURE_URL).strip()
    if not url:
        raise ConfigurationError(
            "ARCGIS_FEATURE_URL not set; point it at the layer's query endpoint"
        )
    if instructions is None:
        instructions = os.getenv(
            "ARCGIS_SEGMENT_INSTRUCTIONS", ARCGIS_SEGMENT_INSTRUCTIONS
        )
    try:
        plan = tuple(parse_segment_instructions(instructions))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid segment instructions: {exc}") from exc
    return FeatureServiceSettings(feature_url=url, instructions=plan)
