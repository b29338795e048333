"""Dataclasses describing tiles, decoded features and route instructions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple, Union


# Nested GeoJSON-style coordinates: a number or a sequence of the same.
Coordinates = Union[float, int, Sequence["Coordinates"]]

# Flat [x0, y0, x1, y1, ...] sequence of coordinate pairs.
FlatCoordinates = List[float]

# Feature identity -> flattened, deduplicated coordinates.
AccumulatedRoute = Dict[int, FlatCoordinates]

LonLat = Tuple[float, float]
LatLon = Tuple[float, float]


class GeometryType(str, Enum):
    POINT = "Point"
    LINE_STRING = "LineString"
    POLYGON = "Polygon"
    MULTI_POINT = "MultiPoint"
    MULTI_LINE_STRING = "MultiLineString"
    MULTI_POLYGON = "MultiPolygon"


@dataclass(frozen=True, slots=True)
class TileCoordinate:
    """One slippy-map tile: ``x`` is the column, ``y`` the row, origin top-left."""

    x: int
    y: int
    z: int

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(slots=True)
class RawFeature:
    """A single decoded vector feature from one tile."""

    id: int
    layer_name: str
    geometry_type: GeometryType
    coordinates: Coordinates
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DecodedLayer:
    name: str
    features: List[RawFeature] = field(default_factory=list)
    extent: int = 4096
    version: int | None = None


@dataclass(slots=True)
class DecodedTile:
    """Decoder output for one tile: every layer present in the payload."""

    coordinate: TileCoordinate
    layers: List[DecodedLayer] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SegmentInstruction:
    """Take path segment ``index``, optionally walking it back to front."""

    index: int
    reversed: bool = False
