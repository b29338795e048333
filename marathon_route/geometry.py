"""Coordinate flattening, cross-tile merging and reprojection helpers."""

from __future__ import annotations

import math
from numbers import Real
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from .errors import ReprojectionError
from .models import AccumulatedRoute, Coordinates, FlatCoordinates, LonLat, RawFeature

WGS84_EPSG = 4326
WEB_MERCATOR_EPSG = 3857


def _is_scalar(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def flatten_coordinates(coordinates: Coordinates) -> FlatCoordinates:
    """Flatten nested GeoJSON coordinates depth-first, left to right.

    A number contributes itself; a sequence contributes the concatenation of
    its flattened elements. Works for every geometry nesting depth, from a
    bare Point pair to a MultiPolygon.
    """
    if _is_scalar(coordinates):
        return [float(coordinates)]  # type: ignore[arg-type]
    if isinstance(coordinates, (str, bytes)) or not isinstance(coordinates, Sequence):
        raise TypeError(f"Unsupported coordinate value: {coordinates!r}")
    flat: FlatCoordinates = []
    for item in coordinates:
        flat.extend(flatten_coordinates(item))
    return flat


def iter_pairs(flat: Sequence[float]) -> Iterator[Tuple[float, float]]:
    """Yield consecutive ``(x, y)`` pairs from a flattened sequence."""
    if len(flat) % 2:
        raise ValueError(f"Flattened coordinates must have even length, got {len(flat)}")
    for i in range(0, len(flat), 2):
        yield flat[i], flat[i + 1]


def map_coordinates(
    coordinates: Coordinates, fn: Callable[[float, float], Tuple[float, float]]
) -> Coordinates:
    """Apply ``fn`` to every innermost ``[x, y]`` pair, keeping the nesting."""
    if _is_scalar(coordinates):
        raise TypeError("map_coordinates expects a sequence, not a bare number")
    if isinstance(coordinates, (str, bytes)) or not isinstance(coordinates, Sequence):
        raise TypeError(f"Unsupported coordinate value: {coordinates!r}")
    items = list(coordinates)  # type: ignore[arg-type]
    if len(items) >= 2 and all(_is_scalar(v) for v in items):
        x, y = fn(float(items[0]), float(items[1]))
        return [x, y, *items[2:]]
    return [map_coordinates(item, fn) for item in items]


def _has_adjacent_window(existing: Sequence[float], x: float, y: float) -> bool:
    # Windows may straddle pair boundaries; that matches the merge semantics.
    return any(
        existing[i] == x and existing[i + 1] == y for i in range(len(existing) - 1)
    )


def merge_coordinates(
    route: AccumulatedRoute, feature_id: int, new_coords: Sequence[float]
) -> AccumulatedRoute:
    """Merge one tile's coordinates for ``feature_id`` into ``route`` in place.

    First sighting stores the coordinates verbatim. Afterwards each new pair
    is appended only when no two adjacent values of the existing sequence
    already equal it. The scan is linear per pair, quadratic per feature.
    """
    existing = route.get(feature_id)
    if existing is None:
        route[feature_id] = list(new_coords)
        return route
    for x, y in iter_pairs(new_coords):
        if not _has_adjacent_window(existing, x, y):
            existing.append(x)
            existing.append(y)
    return route


class CoordinateMerger:
    """Owns the accumulated route for the duration of one grid walk."""

    def __init__(self) -> None:
        self._route: AccumulatedRoute = {}

    def merge(self, feature_id: int, new_coords: Sequence[float]) -> None:
        merge_coordinates(self._route, feature_id, new_coords)

    def merge_feature(self, feature: RawFeature) -> None:
        self.merge(feature.id, flatten_coordinates(feature.coordinates))

    def feature_ids(self) -> List[int]:
        return sorted(self._route)

    def point_count(self) -> int:
        return sum(len(coords) // 2 for coords in self._route.values())

    def route(self) -> AccumulatedRoute:
        """Return the accumulated coordinates ordered by feature identity."""
        ordered: Dict[int, FlatCoordinates] = {}
        for feature_id in sorted(self._route):
            ordered[feature_id] = list(self._route[feature_id])
        return ordered

    def __len__(self) -> int:
        return len(self._route)


class Projector:
    """Callable converting projected ``(x, y)`` into WGS84 ``(lng, lat)``."""

    def __init__(self, source_epsg: int = WEB_MERCATOR_EPSG) -> None:
        try:
            source_crs = CRS.from_epsg(source_epsg)
        except CRSError as exc:
            raise ReprojectionError(f"Unknown source CRS EPSG:{source_epsg}") from exc
        self.source_epsg = source_epsg
        self._transformer = Transformer.from_crs(
            source_crs, CRS.from_epsg(WGS84_EPSG), always_xy=True
        )

    def __call__(self, x: float, y: float) -> LonLat:
        try:
            lng, lat = self._transformer.transform(x, y)
        except ProjError as exc:
            raise ReprojectionError(f"Cannot reproject ({x}, {y}): {exc}") from exc
        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise ReprojectionError(
                f"Point ({x}, {y}) is outside EPSG:{self.source_epsg}"
            )
        return float(lng), float(lat)
