"""Slippy-map tile grid enumeration, tile math and progress reporting."""

from __future__ import annotations

import logging
import math
from typing import Iterator, Tuple

from .models import LonLat, TileCoordinate

LOGGER = logging.getLogger(__name__)


def _check_bounds(top_left: TileCoordinate, bottom_right: TileCoordinate) -> None:
    if top_left.z != bottom_right.z:
        raise ValueError(
            f"Tile bounds use different zoom levels ({top_left.z} vs {bottom_right.z})"
        )
    if top_left.x > bottom_right.x or top_left.y > bottom_right.y:
        raise ValueError(f"Inverted tile bounds: {top_left} .. {bottom_right}")


def _axis_ranges(
    top_left: TileCoordinate, bottom_right: TileCoordinate, inclusive: bool
) -> Tuple[range, range]:
    end_offset = 1 if inclusive else 0
    return (
        range(top_left.x, bottom_right.x + end_offset),
        range(top_left.y, bottom_right.y + end_offset),
    )


def iter_tile_grid(
    top_left: TileCoordinate,
    bottom_right: TileCoordinate,
    *,
    inclusive: bool = True,
    row_major: bool = False,
) -> Iterator[TileCoordinate]:
    """Yield every tile of the rectangle, column by column.

    The outer loop walks ``x`` and the inner loop ``y``, so ``(0,0)..(1,1)``
    yields ``(0,0), (0,1), (1,0), (1,1)``. With ``inclusive=False`` the
    bottom-right row and column are left out.

    ``row_major=True`` walks row by row instead: ``(0,0), (1,0), (0,1),
    (1,1)``. The set of tiles is the same, but the merged route is not
    order independent: when a feature crosses several tiles its pairs are
    appended in visit order, so the two orders can produce different tracks.
    """
    _check_bounds(top_left, bottom_right)
    xs, ys = _axis_ranges(top_left, bottom_right, inclusive)
    z = top_left.z
    if row_major:
        for y in ys:
            for x in xs:
                yield TileCoordinate(x=x, y=y, z=z)
        return
    for x in xs:
        for y in ys:
            yield TileCoordinate(x=x, y=y, z=z)


def tile_count(
    top_left: TileCoordinate,
    bottom_right: TileCoordinate,
    *,
    inclusive: bool = True,
) -> int:
    _check_bounds(top_left, bottom_right)
    xs, ys = _axis_ranges(top_left, bottom_right, inclusive)
    return len(xs) * len(ys)


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> TileCoordinate:
    """Return the Web Mercator tile containing a WGS84 point."""
    n = 2**zoom
    lat_rad = math.radians(lat)
    x = int((lon + 180.0) / 360.0 * n)
    y = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    # Clamp the antimeridian and the poles onto the grid.
    x = min(max(x, 0), n - 1)
    y = min(max(y, 0), n - 1)
    return TileCoordinate(x=x, y=y, z=zoom)


def bounds_from_bbox(
    bbox: Tuple[float, float, float, float], zoom: int
) -> Tuple[TileCoordinate, TileCoordinate]:
    """Return the ``(top_left, bottom_right)`` tiles covering a WGS84 box.

    ``bbox`` is ``(west, south, east, north)``; the north-west corner gives
    the top-left tile and the south-east corner the bottom-right one.
    """
    west, south, east, north = bbox
    if west > east or south > north:
        raise ValueError(
            f"Bounding box must be west,south,east,north; got {west},{south},{east},{north}"
        )
    return lonlat_to_tile(west, north, zoom), lonlat_to_tile(east, south, zoom)


def tile_pixel_to_lonlat(
    coordinate: TileCoordinate, px: float, py: float, extent: int = 4096
) -> LonLat:
    """Convert tile-local pixel coordinates (``py`` growing downward) to WGS84."""
    n = 2**coordinate.z
    fx = (coordinate.x + px / extent) / n
    fy = (coordinate.y + py / extent) / n
    lon = fx * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * fy))))
    return lon, lat


class ProgressNotifier:
    """Log a progress line each time another ``step_percent`` of tiles is done.

    Works off the integer percentage rather than a tile-count divisor, so
    totals below ten or not divisible by the step still report, and the
    final tile always reports 100%.
    """

    def __init__(self, total: int, step_percent: int = 10) -> None:
        if step_percent < 1:
            raise ValueError("step_percent must be >= 1")
        self.total = max(0, total)
        self.step_percent = step_percent
        self.processed = 0
        self._last_reported = 0

    def advance(self) -> int | None:
        """Record one processed tile; return the percentage logged, if any."""
        self.processed += 1
        if self.total == 0:
            return None
        percent = min(100, self.processed * 100 // self.total)
        reached = 100 if percent == 100 else percent - percent % self.step_percent
        if reached <= self._last_reported:
            return None
        self._last_reported = reached
        LOGGER.info(
            "Processed %d%% of the tiles (%d/%d).",
            reached,
            self.processed,
            self.total,
        )
        return reached
