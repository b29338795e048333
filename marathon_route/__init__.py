"""Marathon route GPX extractor package."""

from .models import RawFeature, SegmentInstruction, TileCoordinate
from .errors import MarathonRouteError, TileDecodeError, TileFetchError

__all__ = [
    "RawFeature",
    "SegmentInstruction",
    "TileCoordinate",
    "MarathonRouteError",
    "TileDecodeError",
    "TileFetchError",
]
