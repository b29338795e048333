"""Central error types used across the application."""

from __future__ import annotations


class MarathonRouteError(RuntimeError):
    """Base error for every failure the CLI reports with a non-zero exit."""


class ConfigurationError(MarathonRouteError):
    """Raised when a required setting (such as the access token) is missing."""


class TileFetchError(MarathonRouteError):
    """Raised when a vector tile cannot be downloaded."""


class TileDecodeError(MarathonRouteError):
    """Raised when a tile payload cannot be decoded into features."""


class FeatureServiceError(MarathonRouteError):
    """Raised when the ArcGIS feature service returns an unusable payload."""


class SegmentIndexError(MarathonRouteError):
    """Raised when an assembly instruction points past the available segments."""


class ReprojectionError(MarathonRouteError):
    """Raised when a point cannot be reprojected to WGS84."""


class GpxWriteError(MarathonRouteError):
    """Raised when the GPX output file cannot be written."""


__all__ = [
    "MarathonRouteError",
    "ConfigurationError",
    "TileFetchError",
    "TileDecodeError",
    "FeatureServiceError",
    "SegmentIndexError",
    "ReprojectionError",
    "GpxWriteError",
]
