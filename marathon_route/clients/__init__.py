"""HTTP clients for the tile API and the ArcGIS feature service."""

from .arcgis import fetch_feature_service
from .mapbox import MapboxTileFetcher
from .rate_limiter import RateLimiter
from .session import create_default_session

__all__ = [
    "fetch_feature_service",
    "MapboxTileFetcher",
    "RateLimiter",
    "create_default_session",
]
