"""Feature-service pipeline: fetch course paths, stitch them, write a GPX route."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..assembly import assemble_route
from ..clients.arcgis import course_paths, fetch_feature_service, spatial_reference_epsg
from ..config import FeatureServiceSettings
from ..geometry import Projector
from ..gpx import lonlat_to_latlon, route_to_gpx, write_gpx

LOGGER = logging.getLogger(__name__)

PayloadLoader = Callable[[str], Dict[str, Any]]


def run_arcgis_pipeline(
    settings: FeatureServiceSettings,
    *,
    load_payload: Optional[PayloadLoader] = None,
) -> Path:
    """Run one feature-service extraction and return the GPX path written."""
    if not settings.instructions:
        LOGGER.warning("No segment instructions configured; the route will be empty")
    payload = (load_payload or fetch_feature_service)(settings.feature_url)
    segments = course_paths(payload, settings.course_name)
    LOGGER.info(
        "Feature service returned %d features, %d paths for course %r",
        len(payload.get("features", [])),
        len(segments),
        settings.course_name,
    )
    projector = Projector(spatial_reference_epsg(payload, settings.default_epsg))
    lonlat = assemble_route(segments, settings.instructions, convert=projector)
    LOGGER.info(
        "Assembled %d points from %d instructions",
        len(lonlat),
        len(settings.instructions),
    )
    document = route_to_gpx(lonlat_to_latlon(lonlat), name=settings.route_name)
    return write_gpx(document, settings.output_path)
