"""Query an ArcGIS feature service layer for course polylines."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests import Session

from ..config import REQUEST_TIMEOUT
from ..errors import FeatureServiceError
from .session import create_default_session

LOGGER = logging.getLogger(__name__)

DEFAULT_QUERY_PARAMS: Dict[str, str] = {
    "where": "1=1",
    "outFields": "*",
    "returnGeometry": "true",
    "f": "json",
}

REQUIRED_KEYS = ("objectIdFieldName", "spatialReference", "fields", "features")

# ESRI codes that alias Web Mercator.
_WEB_MERCATOR_ALIASES = {102100, 102113, 900913}


def fetch_feature_service(
    url: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    session: Optional[Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Dict[str, Any]:
    """GET the layer query endpoint and return the validated JSON document.

    Raises:
        FeatureServiceError: On transport failures, non-2xx responses, ArcGIS
            error envelopes or payloads missing the expected keys.
    """
    query = dict(DEFAULT_QUERY_PARAMS)
    if params:
        query.update(params)
    http = session or create_default_session()
    LOGGER.debug("GET %s params=%s", url, query)
    try:
        response = http.get(url, params=query, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.HTTPError as exc:
        raise FeatureServiceError(f"Feature service request failed: {exc}") from exc
    except ValueError as exc:
        # requests.JSONDecodeError is both a ValueError and a RequestException.
        raise FeatureServiceError("Feature service returned non-JSON content") from exc
    except requests.RequestException as exc:
        raise FeatureServiceError(f"Feature service unreachable: {exc}") from exc
    return validate_payload(data)


def validate_payload(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise FeatureServiceError(f"Unexpected response type: {type(data).__name__}")
    # ArcGIS reports errors as HTTP 200 with an ``error`` object.
    error = data.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else error
        raise FeatureServiceError(f"Feature service error {code}: {message}")
    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        raise FeatureServiceError(
            f"Feature service payload missing keys: {', '.join(missing)}"
        )
    if not isinstance(data["features"], list):
        raise FeatureServiceError("Feature service 'features' is not a list")
    return data


def spatial_reference_epsg(payload: Mapping[str, Any], default: int) -> int:
    """Return the EPSG code of the payload's geometries."""
    reference = payload.get("spatialReference") or {}
    wkid = reference.get("latestWkid") or reference.get("wkid")
    if wkid is None:
        return default
    try:
        wkid = int(wkid)
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring unparseable spatial reference %r", reference)
        return default
    return 3857 if wkid in _WEB_MERCATOR_ALIASES else wkid


def course_paths(
    payload: Mapping[str, Any], course_name: str
) -> List[List[List[float]]]:
    """Collect every path of features whose ``attributes.course`` matches.

    Paths keep feature order, then the order within each feature's
    ``geometry.paths``. The result is what assembly instructions index into.
    """
    segments: List[List[List[float]]] = []
    for feature in payload.get("features", []):
        attributes = feature.get("attributes") or {}
        if attributes.get("course") != course_name:
            continue
        geometry = feature.get("geometry") or {}
        for path in geometry.get("paths") or []:
            segments.append([_path_point(point) for point in path])
    return segments


def _path_point(point: Any) -> List[float]:
    try:
        x, y = point[0], point[1]
        return [float(x), float(y)]
    except (TypeError, ValueError, IndexError, KeyError) as exc:
        raise FeatureServiceError(f"Malformed path point {point!r}") from exc
