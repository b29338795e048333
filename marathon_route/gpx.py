"""GPX 1.1 serialization for accumulated tracks and assembled routes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence

from .errors import GpxWriteError
from .geometry import iter_pairs
from .models import LatLon, LonLat

LOGGER = logging.getLogger(__name__)

_GPX_HEADER = [
    '<?xml version="1.0" encoding="UTF-8"?>',
    '<gpx version="1.1" creator="marathon_route"',
    '     xmlns="http://www.topografix.com/GPX/1/1"',
    '     xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"',
    '     xsi:schemaLocation="http://www.topografix.com/GPX/1/1 '
    'http://www.topografix.com/GPX/1/1/gpx.xsd">',
]


def _escape_xml(text: str) -> str:
    """Escape special XML characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def accumulated_to_points(route: Mapping[int, Sequence[float]]) -> List[LatLon]:
    """Flatten an accumulated route into ``(lat, lon)`` points.

    Features are emitted in ascending identity order; each stored pair is
    ``(lon, lat)``.
    """
    points: List[LatLon] = []
    for feature_id in sorted(route):
        for lon, lat in iter_pairs(route[feature_id]):
            points.append((lat, lon))
    return points


def lonlat_to_latlon(points: Iterable[LonLat]) -> List[LatLon]:
    return [(lat, lon) for lon, lat in points]


def _metadata(name: Optional[str], description: Optional[str]) -> List[str]:
    if not name and not description:
        return []
    lines = ["  <metadata>"]
    if name:
        lines.append(f"    <name>{_escape_xml(name)}</name>")
    if description:
        lines.append(f"    <desc>{_escape_xml(description)}</desc>")
    lines.append("  </metadata>")
    return lines


def track_to_gpx(
    points: Sequence[LatLon],
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """Render a single track with one segment of ``<trkpt>`` elements."""
    gpx_lines = list(_GPX_HEADER)
    gpx_lines.extend(_metadata(name, description))
    gpx_lines.append("  <trk>")
    if name:
        gpx_lines.append(f"    <name>{_escape_xml(name)}</name>")
    gpx_lines.append("    <trkseg>")
    for lat, lon in points:
        gpx_lines.append(f'      <trkpt lat="{lat}" lon="{lon}"/>')
    gpx_lines.extend(["    </trkseg>", "  </trk>", "</gpx>"])
    return "\n".join(gpx_lines)


def route_to_gpx(
    points: Sequence[LatLon],
    *,
    name: str,
    description: Optional[str] = None,
) -> str:
    """Render a named route of ordered ``<rtept>`` elements."""
    gpx_lines = list(_GPX_HEADER)
    gpx_lines.extend(_metadata(name, description))
    gpx_lines.extend(["  <rte>", f"    <name>{_escape_xml(name)}</name>"])
    if description:
        gpx_lines.append(f"    <desc>{_escape_xml(description)}</desc>")
    for lat, lon in points:
        gpx_lines.append(f'    <rtept lat="{lat}" lon="{lon}"/>')
    gpx_lines.extend(["  </rte>", "</gpx>"])
    return "\n".join(gpx_lines)


def write_gpx(document: str, output_path: Path) -> Path:
    """Write ``document`` to ``output_path``, replacing any existing file."""
    path = Path(output_path)
    try:
        if path.parent and not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(document)
            f.write("\n")
    except OSError as exc:
        raise GpxWriteError(f"Failed to write GPX to {path}: {exc}") from exc
    LOGGER.info("Output written to %s", path)
    return path
