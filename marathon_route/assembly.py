"""Stitch disjoint feature-service paths into one ordered route.

The ArcGIS course layer delivers the marathon as unordered, disconnected
polylines. A hand-written plan of ``(index, reversed)`` instructions puts
them back together; this module parses that plan and applies it.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from .errors import ReprojectionError, SegmentIndexError
from .models import LonLat, SegmentInstruction

LOGGER = logging.getLogger(__name__)

PointConverter = Callable[[float, float], LonLat]
Segment = Sequence[Sequence[float]]


def parse_segment_instructions(text: str) -> List[SegmentInstruction]:
    """Parse a plan such as ``"0, 3r, 2"`` into instructions.

    Each comma separated token is a non-negative segment index, optionally
    suffixed with ``r`` to walk that segment backwards. Blank input yields
    an empty plan.
    """
    instructions: List[SegmentInstruction] = []
    for raw in (text or "").split(","):
        token = raw.strip().lower()
        if not token:
            continue
        reverse = token.endswith("r")
        digits = token[:-1].strip() if reverse else token
        if not digits.isdigit():
            raise ValueError(f"bad segment instruction {raw.strip()!r}")
        instructions.append(SegmentInstruction(index=int(digits), reversed=reverse))
    return instructions


def _lookup_segment(segments: Sequence[Segment], index: int) -> Segment:
    if index < 0 or index >= len(segments):
        raise SegmentIndexError(
            f"invalid index {index}: only {len(segments)} segments available"
        )
    return segments[index]


def assemble_route(
    segments: Sequence[Segment],
    instructions: Iterable[SegmentInstruction],
    convert: Optional[PointConverter] = None,
) -> List[LonLat]:
    """Concatenate segments in plan order, reprojecting each point.

    An out-of-range index is logged and that instruction skipped. A point
    that fails to reproject drops the rest of its segment (nothing from that
    segment is appended) and assembly moves on to the next instruction.
    """
    route: List[LonLat] = []
    for position, instruction in enumerate(instructions):
        try:
            segment = _lookup_segment(segments, instruction.index)
        except SegmentIndexError as exc:
            LOGGER.error("Skipping instruction #%d: %s", position, exc)
            continue

        ordered = list(reversed(segment)) if instruction.reversed else list(segment)
        converted: List[LonLat] = []
        try:
            for point in ordered:
                x, y = float(point[0]), float(point[1])
                converted.append(convert(x, y) if convert else (x, y))
        except ReprojectionError as exc:
            LOGGER.error(
                "Skipping segment %d (instruction #%d): %s",
                instruction.index,
                position,
                exc,
            )
            continue

        LOGGER.debug(
            "Segment %d%s contributed %d points",
            instruction.index,
            " (reversed)" if instruction.reversed else "",
            len(converted),
        )
        route.extend(converted)
    return route
