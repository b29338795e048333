"""Command line entry point.

Usage examples:

    # Walk the configured tile grid and write output.gpx
    python -m marathon_route tiles

    # Same, decoding in-process and skipping tiles that fail to decode
    python -m marathon_route tiles --decoder mvt --skip-bad-tiles

    # Walk the tiles covering a WGS84 box at zoom 16
    python -m marathon_route tiles --bbox=-77.08,38.85,-77.00,38.91 --zoom 16

    # Stitch the ArcGIS course paths into a named route
    python -m marathon_route arcgis --instructions "0,3r,2"
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .config import (
    TileGridSettings,
    load_feature_service_settings,
    load_tile_grid_settings,
    parse_bbox,
)
from .decoders import DECODERS
from .errors import ConfigurationError, MarathonRouteError
from .grid import bounds_from_bbox
from .models import TileCoordinate
from .pipelines import run_arcgis_pipeline, run_tile_pipeline

LOGGER = logging.getLogger(__name__)


def _setup_logging(level: str = "INFO") -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=getattr(logging, level),
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.getLogger().setLevel(getattr(logging, level))


def _tile_pair(text: str) -> Tuple[int, int]:
    parts = [part.strip() for part in text.split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected X,Y but got {text!r}")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected integers in {text!r}") from None


def _bbox(text: str) -> Tuple[float, float, float, float]:
    try:
        return parse_bbox(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marathon-route",
        description="Extract a marathon course from map services into GPX",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Python logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    tiles = sub.add_parser("tiles", help="Walk a vector tile grid into a GPX track")
    tiles.add_argument("--top-left", type=_tile_pair, help="Top-left tile as X,Y")
    tiles.add_argument("--bottom-right", type=_tile_pair, help="Bottom-right tile as X,Y")
    tiles.add_argument(
        "--bbox",
        type=_bbox,
        help="WGS84 box as WEST,SOUTH,EAST,NORTH (replaces --top-left/--bottom-right)",
    )
    tiles.add_argument(
        "--zoom", type=int, help="Tile zoom level (needs --bbox or both tile corners)"
    )
    tiles.add_argument("--layer", help="Layer holding the course")
    tiles.add_argument("--output", type=Path, help="GPX file to write")
    tiles.add_argument("--delay-ms", type=int, help="Pause after each tile (ms)")
    tiles.add_argument(
        "--jitter-ms", type=int, help="Random extra pause of up to this many ms"
    )
    tiles.add_argument(
        "--exclusive",
        action="store_true",
        help="Leave out the bottom-right row and column",
    )
    tiles.add_argument(
        "--row-major",
        action="store_true",
        help="Walk tiles row by row instead of column by column",
    )
    tiles.add_argument(
        "--skip-bad-tiles",
        action="store_true",
        help="Log and skip tiles that fail to decode instead of aborting",
    )
    tiles.add_argument("--decoder", choices=sorted(DECODERS), help="Tile decoder")

    arcgis = sub.add_parser("arcgis", help="Stitch feature-service paths into a GPX route")
    arcgis.add_argument("--url", help="Feature layer query endpoint")
    arcgis.add_argument("--course", help="attributes.course value to keep")
    arcgis.add_argument(
        "--instructions", help='Segment plan such as "0,3r,2" (r = reversed)'
    )
    arcgis.add_argument("--route-name", help="Name written into the GPX route")
    arcgis.add_argument("--output", type=Path, help="GPX file to write")
    return parser


def _check_tiles_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    corners = (args.top_left, args.bottom_right)
    if args.bbox is not None and any(c is not None for c in corners):
        parser.error("--bbox cannot be combined with --top-left/--bottom-right")
    # Tile numbers only mean something at the zoom they were picked for.
    if args.zoom is not None and args.bbox is None and None in corners:
        parser.error("--zoom needs --bbox or both --top-left and --bottom-right")


def _tile_bounds(
    args: argparse.Namespace, settings: TileGridSettings
) -> Tuple[TileCoordinate, TileCoordinate]:
    zoom = args.zoom if args.zoom is not None else settings.zoom
    if args.bbox is not None:
        try:
            return bounds_from_bbox(args.bbox, zoom)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid --bbox: {exc}") from exc
    top_left = args.top_left or (settings.top_left.x, settings.top_left.y)
    bottom_right = args.bottom_right or (settings.bottom_right.x, settings.bottom_right.y)
    return (
        TileCoordinate(top_left[0], top_left[1], zoom),
        TileCoordinate(bottom_right[0], bottom_right[1], zoom),
    )


def _run_tiles(args: argparse.Namespace) -> Path:
    settings = load_tile_grid_settings()
    top_left, bottom_right = _tile_bounds(args, settings)
    overrides: dict = {"top_left": top_left, "bottom_right": bottom_right}
    if args.layer:
        overrides["target_layer"] = args.layer
    if args.output:
        overrides["output_path"] = args.output
    if args.delay_ms is not None:
        overrides["rate_limit_delay_ms"] = args.delay_ms
    if args.jitter_ms is not None:
        overrides["rate_limit_jitter_ms"] = args.jitter_ms
    if args.exclusive:
        overrides["inclusive"] = False
    if args.row_major:
        overrides["row_major"] = True
    if args.skip_bad_tiles:
        overrides["skip_bad_tiles"] = True
    if args.decoder:
        overrides["decoder"] = args.decoder
    return run_tile_pipeline(dataclasses.replace(settings, **overrides))


def _run_arcgis(args: argparse.Namespace) -> Path:
    settings = load_feature_service_settings(
        feature_url=args.url, instructions=args.instructions
    )
    overrides: dict = {}
    if args.course:
        overrides["course_name"] = args.course
    if args.route_name:
        overrides["route_name"] = args.route_name
    if args.output:
        overrides["output_path"] = args.output
    return run_arcgis_pipeline(dataclasses.replace(settings, **overrides))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; return the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "tiles":
        _check_tiles_args(parser, args)
    _setup_logging(args.log_level)

    runners = {"tiles": _run_tiles, "arcgis": _run_arcgis}
    try:
        output = runners[args.command](args)
    except MarathonRouteError as exc:
        LOGGER.error("%s", exc)
        return 1
    LOGGER.info("Done! Wrote %s", output)
    return 0
