"""Tile-grid pipeline: walk, fetch, decode, filter, merge, write GPX."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

from ..clients.mapbox import MapboxTileFetcher
from ..clients.rate_limiter import RateLimiter
from ..config import TileGridSettings
from ..decoders import TileDecoder, build_decoder
from ..errors import ConfigurationError, TileDecodeError
from ..geometry import CoordinateMerger
from ..gpx import accumulated_to_points, track_to_gpx, write_gpx
from ..grid import ProgressNotifier, iter_tile_grid, tile_count
from ..models import AccumulatedRoute, DecodedLayer, DecodedTile, RawFeature, TileCoordinate

LOGGER = logging.getLogger(__name__)


class TileFetcher(Protocol):
    def fetch(self, coordinate: TileCoordinate) -> bytes:
        ...


def filter_target_features(
    layers: Sequence[DecodedLayer], target_layer: str
) -> List[RawFeature]:
    """Return the features of layers named exactly ``target_layer``."""
    features: List[RawFeature] = []
    for layer in layers:
        if layer.name == target_layer:
            features.extend(layer.features)
    return features


def process_tile(
    merger: CoordinateMerger, decoded: DecodedTile, target_layer: str
) -> int:
    """Merge the target-layer features of one decoded tile; return how many."""
    features = filter_target_features(decoded.layers, target_layer)
    if not features:
        return 0
    LOGGER.info(
        "Target layer found in tile %s (%d features)", decoded.coordinate, len(features)
    )
    for feature in features:
        merger.merge_feature(feature)
    return len(features)


def collect_route(
    tiles: Iterable[TileCoordinate],
    fetcher: TileFetcher,
    decoder: TileDecoder,
    target_layer: str,
    *,
    limiter: Optional[RateLimiter] = None,
    progress: Optional[ProgressNotifier] = None,
    skip_bad_tiles: bool = False,
) -> AccumulatedRoute:
    """Walk ``tiles`` in order and return the merged route.

    Fetch failures always propagate. Decode failures propagate too unless
    ``skip_bad_tiles`` is set, in which case the tile is logged and skipped.
    """
    merger = CoordinateMerger()
    skipped = 0
    for coordinate in tiles:
        if limiter is not None:
            limiter.before_request()
        payload = fetcher.fetch(coordinate)
        try:
            decoded = decoder.decode(payload, coordinate)
        except TileDecodeError as exc:
            if not skip_bad_tiles:
                raise
            skipped += 1
            LOGGER.warning("Skipping tile %s: %s", coordinate, exc)
        else:
            process_tile(merger, decoded, target_layer)
        if progress is not None:
            progress.advance()
        if limiter is not None:
            limiter.after_response()
    if skipped:
        LOGGER.warning("%d tiles could not be decoded and were skipped", skipped)
    LOGGER.info(
        "Accumulated %d features with %d points", len(merger), merger.point_count()
    )
    return merger.route()


def run_tile_pipeline(
    settings: TileGridSettings,
    *,
    fetcher: Optional[TileFetcher] = None,
    decoder: Optional[TileDecoder] = None,
    limiter: Optional[RateLimiter] = None,
) -> Path:
    """Run one full tile-grid extraction and return the GPX path written."""
    try:
        total = tile_count(
            settings.top_left, settings.bottom_right, inclusive=settings.inclusive
        )
        decoder = decoder or build_decoder(settings.decoder)
        progress = ProgressNotifier(total, settings.progress_step_percent)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid tile grid settings: {exc}") from exc
    LOGGER.info(
        "Walking %d tiles at zoom %d from %s to %s (%s bounds) for layer %s",
        total,
        settings.zoom,
        settings.top_left,
        settings.bottom_right,
        "inclusive" if settings.inclusive else "exclusive",
        settings.target_layer,
    )
    route = collect_route(
        iter_tile_grid(
            settings.top_left,
            settings.bottom_right,
            inclusive=settings.inclusive,
            row_major=settings.row_major,
        ),
        fetcher
        or MapboxTileFetcher(
            settings.access_token, tilesets=settings.tilesets, sku=settings.sku
        ),
        decoder,
        settings.target_layer,
        limiter=limiter
        or RateLimiter.from_millis(
            settings.rate_limit_delay_ms, settings.rate_limit_jitter_ms
        ),
        progress=progress,
        skip_bad_tiles=settings.skip_bad_tiles,
    )
    points = accumulated_to_points(route)
    if not points:
        LOGGER.warning(
            "No features found for layer %s; writing an empty track",
            settings.target_layer,
        )
    document = track_to_gpx(points, name=settings.target_layer)
    return write_gpx(document, settings.output_path)
