"""Tests for the feature filter and the tile-grid pipeline."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from marathon_route.config import TileGridSettings
from marathon_route.decoders import parse_tippecanoe_geojson
from marathon_route.errors import ConfigurationError, TileDecodeError, TileFetchError
from marathon_route.grid import iter_tile_grid
from marathon_route.models import DecodedLayer, TileCoordinate
from marathon_route.pipelines.tiles import (
    collect_route,
    filter_target_features,
    process_tile,
    run_tile_pipeline,
)
from marathon_route.geometry import CoordinateMerger

TILE_A = TileCoordinate(0, 0, 1)
TILE_B = TileCoordinate(1, 0, 1)


def _settings(tmp_path: Path, **overrides) -> TileGridSettings:
    values = dict(
        access_token="pk.test",
        top_left=TILE_A,
        bottom_right=TILE_B,
        target_layer="target",
        output_path=tmp_path / "output.gpx",
        rate_limit_delay_ms=0,
    )
    values.update(overrides)
    return TileGridSettings(**values)


def test_filter_returns_only_target_layer(feature_factory):
    f1 = feature_factory(1, [[0, 0], [1, 1]])
    f2 = feature_factory(2, [[2, 2], [3, 3]])
    road = feature_factory(3, [[9, 9], [8, 8]], layer="roads")
    layers = [
        DecodedLayer(name="roads", features=[road]),
        DecodedLayer(name="target", features=[f1, f2]),
    ]
    assert filter_target_features(layers, "target") == [f1, f2]


def test_filter_is_exact_match(feature_factory):
    layers = [DecodedLayer(name="target-v2", features=[feature_factory(1, [0, 0])])]
    assert filter_target_features(layers, "target") == []
    assert filter_target_features(layers, "Target-v2") == []
    assert filter_target_features([], "target") == []


def test_process_tile_counts_merged_features(feature_factory, tile_factory):
    merger = CoordinateMerger()
    tile = tile_factory(TILE_A, {"roads": [feature_factory(5, [[1, 1], [2, 2]], layer="roads")]})
    assert process_tile(merger, tile, "target") == 0
    assert len(merger) == 0


def test_feature_split_across_two_tiles_is_merged(
    feature_factory, tile_factory, fake_fetcher, fake_decoder, no_delay_limiter
):
    decoder = fake_decoder(
        {
            TILE_A: tile_factory(TILE_A, {"target": [feature_factory(7, [[10.0, 20.0], [10.1, 20.1]])]}),
            TILE_B: tile_factory(TILE_B, {"target": [feature_factory(7, [[10.1, 20.1], [10.2, 20.2]])]}),
        }
    )
    fetcher = fake_fetcher()

    route = collect_route(
        iter_tile_grid(TILE_A, TILE_B), fetcher, decoder, "target", limiter=no_delay_limiter
    )

    assert route == {7: [10.0, 20.0, 10.1, 20.1, 10.2, 20.2]}
    assert fetcher.requested == [TILE_A, TILE_B]
    assert decoder.decoded == [TILE_A, TILE_B]


def test_decode_failure_is_fatal_by_default(fake_fetcher, fake_decoder):
    decoder = fake_decoder(failures=[TILE_A])
    with pytest.raises(TileDecodeError):
        collect_route([TILE_A, TILE_B], fake_fetcher(), decoder, "target")
    assert decoder.decoded == [TILE_A]


def test_decode_failure_can_be_skipped(
    feature_factory, tile_factory, fake_fetcher, fake_decoder, caplog
):
    decoder = fake_decoder(
        {TILE_B: tile_factory(TILE_B, {"target": [feature_factory(1, [[1, 2], [3, 4]])]})},
        failures=[TILE_A],
    )
    route = collect_route(
        [TILE_A, TILE_B], fake_fetcher(), decoder, "target", skip_bad_tiles=True
    )
    assert route == {1: [1.0, 2.0, 3.0, 4.0]}
    assert "Skipping tile 1/0/0" in caplog.text


def test_fetch_failure_aborts_run(fake_decoder):
    class BrokenFetcher:
        def fetch(self, coordinate):
            raise TileFetchError(f"Tile {coordinate} request failed with HTTP 500")

    with pytest.raises(TileFetchError):
        collect_route([TILE_A], BrokenFetcher(), fake_decoder(), "target", skip_bad_tiles=True)


def test_rate_limiter_runs_between_tiles(fake_fetcher, fake_decoder):
    calls = []

    class RecordingLimiter:
        def before_request(self):
            calls.append("before")

        def after_response(self):
            calls.append("after")

    collect_route([TILE_A, TILE_B], fake_fetcher(), fake_decoder(), "target", limiter=RecordingLimiter())
    assert calls == ["before", "after", "before", "after"]


def test_run_tile_pipeline_writes_track(
    tmp_path, feature_factory, tile_factory, fake_fetcher, fake_decoder, no_delay_limiter
):
    decoder = fake_decoder(
        {
            TILE_A: tile_factory(
                TILE_A,
                {
                    "roads": [feature_factory(1, [[0.0, 0.0], [0.5, 0.5]], layer="roads")],
                    "target": [feature_factory(7, [[10.0, 20.0], [10.1, 20.1]])],
                },
            ),
            TILE_B: tile_factory(TILE_B, {"target": [feature_factory(7, [[10.1, 20.1], [10.2, 20.2]])]}),
        }
    )
    settings = _settings(tmp_path)

    output = run_tile_pipeline(
        settings, fetcher=fake_fetcher(), decoder=decoder, limiter=no_delay_limiter
    )

    assert output == tmp_path / "output.gpx"
    text = output.read_text(encoding="utf-8")
    assert text.count("<trk>") == 1
    assert text.count("<trkseg>") == 1
    assert text.count("<trkpt ") == 3
    first = text.index('lat="20.0" lon="10.0"')
    second = text.index('lat="20.1" lon="10.1"')
    third = text.index('lat="20.2" lon="10.2"')
    assert first < second < third
    assert 'lon="0.5"' not in text


def test_run_tile_pipeline_respects_exclusive_bounds(
    tmp_path, fake_fetcher, fake_decoder, no_delay_limiter
):
    fetcher = fake_fetcher()
    settings = _settings(
        tmp_path,
        top_left=TileCoordinate(0, 0, 2),
        bottom_right=TileCoordinate(2, 2, 2),
        inclusive=False,
    )
    run_tile_pipeline(settings, fetcher=fetcher, decoder=fake_decoder(), limiter=no_delay_limiter)
    assert [(t.x, t.y) for t in fetcher.requested] == [(0, 0), (0, 1), (1, 0), (1, 1)]
    # No target features: still a valid, empty track.
    assert "<trkseg>" in (tmp_path / "output.gpx").read_text(encoding="utf-8")


class GeoJsonDecoder:
    """Decode payloads that already hold tippecanoe-style GeoJSON."""

    def decode(self, payload, coordinate):
        return parse_tippecanoe_geojson(payload.decode("utf-8"), coordinate)


def _geojson_tile(feature_id, coordinates, layer="target"):
    return json.dumps(
        {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "FeatureCollection",
                    "properties": {"layer": layer},
                    "features": [
                        {
                            "type": "Feature",
                            "id": feature_id,
                            "geometry": {"type": "LineString", "coordinates": coordinates},
                        }
                    ],
                }
            ],
        }
    ).encode("utf-8")


@pytest.mark.parametrize(
    "bad_coordinates",
    [[[1, None], [2, 3]], [[1, 2, 3]], [[1, "2"], [3, 4]]],
    ids=["null-leaf", "odd-count", "string-leaf"],
)
def test_tile_with_bad_coordinates_is_a_decode_error(fake_fetcher, bad_coordinates):
    fetcher = fake_fetcher(
        {TILE_A: _geojson_tile(1, bad_coordinates), TILE_B: _geojson_tile(1, [[5, 6], [7, 8]])}
    )
    with pytest.raises(TileDecodeError):
        collect_route([TILE_A, TILE_B], fetcher, GeoJsonDecoder(), "target")
    assert fetcher.requested == [TILE_A]


@pytest.mark.parametrize(
    "bad_coordinates",
    [[[1, None], [2, 3]], [[1, 2, 3]]],
    ids=["null-leaf", "odd-count"],
)
def test_tile_with_bad_coordinates_can_be_skipped(fake_fetcher, bad_coordinates, caplog):
    fetcher = fake_fetcher(
        {TILE_A: _geojson_tile(1, bad_coordinates), TILE_B: _geojson_tile(1, [[5, 6], [7, 8]])}
    )
    route = collect_route(
        [TILE_A, TILE_B], fetcher, GeoJsonDecoder(), "target", skip_bad_tiles=True
    )
    assert route == {1: [5.0, 6.0, 7.0, 8.0]}
    assert "Skipping tile 1/0/0" in caplog.text


@pytest.mark.parametrize(
    "overrides",
    [
        {"top_left": TileCoordinate(1, 0, 1), "bottom_right": TileCoordinate(0, 0, 1)},
        {"bottom_right": TileCoordinate(1, 0, 2)},
        {"decoder": "gdal"},
        {"progress_step_percent": 0},
    ],
    ids=["inverted", "zoom-mismatch", "unknown-decoder", "zero-step"],
)
def test_invalid_settings_fail_before_any_fetch(tmp_path, fake_fetcher, overrides):
    fetcher = fake_fetcher()
    with pytest.raises(ConfigurationError):
        run_tile_pipeline(_settings(tmp_path, **overrides), fetcher=fetcher)
    assert fetcher.requested == []
    assert not (tmp_path / "output.gpx").exists()


def test_run_tile_pipeline_row_major_walk(tmp_path, fake_fetcher, fake_decoder, no_delay_limiter):
    fetcher = fake_fetcher()
    settings = _settings(
        tmp_path,
        top_left=TileCoordinate(0, 0, 2),
        bottom_right=TileCoordinate(1, 1, 2),
        row_major=True,
    )
    run_tile_pipeline(settings, fetcher=fetcher, decoder=fake_decoder(), limiter=no_delay_limiter)
    assert [(t.x, t.y) for t in fetcher.requested] == [(0, 0), (1, 0), (0, 1), (1, 1)]
