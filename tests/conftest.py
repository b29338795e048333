"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable factories and in-memory
fakes so pipeline tests never touch the network or spawn a decoder.
"""
from __future__ import annotations

import os
import sys
from typing import Dict, List

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from marathon_route.clients.rate_limiter import RateLimiter
from marathon_route.errors import TileDecodeError
from marathon_route.models import (
    DecodedLayer,
    DecodedTile,
    GeometryType,
    RawFeature,
    TileCoordinate,
)


# --- Factory helpers -------------------------------------------------
def make_feature(feature_id, coordinates, layer="target", geometry_type=GeometryType.LINE_STRING):
    return RawFeature(id=feature_id, layer_name=layer, geometry_type=geometry_type, coordinates=coordinates)


def make_tile(coordinate, layers: Dict[str, List[RawFeature]]):
    return DecodedTile(
        coordinate=coordinate,
        layers=[DecodedLayer(name=name, features=features) for name, features in layers.items()],
    )


class FakeFetcher:
    """Return canned payloads keyed by tile, recording every request."""

    def __init__(self, payloads=None, default=b"tile"):
        self.payloads = payloads or {}
        self.default = default
        self.requested: List[TileCoordinate] = []

    def fetch(self, coordinate):
        self.requested.append(coordinate)
        return self.payloads.get(coordinate, self.default)


class FakeDecoder:
    """Map tile coordinates to pre-built DecodedTile objects (or errors)."""

    def __init__(self, tiles=None, failures=()):
        self.tiles = tiles or {}
        self.failures = set(failures)
        self.decoded: List[TileCoordinate] = []

    def decode(self, payload, coordinate):
        self.decoded.append(coordinate)
        if coordinate in self.failures:
            raise TileDecodeError(f"Tile {coordinate}: garbage")
        return self.tiles.get(coordinate, DecodedTile(coordinate=coordinate))


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def no_delay_limiter():
    return RateLimiter(0.0, sleep=lambda _seconds: None)


@pytest.fixture
def clear_mapbox_token(monkeypatch):
    monkeypatch.delenv("MAPBOX_ACCESS_TOKEN", raising=False)


@pytest.fixture
def mapbox_token(monkeypatch):
    monkeypatch.setenv("MAPBOX_ACCESS_TOKEN", "pk.test-token-abcd")
    return "pk.test-token-abcd"


@pytest.fixture
def feature_factory():
    return make_feature


@pytest.fixture
def tile_factory():
    return make_tile


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_decoder():
    return FakeDecoder
