"""Turn raw vector-tile payloads into decoded layers and features.

Two decoders share the ``TileDecoder`` protocol:

* ``TippecanoeDecoder`` writes the payload to a temporary file and shells out
  to ``tippecanoe-decode``, parsing the GeoJSON it prints.
* ``MapboxVectorTileDecoder`` decodes in-process with ``mapbox-vector-tile``
  and converts tile-local pixels to WGS84 itself.

Both yield ``DecodedTile`` objects with longitude/latitude coordinates, so
the rest of the pipeline does not care which one ran.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from typing import Any, Dict, Iterable, List, Mapping, Protocol

import mapbox_vector_tile

from .config import DECODER_TIMEOUT, TIPPECANOE_DECODE_BIN
from .errors import TileDecodeError
from .geometry import flatten_coordinates, map_coordinates
from .grid import tile_pixel_to_lonlat
from .models import DecodedLayer, DecodedTile, GeometryType, RawFeature, TileCoordinate

LOGGER = logging.getLogger(__name__)


class TileDecoder(Protocol):
    def decode(self, payload: bytes, coordinate: TileCoordinate) -> DecodedTile:
        ...


def _build_feature(layer_name: str, feature: Mapping[str, Any]) -> RawFeature | None:
    feature_id = feature.get("id")
    if feature_id is None:
        LOGGER.debug("Layer %s: skipping feature without id", layer_name)
        return None
    geometry = feature.get("geometry") or {}
    raw_type = geometry.get("type")
    try:
        geometry_type = GeometryType(raw_type)
    except ValueError as exc:
        raise TileDecodeError(
            f"Layer {layer_name}: unsupported geometry type {raw_type!r}"
        ) from exc
    if "coordinates" not in geometry:
        raise TileDecodeError(f"Layer {layer_name}: feature {feature_id} has no coordinates")
    try:
        flat = flatten_coordinates(geometry["coordinates"])
    except TypeError as exc:
        raise TileDecodeError(
            f"Layer {layer_name}: feature {feature_id} has bad coordinates: {exc}"
        ) from exc
    if len(flat) % 2:
        raise TileDecodeError(
            f"Layer {layer_name}: feature {feature_id} has an odd number"
            f" ({len(flat)}) of coordinate values"
        )
    try:
        identity = int(feature_id)
    except (TypeError, ValueError) as exc:
        raise TileDecodeError(
            f"Layer {layer_name}: feature id {feature_id!r} is not an integer"
        ) from exc
    return RawFeature(
        id=identity,
        layer_name=layer_name,
        geometry_type=geometry_type,
        coordinates=geometry["coordinates"],
        properties=dict(feature.get("properties") or {}),
    )


def _build_layer(
    name: str, features: Iterable[Mapping[str, Any]], extent: int, version: int | None
) -> DecodedLayer:
    decoded: List[RawFeature] = []
    for feature in features:
        built = _build_feature(name, feature)
        if built is not None:
            decoded.append(built)
    return DecodedLayer(name=name, features=decoded, extent=extent, version=version)


def parse_tippecanoe_geojson(text: str, coordinate: TileCoordinate) -> DecodedTile:
    """Parse ``tippecanoe-decode`` output for a single tile.

    The document is a FeatureCollection whose features are themselves
    FeatureCollections, one per layer, with the layer name in
    ``properties.layer``.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TileDecodeError(f"Tile {coordinate}: decoder output is not JSON: {exc}") from exc
    if not isinstance(document, dict) or not isinstance(document.get("features"), list):
        raise TileDecodeError(f"Tile {coordinate}: decoder output is not a FeatureCollection")

    layers: List[DecodedLayer] = []
    for collection in document["features"]:
        if not isinstance(collection, dict):
            raise TileDecodeError(f"Tile {coordinate}: malformed layer entry")
        properties = collection.get("properties") or {}
        name = properties.get("layer")
        if not isinstance(name, str):
            raise TileDecodeError(f"Tile {coordinate}: layer without a name")
        layers.append(
            _build_layer(
                name,
                collection.get("features") or [],
                extent=int(properties.get("extent", 4096)),
                version=properties.get("version"),
            )
        )
    return DecodedTile(coordinate=coordinate, layers=layers)


class TippecanoeDecoder:
    """Decode by running ``tippecanoe-decode <file> <z> <x> <y>``."""

    def __init__(
        self, executable: str = TIPPECANOE_DECODE_BIN, timeout: float = DECODER_TIMEOUT
    ) -> None:
        self.executable = executable
        self.timeout = timeout

    def _run(self, path: str, coordinate: TileCoordinate) -> subprocess.CompletedProcess:
        command = [
            self.executable,
            path,
            str(coordinate.z),
            str(coordinate.x),
            str(coordinate.y),
        ]
        LOGGER.debug("Running %s", " ".join(command))
        try:
            return subprocess.run(
                command, capture_output=True, timeout=self.timeout, check=False
            )
        except FileNotFoundError as exc:
            raise TileDecodeError(
                f"{self.executable} not found; install tippecanoe or use the mvt decoder"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise TileDecodeError(
                f"Tile {coordinate}: {self.executable} timed out after {self.timeout}s"
            ) from exc

    def decode(self, payload: bytes, coordinate: TileCoordinate) -> DecodedTile:
        if not payload:
            return DecodedTile(coordinate=coordinate)
        with tempfile.NamedTemporaryFile(suffix=".pbf", delete=False) as handle:
            handle.write(payload)
            path = handle.name
        try:
            result = self._run(path, coordinate)
        finally:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            raise TileDecodeError(
                f"Tile {coordinate}: {self.executable} exited with "
                f"{result.returncode}: {stderr}"
            )
        text = (result.stdout or b"").decode("utf-8", errors="replace")
        return parse_tippecanoe_geojson(text, coordinate)


class MapboxVectorTileDecoder:
    """Decode in-process with ``mapbox-vector-tile``."""

    def decode(self, payload: bytes, coordinate: TileCoordinate) -> DecodedTile:
        if not payload:
            return DecodedTile(coordinate=coordinate)
        try:
            decoded: Dict[str, Any] = mapbox_vector_tile.decode(
                payload, default_options={"y_coord_down": True}
            )
        except Exception as exc:  # protobuf raises several unrelated types
            raise TileDecodeError(f"Tile {coordinate}: invalid vector tile: {exc}") from exc

        layers: List[DecodedLayer] = []
        for name, layer in decoded.items():
            extent = int(layer.get("extent", 4096))

            def to_lonlat(px: float, py: float, _extent: int = extent):
                return tile_pixel_to_lonlat(coordinate, px, py, _extent)

            features = []
            for feature in layer.get("features", []):
                geometry = feature.get("geometry") or {}
                if "coordinates" in geometry:
                    try:
                        converted = map_coordinates(geometry["coordinates"], to_lonlat)
                    except TypeError as exc:
                        raise TileDecodeError(
                            f"Tile {coordinate}: layer {name} has bad coordinates: {exc}"
                        ) from exc
                    geometry = {"type": geometry.get("type"), "coordinates": converted}
                features.append({**feature, "geometry": geometry})
            layers.append(
                _build_layer(name, features, extent=extent, version=layer.get("version"))
            )
        return DecodedTile(coordinate=coordinate, layers=layers)


DECODERS = {
    "tippecanoe": TippecanoeDecoder,
    "mvt": MapboxVectorTileDecoder,
}


def build_decoder(name: str) -> TileDecoder:
    try:
        factory = DECODERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown decoder {name!r}; choose one of {', '.join(sorted(DECODERS))}"
        ) from None
    return factory()
