"""Download Mapbox vector tiles for one tile coordinate at a time."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import requests
from requests import Session

from ..config import MAPBOX_SKU, MAPBOX_TILE_URL_TEMPLATE, MAPBOX_TILESETS, REQUEST_TIMEOUT
from ..errors import TileFetchError
from ..models import TileCoordinate
from .session import create_default_session

LOGGER = logging.getLogger(__name__)


def mask_token(token: str) -> str:
    """Keep only the last four characters of a secret for log output."""
    return f"****{token[-4:]}" if token else ""


class MapboxTileFetcher:
    """Fetch raw ``.vector.pbf`` payloads from the Mapbox v4 tile API."""

    def __init__(
        self,
        access_token: str,
        *,
        tilesets: str = MAPBOX_TILESETS,
        sku: str = MAPBOX_SKU,
        session: Optional[Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._access_token = access_token
        self._tilesets = tilesets
        self._sku = sku
        self._session = session or create_default_session()
        self._timeout = timeout

    def tile_url(self, coordinate: TileCoordinate) -> str:
        return MAPBOX_TILE_URL_TEMPLATE.format(
            tilesets=self._tilesets, z=coordinate.z, x=coordinate.x, y=coordinate.y
        )

    def _params(self) -> Dict[str, str]:
        params = {"access_token": self._access_token}
        if self._sku:
            params["sku"] = self._sku
        return params

    def _scrub(self, message: str) -> str:
        if not self._access_token:
            return message
        return message.replace(self._access_token, mask_token(self._access_token))

    def fetch(self, coordinate: TileCoordinate) -> bytes:
        """Return the tile payload; any transport or HTTP failure is fatal."""
        url = self.tile_url(coordinate)
        LOGGER.debug("GET %s (token %s)", url, mask_token(self._access_token))
        try:
            response = self._session.get(url, params=self._params(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise TileFetchError(
                self._scrub(f"Failed to fetch tile {coordinate}: {exc}")
            ) from None
        if response.status_code >= 400:
            raise TileFetchError(
                f"Tile {coordinate} request failed with HTTP {response.status_code}"
                f" {getattr(response, 'reason', '') or ''}".rstrip()
            )
        payload = response.content or b""
        LOGGER.debug("Tile %s: %d bytes", coordinate, len(payload))
        return payload
