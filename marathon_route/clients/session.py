"""HTTP session factory for tile and feature-service calls."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import HTTP_MAX_RETRIES, HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE

__all__ = ["create_default_session"]


def _build_retry(max_retries: int) -> Retry:
    return Retry(
        total=max(0, max_retries),
        backoff_factor=1.0,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )


def create_default_session(max_retries: int = HTTP_MAX_RETRIES) -> Session:
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(max_retries),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/x-protobuf, application/json;q=0.9, */*;q=0.1",
        }
    )
    return session
