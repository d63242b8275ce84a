"""HTTP access to the Pasardana REST API and payload decoding."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Mapping, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://pasardana.id/api"

M = TypeVar("M", bound=BaseModel)


class PasardanaError(RuntimeError):
    """Base error for remote fetch and decode failures."""


class FetchError(PasardanaError):
    """Network error, non-2xx status or empty body."""


class DecodeError(PasardanaError):
    """Payload does not match the expected shape."""


class PasardanaClient:
    """
    Thin blocking client over a shared `requests.Session`.

    Sessions are safe to share between worker threads for plain GETs; every
    request carries basic auth and asks for gzip.
    """

    def __init__(
        self,
        username: str,
        password: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._session = session or requests.Session()
        self._session.auth = (username, password)
        self._session.headers.update({"Accept-Encoding": "gzip"})

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> bytes:
        """GET `path` and return the raw body."""
        url = self.url(path)
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout_s)
        except requests.RequestException as e:
            raise FetchError(f"GET {url} failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise FetchError(f"GET {url} returned HTTP {resp.status_code}")
        if not resp.content:
            raise FetchError(f"GET {url} returned an empty body")
        return resp.content

    def get_many(self, path: str, model: Type[M], params: Optional[Mapping[str, Any]] = None) -> list[M]:
        return decode(self.get(path, params), model)

    def close(self) -> None:
        self._session.close()


@lru_cache(maxsize=None)
def _list_adapter(model: Type[BaseModel]) -> TypeAdapter:
    return TypeAdapter(Optional[list[model]])  # type: ignore[valid-type]


def decode(raw: bytes, model: Type[M]) -> list[M]:
    """Decode a JSON array of `model`; a JSON null decodes to an empty list."""
    try:
        items = _list_adapter(model).validate_json(raw)
    except ValidationError as e:
        raise DecodeError(f"Cannot decode {model.__name__} list: {e.error_count()} error(s)") from e
    return items or []


def decode_strings(raw: bytes) -> list[str]:
    try:
        items = TypeAdapter(Optional[list[str]]).validate_json(raw)
    except ValidationError as e:
        raise DecodeError(f"Cannot decode string list: {e.error_count()} error(s)") from e
    return items or []
