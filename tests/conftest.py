import json
import threading

import pytest

from market_sync import db as dbmod
from market_sync.client import FetchError, decode
from market_sync.workers import FetchWorkerPool


class FakeClient:
    """Stands in for PasardanaClient; routes map an API path to a handler(params)."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self._lock = threading.Lock()

    def get(self, path, params=None):
        with self._lock:
            self.calls.append((path, dict(params or {})))
        handler = self.routes.get(path)
        if handler is None:
            raise FetchError(f"GET {path} returned HTTP 404")
        payload = handler(dict(params or {})) if callable(handler) else handler
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, bytes):
            return payload
        return json.dumps(payload).encode("utf-8")

    def get_many(self, path, model, params=None):
        return decode(self.get(path, params), model)

    def calls_to(self, path):
        return [params for p, params in self.calls if p == path]

    def close(self):
        pass


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "market_data.sqlite")
    dbmod.init_db(path)
    return path


@pytest.fixture
def pool():
    with FetchWorkerPool(max_workers=4) as p:
        yield p
