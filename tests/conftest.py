import json
from pathlib import Path

import httpx
import pytest

from store.db import open_database


FIXTURES = Path(__file__).resolve().parent / "fixtures"

FEED_FILES = {
    "latest": "autogempa.json",
    "recent": "gempaterkini.json",
    "felt": "gempadirasakan.json",
}


def load_fixture(kind: str) -> dict:
    return json.loads((FIXTURES / FEED_FILES[kind]).read_text(encoding="utf-8"))


def _mock_bmkg(payloads: dict[str, object]) -> httpx.MockTransport:
    """Serve ``payloads`` keyed by feed kind.

    A value may be a JSON value, raw ``bytes`` served as the body, an int
    status code, or an exception to raise from the transport. Bodies are
    streamed the way a network response is.
    """
    by_file = {FEED_FILES[kind]: value for kind, value in payloads.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        if name not in by_file:
            return httpx.Response(404)
        value = by_file[name]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return httpx.Response(value, stream=httpx.ByteStream(b"unavailable"))
        body = value if isinstance(value, bytes) else json.dumps(value).encode()
        return httpx.Response(200, stream=httpx.ByteStream(body))

    return httpx.MockTransport(handler)


@pytest.fixture
def db(tmp_path):
    database = open_database(tmp_path / "test.db")
    try:
        yield database
    finally:
        with database.lock:
            database.conn.close()


@pytest.fixture
def bmkg_transport():
    return _mock_bmkg


@pytest.fixture
def bmkg_fixture():
    return load_fixture
