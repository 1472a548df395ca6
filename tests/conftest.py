"""Shared fakes: an in-memory HTTP session and image factories."""

import io
import threading
from typing import Callable, Dict, List, Union

import pytest
from PIL import Image
from requests.exceptions import ConnectionError as RequestsConnectionError

from jmcomic.config import Config

Route = Union[tuple, Callable[[str], tuple], Exception]


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Union[str, bytes] = ""):
        self.status_code = status_code
        self.content = body.encode("utf-8") if isinstance(body, str) else body
        self.encoding = "utf-8"

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")


class FakeSession:
    """Maps exact URLs to ``(status, body)``, a callable, or an exception to raise."""

    def __init__(self, routes: Dict[str, Route] = None, default_status: int = 404):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.default_status = default_status
        self.calls: List[str] = []
        self.headers: Dict[str, str] = {}
        self.verify = True
        self._lock = threading.Lock()

    def get(self, url, **kwargs):
        with self._lock:
            self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(self.default_status, "")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            route = route(url)
        status, body = route
        return FakeResponse(status, body)

    def count(self, prefix: str) -> int:
        return sum(1 for url in self.calls if url.startswith(prefix))


def make_image(width: int, height: int) -> Image.Image:
    """RGB image whose rows are all distinguishable."""
    img = Image.new("RGB", (width, height))
    img.putdata(
        [((y * 7) % 256, (y * 13 + x) % 256, (x * 3) % 256) for y in range(height) for x in range(width)]
    )
    return img


def image_bytes(width: int = 40, height: int = 60, fmt: str = "JPEG") -> bytes:
    buf = io.BytesIO()
    make_image(width, height).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(base_dir=str(tmp_path / "downloads"), concurrent_download=4)


@pytest.fixture
def connection_error():
    return RequestsConnectionError("connection refused")
