from __future__ import annotations

import io
import random
import threading
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union

import pytest
import requests
from PIL import Image

from catalogue import config
from catalogue.models import Dimensions, Price, ProductRecord, reset_engine
from catalogue.pipeline.images import ImageLoader


def image_bytes(width: int = 80, height: int = 40, color=(180, 120, 60), fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def corrupt_png() -> bytes:
    """Noise PNG spread over several IDAT chunks, with the second chunk type overwritten."""
    noise = Image.frombytes("RGB", (400, 400), random.Random(7).randbytes(400 * 400 * 3))
    buf = io.BytesIO()
    noise.save(buf, format="PNG")
    data = bytearray(buf.getvalue())
    second = data.index(b"IDAT", data.index(b"IDAT") + 4)
    data[second:second + 4] = b"\x00\x01\x02\x03"
    return bytes(data)


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", content_type: str = "image/png") -> None:
        self.status_code = status_code
        self.content = content
        self.headers = {"Content-Type": content_type}


class FakeSession:
    """Stands in for requests.Session; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.routes: Dict[str, Union[FakeResponse, Exception]] = {}
        self.calls: List[Tuple[str, dict, float]] = []
        self._lock = threading.Lock()

    def add_image(self, url: str, width: int = 80, height: int = 40, fmt: str = "PNG") -> None:
        mime = "image/png" if fmt == "PNG" else "image/jpeg"
        self.routes[url] = FakeResponse(200, image_bytes(width, height, fmt=fmt), mime)

    def add(self, url: str, status: int = 200, content: bytes = b"", content_type: str = "image/png") -> None:
        self.routes[url] = FakeResponse(status, content, content_type)

    def fail(self, url: str, exc: Exception) -> None:
        self.routes[url] = exc

    def get(self, url: str, headers=None, timeout=None) -> FakeResponse:
        with self._lock:
            self.calls.append((url, headers or {}, timeout))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, b"Not Found", "text/html")
        if isinstance(route, Exception):
            raise route
        return route

    def requested(self) -> List[str]:
        return [url for url, _, _ in self.calls]


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def loader(fake_session: FakeSession) -> ImageLoader:
    return ImageLoader(session=fake_session, timeout=2.0, max_workers=3)


@pytest.fixture
def make_product() -> Callable[..., ProductRecord]:
    counter = {"n": 0}

    def _make(**overrides) -> ProductRecord:
        counter["n"] += 1
        n = counter["n"]
        values = dict(
            id=f"p{n}",
            name=f"Indigo Scarf {n}",
            tribe="Hmong",
            category="Textiles",
            story="Hand-dyed with local indigo.",
            materials=("Cotton", "Indigo dye"),
            price=Price(1250, "THB"),
            images=(f"https://img.example.com/p{n}.png",),
            dimensions=Dimensions(180, 40, None, "cm"),
            stock_quantity=3,
            featured=False,
        )
        values.update(overrides)
        return ProductRecord(**values)

    return _make


@pytest.fixture
def out_dir(tmp_path: Path):
    previous = config.OUT_DIR
    config.set_out_dir(tmp_path / "out")
    reset_engine()
    yield config.OUT_DIR
    config.set_out_dir(previous)
    reset_engine()


@pytest.fixture
def timeout_error() -> Exception:
    return requests.exceptions.ConnectTimeout("timed out")
