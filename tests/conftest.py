"""Shared fixtures: fixture images and in-process fake workers.

Chain exploration tests never run real optimization binaries. Instead they
use ``ScriptedWorker`` subclasses that rewrite a file according to a table
of ``input bytes -> output bytes``. Inputs are tiny SVG documents padded to
an exact byte size, which lets tests reason about sizes precisely while the
format detection still sees a real ``svg`` image.
"""

from pathlib import Path
from typing import ClassVar

import pytest
from PIL import Image

from chainlab.caching import CacheStore, ImageStore
from chainlab.tool_interfaces import Worker
from chainlab.worker_variants import WorkerVariant
from tests.fixtures.images import svg_bytes


@pytest.fixture(autouse=True)
def _clean_chainlab_env(monkeypatch):
    """Keep CHAINLAB_* overrides from the developer's shell out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("CHAINLAB_"):
            monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Fixture images
# ---------------------------------------------------------------------------


@pytest.fixture
def make_svg(tmp_path):
    """Factory writing an exact-size SVG file into the test directory."""

    def _make(size: int, label: str, name: str | None = None) -> Path:
        path = tmp_path / (name or f"{label}.svg")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(svg_bytes(size, label))
        return path

    return _make


@pytest.fixture
def png_image(tmp_path) -> Path:
    path = tmp_path / "opaque.png"
    img = Image.new("RGB", (16, 16), (200, 40, 40))
    for x in range(8):
        img.putpixel((x, x), (0, 0, 255))
    img.save(path)
    return path


@pytest.fixture
def rgba_png_image(tmp_path) -> Path:
    path = tmp_path / "transparent.png"
    img = Image.new("RGBA", (16, 16), (200, 40, 40, 0))
    for x in range(8):
        img.putpixel((x, x), (0, 0, 255, 255))
    img.save(path)
    return path


@pytest.fixture
def jpeg_image(tmp_path) -> Path:
    path = tmp_path / "photo.jpg"
    Image.new("RGB", (16, 16), (10, 120, 10)).save(path, quality=90)
    return path


@pytest.fixture
def animated_gif(tmp_path) -> Path:
    path = tmp_path / "animated.gif"
    frames = [Image.new("RGB", (10, 10), (i * 60, 0, 255 - i * 60)) for i in range(4)]
    frames[0].save(path, save_all=True, append_images=frames[1:], duration=100, loop=0)
    return path


# ---------------------------------------------------------------------------
# Result storage
# ---------------------------------------------------------------------------


@pytest.fixture
def cache(tmp_path) -> CacheStore:
    return CacheStore(tmp_path / "cache" / "results.db")


@pytest.fixture
def image_store(tmp_path) -> ImageStore:
    return ImageStore(tmp_path / "cache" / "images")


# ---------------------------------------------------------------------------
# Fake workers
# ---------------------------------------------------------------------------


class ScriptedWorker(Worker):
    """Worker whose output is looked up in ``TRANSFORMS`` by input content.

    Inputs missing from the table make the worker fail, like a binary that
    could not improve the file.
    """

    NAME = "scripted"
    FORMATS = frozenset({"svg"})
    OPTIONS = {"level": 1}
    TRANSFORMS: ClassVar[dict[bytes, bytes]] = {}
    calls: ClassVar[list[bytes]] = []

    def build_command(self, src: Path, dst: Path) -> list[str]:
        return ["scripted", str(src), str(dst)]

    def optimize(self, src: Path, dst: Path) -> bool:
        content = src.read_bytes()
        type(self).calls.append(content)
        output = self.TRANSFORMS.get(content)
        if output is None:
            return False
        dst.write_bytes(output)
        return True


def make_worker_class(
    name: str,
    run_order: int = 0,
    transforms: dict[bytes, bytes] | None = None,
    allow_consecutive: frozenset[str] = frozenset(),
) -> type[ScriptedWorker]:
    return type(
        f"{name.capitalize()}Worker",
        (ScriptedWorker,),
        {
            "__module__": ScriptedWorker.__module__,
            "NAME": name,
            "RUN_ORDER": run_order,
            "TRANSFORMS": dict(transforms or {}),
            "ALLOW_CONSECUTIVE": allow_consecutive,
            "calls": [],
        },
    )


@pytest.fixture
def worker_factory():
    """Factory returning a fresh ScriptedWorker subclass."""
    return make_worker_class


@pytest.fixture
def variant_of():
    """Build a WorkerVariant from a worker class, optional options and binary versions."""

    def _variant(worker_cls, options=None, binary_versions=()):
        return WorkerVariant.from_worker(worker_cls(options), binary_versions)

    return _variant


class RecordingEstimator:
    """Difference estimator stand-in: relative size change, with every call recorded."""

    def __init__(self):
        self.calls: list[tuple[Path, Path]] = []

    def difference(self, image_a, image_b) -> float:
        self.calls.append((image_a.path, image_b.path))
        if image_a.digest == image_b.digest:
            return 0.0
        return abs(image_a.size - image_b.size) / image_a.size


@pytest.fixture
def estimator() -> RecordingEstimator:
    return RecordingEstimator()
