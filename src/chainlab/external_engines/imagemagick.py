from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image

from ..config import DEFAULT_ENGINE_CONFIG
from ..error_handling import EngineError
from ..system_tools import discover_tool
from .common import run_command

__all__ = [
    "compare_rmse",
    "composite_over_noise",
    "flatten_frames",
    "has_alpha",
    "is_animated",
]

logger = logging.getLogger(__name__)

_ALPHA_TRUE_VALUES = {"true", "blend"}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _magick_binary(engine_config=None) -> str:
    """Return the preferred ImageMagick binary (``magick`` or ``convert``)."""
    info = discover_tool("imagemagick", engine_config)
    try:
        info.require()
    except RuntimeError as e:
        raise EngineError(str(e), cause=e) from e
    return info.name


def _identify_command(engine_config=None) -> list[str]:
    engine_config = engine_config or DEFAULT_ENGINE_CONFIG
    if engine_config.IDENTIFY_PATH:
        return [engine_config.IDENTIFY_PATH]

    binary = _magick_binary(engine_config)
    # ImageMagick 6 ships identify as a separate binary next to convert
    if Path(binary).name == "convert":
        return [str(Path(binary).with_name("identify"))]
    return [binary, "identify"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_animated(input_path: Path) -> bool:
    """Return ``True`` if *input_path* holds more than one frame."""
    try:
        with Image.open(input_path) as img:
            return getattr(img, "n_frames", 1) > 1
    except OSError:
        return False


def flatten_frames(
    input_path: Path,
    output_path: Path,
    *,
    timeout: int | None = 60,
    engine_config=None,
) -> Path:
    """Stack every (coalesced) frame of *input_path* into one PNG image."""
    cmd = [
        _magick_binary(engine_config),
        str(input_path),
        "-coalesce",
        "-append",
        f"PNG32:{output_path}",
    ]
    run_command(cmd, engine="imagemagick", timeout=timeout)
    return output_path


def has_alpha(input_path: Path, *, timeout: int | None = 60, engine_config=None) -> bool:
    """Return ``True`` if the first frame of *input_path* has an alpha channel."""
    cmd = [*_identify_command(engine_config), "-format", "%A", f"{input_path}[0]"]
    result = run_command(cmd, engine="imagemagick", timeout=timeout)
    return result["stdout"].strip().lower() in _ALPHA_TRUE_VALUES


def noise_canvas(size: tuple[int, int], seed: int = 0) -> Image.Image:
    """Return an opaque RGB canvas of uniform noise, identical for equal *size* and *seed*."""
    width, height = size
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(pixels, mode="RGB")


def composite_over_noise(
    input_path: Path,
    output_path: Path,
    *,
    seed: int = 0,
    timeout: int | None = 60,
    engine_config=None,
) -> Path:
    """Composite *input_path* over a fixed noise canvas of the same size.

    Transparent pixels then compare as noise instead of as whatever colour an
    encoder left behind, which keeps images with and without alpha comparable.
    """
    with Image.open(input_path) as img:
        size = img.size

    with tempfile.TemporaryDirectory(prefix="chainlab_noise_") as tmp:
        noise_path = Path(tmp) / "noise.png"
        noise_canvas(size, seed).save(noise_path)

        cmd = [
            _magick_binary(engine_config),
            str(noise_path),
            f"{input_path}[0]",
            "-compose",
            "over",
            "-composite",
            f"PNG24:{output_path}",
        ]
        run_command(cmd, engine="imagemagick", timeout=timeout)
    return output_path


def compare_rmse(
    image_a: Path,
    image_b: Path,
    *,
    timeout: int | None = 60,
    engine_config=None,
) -> float:
    """Return the normalized root-mean-square distortion between two images."""
    cmd = [
        _magick_binary(engine_config),
        str(image_a),
        str(image_b),
        "-auto-orient",
        "-metric",
        "RMSE",
        "-compare",
        "-format",
        "%[distortion]",
        "info:",
    ]
    result = run_command(cmd, engine="imagemagick", timeout=timeout)
    output = result["stdout"].strip()
    try:
        return float(output)
    except ValueError as e:
        raise EngineError(f"Unexpected distortion output: {output!r}", cause=e) from e
