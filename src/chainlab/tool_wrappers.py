from __future__ import annotations

"""Concrete wrappers exposing each optimization binary as a ``Worker``.

Key design choices
------------------
1. **One binary per wrapper** – each wrapper runs a single tool, keeping the
   chain analysis free to combine them in any admissible order.
2. **Options mirror the tool** – ``OPTIONS`` holds the defaults; option
   variants in the configuration file override a subset of them.
3. **Run order** – PNG recompressors that rewrite the whole stream run
   first (pngcrush, then optipng/oxipng/advpng), lossy quantisation after
   them, and format-agnostic passes last.
"""

from pathlib import Path
from typing import Any

from .tool_interfaces import Worker

# ---------------------------------------------------------------------------
# PNG
# ---------------------------------------------------------------------------


class AdvpngWorker(Worker):
    NAME = "advpng"
    BINARIES = ("advpng",)
    FORMATS = frozenset({"png"})
    RUN_ORDER = -4
    OPTIONS = {"level": 4}
    IN_PLACE = True

    def build_command(self, src: Path, dst: Path) -> list[str]:
        return [self.binary("advpng"), f"-{int(self.options['level'])}", "-z", "-q", str(dst)]


class OptipngWorker(Worker):
    NAME = "optipng"
    BINARIES = ("optipng",)
    FORMATS = frozenset({"png"})
    RUN_ORDER = -4
    OPTIONS = {"level": 6, "interlace": False, "strip": True}
    IN_PLACE = True

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [
            self.binary("optipng"),
            f"-o{int(self.options['level'])}",
            "-quiet",
            "-i1" if self.options["interlace"] else "-i0",
        ]
        if self.options["strip"]:
            cmd += ["-strip", "all"]
        return cmd + ["--", str(dst)]


class OxipngWorker(Worker):
    NAME = "oxipng"
    BINARIES = ("oxipng",)
    FORMATS = frozenset({"png"})
    RUN_ORDER = -4
    OPTIONS = {"level": 3, "interlace": False, "strip": True}

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [
            self.binary("oxipng"),
            "-o",
            str(self.options["level"]),
            "--quiet",
            "-i",
            "1" if self.options["interlace"] else "0",
        ]
        if self.options["strip"]:
            cmd += ["--strip", "all"]
        return cmd + ["--out", str(dst), str(src)]


class PngcrushWorker(Worker):
    NAME = "pngcrush"
    BINARIES = ("pngcrush",)
    FORMATS = frozenset({"png"})
    RUN_ORDER = -6
    OPTIONS = {"brute": False, "fix": False, "blacken": True}

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [self.binary("pngcrush"), "-reduce", "-q"]
        if self.options["brute"]:
            cmd.append("-brute")
        if self.options["fix"]:
            cmd.append("-fix")
        if self.options["blacken"]:
            cmd.append("-blacken")
        return cmd + [str(src), str(dst)]


class PngquantWorker(Worker):
    """Lossy palette quantisation; variants with different quality may follow each other."""

    NAME = "pngquant"
    BINARIES = ("pngquant",)
    FORMATS = frozenset({"png"})
    RUN_ORDER = -2
    OPTIONS = {"quality": "100-100", "speed": 3}
    ALLOW_CONSECUTIVE = frozenset({"quality"})

    def build_command(self, src: Path, dst: Path) -> list[str]:
        return [
            self.binary("pngquant"),
            f"--quality={_quality_range(self.options['quality'])}",
            f"--speed={int(self.options['speed'])}",
            "--force",
            "--output",
            str(dst),
            "--",
            str(src),
        ]


# ---------------------------------------------------------------------------
# JPEG
# ---------------------------------------------------------------------------


class JpegoptimWorker(Worker):
    NAME = "jpegoptim"
    BINARIES = ("jpegoptim",)
    FORMATS = frozenset({"jpeg"})
    RUN_ORDER = 0
    OPTIONS = {"strip": True, "max_quality": 100}
    ALLOW_CONSECUTIVE = frozenset({"max_quality"})
    IN_PLACE = True

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [self.binary("jpegoptim"), "--quiet"]
        if self.options["strip"]:
            cmd.append("--strip-all")
        if int(self.options["max_quality"]) < 100:
            cmd.append(f"--max={int(self.options['max_quality'])}")
        return cmd + ["--", str(dst)]


class JpegtranWorker(Worker):
    NAME = "jpegtran"
    BINARIES = ("jpegtran",)
    FORMATS = frozenset({"jpeg"})
    RUN_ORDER = 0
    OPTIONS = {"copy_chunks": False, "progressive": True}

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [
            self.binary("jpegtran"),
            "-optimize",
            "-copy",
            "all" if self.options["copy_chunks"] else "none",
        ]
        if self.options["progressive"]:
            cmd.append("-progressive")
        return cmd + ["-outfile", str(dst), str(src)]


# ---------------------------------------------------------------------------
# GIF / SVG
# ---------------------------------------------------------------------------


class GifsicleWorker(Worker):
    NAME = "gifsicle"
    BINARIES = ("gifsicle",)
    FORMATS = frozenset({"gif"})
    RUN_ORDER = 0
    OPTIONS = {"level": 3, "interlace": False, "careful": False}

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [
            self.binary("gifsicle"),
            f"-O{int(self.options['level'])}",
            "--interlace" if self.options["interlace"] else "--no-interlace",
        ]
        if self.options["careful"]:
            cmd.append("--careful")
        return cmd + ["--output", str(dst), str(src)]


class SvgoWorker(Worker):
    NAME = "svgo"
    BINARIES = ("svgo",)
    FORMATS = frozenset({"svg"})
    RUN_ORDER = 0
    OPTIONS = {"multipass": False}

    def build_command(self, src: Path, dst: Path) -> list[str]:
        cmd = [self.binary("svgo"), "--quiet", "--input", str(src), "--output", str(dst)]
        if self.options["multipass"]:
            cmd.append("--multipass")
        return cmd


def _quality_range(value: Any) -> str:
    """Normalise ``80``, ``"60-80"`` or ``[60, 80]`` to pngquant's ``min-max`` syntax."""
    if isinstance(value, (list, tuple)):
        low, high = value
        return f"{int(low)}-{int(high)}"
    return str(value)
