from __future__ import annotations

"""Utility helpers for locating external binaries and resolving their versions.

The resolved version of every binary a worker uses is part of that worker's
etag, so upgrading e.g. pngquant invalidates exactly the cached results
produced by pngquant variants.
"""

import re
import subprocess
from dataclasses import dataclass
from shutil import which


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """Metadata for an external binary discovered on the system."""

    name: str
    available: bool
    version: str | None = None

    def require(self) -> None:
        """Raise *RuntimeError* if the tool isn't available."""
        if not self.available:
            raise RuntimeError(
                f"Required tool '{self.name}' not found in PATH.\n"
                "📖 Install it or point CHAINLAB_<TOOL>_PATH at the binary."
            )


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def _which(cmd: str) -> str | None:
    """Return full path if *cmd* is executable in $PATH, else *None*."""
    return which(cmd)


def _extract_version(output: str, pattern: str) -> str | None:
    match = re.search(pattern, output)
    if match:
        return match.group(1)
    return None


def _run_version_cmd(cmd: list[str], regex: str) -> str | None:
    try:
        # Don't use check=True since some tools return non-zero for their version flag
        completed = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return None

    # Version info may be printed on either stream regardless of exit code
    version = _extract_version(completed.stdout, regex) or _extract_version(
        completed.stderr, regex
    )
    return version


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

# PATH candidates tried in order when the configured path is not executable
_FALLBACK_TOOLS: dict[str, list[str]] = {
    "imagemagick": ["magick", "convert"],
    "advpng": ["advpng"],
    "gifsicle": ["gifsicle"],
    "jpegoptim": ["jpegoptim"],
    "jpegtran": ["jpegtran"],
    "optipng": ["optipng"],
    "oxipng": ["oxipng"],
    "pngcrush": ["pngcrush"],
    "pngquant": ["pngquant"],
    "svgo": ["svgo"],
}

_VERSION_FLAGS: dict[str, str] = {
    "imagemagick": "-version",
    "jpegtran": "-version",
    "pngcrush": "-version",
}

_VERSION_PATTERNS: dict[str, str] = {
    "imagemagick": r"ImageMagick (\S+)",
    "advpng": r"advancecomp v(\S+)",
    "gifsicle": r"LCDF Gifsicle (\S+)",
    "jpegoptim": r"jpegoptim v(\S+)",
    "jpegtran": r"version (\S+)",
    "optipng": r"OptiPNG version (\S+)",
    "oxipng": r"oxipng (\S+)",
    "pngcrush": r"pngcrush ([\d.]+)",
    "pngquant": r"^(\d+\.\d+(?:\.\d+)?)",
    "svgo": r"^(\d+\.\d+\.\d+)",
}

# Map tool keys to configuration attributes
_CONFIG_MAPPING: dict[str, str] = {
    "imagemagick": "IMAGEMAGICK_PATH",
    "advpng": "ADVPNG_PATH",
    "gifsicle": "GIFSICLE_PATH",
    "jpegoptim": "JPEGOPTIM_PATH",
    "jpegtran": "JPEGTRAN_PATH",
    "optipng": "OPTIPNG_PATH",
    "oxipng": "OXIPNG_PATH",
    "pngcrush": "PNGCRUSH_PATH",
    "pngquant": "PNGQUANT_PATH",
    "svgo": "SVGO_PATH",
}


def _version_cmd(binary: str, tool_key: str) -> list[str]:
    return [binary, _VERSION_FLAGS.get(tool_key, "--version")]


def discover_tool(tool_key: str, engine_config=None) -> ToolInfo:
    """Return *ToolInfo* for *tool_key* using configuration and fallback discovery.

    Args:
        tool_key: Tool identifier (imagemagick, pngquant, gifsicle, ...)
        engine_config: EngineConfig instance (uses DEFAULT_ENGINE_CONFIG if None)

    Returns:
        ToolInfo with availability and version information
    """
    if tool_key not in _FALLBACK_TOOLS:
        raise ValueError(f"Unknown tool: {tool_key}")

    if engine_config is None:
        from .config import DEFAULT_ENGINE_CONFIG

        engine_config = DEFAULT_ENGINE_CONFIG

    version_regex = _VERSION_PATTERNS.get(tool_key, r"(\d+\.\d+\.\d+)")

    # Try configured path first
    configured_path = getattr(engine_config, _CONFIG_MAPPING[tool_key], None)
    if configured_path and _which(configured_path):
        version = _run_version_cmd(_version_cmd(configured_path, tool_key), version_regex)
        return ToolInfo(name=configured_path, available=True, version=version)

    # Fallback to PATH discovery
    for candidate in _FALLBACK_TOOLS[tool_key]:
        if _which(candidate):
            version = _run_version_cmd(_version_cmd(candidate, tool_key), version_regex)
            return ToolInfo(name=candidate, available=True, version=version)

    return ToolInfo(name=_FALLBACK_TOOLS[tool_key][0], available=False, version=None)
