"""Tests for binary discovery and version resolution."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from chainlab.config import EngineConfig
from chainlab.system_tools import (
    ToolInfo,
    _extract_version,
    _run_version_cmd,
    discover_tool,
)


class TestDiscoverTool:
    """Configured path first, PATH fallbacks second."""

    def test_unknown_tool(self):
        with pytest.raises(ValueError, match="Unknown tool"):
            discover_tool("pngcrunch")

    def test_configured_path_wins(self):
        config = EngineConfig(PNGQUANT_PATH="/opt/bin/pngquant")
        with patch("chainlab.system_tools._which", return_value="/opt/bin/pngquant"), patch(
            "chainlab.system_tools._run_version_cmd", return_value="3.0.3"
        ) as version_cmd:
            info = discover_tool("pngquant", config)

        assert info == ToolInfo(name="/opt/bin/pngquant", available=True, version="3.0.3")
        assert version_cmd.call_args.args[0] == ["/opt/bin/pngquant", "--version"]

    def test_imagemagick_falls_back_to_convert(self):
        """ImageMagick 6 installs only ``convert``."""
        with patch(
            "chainlab.system_tools._which",
            side_effect=lambda cmd: "/usr/bin/convert" if cmd == "convert" else None,
        ), patch("chainlab.system_tools._run_version_cmd", return_value="6.9.11") as version_cmd:
            info = discover_tool("imagemagick", EngineConfig())

        assert info.name == "convert"
        assert info.available
        assert version_cmd.call_args.args[0] == ["convert", "-version"]

    def test_missing_tool(self):
        with patch("chainlab.system_tools._which", return_value=None):
            info = discover_tool("svgo", EngineConfig())
        assert info == ToolInfo(name="svgo", available=False, version=None)

    def test_require(self):
        ToolInfo(name="svgo", available=True).require()
        with pytest.raises(RuntimeError, match="not found"):
            ToolInfo(name="svgo", available=False).require()


class TestVersionParsing:
    """Version extraction from tool output."""

    @pytest.mark.fast
    def test_extract_version(self):
        assert _extract_version("Version: ImageMagick 7.1.1-21 Q16", r"ImageMagick (\S+)") == (
            "7.1.1-21"
        )
        assert _extract_version("nothing here", r"ImageMagick (\S+)") is None

    def test_version_on_stderr_with_nonzero_exit(self):
        """Some tools print their version to stderr and exit non-zero."""
        completed = MagicMock(stdout="", stderr="pngcrush 1.8.13, uses libpng", returncode=1)
        with patch("chainlab.system_tools.subprocess.run", return_value=completed):
            assert _run_version_cmd(["pngcrush", "-version"], r"pngcrush ([\d.]+)") == "1.8.13"

    def test_version_command_failure(self):
        with patch(
            "chainlab.system_tools.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="x", timeout=5),
        ):
            assert _run_version_cmd(["x", "--version"], r"(\d+)") is None
