from __future__ import annotations

"""Abstract interface for external image optimization workers.

A worker wraps one optimization binary (pngquant, optipng, jpegoptim, ...)
configured with one option set. Workers are opaque to the chain analysis:
they take a source image and a destination path and either produce a
smaller image or fail.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from .error_handling import ConfigurationError, EngineError
from .external_engines.common import run_command
from .system_tools import ToolInfo, discover_tool

logger = logging.getLogger(__name__)


class Worker(ABC):
    """Common behaviour for any CLI-based optimization worker.

    Sub-classes should *not* execute anything in the constructor – keep them
    lightweight so that every option variant can be instantiated up front.
    """

    #: Worker name used in configuration files and identifiers
    NAME: ClassVar[str] = "worker"

    #: Tool keys (see ``system_tools``) of the binaries the worker runs
    BINARIES: ClassVar[tuple[str, ...]] = ()

    #: Image formats the worker handles
    FORMATS: ClassVar[frozenset[str]] = frozenset()

    #: Canonical position among worker kinds; lower runs earlier in a chain
    RUN_ORDER: ClassVar[int] = 0

    #: Supported options and their defaults
    OPTIONS: ClassVar[dict[str, Any]] = {}

    #: Options whose different values make two variants distinct enough to
    #: run one after the other
    ALLOW_CONSECUTIVE: ClassVar[frozenset[str]] = frozenset()

    #: Whether the binary rewrites its target in place (dst is pre-filled with src)
    IN_PLACE: ClassVar[bool] = False

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        *,
        engine_config=None,
        timeout: int | None = None,
    ):
        options = dict(options or {})
        unknown = sorted(set(options) - set(self.OPTIONS))
        if unknown:
            raise ConfigurationError(
                f"Unknown option(s) for worker '{self.NAME}': {', '.join(unknown)}",
                context={"worker": self.NAME, "known_options": sorted(self.OPTIONS)},
            )
        self.options: dict[str, Any] = {**self.OPTIONS, **options}
        self.engine_config = engine_config
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Binary discovery
    # ------------------------------------------------------------------

    @classmethod
    def tools(cls, engine_config=None) -> dict[str, ToolInfo]:
        return {key: discover_tool(key, engine_config) for key in cls.BINARIES}

    @classmethod
    def binary_versions(cls, engine_config=None) -> tuple[tuple[str, str | None], ...]:
        """Return ``(tool_key, version)`` pairs for every binary the worker uses."""
        return tuple(
            (key, info.version if info.available else None)
            for key, info in cls.tools(engine_config).items()
        )

    def binary(self, tool_key: str) -> str:
        return discover_tool(tool_key, self.engine_config).name

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def non_default_options(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in self.options.items()
            if value != self.OPTIONS[name]
        }

    def consecutive_options(self) -> tuple[tuple[str, Any], ...]:
        return tuple(
            (name, _freeze(self.options[name])) for name in sorted(self.ALLOW_CONSECUTIVE)
        )

    # ------------------------------------------------------------------
    # Public API to run the worker
    # ------------------------------------------------------------------

    @abstractmethod
    def build_command(self, src: Path, dst: Path) -> list[str]:
        """Return the command optimizing *src* into *dst* (or *dst* in place)."""

    def optimize(self, src: Path, dst: Path) -> bool:
        """Try to optimize *src* into *dst*.

        Returns ``True`` only when the binary succeeded and *dst* is a
        non-empty file smaller than *src*. Binary failures are logged and
        reported as ``False``.
        """
        if self.IN_PLACE:
            shutil.copyfile(src, dst)

        try:
            run_command(self.build_command(src, dst), engine=self.NAME, timeout=self.timeout)
        except EngineError as e:
            logger.debug(f"🔧 {self.NAME} failed on {src}: {e}")
            return False

        return _optimized(src, dst)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.options!r})"


def _optimized(src: Path, dst: Path) -> bool:
    if not dst.is_file():
        return False
    dst_size = dst.stat().st_size
    return 0 < dst_size < src.stat().st_size


def _freeze(value: Any) -> Any:
    """Return a hashable equivalent of an option value."""
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value
