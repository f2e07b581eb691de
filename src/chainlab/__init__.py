"""ChainLab - image optimization worker chain analysis laboratory."""

__version__: str = "0.1.0"
__author__: str = "ChainLab Team"
__email__: str = "team@chainlab.example"

# Public re-exports for convenience ---------------------------------------------------

# NOTE: keep imports lightweight to avoid slow import-time side-effects.  Only import
# small, dependency-free symbols.

from .capability_registry import worker_class, workers_for
from .system_tools import ToolInfo, discover_tool
from .tool_interfaces import Worker

__all__ = [
    "ToolInfo",
    "Worker",
    "__version__",
    "discover_tool",
    "worker_class",
    "workers_for",
]
