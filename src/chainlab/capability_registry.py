from __future__ import annotations

"""Capability registry – maps image formats to the worker classes handling them."""

import inspect
from collections.abc import Iterator

from .tool_interfaces import Worker

# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _iter_all_worker_classes() -> Iterator[type[Worker]]:
    """Yield every concrete worker defined in *chainlab.tool_wrappers*."""
    from . import tool_wrappers

    for _, obj in inspect.getmembers(tool_wrappers, inspect.isclass):
        if issubclass(obj, Worker) and obj is not Worker and not inspect.isabstract(obj):
            yield obj


_REGISTRY: dict[str, type[Worker]] = {cls.NAME: cls for cls in _iter_all_worker_classes()}

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def all_worker_classes() -> list[type[Worker]]:
    """Return every known worker class ordered by name."""
    return [_REGISTRY[name] for name in sorted(_REGISTRY)]


def worker_class(name: str) -> type[Worker]:
    """Return the worker class registered as *name*."""
    if name not in _REGISTRY:
        raise KeyError(f"Unknown worker: {name}")
    return _REGISTRY[name]


def workers_for(image_format: str) -> list[type[Worker]]:
    """Return worker classes handling *image_format*, ordered by name."""
    return [cls for cls in all_worker_classes() if image_format in cls.FORMATS]


def all_formats() -> list[str]:
    return sorted({fmt for cls in _REGISTRY.values() for fmt in cls.FORMATS})
