"""Worker variants: one worker configured with one option set, plus its identity.

A ``WorkerVariant`` carries everything the chain analysis needs to know
about a configured worker without touching the worker itself:

* ``id``        – worker name plus its non-default options, e.g.
  ``pngquant(quality:60-80)``
* ``run_order`` – canonical position of the worker kind in a chain
* ``cons_id``   – variants with equal ``cons_id`` never run back to back
* ``etag``      – changes whenever re-running the variant could give a
  different result: a different id, a different resolved binary version
  or different worker code.
"""

from __future__ import annotations

import hashlib
import inspect
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .capability_registry import all_worker_classes, worker_class
from .error_handling import ConfigurationError, error_context
from .tool_interfaces import Worker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerVariant:
    """A configured worker and its derived identity."""

    worker: Worker = field(compare=False, repr=False)
    id: str
    run_order: int
    cons_id: tuple
    etag: tuple

    @classmethod
    def from_worker(
        cls,
        worker: Worker,
        binary_versions: tuple[tuple[str, str | None], ...] | None = None,
    ) -> WorkerVariant:
        if binary_versions is None:
            binary_versions = type(worker).binary_versions(worker.engine_config)
        variant_id = worker_id(worker)
        return cls(
            worker=worker,
            id=variant_id,
            run_order=type(worker).RUN_ORDER,
            cons_id=(type(worker).NAME, worker.consecutive_options()),
            etag=(variant_id, binary_versions, implementation_digest(type(worker))),
        )

    @property
    def formats(self) -> frozenset[str]:
        return type(self.worker).FORMATS

    def optimize(self, src: Path, dst: Path) -> bool:
        return self.worker.optimize(src, dst)

    def __str__(self) -> str:
        return self.id


def worker_id(worker: Worker) -> str:
    options = worker.non_default_options()
    if not options:
        return worker.NAME
    formatted = ", ".join(f"{name}:{_format_value(options[name])}" for name in sorted(options))
    return f"{worker.NAME}({formatted})"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_format_value(v) for v in value) + "]"
    return str(value)


@lru_cache(maxsize=None)
def implementation_digest(worker_cls: type[Worker]) -> str:
    """Digest of the source of *worker_cls* and of each worker base in its MRO.

    Only the class bodies are hashed, so editing one worker leaves the
    digest of every other worker unchanged.
    """
    sha = hashlib.sha256()
    for klass in worker_cls.__mro__:
        if not (isinstance(klass, type) and issubclass(klass, Worker)):
            continue
        try:
            source = inspect.getsource(klass)
        except (OSError, TypeError):
            # Classes built at runtime have no source; their name stands in
            source = f"{klass.__module__}.{klass.__qualname__}"
        sha.update(source.encode("utf-8"))
    return sha.hexdigest()


# ---------------------------------------------------------------------------
# Option variant configuration
# ---------------------------------------------------------------------------


def load_option_variants(path: Path) -> dict[str, Any]:
    """Read an option-variant YAML file.

    Expected layout::

        pngquant:
          - {quality: 60-80}
          - {quality: 80-95, speed: 1}
        optipng: {level: 7}
        svgo: false

    Structure is checked here; option names are checked when the
    variants are built.
    """
    with error_context(
        "read option variants", ConfigurationError, context={"file": str(path)}
    ):
        data = yaml.safe_load(Path(path).read_text())

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid option variants in {path}: expected a mapping of worker names"
        )
    return {str(name): value for name, value in data.items()}


def _normalise_variants(name: str, value: Any) -> list[dict[str, Any]]:
    if value is None or value is True:
        return [{}]
    if value is False:
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        variants = []
        for entry in value:
            if entry is None:
                entry = {}
            if not isinstance(entry, dict):
                raise ConfigurationError(
                    f"Invalid variant for worker '{name}': expected a mapping, got {entry!r}"
                )
            variants.append(entry)
        return variants
    raise ConfigurationError(
        f"Invalid variants for worker '{name}': expected mapping, list or boolean, got {value!r}"
    )


def build_variants(
    option_variants: dict[str, Any] | None = None,
    *,
    engine_config=None,
    timeout: int | None = None,
    only_available: bool = True,
) -> list[WorkerVariant]:
    """Instantiate every configured worker variant.

    Workers absent from *option_variants* get one variant with default
    options. Unknown worker names or option keys raise
    ``ConfigurationError`` before any worker is resolved.
    """
    option_variants = dict(option_variants or {})

    plan: list[tuple[type[Worker], dict[str, Any]]] = []
    for name in option_variants:
        try:
            worker_class(name)
        except KeyError as e:
            raise ConfigurationError(f"Unknown worker in option variants: {name}") from e

    for cls in all_worker_classes():
        for options in _normalise_variants(cls.NAME, option_variants.get(cls.NAME)):
            # Raises ConfigurationError on unknown options
            cls(options, engine_config=engine_config, timeout=timeout)
            plan.append((cls, options))

    variants: list[WorkerVariant] = []
    seen_ids: set[str] = set()
    versions: dict[type[Worker], tuple[tuple[str, str | None], ...]] = {}
    unavailable: set[type[Worker]] = set()
    for cls, options in plan:
        if cls not in versions:
            tools = cls.tools(engine_config)
            versions[cls] = tuple((key, info.version) for key, info in tools.items())
            if not all(info.available for info in tools.values()):
                unavailable.add(cls)
                if only_available:
                    logger.warning(f"⚠️  Skipping worker {cls.NAME}: binary not found")
        if only_available and cls in unavailable:
            continue

        worker = cls(options, engine_config=engine_config, timeout=timeout)
        variant = WorkerVariant.from_worker(worker, versions[cls])
        if variant.id in seen_ids:
            logger.debug(f"Ignoring duplicate variant {variant.id}")
            continue
        seen_ids.add(variant.id)
        variants.append(variant)

    return variants
