"""Chain exploration: run every admissible ordering of workers on one image.

Starting from the source image, every candidate variant is applied; each
application yields one chain (and one result), and the chain is then
extended recursively with the candidates still admissible after it:

* a variant never directly follows another with the same ``cons_id``;
* a variant never follows one with a higher ``run_order``.

Every prefix is scored, not only maximal chains. The distortion of each
chain is measured against the original source image.

Individual worker applications are cached persistently by
``(image digest, variant id)`` with the variant etag as validity tag, and
memoised for the duration of one exploration so identical sub-paths reached
via different prefixes run once. The complete result list of an image is
cached as well, keyed by the image and the set of applicable variants.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .caching import CacheStore, ImageStore
from .difference import DifferenceEstimator
from .meta import ImageHandle
from .worker_variants import WorkerVariant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """Outcome of applying one worker variant to one image."""

    worker_id: str
    success: bool
    time: float
    cpu_time: float
    src_size: int
    dst_size: int | None = None
    cache_key: Path | None = None

    @property
    def size(self) -> int:
        """Size of the image the next step starts from."""
        if self.success and self.dst_size is not None:
            return self.dst_size
        return self.src_size


@dataclass(frozen=True)
class ChainResult:
    """One explored chain of steps applied to an original image."""

    format: str
    steps: tuple[StepResult, ...]
    difference: float

    @property
    def worker_ids(self) -> tuple[str, ...]:
        return tuple(step.worker_id for step in self.steps)

    @property
    def time(self) -> float:
        return sum(step.time for step in self.steps)

    @property
    def src_size(self) -> int:
        return self.steps[0].src_size

    @property
    def dst_size(self) -> int:
        return self.steps[-1].size

    @property
    def ratio(self) -> float:
        return self.dst_size / self.src_size if self.src_size else 1.0


def admissible_after(
    variant: WorkerVariant, candidates: Sequence[WorkerVariant]
) -> tuple[WorkerVariant, ...]:
    """Return the candidates that may directly follow *variant* in a chain."""
    return tuple(
        candidate
        for candidate in candidates
        if candidate.cons_id != variant.cons_id and candidate.run_order >= variant.run_order
    )


def _children_cpu_time() -> float:
    times = os.times()
    return times.children_user + times.children_system


class WorkerRunner:
    """Explores worker chains for images, backed by the persistent cache."""

    def __init__(
        self,
        cache: CacheStore,
        image_store: ImageStore,
        difference_estimator: DifferenceEstimator,
    ):
        self.cache = cache
        self.image_store = image_store
        self.difference_estimator = difference_estimator
        self._memo: dict[tuple[str, str], tuple[StepResult, ImageHandle]] = {}

    def run(self, image: ImageHandle, variants: Sequence[WorkerVariant]) -> list[ChainResult]:
        """Return every chain result for *image* using the applicable *variants*."""
        image_format = image.format
        applicable = sorted(
            (variant for variant in variants if image_format in variant.formats),
            key=lambda variant: variant.id,
        )
        if not applicable:
            return []

        key = (image.digest, tuple(variant.id for variant in applicable))
        etag = (tuple(variant.etag for variant in applicable), image.etag)
        return self.cache.get_or_compute(
            "chains", key, etag, lambda: self._explore(image, image_format, applicable)
        )

    def _explore(
        self, image: ImageHandle, image_format: str, variants: Sequence[WorkerVariant]
    ) -> list[ChainResult]:
        logger.debug(f"🔗 Exploring chains of {len(variants)} variants for {image}")
        results: list[ChainResult] = []
        try:
            self._run_chains(results, image_format, image, image, tuple(variants), ())
        finally:
            self._memo.clear()
        return results

    def _run_chains(
        self,
        results: list[ChainResult],
        image_format: str,
        original: ImageHandle,
        current: ImageHandle,
        candidates: tuple[WorkerVariant, ...],
        chain: tuple[StepResult, ...],
    ) -> None:
        for variant in candidates:
            step, next_image = self.apply(current, variant)
            steps = chain + (step,)
            difference = self.difference_estimator.difference(original, next_image)
            results.append(ChainResult(format=image_format, steps=steps, difference=difference))

            self._run_chains(
                results,
                image_format,
                original,
                next_image,
                admissible_after(variant, candidates),
                steps,
            )

    # ------------------------------------------------------------------
    # Worker application
    # ------------------------------------------------------------------

    def apply(self, image: ImageHandle, variant: WorkerVariant) -> tuple[StepResult, ImageHandle]:
        """Apply *variant* to *image*, returning the step and the image to continue from."""
        memo_key = (image.digest, variant.id)
        if memo_key in self._memo:
            return self._memo[memo_key]

        step = self.cache.get("worker", memo_key, variant.etag)
        if step is None or (step.success and not Path(step.cache_key).is_file()):
            step = self._run_worker(image, variant)
            self.cache.set("worker", memo_key, variant.etag, step)

        next_image = ImageHandle(step.cache_key) if step.success else image
        self._memo[memo_key] = (step, next_image)
        return step, next_image

    def _run_worker(self, image: ImageHandle, variant: WorkerVariant) -> StepResult:
        src_size = image.size
        with tempfile.TemporaryDirectory(prefix="chainlab_worker_") as tmp:
            dst = Path(tmp) / f"output{image.path.suffix.lower()}"

            cpu_start = _children_cpu_time()
            start = time.perf_counter()
            success = variant.optimize(image.path, dst)
            elapsed = time.perf_counter() - start
            cpu_time = _children_cpu_time() - cpu_start

            if not success:
                logger.debug(f"🔧 {variant.id} did not improve {image}")
                return StepResult(
                    worker_id=variant.id,
                    success=False,
                    time=elapsed,
                    cpu_time=cpu_time,
                    src_size=src_size,
                )

            stored = self.image_store.store(dst)

        return StepResult(
            worker_id=variant.id,
            success=True,
            time=elapsed,
            cpu_time=cpu_time,
            src_size=src_size,
            dst_size=stored.size,
            cache_key=stored.path,
        )
