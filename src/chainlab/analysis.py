"""Batch orchestration of chain analysis over many input images.

``AnalysisRunner`` ties the pieces together:

1. builds every worker variant (configuration errors are fatal here,
   before any image is touched);
2. validates and expands the input paths, skipping rejected inputs;
3. explores worker chains for each image, sequentially or across a
   process pool;
4. aggregates the chain results per image format and renders one report
   per format, plus an optional CSV of every chain result.

Reports are only written once every image has been explored, so a failed
comparison never leaves a partial report behind.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tqdm import tqdm

from .caching import CacheStore, ImageStore
from .capability_registry import all_formats
from .chain_runner import ChainResult, WorkerRunner
from .chain_stats import ChainStats, StatsAggregator, unused_workers
from .config import DEFAULT_ANALYSIS_CONFIG, DEFAULT_ENGINE_CONFIG, DEFAULT_PATH_CONFIG
from .difference import DifferenceEstimator
from .error_handling import ValidationError, log_warning_with_context
from .meta import ImageHandle
from .report import export_chain_results_csv, render_report
from .worker_variants import WorkerVariant, build_variants

logger = logging.getLogger(__name__)


@dataclass
class AnalysisSummary:
    """Everything one analysis run produced."""

    results_by_format: dict[str, list[ChainResult]] = field(default_factory=dict)
    stats_by_format: dict[str, list[ChainStats]] = field(default_factory=dict)
    unused_by_format: dict[str, list[str]] = field(default_factory=dict)
    images_by_format: dict[str, int] = field(default_factory=dict)
    reports: dict[str, Path] = field(default_factory=dict)
    csv_path: Path | None = None
    skipped: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def total_results(self) -> int:
        return sum(len(results) for results in self.results_by_format.values())

    @property
    def image_count(self) -> int:
        return sum(self.images_by_format.values())


def _build_pipeline(path_config, engine_config, analysis_config) -> WorkerRunner:
    cache = CacheStore(path_config.cache_db_path)
    image_store = ImageStore(path_config.images_dir)
    estimator = DifferenceEstimator(
        cache,
        image_store,
        analysis_config=analysis_config,
        engine_config=engine_config,
    )
    return WorkerRunner(cache, image_store, estimator)


def _explore_image_process(
    index: int,
    image_path: Path,
    variants: Sequence[WorkerVariant],
    path_config,
    engine_config,
    analysis_config,
) -> tuple[int, list[ChainResult]]:
    """Explore one image inside a pool process with its own cache connection."""
    runner = _build_pipeline(path_config, engine_config, analysis_config)
    return index, runner.run(ImageHandle(image_path), variants)


class AnalysisRunner:
    """Runs chain analysis for a set of input paths."""

    def __init__(
        self,
        option_variants: dict[str, Any] | None = None,
        *,
        path_config=None,
        engine_config=None,
        analysis_config=None,
        jobs: int = 1,
        show_progress: bool = True,
    ):
        self.path_config = path_config or DEFAULT_PATH_CONFIG
        self.engine_config = engine_config or DEFAULT_ENGINE_CONFIG
        self.analysis_config = analysis_config or DEFAULT_ANALYSIS_CONFIG
        self.jobs = max(1, jobs)
        self.show_progress = show_progress

        self.variants = build_variants(
            option_variants,
            engine_config=self.engine_config,
            timeout=self.analysis_config.RUN_TIMEOUT,
        )
        self._runner: WorkerRunner | None = None
        self._log_applicability()

    @property
    def runner(self) -> WorkerRunner:
        if self._runner is None:
            self._runner = _build_pipeline(
                self.path_config, self.engine_config, self.analysis_config
            )
        return self._runner

    @property
    def cache(self) -> CacheStore:
        return self.runner.cache

    @property
    def image_store(self) -> ImageStore:
        return self.runner.image_store

    def variants_for(self, image_format: str) -> list[WorkerVariant]:
        return [variant for variant in self.variants if image_format in variant.formats]

    def _log_applicability(self) -> None:
        for image_format in all_formats():
            ids = [variant.id for variant in self.variants_for(image_format)]
            if ids:
                logger.info(f"🧰 {image_format}: {', '.join(ids)}")
            else:
                logger.info(f"🧰 {image_format}: no available workers")

    def clear_cache(self) -> int:
        """Flush cached results and cached images; return the number of removed entries."""
        removed = self.cache.clear_cache()
        self.image_store.clear()
        return removed

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def validate_image(self, path: Path) -> ImageHandle:
        """Return a handle for *path* or raise ``ValidationError`` if it can't be analysed."""
        if not path.exists():
            raise ValidationError(f"Path does not exist: {path}")
        if not path.is_file():
            raise ValidationError(f"Not a regular file: {path}")

        image = ImageHandle(path)
        if image.format is None:
            raise ValidationError(f"Not a recognized image format: {path}")
        if not self.variants_for(image.format):
            raise ValidationError(f"No applicable worker for {image.format} image: {path}")
        return image

    def collect_images(
        self, paths: Iterable[Path], skipped: list[tuple[Path, str]] | None = None
    ) -> list[ImageHandle]:
        """Expand directories recursively and validate every input file.

        Rejected inputs are logged and, if given, appended to *skipped*. Files under
        the cache directory are left out of directory expansion.
        """
        images: list[ImageHandle] = []
        cache_root = Path(self.path_config.CACHE_DIR).resolve()
        for path in paths:
            path = Path(path)
            if path.is_dir():
                candidates = []
                for p in sorted(path.rglob("*")):
                    if not p.is_file():
                        continue
                    # Stored intermediates are never inputs
                    if p.resolve().is_relative_to(cache_root):
                        logger.debug(f"Ignoring cached file {p}")
                        continue
                    candidates.append(p)
            else:
                candidates = [path]
            for candidate in candidates:
                try:
                    images.append(self.validate_image(candidate))
                except ValidationError as e:
                    log_warning_with_context(f"Skipping input: {e}", logger=logger)
                    if skipped is not None:
                        skipped.append((candidate, str(e)))
        return images

    # ------------------------------------------------------------------
    # Exploration
    # ------------------------------------------------------------------

    def explore(self, images: Sequence[ImageHandle]) -> list[ChainResult]:
        """Return the chain results of every image, in input order.

        Raises:
            ComparisonError: If a distortion computation fails for any image.
        """
        if self.jobs > 1 and len(images) > 1:
            per_image = self._explore_parallel(images)
        else:
            per_image = self._explore_sequential(images)
        return [result for results in per_image for result in results]

    def _explore_sequential(self, images: Sequence[ImageHandle]) -> list[list[ChainResult]]:
        per_image = []
        for image in tqdm(
            images, desc="🔗 Exploring chains", unit="image", disable=not self.show_progress
        ):
            per_image.append(self.runner.run(image, self.variants_for(image.format)))
        return per_image

    def _explore_parallel(self, images: Sequence[ImageHandle]) -> list[list[ChainResult]]:
        logger.info(f"👥 Exploring {len(images)} images with {self.jobs} processes")
        per_image: list[list[ChainResult]] = [[] for _ in images]

        with ProcessPoolExecutor(max_workers=self.jobs) as executor:
            futures = [
                executor.submit(
                    _explore_image_process,
                    index,
                    image.path,
                    self.variants_for(image.format),
                    self.path_config,
                    self.engine_config,
                    self.analysis_config,
                )
                for index, image in enumerate(images)
            ]
            with tqdm(
                total=len(futures),
                desc="🔗 Exploring chains",
                unit="image",
                disable=not self.show_progress,
            ) as progress:
                try:
                    for future in as_completed(futures):
                        index, results = future.result()
                        per_image[index] = results
                        progress.update(1)
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        return per_image

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(
        self,
        paths: Iterable[Path],
        *,
        report_dir: Path | None = None,
        csv_path: Path | None = None,
    ) -> AnalysisSummary:
        """Analyse every image under *paths* and write the reports.

        Raises:
            ComparisonError: If a distortion computation fails; no report is written.
        """
        summary = AnalysisSummary()
        images = self.collect_images(paths, summary.skipped)
        if not images:
            logger.warning("⚠️  No images to analyse")
            return summary

        logger.info(f"🖼️  Analysing {len(images)} images")
        results = self.explore(images)

        summary.images_by_format = dict(Counter(image.format for image in images))

        grouped: dict[str, list[ChainResult]] = defaultdict(list)
        for result in results:
            grouped[result.format].append(result)
        summary.results_by_format = dict(sorted(grouped.items()))

        aggregator = StatsAggregator(self.analysis_config)
        for image_format, format_results in summary.results_by_format.items():
            candidate_ids = [variant.id for variant in self.variants_for(image_format)]
            summary.stats_by_format[image_format] = aggregator.aggregate(format_results)
            summary.unused_by_format[image_format] = unused_workers(format_results, candidate_ids)

        output_dir = Path(report_dir) if report_dir is not None else self.path_config.REPORT_DIR
        for image_format, stats in summary.stats_by_format.items():
            summary.reports[image_format] = render_report(
                image_format,
                stats,
                summary.unused_by_format[image_format],
                output_dir,
                image_count=summary.images_by_format.get(image_format),
            )

        if csv_path is not None:
            summary.csv_path = export_chain_results_csv(results, csv_path)

        if self._runner is not None:
            cache_stats = self.cache.stats
            logger.info(
                f"💾 Cache: {cache_stats.hits} hits, {cache_stats.misses} misses "
                f"({cache_stats.hit_rate:.1%} hit rate)"
            )
        return summary
