"""Perceptual difference between an original image and an optimized one.

The distortion itself is computed by ImageMagick (normalized RMSE). Before
comparing, inputs are normalised so the number means something:

1. Animated images are flattened into one image holding every frame.
2. When exactly one of the two images has an alpha channel, both are
   composited over the same deterministic noise canvas, so transparent
   regions compare by coverage rather than by hidden colour values.

Results are memoised in the CacheStore keyed by the unordered pair of
content digests; the comparison is a pure function of content, so no etag
is needed. Intermediate (flattened / noise-composited) images are cached by
the digest of their source.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

from .caching import CacheStore, ImageStore
from .config import DEFAULT_ANALYSIS_CONFIG
from .error_handling import ComparisonError, EngineError
from .external_engines import imagemagick
from .meta import ImageHandle

logger = logging.getLogger(__name__)


class DifferenceEstimator:
    """Computes and caches the distortion between two images."""

    def __init__(
        self,
        cache: CacheStore,
        image_store: ImageStore,
        *,
        analysis_config=None,
        engine_config=None,
    ):
        self.cache = cache
        self.image_store = image_store
        self.analysis_config = analysis_config or DEFAULT_ANALYSIS_CONFIG
        self.engine_config = engine_config

    @property
    def _timeout(self) -> int | None:
        return self.analysis_config.RUN_TIMEOUT

    def difference(self, image_a: ImageHandle, image_b: ImageHandle) -> float:
        """Return the normalized distortion between *image_a* and *image_b*.

        Raises:
            ComparisonError: If the external comparison fails.
        """
        if image_a.digest == image_b.digest:
            return 0.0

        first, second = sorted((image_a, image_b), key=lambda image: image.digest)
        return self.cache.get_or_compute(
            "difference",
            (first.digest, second.digest),
            None,
            lambda: self._compute(first, second),
        )

    def _compute(self, image_a: ImageHandle, image_b: ImageHandle) -> float:
        logger.debug(f"🔍 Comparing {image_a} with {image_b}")
        try:
            prepared_a = self._flatten(image_a)
            prepared_b = self._flatten(image_b)

            if self._has_alpha(prepared_a) != self._has_alpha(prepared_b):
                prepared_a = self._mix_with_noise(prepared_a)
                prepared_b = self._mix_with_noise(prepared_b)

            return imagemagick.compare_rmse(
                prepared_a.path,
                prepared_b.path,
                timeout=self._timeout,
                engine_config=self.engine_config,
            )
        except EngineError as e:
            raise ComparisonError(image_a, image_b, cause=e) from e

    # ------------------------------------------------------------------
    # Input normalisation
    # ------------------------------------------------------------------

    def _flatten(self, image: ImageHandle) -> ImageHandle:
        if not imagemagick.is_animated(image.path):
            return image

        return self._derived_image(
            "flatten",
            image.digest,
            lambda output: imagemagick.flatten_frames(
                image.path, output, timeout=self._timeout, engine_config=self.engine_config
            ),
        )

    def _has_alpha(self, image: ImageHandle) -> bool:
        return self.cache.get_or_compute(
            "alpha",
            image.digest,
            None,
            lambda: imagemagick.has_alpha(
                image.path, timeout=self._timeout, engine_config=self.engine_config
            ),
        )

    def _mix_with_noise(self, image: ImageHandle) -> ImageHandle:
        seed = self.analysis_config.NOISE_SEED
        return self._derived_image(
            "noise",
            (image.digest, seed),
            lambda output: imagemagick.composite_over_noise(
                image.path,
                output,
                seed=seed,
                timeout=self._timeout,
                engine_config=self.engine_config,
            ),
        )

    def _derived_image(
        self,
        namespace: str,
        key: object,
        produce: Callable[[Path], Path],
    ) -> ImageHandle:
        """Return a cached derived PNG image, producing it if missing on disk."""
        cached = self.cache.get(namespace, key)
        if cached is not None and Path(cached).is_file():
            return ImageHandle(cached)

        with tempfile.TemporaryDirectory(prefix=f"chainlab_{namespace}_") as tmp:
            output = Path(tmp) / "derived.png"
            produce(output)
            stored = self.image_store.store(output)

        self.cache.set(namespace, key, None, stored.path)
        return stored
