"""Configuration settings for ChainLab."""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class EngineConfig:
    """Configuration for external binary paths with environment variable overrides."""

    # Path to ImageMagick executable (magick or convert).
    # On most systems, "magick" should work (ImageMagick 7.x)
    # On older systems or specific setups, may need "convert"
    # Override with: CHAINLAB_IMAGEMAGICK_PATH
    IMAGEMAGICK_PATH: str = "magick"

    # Path to the ImageMagick identify executable.
    # With ImageMagick 7 leave empty to use "magick identify".
    # Override with: CHAINLAB_IDENTIFY_PATH
    IDENTIFY_PATH: str = ""

    # Optimization worker binaries.
    # Override with: CHAINLAB_<NAME>_PATH, e.g. CHAINLAB_PNGQUANT_PATH
    ADVPNG_PATH: str = "advpng"
    GIFSICLE_PATH: str = "gifsicle"
    JPEGOPTIM_PATH: str = "jpegoptim"
    JPEGTRAN_PATH: str = "jpegtran"
    OPTIPNG_PATH: str = "optipng"
    OXIPNG_PATH: str = "oxipng"
    PNGCRUSH_PATH: str = "pngcrush"
    PNGQUANT_PATH: str = "pngquant"
    SVGO_PATH: str = "svgo"

    def __post_init__(self) -> None:
        """Apply environment variable overrides after initialization."""
        for attr_name in self.__dataclass_fields__:
            env_value = os.getenv(f"CHAINLAB_{attr_name}")
            if env_value:
                setattr(self, attr_name, env_value)


@dataclass
class PathConfig:
    """Configuration for file paths and directories.

    ``CACHE_DIR`` is the fixed working directory holding the result database
    and the content-addressed tree of cached images. Deleting it flushes
    every cached result.
    """

    CACHE_DIR: Path = Path("tmp/chainlab")
    REPORT_DIR: Path = Path(".")
    LOGS_DIR: Path = Path("logs")

    def __post_init__(self) -> None:
        env_cache_dir = os.getenv("CHAINLAB_CACHE_DIR")
        if env_cache_dir:
            self.CACHE_DIR = Path(env_cache_dir)

        self.CACHE_DIR = Path(self.CACHE_DIR)
        self.REPORT_DIR = Path(self.REPORT_DIR)
        self.LOGS_DIR = Path(self.LOGS_DIR)

    @property
    def cache_db_path(self) -> Path:
        return self.CACHE_DIR / "results.db"

    @property
    def images_dir(self) -> Path:
        return self.CACHE_DIR / "images"


@dataclass
class AnalysisConfig:
    """Configuration for chain analysis and reporting."""

    # Hard timeout (seconds) for every external invocation; None disables it.
    # Override with: CHAINLAB_RUN_TIMEOUT (0 disables)
    RUN_TIMEOUT: int | None = 300

    # Maximum-difference thresholds for the low / medium / high warning levels
    WARNING_LOW: float = 0.001
    WARNING_MEDIUM: float = 0.01
    WARNING_HIGH: float = 0.1

    # Seed of the noise canvas used to compare images with mismatched alpha
    NOISE_SEED: int = 0

    def __post_init__(self) -> None:
        env_timeout = os.getenv("CHAINLAB_RUN_TIMEOUT")
        if env_timeout is not None and env_timeout != "":
            self.RUN_TIMEOUT = int(env_timeout) or None

        if self.RUN_TIMEOUT is not None and self.RUN_TIMEOUT <= 0:
            raise ValueError(f"RUN_TIMEOUT must be positive or None, got {self.RUN_TIMEOUT}")

        thresholds = [self.WARNING_LOW, self.WARNING_MEDIUM, self.WARNING_HIGH]
        if any(t < 0 for t in thresholds):
            raise ValueError(f"Warning thresholds must be non-negative, got {thresholds}")
        if thresholds != sorted(thresholds):
            raise ValueError(
                f"Warning thresholds must be ascending (low <= medium <= high), got {thresholds}"
            )


# Default configuration instances
DEFAULT_ENGINE_CONFIG = EngineConfig()
DEFAULT_PATH_CONFIG = PathConfig()
DEFAULT_ANALYSIS_CONFIG = AnalysisConfig()
