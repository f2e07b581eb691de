"""I/O utilities for logging setup and atomic file writes."""

import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from shutil import copyfileobj, move
from typing import IO


def setup_logging(log_dir: Path, log_level: str = "INFO") -> logging.Logger:
    """Set up logging configuration for ChainLab.

    Args:
        log_dir: Directory to store log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create timestamped log file
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"chainlab_{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True,
    )

    return logging.getLogger("chainlab")


@contextmanager
def atomic_write(target_path: Path, mode: str = "w") -> Iterator[IO]:
    """Context manager for atomic file writes using temporary files.

    Args:
        target_path: Final path where file should be written
        mode: File open mode

    Yields:
        File handle for writing

    Example:
        with atomic_write(Path("report.html")) as f:
            f.write(html)
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # Create temporary file in same directory as target
    with tempfile.NamedTemporaryFile(
        mode=mode,
        encoding=None if "b" in mode else "utf-8",
        dir=target_path.parent,
        delete=False,
        suffix=f".tmp_{target_path.name}"
    ) as temp_file:
        try:
            yield temp_file
            temp_file.flush()
        except Exception:
            temp_file.close()
            Path(temp_file.name).unlink(missing_ok=True)
            raise

    # Atomic move on POSIX systems
    move(temp_file.name, target_path)


def atomic_copy(source_path: Path, target_path: Path) -> Path:
    """Copy *source_path* to *target_path* so readers never see a partial file."""
    with open(source_path, "rb") as src, atomic_write(target_path, mode="wb") as dst:
        copyfileobj(src, dst)
    return target_path
