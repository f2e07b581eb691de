"""Content-addressed storage for images produced by workers.

A stored file is named after the SHA-256 of its bytes, so identical
outputs reached through different chains (or different runs) share one
file on disk.
"""

import logging
import shutil
from pathlib import Path

from ..io import atomic_copy
from ..meta import ImageHandle, compute_file_sha256

logger = logging.getLogger(__name__)


class ImageStore:
    """Directory tree of images keyed by content digest."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, digest: str, suffix: str = "") -> Path:
        return self.root / digest[:2] / f"{digest[2:]}{suffix}"

    def store(self, source_path: Path) -> ImageHandle:
        """Copy *source_path* into the store and return a handle to the stored file."""
        digest = compute_file_sha256(source_path)
        target = self.path_for(digest, source_path.suffix.lower())
        if not target.exists():
            atomic_copy(source_path, target)
            logger.debug(f"📦 Stored {source_path.name} as {target}")

        stored = ImageHandle(target)
        # Digest is already known
        stored.__dict__["digest"] = digest
        return stored

    def clear(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True, exist_ok=True)
