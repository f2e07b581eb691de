"""Image handles: content hashing and format detection for input images."""

from __future__ import annotations

import hashlib
from functools import cached_property
from pathlib import Path

from PIL import Image, UnidentifiedImageError

# Pillow format names mapped to the format keys workers declare
_PIL_FORMATS: dict[str, str] = {
    "GIF": "gif",
    "JPEG": "jpeg",
    "MPO": "jpeg",
    "PNG": "png",
    "WEBP": "webp",
}

_SVG_SNIFF_BYTES = 1024


def compute_file_sha256(file_path: Path) -> str:
    """Compute SHA256 hash of a file.

    Args:
        file_path: Path to the file to hash

    Returns:
        Hexadecimal SHA256 hash string
    """
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        # Read file in chunks to handle large files
        for chunk in iter(lambda: f.read(65536), b""):
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


def detect_format(file_path: Path) -> str | None:
    """Return the lowercase image format of *file_path* or ``None``."""
    try:
        with Image.open(file_path) as img:
            if img.format:
                return _PIL_FORMATS.get(img.format, img.format.lower())
    except (UnidentifiedImageError, OSError):
        pass

    with open(file_path, "rb") as f:
        head = f.read(_SVG_SNIFF_BYTES).lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "svg"
    return None


class ImageHandle:
    """A path to an image plus lazily computed identity.

    ``digest`` and ``etag`` are computed on first access and then kept;
    call :meth:`invalidate` after the file changed on disk.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @cached_property
    def digest(self) -> str:
        return compute_file_sha256(self.path)

    @cached_property
    def etag(self) -> tuple[int, str]:
        """``(modification time, digest)`` pair used as cache validity tag."""
        return (self.path.stat().st_mtime_ns, self.digest)

    @cached_property
    def format(self) -> str | None:
        return detect_format(self.path)

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def invalidate(self) -> None:
        for attr in ("digest", "etag", "format"):
            self.__dict__.pop(attr, None)

    def exists(self) -> bool:
        return self.path.is_file()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageHandle):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"ImageHandle({str(self.path)!r})"

    def __str__(self) -> str:
        return str(self.path)
