"""Persistent caching for worker results, comparisons and produced images."""

from .image_store import ImageStore
from .result_cache import CacheStats, CacheStore

__all__ = [
    "CacheStats",
    "CacheStore",
    "ImageStore",
]
