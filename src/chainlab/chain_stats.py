"""Aggregate statistics per distinct worker chain."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .chain_runner import ChainResult
from .config import DEFAULT_ANALYSIS_CONFIG


class WarningLevel(Enum):
    """How far the worst chain output drifted from its original."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Speed:
    """Bytes saved per second.

    ``unbounded`` marks bytes saved in zero measured time, which happens with
    coarse timers; it ranks above every finite speed.
    """

    bytes_per_second: float = 0.0
    unbounded: bool = False

    @classmethod
    def measure(cls, saved_bytes: int, seconds: float) -> Speed:
        if seconds > 0:
            return cls(bytes_per_second=saved_bytes / seconds)
        if saved_bytes > 0:
            return cls(unbounded=True)
        return cls()

    @property
    def sort_key(self) -> tuple[bool, float]:
        return (self.unbounded, self.bytes_per_second)

    def __str__(self) -> str:
        if self.unbounded:
            return "∞"
        return f"{self.bytes_per_second:.0f}"


@dataclass(frozen=True)
class ChainStats:
    """Aggregate over every chain result sharing the same worker id sequence."""

    worker_ids: tuple[str, ...]
    entry_count: int
    original_size: int
    optimized_size: int
    ratio: float
    avg_ratio: float
    avg_difference: float
    max_difference: float
    warning_level: WarningLevel
    time: float
    speed: Speed
    worker_usage: tuple[tuple[str, int], ...]

    @property
    def name(self) -> str:
        return " → ".join(self.worker_ids)

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.optimized_size

    @property
    def unused_workers(self) -> tuple[str, ...]:
        """Workers in this chain that never succeeded in any of its entries."""
        return tuple(worker_id for worker_id, count in self.worker_usage if count == 0)

    @property
    def has_unused_workers(self) -> bool:
        return bool(self.unused_workers)


class StatsAggregator:
    """Groups chain results by worker sequence and computes ChainStats."""

    def __init__(self, analysis_config=None):
        self.analysis_config = analysis_config or DEFAULT_ANALYSIS_CONFIG

    def warning_level(self, max_difference: float) -> WarningLevel:
        config = self.analysis_config
        if max_difference >= config.WARNING_HIGH:
            return WarningLevel.HIGH
        if max_difference >= config.WARNING_MEDIUM:
            return WarningLevel.MEDIUM
        if max_difference >= config.WARNING_LOW:
            return WarningLevel.LOW
        return WarningLevel.NONE

    def aggregate(self, results: Iterable[ChainResult]) -> list[ChainStats]:
        """Return one ChainStats per distinct chain, smallest output first.

        Ties on output size are broken by total time.
        """
        groups: dict[tuple[str, ...], list[ChainResult]] = defaultdict(list)
        for result in results:
            groups[result.worker_ids].append(result)

        stats = [self._chain_stats(worker_ids, entries) for worker_ids, entries in groups.items()]
        stats.sort(key=lambda s: (s.optimized_size, s.time))
        return stats

    def _chain_stats(
        self, worker_ids: tuple[str, ...], entries: Sequence[ChainResult]
    ) -> ChainStats:
        count = len(entries)
        original_size = sum(entry.src_size for entry in entries)
        optimized_size = sum(entry.dst_size for entry in entries)
        total_time = sum(entry.time for entry in entries)
        max_difference = max(entry.difference for entry in entries)

        usage = {worker_id: 0 for worker_id in worker_ids}
        for entry in entries:
            for step in entry.steps:
                if step.success:
                    usage[step.worker_id] += 1

        return ChainStats(
            worker_ids=worker_ids,
            entry_count=count,
            original_size=original_size,
            optimized_size=optimized_size,
            ratio=optimized_size / original_size if original_size else 1.0,
            avg_ratio=sum(entry.ratio for entry in entries) / count,
            avg_difference=sum(entry.difference for entry in entries) / count,
            max_difference=max_difference,
            warning_level=self.warning_level(max_difference),
            time=total_time,
            speed=Speed.measure(original_size - optimized_size, total_time),
            worker_usage=tuple(usage.items()),
        )


def unused_workers(results: Iterable[ChainResult], worker_ids: Iterable[str]) -> list[str]:
    """Return those of *worker_ids* that never succeeded in any of *results*."""
    used = {step.worker_id for result in results for step in result.steps if step.success}
    return sorted(worker_id for worker_id in worker_ids if worker_id not in used)
