from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np


METERS_PER_KM = 1000.0
METERS_PER_MILE = 1609.34

BEST_1K = "1K"
BEST_MILE = "Mile"
BEST_5K = "5K"
BEST_10K = "10K"
BEST_15K = "15K"
BEST_HALF_MARATHON = "Half Marathon"
BEST_MARATHON = "Marathon"

STANDARD_DISTANCES: Dict[str, float] = {
    BEST_1K: 1000.0,
    BEST_MILE: METERS_PER_MILE,
    BEST_5K: 5000.0,
    BEST_10K: 10000.0,
    BEST_15K: 15000.0,
    BEST_HALF_MARATHON: 21097.5,
    BEST_MARATHON: 42195.0,
}

# Float accumulation slack when comparing a window against its target distance.
DISTANCE_EPS_M = 1e-6


@dataclass
class BestEffort:
    name: str
    distance_m: float
    best_time_ms: Optional[int] = None
    start_time_ms: Optional[int] = None
    end_time_ms: Optional[int] = None

    @property
    def achieved(self) -> bool:
        return self.best_time_ms is not None

    def offer(self, elapsed_ms: int, start_ms: int, end_ms: int) -> bool:
        """Record a qualifying window if it beats the current best."""
        if self.best_time_ms is not None and elapsed_ms >= self.best_time_ms:
            return False
        self.best_time_ms = int(elapsed_ms)
        self.start_time_ms = int(start_ms)
        self.end_time_ms = int(end_ms)
        return True


def _validate_distances(distances: Mapping[str, float]) -> Dict[str, float]:
    cleaned: Dict[str, float] = {}
    for name, value in distances.items():
        meters = float(value)
        if not math.isfinite(meters) or meters <= 0.0:
            raise ValueError(f"Best-effort distance for {name!r} must be positive, got {value!r}")
        cleaned[str(name)] = meters
    return cleaned


class BestEffortTracker:
    """Incremental minimum-time search for a fixed set of distances.

    Each class keeps a trailing start index into the (time, cumulative distance)
    series. Every pushed point is a new window end; the start index only moves
    forward, so the whole track costs O(n) per class. The cumulative series
    must be non-decreasing; the caller enforces that at ingestion.
    """

    def __init__(self, distances: Optional[Mapping[str, float]] = None) -> None:
        targets = _validate_distances(distances if distances is not None else STANDARD_DISTANCES)
        self.efforts: Dict[str, BestEffort] = {
            name: BestEffort(name=name, distance_m=meters) for name, meters in targets.items()
        }
        self._starts: Dict[str, int] = {name: 0 for name in targets}
        self.times_ms: List[int] = []
        self.cumulative_m: List[float] = []

    def __len__(self) -> int:
        return len(self.times_ms)

    def push(self, time_ms: int, cumulative_m: float) -> None:
        self.times_ms.append(int(time_ms))
        self.cumulative_m.append(float(cumulative_m))
        end = len(self.times_ms) - 1
        end_time = self.times_ms[end]
        end_dist = self.cumulative_m[end]
        for name, effort in self.efforts.items():
            target = effort.distance_m - DISTANCE_EPS_M
            start = self._starts[name]
            while start < end and end_dist - self.cumulative_m[start] >= target:
                start_time = self.times_ms[start]
                effort.offer(end_time - start_time, start_time, end_time)
                start += 1
            self._starts[name] = start

    def best_time(self, name: str) -> Optional[int]:
        effort = self.efforts.get(name)
        if effort is None:
            return None
        return effort.best_time_ms

    def merge(self, results: Mapping[str, Optional[Tuple[int, int, int]]]) -> List[str]:
        """Fold batch results (elapsed, start, end) into the running bests.

        Returns the names whose best time the batch results improved.
        """
        improved: List[str] = []
        for name, found in results.items():
            effort = self.efforts.get(name)
            if effort is None or found is None:
                continue
            if effort.offer(*found):
                improved.append(name)
        return improved


def min_time_for_distances(
    times_ms: Sequence[int],
    cumulative_m: Sequence[float],
    targets: Mapping[str, float],
) -> Dict[str, Optional[Tuple[int, int, int]]]:
    """Batch two-pointer scan over a complete series.

    Returns, per target name, ``(elapsed_ms, start_ms, end_ms)`` of the fastest
    window covering at least the target distance, or ``None`` when the track
    never covered it.
    """
    results: Dict[str, Optional[Tuple[int, int, int]]] = {name: None for name in targets}
    if not times_ms or not cumulative_m or not targets:
        return results

    t_arr = np.asarray(times_ms, dtype=np.int64)
    d_arr = np.asarray(cumulative_m, dtype=np.float64)
    if t_arr.shape != d_arr.shape:
        raise ValueError("times_ms and cumulative_m must have same length")

    total = float(d_arr[-1] - d_arr[0])
    for name, target in sorted(targets.items(), key=lambda kv: kv[1]):
        goal = float(target) - DISTANCE_EPS_M
        if total < goal:
            continue
        left = 0
        best: Optional[Tuple[int, int, int]] = None
        for right in range(1, t_arr.size):
            while left < right and (d_arr[right] - d_arr[left]) >= goal:
                elapsed = int(t_arr[right] - t_arr[left])
                if best is None or elapsed < best[0]:
                    best = (elapsed, int(t_arr[left]), int(t_arr[right]))
                left += 1
        results[name] = best
    return results


def resolve_distance_class(
    distance_class: Union[str, float, int],
    distances: Mapping[str, float],
) -> Optional[str]:
    if isinstance(distance_class, str):
        key = distance_class.strip()
        if key in distances:
            return key
        lowered = key.lower()
        for name in distances:
            if name.lower() == lowered:
                return name
        return None
    meters = float(distance_class)
    for name, value in distances.items():
        if math.isclose(value, meters, rel_tol=0.0, abs_tol=1e-6):
            return name
    return None
