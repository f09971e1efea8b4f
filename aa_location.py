from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from aa_efforts import (
    METERS_PER_KM,
    METERS_PER_MILE,
    STANDARD_DISTANCES,
    BestEffort,
    BestEffortTracker,
    min_time_for_distances,
    resolve_distance_class,
)
from aa_geo import GeoDelta, geo_delta


OUT_OF_ORDER_POLICIES = ("drop", "raise")

DEFAULT_SPEED_WINDOW_MS = 10_000


class OutOfOrderSampleError(ValueError):
    """A sample's timestamp is earlier than the previously accepted one."""

    def __init__(self, time_ms: int, last_time_ms: int) -> None:
        super().__init__(
            f"Sample at {time_ms} ms precedes previous sample at {last_time_ms} ms"
        )
        self.time_ms = time_ms
        self.last_time_ms = last_time_ms


def _check_out_of_order_policy(policy: str) -> str:
    if not isinstance(policy, str):
        raise ValueError(f"Out-of-order policy must be a string, got {policy!r}")
    normalized = policy.strip().lower()
    if normalized not in OUT_OF_ORDER_POLICIES:
        raise ValueError(
            f"Unknown out-of-order policy {policy!r}; expected one of {', '.join(OUT_OF_ORDER_POLICIES)}"
        )
    return normalized


def _as_number(name: str, value: Any, kind: type) -> Any:
    # bool is an int subclass; a JSON true is not a number here.
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


# -----------------
# Data structures
# -----------------

@dataclass(frozen=True)
class LocationSample:
    time_ms: int
    latitude: float
    longitude: float
    altitude_m: float


@dataclass(frozen=True)
class SplitRecord:
    unit_index: int
    elapsed_time_ms: int


@dataclass
class AnalyzerConfig:
    out_of_order: str = "drop"
    distance_noise_floor_m: float = 0.0
    use_3d_distance: bool = False
    speed_window_ms: int = DEFAULT_SPEED_WINDOW_MS
    best_effort_distances: Dict[str, float] = field(default_factory=lambda: dict(STANDARD_DISTANCES))

    def __post_init__(self) -> None:
        self.out_of_order = _check_out_of_order_policy(self.out_of_order)
        self.distance_noise_floor_m = _as_number("distance_noise_floor_m", self.distance_noise_floor_m, float)
        if not self.distance_noise_floor_m >= 0.0:
            raise ValueError("distance_noise_floor_m must be >= 0")
        self.speed_window_ms = _as_number("speed_window_ms", self.speed_window_ms, int)
        if self.speed_window_ms < 0:
            raise ValueError("speed_window_ms must be >= 0")
        if not isinstance(self.use_3d_distance, bool):
            raise ValueError(f"use_3d_distance must be true or false, got {self.use_3d_distance!r}")
        if not isinstance(self.best_effort_distances, Mapping):
            raise ValueError("best_effort_distances must map names to meters")
        if not self.best_effort_distances:
            raise ValueError("best_effort_distances must not be empty")
        self.best_effort_distances = {
            str(k): _as_number(f"best_effort_distances[{k!r}]", v, float)
            for k, v in self.best_effort_distances.items()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalyzerConfig":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logging.warning("Ignoring unknown config key '%s'", key)
                continue
            kwargs[key] = value
        return cls(**kwargs)


def smooth_speeds(
    times_ms: Sequence[int],
    speeds: Sequence[float],
    window_ms: int,
) -> np.ndarray:
    """Trailing time-window mean of a speed series."""
    v = np.asarray(speeds, dtype=np.float64)
    n = v.size
    out = np.zeros(n, dtype=np.float64)
    if n == 0:
        return out
    if window_ms <= 0:
        return v.copy()
    t = np.asarray(times_ms, dtype=np.int64)
    csum = np.concatenate(([0.0], np.cumsum(v)))
    start = 0
    for i in range(n):
        while start < i and t[i] - t[start] > window_ms:
            start += 1
        out[i] = (csum[i + 1] - csum[start]) / float(i + 1 - start)
    return out


# -----------------
# Location analyzer
# -----------------

class LocationAnalyzer:
    """Streaming accumulator for one activity's location samples.

    Feed samples with ``append`` followed by ``update_speeds``, then call
    ``analyze`` once the stream has ended. Totals, splits and speeds can be
    read at any time; best efforts are only final after ``analyze``.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None) -> None:
        self.config = config if config is not None else AnalyzerConfig()
        self.activity_type: Optional[str] = None

        self.start_time_ms: int = 0
        self.last_time_ms: int = 0
        self.total_distance: float = 0.0
        self.total_vertical: float = 0.0
        self.avg_speed: float = 0.0
        self.max_speed: float = 0.0
        self.current_speed: float = 0.0

        self.mile_splits: List[SplitRecord] = []
        self.km_splits: List[SplitRecord] = []
        self.speed_times: List[int] = []
        self.speed_graph: List[float] = []

        self.rejected_samples = 0
        self.skipped_speed_samples = 0

        self._samples: List[LocationSample] = []
        self._efforts = BestEffortTracker(self.config.best_effort_distances)
        self._last_delta_m = 0.0
        self._last_delta_ms = 0
        self._speed_pending = False
        self._window: Deque[Tuple[int, float]] = deque()
        self._finalized = False

    # ingestion

    def set_activity_type(self, activity_type: str) -> None:
        self.activity_type = activity_type

    def append(self, time_ms: int, latitude: float, longitude: float, altitude_m: float) -> bool:
        """Accept one location sample; returns False if it was dropped."""
        time_ms = int(time_ms)
        if self._samples and time_ms < self.last_time_ms:
            if self.config.out_of_order == "raise":
                raise OutOfOrderSampleError(time_ms, self.last_time_ms)
            self.rejected_samples += 1
            logging.debug(
                "Dropping out-of-order sample at %d ms (previous %d ms)", time_ms, self.last_time_ms
            )
            return False

        sample = LocationSample(time_ms, float(latitude), float(longitude), float(altitude_m))
        if not self._samples:
            self.start_time_ms = time_ms
            self._last_delta_m = 0.0
            self._last_delta_ms = 0
        else:
            prev = self._samples[-1]
            step = geo_delta(
                prev.latitude, prev.longitude, prev.altitude_m,
                sample.latitude, sample.longitude, sample.altitude_m,
            )
            delta = self._step_distance(step)
            climb = step.ascent_m
            prev_total = self.total_distance
            self.total_distance += delta
            self.total_vertical += climb
            self._record_splits(prev_total, self.total_distance, prev.time_ms, time_ms)
            self._last_delta_m = delta
            self._last_delta_ms = time_ms - prev.time_ms

        self._samples.append(sample)
        self.last_time_ms = time_ms
        self._efforts.push(time_ms, self.total_distance)
        self._speed_pending = len(self._samples) > 1
        return True

    append_location = append

    def _step_distance(self, step: GeoDelta) -> float:
        delta = step.distance_3d_m if self.config.use_3d_distance else step.horizontal_m
        # Jitter below the floor is zero movement; cumulative distance stays monotone.
        if delta < self.config.distance_noise_floor_m:
            return 0.0
        return delta

    def _record_splits(self, before_m: float, after_m: float, before_ms: int, after_ms: int) -> None:
        if not math.isfinite(after_m):
            return
        for unit_m, splits in ((METERS_PER_MILE, self.mile_splits), (METERS_PER_KM, self.km_splits)):
            idx_before = int(math.floor(before_m / unit_m))
            idx_after = int(math.floor(after_m / unit_m))
            for unit_index in range(idx_before + 1, idx_after + 1):
                boundary = unit_index * unit_m
                frac = (boundary - before_m) / (after_m - before_m)
                at_ms = before_ms + frac * (after_ms - before_ms)
                splits.append(SplitRecord(unit_index, int(round(at_ms - self.start_time_ms))))

    def update_speeds(self) -> None:
        if not self._speed_pending:
            return
        self._speed_pending = False

        if self._last_delta_ms <= 0:
            self.skipped_speed_samples += 1
            logging.debug("Skipping speed sample at %d ms: zero elapsed time", self.last_time_ms)
        else:
            speed = self._last_delta_m / (self._last_delta_ms / 1000.0)
            self.speed_times.append(self.last_time_ms)
            self.speed_graph.append(speed)
            if speed > self.max_speed:
                self.max_speed = speed
            self._update_current_speed()

        self._update_avg_speed()

    def _update_current_speed(self) -> None:
        window_ms = self.config.speed_window_ms
        self._window.append((self.last_time_ms, self.total_distance))
        while len(self._window) > 1 and self.last_time_ms - self._window[0][0] > window_ms:
            self._window.popleft()
        first_ms, first_m = self._window[0]
        span_ms = self.last_time_ms - first_ms
        if span_ms > 0:
            self.current_speed = (self.total_distance - first_m) / (span_ms / 1000.0)
        elif self.speed_graph:
            self.current_speed = self.speed_graph[-1]

    def _update_avg_speed(self) -> None:
        elapsed_s = self.elapsed_time_ms / 1000.0
        if elapsed_s > 0.0:
            self.avg_speed = self.total_distance / elapsed_s
        else:
            self.avg_speed = 0.0

    # finalization

    def analyze(self) -> None:
        """Final pass over the complete track. Safe to call more than once.

        The streaming bests are checked against a batch re-scan of the full
        distance series. Both run the same two-pointer search, so they agree
        on a well-formed stream; a disagreement is logged and the faster
        window is kept.
        """
        if self._speed_pending:
            self.update_speeds()
        batch = min_time_for_distances(
            self._efforts.times_ms,
            self._efforts.cumulative_m,
            self.config.best_effort_distances,
        )
        improved = self._efforts.merge(batch)
        if improved:
            logging.warning("Best-effort re-scan improved streaming results for: %s", ", ".join(improved))
        self._update_avg_speed()
        if not self._finalized:
            achieved = sum(1 for e in self._efforts.efforts.values() if e.achieved)
            logging.debug(
                "Finalized %d samples: %.1f m, %.1f m ascent, %d/%d best efforts",
                len(self._samples),
                self.total_distance,
                self.total_vertical,
                achieved,
                len(self._efforts.efforts),
            )
        self._finalized = True

    # report access

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def elapsed_time_ms(self) -> int:
        if not self._samples:
            return 0
        return self.last_time_ms - self.start_time_ms

    @property
    def samples(self) -> Tuple[LocationSample, ...]:
        return tuple(self._samples)

    @property
    def distances(self) -> List[float]:
        return list(self._efforts.cumulative_m)

    @property
    def best_efforts(self) -> List[BestEffort]:
        return list(self._efforts.efforts.values())

    def get_best_time(self, distance_class: Union[str, float, int]) -> Optional[int]:
        name = resolve_distance_class(distance_class, self.config.best_effort_distances)
        if name is None:
            return None
        return self._efforts.best_time(name)

    def smoothed_speed_graph(self, window_ms: Optional[int] = None) -> np.ndarray:
        if window_ms is None:
            window_ms = self.config.speed_window_ms
        return smooth_speeds(self.speed_times, self.speed_graph, window_ms)
