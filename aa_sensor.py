from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from aa_location import OutOfOrderSampleError, _check_out_of_order_policy


@dataclass(frozen=True)
class SensorReading:
    time_ms: int
    value: float


class ScalarSensorAnalyzer:
    """Running max and average over one scalar sensor stream."""

    sensor_name = "sensor"

    def __init__(self, out_of_order: str = "drop") -> None:
        self.out_of_order = _check_out_of_order_policy(out_of_order)
        self.readings: List[SensorReading] = []
        self.max_value: Optional[float] = None
        self.rejected_samples = 0
        self._count = 0
        self._sum = 0.0
        self._last_time_ms: Optional[int] = None
        self._finalized_average: Optional[float] = None

    def __len__(self) -> int:
        return self._count

    @property
    def has_readings(self) -> bool:
        return self._count > 0

    def append_sensor_value(self, time_ms: int, value: float) -> bool:
        time_ms = int(time_ms)
        if self._last_time_ms is not None and time_ms < self._last_time_ms:
            if self.out_of_order == "raise":
                raise OutOfOrderSampleError(time_ms, self._last_time_ms)
            self.rejected_samples += 1
            logging.debug(
                "Dropping out-of-order %s reading at %d ms", self.sensor_name, time_ms
            )
            return False
        value = float(value)
        self.readings.append(SensorReading(time_ms, value))
        if self.max_value is None or value > self.max_value:
            self.max_value = value
        self._count += 1
        self._sum += value
        self._last_time_ms = time_ms
        self._finalized_average = None
        return True

    def compute_average(self) -> float:
        """Unweighted arithmetic mean of every reading; 0.0 when there are none."""
        if self._finalized_average is not None:
            return self._finalized_average
        if self._count == 0:
            return 0.0
        return self._sum / self._count

    def compute_time_weighted_average(self) -> float:
        # Each reading holds until the next one; the last reading has no span.
        if len(self.readings) < 2:
            return self.compute_average()
        t = np.asarray([r.time_ms for r in self.readings], dtype=np.float64)
        v = np.asarray([r.value for r in self.readings], dtype=np.float64)
        dt = np.diff(t)
        span = float(dt.sum())
        if span <= 0.0:
            return self.compute_average()
        return float(np.dot(v[:-1], dt) / span)

    def analyze(self, discard_readings: bool = False) -> None:
        self._finalized_average = self.compute_average()
        if discard_readings:
            self.readings = []


class CadenceAnalyzer(ScalarSensorAnalyzer):
    sensor_name = "cadence"

    @property
    def max_cadence(self) -> Optional[float]:
        return self.max_value


class PowerAnalyzer(ScalarSensorAnalyzer):
    sensor_name = "power"

    @property
    def max_power(self) -> Optional[float]:
        return self.max_value


class HeartRateAnalyzer(ScalarSensorAnalyzer):
    sensor_name = "heart rate"

    @property
    def max_heart_rate(self) -> Optional[float]:
        return self.max_value
