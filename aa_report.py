from __future__ import annotations

import csv
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from aa_location import AnalyzerConfig, LocationAnalyzer, SplitRecord
from aa_sensor import CadenceAnalyzer, HeartRateAnalyzer, PowerAnalyzer, ScalarSensorAnalyzer


REQUIRED_COLUMNS = ("latitude", "longitude")
TIME_COLUMNS = ("time_ms", "time_s")
SENSOR_COLUMNS = ("cadence", "power", "heart_rate")


# -----------------
# Sample loading
# -----------------

@dataclass
class ActivitySample:
    time_ms: int
    latitude: float
    longitude: float
    altitude_m: float = 0.0
    cadence: Optional[float] = None
    power: Optional[float] = None
    heart_rate: Optional[float] = None


def _parse_optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    value = float(s)
    if not math.isfinite(value):
        return None
    return value


def _parse_required_float(raw: Optional[str]) -> float:
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"non-finite value {raw!r}")
    return value


def load_samples_csv(path: str) -> List[ActivitySample]:
    with open(path, "r", newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        columns = set(reader.fieldnames or [])
        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise ValueError(f"{path}: missing columns {sorted(missing)}")
        time_col = next((c for c in TIME_COLUMNS if c in columns), None)
        if time_col is None:
            raise ValueError(f"{path}: need one of the columns {list(TIME_COLUMNS)}")
        scale = 1000.0 if time_col == "time_s" else 1.0

        samples: List[ActivitySample] = []
        skipped = 0
        for raw in reader:
            try:
                samples.append(
                    ActivitySample(
                        time_ms=int(round(_parse_required_float(raw[time_col]) * scale)),
                        latitude=_parse_required_float(raw["latitude"]),
                        longitude=_parse_required_float(raw["longitude"]),
                        altitude_m=_parse_optional_float(raw.get("altitude_m")) or 0.0,
                        cadence=_parse_optional_float(raw.get("cadence")),
                        power=_parse_optional_float(raw.get("power")),
                        heart_rate=_parse_optional_float(raw.get("heart_rate")),
                    )
                )
            except (TypeError, ValueError):
                skipped += 1
    if skipped:
        logging.warning("Skipped %d unparseable rows in %s", skipped, path)
    logging.info("Loaded %d samples from %s", len(samples), path)
    return samples


def load_config(path: str) -> AnalyzerConfig:
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config must be a JSON object")
    return AnalyzerConfig.from_dict(data)


# -----------------
# Orchestration
# -----------------

@dataclass
class ActivityAnalysis:
    location: LocationAnalyzer
    cadence: CadenceAnalyzer
    power: PowerAnalyzer
    heart_rate: HeartRateAnalyzer


def analyze_samples(
    samples: Iterable[ActivitySample],
    config: Optional[AnalyzerConfig] = None,
    activity_type: Optional[str] = None,
) -> ActivityAnalysis:
    cfg = config if config is not None else AnalyzerConfig()
    location = LocationAnalyzer(cfg)
    if activity_type:
        location.set_activity_type(activity_type)
    cadence = CadenceAnalyzer(cfg.out_of_order)
    power = PowerAnalyzer(cfg.out_of_order)
    heart_rate = HeartRateAnalyzer(cfg.out_of_order)

    for s in samples:
        location.append(s.time_ms, s.latitude, s.longitude, s.altitude_m)
        location.update_speeds()
        if s.cadence is not None:
            cadence.append_sensor_value(s.time_ms, s.cadence)
        if s.power is not None:
            power.append_sensor_value(s.time_ms, s.power)
        if s.heart_rate is not None:
            heart_rate.append_sensor_value(s.time_ms, s.heart_rate)

    # Only meaningful once every point has been added.
    location.analyze()
    for sensor in (cadence, power, heart_rate):
        sensor.analyze()

    if location.rejected_samples:
        logging.warning("Dropped %d out-of-order location samples", location.rejected_samples)
    return ActivityAnalysis(location=location, cadence=cadence, power=power, heart_rate=heart_rate)


# -----------------
# Report assembly
# -----------------

@dataclass
class ActivityReport:
    start_time_ms: int
    end_time_ms: int
    elapsed_time_ms: int
    total_distance_m: float
    total_vertical_m: float
    avg_speed_mps: float
    max_speed_mps: float
    best_times_ms: Dict[str, Optional[int]]
    mile_splits: List[SplitRecord]
    km_splits: List[SplitRecord]
    speed_times_ms: List[int]
    speeds_mps: List[float]
    activity_type: Optional[str] = None
    max_cadence: Optional[float] = None
    avg_cadence: Optional[float] = None
    max_power: Optional[float] = None
    avg_power: Optional[float] = None
    max_heart_rate: Optional[float] = None
    avg_heart_rate: Optional[float] = None
    notes: List[str] = field(default_factory=list)


def _sensor_summary(sensor: Optional[ScalarSensorAnalyzer]) -> tuple:
    # Absent sensor stays None; a real zero reading stays 0.0.
    if sensor is None or not sensor.has_readings:
        return None, None
    return sensor.max_value, sensor.compute_average()


def build_report(
    location: LocationAnalyzer,
    cadence: Optional[CadenceAnalyzer] = None,
    power: Optional[PowerAnalyzer] = None,
    heart_rate: Optional[HeartRateAnalyzer] = None,
) -> ActivityReport:
    if not location.finalized:
        raise RuntimeError("LocationAnalyzer.analyze() must be called before building a report")

    max_cad, avg_cad = _sensor_summary(cadence)
    max_pow, avg_pow = _sensor_summary(power)
    max_hr, avg_hr = _sensor_summary(heart_rate)

    notes: List[str] = []
    if location.rejected_samples:
        notes.append(f"{location.rejected_samples} out-of-order samples dropped")
    if location.skipped_speed_samples:
        notes.append(f"{location.skipped_speed_samples} zero-interval speed samples skipped")

    return ActivityReport(
        start_time_ms=location.start_time_ms,
        end_time_ms=location.last_time_ms,
        elapsed_time_ms=location.elapsed_time_ms,
        total_distance_m=location.total_distance,
        total_vertical_m=location.total_vertical,
        avg_speed_mps=location.avg_speed,
        max_speed_mps=location.max_speed,
        best_times_ms={e.name: e.best_time_ms for e in location.best_efforts},
        mile_splits=list(location.mile_splits),
        km_splits=list(location.km_splits),
        speed_times_ms=list(location.speed_times),
        speeds_mps=list(location.speed_graph),
        activity_type=location.activity_type,
        max_cadence=max_cad,
        avg_cadence=avg_cad,
        max_power=max_pow,
        avg_power=avg_pow,
        max_heart_rate=max_hr,
        avg_heart_rate=avg_hr,
        notes=notes,
    )


def report_from_analysis(analysis: ActivityAnalysis) -> ActivityReport:
    return build_report(
        analysis.location,
        cadence=analysis.cadence,
        power=analysis.power,
        heart_rate=analysis.heart_rate,
    )


def report_to_dict(report: ActivityReport) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "Activity Type": report.activity_type,
        "Start Time (ms)": report.start_time_ms,
        "End Time (ms)": report.end_time_ms,
        "Elapsed Time": report.elapsed_time_ms // 1000,
        "Total Distance": report.total_distance_m,
        "Total Vertical Distance": report.total_vertical_m,
        "Average Speed": report.avg_speed_mps,
        "Maximum Speed": report.max_speed_mps,
    }
    for name, best in report.best_times_ms.items():
        data[f"Best {name}"] = best
    data.update({
        "Mile Splits": [s.elapsed_time_ms for s in report.mile_splits],
        "KM Splits": [s.elapsed_time_ms for s in report.km_splits],
        "Times": list(report.speed_times_ms),
        "Speeds": list(report.speeds_mps),
        "Maximum Power": report.max_power,
        "Average Power": report.avg_power,
        "Maximum Cadence": report.max_cadence,
        "Average Cadence": report.avg_cadence,
        "Maximum Heart Rate": report.max_heart_rate,
        "Average Heart Rate": report.avg_heart_rate,
    })
    if report.notes:
        data["Notes"] = list(report.notes)
    return data


def write_report_json(report: ActivityReport, path: str) -> None:
    with open(path, "w", encoding="utf-8") as jf:
        json.dump(report_to_dict(report), jf, indent=2)
    logging.info("Wrote JSON: %s", path)


def _split_rows(splits: Sequence[SplitRecord], unit: str) -> List[List[Any]]:
    rows: List[List[Any]] = []
    prev_ms = 0
    for split in splits:
        rows.append([unit, split.unit_index, split.elapsed_time_ms, split.elapsed_time_ms - prev_ms])
        prev_ms = split.elapsed_time_ms
    return rows


def write_splits_csv(report: ActivityReport, path: str) -> None:
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["unit", "unit_index", "elapsed_time_ms", "split_time_ms"])
        for row in _split_rows(report.mile_splits, "mile"):
            writer.writerow(row)
        for row in _split_rows(report.km_splits, "km"):
            writer.writerow(row)
    logging.info("Wrote: %s", path)
