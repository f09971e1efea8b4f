from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from aa_location import SplitRecord, smooth_speeds
from aa_report import ActivityReport


USER_COLOR = "C0"
SMOOTH_COLOR = "tab:green"
AVG_STYLE = (0, (6, 4))

_MATPLOTLIB_STYLE_READY = False


def _ensure_matplotlib_style(plt) -> None:
    global _MATPLOTLIB_STYLE_READY
    if not _MATPLOTLIB_STYLE_READY:
        plt.style.use("ggplot")
        _MATPLOTLIB_STYLE_READY = True


def _pyplot():
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    _ensure_matplotlib_style(plt)
    return plt


def _split_durations_s(splits: Sequence[SplitRecord]) -> List[float]:
    out: List[float] = []
    prev = 0
    for split in splits:
        out.append((split.elapsed_time_ms - prev) / 1000.0)
        prev = split.elapsed_time_ms
    return out


def _plot_speed(
    report: ActivityReport,
    out_png: str,
    smooth_window_ms: int = 10_000,
    title: Optional[str] = None,
) -> bool:
    if not report.speeds_mps:
        logging.warning("Speed series empty; skipping plot generation.")
        return False

    plt = _pyplot()

    t = np.asarray(report.speed_times_ms, dtype=np.float64)
    minutes = (t - float(report.start_time_ms)) / 60000.0
    speeds = np.asarray(report.speeds_mps, dtype=np.float64)
    smoothed = smooth_speeds(report.speed_times_ms, report.speeds_mps, smooth_window_ms)

    fig, ax = plt.subplots(figsize=(12, 6))
    ax.plot(minutes, speeds, color=USER_COLOR, linewidth=0.8, alpha=0.5, label="Speed")
    if smooth_window_ms > 0:
        ax.plot(
            minutes,
            smoothed,
            color=SMOOTH_COLOR,
            linewidth=1.6,
            label=f"Smoothed ({smooth_window_ms / 1000.0:g}s)",
        )
    ax.axhline(report.avg_speed_mps, linestyle=AVG_STYLE, color="0.3", linewidth=1.0, label="Average")

    ax.set_xlabel("Elapsed (min)")
    ax.set_ylabel("Speed (m/s)")
    finite = speeds[np.isfinite(speeds)]
    top = float(finite.max()) if finite.size else 1.0
    ax.set_ylim(0, max(top * 1.05, 0.1))
    ax.set_title(title or f"Speed — {report.activity_type or 'activity'}")
    ax.legend(loc="upper right")

    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return True


def _plot_splits(
    report: ActivityReport,
    out_png: str,
    unit: str = "km",
) -> bool:
    unit_norm = unit.strip().lower()
    if unit_norm not in ("km", "mile"):
        raise ValueError(f"Unknown split unit {unit!r}; expected km or mile")
    splits = report.km_splits if unit_norm == "km" else report.mile_splits
    if not splits:
        logging.warning("No completed %s splits; skipping plot generation.", unit_norm)
        return False

    plt = _pyplot()

    durations_min = np.asarray(_split_durations_s(splits), dtype=np.float64) / 60.0
    labels = [str(s.unit_index) for s in splits]

    fig, ax = plt.subplots(figsize=(max(6, len(splits) * 0.5 + 2), 5))
    ax.bar(labels, durations_min, color=USER_COLOR)
    ax.axhline(float(np.mean(durations_min)), linestyle=AVG_STYLE, color="0.3", linewidth=1.0)
    ax.set_xlabel(unit_norm.capitalize())
    ax.set_ylabel("Split time (min)")
    ax.set_title(f"{unit_norm.capitalize()} splits")

    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return True
