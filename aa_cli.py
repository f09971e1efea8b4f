from __future__ import annotations

# CLI orchestration for activity-analyzer. The streaming analyzers live in
# aa_location / aa_sensor, report assembly in aa_report, plots in aa_plotting.

import logging
import math
from typing import List, Optional

import typer

from aa_efforts import STANDARD_DISTANCES
from aa_location import AnalyzerConfig, OUT_OF_ORDER_POLICIES
from aa_plotting import _plot_speed, _plot_splits
from aa_report import (
    analyze_samples,
    load_config,
    load_samples_csv,
    report_from_analysis,
    write_report_json,
    write_splits_csv,
)


def _setup_logging(verbose: bool, log_file: Optional[str] = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(message)s"
    datefmt = "%H:%M:%S"
    logging.basicConfig(level=level, format=fmt, datefmt=datefmt)
    if log_file:
        fh = logging.FileHandler(log_file, mode="w")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(fmt, datefmt))
        logging.getLogger().addHandler(fh)
    # Suppress very chatty third-party DEBUG logs (e.g., matplotlib findfont)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)
    logging.getLogger("matplotlib.font_manager").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.INFO)


def _fmt_time_hms(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0:
        return "--:--"
    sec_int = int(round(seconds))
    h, rem = divmod(sec_int, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:d}:{s:02d}"


def _fmt_best(best_ms: Optional[int]) -> str:
    if best_ms is None:
        return "not achieved"
    return _fmt_time_hms(best_ms / 1000.0)


def _resolve_config(
    config_path: Optional[str],
    out_of_order: Optional[str],
    noise_floor: Optional[float],
    use_3d: Optional[bool],
    speed_window_ms: Optional[int],
) -> AnalyzerConfig:
    base = load_config(config_path) if config_path else AnalyzerConfig()
    overrides = {
        "out_of_order": out_of_order,
        "distance_noise_floor_m": noise_floor,
        "use_3d_distance": use_3d,
        "speed_window_ms": speed_window_ms,
    }
    params = {
        "out_of_order": base.out_of_order,
        "distance_noise_floor_m": base.distance_noise_floor_m,
        "use_3d_distance": base.use_3d_distance,
        "speed_window_ms": base.speed_window_ms,
        "best_effort_distances": dict(base.best_effort_distances),
    }
    for key, value in overrides.items():
        if value is not None:
            params[key] = value
    return AnalyzerConfig(**params)


def _default_png(output: str) -> str:
    if output.lower().endswith(".json"):
        return output[:-5] + ".png"
    return output + ".png"


def _run_analyze(
    samples_csv: str,
    output: str,
    splits_csv: Optional[str] = None,
    png: Optional[str] = None,
    no_plot: bool = False,
    activity_type: Optional[str] = None,
    config_path: Optional[str] = None,
    out_of_order: Optional[str] = None,
    noise_floor: Optional[float] = None,
    use_3d: Optional[bool] = None,
    speed_window_ms: Optional[int] = None,
    verbose: bool = False,
    log_file: Optional[str] = None,
) -> int:
    _setup_logging(verbose, log_file=log_file)

    try:
        config = _resolve_config(config_path, out_of_order, noise_floor, use_3d, speed_window_ms)
        samples = load_samples_csv(samples_csv)
        analysis = analyze_samples(samples, config=config, activity_type=activity_type)
    except (OSError, ValueError) as e:
        logging.error(str(e))
        return 2

    report = report_from_analysis(analysis)
    if not report.total_distance_m > 0.0:
        logging.error("No distance covered in %s; nothing to report.", samples_csv)
        return 3

    summary_lines = [
        f"Activity Report ({report.activity_type or 'unknown activity'})",
        f"- Elapsed: {_fmt_time_hms(report.elapsed_time_ms / 1000.0)}",
        f"- Distance: {report.total_distance_m / 1000.0:.2f} km",
        f"- Ascent: {report.total_vertical_m:.0f} m",
        f"- Average speed: {report.avg_speed_mps:.2f} m/s",
        f"- Splits: {len(report.km_splits)} km, {len(report.mile_splits)} mile",
    ]
    for name, best in report.best_times_ms.items():
        summary_lines.append(f"- Best {name}: {_fmt_best(best)}")
    if report.avg_heart_rate is not None:
        summary_lines.append(f"- Heart rate: avg {report.avg_heart_rate:.0f}, max {report.max_heart_rate:.0f}")
    if report.avg_power is not None:
        summary_lines.append(f"- Power: avg {report.avg_power:.0f} W, max {report.max_power:.0f} W")
    if report.avg_cadence is not None:
        summary_lines.append(f"- Cadence: avg {report.avg_cadence:.0f}, max {report.max_cadence:.0f}")
    for line in summary_lines:
        print(line)

    write_report_json(report, output)
    if splits_csv:
        write_splits_csv(report, splits_csv)

    if not no_plot:
        png_path = png or _default_png(output)
        if _plot_speed(report, png_path, smooth_window_ms=config.speed_window_ms):
            logging.info("Wrote plot: %s", png_path)
        splits_png = png_path[:-4] + "_splits.png" if png_path.lower().endswith(".png") else png_path + "_splits.png"
        if _plot_splits(report, splits_png, unit="km"):
            logging.info("Wrote plot: %s", splits_png)

    return 0


def _run_efforts(
    samples_csv: str,
    distances: List[float],
    verbose: bool = False,
) -> int:
    _setup_logging(verbose)

    try:
        samples = load_samples_csv(samples_csv)
    except (OSError, ValueError) as e:
        logging.error(str(e))
        return 2

    if distances:
        targets = {f"{d:g} m": float(d) for d in distances if d > 0}
        if not targets:
            logging.error("No positive distances given.")
            return 2
    else:
        targets = dict(STANDARD_DISTANCES)

    analysis = analyze_samples(samples, config=AnalyzerConfig(best_effort_distances=targets))
    location = analysis.location
    if not location.total_distance > 0.0:
        logging.error("No distance covered in %s; nothing to search.", samples_csv)
        return 3

    print(f"Best efforts ({location.total_distance / 1000.0:.2f} km total)")
    for effort in location.best_efforts:
        if effort.best_time_ms is None:
            print(f"- {effort.name}: not achieved")
            continue
        start_off = (effort.start_time_ms or 0) - location.start_time_ms
        end_off = (effort.end_time_ms or 0) - location.start_time_ms
        print(
            f"- {effort.name}: {_fmt_best(effort.best_time_ms)} "
            f"window {_fmt_time_hms(start_off / 1000.0)}-{_fmt_time_hms(end_off / 1000.0)}"
        )
    return 0


def _build_typer_app():
    app = typer.Typer(add_completion=False, help="Distance, splits and best efforts from activity samples.")

    @app.command(name="analyze")
    def analyze(
        samples_csv: str = typer.Argument(..., help="CSV of decoded samples (time_ms, latitude, longitude, altitude_m, ...)"),
        output: str = typer.Option("report.json", "--output", "-o", help="Output JSON report path"),
        splits_csv: Optional[str] = typer.Option(None, "--splits-csv", help="Optional CSV of mile and km splits"),
        png: Optional[str] = typer.Option(None, "--png", help="Optional output PNG path (defaults next to the report)"),
        no_plot: bool = typer.Option(False, "--no-plot", help="Disable PNG generation"),
        activity_type: Optional[str] = typer.Option(None, "--activity-type", help="Activity type recorded in the report"),
        config: Optional[str] = typer.Option(None, "--config", help="Path to JSON analyzer config"),
        out_of_order: Optional[str] = typer.Option(None, "--out-of-order", help=f"Timestamp regressions: {'|'.join(OUT_OF_ORDER_POLICIES)}"),
        noise_floor: Optional[float] = typer.Option(None, "--noise-floor", help="Movement (m) below which a step counts as zero"),
        use_3d: Optional[bool] = typer.Option(None, "--use-3d/--use-2d", help="Include altitude change in step distance"),
        speed_window: Optional[int] = typer.Option(None, "--speed-window", help="Trailing window (ms) for current and smoothed speed"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Optional log file path for diagnostics"),
    ) -> None:
        """Analyze one activity and write a JSON report."""
        code = _run_analyze(
            samples_csv,
            output,
            splits_csv=splits_csv,
            png=png,
            no_plot=no_plot,
            activity_type=activity_type,
            config_path=config,
            out_of_order=out_of_order,
            noise_floor=noise_floor,
            use_3d=use_3d,
            speed_window_ms=speed_window,
            verbose=verbose,
            log_file=log_file,
        )
        if code:
            raise typer.Exit(code)

    @app.command(name="efforts")
    def efforts(
        samples_csv: str = typer.Argument(..., help="CSV of decoded samples"),
        distances: List[float] = typer.Option([], "--distance", "-d", help="Distances in meters (defaults to standard race distances)"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
    ) -> None:
        """Print the fastest time over each distance."""
        code = _run_efforts(samples_csv, distances, verbose=verbose)
        if code:
            raise typer.Exit(code)

    return app


def main_cli() -> int:
    app = _build_typer_app()
    app()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main_cli())
