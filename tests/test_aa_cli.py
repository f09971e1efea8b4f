from __future__ import annotations

import csv
import json
import math
import os
import tempfile
import unittest

from typer.testing import CliRunner

import aa_cli
import aa_geo
import aa_plotting
import aa_report


def _lat_for(distance_m: float) -> float:
    return math.degrees(distance_m / aa_geo.EARTH_RADIUS_M)


def _write_track(path: str, duration_s: int, speed_mps: float) -> None:
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time_ms", "latitude", "longitude", "altitude_m", "power"])
        for t in range(duration_s + 1):
            writer.writerow([t * 1000, _lat_for(speed_mps * t), 0.0, 50.0 + (t % 7), 210])


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = CliRunner()
        self.app = aa_cli._build_typer_app()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        self.track = os.path.join(self.tmp, "track.csv")
        _write_track(self.track, 800, 3.0)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_analyze_writes_report(self) -> None:
        out = os.path.join(self.tmp, "report.json")
        splits = os.path.join(self.tmp, "splits.csv")
        result = self.runner.invoke(
            self.app,
            ["analyze", self.track, "-o", out, "--splits-csv", splits, "--no-plot", "--activity-type", "Running"],
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Best 1K", result.output)
        with open(out, "r", encoding="utf-8") as jf:
            data = json.load(jf)
        self.assertEqual(data["Activity Type"], "Running")
        self.assertAlmostEqual(data["Total Distance"], 2400.0, places=3)
        self.assertEqual(data["Maximum Power"], 210.0)
        self.assertTrue(os.path.exists(splits))

    def test_analyze_skips_non_finite_rows(self) -> None:
        with open(self.track, "r", newline="") as f:
            rows = list(csv.reader(f))
        rows[301][1] = "nan"
        rows[450][0] = "inf"
        with open(self.track, "w", newline="") as f:
            csv.writer(f).writerows(rows)
        out = os.path.join(self.tmp, "report.json")
        result = self.runner.invoke(self.app, ["analyze", self.track, "-o", out, "--no-plot"])
        self.assertEqual(result.exit_code, 0, result.output)
        with open(out, "r", encoding="utf-8") as jf:
            data = json.load(jf, parse_constant=lambda name: self.fail(f"{name} in report"))
        self.assertAlmostEqual(data["Total Distance"], 2400.0, places=3)
        self.assertEqual(len(data["KM Splits"]), 2)
        self.assertTrue(all(math.isfinite(v) for v in data["Speeds"]))

    def test_analyze_missing_file(self) -> None:
        result = self.runner.invoke(self.app, ["analyze", os.path.join(self.tmp, "nope.csv"), "--no-plot"])
        self.assertEqual(result.exit_code, 2)

    def test_analyze_bad_policy(self) -> None:
        result = self.runner.invoke(
            self.app,
            ["analyze", self.track, "--no-plot", "--out-of-order", "shuffle", "-o", os.path.join(self.tmp, "r.json")],
        )
        self.assertEqual(result.exit_code, 2)

    def test_analyze_without_movement(self) -> None:
        still = os.path.join(self.tmp, "still.csv")
        with open(still, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["time_ms", "latitude", "longitude"])
            for t in range(10):
                writer.writerow([t * 1000, 1.0, 1.0])
        result = self.runner.invoke(self.app, ["analyze", still, "--no-plot", "-o", os.path.join(self.tmp, "r.json")])
        self.assertEqual(result.exit_code, 3)

    def test_efforts_custom_distances(self) -> None:
        result = self.runner.invoke(self.app, ["efforts", self.track, "-d", "300", "-d", "5000"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("300 m: 1:40", result.output)
        self.assertIn("5000 m: not achieved", result.output)


class TestPlotting(unittest.TestCase):
    def test_plots_written(self) -> None:
        samples = [
            aa_report.ActivitySample(time_ms=t * 1000, latitude=_lat_for(3.2 * t), longitude=0.0)
            for t in range(500)
        ]
        report = aa_report.report_from_analysis(aa_report.analyze_samples(samples))
        with tempfile.TemporaryDirectory() as tmp:
            speed_png = os.path.join(tmp, "speed.png")
            splits_png = os.path.join(tmp, "splits.png")
            self.assertTrue(aa_plotting._plot_speed(report, speed_png, smooth_window_ms=5000))
            self.assertTrue(aa_plotting._plot_splits(report, splits_png, unit="km"))
            self.assertTrue(os.path.getsize(speed_png) > 0)
            self.assertTrue(os.path.getsize(splits_png) > 0)
            self.assertFalse(aa_plotting._plot_splits(report, splits_png, unit="mile"))

    def test_bad_split_unit(self) -> None:
        report = aa_report.report_from_analysis(aa_report.analyze_samples([]))
        with self.assertRaises(ValueError):
            aa_plotting._plot_splits(report, "unused.png", unit="furlong")


if __name__ == "__main__":
    unittest.main()
