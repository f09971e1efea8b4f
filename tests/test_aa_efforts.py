from __future__ import annotations

import unittest

import numpy as np

import aa_efforts


def _feed(tracker: aa_efforts.BestEffortTracker, times_ms, cumulative_m) -> None:
    for t, d in zip(times_ms, cumulative_m):
        tracker.push(t, d)


class TestBestEffortTracker(unittest.TestCase):
    def test_constant_rate(self) -> None:
        # 2.5 m/s sampled at 1 Hz: every cumulative value is exact in binary.
        tracker = aa_efforts.BestEffortTracker()
        times = [i * 1000 for i in range(0, 2101)]
        dists = [i * 2.5 for i in range(0, 2101)]
        _feed(tracker, times, dists)
        self.assertEqual(tracker.best_time(aa_efforts.BEST_1K), 400_000)
        self.assertEqual(tracker.best_time(aa_efforts.BEST_5K), 2_000_000)
        # 1609.34 m needs 643.736 s; the first sample covering it is at 644 s.
        self.assertEqual(tracker.best_time(aa_efforts.BEST_MILE), 644_000)
        self.assertIsNone(tracker.best_time(aa_efforts.BEST_10K))

    def test_exact_distance_qualifies(self) -> None:
        tracker = aa_efforts.BestEffortTracker({"1K": 1000.0})
        _feed(tracker, [0, 300_000], [0.0, 1000.0])
        self.assertEqual(tracker.best_time("1K"), 300_000)

    def test_fast_middle_segment_wins(self) -> None:
        times = []
        dists = []
        d = 0.0
        for i in range(0, 1000):
            times.append(i * 1000)
            dists.append(d)
            d += 10.0 if 300 <= i < 420 else 2.0
        tracker = aa_efforts.BestEffortTracker({"1K": 1000.0})
        _feed(tracker, times, dists)
        self.assertEqual(tracker.best_time("1K"), 100_000)
        effort = tracker.efforts["1K"]
        self.assertGreaterEqual(effort.start_time_ms, 300_000)
        self.assertLessEqual(effort.end_time_ms, 420_000)

    def test_best_never_increases(self) -> None:
        rng = np.random.default_rng(3)
        steps = rng.uniform(0.5, 6.0, size=3000)
        cum = np.concatenate(([0.0], np.cumsum(steps)))
        tracker = aa_efforts.BestEffortTracker()
        seen = {}
        for i, d in enumerate(cum):
            tracker.push(i * 1000, float(d))
            for name in aa_efforts.STANDARD_DISTANCES:
                best = tracker.best_time(name)
                if name in seen:
                    self.assertIsNotNone(best)
                    self.assertLessEqual(best, seen[name])
                if best is not None:
                    seen[name] = best

    def test_short_track_leaves_classes_absent(self) -> None:
        tracker = aa_efforts.BestEffortTracker()
        _feed(tracker, [0, 1000, 2000], [0.0, 400.0, 900.0])
        for name in aa_efforts.STANDARD_DISTANCES:
            self.assertIsNone(tracker.best_time(name))

    def test_rejects_non_positive_distance(self) -> None:
        with self.assertRaises(ValueError):
            aa_efforts.BestEffortTracker({"bad": 0.0})


class TestBatchScan(unittest.TestCase):
    def test_matches_streaming_tracker(self) -> None:
        rng = np.random.default_rng(11)
        gaps = rng.integers(500, 3000, size=4000)
        times = np.concatenate(([0], np.cumsum(gaps))).astype(int).tolist()
        steps = rng.uniform(0.0, 8.0, size=4000)
        cum = np.concatenate(([0.0], np.cumsum(steps))).tolist()

        tracker = aa_efforts.BestEffortTracker()
        _feed(tracker, times, cum)
        batch = aa_efforts.min_time_for_distances(times, cum, aa_efforts.STANDARD_DISTANCES)
        for name in aa_efforts.STANDARD_DISTANCES:
            found = batch[name]
            if found is None:
                self.assertIsNone(tracker.best_time(name))
            else:
                self.assertEqual(found[0], tracker.best_time(name))

    def test_empty_input(self) -> None:
        out = aa_efforts.min_time_for_distances([], [], {"1K": 1000.0})
        self.assertEqual(out, {"1K": None})

    def test_length_mismatch(self) -> None:
        with self.assertRaises(ValueError):
            aa_efforts.min_time_for_distances([0, 1000], [0.0], {"1K": 1000.0})

    def test_merge_keeps_faster(self) -> None:
        tracker = aa_efforts.BestEffortTracker({"1K": 1000.0})
        _feed(tracker, [0, 500_000], [0.0, 1000.0])
        self.assertEqual(tracker.merge({"1K": (600_000, 0, 600_000)}), [])
        self.assertEqual(tracker.best_time("1K"), 500_000)
        self.assertEqual(tracker.merge({"1K": (450_000, 10_000, 460_000)}), ["1K"])
        self.assertEqual(tracker.best_time("1K"), 450_000)


class TestResolveDistanceClass(unittest.TestCase):
    def test_by_name_and_meters(self) -> None:
        d = aa_efforts.STANDARD_DISTANCES
        self.assertEqual(aa_efforts.resolve_distance_class("half marathon", d), "Half Marathon")
        self.assertEqual(aa_efforts.resolve_distance_class(1609.34, d), "Mile")
        self.assertEqual(aa_efforts.resolve_distance_class(42195, d), "Marathon")
        self.assertIsNone(aa_efforts.resolve_distance_class(1234.0, d))
        self.assertIsNone(aa_efforts.resolve_distance_class("50K", d))


if __name__ == "__main__":
    unittest.main()
