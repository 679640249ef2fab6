"""Unit tests for engine.stats -- pure functions and dataclasses."""

import unittest

from engine.stats import (
    ConnectionStats,
    TransferResult,
    blend,
    calculate_iqm,
    calculate_jitter,
    calculate_percentile,
    ema,
    format_latency,
    format_speed,
)


class TestCalculateJitter(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(calculate_jitter([]), 0.0)

    def test_single(self):
        self.assertEqual(calculate_jitter([10.0]), 0.0)

    def test_varying(self):
        # |15-10| + |10-15| + |20-10| = 20 / 3
        self.assertAlmostEqual(calculate_jitter([10.0, 15.0, 10.0, 20.0]), 20.0 / 3, places=3)


class TestCalculateIqm(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(calculate_iqm([]), 0.0)

    def test_few_samples(self):
        self.assertAlmostEqual(calculate_iqm([1.0, 2.0, 3.0]), 2.0)

    def test_outlier_resistant(self):
        # sorted: [0.5, 10, 10, 10, 10, 10, 10, 100] -> middle four are all 10
        samples = [10.0, 10.0, 10.0, 10.0, 10.0, 10.0, 100.0, 0.5]
        self.assertAlmostEqual(calculate_iqm(samples), 10.0)


class TestCalculatePercentile(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(calculate_percentile([], 50), 0.0)

    def test_median_odd(self):
        self.assertAlmostEqual(calculate_percentile([1, 2, 3, 4, 5], 50), 3.0)

    def test_interpolated(self):
        self.assertAlmostEqual(calculate_percentile([10, 20], 95), 19.5)


class TestEma(unittest.TestCase):
    def test_seed(self):
        self.assertEqual(ema(0.0, 42.0, 0.25), 42.0)

    def test_step(self):
        self.assertAlmostEqual(ema(100.0, 200.0, 0.25), 125.0)

    def test_blend_from_zero(self):
        self.assertAlmostEqual(blend(0.0, 1.0, 0.2), 0.2)
        self.assertAlmostEqual(blend(100.0, 200.0, 0.25), ema(100.0, 200.0, 0.25))


class TestFormatting(unittest.TestCase):
    def test_speed(self):
        self.assertEqual(format_speed(50.0), "50.00 Mbps")
        self.assertEqual(format_speed(1500.0), "1.50 Gbps")

    def test_latency(self):
        self.assertEqual(format_latency(25.3), "25.3 ms")
        self.assertEqual(format_latency(1500.0), "1.50 s")


class TestTransferResult(unittest.TestCase):
    def test_basic_speed(self):
        r = TransferResult(bytes_total=125_000_000, duration_ms=10_000)
        r.calculate()
        self.assertAlmostEqual(r.speed_mbps, 100.0)

    def test_zero_duration(self):
        r = TransferResult(bytes_total=100, duration_ms=0)
        r.calculate()
        self.assertEqual(r.speed_mbps, 0.0)

    def test_calculate_from_samples_iqm(self):
        r = TransferResult(samples=[10, 20, 30, 40, 50, 60, 70, 80])
        r.calculate_from_samples()
        self.assertAlmostEqual(r.speed_mbps, 45.0)

    def test_empty_samples_fall_back(self):
        r = TransferResult(bytes_total=125_000_000, duration_ms=10_000)
        r.calculate_from_samples()
        self.assertAlmostEqual(r.speed_mbps, 100.0)

    def test_to_dict(self):
        r = TransferResult(speed_mbps=100.0, samples=[90.0, 100.0])
        r.connections = [ConnectionStats(id=0, endpoint="x", bytes_transferred=10, duration_ms=1)]
        d = r.to_dict()
        self.assertEqual(d["speed_mbps"], 100.0)
        self.assertEqual(len(d["connections"]), 1)
        self.assertFalse(d["skipped"])

    def test_skipped(self):
        self.assertTrue(TransferResult(skipped=True).to_dict()["skipped"])


class TestConnectionStats(unittest.TestCase):
    def test_calculate(self):
        cs = ConnectionStats(bytes_transferred=12_500_000, duration_ms=1000)
        cs.calculate()
        self.assertAlmostEqual(cs.speed_mbps, 100.0)

    def test_to_dict(self):
        d = ConnectionStats(id=1, endpoint="Cloudflare Global").to_dict()
        self.assertEqual(d["id"], 1)
        self.assertEqual(d["endpoint"], "Cloudflare Global")


if __name__ == "__main__":
    unittest.main()
