"""Tests for the latency sampler and the throughput tester gate."""

import unittest

from engine.download import DownloadTester
from engine.latency import LatencyResult, LatencyTester
from engine.transport import TransportError
from engine.upload import UploadTester

from fakes import FakeTransport, make_endpoint, ok

EP = make_endpoint("Ping Target")


class TestLatencyResult(unittest.TestCase):
    def test_calculate(self):
        r = LatencyResult(endpoint=EP, pings=[10.0, 20.0, 15.0], attempts=4)
        r.calculate()
        self.assertEqual(r.latency_ms, 10.0)
        self.assertAlmostEqual(r.mean_ms, 15.0)
        self.assertAlmostEqual(r.packet_loss, 25.0)
        self.assertAlmostEqual(r.jitter_ms, 7.5)
        self.assertTrue(r.success)

    def test_empty(self):
        r = LatencyResult(endpoint=EP, attempts=3)
        r.calculate()
        self.assertFalse(r.success)
        self.assertAlmostEqual(r.packet_loss, 100.0)
        self.assertEqual(r.latency_ms, 0.0)

    def test_to_dict(self):
        r = LatencyResult(endpoint=EP, pings=[12.34], attempts=1)
        r.calculate()
        d = r.to_dict()
        self.assertEqual(d["endpoint"], "Ping Target")
        self.assertEqual(d["pings"], [12.3])
        self.assertEqual(d["packet_loss"], 0.0)


class TestLatencyTester(unittest.IsolatedAsyncioTestCase):
    async def test_samples(self):
        transport = FakeTransport({EP.url: [ok(30.0), TransportError("x"), ok(20.0), ok(25.0)]})
        seen = []
        tester = LatencyTester(ping_count=4, interval=0)
        tester.on_sample = lambda i, ms: seen.append(i)

        result = await tester.test(transport, EP)

        self.assertEqual(result.attempts, 4)
        self.assertEqual(result.pings, [30.0, 20.0, 25.0])
        self.assertEqual(result.latency_ms, 20.0)
        self.assertAlmostEqual(result.packet_loss, 25.0)
        self.assertEqual(seen, [0, 2, 3])
        self.assertTrue(all(method == "HEAD" for method, _ in transport.calls))

    async def test_all_lost(self):
        result = await LatencyTester(ping_count=3, interval=0).test(FakeTransport(), EP)
        self.assertFalse(result.success)
        self.assertEqual(result.attempts, 3)


class TestTransferGate(unittest.IsolatedAsyncioTestCase):
    async def test_upload_skipped_when_unsupported(self):
        result = await UploadTester(duration_seconds=1.0).test(make_endpoint("No Up"))
        self.assertTrue(result.skipped)
        self.assertEqual(result.speed_mbps, 0.0)

    async def test_download_skipped_when_unsupported(self):
        result = await DownloadTester(duration_seconds=1.0).test(make_endpoint("No Down", download=False))
        self.assertTrue(result.skipped)

    def test_supports(self):
        up = make_endpoint("Up", upload=True)
        self.assertTrue(UploadTester().supports(up))
        self.assertTrue(DownloadTester().supports(up))
        self.assertFalse(UploadTester().supports(make_endpoint("Plain")))


if __name__ == "__main__":
    unittest.main()
