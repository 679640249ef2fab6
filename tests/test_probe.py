"""Tests for single-shot probes and the retry policy."""

import unittest
from unittest import mock

from engine.constants import UNREACHABLE_LATENCY_MS
from engine.catalog import KnownProvider
from engine.probe import probe_download_capability, probe_latency
from engine.retry import probe_with_retries
from engine.transport import TransportError, TransportResponse

from fakes import FakeTransport, make_endpoint, ok, status

CF = make_endpoint(
    "CF Test",
    url="https://cf.test",
    provider=KnownProvider.CLOUDFLARE,
    download_path="/__down?bytes={bytes}",
)
PROBE_URL = "https://cf.test/__down?bytes=100000"


class TestTransportResponse(unittest.TestCase):
    def test_ok_range(self):
        self.assertTrue(TransportResponse(200, 1.0).ok)
        self.assertTrue(TransportResponse(301, 1.0).ok)
        self.assertFalse(TransportResponse(404, 1.0).ok)
        self.assertFalse(TransportResponse(503, 1.0).ok)


class TestProbeLatency(unittest.IsolatedAsyncioTestCase):
    async def test_success(self):
        t = FakeTransport({("HEAD", CF.url): ok(42.0)})
        r = await probe_latency(t, CF, timeout=1.0)
        self.assertTrue(r.success)
        self.assertEqual(r.latency_ms, 42.0)
        self.assertEqual(t.calls, [("HEAD", CF.url)])

    async def test_unreachable(self):
        r = await probe_latency(FakeTransport(), CF, timeout=1.0)
        self.assertFalse(r.success)
        self.assertEqual(r.error, "unreachable")

    async def test_http_error(self):
        t = FakeTransport({CF.url: status(500)})
        r = await probe_latency(t, CF, timeout=1.0)
        self.assertFalse(r.success)
        self.assertEqual(r.status, 500)
        self.assertEqual(r.error, "HTTP 500")


class TestDownloadCapability(unittest.IsolatedAsyncioTestCase):
    async def test_full(self):
        t = FakeTransport({PROBE_URL: ok(10.0)})
        self.assertEqual(await probe_download_capability(t, CF, 1.0), 1.0)
        self.assertEqual(t.calls, [("HEAD", PROBE_URL), ("GET", PROBE_URL)])

    async def test_fetch_fails(self):
        t = FakeTransport({
            ("HEAD", PROBE_URL): ok(10.0),
            ("GET", PROBE_URL): TransportError("reset"),
        })
        self.assertEqual(await probe_download_capability(t, CF, 1.0), 0.5)

    async def test_fetch_bad_status(self):
        t = FakeTransport({
            ("HEAD", PROBE_URL): ok(10.0),
            ("GET", PROBE_URL): status(500),
        })
        self.assertEqual(await probe_download_capability(t, CF, 1.0), 0.5)

    async def test_head_bad_status(self):
        t = FakeTransport({("HEAD", PROBE_URL): status(404)})
        self.assertEqual(await probe_download_capability(t, CF, 1.0), 0.3)
        self.assertEqual(len(t.calls), 1)

    async def test_head_unreachable(self):
        self.assertEqual(await probe_download_capability(FakeTransport(), CF, 1.0), 0.0)

    async def test_download_not_supported(self):
        ep = make_endpoint("No Download", download=False)
        t = FakeTransport({ep.url: ok(10.0)})
        self.assertEqual(await probe_download_capability(t, ep, 1.0), 0.0)
        self.assertEqual(t.calls, [])


class TestProbeWithRetries(unittest.IsolatedAsyncioTestCase):
    async def test_keeps_minimum_latency(self):
        t = FakeTransport({CF.url: [ok(50.0), ok(30.0), ok(45.0)]})
        outcome = await probe_with_retries(t, CF, max_retries=2, retry_delay=0)
        self.assertTrue(outcome.responsive)
        self.assertEqual(outcome.latency_ms, 30.0)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(outcome.successes, 3)

    async def test_one_success_is_enough(self):
        t = FakeTransport({CF.url: [TransportError("x"), TransportError("x"), ok(80.0)]})
        with mock.patch("engine.retry.asyncio.sleep", new_callable=mock.AsyncMock) as sleep:
            outcome = await probe_with_retries(t, CF, max_retries=2, retry_delay=0.1)
        self.assertTrue(outcome.responsive)
        self.assertEqual(outcome.latency_ms, 80.0)
        self.assertEqual(outcome.successes, 1)
        self.assertEqual(sleep.await_count, 2)

    async def test_never_responds(self):
        with mock.patch("engine.retry.asyncio.sleep", new_callable=mock.AsyncMock) as sleep:
            outcome = await probe_with_retries(FakeTransport(), CF, max_retries=2, retry_delay=0.1)
        self.assertFalse(outcome.responsive)
        self.assertEqual(outcome.latency_ms, UNREACHABLE_LATENCY_MS)
        self.assertEqual(outcome.attempts, 3)
        # no wait after the last attempt
        self.assertEqual(sleep.await_count, 2)

    async def test_http_errors_count_as_failures(self):
        t = FakeTransport({CF.url: status(503)})
        outcome = await probe_with_retries(t, CF, max_retries=1, retry_delay=0)
        self.assertFalse(outcome.responsive)
        self.assertEqual(outcome.attempts, 2)

    async def test_zero_retries(self):
        t = FakeTransport({CF.url: ok(12.0)})
        outcome = await probe_with_retries(t, CF, max_retries=0)
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(len(t.calls), 1)

    async def test_to_dict(self):
        t = FakeTransport({CF.url: ok(12.34)})
        d = (await probe_with_retries(t, CF, max_retries=0)).to_dict()
        self.assertEqual(d["latency_ms"], 12.3)
        self.assertTrue(d["responsive"])


if __name__ == "__main__":
    unittest.main()
