"""Tests for endpoint health records, stores and filtering."""

import json
import os
import tempfile
import unittest

from engine.catalog import KnownProvider
from engine.health import (
    HealthRecord,
    InMemoryHealthStore,
    JsonHealthStore,
    filter_endpoints,
)

from fakes import make_endpoint


class TestHealthRecord(unittest.TestCase):
    def test_fresh_record_is_healthy(self):
        r = HealthRecord()
        self.assertTrue(r.is_healthy)
        self.assertEqual(r.success_rate, 1.0)

    def test_first_probe_sets_rate(self):
        r = HealthRecord()
        r.record(False, now=100.0)
        self.assertEqual(r.success_rate, 0.0)
        self.assertEqual(r.consecutive_failures, 1)
        self.assertEqual(r.total_probes, 1)
        self.assertEqual(r.last_probed, 100.0)

    def test_success_rate_smoothing(self):
        r = HealthRecord()
        r.record(True, 100.0)
        r.record(False)
        self.assertAlmostEqual(r.success_rate, 0.8)

    def test_recovery_after_failure_blends_rate(self):
        r = HealthRecord()
        r.record(False)
        r.record(True, 40.0)
        self.assertAlmostEqual(r.success_rate, 0.2)
        self.assertEqual(r.avg_latency_ms, 40.0)

    def test_latency_smoothing(self):
        r = HealthRecord()
        r.record(True, 100.0)
        self.assertEqual(r.avg_latency_ms, 100.0)
        r.record(True, 50.0)
        self.assertAlmostEqual(r.avg_latency_ms, 90.0)

    def test_success_resets_failures(self):
        r = HealthRecord()
        for _ in range(3):
            r.record(False)
        r.record(True, 20.0)
        self.assertEqual(r.consecutive_failures, 0)

    def test_threshold(self):
        self.assertTrue(HealthRecord(consecutive_failures=3).is_healthy)
        self.assertFalse(HealthRecord(consecutive_failures=4).is_healthy)
        self.assertFalse(HealthRecord(consecutive_failures=2, failure_threshold=1).is_healthy)

    def test_healthy_at_explicit_threshold(self):
        r = HealthRecord(consecutive_failures=5)
        self.assertFalse(r.is_healthy)
        self.assertTrue(r.healthy_at(10))
        self.assertFalse(r.healthy_at(4))

    def test_dict_roundtrip(self):
        r = HealthRecord(last_probed=5.0, success_rate=0.5, consecutive_failures=2, total_probes=7)
        self.assertEqual(HealthRecord.from_dict(r.to_dict()), r)


class TestFilterEndpoints(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryHealthStore()
        self.cf_backup = make_endpoint("CF Backup", provider=KnownProvider.CLOUDFLARE, backup=True)
        self.google_backup = make_endpoint("Google Backup", provider=KnownProvider.GOOGLE, backup=True)
        self.plain = make_endpoint("Plain")
        self.unknown = make_endpoint("Never Probed")

    def test_unknown_kept(self):
        self.assertEqual(filter_endpoints([self.unknown], self.store), [self.unknown])

    def test_unhealthy_dropped(self):
        self.store.put("Plain", HealthRecord(consecutive_failures=10))
        self.assertEqual(filter_endpoints([self.plain, self.unknown], self.store), [self.unknown])

    def test_top_tier_backup_survives(self):
        for ep in (self.cf_backup, self.google_backup):
            self.store.put(ep.name, HealthRecord(consecutive_failures=10))
        kept = filter_endpoints([self.cf_backup, self.google_backup], self.store)
        self.assertEqual(kept, [self.cf_backup])

    def test_threshold_argument_overrides_record(self):
        self.store.put("Plain", HealthRecord(consecutive_failures=5))
        self.assertEqual(filter_endpoints([self.plain], self.store), [])
        self.assertEqual(filter_endpoints([self.plain], self.store, failure_threshold=10), [self.plain])

    def test_threshold_argument_can_tighten(self):
        self.store.put("Plain", HealthRecord(consecutive_failures=2))
        self.assertEqual(filter_endpoints([self.plain], self.store, failure_threshold=1), [])


class TestStores(unittest.TestCase):
    def test_in_memory(self):
        store = InMemoryHealthStore()
        self.assertIsNone(store.get("x"))
        store.put("x", HealthRecord(total_probes=1))
        self.assertEqual(store.get("x").total_probes, 1)
        self.assertEqual(len(store), 1)

    def test_json_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "health.json")
            store = JsonHealthStore(path)
            rec = HealthRecord()
            rec.record(False, now=1.0)
            store.put("Plain", rec)
            self.assertFalse(os.path.exists(path))
            store.flush()
            self.assertTrue(os.path.isfile(path))
            self.assertFalse(os.path.exists(path + ".tmp"))

            reloaded = JsonHealthStore(path)
            self.assertEqual(reloaded.get("Plain").consecutive_failures, 1)

    def test_flush_failure_is_logged_and_records_kept(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = os.path.join(tmpdir, "not-a-dir")
            with open(blocker, "w") as f:
                f.write("")
            store = JsonHealthStore(os.path.join(blocker, "health.json"))
            store.put("Plain", HealthRecord(total_probes=3))
            with self.assertLogs("engine.health", level="WARNING") as logs:
                store.flush()
            self.assertIn("could not save health file", logs.output[0])
            self.assertEqual(store.get("Plain").total_probes, 3)

    def test_in_memory_flush_is_noop(self):
        store = InMemoryHealthStore()
        store.put("x", HealthRecord())
        store.flush()
        self.assertEqual(len(store), 1)

    def test_corrupt_file_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "health.json")
            with open(path, "w") as f:
                f.write("{not json")
            with self.assertLogs("engine.health", level="WARNING"):
                store = JsonHealthStore(path)
            self.assertEqual(len(store), 0)

    def test_non_dict_entries_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "health.json")
            with open(path, "w") as f:
                json.dump({"A": {"consecutive_failures": 2}, "B": 5}, f)
            store = JsonHealthStore(path)
            self.assertEqual(store.get("A").consecutive_failures, 2)
            self.assertIsNone(store.get("B"))


if __name__ == "__main__":
    unittest.main()
