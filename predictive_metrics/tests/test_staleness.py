"""
Tests for the staleness evaluator.
"""
import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from predictive_metrics.core.staleness import is_fresh, record_age_hours


class TestStaleness(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2024, 1, 15, 12, 0, 0)

    def _record(self, hours_old):
        return SimpleNamespace(created_at=self.now - timedelta(hours=hours_old))

    def test_record_within_window_is_fresh(self):
        self.assertTrue(is_fresh(self._record(23), False, self.now))

    def test_record_outside_window_is_stale(self):
        self.assertFalse(is_fresh(self._record(25), False, self.now))

    def test_record_exactly_at_window_is_stale(self):
        self.assertFalse(is_fresh(self._record(24), False, self.now))

    def test_force_refresh_always_stale(self):
        for hours in (0, 1, 23, 25):
            self.assertFalse(is_fresh(self._record(hours), True, self.now))

    def test_missing_record_is_stale(self):
        self.assertFalse(is_fresh(None, False, self.now))

    def test_record_without_timestamp_is_stale(self):
        self.assertFalse(is_fresh(SimpleNamespace(created_at=None), False, self.now))

    def test_custom_window(self):
        self.assertTrue(is_fresh(self._record(5), False, self.now, window_hours=6))
        self.assertFalse(is_fresh(self._record(7), False, self.now, window_hours=6))

    def test_string_timestamp_with_offset(self):
        record = SimpleNamespace(created_at='2024-01-15T10:00:00+00:00')
        self.assertTrue(is_fresh(record, False, self.now))
        self.assertAlmostEqual(record_age_hours(record, self.now), 2.0)

    def test_record_age_hours_without_timestamp(self):
        self.assertIsNone(record_age_hours(SimpleNamespace(created_at=None), self.now))


if __name__ == '__main__':
    unittest.main()
