import os
import unittest
from datetime import date

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from services.analysis.errors import QuotaExceeded
from services.analysis.rate_limiter import AnalysisRateLimiter
from services.analysis.store import AnalysisStore
from tests.support import FixedClock, make_session_factory, seed_user


class TestAnalysisRateLimiter(unittest.TestCase):
    def setUp(self):
        self.factory = make_session_factory()
        self.store = AnalysisStore(self.factory)
        self.user_id = seed_user(self.factory)
        self.clock = FixedClock(date(2026, 3, 10))
        self.limiter = AnalysisRateLimiter(self.store, daily_limit=3, clock=self.clock)

    def _reserve(self):
        return self.store.create_analysis(
            self.user_id, 100.0, "m", "Analysis in progress...", reserve_on=self.clock()
        )

    def test_first_check_creates_counter(self):
        self.limiter.check(self.user_id)
        row = self.store.get_rate_limit(self.user_id)
        self.assertIsNotNone(row)
        self.assertEqual(row.daily_analyses_count, 0)
        self.assertEqual(row.daily_limit, 3)

    def test_check_does_not_consume_quota(self):
        for _ in range(5):
            self.limiter.check(self.user_id)
        self.assertEqual(self.store.get_rate_limit(self.user_id).daily_analyses_count, 0)

    def test_blocks_after_limit_reached(self):
        for _ in range(3):
            self.limiter.check(self.user_id)
            self._reserve()
        with self.assertRaises(QuotaExceeded):
            self.limiter.check(self.user_id)

    def test_one_below_limit_is_admitted(self):
        self.store.upsert_rate_limit(
            self.user_id, daily_count=2, daily_limit=3, last_analysis_date=self.clock()
        )
        self.limiter.check(self.user_id)

    def test_new_day_resets_daily_count(self):
        for _ in range(3):
            self.limiter.check(self.user_id)
            self._reserve()

        self.clock.current = date(2026, 3, 11)
        self.limiter.check(self.user_id)

        row = self.store.get_rate_limit(self.user_id)
        self.assertEqual(row.daily_analyses_count, 0)
        self.assertEqual(row.last_analysis_date, date(2026, 3, 11))
        self.assertEqual(row.monthly_analyses_count, 3)
        self.assertEqual(row.total_analyses_count, 3)

    def test_new_month_resets_monthly_count(self):
        self.limiter.check(self.user_id)
        self._reserve()

        self.clock.current = date(2026, 4, 1)
        self.limiter.check(self.user_id)

        row = self.store.get_rate_limit(self.user_id)
        self.assertEqual(row.monthly_analyses_count, 0)
        self.assertEqual(row.total_analyses_count, 1)

    def test_stale_day_admits_even_when_over_limit(self):
        self.store.upsert_rate_limit(
            self.user_id, daily_count=99, daily_limit=3, last_analysis_date=date(2026, 3, 9)
        )
        self.limiter.check(self.user_id)
        self.assertEqual(self.store.get_rate_limit(self.user_id).daily_analyses_count, 0)

    def test_custom_per_user_limit_is_respected(self):
        self.store.upsert_rate_limit(
            self.user_id, daily_count=1, daily_limit=1, last_analysis_date=self.clock()
        )
        with self.assertRaises(QuotaExceeded):
            self.limiter.check(self.user_id)


class _SnapshotStore(AnalysisStore):
    """Serves a fixed counter snapshot, as a request that read it earlier would."""

    def __init__(self, session_factory, snapshot):
        super().__init__(session_factory)
        self.snapshot = snapshot

    def get_rate_limit(self, user_id):
        return self.snapshot


class TestStaleCounterRead(unittest.TestCase):
    def setUp(self):
        self.factory = make_session_factory()
        self.store = AnalysisStore(self.factory)
        self.user_id = seed_user(self.factory)
        self.clock = FixedClock(date(2026, 3, 10))
        self.store.upsert_rate_limit(
            self.user_id, daily_count=3, daily_limit=3, monthly_count=3, last_analysis_date=date(2026, 3, 9)
        )

    def _reserve(self, store):
        return store.create_analysis(
            self.user_id, 100.0, "m", "Analysis in progress...", reserve_on=self.clock()
        )

    def test_reset_from_old_snapshot_keeps_todays_reservations(self):
        snapshot = self.store.get_rate_limit(self.user_id)
        late = AnalysisRateLimiter(_SnapshotStore(self.factory, snapshot), daily_limit=3, clock=self.clock)
        limiter = AnalysisRateLimiter(self.store, daily_limit=3, clock=self.clock)

        for _ in range(3):
            limiter.check(self.user_id)
            self._reserve(self.store)

        late.check(self.user_id)
        with self.assertRaises(QuotaExceeded):
            self._reserve(late.store)

        row = self.store.get_rate_limit(self.user_id)
        self.assertEqual(row.daily_analyses_count, 3)
        self.assertEqual(row.total_analyses_count, 3)
        self.assertEqual(row.last_analysis_date, date(2026, 3, 10))

    def test_reset_is_noop_once_today(self):
        self.assertTrue(self.store.reset_stale_day(self.user_id, self.clock()))
        self._reserve(self.store)
        self.assertFalse(self.store.reset_stale_day(self.user_id, self.clock()))
        self.assertEqual(self.store.get_rate_limit(self.user_id).daily_analyses_count, 1)

    def test_ensure_never_overwrites_existing_counter(self):
        self.assertFalse(self.store.ensure_rate_limit(self.user_id, 10, self.clock()))
        row = self.store.get_rate_limit(self.user_id)
        self.assertEqual(row.daily_analyses_count, 3)
        self.assertEqual(row.daily_limit, 3)


if __name__ == "__main__":
    unittest.main()
