import os
import unittest
from datetime import date, datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy.exc import OperationalError

from models.ai_analysis import AIAnalysis, AIRecommendation
from schemas.ai_analysis import AIAnalysisResult
from services.analysis.errors import PreconditionFailed, QuotaExceeded, StoreFailure
from services.analysis.store import AnalysisStore
from tests.support import VALID_RESULT, make_session_factory, seed_user

TODAY = date(2026, 5, 4)


class TestAnalysisStore(unittest.TestCase):
    def setUp(self):
        self.factory = make_session_factory()
        self.store = AnalysisStore(self.factory)
        self.user_id = seed_user(
            self.factory,
            holdings=[
                ("aapl", 10, 100.0, 150.0),
                ("AAPL", 10, 200.0, 150.0),
                ("MSFT", 5, 300.0, None),
                ("TSLA", 0, 100.0, 250.0),
            ],
        )

    def _create(self, **kw):
        return self.store.create_analysis(self.user_id, 1000.0, "fake-model", "Analysis in progress...", **kw)

    # ---- portfolio inputs ----

    def test_get_strategy(self):
        s = self.store.get_strategy(self.user_id)
        self.assertEqual(s.risk_level, "MEDIUM")
        self.assertEqual(s.preferred_sectors, ["Technology"])

    def test_get_strategy_missing(self):
        other = seed_user(self.factory, email="other@example.com", with_strategy=False)
        self.assertIsNone(self.store.get_strategy(other))

    def test_portfolio_value_uses_current_or_purchase_price(self):
        # AAPL 20 * 150 + MSFT 5 * 300 (no quote yet); TSLA has no shares
        self.assertAlmostEqual(self.store.get_current_portfolio_value(self.user_id), 4_500.0)

    def test_portfolio_data_aggregates_lots(self):
        data = self.store.get_portfolio_data(self.user_id)
        by_ticker = {p.ticker: p for p in data.positions}
        self.assertEqual(set(by_ticker), {"AAPL", "MSFT"})

        aapl = by_ticker["AAPL"]
        self.assertAlmostEqual(aapl.quantity, 20)
        self.assertAlmostEqual(aapl.average_price, 150.0)
        self.assertAlmostEqual(aapl.profit_loss, 0.0)
        self.assertAlmostEqual(aapl.percentage_of_portfolio, 3_000.0 / 4_500.0 * 100.0)
        self.assertAlmostEqual(data.total_value, 4_500.0)

    def test_portfolio_data_requires_strategy(self):
        other = seed_user(self.factory, email="nostrat@example.com", with_strategy=False)
        with self.assertRaises(PreconditionFailed):
            self.store.get_portfolio_data(other)

    # ---- analysis records ----

    def test_create_analysis_is_pending(self):
        a = self._create()
        self.assertEqual(len(a.id), 36)
        self.assertEqual(a.status, "PENDING")
        self.assertIsNotNone(a.analysis_date)

    def test_reservation_increments_counters(self):
        self._create(reserve_on=TODAY)
        self._create(reserve_on=TODAY)
        row = self.store.get_rate_limit(self.user_id)
        self.assertEqual(row.daily_analyses_count, 2)
        self.assertEqual(row.monthly_analyses_count, 2)
        self.assertEqual(row.total_analyses_count, 2)
        self.assertEqual(row.last_analysis_date, TODAY)

    def test_reservation_refused_at_limit_writes_nothing(self):
        self.store.upsert_rate_limit(self.user_id, daily_count=3, daily_limit=3, last_analysis_date=TODAY)
        with self.assertRaises(QuotaExceeded):
            self._create(reserve_on=TODAY)

        rows, total = self.store.list_analyses(self.user_id, offset=0, limit=10)
        self.assertEqual(total, 0)
        self.assertEqual(self.store.get_rate_limit(self.user_id).daily_analyses_count, 3)

    def test_reservation_on_new_day_restarts_count(self):
        self.store.upsert_rate_limit(
            self.user_id, daily_count=3, daily_limit=3, last_analysis_date=TODAY - timedelta(days=1)
        )
        self._create(reserve_on=TODAY)
        self.assertEqual(self.store.get_rate_limit(self.user_id).daily_analyses_count, 1)

    def test_complete_analysis_writes_result_and_recommendations(self):
        a = self._create()
        result = AIAnalysisResult.model_validate(VALID_RESULT)
        self.store.complete_analysis(
            a.id, summary=result.summary, ai_model="claude-x", prompt="PROMPT",
            recommendations=result.recommendations,
        )

        got = self.store.get_analysis(self.user_id, a.id)
        self.assertEqual(got.status, "COMPLETED")
        self.assertEqual(got.analysis_summary, "Concentrated in large-cap tech.")
        self.assertEqual(got.ai_model, "claude-x")
        self.assertEqual(got.analysis_prompt, "PROMPT")
        self.assertIsNotNone(got.completed_at)
        self.assertEqual([r.ticker for r in got.recommendations], ["AAPL", "VTI"])
        self.assertEqual(got.recommendations[0].target_allocation, 25.0)

    def test_fail_analysis(self):
        a = self._create()
        self.store.fail_analysis(a.id, "boom")
        got = self.store.get_analysis(self.user_id, a.id)
        self.assertEqual(got.status, "FAILED")
        self.assertEqual(got.analysis_summary, "Analysis failed: boom")
        self.assertEqual(got.error_message, "boom")
        self.assertEqual(got.recommendations, [])

    def test_insert_recommendations(self):
        a = self._create()
        result = AIAnalysisResult.model_validate(VALID_RESULT)
        self.store.insert_recommendations(a.id, result.recommendations)
        got = self.store.get_analysis(self.user_id, a.id)
        self.assertEqual(len(got.recommendations), 2)

    def test_deleting_analysis_removes_recommendations(self):
        a = self._create()
        result = AIAnalysisResult.model_validate(VALID_RESULT)
        self.store.insert_recommendations(a.id, result.recommendations)

        db = self.factory()
        try:
            db.delete(db.get(AIAnalysis, a.id))
            db.commit()
            self.assertEqual(db.query(AIRecommendation).count(), 0)
        finally:
            db.close()

    # ---- reads ----

    def test_get_analysis_is_owner_scoped(self):
        a = self._create()
        other = seed_user(self.factory, email="x@example.com")
        self.assertIsNone(self.store.get_analysis(other, a.id))
        self.assertIsNotNone(self.store.get_analysis(self.user_id, a.id))

    def test_list_analyses_newest_first_with_total(self):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        ids = []
        for i in range(3):
            a = self._create()
            self.store.update_analysis(a.id, analysis_date=base + timedelta(days=i))
            ids.append(a.id)

        rows, total = self.store.list_analyses(self.user_id, offset=0, limit=2)
        self.assertEqual(total, 3)
        self.assertEqual([r.id for r in rows], [ids[2], ids[1]])

        rows, _ = self.store.list_analyses(self.user_id, offset=2, limit=2)
        self.assertEqual([r.id for r in rows], [ids[0]])

    def test_analyses_created_within_a_second_keep_creation_order(self):
        ids = [self._create().id for _ in range(3)]

        rows, _ = self.store.list_analyses(self.user_id, offset=0, limit=10)
        self.assertEqual([r.id for r in rows], list(reversed(ids)))
        self.assertLess(rows[1].analysis_date, rows[0].analysis_date)

    # ---- failures ----

    def test_database_errors_become_store_failure(self):
        class _BrokenSession:
            def query(self, *a, **kw):
                raise OperationalError("SELECT 1", {}, Exception("db down"))

            def rollback(self):
                pass

            def close(self):
                pass

        store = AnalysisStore(lambda: _BrokenSession())
        with self.assertRaises(StoreFailure):
            store.get_strategy(1)


if __name__ == "__main__":
    unittest.main()
