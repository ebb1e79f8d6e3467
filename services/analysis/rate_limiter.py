# services/analysis/rate_limiter.py
"""
Per-user daily quota for AI analyses.

`check` only decides admission and performs day/month resets, both as
conditional writes that leave a counter already on today untouched.
Consuming a unit of quota happens in
AnalysisStore.create_analysis(reserve_on=...) so that the increment and
the analysis row commit together.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable

from services.analysis.errors import QuotaExceeded
from services.analysis.store import AnalysisStore

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class AnalysisRateLimiter:
    def __init__(
        self,
        store: AnalysisStore,
        daily_limit: int = 3,
        clock: Callable[[], date] = utc_today,
    ):
        self.store = store
        self.daily_limit = daily_limit
        self.clock = clock

    def today(self) -> date:
        return self.clock()

    def check(self, user_id: int) -> None:
        """Raise QuotaExceeded if the user has no analyses left today."""
        today = self.today()
        row = self.store.get_rate_limit(user_id)

        if row is None:
            if self.store.ensure_rate_limit(user_id, self.daily_limit, today):
                logger.info("rate_limit_created user_id=%s limit=%d", user_id, self.daily_limit, extra={"user_id": user_id})
            return

        if row.last_analysis_date != today:
            # conditional in the store: a no-op if today's counter already exists
            if self.store.reset_stale_day(user_id, today):
                logger.debug("rate_limit_reset user_id=%s last=%s", user_id, row.last_analysis_date)
            return

        if row.daily_analyses_count >= row.daily_limit:
            logger.info(
                "rate_limit_exceeded user_id=%s used=%d limit=%d",
                user_id, row.daily_analyses_count, row.daily_limit,
                extra={"user_id": user_id},
            )
            raise QuotaExceeded()
