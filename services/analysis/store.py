# services/analysis/store.py
"""
Persistence for AI analyses, recommendations and per-user quota counters.

Every public method opens its own short-lived Session from the injected
factory, so the same store is safe to use from request handlers and from
detached background tasks.  SQLAlchemyError never escapes: it is rolled
back and re-raised as StoreFailure.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from models.ai_analysis import AIAnalysis, AIRecommendation
from models.holding import Holding
from models.investment_strategy import InvestmentStrategy
from models.user_rate_limit import DEFAULT_DAILY_LIMIT, UserRateLimit
from schemas.ai_analysis import (
    AIRecommendationResult,
    AnalysisStatus,
    InvestmentStrategyData,
    PortfolioData,
)
from services.analysis.errors import PreconditionFailed, QuotaExceeded, StoreFailure
from services.analysis.portfolio_data import build_portfolio_data, portfolio_value

logger = logging.getLogger(__name__)

FAILED_PREFIX = "Analysis failed: "


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisStore:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from database import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    @contextmanager
    def _session(self, op: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("analysis_store_failed op=%s", op)
            raise StoreFailure(f"Database error during {op}") from exc
        finally:
            db.close()

    # ─── Quota counters ──────────────────────────────────────────

    def get_rate_limit(self, user_id: int) -> Optional[UserRateLimit]:
        with self._session("get_rate_limit") as db:
            row = db.query(UserRateLimit).filter_by(user_id=user_id).first()
            if row is not None:
                db.expunge(row)
            return row

    def upsert_rate_limit(
        self,
        user_id: int,
        *,
        daily_count: Optional[int] = None,
        daily_limit: Optional[int] = None,
        monthly_count: Optional[int] = None,
        last_analysis_date: Optional[date] = None,
    ) -> UserRateLimit:
        """Create the counter row if missing, then apply the given fields."""
        with self._session("upsert_rate_limit") as db:
            row = db.query(UserRateLimit).filter_by(user_id=user_id).first()
            if row is None:
                row = UserRateLimit(
                    user_id=user_id,
                    daily_analyses_count=0,
                    daily_limit=DEFAULT_DAILY_LIMIT,
                    monthly_analyses_count=0,
                    total_analyses_count=0,
                )
                db.add(row)

            if daily_count is not None:
                row.daily_analyses_count = daily_count
            if daily_limit is not None:
                row.daily_limit = daily_limit
            if monthly_count is not None:
                row.monthly_analyses_count = monthly_count
            if last_analysis_date is not None:
                row.last_analysis_date = last_analysis_date

            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row

    def ensure_rate_limit(self, user_id: int, daily_limit: int, today: date) -> bool:
        """Insert a fresh counter row unless one exists. Never touches an existing row."""
        with self._session("ensure_rate_limit") as db:
            if db.query(UserRateLimit.id).filter_by(user_id=user_id).first() is not None:
                return False
            db.add(
                UserRateLimit(
                    user_id=user_id,
                    daily_analyses_count=0,
                    daily_limit=daily_limit,
                    monthly_analyses_count=0,
                    total_analyses_count=0,
                    last_analysis_date=today,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                # another request created it first
                db.rollback()
                return False
            return True

    def reset_stale_day(self, user_id: int, today: date) -> bool:
        """
        Zero the daily counter if it still belongs to an earlier day.

        The staleness test is part of the UPDATE itself, so a caller holding
        an old snapshot cannot wipe reservations already made today.  The
        monthly counter is kept when the stored day is in the current month.
        """
        same_month = UserRateLimit.last_analysis_date >= today.replace(day=1)
        with self._session("reset_stale_day") as db:
            result = db.execute(
                update(UserRateLimit)
                .where(UserRateLimit.user_id == user_id)
                .where(
                    or_(
                        UserRateLimit.last_analysis_date.is_(None),
                        UserRateLimit.last_analysis_date != today,
                    )
                )
                .values(
                    daily_analyses_count=0,
                    monthly_analyses_count=case(
                        (same_month, UserRateLimit.monthly_analyses_count),
                        else_=0,
                    ),
                    last_analysis_date=today,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    # ─── Portfolio inputs ────────────────────────────────────────

    def get_strategy(self, user_id: int) -> Optional[InvestmentStrategyData]:
        with self._session("get_strategy") as db:
            s = db.query(InvestmentStrategy).filter_by(user_id=user_id).first()
            if s is None:
                return None
            return InvestmentStrategyData(
                risk_level=s.risk_level,
                time_horizon=s.time_horizon,
                investment_goals=s.investment_goals or "",
                preferred_sectors=list(s.preferred_sectors or []),
                avoided_sectors=list(s.avoided_sectors or []),
            )

    def get_current_portfolio_value(self, user_id: int) -> float:
        with self._session("get_current_portfolio_value") as db:
            holdings = db.query(Holding).filter_by(user_id=user_id).all()
            return portfolio_value(holdings)

    def get_portfolio_data(self, user_id: int) -> PortfolioData:
        strategy = self.get_strategy(user_id)
        if strategy is None:
            raise PreconditionFailed("Investment strategy not found")

        with self._session("get_portfolio_data") as db:
            holdings = db.query(Holding).filter_by(user_id=user_id).all()
            return build_portfolio_data(user_id, holdings, strategy)

    # ─── Analysis records ────────────────────────────────────────

    def create_analysis(
        self,
        user_id: int,
        portfolio_value: float,
        ai_model: str,
        summary: str,
        *,
        reserve_on: Optional[date] = None,
    ) -> AIAnalysis:
        """
        Insert a PENDING analysis row.

        With `reserve_on`, the same transaction also consumes one unit of the
        user's daily quota through a conditional UPDATE.  If the condition
        matches no row (limit reached for that day) nothing is written and
        QuotaExceeded is raised.
        """
        with self._session("create_analysis") as db:
            row = AIAnalysis(
                user_id=user_id,
                portfolio_value=portfolio_value,
                ai_model=ai_model,
                analysis_summary=summary,
                status=AnalysisStatus.PENDING.value,
            )
            db.add(row)

            if reserve_on is not None:
                if not self._reserve(db, user_id, reserve_on):
                    db.rollback()
                    raise QuotaExceeded()

            db.commit()
            db.refresh(row)
            db.expunge(row)
            return row

    @staticmethod
    def _reserve(db: Session, user_id: int, today: date) -> bool:
        same_day = UserRateLimit.last_analysis_date == today
        # last_analysis_date is never in the future: ">= first of month" is "same month"
        same_month = UserRateLimit.last_analysis_date >= today.replace(day=1)

        if db.query(UserRateLimit.id).filter_by(user_id=user_id).first() is None:
            db.add(
                UserRateLimit(
                    user_id=user_id,
                    daily_analyses_count=0,
                    daily_limit=DEFAULT_DAILY_LIMIT,
                    monthly_analyses_count=0,
                    total_analyses_count=0,
                )
            )
            db.flush()

        stmt = (
            update(UserRateLimit)
            .where(UserRateLimit.user_id == user_id)
            .where(
                or_(
                    UserRateLimit.last_analysis_date.is_(None),
                    UserRateLimit.last_analysis_date != today,
                    UserRateLimit.daily_analyses_count < UserRateLimit.daily_limit,
                )
            )
            .values(
                daily_analyses_count=case(
                    (same_day, UserRateLimit.daily_analyses_count + 1),
                    else_=1,
                ),
                monthly_analyses_count=case(
                    (same_month, UserRateLimit.monthly_analyses_count + 1),
                    else_=1,
                ),
                total_analyses_count=UserRateLimit.total_analyses_count + 1,
                last_analysis_date=today,
            )
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount == 1

    def update_analysis(self, analysis_id: str, **fields) -> None:
        with self._session("update_analysis") as db:
            db.execute(
                update(AIAnalysis)
                .where(AIAnalysis.id == analysis_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            db.commit()

    def insert_recommendations(
        self, analysis_id: str, recommendations: Sequence[AIRecommendationResult]
    ) -> None:
        with self._session("insert_recommendations") as db:
            db.add_all(_recommendation_rows(analysis_id, recommendations))
            db.commit()

    def complete_analysis(
        self,
        analysis_id: str,
        *,
        summary: str,
        ai_model: str,
        prompt: str,
        recommendations: Sequence[AIRecommendationResult],
    ) -> None:
        """Write the result and every recommendation in one transaction."""
        with self._session("complete_analysis") as db:
            db.execute(
                update(AIAnalysis)
                .where(AIAnalysis.id == analysis_id)
                .values(
                    analysis_summary=summary,
                    ai_model=ai_model,
                    analysis_prompt=prompt,
                    status=AnalysisStatus.COMPLETED.value,
                    error_message=None,
                    completed_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            db.add_all(_recommendation_rows(analysis_id, recommendations))
            db.commit()

    def fail_analysis(self, analysis_id: str, message: str) -> None:
        self.update_analysis(
            analysis_id,
            analysis_summary=f"{FAILED_PREFIX}{message}",
            status=AnalysisStatus.FAILED.value,
            error_message=message,
            completed_at=_utcnow(),
        )

    # ─── Reads ───────────────────────────────────────────────────

    def get_analysis(self, user_id: int, analysis_id: str) -> Optional[AIAnalysis]:
        with self._session("get_analysis") as db:
            row = db.execute(
                select(AIAnalysis)
                .options(selectinload(AIAnalysis.recommendations))
                .where(AIAnalysis.id == analysis_id, AIAnalysis.user_id == user_id)
            ).scalar_one_or_none()
            if row is not None:
                db.expunge_all()
            return row

    def list_analyses(self, user_id: int, offset: int, limit: int) -> Tuple[List[AIAnalysis], int]:
        with self._session("list_analyses") as db:
            total = db.execute(
                select(func.count()).select_from(AIAnalysis).where(AIAnalysis.user_id == user_id)
            ).scalar_one()
            rows = list(
                db.execute(
                    select(AIAnalysis)
                    .where(AIAnalysis.user_id == user_id)
                    .order_by(AIAnalysis.analysis_date.desc(), AIAnalysis.id)
                    .offset(offset)
                    .limit(limit)
                ).scalars()
            )
            db.expunge_all()
            return rows, int(total)


def _recommendation_rows(
    analysis_id: str, recommendations: Sequence[AIRecommendationResult]
) -> List[AIRecommendation]:
    return [
        AIRecommendation(
            analysis_id=analysis_id,
            position=i,
            ticker=r.ticker,
            action=r.action.value,
            reasoning=r.reasoning,
            confidence=r.confidence.value,
            target_allocation=r.target_allocation,
            current_allocation=r.current_allocation,
        )
        for i, r in enumerate(recommendations)
    ]
