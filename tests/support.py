"""Shared helpers for tests: in-memory database, seed rows, fake providers."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401
from models.holding import Holding
from models.investment_strategy import InvestmentStrategy
from models.user import User
from schemas.ai_analysis import AIAnalysisResult, InvestmentStrategyData, PortfolioData, Position


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_user(factory, *, email="user@example.com", with_strategy=True, holdings=()):
    """Insert a user (+ strategy, + holdings) and return the user id."""
    db = factory()
    try:
        user = User(email=email, supabase_user_id=f"sb-{email}")
        db.add(user)
        db.flush()
        if with_strategy:
            db.add(
                InvestmentStrategy(
                    user_id=user.id,
                    risk_level="MEDIUM",
                    time_horizon="LONG_TERM",
                    investment_goals="Retirement savings",
                    preferred_sectors=["Technology"],
                    avoided_sectors=[],
                )
            )
        for symbol, qty, cost, price in holdings:
            db.add(
                Holding(
                    user_id=user.id,
                    symbol=symbol,
                    quantity=qty,
                    purchase_price=cost,
                    current_price=price,
                    currency="USD",
                )
            )
        db.commit()
        return user.id
    finally:
        db.close()


def sample_portfolio(strategy: InvestmentStrategyData = None) -> PortfolioData:
    strategy = strategy or InvestmentStrategyData(
        risk_level="MEDIUM",
        time_horizon="LONG_TERM",
        investment_goals="Retirement savings",
    )
    return PortfolioData(
        user_id=1,
        total_value=10_000.0,
        strategy=strategy,
        positions=[
            Position(
                ticker="AAPL", quantity=30, average_price=100.0, current_price=200.0,
                total_value=6_000.0, percentage_of_portfolio=60.0,
                profit_loss=3_000.0, profit_loss_percentage=100.0,
            ),
            Position(
                ticker="MSFT", quantity=10, average_price=350.0, current_price=300.0,
                total_value=3_000.0, percentage_of_portfolio=30.0,
                profit_loss=-500.0, profit_loss_percentage=-14.29,
            ),
            Position(
                ticker="KO", quantity=20, average_price=50.0, current_price=50.0,
                total_value=1_000.0, percentage_of_portfolio=10.0,
                profit_loss=0.0, profit_loss_percentage=0.0,
            ),
        ],
    )


VALID_RESULT = {
    "summary": "Concentrated in large-cap tech.",
    "recommendations": [
        {
            "ticker": "AAPL",
            "action": "REDUCE",
            "reasoning": "Position is 60% of the portfolio.",
            "confidence": "HIGH",
            "currentAllocation": 60.0,
            "targetAllocation": 25.0,
        },
        {
            "ticker": "VTI",
            "action": "BUY",
            "reasoning": "Adds broad market exposure.",
            "confidence": "MEDIUM",
        },
    ],
}


class FakeProvider:
    """Stands in for a BaseAIProvider: records calls, returns or raises."""

    def __init__(self, name="claude", model="fake-model", configured=True, result=None, error=None):
        self.name = name
        self.model = model
        self.configured = configured
        self.result = result if result is not None else VALID_RESULT
        self.error = error
        self.calls = []

    def is_configured(self) -> bool:
        return self.configured

    async def analyze(self, prompt, portfolio_data):
        self.calls.append((prompt, portfolio_data))
        if self.error is not None:
            raise self.error
        return AIAnalysisResult.model_validate(self.result)


class FixedClock:
    def __init__(self, today: date):
        self.current = today

    def __call__(self) -> date:
        return self.current
