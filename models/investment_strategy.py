# models/investment_strategy.py
from datetime import datetime

from sqlalchemy import JSON, String, Text, ForeignKey, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class InvestmentStrategy(Base):
    __tablename__ = "investment_strategies"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )

    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)     # LOW | MEDIUM | HIGH
    time_horizon: Mapped[str] = mapped_column(String(16), nullable=False)   # SHORT_TERM | MEDIUM_TERM | LONG_TERM
    investment_goals: Mapped[str] = mapped_column(Text, default="", nullable=False)

    preferred_sectors: Mapped[list | None] = mapped_column(JsonType, nullable=True)  # ["Technology", ...]
    avoided_sectors: Mapped[list | None] = mapped_column(JsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user = relationship("User", back_populates="strategy")
