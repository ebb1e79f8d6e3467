from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import Date, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column
from database import Base

DEFAULT_DAILY_LIMIT = 3


class UserRateLimit(Base):
    __tablename__ = "user_rate_limits"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )

    daily_analyses_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_limit: Mapped[int] = mapped_column(Integer, default=DEFAULT_DAILY_LIMIT, nullable=False)
    monthly_analyses_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_analyses_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # calendar day (UTC) of the last reservation or reset, not a timestamp
    last_analysis_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
