# models/ai_analysis.py
"""Persisted AI analyses and the recommendations they produced."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AIAnalysis(Base):
    __tablename__ = "ai_analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    analysis_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    portfolio_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    ai_model: Mapped[str] = mapped_column(String(100), nullable=False)
    analysis_summary: Mapped[str] = mapped_column(Text, nullable=False)
    analysis_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="PENDING", nullable=False)  # PENDING | COMPLETED | FAILED
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    recommendations = relationship(
        "AIRecommendation",
        back_populates="analysis",
        cascade="all, delete-orphan",
        order_by="AIRecommendation.position",
    )


class AIRecommendation(Base):
    __tablename__ = "ai_recommendations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    analysis_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("ai_analyses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # order the provider returned them in (priority)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    ticker: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)       # BUY | SELL | HOLD | REDUCE | INCREASE
    reasoning: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[str] = mapped_column(String(8), nullable=False)    # LOW | MEDIUM | HIGH
    target_allocation: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_allocation: Mapped[float | None] = mapped_column(Float, nullable=True)

    analysis = relationship("AIAnalysis", back_populates="recommendations")
