# models/holding.py
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

class Holding(Base):
    """One open lot of an instrument. Positions are aggregated per symbol."""

    __tablename__ = "holdings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    symbol: Mapped[str] = mapped_column(String(32), index=True)
    quantity: Mapped[float] = mapped_column(default=0.0)
    purchase_price: Mapped[float] = mapped_column(default=0.0)      # per-unit cost
    # last known quote; None means "not priced yet", valued at cost
    current_price: Mapped[float | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(8), default="USD")

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    owner = relationship("User", back_populates="holdings")
