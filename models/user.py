# models/user.py
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # link to Supabase auth.users.id (UUID string)
    supabase_user_id: Mapped[str] = mapped_column(unique=True, index=True)

    email: Mapped[str] = mapped_column(unique=True, index=True)

    holdings = relationship("Holding", back_populates="owner", cascade="all, delete-orphan")
    strategy = relationship(
        "InvestmentStrategy",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
