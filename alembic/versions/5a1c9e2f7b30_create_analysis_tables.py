"""create analysis tables

Revision ID: 5a1c9e2f7b30
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5a1c9e2f7b30"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _user_fk(unique: bool = False):
    return sa.Column(
        "user_id",
        sa.Integer,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
        index=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("supabase_user_id", sa.String, nullable=False, unique=True, index=True),
        sa.Column("email", sa.String, nullable=False, unique=True, index=True),
    )

    op.create_table(
        "holdings",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("symbol", sa.String(32), nullable=False, index=True),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("purchase_price", sa.Float, nullable=False),
        sa.Column("current_price", sa.Float, nullable=True),
        sa.Column("currency", sa.String(8), nullable=False),
        _user_fk(),
    )

    op.create_table(
        "investment_strategies",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(unique=True),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("time_horizon", sa.String(16), nullable=False),
        sa.Column("investment_goals", sa.Text, nullable=False),
        sa.Column("preferred_sectors", JsonType, nullable=True),
        sa.Column("avoided_sectors", JsonType, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "ai_analyses",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("analysis_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("portfolio_value", sa.Float, nullable=False),
        sa.Column("ai_model", sa.String(100), nullable=False),
        sa.Column("analysis_summary", sa.Text, nullable=False),
        sa.Column("analysis_prompt", sa.Text, nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "ai_recommendations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "analysis_id",
            sa.String(36),
            sa.ForeignKey("ai_analyses.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("ticker", sa.String(32), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("reasoning", sa.Text, nullable=False),
        sa.Column("confidence", sa.String(8), nullable=False),
        sa.Column("target_allocation", sa.Float, nullable=True),
        sa.Column("current_allocation", sa.Float, nullable=True),
    )

    op.create_table(
        "user_rate_limits",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(unique=True),
        sa.Column("daily_analyses_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("daily_limit", sa.Integer, nullable=False, server_default="3"),
        sa.Column("monthly_analyses_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_analyses_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_analysis_date", sa.Date, nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("user_rate_limits")
    op.drop_table("ai_recommendations")
    op.drop_table("ai_analyses")
    op.drop_table("investment_strategies")
    op.drop_table("holdings")
    op.drop_table("users")
