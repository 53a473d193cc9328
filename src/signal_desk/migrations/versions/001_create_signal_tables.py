"""Create the signal_desk tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "signal_desk"


def upgrade() -> None:
    # Schema is created by env.py before migrations run.

    op.create_table(
        "trading_signals",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("coin", sa.Text, nullable=False),
        sa.Column("action", sa.Text, nullable=False),
        sa.Column("signal_type", sa.Text, nullable=False),
        sa.Column("confidence", sa.Float, nullable=False),
        sa.Column("timeframe", sa.Text, nullable=False),
        sa.Column("entry_price", sa.Float, nullable=False),
        sa.Column("current_price", sa.Float, nullable=False),
        sa.Column("stop_loss", sa.Float, nullable=False),
        sa.Column("take_profit_1", sa.Float, nullable=False),
        sa.Column("take_profit_2", sa.Float, nullable=False),
        sa.Column("take_profit_3", sa.Float, nullable=False),
        sa.Column("capital_allocated", sa.Float, nullable=False),
        sa.Column("position_size", sa.Float, nullable=False),
        sa.Column("risk_reward_ratio", sa.Float, nullable=False),
        sa.Column("risk_percentage", sa.Float, nullable=False),
        sa.Column("pnl_usd", sa.Float, nullable=False, server_default="0"),
        sa.Column("pnl_percentage", sa.Float, nullable=False, server_default="0"),
        sa.Column("tp1_hit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tp1_hit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tp2_hit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tp2_hit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tp3_hit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tp3_hit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rsi", sa.Float, nullable=True),
        sa.Column("macd", sa.Float, nullable=True),
        sa.Column("volume_24h", sa.Float, nullable=True),
        sa.Column("reasoning", sa.Text, nullable=False, server_default=""),
        sa.Column("key_factors", postgresql.JSONB, nullable=True),
        sa.Column("quality", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="ACTIVE"),
        sa.Column("close_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_trading_signals_coin_status",
        "trading_signals",
        ["coin", "status"],
        schema=SCHEMA,
    )

    op.create_table(
        "predictions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("coin", sa.Text, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("volume", sa.Float, nullable=False),
        sa.Column("rsi", sa.Float, nullable=False),
        sa.Column("macd", sa.Float, nullable=False),
        sa.Column("btc_dominance", sa.Float, nullable=True),
        sa.Column("price_change_24h", sa.Float, nullable=False),
        sa.Column("action", sa.Text, nullable=False),
        sa.Column("confidence", sa.Float, nullable=False),
        sa.Column("entry_price", sa.Float, nullable=False),
        sa.Column("target_price", sa.Float, nullable=False),
        sa.Column("stop_loss", sa.Float, nullable=False),
        sa.Column("reasoning", sa.Text, nullable=False, server_default=""),
        sa.Column("risk_level", sa.Text, nullable=False),
        sa.Column("timeframe", sa.Text, nullable=True),
        sa.Column("key_factors", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        schema=SCHEMA,
    )
    op.create_index("ix_predictions_coin", "predictions", ["coin"], schema=SCHEMA)

    op.create_table(
        "prediction_outcomes",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "prediction_id",
            sa.BigInteger,
            sa.ForeignKey(f"{SCHEMA}.predictions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("horizon", sa.Text, nullable=False),
        sa.Column("actual_price", sa.Float, nullable=False),
        sa.Column("profit_loss", sa.Float, nullable=False),
        sa.Column("is_correct", sa.Boolean, nullable=False),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("prediction_id", "horizon"),
        schema=SCHEMA,
    )

    op.create_table(
        "performance_rollups",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("coin", sa.Text, nullable=False),
        sa.Column("horizon", sa.Text, nullable=False),
        sa.Column("total_predictions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("correct_predictions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("win_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_profit", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_loss", sa.Float, nullable=False, server_default="0"),
        sa.Column("avg_profit", sa.Float, nullable=False, server_default="0"),
        sa.Column("avg_loss", sa.Float, nullable=False, server_default="0"),
        sa.Column("profit_factor", sa.Float, nullable=False, server_default="0"),
        sa.Column("common_mistakes", postgresql.JSONB, nullable=True),
        sa.Column("best_conditions", postgresql.JSONB, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("date", "coin", "horizon"),
        schema=SCHEMA,
    )

    op.create_table(
        "portfolio_snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("starting_capital", sa.Float, nullable=False, server_default="1000"),
        sa.Column("current_capital", sa.Float, nullable=False, server_default="1000"),
        sa.Column("total_trades", sa.Integer, nullable=False, server_default="0"),
        sa.Column("winning_trades", sa.Integer, nullable=False, server_default="0"),
        sa.Column("losing_trades", sa.Integer, nullable=False, server_default="0"),
        sa.Column("win_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_profit", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_loss", sa.Float, nullable=False, server_default="0"),
        sa.Column("net_profit", sa.Float, nullable=False, server_default="0"),
        sa.Column("profit_factor", sa.Float, nullable=False, server_default="0"),
        sa.Column("active_positions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("date"),
        schema=SCHEMA,
    )


def downgrade() -> None:
    op.drop_table("portfolio_snapshots", schema=SCHEMA)
    op.drop_table("performance_rollups", schema=SCHEMA)
    op.drop_table("prediction_outcomes", schema=SCHEMA)
    op.drop_index("ix_predictions_coin", table_name="predictions", schema=SCHEMA)
    op.drop_table("predictions", schema=SCHEMA)
    op.drop_index("ix_trading_signals_coin_status", table_name="trading_signals", schema=SCHEMA)
    op.drop_table("trading_signals", schema=SCHEMA)
