"""Initial schema: unified markets, platform user stats, simulated trades

Revision ID: 001
Revises:
Create Date: 2025-01-01
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # unified_markets
    op.create_table(
        "unified_markets",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("platform", sa.String(50), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("question", sa.Text),
        sa.Column("description", sa.Text),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("outcomes", sa.JSON),
        sa.Column("yes_price", sa.Numeric(20, 10)),
        sa.Column("no_price", sa.Numeric(20, 10)),
        sa.Column("volume", sa.Float, default=0),
        sa.Column("volume_24h", sa.Float),
        sa.Column("liquidity", sa.Float),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("closes_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("winning_outcome", sa.String(255)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("chain", sa.String(50)),
        sa.Column("currency", sa.String(20)),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_unified_markets_platform_status", "unified_markets", ["platform", "status"])

    # platform_user_stats
    op.create_table(
        "platform_user_stats",
        sa.Column("address", sa.String(64), primary_key=True),
        sa.Column("platform", sa.String(50), primary_key=True),
        sa.Column("total_bets", sa.Integer, default=0),
        sa.Column("wins", sa.Integer, default=0),
        sa.Column("losses", sa.Integer, default=0),
        sa.Column("volume", sa.String(78), default="0"),
        sa.Column("pnl", sa.String(78), default="0"),
        sa.Column("currency", sa.String(20), nullable=False),
        sa.Column("score", sa.Integer, default=0),
        sa.Column("is_estimated", sa.Boolean, default=False),
        sa.Column("username", sa.String(255)),
        sa.Column("last_trade_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # simulated_trades
    op.create_table(
        "simulated_trades",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("follower", sa.String(64), nullable=False),
        sa.Column("leader", sa.String(64)),
        sa.Column("asset", sa.String(10), nullable=False),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("amount_usd", sa.Numeric(20, 6), nullable=False),
        sa.Column("strike_price", sa.Numeric(20, 8), nullable=False),
        sa.Column("time_frame_seconds", sa.Integer, nullable=False),
        sa.Column("maturity", sa.DateTime(timezone=True), nullable=False),
        sa.Column("outcome", sa.String(20), server_default="pending"),
        sa.Column("final_price", sa.Numeric(20, 8)),
        sa.Column("pnl_usd", sa.Numeric(20, 6)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_simulated_trades_follower", "simulated_trades", ["follower"])


def downgrade() -> None:
    op.drop_index("ix_simulated_trades_follower", table_name="simulated_trades")
    op.drop_table("simulated_trades")
    op.drop_table("platform_user_stats")
    op.drop_index("ix_unified_markets_platform_status", table_name="unified_markets")
    op.drop_table("unified_markets")
