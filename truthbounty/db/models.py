import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TradeOutcome(str, enum.Enum):
    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"


class TradeDirection(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"


class UnifiedMarketRow(Base):
    __tablename__ = "unified_markets"
    __table_args__ = (
        Index("ix_unified_markets_platform_status", "platform", "status"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    question: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    outcomes: Mapped[list] = mapped_column(JSON, default=list)
    yes_price: Mapped[float | None] = mapped_column(Numeric(20, 10))
    no_price: Mapped[float | None] = mapped_column(Numeric(20, 10))
    volume: Mapped[float] = mapped_column(Float, default=0)
    volume_24h: Mapped[float | None] = mapped_column(Float)
    liquidity: Mapped[float | None] = mapped_column(Float)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closes_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    winning_outcome: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    chain: Mapped[str | None] = mapped_column(String(50))
    currency: Mapped[str | None] = mapped_column(String(20))
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    market_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class PlatformUserStatsRow(Base):
    __tablename__ = "platform_user_stats"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    platform: Mapped[str] = mapped_column(String(50), primary_key=True)
    total_bets: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    volume: Mapped[str] = mapped_column(String(78), default="0")
    pnl: Mapped[str] = mapped_column(String(78), default="0")
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0)
    is_estimated: Mapped[bool] = mapped_column(Boolean, default=False)
    username: Mapped[str | None] = mapped_column(String(255))
    last_trade_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SimulatedTrade(Base):
    __tablename__ = "simulated_trades"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    follower: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    leader: Mapped[str | None] = mapped_column(String(64))
    asset: Mapped[str] = mapped_column(String(10), nullable=False)
    direction: Mapped[TradeDirection] = mapped_column(Enum(TradeDirection, native_enum=False, length=10), nullable=False)
    amount_usd: Mapped[float] = mapped_column(Numeric(20, 6), nullable=False)
    strike_price: Mapped[float] = mapped_column(Numeric(20, 8), nullable=False)
    time_frame_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    maturity: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    outcome: Mapped[TradeOutcome] = mapped_column(
        Enum(TradeOutcome, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=TradeOutcome.PENDING,
    )
    final_price: Mapped[float | None] = mapped_column(Numeric(20, 8))
    pnl_usd: Mapped[float | None] = mapped_column(Numeric(20, 6))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
