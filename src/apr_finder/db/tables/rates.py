"""SQLAlchemy ORM models for current and historical rates."""

from datetime import datetime

from sqlalchemy import BigInteger, Float, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from apr_finder.db.base import Base

SCHEMA = "apr_data"


class AprCurrentRow(Base):
    """One row per (asset, platform, chain, lock_period), overwritten in place."""

    __tablename__ = "apr_current"
    __table_args__ = (
        UniqueConstraint("asset", "platform", "chain", "lock_period"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(Text, nullable=False)
    platform_type: Mapped[str] = mapped_column(Text, nullable=False)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
    lock_period: Mapped[str] = mapped_column(Text, nullable=False)
    apr: Mapped[float] = mapped_column(Float, nullable=False)
    apy: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_stake: Mapped[float | None] = mapped_column(Float, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AprHistoryRow(Base):
    """Append-only record of the value a current row held before it changed."""

    __tablename__ = "apr_history"
    __table_args__ = (
        Index("ix_apr_history_asset_ts", "asset", "timestamp"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(Text, nullable=False)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
    lock_period: Mapped[str] = mapped_column(Text, nullable=False)
    apr: Mapped[float] = mapped_column(Float, nullable=False)
    apy: Mapped[float | None] = mapped_column(Float, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
