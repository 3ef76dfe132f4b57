"""Read-side range queries over current and historical rates."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from statistics import mean

from sqlalchemy import and_, desc, func, select
from sqlalchemy.orm import Session

from apr_finder.db.gateway import as_utc, row_to_observation
from apr_finder.db.tables import AprCurrentRow, AprHistoryRow
from apr_finder.models import RateHistoryEntry, RateObservation


@dataclass(frozen=True)
class TrendPoint:
    """Daily aggregate of history entries for one platform/chain."""

    day: date
    platform: str
    chain: str
    avg_apr: float
    max_apr: float
    min_apr: float
    count: int


def _history_filter(
    asset: str,
    platform: str | None,
    chain: str | None,
    since: datetime,
) -> list:
    clauses = [AprHistoryRow.asset == asset.upper(), AprHistoryRow.timestamp >= since]
    if platform:
        clauses.append(func.lower(AprHistoryRow.platform) == platform.lower())
    if chain:
        clauses.append(AprHistoryRow.chain == chain.lower())
    return clauses


def rate_history(
    session: Session,
    asset: str,
    platform: str | None = None,
    chain: str | None = None,
    days: int = 30,
    limit: int = 100,
) -> list[RateHistoryEntry]:
    """History entries for *asset* within the last *days*, newest first."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = session.execute(
        select(AprHistoryRow)
        .where(and_(*_history_filter(asset, platform, chain, since)))
        .order_by(desc(AprHistoryRow.timestamp))
        .limit(limit)
    ).scalars().all()
    return [
        RateHistoryEntry(
            asset=r.asset,
            platform=r.platform,
            chain=r.chain,
            lock_period=r.lock_period,
            apr=r.apr,
            apy=r.apy,
            timestamp=as_utc(r.timestamp),
            created_at=as_utc(r.created_at),
        )
        for r in rows
    ]


def rate_trends(
    session: Session,
    asset: str,
    platform: str | None = None,
    chain: str | None = None,
    days: int = 30,
) -> list[TrendPoint]:
    """Per-day avg/max/min APR, oldest day first.

    Bucketing happens in Python so the query stays portable between
    Postgres and SQLite.
    """
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = session.execute(
        select(AprHistoryRow.platform, AprHistoryRow.chain, AprHistoryRow.timestamp, AprHistoryRow.apr)
        .where(and_(*_history_filter(asset, platform, chain, since)))
    ).all()

    buckets: dict[tuple[date, str, str], list[float]] = defaultdict(list)
    for plat, ch, ts, apr in rows:
        buckets[(as_utc(ts).date(), plat, ch)].append(apr)

    return [
        TrendPoint(
            day=day,
            platform=plat,
            chain=ch,
            avg_apr=mean(values),
            max_apr=max(values),
            min_apr=min(values),
            count=len(values),
        )
        for (day, plat, ch), values in sorted(buckets.items())
    ]


def top_rates(session: Session, limit: int = 10, asset: str | None = None) -> list[RateObservation]:
    """Current offers ordered by APR, highest first."""
    stmt = select(AprCurrentRow).order_by(desc(AprCurrentRow.apr)).limit(limit)
    if asset:
        stmt = stmt.where(AprCurrentRow.asset == asset.upper())
    return [row_to_observation(r) for r in session.execute(stmt).scalars().all()]


def stale_platforms(session: Session, max_age: timedelta) -> list[str]:
    """Platforms whose freshest current row is older than *max_age*."""
    cutoff = datetime.now(timezone.utc) - max_age
    rows = session.execute(
        select(AprCurrentRow.platform, func.max(AprCurrentRow.last_updated))
        .group_by(AprCurrentRow.platform)
    ).all()
    return sorted(plat for plat, newest in rows if as_utc(newest) < cutoff)
