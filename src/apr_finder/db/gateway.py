"""Persistence gateway, the only shared mutable resource of the core.

The aggregator, alert evaluator and scheduler depend on the
PersistenceGateway protocol; SqlGateway implements it on the ORM tables.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apr_finder.db.tables import AlertRow, AprCurrentRow, AprHistoryRow, NotificationRow
from apr_finder.errors import PersistenceError
from apr_finder.models import (
    Alert,
    Notification,
    RateHistoryEntry,
    RateKey,
    RateObservation,
)
from apr_finder.models.rates import utcnow


class PersistenceGateway(Protocol):
    def find_current(self, key: RateKey) -> RateObservation | None: ...

    def upsert_current(self, key: RateKey, observation: RateObservation) -> None: ...

    def append_history(self, entry: RateHistoryEntry) -> None: ...

    def list_current(self) -> list[RateObservation]: ...

    def find_active_alerts(self) -> list[Alert]: ...

    def insert_notification(self, notification: Notification) -> int: ...

    def set_alert_last_triggered(self, alert_id: int, when: datetime) -> None: ...

    def delete_notifications_older_than(self, cutoff: datetime) -> int: ...


def as_utc(ts: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _key_filter(key: RateKey) -> list:
    return [
        AprCurrentRow.asset == key.asset,
        AprCurrentRow.platform == key.platform,
        AprCurrentRow.chain == key.chain,
        AprCurrentRow.lock_period == key.lock_period,
    ]


def row_to_observation(row: AprCurrentRow) -> RateObservation:
    return RateObservation(
        asset=row.asset,
        platform=row.platform,
        platform_type=row.platform_type,
        chain=row.chain,
        apr=row.apr,
        apy=row.apy,
        min_stake=row.min_stake,
        lock_period=row.lock_period,
        risk_level=row.risk_level,
        source=row.source,
        last_updated=as_utc(row.last_updated),
    )


def row_to_alert(row: AlertRow) -> Alert:
    return Alert(
        id=row.id,
        user_id=row.user_id,
        asset=row.asset,
        platform=row.platform,
        alert_type=row.alert_type,
        threshold=row.threshold,
        is_active=row.is_active,
        last_triggered=as_utc(row.last_triggered),
    )


class SqlGateway:
    """PersistenceGateway on a SQLAlchemy session.

    Every write commits on success; any database error rolls the session
    back and is re-raised as PersistenceError so one bad item does not
    poison the rest of the batch.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _write(self, what: str) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"{what} failed: {exc}") from exc

    @contextmanager
    def _read(self, what: str) -> Iterator[None]:
        # A failed statement aborts the Postgres transaction until rollback.
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"{what} failed: {exc}") from exc

    # --- rates ---

    def find_current(self, key: RateKey) -> RateObservation | None:
        with self._read(f"find_current {key}"):
            row = self.session.execute(
                select(AprCurrentRow).where(*_key_filter(key))
            ).scalar_one_or_none()
        return row_to_observation(row) if row is not None else None

    def upsert_current(self, key: RateKey, observation: RateObservation) -> None:
        values = {
            "platform_type": observation.platform_type,
            "apr": observation.apr,
            "apy": observation.apy,
            "min_stake": observation.min_stake,
            "risk_level": observation.risk_level,
            "source": observation.source,
            "last_updated": observation.last_updated,
        }
        with self._write(f"upsert_current {key}"):
            row = self.session.execute(
                select(AprCurrentRow).where(*_key_filter(key))
            ).scalar_one_or_none()
            if row is None:
                self.session.add(AprCurrentRow(
                    asset=key.asset,
                    platform=key.platform,
                    chain=key.chain,
                    lock_period=key.lock_period,
                    created_at=utcnow(),
                    **values,
                ))
            else:
                for field, value in values.items():
                    setattr(row, field, value)

    def append_history(self, entry: RateHistoryEntry) -> None:
        with self._write(f"append_history {entry.asset}/{entry.platform}"):
            self.session.add(AprHistoryRow(
                asset=entry.asset,
                platform=entry.platform,
                chain=entry.chain,
                lock_period=entry.lock_period,
                apr=entry.apr,
                apy=entry.apy,
                timestamp=entry.timestamp,
                created_at=entry.created_at,
            ))

    def list_current(self) -> list[RateObservation]:
        with self._read("list_current"):
            rows = self.session.execute(select(AprCurrentRow)).scalars().all()
        return [row_to_observation(r) for r in rows]

    # --- alerts & notifications ---

    def find_active_alerts(self) -> list[Alert]:
        with self._read("find_active_alerts"):
            rows = self.session.execute(
                select(AlertRow).where(AlertRow.is_active.is_(True)).order_by(AlertRow.id)
            ).scalars().all()
        return [row_to_alert(r) for r in rows]

    def insert_notification(self, notification: Notification) -> int:
        row = NotificationRow(
            user_id=notification.user_id,
            alert_id=notification.alert_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data.model_dump(mode="json", by_alias=True),
            read=notification.read,
            created_at=notification.created_at,
        )
        with self._write(f"insert_notification alert={notification.alert_id}"):
            self.session.add(row)
            self.session.flush()
        return row.id

    def set_alert_last_triggered(self, alert_id: int, when: datetime) -> None:
        with self._write(f"set_alert_last_triggered alert={alert_id}"):
            self.session.execute(
                update(AlertRow).where(AlertRow.id == alert_id).values(last_triggered=when)
            )

    def delete_notifications_older_than(self, cutoff: datetime) -> int:
        with self._write("delete_notifications_older_than"):
            result = self.session.execute(
                delete(NotificationRow).where(NotificationRow.created_at < cutoff)
            )
        return result.rowcount or 0
