"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import BigInteger, Integer, JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from apr_finder.db.base import Base
from apr_finder.db.gateway import SqlGateway
from apr_finder.models import RateObservation

# Import all table modules so Base.metadata sees them
import apr_finder.db.tables  # noqa: F401

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_session():
    """In-memory SQLite session with all tables created.

    Patches JSONB→JSON and BigInteger→Integer for SQLite compatibility.
    """
    engine = create_engine("sqlite:///:memory:")

    # SQLite doesn't support schemas, JSONB, or BigInteger autoincrement
    for table in Base.metadata.tables.values():
        table.schema = None
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
            if isinstance(col.type, BigInteger):
                col.type = Integer()

    Base.metadata.create_all(engine)

    session = Session(engine)
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def gateway(db_session):
    return SqlGateway(db_session)


def _make_obs(asset: str = "BTC", platform: str = "Binance", apr: float = 4.0, **overrides) -> RateObservation:
    fields = {
        "asset": asset,
        "platform": platform,
        "platform_type": "exchange",
        "chain": "bitcoin" if asset == "BTC" else "ethereum",
        "apr": apr,
        "lock_period": "Flexible",
        "source": "test",
        "last_updated": T0,
    }
    fields.update(overrides)
    return RateObservation(**fields)


@pytest.fixture
def make_obs():
    """Factory for observations stamped at T0."""
    return _make_obs


@pytest.fixture
def t0() -> datetime:
    return T0
