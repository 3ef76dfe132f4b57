"""Canonical rate observations, history entries and collection results."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_APR = 1000.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateKey(NamedTuple):
    """Identity of one current rate row."""

    asset: str
    platform: str
    chain: str
    lock_period: str


class RateObservation(BaseModel):
    """One earn/staking offer in source-agnostic form.

    ``apr`` and ``apy`` are percentages (8.5 means 8.5%), never fractions.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    asset: str
    platform: str
    platform_type: Literal["exchange", "defi"]
    chain: str
    apr: float = Field(ge=0, le=MAX_APR)
    apy: float | None = Field(default=None, ge=0, le=MAX_APR)
    min_stake: float | None = None
    lock_period: str = "Flexible"
    risk_level: Literal["low", "medium", "high"] | None = None
    source: str
    last_updated: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> RateKey:
        return RateKey(self.asset, self.platform, self.chain, self.lock_period)

    def to_wire(self) -> dict[str, Any]:
        """Render the camelCase JSON shape used across the persistence boundary."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RateHistoryEntry(BaseModel):
    """The value a current row held before it changed.

    ``timestamp`` is when the previous value was last valid, not when the
    change was detected.
    """

    asset: str
    platform: str
    chain: str
    lock_period: str
    apr: float
    apy: float | None = None
    timestamp: datetime
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_previous(cls, previous: RateObservation, now: datetime) -> RateHistoryEntry:
        return cls(
            asset=previous.asset,
            platform=previous.platform,
            chain=previous.chain,
            lock_period=previous.lock_period,
            apr=previous.apr,
            apy=previous.apy,
            timestamp=previous.last_updated,
            created_at=now,
        )


class CollectResult(BaseModel):
    """Outcome of one aggregation run.

    ``skipped`` lists connectors that returned nothing because they are not
    configured; they are still counted in ``success``.
    """

    success: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    items: list[RateObservation] = Field(default_factory=list)
