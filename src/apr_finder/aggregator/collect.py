"""Concurrent fan-out over connectors with history-on-change persistence."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime

from apr_finder.connectors.base import Connector
from apr_finder.db.gateway import PersistenceGateway
from apr_finder.logging import get_logger
from apr_finder.models import CollectResult, RateHistoryEntry, RateObservation
from apr_finder.models.rates import utcnow

log = get_logger(__name__)


class Aggregator:
    """Runs every connector concurrently and persists what succeeded.

    A failing connector is counted and reported in ``errors`` but never
    stops the others from being persisted. An unconfigured connector counts
    as a success with zero items and is listed in ``skipped``.
    """

    def __init__(
        self,
        connectors: Sequence[Connector],
        gateway: PersistenceGateway,
        enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.connectors = list(connectors)
        self.gateway = gateway
        self.enabled = enabled
        self._clock = clock

    async def collect_all(self) -> CollectResult:
        """Fetch from all sources and upsert the results. Never raises."""
        if not self.enabled:
            log.info("collection_disabled")
            return CollectResult()

        try:
            return await self._collect()
        except Exception as exc:
            log.exception("collection_crashed")
            return CollectResult(failed=len(self.connectors), errors=[f"Collection failed: {exc}"])

    async def _collect(self) -> CollectResult:
        outcomes = await asyncio.gather(
            *(connector.fetch() for connector in self.connectors),
            return_exceptions=True,
        )
        # Freshness is measured from collection time, not source time.
        now = self._clock()
        result = CollectResult()

        for connector, outcome in zip(self.connectors, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                message = f"Failed to fetch from {connector.name}: {outcome}"
                result.errors.append(message)
                log.error("connector_failed", connector=connector.name, error=str(outcome))
                continue

            result.success += 1
            if connector.last_status != "ok":
                result.skipped.append(connector.name)

            saved = self._persist(connector.name, outcome, now, result.errors)
            result.items.extend(saved)
            log.info("connector_collected", connector=connector.name, count=len(saved))

        log.info(
            "collection_completed",
            success=result.success,
            failed=result.failed,
            items=len(result.items),
            errors=len(result.errors),
        )
        return result

    def _persist(
        self,
        connector_name: str,
        observations: list[RateObservation],
        now: datetime,
        errors: list[str],
    ) -> list[RateObservation]:
        """Write one connector's batch in order; a failed item is skipped."""
        saved: list[RateObservation] = []
        for obs in observations:
            current = obs.model_copy(update={"last_updated": now})
            key = current.key
            try:
                existing = self.gateway.find_current(key)
                if existing is not None and existing.apr != current.apr:
                    self.gateway.append_history(RateHistoryEntry.from_previous(existing, now))
                    log.debug(
                        "rate_changed",
                        asset=key.asset,
                        platform=key.platform,
                        lock_period=key.lock_period,
                        old_apr=existing.apr,
                        new_apr=current.apr,
                    )
                self.gateway.upsert_current(key, current)
            except Exception as exc:
                message = f"Failed to persist {connector_name} {key.asset}/{key.lock_period}: {exc}"
                errors.append(message)
                log.error("persist_failed", connector=connector_name, asset=key.asset, error=str(exc))
                continue
            saved.append(current)
        return saved

    async def close(self) -> None:
        for connector in self.connectors:
            await connector.close()
