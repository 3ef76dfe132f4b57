"""Periodic job service driving collection, alert evaluation and cleanup."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from apr_finder.aggregator import Aggregator
from apr_finder.alerts import AlertEvaluator
from apr_finder.config.schema import AppConfig
from apr_finder.logging import get_logger
from apr_finder.models import CollectResult
from apr_finder.models.rates import utcnow

log = get_logger(__name__)

COLLECTION_JOB = "collection"
CLEANUP_JOB = "notification_cleanup"


@dataclass
class JobStatus:
    name: str
    state: Literal["stopped", "running"]
    interval_s: float
    runs: int
    skipped: int
    failures: int
    busy: bool
    last_started: datetime | None
    last_duration_s: float | None
    last_error: str | None


class Job:
    """One named periodic task.

    Ticks run as their own asyncio tasks. If the previous tick is still
    running when the next one is due, the new tick is skipped rather than
    queued, so a job never runs twice at once.
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        func: Callable[[], Awaitable[Any]],
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self._func = func
        self._run_immediately = run_immediately
        self._loop_task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_started: datetime | None = None
        self.last_duration_s: float | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        if self.running:
            log.warning("job_already_running", job=self.name)
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        log.info("job_started", job=self.name, interval_s=self.interval_s)

    async def stop(self) -> None:
        """Cancel future ticks, then wait for the in-flight tick to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self.busy:
            log.info("job_waiting_for_tick", job=self.name)
            await asyncio.shield(self._inflight)
        log.info("job_stopped", job=self.name)

    async def run_once(self) -> bool:
        """Run one tick now and wait for it. Returns False if a tick was already running."""
        if not self._launch():
            return False
        await asyncio.shield(self._inflight)
        return True

    def _launch(self) -> bool:
        if self.busy:
            self.skipped += 1
            log.warning("tick_skipped", job=self.name, reason="previous tick still running")
            return False
        self._inflight = asyncio.create_task(self._tick(), name=f"tick:{self.name}")
        return True

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self.interval_s)
        while True:
            self._launch()
            await asyncio.sleep(self.interval_s)

    async def _tick(self) -> None:
        self.runs += 1
        self.last_started = utcnow()
        started = time.monotonic()
        try:
            await self._func()
            self.last_error = None
        except Exception as exc:
            self.failures += 1
            self.last_error = str(exc)
            log.exception("tick_error", job=self.name)
        finally:
            self.last_duration_s = time.monotonic() - started

    def status(self) -> JobStatus:
        return JobStatus(
            name=self.name,
            state="running" if self.running else "stopped",
            interval_s=self.interval_s,
            runs=self.runs,
            skipped=self.skipped,
            failures=self.failures,
            busy=self.busy,
            last_started=self.last_started,
            last_duration_s=self.last_duration_s,
            last_error=self.last_error,
        )


class Scheduler:
    """Owns the collection+evaluation job and the notification cleanup job.

    Dependencies are injected so tests can drive ticks with ``run_once``
    instead of a live timer.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        evaluator: AlertEvaluator,
        config: AppConfig | None = None,
    ) -> None:
        config = config or AppConfig()
        self.aggregator = aggregator
        self.evaluator = evaluator
        self.retention_days = config.alerts.notification_retention_days
        self.last_result: CollectResult | None = None
        self.jobs: dict[str, Job] = {
            COLLECTION_JOB: Job(COLLECTION_JOB, config.collection.tick_interval_s, self.collect_and_evaluate),
            CLEANUP_JOB: Job(
                CLEANUP_JOB,
                config.collection.cleanup_interval_s,
                self.cleanup_notifications,
                run_immediately=False,
            ),
        }

    async def collect_and_evaluate(self) -> int:
        """One collection tick; alerts are checked even if some connectors failed."""
        result = await self.aggregator.collect_all()
        self.last_result = result
        if result.errors:
            log.warning("collection_errors", errors=result.errors)
        # Evaluate against this tick's rates only, never a previous snapshot.
        triggered = self.evaluator.check_alerts(result.items)
        log.info(
            "tick_completed",
            success=result.success,
            failed=result.failed,
            items=len(result.items),
            alerts_triggered=triggered,
        )
        return triggered

    async def cleanup_notifications(self) -> int:
        return self.evaluator.cleanup_old_notifications(self.retention_days)

    def start_all(self) -> None:
        for job in self.jobs.values():
            job.start()

    async def stop_all(self) -> None:
        for job in self.jobs.values():
            await job.stop()

    async def run_once(self, name: str) -> bool:
        return await self.jobs[name].run_once()

    def status(self) -> dict[str, JobStatus]:
        return {name: job.status() for name, job in self.jobs.items()}
