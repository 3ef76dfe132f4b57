"""Service runner — wires connectors, persistence and jobs, then runs until signalled."""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta

import structlog

from apr_finder.aggregator import Aggregator
from apr_finder.alerts import AlertEvaluator
from apr_finder.config.loader import load_config
from apr_finder.config.schema import AppConfig
from apr_finder.connectors import build_connectors
from apr_finder.db.engine import init_engine, session_scope
from apr_finder.db.gateway import SqlGateway
from apr_finder.logging.setup import setup_logging
from apr_finder.scheduler.service import Scheduler

log = structlog.get_logger("scheduler")


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _graceful_handler(sig: signal.Signals) -> None:
        log.info("shutdown_signal", signal=sig.name)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _graceful_handler, sig)
        except NotImplementedError:
            # Windows event loops have no signal handler support.
            pass


async def run_service(config: AppConfig, stop: asyncio.Event | None = None) -> None:
    """Start both jobs and block until *stop* is set (SIGINT/SIGTERM by default)."""
    init_engine(config.database.url)
    stop = stop or asyncio.Event()
    _install_signal_handlers(stop)

    with session_scope() as session:
        gateway = SqlGateway(session)
        aggregator = Aggregator(
            build_connectors(config.collection),
            gateway,
            enabled=config.collection.enabled,
        )
        evaluator = AlertEvaluator(
            gateway,
            cooldown=timedelta(minutes=config.alerts.cooldown_minutes),
        )
        scheduler = Scheduler(aggregator, evaluator, config)

        log.info(
            "service_started",
            connectors=[c.name for c in aggregator.connectors],
            collection_enabled=config.collection.enabled,
            tick_interval_s=config.collection.tick_interval_s,
        )
        scheduler.start_all()
        try:
            await stop.wait()
        finally:
            await scheduler.stop_all()
            await aggregator.close()
            log.info("service_stopped")


def main(config_path: str | None = None) -> None:
    """Load config, set up logging and run the service until signalled."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    asyncio.run(run_service(config))
