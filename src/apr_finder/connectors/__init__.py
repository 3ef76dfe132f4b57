"""Rate source connectors."""

from __future__ import annotations

from collections.abc import Mapping

import httpx

from apr_finder.config.schema import CollectionConfig
from apr_finder.connectors.base import Connector
from apr_finder.connectors.binance import BinanceConnector
from apr_finder.connectors.gate import GateConnector
from apr_finder.connectors.kucoin import KucoinConnector
from apr_finder.connectors.okx import OkxConnector

CONNECTOR_CLASSES: tuple[type[Connector], ...] = (
    BinanceConnector,
    OkxConnector,
    KucoinConnector,
    GateConnector,
)


def build_connectors(
    config: CollectionConfig,
    http: httpx.AsyncClient | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Connector]:
    """Instantiate every registered connector with the collection settings."""
    return [
        cls(
            timeout_s=config.request_timeout_s,
            lockout_cooldown_s=config.lockout_cooldown_s,
            http=http,
            environ=environ,
        )
        for cls in CONNECTOR_CLASSES
    ]


__all__ = [
    "BinanceConnector",
    "CONNECTOR_CLASSES",
    "Connector",
    "GateConnector",
    "KucoinConnector",
    "OkxConnector",
    "build_connectors",
]
