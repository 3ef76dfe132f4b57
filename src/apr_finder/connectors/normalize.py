"""Shared normalization helpers for connector output.

All connectors funnel raw exchange fields through these so that the
aggregator only ever sees canonical symbols, chain slugs, percentages and
lock-period labels.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from apr_finder.models import RateObservation
from apr_finder.models.rates import MAX_APR

DEFAULT_CHAIN = "ethereum"

ASSET_ALIASES: dict[str, str] = {
    "WBTC": "BTC",
    "BTCB": "BTC",
    "WETH": "ETH",
    "BETH": "ETH",
    "STETH": "ETH",
    "WSTETH": "ETH",
    "WBETH": "ETH",
    "WBNB": "BNB",
    "WMATIC": "MATIC",
}

ASSET_CHAINS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "bsc",
    "SOL": "solana",
    "MATIC": "polygon",
    "POL": "polygon",
    "AVAX": "avalanche",
    "ADA": "cardano",
    "DOT": "polkadot",
    "ATOM": "cosmos",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "TRX": "tron",
    "TON": "ton",
    "USDT": "ethereum",
    "USDC": "ethereum",
}


def normalize_asset(symbol: object) -> str:
    """Upper-case a ticker and collapse wrapped/staked aliases."""
    if not isinstance(symbol, str):
        return ""
    upper = symbol.strip().upper()
    return ASSET_ALIASES.get(upper, upper)


def chain_for_asset(asset: str) -> str:
    return ASSET_CHAINS.get(asset.upper(), DEFAULT_CHAIN)


def parse_percent(raw: Any) -> float | None:
    """Parse a number or numeric string (optionally ending in ``%``).

    Returns None for missing, non-numeric, non-finite or non-positive input.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith("%"):
            text = text[:-1].strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    elif isinstance(raw, (int, float)):
        value = float(raw)
    else:
        return None

    if not math.isfinite(value) or value <= 0:
        return None
    return value


def to_percent(value: float) -> float:
    """Scale fractions (< 1) to percent; leave percentages alone."""
    if value < 1:
        return value * 100
    return value


def valid_apr(value: float | None) -> bool:
    return value is not None and 0 < value <= MAX_APR


def probe_rate(item: Mapping[str, Any], candidates: Sequence[str]) -> float | None:
    """Return the first candidate field that holds a positive rate, as percent.

    Field names differ between product tiers of the same exchange, so
    callers pass them in preference order. The result is fraction-corrected
    but not range-checked.
    """
    for name in candidates:
        value = parse_percent(item.get(name))
        if value is not None:
            return to_percent(value)
    return None


def format_lock_period(days: Any) -> str:
    """``0``/missing -> "Flexible", ``1`` -> "1 day", ``n`` -> "n days"."""
    if days is None or days == "":
        return "Flexible"
    try:
        count = int(float(days))
    except (TypeError, ValueError):
        return "Flexible"
    if count <= 0:
        return "Flexible"
    if count == 1:
        return "1 day"
    return f"{count} days"


def dedupe(observations: Iterable[RateObservation]) -> list[RateObservation]:
    """Collapse same (asset, lock_period) entries, keeping the higher APR.

    The surviving entry keeps the position of the first one seen.
    """
    best: dict[tuple[str, str], RateObservation] = {}
    for obs in observations:
        slot = (obs.asset, obs.lock_period)
        current = best.get(slot)
        if current is None or obs.apr > current.apr:
            best[slot] = obs
    return list(best.values())
