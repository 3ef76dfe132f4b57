"""Connector abstract base class.

A connector turns one exchange's earn/staking endpoints into canonical
RateObservations. Connectors are stateless apart from an optional lockout
cooldown; credentials are looked up again on every fetch().
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal
from urllib.parse import urlencode

import httpx

from apr_finder.config.credentials import CredentialSpec, Credentials, resolve_credentials
from apr_finder.connectors.normalize import (
    chain_for_asset,
    dedupe,
    format_lock_period,
    normalize_asset,
    probe_rate,
    valid_apr,
)
from apr_finder.errors import MissingCredentials, ParseError, TransientLockout, UpstreamHttpError
from apr_finder.logging import get_logger
from apr_finder.models import RateObservation

log = get_logger(__name__)

DEFAULT_TIMEOUT_S = 15.0
DEFAULT_LOCKOUT_COOLDOWN_S = 60.0

FetchStatus = Literal["ok", "unconfigured", "cooldown"]


class Connector(ABC):
    """Base class for all rate sources.

    Subclasses set the class attributes and implement ``_fetch``.
    """

    name: str  # platform display name, e.g. "Binance"
    platform_type: Literal["exchange", "defi"] = "exchange"
    credential_spec: CredentialSpec
    base_url: str

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        lockout_cooldown_s: float = DEFAULT_LOCKOUT_COOLDOWN_S,
        http: httpx.AsyncClient | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = (base_url or self.base_url).rstrip("/")
        self.timeout_s = timeout_s
        self.lockout_cooldown_s = lockout_cooldown_s
        self._http = http
        self._environ = environ
        self._clock = clock
        self._cooldown_until = 0.0
        self.last_status: FetchStatus = "ok"

    # --- HTTP ---

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": "apr-finder/0.1", "Accept": "application/json"},
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        path_with_query: str,
        headers: dict[str, str],
        body: str = "",
    ) -> Any:
        """Send a pre-signed request and return the decoded JSON body.

        *path_with_query* must be byte-identical to what was signed.
        """
        http = await self._get_http()
        try:
            resp = await http.request(
                method,
                f"{self.base_url}{path_with_query}",
                headers=headers,
                content=body or None,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamHttpError(self.name, None, f"timeout after {self.timeout_s}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamHttpError(self.name, None, str(exc)) from exc

        self._check_lockout(resp)
        if not resp.is_success:
            raise UpstreamHttpError(self.name, resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError as exc:
            raise ParseError(self.name, "body is not JSON") from exc

    def _check_lockout(self, resp: httpx.Response) -> None:
        """Raise TransientLockout if *resp* carries the source's ban signature."""

    @staticmethod
    def _query(params: Mapping[str, Any]) -> str:
        return urlencode([(k, v) for k, v in params.items() if v is not None])

    # --- fetch ---

    @property
    def in_cooldown(self) -> bool:
        return self._clock() < self._cooldown_until

    def start_cooldown(self, seconds: float | None = None) -> None:
        self._cooldown_until = self._clock() + (self.lockout_cooldown_s if seconds is None else seconds)

    async def fetch(self) -> list[RateObservation]:
        """Fetch, normalize and dedupe this source's current offers.

        Returns ``[]`` when the source is unconfigured or cooling down.
        Raises UpstreamHttpError / ParseError on upstream failure.
        """
        if self.in_cooldown:
            self.last_status = "cooldown"
            log.info("connector_cooling_down", connector=self.name)
            return []

        try:
            credentials = resolve_credentials(self.credential_spec, self._environ)
        except MissingCredentials as exc:
            self.last_status = "unconfigured"
            log.info("connector_unconfigured", connector=self.name, missing=exc.missing)
            return []

        self.last_status = "ok"
        try:
            observations = await asyncio.wait_for(self._fetch(credentials), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise UpstreamHttpError(self.name, None, f"timeout after {self.timeout_s}s") from exc
        except TransientLockout:
            self.start_cooldown()
            log.warning(
                "connector_locked_out",
                connector=self.name,
                cooldown_s=self.lockout_cooldown_s,
            )
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ParseError(self.name, f"{type(exc).__name__}: {exc}") from exc

        result = dedupe(observations)
        log.debug("connector_fetched", connector=self.name, count=len(result))
        return result

    @abstractmethod
    async def _fetch(self, credentials: Credentials) -> list[RateObservation]:
        """Call the source and parse its products. May contain duplicates."""
        ...

    async def _gather_products(
        self,
        products: Mapping[str, Awaitable[list[RateObservation]]],
    ) -> list[RateObservation]:
        """Run product-list requests concurrently, tolerating partial failure.

        A lockout aborts immediately. If every product request failed the
        first error is raised; otherwise failed products are logged and
        skipped.
        """
        names = list(products)
        outcomes = await asyncio.gather(*products.values(), return_exceptions=True)

        results: list[RateObservation] = []
        failures: list[BaseException] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, TransientLockout):
                raise outcome
            if isinstance(outcome, BaseException):
                failures.append(outcome)
                log.warning("product_fetch_failed", connector=self.name, product=name, error=str(outcome))
                continue
            results.extend(outcome)

        if failures and len(failures) == len(names):
            raise failures[0]
        return results

    # --- parsing ---

    def _expect_list(self, value: Any, what: str) -> list[dict]:
        if not isinstance(value, list):
            raise ParseError(self.name, f"expected a list of {what}, got {type(value).__name__}")
        return [row for row in value if isinstance(row, dict)]

    def _observation(
        self,
        raw_asset: str | None,
        item: Mapping[str, Any],
        apr_fields: tuple[str, ...],
        source: str,
        *,
        apy_fields: tuple[str, ...] = (),
        lock_days: Any = None,
        min_stake: Any = None,
    ) -> RateObservation | None:
        """Build one observation, or None if the entry is unusable.

        An invalid rate drops only this entry, never the batch.
        """
        asset = normalize_asset(raw_asset)
        if not asset:
            return None

        apr = probe_rate(item, apr_fields)
        if not valid_apr(apr):
            if apr is not None:
                log.debug("rate_out_of_range", connector=self.name, asset=asset, apr=apr)
            return None

        apy = probe_rate(item, apy_fields) if apy_fields else None
        if not valid_apr(apy):
            apy = None

        lock_period = format_lock_period(lock_days)
        return RateObservation(
            asset=asset,
            platform=self.name,
            platform_type=self.platform_type,
            chain=chain_for_asset(asset),
            apr=apr,
            apy=apy,
            min_stake=_to_float(min_stake),
            lock_period=lock_period,
            risk_level=risk_for_lock(lock_days),
            source=source,
        )


def risk_for_lock(lock_days: Any) -> str:
    """Offers locked for more than a month are rated medium risk."""
    try:
        return "medium" if int(float(lock_days)) > 30 else "low"
    except (TypeError, ValueError):
        return "low"


def _to_float(raw: Any) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None
