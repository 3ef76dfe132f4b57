"""Binance Simple Earn connector.

Signing: HMAC-SHA256 of the full query string (including ``timestamp``),
hex encoded and appended as ``signature``; API key in ``X-MBX-APIKEY``.

Binance bans IPs that keep calling after a 429 (HTTP 418, error -1003
"... IP banned until ..."), so this connector backs off locally when it
sees either signature.
"""

from __future__ import annotations

from typing import Any

import httpx

from apr_finder.config.credentials import CredentialSpec, Credentials
from apr_finder.connectors.base import Connector
from apr_finder.connectors.signing import epoch_millis, hmac_sign
from apr_finder.errors import TransientLockout
from apr_finder.models import RateObservation

FLEXIBLE_PATH = "/sapi/v1/simple-earn/flexible/list"
LOCKED_PATH = "/sapi/v1/simple-earn/locked/list"

LOCKOUT_STATUSES = {418, 429}
LOCKOUT_CODE = -1003

# Field names differ between flexible tiers and older locked products.
FLEXIBLE_APR_FIELDS = ("latestAnnualPercentageRate", "apr", "annualPercentageRate")
LOCKED_APR_FIELDS = ("apr", "apy", "annualPercentageRate")


class BinanceConnector(Connector):
    name = "Binance"
    credential_spec = CredentialSpec("BINANCE")
    base_url = "https://api.binance.com"

    def _signed_path(self, path: str, credentials: Credentials, params: dict[str, Any]) -> str:
        query = self._query({**params, "timestamp": epoch_millis()})
        signature = hmac_sign(credentials.api_secret, query, "sha256", "hex")
        return f"{path}?{query}&signature={signature}"

    async def _get(self, path: str, credentials: Credentials, params: dict[str, Any]) -> Any:
        return await self._request(
            "GET",
            self._signed_path(path, credentials, params),
            headers={"X-MBX-APIKEY": credentials.api_key},
        )

    def _check_lockout(self, resp: httpx.Response) -> None:
        if resp.status_code in LOCKOUT_STATUSES:
            raise TransientLockout(self.name, resp.status_code, resp.text, self.lockout_cooldown_s)
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            return
        if not isinstance(body, dict):
            return
        msg = str(body.get("msg", ""))
        if body.get("code") == LOCKOUT_CODE or "banned until" in msg.lower():
            raise TransientLockout(self.name, resp.status_code, resp.text, self.lockout_cooldown_s)

    async def _fetch(self, credentials: Credentials) -> list[RateObservation]:
        return await self._gather_products({
            "flexible": self._fetch_flexible(credentials),
            "locked": self._fetch_locked(credentials),
        })

    async def _fetch_flexible(self, credentials: Credentials) -> list[RateObservation]:
        body = await self._get(FLEXIBLE_PATH, credentials, {"size": 100})
        rows = self._expect_list(body.get("rows") if isinstance(body, dict) else None, "flexible products")

        results: list[RateObservation] = []
        for row in rows:
            if row.get("canPurchase") is False:
                continue
            obs = self._observation(
                row.get("asset"),
                row,
                FLEXIBLE_APR_FIELDS,
                "binance_simple_earn_flexible",
                min_stake=row.get("minPurchaseAmount"),
            )
            if obs is not None:
                results.append(obs)
        return results

    async def _fetch_locked(self, credentials: Credentials) -> list[RateObservation]:
        body = await self._get(LOCKED_PATH, credentials, {"size": 100})
        rows = self._expect_list(body.get("rows") if isinstance(body, dict) else None, "locked products")

        results: list[RateObservation] = []
        for row in rows:
            detail = row.get("detail")
            if not isinstance(detail, dict) or detail.get("isSoldOut") is True:
                continue
            quota = row.get("quota")
            if not isinstance(quota, dict):
                quota = {}
            obs = self._observation(
                detail.get("asset"),
                detail,
                LOCKED_APR_FIELDS,
                "binance_simple_earn_locked",
                lock_days=detail.get("duration"),
                min_stake=quota.get("minimum"),
            )
            if obs is not None:
                results.append(obs)
        return results
