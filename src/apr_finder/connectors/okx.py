"""OKX Earn connector for savings lending rates and staking/DeFi offers.

Signing: base64(HMAC-SHA256(secret, ts + METHOD + path?query + body)) where
ts is an ISO-8601 UTC timestamp with milliseconds. The passphrase is sent
as-is in ``OK-ACCESS-PASSPHRASE``.
"""

from __future__ import annotations

from typing import Any

from apr_finder.config.credentials import CredentialSpec, Credentials
from apr_finder.connectors.base import Connector
from apr_finder.connectors.signing import hmac_sign, iso_millis, prehash
from apr_finder.errors import ParseError
from apr_finder.models import RateObservation

SAVINGS_PATH = "/api/v5/finance/savings/lending-rate-summary"
STAKING_PATH = "/api/v5/finance/staking-defi/offers"

SAVINGS_APR_FIELDS = ("estRate", "avgRate", "preRate", "lendingRate", "rate")
STAKING_APR_FIELDS = ("apy", "rate", "apr")

CLOSED_STATES = {"sold_out", "stop"}


class OkxConnector(Connector):
    name = "OKX"
    credential_spec = CredentialSpec("OKX", needs_passphrase=True)
    base_url = "https://www.okx.com"

    def _headers(self, credentials: Credentials, method: str, path: str, body: str = "") -> dict[str, str]:
        ts = iso_millis()
        return {
            "OK-ACCESS-KEY": credentials.api_key,
            "OK-ACCESS-SIGN": hmac_sign(credentials.api_secret, prehash(ts, method, path, body), "sha256", "base64"),
            "OK-ACCESS-TIMESTAMP": ts,
            "OK-ACCESS-PASSPHRASE": credentials.passphrase,
            "Content-Type": "application/json",
        }

    async def _get_data(self, path: str, credentials: Credentials) -> list[dict]:
        body = await self._request("GET", path, headers=self._headers(credentials, "GET", path))
        if not isinstance(body, dict):
            raise ParseError(self.name, "response is not an object")
        # OKX reports business errors with HTTP 200 and a non-zero code.
        if str(body.get("code")) != "0":
            raise ParseError(self.name, f"code {body.get('code')}: {body.get('msg', '')}")
        return self._expect_list(body.get("data"), "offers")

    async def _fetch(self, credentials: Credentials) -> list[RateObservation]:
        return await self._gather_products({
            "savings": self._fetch_savings(credentials),
            "staking": self._fetch_staking(credentials),
        })

    async def _fetch_savings(self, credentials: Credentials) -> list[RateObservation]:
        results: list[RateObservation] = []
        for item in await self._get_data(SAVINGS_PATH, credentials):
            obs = self._observation(item.get("ccy"), item, SAVINGS_APR_FIELDS, "okx_savings")
            if obs is not None:
                results.append(obs)
        return results

    async def _fetch_staking(self, credentials: Credentials) -> list[RateObservation]:
        results: list[RateObservation] = []
        for offer in await self._get_data(STAKING_PATH, credentials):
            if offer.get("state") in CLOSED_STATES:
                continue
            obs = self._observation(
                offer.get("ccy"),
                offer,
                STAKING_APR_FIELDS,
                "okx_staking",
                apy_fields=("apy",),
                lock_days=offer.get("term"),
                min_stake=_min_amount(offer),
            )
            if obs is not None:
                results.append(obs)
        return results


def _min_amount(offer: dict[str, Any]) -> Any:
    invest = offer.get("investData")
    if isinstance(invest, list) and invest and isinstance(invest[0], dict):
        return invest[0].get("minAmt")
    return offer.get("minAmt")
