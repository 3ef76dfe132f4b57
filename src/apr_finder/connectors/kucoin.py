"""KuCoin Earn connector for savings and staking products.

Signing (API key version 2): base64(HMAC-SHA256(secret, ts_ms + METHOD +
path + body)); the passphrase header is itself HMAC-SHA256 of the
passphrase under the same secret, base64 encoded.
"""

from __future__ import annotations

from apr_finder.config.credentials import CredentialSpec, Credentials
from apr_finder.connectors.base import Connector
from apr_finder.connectors.signing import epoch_millis, hmac_sign, prehash
from apr_finder.errors import ParseError
from apr_finder.models import RateObservation

SAVINGS_PATH = "/api/v1/earn/saving/products"
STAKING_PATH = "/api/v1/earn/staking/products"

SUCCESS_CODE = "200000"
APR_FIELDS = ("returnRate", "apr", "apy", "annualRate")


class KucoinConnector(Connector):
    name = "KuCoin"
    credential_spec = CredentialSpec("KUCOIN", needs_passphrase=True)
    base_url = "https://api.kucoin.com"

    def _headers(self, credentials: Credentials, method: str, path: str, body: str = "") -> dict[str, str]:
        ts = epoch_millis()
        secret = credentials.api_secret
        return {
            "KC-API-KEY": credentials.api_key,
            "KC-API-SIGN": hmac_sign(secret, prehash(ts, method, path, body), "sha256", "base64"),
            "KC-API-TIMESTAMP": ts,
            "KC-API-PASSPHRASE": hmac_sign(secret, credentials.passphrase, "sha256", "base64"),
            "KC-API-KEY-VERSION": "2",
            "Content-Type": "application/json",
        }

    async def _get_data(self, path: str, credentials: Credentials) -> list[dict]:
        body = await self._request("GET", path, headers=self._headers(credentials, "GET", path))
        if not isinstance(body, dict):
            raise ParseError(self.name, "response is not an object")
        if str(body.get("code")) != SUCCESS_CODE:
            raise ParseError(self.name, f"code {body.get('code')}: {body.get('msg', '')}")
        data = body.get("data")
        # Paginated endpoints wrap rows in {"items": [...]}.
        if isinstance(data, dict):
            data = data.get("items")
        return self._expect_list(data, "products")

    async def _fetch(self, credentials: Credentials) -> list[RateObservation]:
        return await self._gather_products({
            "savings": self._fetch_products(credentials, SAVINGS_PATH, "kucoin_earn_savings"),
            "staking": self._fetch_products(credentials, STAKING_PATH, "kucoin_earn_staking"),
        })

    async def _fetch_products(self, credentials: Credentials, path: str, source: str) -> list[RateObservation]:
        results: list[RateObservation] = []
        for product in await self._get_data(path, credentials):
            if product.get("status", "ONGOING") != "ONGOING":
                continue
            obs = self._observation(
                product.get("currency"),
                product,
                APR_FIELDS,
                source,
                lock_days=product.get("duration"),
                min_stake=product.get("userLowerLimit"),
            )
            if obs is not None:
                results.append(obs)
        return results
