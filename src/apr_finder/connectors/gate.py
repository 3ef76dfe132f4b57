"""Gate connector for on-exchange staking products.

Signing (APIv4): hex(HMAC-SHA512(secret, METHOD\\npath\\nquery\\nhex(sha512(body))\\nts))
with ts in epoch seconds, sent as ``KEY``/``SIGN``/``Timestamp`` headers.
"""

from __future__ import annotations

from apr_finder.config.credentials import CredentialSpec, Credentials
from apr_finder.connectors.base import Connector
from apr_finder.connectors.signing import epoch_seconds, hmac_sign, sha512_hex
from apr_finder.models import RateObservation

PREFIX = "/api/v4"
STAKING_PATH = "/earn/staking/find"

APR_FIELDS = ("estimateApr", "apr", "apy", "rate")


class GateConnector(Connector):
    name = "Gate"
    credential_spec = CredentialSpec("GATE")
    base_url = "https://api.gateio.ws"

    def _headers(
        self,
        credentials: Credentials,
        method: str,
        path: str,
        query: str = "",
        body: str = "",
    ) -> dict[str, str]:
        ts = epoch_seconds()
        message = "\n".join([method.upper(), PREFIX + path, query, sha512_hex(body), ts])
        return {
            "KEY": credentials.api_key,
            "SIGN": hmac_sign(credentials.api_secret, message, "sha512", "hex"),
            "Timestamp": ts,
            "Content-Type": "application/json",
        }

    async def _fetch(self, credentials: Credentials) -> list[RateObservation]:
        body = await self._request(
            "GET",
            PREFIX + STAKING_PATH,
            headers=self._headers(credentials, "GET", STAKING_PATH),
        )
        results: list[RateObservation] = []
        for product in self._expect_list(body, "staking products"):
            obs = self._observation(
                product.get("currency"),
                product,
                APR_FIELDS,
                "gate_staking",
                lock_days=product.get("redeemPeriod"),
                min_stake=product.get("minStakeAmount"),
            )
            if obs is not None:
                results.append(obs)
        return results
