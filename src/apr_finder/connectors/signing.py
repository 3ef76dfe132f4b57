"""HMAC request signing helpers shared by the exchange connectors."""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Literal

Digest = Literal["sha256", "sha512"]
Encoding = Literal["hex", "base64"]


def hmac_sign(
    secret: str,
    message: str,
    digest: Digest = "sha256",
    encoding: Encoding = "hex",
) -> str:
    """HMAC *message* with *secret* and encode the MAC as hex or base64."""
    mac = hmac.new(secret.encode(), message.encode(), getattr(hashlib, digest))
    if encoding == "base64":
        return base64.b64encode(mac.digest()).decode()
    return mac.hexdigest()


def prehash(timestamp: str, method: str, path: str, body: str = "") -> str:
    """The ``timestamp + METHOD + path + body`` string OKX and KuCoin sign."""
    return f"{timestamp}{method.upper()}{path}{body}"


def sha512_hex(body: str) -> str:
    return hashlib.sha512(body.encode()).hexdigest()


def iso_millis(now: datetime | None = None) -> str:
    """``2024-01-02T03:04:05.678Z`` as required by OKX."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def epoch_millis(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return str(int(now.timestamp() * 1000))


def epoch_seconds(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return str(int(now.timestamp()))
