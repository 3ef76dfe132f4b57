"""Per-source API credentials, read from the environment on every call.

Credentials are not part of AppConfig: a source can be
configured or unconfigured between two ticks without a restart.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from apr_finder.errors import MissingCredentials


@dataclass(frozen=True)
class CredentialSpec:
    """Environment variable prefix for a source and whether it needs a passphrase."""

    prefix: str
    needs_passphrase: bool = False

    @property
    def key_var(self) -> str:
        return f"{self.prefix}_API_KEY"

    @property
    def secret_var(self) -> str:
        return f"{self.prefix}_API_SECRET"

    @property
    def passphrase_var(self) -> str:
        return f"{self.prefix}_PASSPHRASE"


@dataclass(frozen=True)
class Credentials:
    api_key: str
    api_secret: str
    passphrase: str = ""

    def __repr__(self) -> str:
        return f"Credentials(api_key={self.api_key[:4]}***)"


def resolve_credentials(
    spec: CredentialSpec,
    environ: Mapping[str, str] | None = None,
) -> Credentials:
    """Return the credentials for *spec* or raise MissingCredentials.

    Empty and whitespace-only values count as absent.
    """
    env = os.environ if environ is None else environ
    api_key = env.get(spec.key_var, "").strip()
    api_secret = env.get(spec.secret_var, "").strip()
    passphrase = env.get(spec.passphrase_var, "").strip()

    required = [(spec.key_var, api_key), (spec.secret_var, api_secret)]
    if spec.needs_passphrase:
        required.append((spec.passphrase_var, passphrase))

    missing = [var for var, value in required if not value]
    if missing:
        raise MissingCredentials(spec.prefix.lower(), missing)

    return Credentials(api_key=api_key, api_secret=api_secret, passphrase=passphrase)
