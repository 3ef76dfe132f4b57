"""Exceptions raised inside the collection and alerting core.

Connectors raise these; the aggregator, alert evaluator and scheduler catch
them at their public entry points so a tick never crashes the process.
"""

from __future__ import annotations


class AprFinderError(Exception):
    """Base exception for all apr_finder errors."""


class MissingCredentials(AprFinderError):
    """A source's API key, secret or passphrase is not configured.

    Not a failure: the connector returns no observations for that tick.
    """

    def __init__(self, source: str, missing: list[str]) -> None:
        self.source = source
        self.missing = missing
        super().__init__(f"{source}: missing {', '.join(missing)}")


class UpstreamHttpError(AprFinderError):
    """Non-2xx response, timeout or transport failure from a rate source."""

    def __init__(self, source: str, status: int | None, body: str = "") -> None:
        self.source = source
        self.status = status
        self.body = body[:200]
        where = f"HTTP {status}" if status is not None else "transport error"
        detail = f": {self.body}" if self.body else ""
        super().__init__(f"{source} {where}{detail}")


class ParseError(AprFinderError):
    """A response body could not be interpreted as rate offers."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"{source} unparseable response: {detail}")


class TransientLockout(UpstreamHttpError):
    """The source signalled a temporary ban; the connector backs off locally."""

    def __init__(self, source: str, status: int | None, body: str = "", retry_after: float = 60.0) -> None:
        super().__init__(source, status, body)
        self.retry_after = retry_after


class PersistenceError(AprFinderError):
    """A write to the persistence gateway failed for one item."""


class AlertEvaluationError(AprFinderError):
    """Evaluating a single alert failed."""

    def __init__(self, alert_id: object, cause: BaseException) -> None:
        self.alert_id = alert_id
        super().__init__(f"alert {alert_id}: {cause}")
