"""Pydantic domain models."""

from apr_finder.models.alerts import Alert, Notification, NotificationData
from apr_finder.models.rates import (
    CollectResult,
    RateHistoryEntry,
    RateKey,
    RateObservation,
)

__all__ = [
    "Alert",
    "CollectResult",
    "Notification",
    "NotificationData",
    "RateHistoryEntry",
    "RateKey",
    "RateObservation",
]
