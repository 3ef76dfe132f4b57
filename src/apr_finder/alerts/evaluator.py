"""Alert evaluation: strict threshold crossing with a one-hour debounce."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from apr_finder.db.gateway import PersistenceGateway
from apr_finder.errors import AlertEvaluationError
from apr_finder.logging import get_logger
from apr_finder.models import Alert, Notification, NotificationData, RateObservation
from apr_finder.models.rates import utcnow

log = get_logger(__name__)

DEFAULT_COOLDOWN = timedelta(minutes=60)
DEFAULT_RETENTION_DAYS = 30


def _format_threshold(value: float) -> str:
    """3.0 -> "3", 2.5 -> "2.5", 5.1234567 -> "5.1234567"."""
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def build_rate_map(rates: Iterable[RateObservation]) -> dict[str, float]:
    """``lower(platform):UPPER(asset)`` -> apr; later entries win."""
    return {f"{r.platform.lower()}:{r.asset.upper()}": r.apr for r in rates}


def build_notification(alert: Alert, current_apr: float, now: datetime) -> Notification:
    threshold = _format_threshold(alert.threshold)
    return Notification(
        user_id=alert.user_id,
        alert_id=alert.id,
        title=f"{alert.asset} APR Alert",
        message=(
            f"{alert.asset} APR on {alert.platform} is now {current_apr:.2f}% "
            f"({alert.alert_type} {threshold}%)"
        ),
        data=NotificationData(
            asset=alert.asset,
            platform=alert.platform,
            current_apr=current_apr,
            threshold=alert.threshold,
            alert_type=alert.alert_type,
        ),
        created_at=now,
    )


class AlertEvaluator:
    """Checks active alerts against the rates of the current tick.

    The evaluator is the only writer of ``Alert.last_triggered``. The
    notification is written first; if that fails ``last_triggered`` is left
    alone so the alert can fire on a later tick.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.gateway = gateway
        self.cooldown = cooldown
        self._clock = clock

    def check_alerts(self, rates: Iterable[RateObservation]) -> int:
        """Return the number of alerts triggered. Never raises."""
        try:
            alerts = self.gateway.find_active_alerts()
        except Exception:
            log.exception("alert_load_failed")
            return 0

        if not alerts:
            return 0

        rate_map = build_rate_map(rates)
        now = self._clock()
        triggered = 0

        for alert in alerts:
            try:
                if self._evaluate(alert, rate_map, now):
                    triggered += 1
            except Exception as exc:
                err = AlertEvaluationError(alert.id, exc)
                log.error("alert_evaluation_failed", alert_id=alert.id, error=str(err))

        if triggered:
            log.info("alerts_triggered", count=triggered)
        return triggered

    def _evaluate(self, alert: Alert, rate_map: dict[str, float], now: datetime) -> bool:
        current_apr = rate_map.get(alert.lookup_key)
        if current_apr is None:
            return False
        if not alert.condition_met(current_apr):
            return False
        if alert.in_cooldown(now, self.cooldown):
            log.debug("alert_debounced", alert_id=alert.id, last_triggered=alert.last_triggered)
            return False

        self.gateway.insert_notification(build_notification(alert, current_apr, now))
        self.gateway.set_alert_last_triggered(alert.id, now)
        log.info(
            "alert_triggered",
            alert_id=alert.id,
            asset=alert.asset,
            platform=alert.platform,
            current_apr=round(current_apr, 2),
            alert_type=alert.alert_type,
            threshold=alert.threshold,
        )
        return True

    def cleanup_old_notifications(self, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete notifications older than *retention_days*. Never raises."""
        cutoff = self._clock() - timedelta(days=retention_days)
        try:
            deleted = self.gateway.delete_notifications_older_than(cutoff)
        except Exception:
            log.exception("notification_cleanup_failed")
            return 0
        if deleted:
            log.info("notifications_cleaned_up", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted
