"""Alert and notification models."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from apr_finder.models.rates import utcnow


class Alert(BaseModel):
    """A user's threshold rule on one platform/asset pair."""

    id: int | None = None
    user_id: str
    asset: str
    platform: str
    alert_type: Literal["above", "below"]
    threshold: float
    is_active: bool = True
    last_triggered: datetime | None = None

    @property
    def lookup_key(self) -> str:
        return f"{self.platform.lower()}:{self.asset.upper()}"

    def condition_met(self, current_apr: float) -> bool:
        """Strict crossing; equality never fires."""
        if self.alert_type == "above":
            return current_apr > self.threshold
        return current_apr < self.threshold

    def in_cooldown(self, now: datetime, window: timedelta) -> bool:
        if self.last_triggered is None:
            return False
        return self.last_triggered > now - window


class NotificationData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    asset: str
    platform: str
    current_apr: float
    threshold: float
    alert_type: Literal["above", "below"]


class Notification(BaseModel):
    """Created once per alert trigger, owned by the notification subsystem afterwards."""

    id: int | None = None
    user_id: str
    alert_id: int | None
    type: Literal["alert_triggered"] = "alert_triggered"
    title: str
    message: str
    data: NotificationData
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
