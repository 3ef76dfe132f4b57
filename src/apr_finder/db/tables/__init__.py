"""Import all table modules so Base.metadata knows about them."""

from apr_finder.db.tables.alerts import AlertRow, NotificationRow
from apr_finder.db.tables.rates import AprCurrentRow, AprHistoryRow

__all__ = [
    "AlertRow",
    "AprCurrentRow",
    "AprHistoryRow",
    "NotificationRow",
]
