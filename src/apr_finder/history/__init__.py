"""Rate history and trend queries."""

from apr_finder.history.queries import (
    TrendPoint,
    rate_history,
    rate_trends,
    stale_platforms,
    top_rates,
)

__all__ = ["TrendPoint", "rate_history", "rate_trends", "stale_platforms", "top_rates"]
