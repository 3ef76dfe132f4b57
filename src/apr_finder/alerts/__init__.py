"""Threshold alerts over aggregated rates."""

from apr_finder.alerts.evaluator import AlertEvaluator, build_notification, build_rate_map

__all__ = ["AlertEvaluator", "build_notification", "build_rate_map"]
