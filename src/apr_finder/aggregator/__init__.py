"""Rate aggregation across all connectors."""

from apr_finder.aggregator.collect import Aggregator

__all__ = ["Aggregator"]
