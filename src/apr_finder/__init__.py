"""APR aggregation core: connectors, aggregator, alert evaluator and scheduler."""

__version__ = "0.1.0"
