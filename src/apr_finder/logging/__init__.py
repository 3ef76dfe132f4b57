"""Structured logging."""

from apr_finder.logging.setup import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
