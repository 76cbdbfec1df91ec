"""Observability helpers: structlog configuration and Prometheus metrics."""

from crossview.observability.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
