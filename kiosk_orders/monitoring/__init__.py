"""Monitoring and observability package."""
from .health import HealthCheck
from .logging import order_context, setup_logging
from .metrics import metrics

__all__ = ["metrics", "order_context", "setup_logging", "HealthCheck"]
