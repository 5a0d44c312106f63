"""
Observability for the Garage operator: structured logging, Prometheus
metrics and the diagnostics HTTP surface.
"""

from .logging import OperatorLogger, setup_structured_logging
from .metrics import Metrics, MetricsServer

__all__ = ["Metrics", "MetricsServer", "OperatorLogger", "setup_structured_logging"]
