"""Telemetry module for observability."""

from polaris_orchestrator.telemetry.logger import get_logger, setup_logging
from polaris_orchestrator.telemetry.metrics import MetricsCollector

__all__ = ["get_logger", "setup_logging", "MetricsCollector"]
