"""Observability components: CloudWatch metrics and structured JSON logging."""

from .metrics_emitter import MetricsEmitter
from .structured_logger import StructuredLogger

__all__ = ["MetricsEmitter", "StructuredLogger"]
