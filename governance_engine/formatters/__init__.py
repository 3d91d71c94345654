"""Report formatters."""

from .report_formatter import ReportFormatter

__all__ = ["ReportFormatter"]
