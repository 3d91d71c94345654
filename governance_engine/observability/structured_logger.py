"""Structured JSON logger for assessment observability."""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


class StructuredLogger:
    """Emits structured JSON log entries correlated by assessment id.

    Every entry carries a timestamp, the correlation id (the assessment id
    when one exists) and an event type, so log pipelines can reassemble the
    history of one assessment across worker threads.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        """Initialize the StructuredLogger.

        Args:
            correlation_id: Correlation ID for related log entries. A new
                UUID is generated when not provided.
        """
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def _log_structured(self, event_type: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": self.correlation_id,
            "event_type": event_type,
            **kwargs
        }
        logger.log(level, json.dumps(log_entry, default=str))

    def log_assessment(
        self,
        assessment_type: str,
        stage: str,
        **additional_fields: Any
    ) -> None:
        """Log an assessment lifecycle event.

        Args:
            assessment_type: Assessment type value
            stage: Lifecycle stage (e.g., "started", "completed", "failed")
            **additional_fields: Additional fields to include in the log entry
        """
        self._log_structured(
            event_type="assessment_lifecycle",
            assessment_type=assessment_type,
            stage=stage,
            **additional_fields
        )

    def log_analyzer_execution(
        self,
        analyzer_name: str,
        success: bool,
        duration_ms: float,
        error: Optional[str] = None,
        **additional_fields: Any
    ) -> None:
        """Log the outcome of one analyzer or meta-analyzer run."""
        self._log_structured(
            event_type="analyzer_execution",
            level=logging.INFO if success else logging.WARNING,
            analyzer_name=analyzer_name,
            success=success,
            duration_ms=duration_ms,
            error=error,
            **additional_fields
        )

    def log_status_transition(
        self,
        from_status: Optional[str],
        to_status: str,
        **additional_fields: Any
    ) -> None:
        self._log_structured(
            event_type="status_transition",
            from_status=from_status,
            to_status=to_status,
            **additional_fields
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        **additional_fields: Any
    ) -> None:
        """Log an error event.

        Args:
            error_type: Type of error (e.g., "InventoryUnavailableError", "PersistenceError")
            error_message: Error message
            **additional_fields: Additional fields to include in the log entry
        """
        self._log_structured(
            event_type="error",
            level=logging.ERROR,
            error_type=error_type,
            error_message=error_message,
            **additional_fields
        )

    def get_correlation_id(self) -> str:
        return self.correlation_id

    def create_child_logger(self) -> "StructuredLogger":
        """Create a logger sharing this logger's correlation ID."""
        return StructuredLogger(correlation_id=self.correlation_id)
