"""CloudWatch metrics emitter for assessment observability."""

import logging
from typing import Dict, Optional, Union

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class MetricsEmitter:
    """Emits CloudWatch metrics for assessments and analyzer runs.

    Metric emission never fails an assessment: when the CloudWatch client
    cannot be created or a put fails, the emitter logs and carries on.
    """

    def __init__(self, namespace: str = "GovernanceAssessment", region: Optional[str] = None):
        """Initialize the MetricsEmitter.

        Args:
            namespace: CloudWatch namespace for metrics (default: "GovernanceAssessment")
            region: AWS region for the CloudWatch client (default: None, uses default region)
        """
        self.namespace = namespace
        try:
            self.cloudwatch = boto3.client('cloudwatch', region_name=region)
            logger.info(f"MetricsEmitter initialized with namespace: {namespace}")
        except Exception as e:
            logger.error(f"Failed to initialize CloudWatch client: {e}")
            self.cloudwatch = None

    def _put(
        self,
        metric_name: str,
        value: Union[int, float],
        unit: str,
        dimensions: Optional[Dict[str, str]]
    ) -> None:
        if not self.cloudwatch:
            logger.warning(f"CloudWatch client not available, skipping metric: {metric_name}")
            return

        metric_data = {
            'MetricName': metric_name,
            'Value': value,
            'Unit': unit
        }
        if dimensions:
            metric_data['Dimensions'] = [
                {'Name': key, 'Value': str(dim_value)}
                for key, dim_value in dimensions.items()
            ]

        try:
            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=[metric_data]
            )
        except ClientError as e:
            logger.error(f"Failed to emit metric {metric_name}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error emitting metric {metric_name}: {e}")

    def emit_duration(
        self,
        metric_name: str,
        duration_ms: float,
        dimensions: Optional[Dict[str, str]] = None
    ) -> None:
        """Emit a duration metric in milliseconds.

        Args:
            metric_name: Name of the metric (e.g., "AssessmentDuration")
            duration_ms: Duration in milliseconds
            dimensions: Optional dimensions (e.g., {"AnalyzerName": "Tagging"})
        """
        self._put(metric_name, duration_ms, 'Milliseconds', dimensions)

    def emit_count(
        self,
        metric_name: str,
        value: int = 1,
        dimensions: Optional[Dict[str, str]] = None
    ) -> None:
        """Emit a count metric.

        Args:
            metric_name: Name of the metric (e.g., "AnalyzerFailure")
            value: Count value (default: 1)
            dimensions: Optional dimensions for the metric
        """
        self._put(metric_name, value, 'Count', dimensions)

    def emit_analyzer_execution(
        self,
        analyzer_name: str,
        success: bool,
        duration_ms: float
    ) -> None:
        """Emit success/failure count and duration for one analyzer run."""
        dimensions = {'AnalyzerName': analyzer_name}
        self.emit_count('AnalyzerSuccess' if success else 'AnalyzerFailure', value=1, dimensions=dimensions)
        self.emit_duration('AnalyzerDuration', duration_ms, dimensions=dimensions)

    def emit_assessment_outcome(
        self,
        assessment_type: str,
        status: str,
        duration_ms: float,
        issues_found: int = 0
    ) -> None:
        """Emit the terminal status, duration and issue count of an assessment.

        Args:
            assessment_type: Assessment type value (e.g., "Full")
            status: Terminal status value ("Completed" or "Failed")
            duration_ms: Wall time from start to terminal status
            issues_found: Number of findings recorded
        """
        dimensions = {'AssessmentType': assessment_type}
        self.emit_count(f'Assessment{status}', value=1, dimensions=dimensions)
        self.emit_duration('AssessmentDuration', duration_ms, dimensions=dimensions)
        if status == "Completed":
            self.emit_count('IssuesFound', value=issues_found, dimensions=dimensions)
