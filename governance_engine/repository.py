"""
Persistence gateway for assessments and findings.

AssessmentRepository is the interface the orchestrator writes through.
InMemoryAssessmentRepository is a thread-safe reference implementation used
for local runs and tests; it hands out deep copies so callers always see a
snapshot.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .exceptions import (
    AssessmentNotFoundError,
    ConcurrentUpdateError,
    InvalidStatusTransitionError,
)
from .models import (
    AnalyzerOutcome,
    Assessment,
    AssessmentStatus,
    AssessmentSummary,
    Finding,
    sort_findings,
)

logger = logging.getLogger(__name__)


class AssessmentRepository(ABC):
    """
    Persistence gateway used by the orchestrator.

    Implementations raise PersistenceError (or a subclass) for storage
    failures. No transactional coupling across calls is assumed.
    """

    @abstractmethod
    def create_assessment(self, assessment: Assessment) -> Assessment:
        pass

    @abstractmethod
    def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        pass

    @abstractmethod
    def update_assessment_status(
        self,
        assessment_id: str,
        status: AssessmentStatus,
        expected_status: Optional[AssessmentStatus] = None,
        error_message: Optional[str] = None
    ) -> Assessment:
        """
        Move an assessment to a new status.

        Args:
            assessment_id: Assessment to update
            status: New status; must be a forward transition
            expected_status: Status the writer believes is stored
            error_message: Stored with the status, typically for Failed

        Raises:
            AssessmentNotFoundError: If the assessment does not exist
            ConcurrentUpdateError: If the stored status differs from expected_status
            InvalidStatusTransitionError: If the transition is not forward
        """
        pass

    @abstractmethod
    def save_category_result(self, assessment_id: str, outcome: AnalyzerOutcome) -> None:
        pass

    @abstractmethod
    def update_assessment_result(
        self,
        assessment_id: str,
        *,
        overall_score: Optional[float],
        status: AssessmentStatus,
        completed_date: datetime,
        expected_status: Optional[AssessmentStatus] = None,
        summary: Optional[AssessmentSummary] = None
    ) -> Assessment:
        pass

    @abstractmethod
    def create_findings(self, assessment_id: str, findings: List[Finding]) -> None:
        pass

    @abstractmethod
    def get_findings_by_assessment(self, assessment_id: str) -> List[Finding]:
        """Findings ordered by severity, then category."""
        pass

    @abstractmethod
    def get_pending_assessments(self) -> List[Assessment]:
        pass


class InMemoryAssessmentRepository(AssessmentRepository):
    """Dictionary-backed repository guarded by a re-entrant lock."""

    def __init__(self):
        self._assessments: Dict[str, Assessment] = {}
        self._findings: Dict[str, List[Finding]] = {}
        self._lock = threading.RLock()

    def _require(self, assessment_id: str) -> Assessment:
        assessment = self._assessments.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        return assessment

    def _check_transition(
        self,
        assessment: Assessment,
        status: AssessmentStatus,
        expected_status: Optional[AssessmentStatus]
    ) -> None:
        if expected_status is not None and assessment.status != expected_status:
            raise ConcurrentUpdateError(assessment.id, expected_status.value, assessment.status.value)
        if not assessment.status.can_transition_to(status):
            raise InvalidStatusTransitionError(assessment.status.value, status.value)

    def create_assessment(self, assessment: Assessment) -> Assessment:
        with self._lock:
            if assessment.id in self._assessments:
                raise ValueError(f"Assessment '{assessment.id}' already exists")
            self._assessments[assessment.id] = assessment.model_copy(deep=True)
            self._findings[assessment.id] = []
            logger.debug(f"Created assessment {assessment.id} ({assessment.assessment_type.value})")
            return assessment.model_copy(deep=True)

    def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        with self._lock:
            assessment = self._assessments.get(assessment_id)
            if assessment is None:
                return None
            snapshot = assessment.model_copy(deep=True)
            snapshot.findings = sort_findings(self._findings.get(assessment_id, []))
            return snapshot

    def update_assessment_status(
        self,
        assessment_id: str,
        status: AssessmentStatus,
        expected_status: Optional[AssessmentStatus] = None,
        error_message: Optional[str] = None
    ) -> Assessment:
        with self._lock:
            assessment = self._require(assessment_id)
            self._check_transition(assessment, status, expected_status)

            assessment.status = status
            if error_message is not None:
                assessment.error_message = error_message
            if status.is_terminal:
                assessment.completed_date = datetime.now(timezone.utc)
            return assessment.model_copy(deep=True)

    def save_category_result(self, assessment_id: str, outcome: AnalyzerOutcome) -> None:
        with self._lock:
            assessment = self._require(assessment_id)
            if outcome.success:
                assessment.category_results[outcome.analyzer_name] = outcome.result.model_copy(deep=True)
            else:
                assessment.category_errors[outcome.analyzer_name] = outcome.error.model_copy(deep=True)

    def update_assessment_result(
        self,
        assessment_id: str,
        *,
        overall_score: Optional[float],
        status: AssessmentStatus,
        completed_date: datetime,
        expected_status: Optional[AssessmentStatus] = None,
        summary: Optional[AssessmentSummary] = None
    ) -> Assessment:
        with self._lock:
            assessment = self._require(assessment_id)
            self._check_transition(assessment, status, expected_status)

            assessment.status = status
            assessment.overall_score = overall_score
            assessment.completed_date = completed_date if status.is_terminal else None
            if summary is not None:
                if summary.customer_id and not assessment.customer_id:
                    assessment.customer_id = summary.customer_id
                assessment.recommendations = list(summary.recommendations)
                assessment.total_resources_analyzed = summary.total_resources_analyzed
                assessment.issues_found = summary.issues_found
                assessment.detailed_metrics = dict(summary.detailed_metrics)
            return assessment.model_copy(deep=True)

    def create_findings(self, assessment_id: str, findings: List[Finding]) -> None:
        with self._lock:
            self._require(assessment_id)
            self._findings[assessment_id].extend(f.model_copy(deep=True) for f in findings)
            logger.debug(f"Stored {len(findings)} findings for assessment {assessment_id}")

    def get_findings_by_assessment(self, assessment_id: str) -> List[Finding]:
        with self._lock:
            self._require(assessment_id)
            return [f.model_copy(deep=True) for f in sort_findings(self._findings[assessment_id])]

    def get_pending_assessments(self) -> List[Assessment]:
        with self._lock:
            pending = [a for a in self._assessments.values() if a.status == AssessmentStatus.PENDING]
            return [a.model_copy(deep=True) for a in sorted(pending, key=lambda a: a.started_date)]
