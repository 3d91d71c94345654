"""
Assessment orchestrator.

Accepts assessment requests, runs the resolved analyzer nodes against the
collected inventory on a bounded worker pool, merges the outcomes and drives
each assessment through Pending -> InProgress -> {Completed, Failed}.

Only inventory and persistence failures are fatal to an assessment. Analyzer
failures arrive as error outcomes, are recorded per category and leave the
remaining categories to carry the score.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .analyzers import AnalysisOptions, AnalyzerRegistry, build_default_registry, execute_nodes
from .config import EngineSettings
from .exceptions import (
    AssessmentValidationError,
    ConcurrentUpdateError,
    AssessmentNotFoundError,
    InvalidStatusTransitionError,
    PersistenceError,
)
from .models import (
    AnalyzerOutcome,
    Assessment,
    AssessmentRequest,
    AssessmentStatus,
    ResourceInventory,
)
from .normalizer import FindingNormalizer
from .observability import MetricsEmitter, StructuredLogger
from .providers import DirectoryProvider, InventoryProvider
from .repository import AssessmentRepository
from .scoring import aggregate_scores
from .utils.cancellation import CancellationToken
from .utils.error_handling import retry_with_backoff

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Assessment cancelled"


def _is_transient_persistence_error(error: Exception) -> bool:
    return isinstance(error, PersistenceError) and not isinstance(error, AssessmentNotFoundError)


class AssessmentOrchestrator:
    """
    Runs assessments and owns their status and score.

    Args:
        inventory_provider: Source of resource inventories
        repository: Persistence gateway for assessments and findings
        registry: Analyzer registry; when None the default catalog is built
            into a registry private to this orchestrator
        settings: Engine settings; defaults are used when None
        metrics_emitter: CloudWatch emitter; created when None and
            settings.metrics_enabled is set
        normalizer: Finding normalizer; a default one is used when None
        directory_provider: Directory source for the identity analyzers of
            the default catalog; ignored when registry is given
    """

    def __init__(
        self,
        inventory_provider: InventoryProvider,
        repository: AssessmentRepository,
        registry: Optional[AnalyzerRegistry] = None,
        settings: Optional[EngineSettings] = None,
        metrics_emitter: Optional[MetricsEmitter] = None,
        normalizer: Optional[FindingNormalizer] = None,
        directory_provider: Optional[DirectoryProvider] = None
    ):
        self.settings = settings or EngineSettings()
        self.inventory_provider = inventory_provider
        self.repository = repository
        if registry is None:
            registry = build_default_registry(
                self.settings, directory_provider, registry=AnalyzerRegistry.create_isolated()
            )
        self.registry = registry
        self.normalizer = normalizer or FindingNormalizer()

        if metrics_emitter is None and self.settings.metrics_enabled:
            metrics_emitter = MetricsEmitter(
                namespace=self.settings.metrics_namespace,
                region=self.settings.aws_region
            )
        self.metrics_emitter = metrics_emitter

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_concurrent_assessments,
            thread_name_prefix="assessment"
        )
        self._running: Dict[str, Future] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def start_assessment(self, request: Union[AssessmentRequest, Mapping[str, Any]]) -> str:
        """
        Validate a request, persist it as Pending and run it in the background.

        Args:
            request: AssessmentRequest or an equivalent dict payload

        Returns:
            The new assessment id

        Raises:
            AssessmentValidationError: If the request is malformed; no state is created
        """
        request = self.validate_request(request)
        assessment = self.repository.create_assessment(Assessment.pending(request))
        logger.info(
            f"Assessment {assessment.id} created: type={request.assessment_type.value}, "
            f"subscriptions={request.subscription_ids}"
        )
        self._submit(assessment.id, request)
        return assessment.id

    def run_assessment(self, request: Union[AssessmentRequest, Mapping[str, Any]]) -> Assessment:
        """
        Validate and run a request in the calling thread.

        Returns:
            The assessment snapshot in its terminal state

        Raises:
            AssessmentValidationError: If the request is malformed; no state is created
        """
        request = self.validate_request(request)
        assessment = self.repository.create_assessment(Assessment.pending(request))
        self._execute(assessment.id, request, self._register_token(assessment.id))
        return self.repository.get_assessment(assessment.id)

    def execute_assessment(self, assessment_id: str) -> Optional[Assessment]:
        """
        Run a stored assessment's request in the calling thread.

        If another writer has already moved the record past Pending, the
        run is a no-op and the stored record is returned unchanged.

        Returns:
            The assessment snapshot, or None if the id is unknown
        """
        assessment = self.repository.get_assessment(assessment_id)
        if assessment is None:
            return None
        if assessment.request is None:
            self._fail(assessment_id, AssessmentStatus.PENDING, "Original request is not available", None)
            return self.repository.get_assessment(assessment_id)

        self._execute(assessment_id, assessment.request, self._register_token(assessment_id))
        return self.repository.get_assessment(assessment_id)

    def get_assessment(self, assessment_id: str) -> Optional[Assessment]:
        """Snapshot of an assessment, including partial results while InProgress."""
        return self.repository.get_assessment(assessment_id)

    def get_pending_assessments(self) -> List[Assessment]:
        return self.repository.get_pending_assessments()

    def process_pending_assessments(self) -> List[str]:
        """
        Submit every Pending assessment that is not already running.

        Returns:
            Ids of the assessments submitted
        """
        submitted = []
        for assessment in self.repository.get_pending_assessments():
            with self._lock:
                if assessment.id in self._running:
                    continue
            if assessment.request is None:
                logger.warning(f"Pending assessment {assessment.id} has no stored request")
                self._fail(assessment.id, AssessmentStatus.PENDING, "Original request is not available", None)
                continue
            self._submit(assessment.id, assessment.request)
            submitted.append(assessment.id)

        if submitted:
            logger.info(f"Resumed {len(submitted)} pending assessment(s)")
        return submitted

    def wait_for_assessment(self, assessment_id: str, timeout: Optional[float] = None) -> Optional[Assessment]:
        """
        Block until a background assessment finishes or the timeout elapses.

        Returns:
            The current assessment snapshot
        """
        with self._lock:
            future = self._running.get(assessment_id)
        if future is not None:
            wait([future], timeout=timeout)
        return self.repository.get_assessment(assessment_id)

    def cancel_assessment(self, assessment_id: str) -> bool:
        """
        Cancel a running or pending assessment.

        A running assessment stops at the next cancellation check and is
        marked Failed. A Pending record that is not running is failed
        directly.

        Returns:
            True if a cancellation was requested or recorded
        """
        with self._lock:
            token = self._tokens.get(assessment_id)
        if token is not None:
            token.cancel(CANCELLED_MESSAGE)
            logger.info(f"Cancellation requested for assessment {assessment_id}")
            return True

        assessment = self.repository.get_assessment(assessment_id)
        if assessment is None or assessment.status != AssessmentStatus.PENDING:
            return False
        return self._fail(assessment_id, AssessmentStatus.PENDING, CANCELLED_MESSAGE, None)

    def shutdown(self, wait: bool = True, cancel_running: bool = False) -> None:
        """Stop accepting work; optionally cancel assessments still running."""
        if cancel_running:
            with self._lock:
                tokens = list(self._tokens.values())
            for token in tokens:
                token.cancel(CANCELLED_MESSAGE)
        self._executor.shutdown(wait=wait)

    def validate_request(self, request: Union[AssessmentRequest, Mapping[str, Any]]) -> AssessmentRequest:
        """
        Parse and validate a request without creating any state.

        Raises:
            AssessmentValidationError: If the payload does not parse, the
                subscription set is empty or blank, or the type resolves to
                no enabled analyzers
        """
        if not isinstance(request, AssessmentRequest):
            try:
                request = AssessmentRequest.model_validate(request)
            except ValidationError as e:
                raise AssessmentValidationError(f"Invalid assessment request: {e}") from e

        if not request.environment_id or not request.environment_id.strip():
            raise AssessmentValidationError("environment_id is required")
        if not request.subscription_ids:
            raise AssessmentValidationError("At least one subscription id is required")
        if any(not s or not s.strip() for s in request.subscription_ids):
            raise AssessmentValidationError("Subscription ids must not be blank")

        self.registry.resolve(request.assessment_type, request.options)
        return request

    def _register_token(self, assessment_id: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            self._tokens[assessment_id] = token
        return token

    def _submit(self, assessment_id: str, request: AssessmentRequest) -> None:
        token = self._register_token(assessment_id)
        with self._lock:
            future = self._executor.submit(self._execute, assessment_id, request, token)
            self._running[assessment_id] = future
        future.add_done_callback(lambda _: self._forget(assessment_id))

    def _forget(self, assessment_id: str) -> None:
        with self._lock:
            self._running.pop(assessment_id, None)

    def _execute(self, assessment_id: str, request: AssessmentRequest, token: CancellationToken) -> None:
        start_time = time.time()
        structured_logger = StructuredLogger(correlation_id=assessment_id)
        structured_logger.log_assessment(request.assessment_type.value, "started")

        status: Optional[AssessmentStatus] = None
        issues_found = 0
        try:
            status, issues_found = self._run_assessment(assessment_id, request, token, structured_logger)
        finally:
            with self._lock:
                self._tokens.pop(assessment_id, None)

            duration_ms = (time.time() - start_time) * 1000
            if status is not None:
                structured_logger.log_assessment(
                    request.assessment_type.value,
                    status.value.lower(),
                    duration_ms=duration_ms,
                    issues_found=issues_found
                )
                if self.metrics_emitter:
                    self.metrics_emitter.emit_assessment_outcome(
                        request.assessment_type.value, status.value, duration_ms, issues_found
                    )

    def _run_assessment(
        self,
        assessment_id: str,
        request: AssessmentRequest,
        token: CancellationToken,
        structured_logger: StructuredLogger
    ) -> Tuple[Optional[AssessmentStatus], int]:
        """
        Drive one assessment to a terminal status.

        Returns:
            (terminal status written by this run, issues found). The status
            is None when another writer owned the record.
        """
        current = AssessmentStatus.PENDING
        try:
            try:
                inventory = self._fetch_inventory(request)
            except Exception as e:
                logger.error(f"Inventory unavailable for assessment {assessment_id}: {type(e).__name__}: {e}")
                structured_logger.log_error(type(e).__name__, str(e), stage="inventory")
                return self._failed(assessment_id, current, f"Inventory unavailable: {e}", structured_logger), 0

            if token.is_cancelled:
                return self._failed(assessment_id, current, CANCELLED_MESSAGE, structured_logger), 0

            try:
                self.repository.update_assessment_status(
                    assessment_id, AssessmentStatus.IN_PROGRESS, expected_status=AssessmentStatus.PENDING
                )
            except (ConcurrentUpdateError, InvalidStatusTransitionError) as e:
                logger.warning(f"Assessment {assessment_id} already claimed by another writer: {e}")
                return None, 0
            current = AssessmentStatus.IN_PROGRESS
            structured_logger.log_status_transition(AssessmentStatus.PENDING.value, current.value)

            options = request.options
            filtered = inventory.filter_resource_types(
                options.resource_types_to_include, options.resource_types_to_exclude
            )
            nodes = self.registry.resolve(request.assessment_type, options)
            logger.info(
                f"Assessment {assessment_id}: running {[n.name for n in nodes]} "
                f"over {len(filtered)} resources"
            )

            outcomes = execute_nodes(
                nodes,
                filtered,
                AnalysisOptions(assessment_options=options, cancellation=token, assessment_id=assessment_id),
                self.settings,
                on_outcome=lambda outcome: self._record_outcome(assessment_id, outcome, structured_logger),
            )

            if token.is_cancelled:
                return self._failed(assessment_id, current, CANCELLED_MESSAGE, structured_logger), 0

            successes = {name: o for name, o in outcomes.items() if o.success}
            if not successes:
                causes = "; ".join(f"{name}: {o.error.cause}" for name, o in outcomes.items())
                return self._failed(
                    assessment_id, current, f"All categories failed: {causes}", structured_logger
                ), 0

            return self._complete(
                assessment_id, request, filtered, outcomes, self.registry.enabled_categories(nodes),
                structured_logger
            )

        except Exception as e:
            logger.error(f"Unexpected error running assessment {assessment_id}: {type(e).__name__}: {e}", exc_info=True)
            structured_logger.log_error(type(e).__name__, str(e), stage="execution")
            return self._failed(assessment_id, current, f"Unexpected error: {e}", structured_logger), 0

    def _fetch_inventory(self, request: AssessmentRequest) -> ResourceInventory:
        def fetch() -> ResourceInventory:
            return self.inventory_provider.fetch_inventory(request.subscription_ids)

        return retry_with_backoff(
            fetch,
            max_retries=self.settings.inventory_max_retries,
            initial_delay=self.settings.inventory_retry_delay_seconds
        )

    def _record_outcome(
        self,
        assessment_id: str,
        outcome: AnalyzerOutcome,
        structured_logger: StructuredLogger
    ) -> None:
        structured_logger.log_analyzer_execution(
            outcome.analyzer_name,
            outcome.success,
            outcome.duration_ms,
            error=None if outcome.success else outcome.error.cause,
            error_type=None if outcome.success else outcome.error.error_type,
        )
        if self.metrics_emitter:
            self.metrics_emitter.emit_analyzer_execution(outcome.analyzer_name, outcome.success, outcome.duration_ms)

        try:
            self.repository.save_category_result(assessment_id, outcome)
        except PersistenceError as e:
            logger.warning(f"Could not save partial result {outcome.analyzer_name} for {assessment_id}: {e}")

    def _complete(
        self,
        assessment_id: str,
        request: AssessmentRequest,
        inventory: ResourceInventory,
        outcomes: Dict[str, AnalyzerOutcome],
        enabled_categories,
        structured_logger: StructuredLogger
    ) -> Tuple[Optional[AssessmentStatus], int]:
        findings, summary = self.normalizer.normalize(
            assessment_id, outcomes, enabled_categories, total_resources=len(inventory)
        )
        if request.customer_id is None and inventory.customer_id:
            summary.customer_id = inventory.customer_id

        overall = aggregate_scores(
            (outcome.result.score, self.settings.weight_for(name))
            for name, outcome in outcomes.items()
            if outcome.success
        )
        overall_score = round(overall, 2) if overall is not None else None

        try:
            self.repository.create_findings(assessment_id, findings)
            self.repository.update_assessment_result(
                assessment_id,
                overall_score=overall_score,
                status=AssessmentStatus.COMPLETED,
                completed_date=datetime.now(timezone.utc),
                expected_status=AssessmentStatus.IN_PROGRESS,
                summary=summary,
            )
        except (ConcurrentUpdateError, InvalidStatusTransitionError) as e:
            logger.warning(f"Assessment {assessment_id} was finalized by another writer: {e}")
            return None, 0
        except PersistenceError as e:
            logger.error(f"Failed to persist results for assessment {assessment_id}: {e}")
            structured_logger.log_error(type(e).__name__, str(e), stage="persistence")
            return self._failed(
                assessment_id, AssessmentStatus.IN_PROGRESS,
                f"Failed to persist assessment results: {e}", structured_logger
            ), 0

        structured_logger.log_status_transition(AssessmentStatus.IN_PROGRESS.value, AssessmentStatus.COMPLETED.value)
        logger.info(
            f"Assessment {assessment_id} completed: overall_score={overall_score}, "
            f"issues_found={summary.issues_found}, "
            f"unavailable={summary.detailed_metrics.get('unavailable_categories', [])}"
        )
        return AssessmentStatus.COMPLETED, summary.issues_found

    def _failed(
        self,
        assessment_id: str,
        expected: AssessmentStatus,
        message: str,
        structured_logger: Optional[StructuredLogger]
    ) -> Optional[AssessmentStatus]:
        return AssessmentStatus.FAILED if self._fail(assessment_id, expected, message, structured_logger) else None

    def _fail(
        self,
        assessment_id: str,
        expected: AssessmentStatus,
        message: str,
        structured_logger: Optional[StructuredLogger]
    ) -> bool:
        """
        Move an assessment to Failed; returns False when another writer got there first.

        Transient persistence errors are retried so the record does not stay
        InProgress; AssessmentNotFoundError is not retried.
        """
        def write_failed():
            return self.repository.update_assessment_status(
                assessment_id, AssessmentStatus.FAILED, expected_status=expected, error_message=message
            )

        try:
            retry_with_backoff(
                write_failed,
                max_retries=self.settings.persistence_max_retries,
                initial_delay=self.settings.persistence_retry_delay_seconds,
                retryable_check=_is_transient_persistence_error
            )
        except (ConcurrentUpdateError, InvalidStatusTransitionError) as e:
            logger.warning(f"Assessment {assessment_id} not failed, status changed concurrently: {e}")
            return False
        except PersistenceError as e:
            logger.error(
                f"Could not record failure of assessment {assessment_id} after "
                f"{self.settings.persistence_max_retries} attempts: {e}",
                exc_info=True
            )
            return False

        logger.warning(f"Assessment {assessment_id} failed: {message}")
        if structured_logger is not None:
            structured_logger.log_status_transition(expected.value, AssessmentStatus.FAILED.value, error_message=message)
        return True
