"""
Base analyzer interface for governance assessments.

This module defines the abstract base class that every category analyzer
extends, and the options object passed to each analyzer run.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import AnalysisCancelledError, AnalyzerUnavailableError
from ..models import (
    AnalyzerOutcome,
    AssessmentOptions,
    AzureResource,
    CategoryResult,
    Finding,
    FindingCategory,
    ResourceInventory,
    Severity,
    sort_findings,
)
from ..utils.cancellation import CancellationToken, WorkerSlots

logger = logging.getLogger(__name__)


class AnalysisOptions(BaseModel):
    """Options for one analyzer run: request options plus cancellation"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    assessment_options: AssessmentOptions = Field(default_factory=AssessmentOptions)
    cancellation: CancellationToken = Field(default_factory=CancellationToken)
    assessment_id: Optional[str] = None
    worker_slots: Optional[WorkerSlots] = Field(None, description="Shared bound on concurrently running analyzers")

    def with_cancellation(self, token: CancellationToken) -> "AnalysisOptions":
        return self.model_copy(update={"cancellation": token})

    def with_worker_slots(self, slots: WorkerSlots) -> "AnalysisOptions":
        return self.model_copy(update={"worker_slots": slots})

    def raise_if_cancelled(self) -> None:
        self.cancellation.raise_if_cancelled()


class BaseAnalyzer(ABC):
    """
    Abstract base class for all category analyzers.

    Each analyzer must implement:
    - name: Unique analyzer identifier (also the category result key)
    - description: Human-readable description of what it checks
    - categories: Finding categories it may emit
    - evaluate: Core analysis logic returning a CategoryResult

    Analyzers must not mutate the inventory and must be deterministic for a
    fixed inventory and options.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Analyzer name.

        Returns:
            Unique analyzer identifier (e.g., "NamingConvention")
        """
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """
        Analyzer description.

        Returns:
            Human-readable description of what the analyzer checks
        """
        pass

    @property
    @abstractmethod
    def categories(self) -> Tuple[FindingCategory, ...]:
        """
        Finding categories this analyzer may emit.

        Returns:
            Tuple of FindingCategory values
        """
        pass

    @abstractmethod
    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        """
        Analyze the inventory.

        Args:
            inventory: Read-only resource inventory
            options: Analysis options for this run

        Returns:
            CategoryResult with score, findings and metrics

        Raises:
            AnalyzerUnavailableError: If the category cannot be evaluated
        """
        pass

    def analyze(self, inventory: ResourceInventory, options: AnalysisOptions) -> AnalyzerOutcome:
        """
        Run the analyzer and convert every failure into an error outcome.

        Args:
            inventory: Read-only resource inventory
            options: Analysis options for this run

        Returns:
            AnalyzerOutcome holding either a CategoryResult or an AnalyzerError
        """
        start_time = time.time()
        try:
            options.raise_if_cancelled()
            result = self.evaluate(inventory, options)
            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                f"Analyzer {self.name} completed in {duration_ms:.1f}ms: "
                f"score={result.score}, findings={len(result.findings)}"
            )
            return AnalyzerOutcome.ok(result, duration_ms=duration_ms)

        except AnalysisCancelledError as e:
            logger.warning(f"Analyzer {self.name} cancelled: {e}")
            return AnalyzerOutcome.failed(
                self.name, str(e), "AnalysisCancelled",
                duration_ms=(time.time() - start_time) * 1000
            )
        except AnalyzerUnavailableError as e:
            logger.warning(f"Analyzer {self.name} unavailable: {e.cause}")
            return AnalyzerOutcome.failed(
                self.name, e.cause, type(e).__name__,
                duration_ms=(time.time() - start_time) * 1000
            )
        except Exception as e:
            logger.error(f"Analyzer {self.name} failed: {type(e).__name__}: {e}", exc_info=True)
            return AnalyzerOutcome.failed(
                self.name, str(e), type(e).__name__,
                duration_ms=(time.time() - start_time) * 1000
            )

    def make_finding(
        self,
        category: FindingCategory,
        finding_type: str,
        severity: Severity,
        issue: str,
        recommendation: str,
        resource: Optional[AzureResource] = None,
        resource_id: Optional[str] = None,
        resource_name: str = "",
        resource_type: str = ""
    ) -> Finding:
        """Build a Finding for a resource, or for a tenant/subscription scope."""
        if resource is not None:
            resource_id = resource.id
            resource_name = resource.name
            resource_type = resource.type
        return Finding(
            category=category,
            finding_type=finding_type,
            severity=severity,
            issue=issue,
            recommendation=recommendation,
            resource_id=resource_id or "",
            resource_name=resource_name,
            resource_type=resource_type,
        )

    def make_result(
        self,
        score: Optional[float],
        total_resources: int,
        findings: List[Finding],
        metrics: Optional[Dict[str, Any]] = None
    ) -> CategoryResult:
        if score is not None:
            score = round(score, 2)
        return CategoryResult(
            category=self.name,
            score=score,
            total_resources=total_resources,
            findings=sort_findings(findings),
            metrics=metrics or {},
        )
