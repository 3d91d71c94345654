"""
Pydantic models for assessment requests, analyzer outcomes and records.

This module defines:
- AssessmentType / AssessmentCategory: what an assessment covers
- AssessmentStatus: the forward-only lifecycle state machine
- NamingPreferences: client naming conventions the naming analyzer scores against
- AssessmentOptions / AssessmentRequest: validated caller input
- CategoryResult / AnalyzerError / AnalyzerOutcome: per-analyzer result type
- AssessmentSummary / Assessment: the persisted assessment record
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .finding_models import Finding, Recommendation
from .resource_models import ENVIRONMENT_TOKENS


class AssessmentCategory(str, Enum):
    """Governance domain an assessment type belongs to"""
    RESOURCE_GOVERNANCE = "ResourceGovernance"
    IDENTITY_ACCESS_MANAGEMENT = "IdentityAccessManagement"
    BUSINESS_CONTINUITY = "BusinessContinuity"
    SECURITY_POSTURE = "SecurityPosture"


class AssessmentType(str, Enum):
    """Kinds of assessment a caller can request"""
    NAMING_CONVENTION = "NamingConvention"
    TAGGING = "Tagging"
    GOVERNANCE_FULL = "GovernanceFull"
    FULL = "Full"

    ENTERPRISE_APPLICATIONS = "EnterpriseApplications"
    STALE_USERS_DEVICES = "StaleUsersDevices"
    RESOURCE_IAM_RBAC = "ResourceIamRbac"
    CONDITIONAL_ACCESS = "ConditionalAccess"
    IDENTITY_FULL = "IdentityFull"

    BACKUP_COVERAGE = "BackupCoverage"
    RECOVERY_CONFIGURATION = "RecoveryConfiguration"
    BUSINESS_CONTINUITY_FULL = "BusinessContinuityFull"

    NETWORK_SECURITY = "NetworkSecurity"
    DEFENDER_FOR_CLOUD = "DefenderForCloud"
    SECURITY_FULL = "SecurityFull"

    COMPREHENSIVE = "Comprehensive"

    @property
    def category(self) -> AssessmentCategory:
        return _TYPE_CATEGORIES.get(self, AssessmentCategory.RESOURCE_GOVERNANCE)


_TYPE_CATEGORIES = {
    AssessmentType.ENTERPRISE_APPLICATIONS: AssessmentCategory.IDENTITY_ACCESS_MANAGEMENT,
    AssessmentType.STALE_USERS_DEVICES: AssessmentCategory.IDENTITY_ACCESS_MANAGEMENT,
    AssessmentType.RESOURCE_IAM_RBAC: AssessmentCategory.IDENTITY_ACCESS_MANAGEMENT,
    AssessmentType.CONDITIONAL_ACCESS: AssessmentCategory.IDENTITY_ACCESS_MANAGEMENT,
    AssessmentType.IDENTITY_FULL: AssessmentCategory.IDENTITY_ACCESS_MANAGEMENT,
    AssessmentType.BACKUP_COVERAGE: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.RECOVERY_CONFIGURATION: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.BUSINESS_CONTINUITY_FULL: AssessmentCategory.BUSINESS_CONTINUITY,
    AssessmentType.NETWORK_SECURITY: AssessmentCategory.SECURITY_POSTURE,
    AssessmentType.DEFENDER_FOR_CLOUD: AssessmentCategory.SECURITY_POSTURE,
    AssessmentType.SECURITY_FULL: AssessmentCategory.SECURITY_POSTURE,
}


class AssessmentStatus(str, Enum):
    """Assessment lifecycle: Pending -> InProgress -> {Completed, Failed}"""
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AssessmentStatus.COMPLETED, AssessmentStatus.FAILED)

    def can_transition_to(self, new_status: "AssessmentStatus") -> bool:
        """Whether moving from this status to new_status is a forward transition."""
        return new_status in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    AssessmentStatus.PENDING: {AssessmentStatus.IN_PROGRESS, AssessmentStatus.FAILED},
    AssessmentStatus.IN_PROGRESS: {AssessmentStatus.COMPLETED, AssessmentStatus.FAILED},
    AssessmentStatus.COMPLETED: set(),
    AssessmentStatus.FAILED: set(),
}


# Analyzer name -> AssessmentOptions flag that enables it
ANALYZER_FLAGS = {
    "NamingConvention": "analyze_naming_conventions",
    "Tagging": "analyze_tagging",
    "Dependency": "analyze_dependencies",
    "NetworkSecurity": "analyze_network_security",
    "PrivateEndpoints": "analyze_private_endpoints",
    "DataEncryption": "analyze_data_encryption",
    "ThreatProtection": "analyze_threat_protection",
    "EnterpriseApplications": "analyze_enterprise_applications",
    "StaleIdentities": "analyze_stale_identities",
    "RbacAssignments": "analyze_rbac",
    "ConditionalAccess": "analyze_conditional_access",
    "BackupCoverage": "analyze_backup_coverage",
    "RecoveryConfiguration": "analyze_recovery_configuration",
}


NAMING_STYLES = (
    "kebab-case",
    "snake_case",
    "dotted",
    "lowercase",
    "uppercase",
    "pascalcase",
    "camelcase",
    "uuid",
    "other",
)


class NamingPreferences(BaseModel):
    """
    Client naming conventions.

    When present on a request the naming analyzer scores names against these
    preferences instead of the dominant pattern of each resource type.
    """
    allowed_styles: List[str] = Field(default_factory=list, description="Accepted naming styles, empty accepts any")
    required_prefixes: Dict[str, List[str]] = Field(
        default_factory=dict, description="Resource type -> accepted name prefixes"
    )
    require_environment_indicator: bool = Field(False, description="Names must contain an environment token")
    environment_indicators: List[str] = Field(default_factory=lambda: list(ENVIRONMENT_TOKENS))

    @field_validator("allowed_styles")
    @classmethod
    def _known_styles(cls, value: List[str]) -> List[str]:
        styles = [s.strip().lower() for s in value]
        unknown = [s for s in styles if s not in NAMING_STYLES]
        if unknown:
            raise ValueError(f"Unknown naming styles {unknown}, expected one of {list(NAMING_STYLES)}")
        return styles

    @field_validator("required_prefixes")
    @classmethod
    def _lower_prefixes(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {t.lower(): [p.lower() for p in prefixes if p] for t, prefixes in value.items()}

    @field_validator("environment_indicators")
    @classmethod
    def _lower_indicators(cls, value: List[str]) -> List[str]:
        return [i.lower() for i in value if i]


class AssessmentOptions(BaseModel):
    """Per-request analysis options"""
    analyze_naming_conventions: bool = True
    analyze_tagging: bool = True
    analyze_dependencies: bool = True
    analyze_network_security: bool = True
    analyze_private_endpoints: bool = True
    analyze_data_encryption: bool = True
    analyze_threat_protection: bool = True
    analyze_enterprise_applications: bool = True
    analyze_stale_identities: bool = True
    analyze_rbac: bool = True
    analyze_conditional_access: bool = True
    analyze_backup_coverage: bool = True
    analyze_recovery_configuration: bool = True

    resource_types_to_include: List[str] = Field(default_factory=list, description="Only analyze these resource types")
    resource_types_to_exclude: List[str] = Field(default_factory=list, description="Never analyze these resource types")
    required_tags: Optional[List[str]] = Field(None, description="Overrides the configured required tag set")
    naming_preferences: Optional[NamingPreferences] = Field(None, description="Client naming conventions")

    def is_analyzer_enabled(self, analyzer_name: str) -> bool:
        """Analyzers without a flag are always enabled."""
        flag = ANALYZER_FLAGS.get(analyzer_name)
        return True if flag is None else bool(getattr(self, flag))


class AssessmentRequest(BaseModel):
    """Caller request to run one assessment"""
    environment_id: str = Field(..., description="Target client environment")
    subscription_ids: List[str] = Field(default_factory=list, description="Subscriptions to assess")
    assessment_type: AssessmentType = Field(..., description="Kind of assessment to run")
    customer_id: Optional[str] = Field(None, description="Customer id, taken from the inventory when absent")
    options: AssessmentOptions = Field(default_factory=AssessmentOptions)


class CategoryResult(BaseModel):
    """Result produced by one analyzer or meta-analyzer"""
    category: str = Field(..., description="Analyzer name that produced the result")
    score: Optional[float] = Field(None, ge=0.0, le=100.0, description="0-100, or None when not applicable")
    total_resources: int = Field(0, description="Resources considered by the analyzer")
    findings: List[Finding] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict, description="Category-specific metrics")


class AnalyzerError(BaseModel):
    """Non-fatal failure of one analyzer"""
    category: str = Field(..., description="Analyzer name that failed")
    cause: str = Field(..., description="Human-readable cause")
    error_type: str = Field("AnalyzerError", description="Exception class or failure kind")


class AnalyzerOutcome(BaseModel):
    """Result type for an analyzer run: exactly one of result or error is set"""
    analyzer_name: str
    result: Optional[CategoryResult] = None
    error: Optional[AnalyzerError] = None
    duration_ms: float = 0.0

    @model_validator(mode="after")
    def _exactly_one(self) -> "AnalyzerOutcome":
        if (self.result is None) == (self.error is None):
            raise ValueError("AnalyzerOutcome requires exactly one of result or error")
        return self

    @property
    def success(self) -> bool:
        return self.result is not None

    @classmethod
    def ok(cls, result: CategoryResult, duration_ms: float = 0.0) -> "AnalyzerOutcome":
        return cls(analyzer_name=result.category, result=result, duration_ms=duration_ms)

    @classmethod
    def failed(
        cls,
        analyzer_name: str,
        cause: str,
        error_type: str = "AnalyzerError",
        duration_ms: float = 0.0
    ) -> "AnalyzerOutcome":
        return cls(
            analyzer_name=analyzer_name,
            error=AnalyzerError(category=analyzer_name, cause=cause, error_type=error_type),
            duration_ms=duration_ms,
        )


class AssessmentSummary(BaseModel):
    """Aggregate fields written together with the final status"""
    customer_id: Optional[str] = Field(None, description="Customer id resolved from the inventory")
    recommendations: List[Recommendation] = Field(default_factory=list)
    total_resources_analyzed: int = 0
    issues_found: int = 0
    detailed_metrics: Dict[str, Any] = Field(default_factory=dict)


class Assessment(BaseModel):
    """Persisted assessment record and the snapshot returned to callers"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    customer_id: Optional[str] = None
    environment_id: str
    assessment_type: AssessmentType
    status: AssessmentStatus = AssessmentStatus.PENDING
    overall_score: Optional[float] = None
    started_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_date: Optional[datetime] = None
    error_message: Optional[str] = None
    category_results: Dict[str, CategoryResult] = Field(default_factory=dict)
    category_errors: Dict[str, AnalyzerError] = Field(default_factory=dict)
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    total_resources_analyzed: int = 0
    issues_found: int = 0
    detailed_metrics: Dict[str, Any] = Field(default_factory=dict)
    request: Optional[AssessmentRequest] = Field(None, description="Originating request, replayed by pending sweeps")

    @classmethod
    def pending(cls, request: AssessmentRequest) -> "Assessment":
        """Create a new Pending record for a validated request."""
        return cls(
            customer_id=request.customer_id,
            environment_id=request.environment_id,
            assessment_type=request.assessment_type,
            request=request,
        )
