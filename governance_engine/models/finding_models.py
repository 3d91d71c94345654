"""
Pydantic models for findings and recommendations.

This module defines the shared shapes every analyzer reports into:
- Severity: ordered severity levels
- FindingCategory: governance category a finding belongs to
- Finding: resource-scoped issue with remediation guidance
- Recommendation: category-level guidance derived from findings
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Severity levels for findings"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, 0 for the most severe level."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class FindingCategory(str, Enum):
    """Governance category a finding is reported under"""
    NAMING_CONVENTION = "NamingConvention"
    TAG_COVERAGE = "TagCoverage"
    TAG_QUALITY = "TagQuality"
    SECURITY = "Security"
    COST = "Cost"
    IDENTITY = "Identity"
    BUSINESS_CONTINUITY = "BusinessContinuity"
    DEPENDENCY = "Dependency"


class FindingStatus(str, Enum):
    """Workflow status of a finding. The engine only ever writes NEW."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class EffortLevel(str, Enum):
    """Estimated remediation effort"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    """Recommendation priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Finding(BaseModel):
    """Governance finding with remediation guidance"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique finding identifier")
    assessment_id: Optional[str] = Field(None, description="Owning assessment identifier")
    category: FindingCategory = Field(..., description="Governance category of the finding")
    finding_type: str = Field(..., description="Analyzer-specific violation type, e.g. PatternMismatch")
    resource_id: str = Field(..., description="Identifier of the affected resource")
    resource_name: str = Field("", description="Name of the affected resource")
    resource_type: str = Field("", description="Type of the affected resource")
    severity: Severity = Field(..., description="Severity level of the finding")
    issue: str = Field(..., description="Description of the issue")
    recommendation: str = Field(..., description="Specific steps to remediate the issue")
    estimated_effort: Optional[EffortLevel] = Field(None, description="Estimated remediation effort")
    status: FindingStatus = Field(FindingStatus.NEW, description="Workflow status")


def finding_sort_key(finding: Finding):
    """Sort key ordering findings by severity, then category, then resource name."""
    return (finding.severity.rank, finding.category.value, finding.resource_name, finding.resource_id)


def sort_findings(findings: List[Finding]) -> List[Finding]:
    """Return findings ordered Critical to Low, then by category name."""
    return sorted(findings, key=finding_sort_key)


class Recommendation(BaseModel):
    """Category-level recommendation derived from findings"""
    category: str = Field(..., description="Category the recommendation addresses")
    title: str = Field(..., description="Short recommendation title")
    description: str = Field(..., description="Summary of the underlying issues")
    priority: Priority = Field(..., description="Recommendation priority")
    estimated_effort: EffortLevel = Field(..., description="Estimated remediation effort")
    affected_resource_ids: List[str] = Field(default_factory=list, description="Up to 10 affected resource ids")
    action_plan: List[str] = Field(default_factory=list, description="Ordered remediation steps")
