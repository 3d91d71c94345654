"""
Models package for governance assessments.

Exports all model classes for easy importing.
"""

from .finding_models import (
    Severity,
    FindingCategory,
    FindingStatus,
    EffortLevel,
    Priority,
    Finding,
    Recommendation,
    sort_findings,
)
from .resource_models import AzureResource, ResourceInventory
from .directory_models import (
    DirectoryUser,
    DirectoryDevice,
    ApplicationCredential,
    EnterpriseApplication,
    ConditionalAccessPolicy,
    RoleAssignment,
    DirectorySnapshot,
)
from .assessment_models import (
    AssessmentCategory,
    AssessmentType,
    AssessmentStatus,
    NamingPreferences,
    AssessmentOptions,
    AssessmentRequest,
    CategoryResult,
    AnalyzerError,
    AnalyzerOutcome,
    AssessmentSummary,
    Assessment,
)

__all__ = [
    "Severity",
    "FindingCategory",
    "FindingStatus",
    "EffortLevel",
    "Priority",
    "Finding",
    "Recommendation",
    "sort_findings",
    "AzureResource",
    "ResourceInventory",
    "DirectoryUser",
    "DirectoryDevice",
    "ApplicationCredential",
    "EnterpriseApplication",
    "ConditionalAccessPolicy",
    "RoleAssignment",
    "DirectorySnapshot",
    "AssessmentCategory",
    "AssessmentType",
    "AssessmentStatus",
    "NamingPreferences",
    "AssessmentOptions",
    "AssessmentRequest",
    "CategoryResult",
    "AnalyzerError",
    "AnalyzerOutcome",
    "AssessmentSummary",
    "Assessment",
]
