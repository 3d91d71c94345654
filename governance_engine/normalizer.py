"""
Finding and recommendation normalizer.

Flattens the findings of every successful analyzer outcome into a single
ordered list owned by one assessment, fills in remediation effort, and
derives category-level recommendations and the assessment's detailed
metrics.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .models import (
    AnalyzerOutcome,
    AssessmentSummary,
    EffortLevel,
    Finding,
    FindingCategory,
    Priority,
    Recommendation,
    Severity,
    sort_findings,
)

logger = logging.getLogger(__name__)

MAX_AFFECTED_RESOURCES = 10
MAX_ACTION_STEPS = 5

# Finding type -> remediation effort when the analyzer did not set one
DEFAULT_EFFORT_BY_TYPE: Dict[str, EffortLevel] = {
    "PatternMismatch": EffortLevel.LOW,
    "NameTooLong": EffortLevel.MEDIUM,
    "InvalidCharacters": EffortLevel.HIGH,
    "NoTags": EffortLevel.MEDIUM,
    "MissingRequiredTags": EffortLevel.MEDIUM,
    "EmptyTagValues": EffortLevel.LOW,
    "InconsistentTagNaming": EffortLevel.LOW,
    "UnattachedDisk": EffortLevel.LOW,
    "UnassociatedPublicIp": EffortLevel.LOW,
    "OrphanedNetworkInterface": EffortLevel.LOW,
    "UnassociatedNetworkSecurityGroup": EffortLevel.LOW,
    "EmptyAppServicePlan": EffortLevel.LOW,
    "ApplicationExpiredCredentials": EffortLevel.LOW,
    "ApplicationCredentialsExpiringSoon": EffortLevel.LOW,
    "ApplicationExcessivePermissions": EffortLevel.MEDIUM,
    "ApplicationWithoutOwner": EffortLevel.LOW,
    "InactiveUser": EffortLevel.LOW,
    "NeverSignedInUser": EffortLevel.LOW,
    "NonCompliantDevice": EffortLevel.MEDIUM,
    "StaleDevice": EffortLevel.LOW,
    "PrivilegedGuestAccess": EffortLevel.MEDIUM,
    "OverprivilegedServicePrincipal": EffortLevel.MEDIUM,
    "OverprivilegedSubscriptionAccess": EffortLevel.MEDIUM,
    "CustomRoleUsage": EffortLevel.HIGH,
    "NoConditionalAccessPolicies": EffortLevel.HIGH,
    "UsersWithoutMfaCoverage": EffortLevel.MEDIUM,
    "LegacyAuthenticationNotBlocked": EffortLevel.MEDIUM,
    "SingleRegionDeployment": EffortLevel.HIGH,
    "NoGlobalTrafficRouting": EffortLevel.HIGH,
    "NoRecoveryServicesVault": EffortLevel.MEDIUM,
    "SubnetWithoutNsg": EffortLevel.MEDIUM,
    "DdosProtectionDisabled": EffortLevel.LOW,
    "ApplicationGatewayWithoutWaf": EffortLevel.MEDIUM,
    "PublicEndpointWithoutPrivateLink": EffortLevel.HIGH,
}

# Recommendation group -> (finding categories, title, description lead, effort threshold)
RECOMMENDATION_GROUPS: List[Tuple[str, Tuple[FindingCategory, ...], str, str, int]] = [
    (
        "NamingConvention",
        (FindingCategory.NAMING_CONVENTION,),
        "Standardize Naming Conventions",
        "Consistent naming standards improve resource organization and management",
        20,
    ),
    (
        "Tagging",
        (FindingCategory.TAG_COVERAGE, FindingCategory.TAG_QUALITY),
        "Implement Comprehensive Tagging Strategy",
        "Proper resource tagging enables cost management, automation and governance",
        50,
    ),
    (
        "Security",
        (FindingCategory.SECURITY,),
        "Enhance Security Posture",
        "Reducing network exposure and enforcing encryption lowers the attack surface",
        20,
    ),
    (
        "Identity",
        (FindingCategory.IDENTITY,),
        "Address Identity and Access Management Issues",
        "Least-privilege access and credential hygiene limit the impact of compromised identities",
        10,
    ),
    (
        "BusinessContinuity",
        (FindingCategory.BUSINESS_CONTINUITY,),
        "Improve Business Continuity Posture",
        "Backup protection and regional redundancy shorten recovery from outages",
        10,
    ),
]


def _priority_for(findings: List[Finding]) -> Priority:
    most_severe = min(f.severity.rank for f in findings)
    if most_severe <= Severity.HIGH.rank:
        return Priority.HIGH
    if most_severe == Severity.MEDIUM.rank:
        return Priority.MEDIUM
    return Priority.LOW


class FindingNormalizer:
    """
    Maps analyzer outcomes into the shared Finding and Recommendation shapes.

    Args:
        effort_by_type: Overrides for the finding type -> effort table
    """

    def __init__(self, effort_by_type: Optional[Mapping[str, EffortLevel]] = None):
        self.effort_by_type = dict(DEFAULT_EFFORT_BY_TYPE)
        if effort_by_type:
            self.effort_by_type.update(effort_by_type)

    def normalize(
        self,
        assessment_id: str,
        outcomes: Mapping[str, AnalyzerOutcome],
        enabled_categories: Iterable[FindingCategory],
        total_resources: int = 0
    ) -> Tuple[List[Finding], AssessmentSummary]:
        """
        Flatten, stamp and order findings and derive the assessment summary.

        Args:
            assessment_id: Owning assessment id stamped on every finding
            outcomes: Analyzer outcomes keyed by analyzer name
            enabled_categories: Finding categories the request enabled;
                findings outside this set are dropped
            total_resources: Size of the analyzed inventory

        Returns:
            Tuple of (sorted findings, AssessmentSummary)
        """
        enabled = set(enabled_categories)
        findings: List[Finding] = []
        dropped = 0

        for name, outcome in outcomes.items():
            if not outcome.success:
                continue
            for finding in outcome.result.findings:
                if finding.category not in enabled:
                    dropped += 1
                    continue
                findings.append(self._stamp(finding, assessment_id))

        if dropped:
            logger.warning(
                f"Dropped {dropped} finding(s) outside the enabled categories for assessment {assessment_id}"
            )

        findings = sort_findings(findings)
        summary = AssessmentSummary(
            recommendations=self.generate_recommendations(findings),
            total_resources_analyzed=total_resources,
            issues_found=len(findings),
            detailed_metrics=self.build_metrics(findings, outcomes),
        )
        return findings, summary

    def _stamp(self, finding: Finding, assessment_id: str) -> Finding:
        update = {"assessment_id": assessment_id}
        if finding.estimated_effort is None:
            update["estimated_effort"] = self.effort_by_type.get(finding.finding_type, EffortLevel.MEDIUM)
        return finding.model_copy(update=update)

    def generate_recommendations(self, findings: List[Finding]) -> List[Recommendation]:
        """
        Derive one recommendation per category group that has findings.

        Args:
            findings: Findings already sorted most severe first

        Returns:
            Recommendations, highest priority first
        """
        recommendations: List[Recommendation] = []
        grouped = set()

        for key, categories, title, lead, effort_threshold in RECOMMENDATION_GROUPS:
            group = [f for f in findings if f.category in categories]
            grouped.update(categories)
            if group:
                recommendations.append(self._build(key, title, lead, effort_threshold, group))

        for category in FindingCategory:
            if category in grouped:
                continue
            group = [f for f in findings if f.category == category]
            if group:
                recommendations.append(self._build(
                    category.value,
                    f"Address {category.value} Issues",
                    f"Resolving {category.value.lower()} findings reduces waste and operational risk",
                    20,
                    group,
                ))

        order = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
        return sorted(recommendations, key=lambda r: order[r.priority])

    def _build(self, key: str, title: str, lead: str, effort_threshold: int, group: List[Finding]) -> Recommendation:
        affected: List[str] = []
        for finding in group:
            if finding.resource_id and finding.resource_id not in affected:
                affected.append(finding.resource_id)

        steps: List[str] = []
        for finding in group:
            if finding.recommendation not in steps:
                steps.append(finding.recommendation)
            if len(steps) == MAX_ACTION_STEPS:
                break

        severities = Counter(f.severity.value for f in group)
        breakdown = ", ".join(f"{severities[s.value]} {s.value}" for s in Severity if severities[s.value])
        return Recommendation(
            category=key,
            title=title,
            description=f"Found {len(group)} issue(s) across {len(affected)} resource(s) ({breakdown}). {lead}.",
            priority=_priority_for(group),
            estimated_effort=EffortLevel.HIGH if len(group) > effort_threshold else EffortLevel.MEDIUM,
            affected_resource_ids=affected[:MAX_AFFECTED_RESOURCES],
            action_plan=steps,
        )

    def build_metrics(self, findings: List[Finding], outcomes: Mapping[str, AnalyzerOutcome]) -> Dict[str, object]:
        """Distribution and availability metrics stored on the assessment."""
        unavailable = [name for name, outcome in outcomes.items() if not outcome.success]
        metrics: Dict[str, object] = {
            "category_distribution": dict(Counter(f.category.value for f in findings)),
            "severity_distribution": {
                s.value: sum(1 for f in findings if f.severity == s) for s in Severity
            },
            "resource_type_distribution": dict(Counter(f.resource_type for f in findings if f.resource_type)),
            "category_scores": {
                name: outcome.result.score for name, outcome in outcomes.items() if outcome.success
            },
            "unavailable_categories": unavailable,
            "unavailable_category_count": len(unavailable),
        }
        if unavailable:
            metrics["unavailable_summary"] = f"{len(unavailable)} categories unavailable"
        return metrics
