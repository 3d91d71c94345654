"""
Identity and access analyzers.

These analyzers read tenant directory objects through a DirectoryProvider:
- EnterpriseApplicationsAnalyzer: credential hygiene and risky permissions
- StaleIdentitiesAnalyzer: inactive users and stale or non-compliant devices
- RbacAssignmentsAnalyzer: privileged and over-broad role assignments
- ConditionalAccessAnalyzer: MFA coverage and policy state

A missing provider or a provider failure makes the analyzer unavailable,
which is non-fatal to the assessment. Age checks are measured against the
snapshot's collection time so results are reproducible.
"""

import logging
from abc import abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from ..config import EngineSettings
from ..exceptions import AnalyzerUnavailableError
from ..models import (
    CategoryResult,
    DirectorySnapshot,
    Finding,
    FindingCategory,
    ResourceInventory,
    Severity,
)
from ..providers import DirectoryProvider
from ..scoring import deduction_score
from ..utils.error_handling import retry_with_backoff
from .base import AnalysisOptions, BaseAnalyzer

logger = logging.getLogger(__name__)

HIGH_PRIVILEGE_PERMISSIONS = {
    "Directory.ReadWrite.All",
    "RoleManagement.ReadWrite.Directory",
    "Application.ReadWrite.All",
    "AppRoleAssignment.ReadWrite.All",
    "User.ReadWrite.All",
    "Mail.ReadWrite",
    "Files.ReadWrite.All",
    "Sites.FullControl.All",
}

PRIVILEGED_ROLES = {"owner", "contributor", "user access administrator"}
LEGACY_CLIENT_APP_TYPES = {"exchangeactivesync", "other"}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DirectoryAnalyzer(BaseAnalyzer):
    """
    Base class for analyzers that need directory objects.

    Args:
        directory_provider: Source of directory snapshots, None when not configured
        settings: Engine settings
    """

    def __init__(self, directory_provider: Optional[DirectoryProvider] = None, settings: Optional[EngineSettings] = None):
        settings = settings or EngineSettings()
        self.directory_provider = directory_provider
        self.identity_settings = settings.identity
        self.points = settings.deduction_points

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.IDENTITY,)

    def load_directory(self) -> DirectorySnapshot:
        """
        Fetch the directory snapshot with retries.

        Raises:
            AnalyzerUnavailableError: If no provider is configured or the fetch fails
        """
        if self.directory_provider is None:
            raise AnalyzerUnavailableError(self.name, "No directory provider configured")

        def fetch_directory() -> DirectorySnapshot:
            return self.directory_provider.fetch_directory()

        try:
            return retry_with_backoff(fetch_directory, max_retries=2, initial_delay=0.5)
        except Exception as e:
            raise AnalyzerUnavailableError(self.name, f"Directory query failed: {type(e).__name__}: {e}") from e

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        snapshot = self.load_directory()
        options.raise_if_cancelled()
        return self.evaluate_directory(snapshot, _as_utc(snapshot.collected_at))

    @abstractmethod
    def evaluate_directory(self, snapshot: DirectorySnapshot, now: datetime) -> CategoryResult:
        """
        Analyze a directory snapshot.

        Args:
            snapshot: Directory objects for the tenant
            now: Reference time, the snapshot collection time in UTC

        Returns:
            CategoryResult for the analyzer
        """
        pass

    def _finding(
        self,
        finding_type: str,
        severity: Severity,
        issue: str,
        recommendation: str,
        object_id: str,
        object_name: str,
        object_type: str
    ) -> Finding:
        return self.make_finding(
            category=FindingCategory.IDENTITY,
            finding_type=finding_type,
            severity=severity,
            issue=issue,
            recommendation=recommendation,
            resource_id=object_id,
            resource_name=object_name,
            resource_type=object_type,
        )


class EnterpriseApplicationsAnalyzer(DirectoryAnalyzer):
    """Checks enterprise application credentials, permissions and ownership."""

    @property
    def name(self) -> str:
        return "EnterpriseApplications"

    @property
    def description(self) -> str:
        return "Checks enterprise applications for expired credentials, risky permissions and missing owners"

    def evaluate_directory(self, snapshot: DirectorySnapshot, now: datetime) -> CategoryResult:
        apps = snapshot.applications
        findings: List[Finding] = []
        warning_window = timedelta(days=self.identity_settings.credential_expiry_warning_days)

        for app in apps:
            end_dates = [_as_utc(c.end_date) for c in app.credentials if c.end_date is not None]
            expired = [d for d in end_dates if d < now]
            expiring = [d for d in end_dates if now <= d < now + warning_window]

            if expired:
                findings.append(self._finding(
                    "ApplicationExpiredCredentials", Severity.HIGH,
                    f"Application has {len(expired)} expired credential(s)",
                    "Remove expired secrets and certificates and rotate to new credentials",
                    app.id, app.display_name, "EnterpriseApplication",
                ))
            if expiring:
                findings.append(self._finding(
                    "ApplicationCredentialsExpiringSoon", Severity.MEDIUM,
                    f"Application has {len(expiring)} credential(s) expiring within "
                    f"{self.identity_settings.credential_expiry_warning_days} days",
                    "Rotate the credentials before they expire",
                    app.id, app.display_name, "EnterpriseApplication",
                ))

            risky = sorted(set(app.permissions) & HIGH_PRIVILEGE_PERMISSIONS)
            if risky:
                findings.append(self._finding(
                    "ApplicationExcessivePermissions", Severity.HIGH,
                    f"Application holds high-privilege permissions: {', '.join(risky)}",
                    "Reduce the application to least-privilege permissions",
                    app.id, app.display_name, "EnterpriseApplication",
                ))

            if not app.owners:
                findings.append(self._finding(
                    "ApplicationWithoutOwner", Severity.LOW,
                    "Application has no assigned owners",
                    "Assign at least two owners responsible for the application",
                    app.id, app.display_name, "EnterpriseApplication",
                ))

        metrics = {
            "total_applications": len(apps),
            "risky_applications": len({f.resource_id for f in findings if f.severity == Severity.HIGH}),
        }
        return self.make_result(deduction_score(findings, len(apps), self.points), len(apps), findings, metrics)


class StaleIdentitiesAnalyzer(DirectoryAnalyzer):
    """Checks for inactive users and stale or non-compliant devices."""

    @property
    def name(self) -> str:
        return "StaleIdentities"

    @property
    def description(self) -> str:
        return "Checks for inactive user accounts and stale or non-compliant devices"

    def evaluate_directory(self, snapshot: DirectorySnapshot, now: datetime) -> CategoryResult:
        inactive_cutoff = now - timedelta(days=self.identity_settings.inactive_days)
        critical_cutoff = now - timedelta(days=self.identity_settings.critical_inactive_days)
        findings: List[Finding] = []

        for user in snapshot.users:
            if not user.account_enabled:
                continue
            last_sign_in = _as_utc(user.last_sign_in)
            created = _as_utc(user.created_date)
            if last_sign_in is not None and last_sign_in < inactive_cutoff:
                days = (now - last_sign_in).days
                findings.append(self._finding(
                    "InactiveUser",
                    Severity.HIGH if last_sign_in < critical_cutoff else Severity.MEDIUM,
                    f"{user.user_type} account has not signed in for {days} days",
                    "Disable or remove the account after confirming it is no longer needed",
                    user.id, user.user_principal_name or user.display_name, "User",
                ))
            elif last_sign_in is None and created is not None and created < inactive_cutoff:
                findings.append(self._finding(
                    "NeverSignedInUser", Severity.MEDIUM,
                    f"{user.user_type} account has never signed in since it was created",
                    "Remove the account or confirm with its sponsor that it is required",
                    user.id, user.user_principal_name or user.display_name, "User",
                ))

        for device in snapshot.devices:
            if device.is_compliant is False:
                findings.append(self._finding(
                    "NonCompliantDevice", Severity.MEDIUM,
                    "Device does not meet compliance policy",
                    "Remediate the device or block it with a compliant-device Conditional Access policy",
                    device.id, device.display_name, "Device",
                ))
            last_seen = _as_utc(device.approximate_last_sign_in)
            if device.account_enabled and last_seen is not None and last_seen < inactive_cutoff:
                findings.append(self._finding(
                    "StaleDevice", Severity.LOW,
                    f"Device has not been seen for {(now - last_seen).days} days",
                    "Disable and later delete stale device objects",
                    device.id, device.display_name, "Device",
                ))

        applicable = len(snapshot.users) + len(snapshot.devices)
        metrics = {
            "total_users": len(snapshot.users),
            "total_devices": len(snapshot.devices),
            "inactive_users": sum(1 for f in findings if f.finding_type in ("InactiveUser", "NeverSignedInUser")),
            "non_compliant_devices": sum(1 for f in findings if f.finding_type == "NonCompliantDevice"),
        }
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)


class RbacAssignmentsAnalyzer(DirectoryAnalyzer):
    """Checks role assignments for over-privileged principals."""

    @property
    def name(self) -> str:
        return "RbacAssignments"

    @property
    def description(self) -> str:
        return "Checks RBAC role assignments for privileged guests, service principals and excessive owners"

    def evaluate_directory(self, snapshot: DirectorySnapshot, now: datetime) -> CategoryResult:
        assignments = snapshot.role_assignments
        findings: List[Finding] = []
        subscription_owners = {}

        for assignment in assignments:
            role = assignment.role_definition_name.lower()
            at_subscription = _is_subscription_scope(assignment.scope)

            if assignment.is_guest and role in PRIVILEGED_ROLES:
                findings.append(self._finding(
                    "PrivilegedGuestAccess", Severity.CRITICAL,
                    f"Guest account holds the {assignment.role_definition_name} role at {assignment.scope}",
                    "Remove privileged roles from guest accounts or convert them to member accounts under review",
                    assignment.id, assignment.principal_name, "RoleAssignment",
                ))

            if (
                assignment.principal_type.lower() == "serviceprincipal"
                and at_subscription
                and role in ("owner", "contributor")
            ):
                findings.append(self._finding(
                    "OverprivilegedServicePrincipal", Severity.HIGH,
                    f"Service principal holds {assignment.role_definition_name} on the whole subscription",
                    "Scope the assignment to the resource groups the workload needs, with a narrower role",
                    assignment.id, assignment.principal_name, "RoleAssignment",
                ))

            if assignment.is_custom_role and any(a.strip() == "*" for a in assignment.role_actions):
                findings.append(self._finding(
                    "CustomRoleUsage", Severity.MEDIUM,
                    f"Custom role '{assignment.role_definition_name}' grants wildcard actions",
                    "Replace wildcard actions with the explicit operations the role needs",
                    assignment.id, assignment.principal_name, "RoleAssignment",
                ))

            if at_subscription and role == "owner" and assignment.principal_type.lower() == "user":
                subscription_owners.setdefault(assignment.scope.rstrip("/"), set()).add(assignment.principal_id)

        limit = self.identity_settings.max_subscription_owners
        for scope, owners in sorted(subscription_owners.items()):
            if len(owners) > limit:
                findings.append(self._finding(
                    "OverprivilegedSubscriptionAccess", Severity.HIGH,
                    f"{len(owners)} users hold Owner on the subscription (limit {limit})",
                    "Reduce standing Owner assignments and use just-in-time elevation",
                    scope, scope.rsplit("/", 1)[-1], "Subscription",
                ))

        metrics = {
            "total_assignments": len(assignments),
            "privileged_assignments": sum(1 for a in assignments if a.role_definition_name.lower() in PRIVILEGED_ROLES),
            "custom_role_assignments": sum(1 for a in assignments if a.is_custom_role),
        }
        return self.make_result(deduction_score(findings, len(assignments), self.points), len(assignments), findings, metrics)


def _is_subscription_scope(scope: str) -> bool:
    parts = [p for p in scope.strip().split("/") if p]
    return len(parts) == 2 and parts[0].lower() == "subscriptions"


class ConditionalAccessAnalyzer(DirectoryAnalyzer):
    """Checks Conditional Access coverage for MFA and legacy authentication."""

    @property
    def name(self) -> str:
        return "ConditionalAccess"

    @property
    def description(self) -> str:
        return "Checks Conditional Access policies for MFA coverage, legacy auth blocking and policy state"

    def evaluate_directory(self, snapshot: DirectorySnapshot, now: datetime) -> CategoryResult:
        policies = snapshot.conditional_access_policies
        enabled = [p for p in policies if p.state.lower() == "enabled"]
        tenant_id = f"/tenants/{snapshot.tenant_id}/conditionalAccess"
        findings: List[Finding] = []

        if not enabled:
            findings.append(self._finding(
                "NoConditionalAccessPolicies", Severity.CRITICAL,
                "No Conditional Access policy is enabled for the tenant",
                "Enable baseline policies requiring MFA and blocking legacy authentication",
                tenant_id, "Conditional Access", "Tenant",
            ))
        else:
            requires_mfa = any(
                "all" in (u.lower() for u in p.include_users) and "mfa" in (g.lower() for g in p.grant_controls)
                for p in enabled
            )
            if not requires_mfa:
                findings.append(self._finding(
                    "UsersWithoutMfaCoverage", Severity.HIGH,
                    "No enabled policy requires MFA for all users",
                    "Create a policy that requires MFA for all users, excluding only break-glass accounts",
                    tenant_id, "Conditional Access", "Tenant",
                ))

            blocks_legacy = any(
                LEGACY_CLIENT_APP_TYPES & {c.lower() for c in p.client_app_types}
                and "block" in (g.lower() for g in p.grant_controls)
                for p in enabled
            )
            if not blocks_legacy:
                findings.append(self._finding(
                    "LegacyAuthenticationNotBlocked", Severity.MEDIUM,
                    "No enabled policy blocks legacy authentication protocols",
                    "Create a policy that blocks Exchange ActiveSync and other legacy clients",
                    tenant_id, "Conditional Access", "Tenant",
                ))

        for policy in policies:
            state = policy.state.lower()
            if state == "disabled":
                findings.append(self._finding(
                    "DisabledConditionalAccessPolicy", Severity.MEDIUM,
                    f"Policy '{policy.display_name}' is disabled",
                    "Enable the policy or delete it if it is obsolete",
                    policy.id, policy.display_name, "ConditionalAccessPolicy",
                ))
            elif state == "enabledforreportingbutnotenforced":
                findings.append(self._finding(
                    "ReportOnlyConditionalAccessPolicy", Severity.LOW,
                    f"Policy '{policy.display_name}' is in report-only mode",
                    "Review the report-only results and enforce the policy",
                    policy.id, policy.display_name, "ConditionalAccessPolicy",
                ))

        metrics = {
            "total_policies": len(policies),
            "enabled_policies": len(enabled),
            "policy_enforcement_percentage": round(len(enabled) / len(policies) * 100.0, 2) if policies else 0.0,
        }
        applicable = max(1, len(policies))
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)
