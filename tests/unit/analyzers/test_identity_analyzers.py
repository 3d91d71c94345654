"""
Unit tests for the identity analyzers.

Tests cover:
- Unavailable analyzers when no provider is configured or the query fails
- Conditional Access coverage and policy state
- RBAC guest, service principal, custom role and owner checks
- Inactive users and stale or non-compliant devices
- Enterprise application credentials, permissions and owners
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from governance_engine.analyzers.identity import (
    ConditionalAccessAnalyzer,
    EnterpriseApplicationsAnalyzer,
    RbacAssignmentsAnalyzer,
    StaleIdentitiesAnalyzer,
)
from governance_engine.models import (
    ApplicationCredential,
    ConditionalAccessPolicy,
    DirectoryDevice,
    DirectorySnapshot,
    DirectoryUser,
    EnterpriseApplication,
    RoleAssignment,
    Severity,
)
from governance_engine.providers import StaticDirectoryProvider

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
SUBSCRIPTION_SCOPE = "/subscriptions/00000000-0000-0000-0000-000000000001"


def _run(analyzer_class, options, inventory_factory, **snapshot_fields):
    snapshot = DirectorySnapshot(tenant_id="tenant-1", collected_at=NOW, **snapshot_fields)
    analyzer = analyzer_class(StaticDirectoryProvider(snapshot))
    return analyzer.analyze(inventory_factory(), options)


def _types(outcome):
    return sorted(f.finding_type for f in outcome.result.findings)


def test_no_provider_is_unavailable(options, inventory_factory):
    outcome = ConditionalAccessAnalyzer().analyze(inventory_factory(), options)

    assert not outcome.success
    assert outcome.error.error_type == "AnalyzerUnavailableError"
    assert outcome.error.cause == "No directory provider configured"


def test_provider_failure_is_unavailable(options, inventory_factory):
    provider = Mock()
    provider.fetch_directory.side_effect = RuntimeError("boom")

    outcome = RbacAssignmentsAnalyzer(provider).analyze(inventory_factory(), options)

    assert outcome.error.cause == "Directory query failed: RuntimeError: boom"
    provider.fetch_directory.assert_called_once()


class TestConditionalAccess:

    def test_no_policies_is_critical(self, options, inventory_factory):
        outcome = _run(ConditionalAccessAnalyzer, options, inventory_factory)

        finding = outcome.result.findings[0]
        assert finding.finding_type == "NoConditionalAccessPolicies"
        assert finding.severity == Severity.CRITICAL
        assert finding.resource_id == "/tenants/tenant-1/conditionalAccess"
        assert outcome.result.score == 0.0

    def test_baseline_policies_pass(self, options, inventory_factory):
        outcome = _run(ConditionalAccessAnalyzer, options, inventory_factory, conditional_access_policies=(
            ConditionalAccessPolicy(id="p1", include_users=("All",), grant_controls=("mfa",)),
            ConditionalAccessPolicy(id="p2", include_users=("All",), client_app_types=("exchangeActiveSync", "other"),
                                    grant_controls=("block",)),
        ))

        assert outcome.result.findings == []
        assert outcome.result.metrics["policy_enforcement_percentage"] == 100.0

    def test_gaps_and_policy_states(self, options, inventory_factory):
        outcome = _run(ConditionalAccessAnalyzer, options, inventory_factory, conditional_access_policies=(
            ConditionalAccessPolicy(id="p1", display_name="Admins MFA", include_users=("admins",), grant_controls=("mfa",)),
            ConditionalAccessPolicy(id="p2", display_name="Old", state="disabled"),
            ConditionalAccessPolicy(id="p3", display_name="Trial", state="enabledForReportingButNotEnforced"),
        ))

        assert _types(outcome) == [
            "DisabledConditionalAccessPolicy",
            "LegacyAuthenticationNotBlocked",
            "ReportOnlyConditionalAccessPolicy",
            "UsersWithoutMfaCoverage",
        ]
        assert outcome.result.total_resources == 3


class TestRbacAssignments:

    def test_privileged_principals(self, options, inventory_factory):
        outcome = _run(RbacAssignmentsAnalyzer, options, inventory_factory, role_assignments=(
            RoleAssignment(id="a1", principal_id="g1", is_guest=True, role_definition_name="Contributor",
                           scope=SUBSCRIPTION_SCOPE + "/resourceGroups/rg-app"),
            RoleAssignment(id="a2", principal_id="sp1", principal_type="ServicePrincipal",
                           role_definition_name="Owner", scope=SUBSCRIPTION_SCOPE),
            RoleAssignment(id="a3", principal_id="sp2", principal_type="ServicePrincipal",
                           role_definition_name="Owner", scope=SUBSCRIPTION_SCOPE + "/resourceGroups/rg-app"),
            RoleAssignment(id="a4", principal_id="u1", role_definition_name="Ops Admin", scope=SUBSCRIPTION_SCOPE,
                           is_custom_role=True, role_actions=("*",)),
        ))

        by_id = {f.resource_id: f for f in outcome.result.findings}
        assert by_id["a1"].finding_type == "PrivilegedGuestAccess"
        assert by_id["a1"].severity == Severity.CRITICAL
        assert by_id["a2"].finding_type == "OverprivilegedServicePrincipal"
        assert by_id["a4"].finding_type == "CustomRoleUsage"
        assert "a3" not in by_id
        assert outcome.result.metrics["custom_role_assignments"] == 1

    @pytest.mark.parametrize("owners,flagged", [(3, False), (4, True)])
    def test_subscription_owner_limit(self, options, inventory_factory, owners, flagged):
        assignments = tuple(
            RoleAssignment(id=f"a{i}", principal_id=f"u{i}", role_definition_name="Owner", scope=SUBSCRIPTION_SCOPE)
            for i in range(owners)
        )

        outcome = _run(RbacAssignmentsAnalyzer, options, inventory_factory, role_assignments=assignments)

        assert ("OverprivilegedSubscriptionAccess" in _types(outcome)) is flagged


class TestStaleIdentities:

    def test_user_activity(self, options, inventory_factory):
        outcome = _run(StaleIdentitiesAnalyzer, options, inventory_factory, users=(
            DirectoryUser(id="u1", user_principal_name="active@x", last_sign_in=NOW - timedelta(days=10)),
            DirectoryUser(id="u2", user_principal_name="idle@x", last_sign_in=NOW - timedelta(days=120)),
            DirectoryUser(id="u3", user_principal_name="gone@x", last_sign_in=NOW - timedelta(days=200)),
            DirectoryUser(id="u4", user_principal_name="never@x", created_date=NOW - timedelta(days=100)),
            DirectoryUser(id="u5", user_principal_name="new@x", created_date=NOW - timedelta(days=5)),
            DirectoryUser(id="u6", account_enabled=False, last_sign_in=NOW - timedelta(days=400)),
        ))

        by_id = {f.resource_id: f for f in outcome.result.findings}
        assert set(by_id) == {"u2", "u3", "u4"}
        assert by_id["u2"].severity == Severity.MEDIUM
        assert by_id["u3"].severity == Severity.HIGH
        assert by_id["u4"].finding_type == "NeverSignedInUser"
        assert outcome.result.metrics["inactive_users"] == 3

    def test_naive_timestamps_are_utc(self, options, inventory_factory):
        naive = (NOW - timedelta(days=120)).replace(tzinfo=None)

        outcome = _run(StaleIdentitiesAnalyzer, options, inventory_factory, users=(
            DirectoryUser(id="u1", last_sign_in=naive),
        ))

        assert _types(outcome) == ["InactiveUser"]

    def test_devices(self, options, inventory_factory):
        outcome = _run(StaleIdentitiesAnalyzer, options, inventory_factory, devices=(
            DirectoryDevice(id="d1", is_compliant=False, approximate_last_sign_in=NOW),
            DirectoryDevice(id="d2", is_compliant=True, approximate_last_sign_in=NOW - timedelta(days=95)),
            DirectoryDevice(id="d3", account_enabled=False, approximate_last_sign_in=NOW - timedelta(days=300)),
        ))

        assert sorted((f.resource_id, f.finding_type) for f in outcome.result.findings) == [
            ("d1", "NonCompliantDevice"),
            ("d2", "StaleDevice"),
        ]
        assert outcome.result.metrics["non_compliant_devices"] == 1

    def test_empty_directory_scores_null(self, options, inventory_factory):
        assert _run(StaleIdentitiesAnalyzer, options, inventory_factory).result.score is None


class TestEnterpriseApplications:

    def test_application_checks(self, options, inventory_factory):
        outcome = _run(EnterpriseApplicationsAnalyzer, options, inventory_factory, applications=(
            EnterpriseApplication(
                id="app1",
                display_name="Legacy sync",
                credentials=(
                    ApplicationCredential(key_id="k1", end_date=NOW - timedelta(days=1)),
                    ApplicationCredential(key_id="k2", end_date=NOW + timedelta(days=10)),
                ),
                permissions=("Directory.ReadWrite.All", "User.Read"),
            ),
            EnterpriseApplication(
                id="app2",
                credentials=(ApplicationCredential(key_id="k3", end_date=NOW + timedelta(days=200)),),
                owners=("u1",),
            ),
        ))

        assert [f.resource_id for f in outcome.result.findings] == ["app1"] * 4
        assert _types(outcome) == [
            "ApplicationCredentialsExpiringSoon",
            "ApplicationExcessivePermissions",
            "ApplicationExpiredCredentials",
            "ApplicationWithoutOwner",
        ]
        assert "Directory.ReadWrite.All" in next(
            f.issue for f in outcome.result.findings if f.finding_type == "ApplicationExcessivePermissions"
        )
        assert outcome.result.metrics["risky_applications"] == 1
