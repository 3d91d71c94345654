"""
Data protection analyzers: encryption settings and Defender for Cloud plans.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..config import EngineSettings
from ..models import (
    AzureResource,
    CategoryResult,
    Finding,
    FindingCategory,
    ResourceInventory,
    Severity,
)
from ..scoring import deduction_score
from .base import AnalysisOptions, BaseAnalyzer

logger = logging.getLogger(__name__)

STORAGE_ACCOUNTS = "microsoft.storage/storageaccounts"
DISKS = "microsoft.compute/disks"
SQL_DATABASES = "microsoft.sql/servers/databases"
WEB_SITES = "microsoft.web/sites"
VIRTUAL_MACHINES = "microsoft.compute/virtualmachines"
DEFENDER_PRICINGS = "microsoft.security/pricings"

WEAK_TLS_VERSIONS = {"tls1_0", "tls1_1", "1.0", "1.1"}

# Defender plan name -> (workload resource types, severity when disabled)
DEFENDER_PLANS: Dict[str, Tuple[Tuple[str, ...], Severity]] = {
    "VirtualMachines": (("microsoft.compute/virtualmachines",), Severity.HIGH),
    "SqlServers": (("microsoft.sql/servers",), Severity.HIGH),
    "StorageAccounts": (("microsoft.storage/storageaccounts",), Severity.HIGH),
    "Containers": (
        ("microsoft.containerservice/managedclusters", "microsoft.containerregistry/registries"),
        Severity.HIGH,
    ),
    "KeyVaults": (("microsoft.keyvault/vaults",), Severity.MEDIUM),
    "AppServices": (("microsoft.web/sites",), Severity.MEDIUM),
    "CosmosDbs": (("microsoft.documentdb/databaseaccounts",), Severity.MEDIUM),
}


class DataEncryptionAnalyzer(BaseAnalyzer):
    """
    Validates encryption in transit and at rest.

    Checks storage accounts (HTTPS only, minimum TLS, public blob access),
    managed disks, SQL database TDE, web app HTTPS/TLS and VM encryption at
    host.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "DataEncryption"

    @property
    def description(self) -> str:
        return "Checks encryption in transit and at rest for storage, disks, databases, web apps and VMs"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.SECURITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        checks = {
            STORAGE_ACCOUNTS: self._validate_storage_account,
            DISKS: self._validate_disk,
            SQL_DATABASES: self._validate_sql_database,
            WEB_SITES: self._validate_web_app,
            VIRTUAL_MACHINES: self._validate_virtual_machine,
        }
        applicable = inventory.resources_of_type(*checks)
        findings: List[Finding] = []

        for resource in applicable:
            options.raise_if_cancelled()
            findings.extend(checks[resource.normalized_type](resource))

        metrics = {
            "resources_checked": len(applicable),
            "resources_with_issues": len({f.resource_id for f in findings}),
        }
        return self.make_result(deduction_score(findings, len(applicable), self.points), len(applicable), findings, metrics)

    def _finding(self, resource: AzureResource, finding_type: str, severity: Severity, issue: str, recommendation: str) -> Finding:
        return self.make_finding(
            category=FindingCategory.SECURITY,
            finding_type=finding_type,
            severity=severity,
            issue=issue,
            recommendation=recommendation,
            resource=resource,
        )

    def _validate_storage_account(self, resource: AzureResource) -> List[Finding]:
        findings = []
        if resource.get_property("supportsHttpsTrafficOnly", True) is False:
            findings.append(self._finding(
                resource, "InsecureTransportAllowed", Severity.HIGH,
                "Storage account accepts unencrypted HTTP traffic",
                "Enable 'Secure transfer required' on the storage account",
            ))
        tls = str(resource.get_property("minimumTlsVersion", "TLS1_2")).lower()
        if tls in WEAK_TLS_VERSIONS:
            findings.append(self._finding(
                resource, "WeakTlsVersion", Severity.MEDIUM,
                f"Storage account allows TLS versions below 1.2 (minimum {tls.upper()})",
                "Set the minimum TLS version to TLS1_2",
            ))
        if resource.get_property("allowBlobPublicAccess") is True:
            findings.append(self._finding(
                resource, "PublicBlobAccess", Severity.HIGH,
                "Storage account allows anonymous public access to blobs",
                "Disable 'Allow Blob anonymous access' unless a container must be public",
            ))
        return findings

    def _validate_disk(self, resource: AzureResource) -> List[Finding]:
        encryption = resource.get_property("encryption")
        settings_enabled = resource.get_property("encryptionSettingsCollection.enabled") is True
        if not encryption and not settings_enabled:
            return [self._finding(
                resource, "UnencryptedDisk", Severity.HIGH,
                "Managed disk has no encryption configuration",
                "Enable server-side encryption with customer-managed keys or Azure Disk Encryption",
            )]
        return []

    def _validate_sql_database(self, resource: AzureResource) -> List[Finding]:
        status = str(resource.get_property("transparentDataEncryption.status", "Enabled")).lower()
        if status == "disabled":
            return [self._finding(
                resource, "TransparentDataEncryptionDisabled", Severity.HIGH,
                "Transparent data encryption is disabled on the SQL database",
                "Enable transparent data encryption on the database",
            )]
        return []

    def _validate_web_app(self, resource: AzureResource) -> List[Finding]:
        findings = []
        if resource.get_property("httpsOnly", True) is False:
            findings.append(self._finding(
                resource, "HttpsNotEnforced", Severity.MEDIUM,
                "Web app accepts plain HTTP requests",
                "Enable 'HTTPS Only' on the web app",
            ))
        tls = str(resource.get_property("siteConfig.minTlsVersion", "1.2")).lower()
        if tls in WEAK_TLS_VERSIONS:
            findings.append(self._finding(
                resource, "WeakTlsVersion", Severity.MEDIUM,
                f"Web app allows TLS {tls}",
                "Set the minimum TLS version to 1.2",
            ))
        return findings

    def _validate_virtual_machine(self, resource: AzureResource) -> List[Finding]:
        if resource.get_property("securityProfile.encryptionAtHost") is not True:
            return [self._finding(
                resource, "EncryptionAtHostDisabled", Severity.LOW,
                "Virtual machine does not use encryption at host",
                "Enable encryption at host so temp disks and caches are encrypted",
            )]
        return []


class ThreatProtectionAnalyzer(BaseAnalyzer):
    """Checks Defender for Cloud plans for every workload family present."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "ThreatProtection"

    @property
    def description(self) -> str:
        return "Checks that Defender for Cloud plans are enabled for the workloads in the inventory"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.SECURITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        plans = self._plan_tiers(inventory.resources_of_type(DEFENDER_PRICINGS))
        findings: List[Finding] = []
        workloads: Dict[str, int] = {}

        for plan_name, (resource_types, severity) in DEFENDER_PLANS.items():
            present = inventory.resources_of_type(*resource_types)
            if not present:
                continue
            workloads[plan_name] = len(present)

            tier = plans.get(plan_name.lower())
            if tier == "standard":
                continue
            subscription = present[0].subscription_id
            state = "not configured" if tier is None else "on the Free tier"
            findings.append(self.make_finding(
                category=FindingCategory.SECURITY,
                finding_type="DefenderPlanDisabled",
                severity=severity,
                issue=f"Defender for {plan_name} is {state} while {len(present)} such resources exist",
                recommendation=f"Enable the Defender for {plan_name} plan (Standard tier)",
                resource_id=f"/subscriptions/{subscription}/providers/Microsoft.Security/pricings/{plan_name}",
                resource_name=plan_name,
                resource_type="Microsoft.Security/pricings",
            ))

        metrics = {
            "workload_families": workloads,
            "enabled_plans": sorted(name for name, tier in plans.items() if tier == "standard"),
        }
        applicable = len(workloads)
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)

    def _plan_tiers(self, pricings: List[AzureResource]) -> Dict[str, str]:
        tiers = {}
        for pricing in pricings:
            tier = str(pricing.get_property("pricingTier", "Free")).lower()
            # Any subscription on Free leaves the plan reported as Free
            if tiers.get(pricing.name.lower()) != "free":
                tiers[pricing.name.lower()] = tier
        return tiers
