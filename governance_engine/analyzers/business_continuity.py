"""
Business continuity analyzers: backup coverage and recovery configuration.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

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

VIRTUAL_MACHINES = "microsoft.compute/virtualmachines"
RECOVERY_VAULTS = "microsoft.recoveryservices/vaults"
PROTECTED_ITEMS = "microsoft.recoveryservices/vaults/backupfabrics/protectioncontainers/protecteditems"
KEY_VAULTS = "microsoft.keyvault/vaults"
STORAGE_ACCOUNTS = "microsoft.storage/storageaccounts"
LOAD_BALANCERS = "microsoft.network/loadbalancers"
TRAFFIC_ROUTERS = ("microsoft.network/trafficmanagerprofiles", "microsoft.cdn/profiles", "microsoft.network/frontdoors")

CRITICAL_WORKLOAD_TYPES = (
    VIRTUAL_MACHINES,
    "microsoft.sql/servers",
    STORAGE_ACCOUNTS,
    "microsoft.web/sites",
    "microsoft.documentdb/databaseaccounts",
)

PRODUCTION_ENVIRONMENTS = {"prod", "production"}


class BackupCoverageAnalyzer(BaseAnalyzer):
    """Checks that VMs are backed up and that backup and key vaults can recover deleted data."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "BackupCoverage"

    @property
    def description(self) -> str:
        return "Checks VM backup protection, Recovery Services vault soft delete and Key Vault recoverability"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.BUSINESS_CONTINUITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        vms = inventory.resources_of_type(VIRTUAL_MACHINES)
        vaults = inventory.resources_of_type(RECOVERY_VAULTS)
        key_vaults = inventory.resources_of_type(KEY_VAULTS)
        protected = self._protected_sources(inventory.resources_of_type(PROTECTED_ITEMS))
        findings: List[Finding] = []

        vault_subscriptions = {v.subscription_id for v in vaults}
        for subscription in sorted({vm.subscription_id for vm in vms} - vault_subscriptions):
            findings.append(self.make_finding(
                category=FindingCategory.BUSINESS_CONTINUITY,
                finding_type="NoRecoveryServicesVault",
                severity=Severity.HIGH,
                issue="Subscription runs virtual machines but has no Recovery Services vault",
                recommendation="Create a Recovery Services vault and enable a backup policy for all VMs",
                resource_id=f"/subscriptions/{subscription}",
                resource_name=subscription,
                resource_type="Subscription",
            ))

        backed_up = 0
        for vm in vms:
            options.raise_if_cancelled()
            if vm.id.lower() in protected:
                backed_up += 1
                continue
            findings.append(self._finding(
                vm, "VirtualMachineNotBackedUp", Severity.HIGH,
                "Virtual machine is not protected by Azure Backup",
                "Enable VM backup in a Recovery Services vault with a daily policy",
            ))

        for vault in vaults:
            if str(vault.get_property("securitySettings.softDeleteSettings.softDeleteState", "Enabled")).lower() == "disabled":
                findings.append(self._finding(
                    vault, "VaultSoftDeleteDisabled", Severity.MEDIUM,
                    "Recovery Services vault has soft delete disabled",
                    "Enable soft delete so deleted backup data can be recovered",
                ))

        for key_vault in key_vaults:
            if key_vault.get_property("enableSoftDelete", True) is False:
                findings.append(self._finding(
                    key_vault, "KeyVaultSoftDeleteDisabled", Severity.HIGH,
                    "Key Vault has soft delete disabled",
                    "Enable soft delete on the Key Vault",
                ))
            if key_vault.get_property("enablePurgeProtection") is not True:
                findings.append(self._finding(
                    key_vault, "KeyVaultPurgeProtectionDisabled", Severity.MEDIUM,
                    "Key Vault does not have purge protection enabled",
                    "Enable purge protection so deleted secrets cannot be permanently removed early",
                ))

        applicable = len(vms) + len(vaults) + len(key_vaults)
        metrics = {
            "virtual_machines": len(vms),
            "protected_virtual_machines": backed_up,
            "vm_backup_coverage_percentage": round(backed_up / len(vms) * 100.0, 2) if vms else None,
            "recovery_vaults": len(vaults),
        }
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)

    def _protected_sources(self, items: List[AzureResource]) -> Set[str]:
        sources = set()
        for item in items:
            source = item.get_property("sourceResourceId")
            if source:
                sources.add(str(source).lower())
        return sources

    def _finding(self, resource: AzureResource, finding_type: str, severity: Severity, issue: str, recommendation: str) -> Finding:
        return self.make_finding(
            category=FindingCategory.BUSINESS_CONTINUITY,
            finding_type=finding_type,
            severity=severity,
            issue=issue,
            recommendation=recommendation,
            resource=resource,
        )


class RecoveryConfigurationAnalyzer(BaseAnalyzer):
    """Checks regional redundancy, storage replication and load balancer health configuration."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "RecoveryConfiguration"

    @property
    def description(self) -> str:
        return "Checks multi-region deployment, storage redundancy, availability zones and load balancer health probes"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.BUSINESS_CONTINUITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        critical = inventory.resources_of_type(*CRITICAL_WORKLOAD_TYPES)
        load_balancers = inventory.resources_of_type(LOAD_BALANCERS)
        vaults = inventory.resources_of_type(RECOVERY_VAULTS)
        findings: List[Finding] = []

        findings.extend(self._check_regions(critical, inventory))

        for resource in critical:
            options.raise_if_cancelled()
            if resource.normalized_type == STORAGE_ACCOUNTS:
                sku_name = str((resource.sku or {}).get("name", ""))
                if sku_name.upper().endswith("_LRS"):
                    findings.append(self._finding(
                        resource, "LocallyRedundantStorage", Severity.MEDIUM,
                        f"Storage account uses locally redundant replication ({sku_name})",
                        "Use ZRS, GRS or GZRS replication for data that must survive a zone or region outage",
                    ))
            elif resource.normalized_type == VIRTUAL_MACHINES and resource.environment in PRODUCTION_ENVIRONMENTS:
                if not resource.zones and not resource.get_property("availabilitySet.id"):
                    findings.append(self._finding(
                        resource, "NoAvailabilityZoneOrSet", Severity.MEDIUM,
                        "Production virtual machine is not deployed in an availability zone or availability set",
                        "Redeploy the VM across availability zones or into an availability set",
                    ))

        for lb in load_balancers:
            if not lb.get_property("backendAddressPools") or not lb.get_property("probes"):
                findings.append(self._finding(
                    lb, "LoadBalancerMisconfigured", Severity.MEDIUM,
                    "Load balancer has no backend pool or no health probe",
                    "Configure backend pools and health probes so failed instances are taken out of rotation",
                ))

        for vault in vaults:
            if str(vault.get_property("redundancySettings.crossRegionRestore", "Disabled")).lower() != "enabled":
                findings.append(self._finding(
                    vault, "CrossRegionRestoreDisabled", Severity.LOW,
                    "Recovery Services vault does not allow cross-region restore",
                    "Enable cross-region restore on geo-redundant vaults",
                ))

        applicable = len(critical) + len(load_balancers) + len(vaults)
        metrics = {
            "critical_resources": len(critical),
            "regions": sorted({r.location.lower() for r in critical if r.location}),
            "region_distribution": self._region_distribution(critical),
        }
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)

    def _check_regions(self, critical: List[AzureResource], inventory: ResourceInventory) -> List[Finding]:
        regions = {r.location.lower() for r in critical if r.location}
        if not critical or not regions:
            return []

        subscription = critical[0].subscription_id
        if len(regions) == 1 and len(critical) > 1:
            region = next(iter(regions))
            return [self.make_finding(
                category=FindingCategory.BUSINESS_CONTINUITY,
                finding_type="SingleRegionDeployment",
                severity=Severity.HIGH,
                issue=f"All {len(critical)} critical resources are deployed in a single region ({region})",
                recommendation="Plan a secondary region for critical workloads and replicate data to it",
                resource_id=f"/subscriptions/{subscription}",
                resource_name=subscription,
                resource_type="Subscription",
            )]

        if len(regions) > 1 and not inventory.resources_of_type(*TRAFFIC_ROUTERS):
            return [self.make_finding(
                category=FindingCategory.BUSINESS_CONTINUITY,
                finding_type="NoGlobalTrafficRouting",
                severity=Severity.MEDIUM,
                issue=f"Workloads span {len(regions)} regions without Traffic Manager or Front Door",
                recommendation="Add Traffic Manager or Front Door to fail traffic over between regions",
                resource_id=f"/subscriptions/{subscription}",
                resource_name=subscription,
                resource_type="Subscription",
            )]
        return []

    def _region_distribution(self, resources: List[AzureResource]) -> Dict[str, int]:
        counts = defaultdict(int)
        for resource in resources:
            counts[resource.location.lower() or "unknown"] += 1
        return dict(sorted(counts.items()))

    def _finding(self, resource: AzureResource, finding_type: str, severity: Severity, issue: str, recommendation: str) -> Finding:
        return self.make_finding(
            category=FindingCategory.BUSINESS_CONTINUITY,
            finding_type=finding_type,
            severity=severity,
            issue=issue,
            recommendation=recommendation,
            resource=resource,
        )
