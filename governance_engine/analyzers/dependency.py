"""
Dependency Analyzer for orphaned and unused resources.

Flags resources that cost money or clutter the estate without serving a
workload (unattached disks, unassociated public IPs, empty App Service
plans, orphaned NICs and NSGs) and reports how VMs depend on their NICs and
disks, how resources spread over resource groups, and which resource groups
mix environments.
"""

import logging
from collections import Counter, defaultdict
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

DISKS = "microsoft.compute/disks"
PUBLIC_IPS = "microsoft.network/publicipaddresses"
NICS = "microsoft.network/networkinterfaces"
NSGS = "microsoft.network/networksecuritygroups"
APP_SERVICE_PLANS = "microsoft.web/serverfarms"
VIRTUAL_MACHINES = "microsoft.compute/virtualmachines"


class DependencyAnalyzer(BaseAnalyzer):
    """Detects orphaned resources and maps resource dependencies."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "Dependency"

    @property
    def description(self) -> str:
        return "Detects orphaned, unattached and unused resources and maps VM dependencies"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.COST, FindingCategory.DEPENDENCY)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        candidates = inventory.resources_of_type(DISKS, PUBLIC_IPS, NICS, NSGS, APP_SERVICE_PLANS)
        findings: List[Finding] = []

        for resource in sorted(candidates, key=lambda r: r.id):
            options.raise_if_cancelled()
            finding = self._check_orphan(resource)
            if finding is not None:
                findings.append(finding)

        metrics = {
            "orphaned_resource_count": len(findings),
            "vm_dependencies": self._vm_dependencies(inventory),
            "resource_group_distribution": dict(
                sorted(Counter(r.resource_group for r in inventory.resources).items())
            ),
            "mixed_environment_resource_groups": self._mixed_environment_groups(inventory),
        }
        score = deduction_score(findings, len(candidates), self.points)
        return self.make_result(score, len(candidates), findings, metrics)

    def _check_orphan(self, resource: AzureResource) -> Optional[Finding]:
        resource_type = resource.normalized_type

        if resource_type == DISKS and str(resource.get_property("diskState", "")).lower() == "unattached":
            return self.make_finding(
                category=FindingCategory.COST,
                finding_type="UnattachedDisk",
                severity=Severity.MEDIUM,
                issue="Managed disk is not attached to any virtual machine",
                recommendation="Snapshot the disk if its data is needed, then delete it",
                resource=resource,
            )

        if (
            resource_type == PUBLIC_IPS
            and not resource.get_property("ipConfiguration")
            and not resource.get_property("natGateway")
        ):
            return self.make_finding(
                category=FindingCategory.COST,
                finding_type="UnassociatedPublicIp",
                severity=Severity.MEDIUM,
                issue="Public IP address is not associated with any resource",
                recommendation="Release the public IP address if it is no longer needed",
                resource=resource,
            )

        if resource_type == APP_SERVICE_PLANS and resource.get_property("numberOfSites", 1) == 0:
            return self.make_finding(
                category=FindingCategory.COST,
                finding_type="EmptyAppServicePlan",
                severity=Severity.MEDIUM,
                issue="App Service plan hosts no apps but is still billed",
                recommendation="Delete the plan or consolidate apps onto it",
                resource=resource,
            )

        if (
            resource_type == NICS
            and not resource.get_property("virtualMachine")
            and not resource.get_property("privateEndpoint")
        ):
            return self.make_finding(
                category=FindingCategory.DEPENDENCY,
                finding_type="OrphanedNetworkInterface",
                severity=Severity.LOW,
                issue="Network interface is not attached to a virtual machine or private endpoint",
                recommendation="Delete the orphaned network interface",
                resource=resource,
            )

        if (
            resource_type == NSGS
            and not resource.get_property("subnets")
            and not resource.get_property("networkInterfaces")
        ):
            return self.make_finding(
                category=FindingCategory.DEPENDENCY,
                finding_type="UnassociatedNetworkSecurityGroup",
                severity=Severity.LOW,
                issue="Network security group is not associated with any subnet or network interface",
                recommendation="Associate the NSG with the intended subnet or delete it",
                resource=resource,
            )

        return None

    def _vm_dependencies(self, inventory: ResourceInventory) -> Dict[str, Dict[str, List[str]]]:
        dependencies = {}
        for vm in inventory.resources_of_type(VIRTUAL_MACHINES):
            nics = [
                nic.get("id", "") for nic in vm.get_property("networkProfile.networkInterfaces", []) or []
                if isinstance(nic, dict)
            ]
            disks = []
            os_disk = vm.get_property("storageProfile.osDisk.managedDisk.id")
            if os_disk:
                disks.append(os_disk)
            for data_disk in vm.get_property("storageProfile.dataDisks", []) or []:
                disk_id = data_disk.get("managedDisk", {}).get("id") if isinstance(data_disk, dict) else None
                if disk_id:
                    disks.append(disk_id)
            dependencies[vm.id] = {"network_interfaces": nics, "disks": disks}
        return dependencies

    def _mixed_environment_groups(self, inventory: ResourceInventory) -> Dict[str, List[str]]:
        environments = defaultdict(set)
        for resource in inventory.resources:
            environment = resource.environment
            if environment:
                environments[resource.resource_group].add(environment)
        return {group: sorted(envs) for group, envs in sorted(environments.items()) if len(envs) > 1}
