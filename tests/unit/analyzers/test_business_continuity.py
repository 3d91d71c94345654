"""
Unit tests for BackupCoverageAnalyzer and RecoveryConfigurationAnalyzer.

Tests cover:
- Subscriptions with VMs but no Recovery Services vault
- VM backup protection through protected items
- Vault soft delete and Key Vault recoverability
- Single-region deployments and global traffic routing
- LRS storage, production VMs without zones, load balancer configuration
- Cross-region restore
"""

import pytest

from governance_engine.analyzers.business_continuity import (
    BackupCoverageAnalyzer,
    RecoveryConfigurationAnalyzer,
)
from governance_engine.models import Severity

PROTECTED_ITEM_TYPE = (
    "Microsoft.RecoveryServices/vaults/backupFabrics/protectionContainers/protectedItems"
)


@pytest.fixture
def backup():
    return BackupCoverageAnalyzer()


@pytest.fixture
def recovery():
    return RecoveryConfigurationAnalyzer()


def test_vms_without_vault(backup, options, scenario_inventory):
    result = backup.analyze(scenario_inventory, options).result

    types = [f.finding_type for f in result.findings]
    assert types.count("NoRecoveryServicesVault") == 1
    assert types.count("VirtualMachineNotBackedUp") == 10
    vault_finding = next(f for f in result.findings if f.finding_type == "NoRecoveryServicesVault")
    assert vault_finding.resource_type == "Subscription"
    assert result.metrics["vm_backup_coverage_percentage"] == 0.0


def test_protected_vm(backup, options, resource_factory, inventory_factory):
    vm = resource_factory("vm-app-01")
    vault = resource_factory("rsv-01", "Microsoft.RecoveryServices/vaults")
    item = resource_factory("item-01", PROTECTED_ITEM_TYPE, properties={"sourceResourceId": vm.id.upper()})

    result = backup.analyze(inventory_factory(vm, vault, item), options).result

    assert result.findings == []
    assert result.metrics["protected_virtual_machines"] == 1
    assert result.metrics["vm_backup_coverage_percentage"] == 100.0
    assert result.score == 100.0


def test_vault_and_key_vault_recoverability(backup, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("rsv-01", "Microsoft.RecoveryServices/vaults", properties={
            "securitySettings": {"softDeleteSettings": {"softDeleteState": "Disabled"}},
        }),
        resource_factory("kv-01", "Microsoft.KeyVault/vaults", properties={"enableSoftDelete": False}),
        resource_factory("kv-02", "Microsoft.KeyVault/vaults", properties={"enablePurgeProtection": True}),
    )

    result = backup.analyze(inventory, options).result

    assert sorted((f.resource_name, f.finding_type) for f in result.findings) == [
        ("kv-01", "KeyVaultPurgeProtectionDisabled"),
        ("kv-01", "KeyVaultSoftDeleteDisabled"),
        ("rsv-01", "VaultSoftDeleteDisabled"),
    ]
    assert result.metrics["vm_backup_coverage_percentage"] is None


def test_single_region_deployment(recovery, options, scenario_inventory):
    result = recovery.analyze(scenario_inventory, options).result

    single = [f for f in result.findings if f.finding_type == "SingleRegionDeployment"]
    assert len(single) == 1
    assert single[0].severity == Severity.HIGH
    assert result.metrics["regions"] == ["westeurope"]
    assert result.metrics["region_distribution"] == {"westeurope": 10}


def test_production_vms_without_zones(recovery, options, scenario_inventory):
    result = recovery.analyze(scenario_inventory, options).result

    zoneless = {f.resource_name for f in result.findings if f.finding_type == "NoAvailabilityZoneOrSet"}
    assert zoneless == {f"vm-app-prod-{i:02d}" for i in range(1, 9)}


def test_zoned_vm_and_multi_region(recovery, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-prod-01", zones=["1"]),
        resource_factory("vm-app-prod-02", location="northeurope",
                         properties={"availabilitySet": {"id": "/avset"}}),
    )

    result = recovery.analyze(inventory, options).result

    assert [f.finding_type for f in result.findings] == ["NoGlobalTrafficRouting"]


def test_traffic_router_satisfies_multi_region(recovery, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("app-01", "Microsoft.Web/sites"),
        resource_factory("app-02", "Microsoft.Web/sites", location="northeurope"),
        resource_factory("tm-01", "Microsoft.Network/trafficManagerProfiles", location="global"),
    )

    assert recovery.analyze(inventory, options).result.findings == []


def test_storage_lb_and_vault(recovery, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("stdata01", "Microsoft.Storage/storageAccounts", sku={"name": "Standard_LRS"}),
        resource_factory("lb-01", "Microsoft.Network/loadBalancers", properties={"backendAddressPools": [{"id": "p"}]}),
        resource_factory("rsv-01", "Microsoft.RecoveryServices/vaults"),
    )

    result = recovery.analyze(inventory, options).result

    assert sorted(f.finding_type for f in result.findings) == [
        "CrossRegionRestoreDisabled", "LoadBalancerMisconfigured", "LocallyRedundantStorage"
    ]
