"""
Network security analyzers.

NetworkSecurityAnalyzer validates network configuration including:
- NSG inbound allow rules open to the internet, with severity by port
- Subnets without an NSG
- Virtual networks without DDoS protection
- Application Gateways without a WAF

PrivateEndpointAnalyzer checks that critical PaaS services are reachable
through private endpoints rather than public network access.

Both analyzers read configuration from the collected property bag and make
no cloud API calls.
"""

import logging
from typing import List, Optional, Tuple

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

NSGS = "microsoft.network/networksecuritygroups"
VNETS = "microsoft.network/virtualnetworks"
APP_GATEWAYS = "microsoft.network/applicationgateways"
PRIVATE_ENDPOINTS = "microsoft.network/privateendpoints"

INTERNET_SOURCES = {"*", "0.0.0.0/0", "internet", "any"}
EXEMPT_SUBNETS = {"gatewaysubnet", "azurefirewallsubnet", "azurebastionsubnet", "azurefirewallmanagementsubnet"}

EXPOSURE_TYPES = {"AllPortsExposed", "ManagementPortExposed", "DatabasePortExposed", "InboundInternetAccess"}

# Port -> (service, severity) for internet-exposed inbound rules
SENSITIVE_PORTS = {
    22: ("SSH", Severity.CRITICAL),
    3389: ("RDP", Severity.CRITICAL),
    1433: ("SQL Server", Severity.HIGH),
    3306: ("MySQL", Severity.HIGH),
    5432: ("PostgreSQL", Severity.HIGH),
    6379: ("Redis", Severity.HIGH),
    27017: ("MongoDB", Severity.HIGH),
}

# Resource type -> severity when exposed without a private endpoint
PRIVATE_LINK_SERVICES = {
    "microsoft.storage/storageaccounts": Severity.HIGH,
    "microsoft.sql/servers": Severity.HIGH,
    "microsoft.documentdb/databaseaccounts": Severity.HIGH,
    "microsoft.keyvault/vaults": Severity.HIGH,
    "microsoft.containerregistry/registries": Severity.MEDIUM,
    "microsoft.servicebus/namespaces": Severity.MEDIUM,
    "microsoft.eventhub/namespaces": Severity.MEDIUM,
    "microsoft.web/sites": Severity.MEDIUM,
}


def parse_port_ranges(rule: dict) -> Optional[List[Tuple[int, int]]]:
    """
    Parse the destination ports of an NSG rule.

    Args:
        rule: The rule's "properties" dict

    Returns:
        List of inclusive (low, high) port ranges, or None when the rule
        covers all ports
    """
    raw = []
    if rule.get("destinationPortRange"):
        raw.append(str(rule["destinationPortRange"]))
    raw.extend(str(p) for p in rule.get("destinationPortRanges", []) or [])

    ranges = []
    for value in raw:
        value = value.strip()
        if value in ("*", "0-65535"):
            return None
        if "-" in value:
            low, high = value.split("-", 1)
            ranges.append((int(low), int(high)))
        elif value:
            ranges.append((int(value), int(value)))
    return ranges or None


def _sources(rule: dict) -> List[str]:
    sources = []
    if rule.get("sourceAddressPrefix"):
        sources.append(str(rule["sourceAddressPrefix"]))
    sources.extend(str(s) for s in rule.get("sourceAddressPrefixes", []) or [])
    return sources


class NetworkSecurityAnalyzer(BaseAnalyzer):
    """
    Validates NSG rules, subnet protection, DDoS and WAF configuration.

    Sensitive ports:
    - SSH (22), RDP (3389): CRITICAL severity
    - Database ports (1433, 3306, 5432, 6379, 27017): HIGH severity
    - All ports open: CRITICAL severity
    - Any other internet-exposed port: MEDIUM severity
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "NetworkSecurity"

    @property
    def description(self) -> str:
        return "Checks NSG rules, subnet NSG coverage, DDoS protection and Application Gateway WAF"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.SECURITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        nsgs = inventory.resources_of_type(NSGS)
        vnets = inventory.resources_of_type(VNETS)
        gateways = inventory.resources_of_type(APP_GATEWAYS)
        findings: List[Finding] = []

        for nsg in nsgs:
            options.raise_if_cancelled()
            findings.extend(self._validate_inbound_rules(nsg))
        for vnet in vnets:
            findings.extend(self._validate_virtual_network(vnet))
        for gateway in gateways:
            if not self._has_waf(gateway):
                findings.append(self.make_finding(
                    category=FindingCategory.SECURITY,
                    finding_type="ApplicationGatewayWithoutWaf",
                    severity=Severity.HIGH,
                    issue="Application Gateway does not have a Web Application Firewall enabled",
                    recommendation="Move the gateway to the WAF_v2 tier and enable WAF in prevention mode",
                    resource=gateway,
                ))

        applicable = len(nsgs) + len(vnets) + len(gateways)
        metrics = {
            "network_security_groups": len(nsgs),
            "virtual_networks": len(vnets),
            "application_gateways": len(gateways),
            "internet_exposed_rules": sum(1 for f in findings if f.finding_type in EXPOSURE_TYPES),
        }
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)

    def _validate_inbound_rules(self, nsg: AzureResource) -> List[Finding]:
        findings = []
        for rule in nsg.get_property("securityRules", []) or []:
            props = rule.get("properties", rule) if isinstance(rule, dict) else {}
            if str(props.get("direction", "")).lower() != "inbound":
                continue
            if str(props.get("access", "")).lower() != "allow":
                continue
            if not any(s.lower() in INTERNET_SOURCES for s in _sources(props)):
                continue
            findings.extend(self._check_sensitive_ports(nsg, rule.get("name", "unnamed"), props))
        return findings

    def _check_sensitive_ports(self, nsg: AzureResource, rule_name: str, props: dict) -> List[Finding]:
        ranges = parse_port_ranges(props)
        if ranges is None:
            return [self.make_finding(
                category=FindingCategory.SECURITY,
                finding_type="AllPortsExposed",
                severity=Severity.CRITICAL,
                issue=f"Rule '{rule_name}' allows inbound traffic on all ports from the internet",
                recommendation=(
                    "Remove the rule and allow only the required ports from known address ranges"
                ),
                resource=nsg,
            )]

        findings = []
        for port, (service_name, severity) in SENSITIVE_PORTS.items():
            if any(low <= port <= high for low, high in ranges):
                findings.append(self.make_finding(
                    category=FindingCategory.SECURITY,
                    finding_type="ManagementPortExposed" if severity == Severity.CRITICAL else "DatabasePortExposed",
                    severity=severity,
                    issue=f"Rule '{rule_name}' exposes {service_name} (port {port}) to the internet",
                    recommendation=self._get_remediation_for_port(port, service_name),
                    resource=nsg,
                ))

        if not findings:
            ports = ", ".join(f"{low}" if low == high else f"{low}-{high}" for low, high in ranges)
            findings.append(self.make_finding(
                category=FindingCategory.SECURITY,
                finding_type="InboundInternetAccess",
                severity=Severity.MEDIUM,
                issue=f"Rule '{rule_name}' allows inbound internet traffic on ports {ports}",
                recommendation="Restrict the source to known address ranges or place the service behind a gateway",
                resource=nsg,
            ))
        return findings

    def _get_remediation_for_port(self, port: int, service_name: str) -> str:
        if port in (22, 3389):
            return (
                f"Close {service_name} to the internet and use Azure Bastion or just-in-time VM access; "
                "if direct access is unavoidable, limit the source to VPN or office ranges"
            )
        return (
            f"{service_name} should never be exposed to the internet. Restrict the source to "
            "application subnets and use private endpoints for cross-network access"
        )

    def _validate_virtual_network(self, vnet: AzureResource) -> List[Finding]:
        findings = []
        for subnet in vnet.get_property("subnets", []) or []:
            if not isinstance(subnet, dict):
                continue
            subnet_name = subnet.get("name", "")
            if subnet_name.lower() in EXEMPT_SUBNETS:
                continue
            if not (subnet.get("properties") or {}).get("networkSecurityGroup"):
                findings.append(self.make_finding(
                    category=FindingCategory.SECURITY,
                    finding_type="SubnetWithoutNsg",
                    severity=Severity.HIGH,
                    issue=f"Subnet '{subnet_name}' has no network security group",
                    recommendation="Associate an NSG with the subnet that denies unneeded inbound traffic",
                    resource=vnet,
                ))

        if not vnet.get_property("enableDdosProtection", False):
            findings.append(self.make_finding(
                category=FindingCategory.SECURITY,
                finding_type="DdosProtectionDisabled",
                severity=Severity.MEDIUM,
                issue="Virtual network does not have DDoS Network Protection enabled",
                recommendation="Enable a DDoS protection plan for virtual networks hosting public endpoints",
                resource=vnet,
            ))
        return findings

    def _has_waf(self, gateway: AzureResource) -> bool:
        if gateway.get_property("webApplicationFirewallConfiguration.enabled") is True:
            return True
        return bool(gateway.get_property("firewallPolicy.id"))


class PrivateEndpointAnalyzer(BaseAnalyzer):
    """Checks private endpoint coverage of critical PaaS services."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.points = (settings or EngineSettings()).deduction_points

    @property
    def name(self) -> str:
        return "PrivateEndpoints"

    @property
    def description(self) -> str:
        return "Checks that critical PaaS services use private endpoints instead of public network access"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.SECURITY,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        services = inventory.resources_of_type(*PRIVATE_LINK_SERVICES)
        endpoints = inventory.resources_of_type(PRIVATE_ENDPOINTS)
        findings: List[Finding] = []
        covered = 0

        for resource in services:
            options.raise_if_cancelled()
            if resource.get_property("privateEndpointConnections"):
                covered += 1
                continue
            if str(resource.get_property("publicNetworkAccess", "Enabled")).lower() == "disabled":
                continue
            findings.append(self.make_finding(
                category=FindingCategory.SECURITY,
                finding_type="PublicEndpointWithoutPrivateLink",
                severity=PRIVATE_LINK_SERVICES[resource.normalized_type],
                issue=f"{resource.resource_type_name} is reachable over public network access without a private endpoint",
                recommendation="Create a private endpoint and disable public network access",
                resource=resource,
            ))

        for endpoint in endpoints:
            connections = (endpoint.get_property("privateLinkServiceConnections") or []) + (
                endpoint.get_property("manualPrivateLinkServiceConnections") or []
            )
            if not connections:
                findings.append(self.make_finding(
                    category=FindingCategory.SECURITY,
                    finding_type="OrphanedPrivateEndpoint",
                    severity=Severity.LOW,
                    issue="Private endpoint has no private link service connection",
                    recommendation="Delete the unused private endpoint",
                    resource=endpoint,
                ))

        applicable = len(services) + len(endpoints)
        metrics = {
            "critical_services": len(services),
            "private_endpoints": len(endpoints),
            "private_endpoint_coverage_percentage": (
                round(covered / len(services) * 100.0, 2) if services else None
            ),
        }
        return self.make_result(deduction_score(findings, applicable, self.points), applicable, findings, metrics)
