"""
Default analyzer catalog.

Registers every built-in analyzer and declares which analyzers, and which
meta-analyzers, run for each assessment type.
"""

import logging
from typing import Optional

from ..config import EngineSettings
from ..models import AssessmentType
from ..providers import DirectoryProvider
from .base import BaseAnalyzer
from .business_continuity import BackupCoverageAnalyzer, RecoveryConfigurationAnalyzer
from .data_protection import DataEncryptionAnalyzer, ThreatProtectionAnalyzer
from .dependency import DependencyAnalyzer
from .identity import (
    ConditionalAccessAnalyzer,
    EnterpriseApplicationsAnalyzer,
    RbacAssignmentsAnalyzer,
    StaleIdentitiesAnalyzer,
)
from .naming import NamingConventionAnalyzer
from .network_security import NetworkSecurityAnalyzer, PrivateEndpointAnalyzer
from .nodes import CompositeNode
from .registry import AnalyzerRegistry
from .tagging import TaggingAnalyzer

logger = logging.getLogger(__name__)

SECURITY_POSTURE = "SecurityPosture"
IDENTITY_ACCESS = "IdentityAccess"
BUSINESS_CONTINUITY = "BusinessContinuity"


def _register(registry: AnalyzerRegistry, analyzer: BaseAnalyzer) -> None:
    replacing = registry.get_analyzer(analyzer.name) is not None
    registry.register(analyzer, replace=True)
    logger.info(f"{'Replaced' if replacing else 'Registered'} {type(analyzer).__name__}")


def build_default_registry(
    settings: Optional[EngineSettings] = None,
    directory_provider: Optional[DirectoryProvider] = None,
    registry: Optional[AnalyzerRegistry] = None
) -> AnalyzerRegistry:
    """
    Register the built-in analyzers and assessment plans.

    Safe to call more than once: each call replaces the analyzers and plans
    already in the registry, so the registry always reflects the settings
    and directory provider of the latest call.

    Args:
        settings: Engine settings passed to each analyzer
        directory_provider: Source of directory data for identity analyzers;
            when None those analyzers report themselves unavailable
        registry: Registry to populate, defaults to the process singleton

    Returns:
        The populated registry
    """
    settings = settings or EngineSettings()
    if registry is None:
        registry = AnalyzerRegistry()

    for analyzer in (
        NamingConventionAnalyzer(settings),
        TaggingAnalyzer(settings),
        DependencyAnalyzer(settings),
        NetworkSecurityAnalyzer(settings),
        PrivateEndpointAnalyzer(settings),
        DataEncryptionAnalyzer(settings),
        ThreatProtectionAnalyzer(settings),
        EnterpriseApplicationsAnalyzer(directory_provider, settings),
        StaleIdentitiesAnalyzer(directory_provider, settings),
        RbacAssignmentsAnalyzer(directory_provider, settings),
        ConditionalAccessAnalyzer(directory_provider, settings),
        BackupCoverageAnalyzer(settings),
        RecoveryConfigurationAnalyzer(settings),
    ):
        _register(registry, analyzer)

    leaf = registry.leaf
    security = CompositeNode(
        SECURITY_POSTURE,
        [leaf("NetworkSecurity"), leaf("PrivateEndpoints"), leaf("DataEncryption"), leaf("ThreatProtection")],
        weights=settings.category_weights,
        description="Network exposure, private connectivity, encryption and threat protection",
    )
    identity = CompositeNode(
        IDENTITY_ACCESS,
        [leaf("EnterpriseApplications"), leaf("StaleIdentities"), leaf("RbacAssignments"), leaf("ConditionalAccess")],
        weights=settings.category_weights,
        description="Application credentials, stale identities, role assignments and conditional access",
    )
    continuity = CompositeNode(
        BUSINESS_CONTINUITY,
        [leaf("BackupCoverage"), leaf("RecoveryConfiguration")],
        weights=settings.category_weights,
        description="Backup protection and disaster recovery configuration",
    )
    governance = [leaf("NamingConvention"), leaf("Tagging"), leaf("Dependency")]

    plans = {
        AssessmentType.NAMING_CONVENTION: [leaf("NamingConvention")],
        AssessmentType.TAGGING: [leaf("Tagging")],
        AssessmentType.GOVERNANCE_FULL: governance,
        AssessmentType.FULL: governance,
        AssessmentType.ENTERPRISE_APPLICATIONS: [leaf("EnterpriseApplications")],
        AssessmentType.STALE_USERS_DEVICES: [leaf("StaleIdentities")],
        AssessmentType.RESOURCE_IAM_RBAC: [leaf("RbacAssignments")],
        AssessmentType.CONDITIONAL_ACCESS: [leaf("ConditionalAccess")],
        AssessmentType.IDENTITY_FULL: [identity],
        AssessmentType.BACKUP_COVERAGE: [continuity.with_children([leaf("BackupCoverage")])],
        AssessmentType.RECOVERY_CONFIGURATION: [continuity.with_children([leaf("RecoveryConfiguration")])],
        AssessmentType.BUSINESS_CONTINUITY_FULL: [continuity],
        AssessmentType.NETWORK_SECURITY: [leaf("NetworkSecurity"), leaf("PrivateEndpoints")],
        AssessmentType.DEFENDER_FOR_CLOUD: [leaf("ThreatProtection")],
        AssessmentType.SECURITY_FULL: [security],
        AssessmentType.COMPREHENSIVE: governance + [security, identity, continuity],
    }
    for assessment_type, nodes in plans.items():
        registry.register_plan(assessment_type, nodes, replace=True)

    logger.info(
        f"Analyzer registry initialized with {len(registry.list_analyzers())} analyzers: "
        f"{registry.list_analyzers()}"
    )
    return registry
