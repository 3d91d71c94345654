"""
Engine configuration.

Settings are plain pydantic models with defaults. EngineSettings.from_env()
overlays values from environment variables, the same way the engine's
deployment wrappers configure themselves (AWS_REGION, log level, etc.).

Scoring weights and deduction points are configuration rather than constants;
the defaults below are the values documented in DESIGN.md.
"""

import json
import logging
import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models.finding_models import Severity

logger = logging.getLogger(__name__)

DEFAULT_DEDUCTION_POINTS = {
    Severity.CRITICAL: 10.0,
    Severity.HIGH: 6.0,
    Severity.MEDIUM: 3.0,
    Severity.LOW: 1.0,
}

DEFAULT_NAMING_VIOLATION_POINTS = {
    Severity.CRITICAL: 10.0,
    Severity.HIGH: 5.0,
    Severity.MEDIUM: 2.0,
    Severity.LOW: 1.0,
}

DEFAULT_NON_TAGGABLE_TYPES = [
    "microsoft.authorization/roleassignments",
    "microsoft.authorization/policyassignments",
    "microsoft.insights/diagnosticsettings",
    "microsoft.network/virtualnetworks/subnets",
    "microsoft.sql/servers/firewallrules",
    "microsoft.compute/virtualmachines/extensions",
    "microsoft.security/pricings",
    "microsoft.recoveryservices/vaults/backupfabrics/protectioncontainers/protecteditems",
]


class NamingSettings(BaseModel):
    consistency_threshold: float = Field(0.8, ge=0.0, le=1.0, description="Compliant ratio a type needs to count as consistent")
    max_name_length: int = Field(63, gt=0)
    violation_points: Dict[Severity, float] = Field(default_factory=lambda: dict(DEFAULT_NAMING_VIOLATION_POINTS))
    preference_weight: float = Field(0.4, ge=0.0, description="Share of the preference score from style and prefix compliance")
    environment_weight: float = Field(0.3, ge=0.0)
    standards_weight: float = Field(0.3, ge=0.0)
    environment_threshold: float = Field(0.8, ge=0.0, le=1.0, description="Indicator coverage that counts as fully compliant")


class TaggingSettings(BaseModel):
    required_tags: List[str] = Field(default_factory=lambda: ["Environment", "Owner", "CostCenter"])
    coverage_weight: float = Field(0.6, ge=0.0)
    quality_weight: float = Field(0.4, ge=0.0)
    missing_tags_high_threshold: int = Field(2, ge=0, description="More missing tags than this is High severity")
    low_adoption_threshold: float = Field(0.3, ge=0.0, le=1.0)
    non_taggable_types: List[str] = Field(default_factory=lambda: list(DEFAULT_NON_TAGGABLE_TYPES))


class IdentitySettings(BaseModel):
    inactive_days: int = Field(90, gt=0)
    critical_inactive_days: int = Field(180, gt=0)
    credential_expiry_warning_days: int = Field(30, ge=0)
    max_subscription_owners: int = Field(3, ge=0)


class EngineSettings(BaseModel):
    """Top-level engine configuration"""
    max_workers: int = Field(4, ge=1, description="Analyzer worker pool size")
    max_concurrent_assessments: int = Field(2, ge=1, description="Assessments running in the background at once")
    analyzer_timeout_seconds: float = Field(60.0, gt=0, description="Per-category timeout")
    poll_interval_seconds: float = Field(0.05, gt=0, description="Join loop polling interval")
    inventory_max_retries: int = Field(3, ge=1)
    inventory_retry_delay_seconds: float = Field(1.0, ge=0)
    persistence_max_retries: int = Field(3, ge=1, description="Attempts at recording a Failed status")
    persistence_retry_delay_seconds: float = Field(0.5, ge=0)
    category_weights: Dict[str, float] = Field(default_factory=dict, description="Analyzer name -> weight, default 1.0")
    deduction_points: Dict[Severity, float] = Field(default_factory=lambda: dict(DEFAULT_DEDUCTION_POINTS))
    naming: NamingSettings = Field(default_factory=NamingSettings)
    tagging: TaggingSettings = Field(default_factory=TaggingSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    metrics_enabled: bool = False
    metrics_namespace: str = "GovernanceAssessment"
    aws_region: Optional[str] = None

    @field_validator("category_weights")
    @classmethod
    def _non_negative_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        for name, weight in value.items():
            if weight < 0:
                raise ValueError(f"Weight for '{name}' must be non-negative, got {weight}")
        return value

    def weight_for(self, analyzer_name: str) -> float:
        return self.category_weights.get(analyzer_name, 1.0)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Build settings from defaults overlaid with environment variables.

        Recognised variables: GOVERNANCE_MAX_WORKERS,
        GOVERNANCE_MAX_CONCURRENT_ASSESSMENTS, GOVERNANCE_ANALYZER_TIMEOUT_SECONDS,
        GOVERNANCE_INVENTORY_MAX_RETRIES, GOVERNANCE_CATEGORY_WEIGHTS (JSON object),
        GOVERNANCE_REQUIRED_TAGS (comma separated), GOVERNANCE_METRICS_ENABLED,
        GOVERNANCE_METRICS_NAMESPACE and AWS_REGION.

        Raises:
            pydantic.ValidationError: If a value is out of range
            ValueError: If GOVERNANCE_CATEGORY_WEIGHTS is not valid JSON
        """
        values: Dict[str, object] = {}
        env_map = {
            "GOVERNANCE_MAX_WORKERS": "max_workers",
            "GOVERNANCE_MAX_CONCURRENT_ASSESSMENTS": "max_concurrent_assessments",
            "GOVERNANCE_ANALYZER_TIMEOUT_SECONDS": "analyzer_timeout_seconds",
            "GOVERNANCE_INVENTORY_MAX_RETRIES": "inventory_max_retries",
            "GOVERNANCE_METRICS_NAMESPACE": "metrics_namespace",
            "AWS_REGION": "aws_region",
        }
        for env_name, field_name in env_map.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = raw

        metrics_enabled = os.environ.get("GOVERNANCE_METRICS_ENABLED")
        if metrics_enabled:
            values["metrics_enabled"] = metrics_enabled.lower() in ("1", "true", "yes")

        weights = os.environ.get("GOVERNANCE_CATEGORY_WEIGHTS")
        if weights:
            try:
                values["category_weights"] = json.loads(weights)
            except json.JSONDecodeError as e:
                raise ValueError(f"GOVERNANCE_CATEGORY_WEIGHTS is not valid JSON: {e}") from e

        required_tags = os.environ.get("GOVERNANCE_REQUIRED_TAGS")
        if required_tags:
            tags = [t.strip() for t in required_tags.split(",") if t.strip()]
            values["tagging"] = TaggingSettings(required_tags=tags)

        settings = cls.model_validate(values)
        logger.info(
            f"Engine settings loaded: max_workers={settings.max_workers}, "
            f"analyzer_timeout_seconds={settings.analyzer_timeout_seconds}"
        )
        return settings
