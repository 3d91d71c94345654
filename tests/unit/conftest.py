"""Shared fixtures for governance engine unit tests."""

from datetime import datetime, timezone
from typing import Dict, Optional

import pytest

from governance_engine.analyzers import AnalysisOptions, AnalyzerRegistry
from governance_engine.config import EngineSettings
from governance_engine.models import AssessmentOptions, AzureResource, ResourceInventory

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"
COLLECTED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_resource(
    name: str,
    resource_type: str = "Microsoft.Compute/virtualMachines",
    tags: Optional[Dict[str, str]] = None,
    properties: Optional[dict] = None,
    resource_group: str = "rg-app",
    location: str = "westeurope",
    subscription_id: str = SUBSCRIPTION_ID,
    **extra
) -> AzureResource:
    """Build an AzureResource with a realistic resource id."""
    resource_id = (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/{resource_type}/{name}"
    )
    return AzureResource(
        id=resource_id,
        name=name,
        type=resource_type,
        resource_group=resource_group,
        location=location,
        subscription_id=subscription_id,
        tags=tags or {},
        properties=properties or {},
        **extra
    )


def make_inventory(*resources: AzureResource, customer_id: str = "customer-1") -> ResourceInventory:
    return ResourceInventory(
        customer_id=customer_id,
        resources=tuple(resources),
        collected_at=COLLECTED_AT,
        subscription_ids=(SUBSCRIPTION_ID,),
    )


@pytest.fixture(autouse=True)
def reset_registry():
    """Reset the analyzer registry singleton before and after each test"""
    AnalyzerRegistry.reset()
    yield
    AnalyzerRegistry.reset()


@pytest.fixture
def settings():
    return EngineSettings(
        analyzer_timeout_seconds=5.0,
        poll_interval_seconds=0.01,
        inventory_retry_delay_seconds=0.0,
        persistence_retry_delay_seconds=0.0,
    )


@pytest.fixture
def options():
    return AnalysisOptions(assessment_options=AssessmentOptions())


@pytest.fixture
def scenario_inventory():
    """
    Ten VMs: eight follow vm-app-prod-NN, two deviate. Six carry env and
    owner tags, four are untagged.
    """
    resources = []
    for i in range(1, 9):
        tags = {"env": "prod", "owner": "platform-team"} if i <= 6 else {}
        resources.append(make_resource(f"vm-app-prod-{i:02d}", tags=tags))
    resources.append(make_resource("WebServer1"))
    resources.append(make_resource("DBSERVER02"))
    return make_inventory(*resources)


@pytest.fixture
def resource_factory():
    return make_resource


@pytest.fixture
def inventory_factory():
    return make_inventory
