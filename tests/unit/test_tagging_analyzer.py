"""
Unit tests for TaggingAnalyzer.

Tests cover:
- Coverage and quality scoring with the configured weights
- Required tags from settings and from per-request overrides
- NoTags vs MissingRequiredTags findings and their severity
- Empty values and case-duplicated tag keys
- Non-taggable resource types
"""

import pytest

from governance_engine.analyzers import AnalysisOptions
from governance_engine.analyzers.tagging import TaggingAnalyzer
from governance_engine.config import EngineSettings, TaggingSettings
from governance_engine.models import AssessmentOptions, FindingCategory, Severity


@pytest.fixture
def analyzer():
    return TaggingAnalyzer()


def _options(required_tags=None):
    return AnalysisOptions(assessment_options=AssessmentOptions(required_tags=required_tags))


def test_scenario_scores_60(analyzer, scenario_inventory):
    result = analyzer.analyze(scenario_inventory, _options(["env", "owner"])).result

    assert result.score == 60.0
    assert result.metrics["tag_coverage_percentage"] == 60.0
    assert result.metrics["tag_quality_percentage"] == 60.0
    assert len(result.findings) == 4
    assert all(f.finding_type == "NoTags" for f in result.findings)
    assert all(f.category == FindingCategory.TAG_COVERAGE for f in result.findings)


def test_default_required_tags(analyzer, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-01", tags={"Environment": "prod", "Owner": "ops", "CostCenter": "42"}),
        resource_factory("vm-app-02", tags={"Environment": "prod"}),
    )

    result = analyzer.analyze(inventory, options).result

    # coverage 100, quality 50 -> 0.6 * 100 + 0.4 * 50
    assert result.score == 80.0
    assert len(result.findings) == 1
    finding = result.findings[0]
    assert finding.finding_type == "MissingRequiredTags"
    assert finding.severity == Severity.MEDIUM
    assert "Owner" in finding.issue and "CostCenter" in finding.issue


def test_required_tags_case_insensitive(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01", tags={"ENV": "prod", "Owner": "ops"}))

    result = analyzer.analyze(inventory, _options(["env", "owner"])).result

    assert result.score == 100.0
    assert result.findings == []


def test_missing_many_tags_is_high(resource_factory, inventory_factory):
    settings = EngineSettings(tagging=TaggingSettings(required_tags=["a", "b", "c", "d"]))
    analyzer = TaggingAnalyzer(settings)
    inventory = inventory_factory(resource_factory("vm-app-01", tags={"a": "1"}))

    result = analyzer.analyze(inventory, _options()).result

    assert result.findings[0].severity == Severity.HIGH


def test_empty_tag_values(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01", tags={"env": " ", "owner": "ops"}))

    result = analyzer.analyze(inventory, _options(["env", "owner"])).result

    assert [f.finding_type for f in result.findings] == ["EmptyTagValues"]
    assert result.metrics["tag_quality_percentage"] == 0.0
    assert result.score == 60.0


def test_case_duplicated_keys(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01", tags={"env": "prod", "Env": "prod"}))

    result = analyzer.analyze(inventory, _options(["env"])).result

    duplicated = [f for f in result.findings if f.finding_type == "InconsistentTagNaming"]
    assert len(duplicated) == 1
    assert duplicated[0].severity == Severity.LOW


def test_non_taggable_types_are_skipped(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("ext-1", resource_type="Microsoft.Compute/virtualMachines/extensions"),
    )

    outcome = analyzer.analyze(inventory, _options())

    assert outcome.success
    assert outcome.result.score is None
    assert outcome.result.total_resources == 0


def test_empty_required_tags_uses_coverage(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-01", tags={"env": "prod"}),
        resource_factory("vm-app-02"),
    )

    result = analyzer.analyze(inventory, _options([])).result

    assert result.score == 50.0
    assert result.findings == []


def test_metrics(analyzer, scenario_inventory):
    metrics = analyzer.analyze(scenario_inventory, _options(["env", "owner", "costcenter"])).result.metrics

    assert metrics["tag_usage_frequency"] == {"env": 6, "owner": 6}
    assert metrics["low_adoption_required_tags"] == ["costcenter"]
    assert metrics["required_tags"] == ["env", "owner", "costcenter"]
