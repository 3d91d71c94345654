"""
Unit tests for NamingConventionAnalyzer.

Tests cover:
- Name tokenization into delimiter, casing and token shapes
- Dominant pattern selection per resource type, with deterministic ties
- Pattern mismatch, invalid character and length violations
- Scoring and consistency percentage
- Auxiliary metrics (environment tokens, type prefixes, separators)
- Scoring against client naming preferences
"""

import pytest

from governance_engine.analyzers import AnalysisOptions
from governance_engine.analyzers.naming import NamingConventionAnalyzer, naming_style, tokenize_name
from governance_engine.config import EngineSettings, NamingSettings
from governance_engine.models import AssessmentOptions, NamingPreferences, Severity


@pytest.fixture
def analyzer():
    return NamingConventionAnalyzer()


def test_tokenize_lowercase_hyphenated():
    pattern = tokenize_name("vm-web-prod-01")
    assert pattern.delimiter == "-"
    assert pattern.casing == "lower"
    assert pattern.shapes == ("a", "a", "a", "n")
    assert pattern.signature == "lower|-|a-a-a-n"


def test_tokenize_casing_classes():
    assert tokenize_name("WebServer1").casing == "pascal"
    assert tokenize_name("webServer").casing == "camel"
    assert tokenize_name("DBSERVER02").casing == "upper"
    assert tokenize_name("Web_server-A").casing == "mixed"


def test_tokenize_uuid():
    pattern = tokenize_name("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
    assert pattern.casing == "uuid"


def test_tokenize_no_delimiter():
    pattern = tokenize_name("storageacct01")
    assert pattern.delimiter == ""
    assert pattern.shapes == ("x",)


def test_empty_inventory_scores_null(analyzer, options, inventory_factory):
    outcome = analyzer.analyze(inventory_factory(), options)

    assert outcome.success
    assert outcome.result.score is None
    assert outcome.result.findings == []


def test_scenario_scores_80(analyzer, options, scenario_inventory):
    """8 of 10 VMs share a pattern"""
    outcome = analyzer.analyze(scenario_inventory, options)

    result = outcome.result
    assert result.score == 80.0
    assert result.metrics["compliant_resources"] == 8
    assert result.metrics["dominant_patterns"]["microsoft.compute/virtualmachines"] == "lower|-|a-a-a-n"
    assert {f.resource_name for f in result.findings} == {"WebServer1", "DBSERVER02"}
    assert all(f.finding_type == "PatternMismatch" for f in result.findings)
    assert all(f.severity == Severity.LOW for f in result.findings)


def test_patterns_are_grouped_by_type(analyzer, options, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-01"),
        resource_factory("vm-app-02"),
        resource_factory("stappdata01", resource_type="Microsoft.Storage/storageAccounts"),
    )
    result = analyzer.analyze(inventory, options).result

    assert result.score == 100.0
    assert result.findings == []
    assert len(result.metrics["dominant_patterns"]) == 2


def test_dominant_tie_breaks_on_signature(analyzer, options, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01"), resource_factory("VMAPP01"))

    result = analyzer.analyze(inventory, options).result

    # "lower|-|a-a-n" sorts before "upper|none|x"
    assert [f.resource_name for f in result.findings] == ["VMAPP01"]
    assert result.score == 50.0


def test_invalid_characters_penalize_score(analyzer, options, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01"), resource_factory("vm-app-02"), resource_factory("vm-app 03"))

    result = analyzer.analyze(inventory, options).result

    invalid = [f for f in result.findings if f.finding_type == "InvalidCharacters"]
    assert len(invalid) == 1
    assert invalid[0].severity == Severity.HIGH
    # "vm-app 03" tokenizes differently as well, so 2/3 compliant minus 5 points
    assert result.score == pytest.approx(2 / 3 * 100 - 5, abs=0.01)


def test_name_too_long(options, resource_factory, inventory_factory):
    settings = EngineSettings(naming=NamingSettings(max_name_length=10))
    analyzer = NamingConventionAnalyzer(settings)
    inventory = inventory_factory(resource_factory("vm-application-01"))

    result = analyzer.analyze(inventory, options).result

    assert [f.finding_type for f in result.findings] == ["NameTooLong"]
    assert result.score == 98.0


def test_consistency_threshold(options, resource_factory, inventory_factory):
    """A type is consistent when its compliant ratio is at least the threshold"""
    resources = [resource_factory(f"vm-app-{i:02d}") for i in range(1, 5)]
    resources.append(resource_factory("AppServer"))
    inventory = inventory_factory(*resources)

    at_threshold = NamingConventionAnalyzer(EngineSettings(naming=NamingSettings(consistency_threshold=0.8)))
    above_threshold = NamingConventionAnalyzer(EngineSettings(naming=NamingSettings(consistency_threshold=0.81)))

    assert at_threshold.analyze(inventory, options).result.metrics["naming_consistency_percentage"] == 100.0
    assert above_threshold.analyze(inventory, options).result.metrics["naming_consistency_percentage"] == 0.0


def test_auxiliary_metrics(analyzer, options, scenario_inventory):
    metrics = analyzer.analyze(scenario_inventory, options).result.metrics

    assert metrics["environment_indicator_percentage"] == 80.0
    assert metrics["resource_type_prefix_percentage"] == 80.0
    assert metrics["dominant_separator"] == "-"
    assert metrics["separator_consistency_percentage"] == 80.0


def test_inventory_not_mutated(analyzer, options, scenario_inventory):
    before = scenario_inventory.model_dump()
    analyzer.analyze(scenario_inventory, options)
    assert scenario_inventory.model_dump() == before


def _preference_options(**preferences):
    return AnalysisOptions(
        assessment_options=AssessmentOptions(naming_preferences=NamingPreferences(**preferences))
    )


@pytest.mark.parametrize("name, style", [
    ("vm-app-prod-01", "kebab-case"),
    ("vm_app_prod_01", "snake_case"),
    ("vm.app.prod", "dotted"),
    ("vmappprod01", "lowercase"),
    ("DBSERVER02", "uppercase"),
    ("WebServer1", "pascalcase"),
    ("webServer", "camelcase"),
    ("3f2504e0-4f89-11d3-9a0c-0305e82c3301", "uuid"),
    ("12345", "other"),
])
def test_naming_style(name, style):
    assert naming_style(name) == style


def test_unknown_preferred_style_rejected():
    with pytest.raises(ValueError, match="Unknown naming styles"):
        NamingPreferences(allowed_styles=["Title Case"])


def test_preferences_with_environment_indicator(analyzer, scenario_inventory):
    options = _preference_options(allowed_styles=["Kebab-Case"], require_environment_indicator=True)

    result = analyzer.analyze(scenario_inventory, options).result

    # 0.4 * 80 (style) + 0.3 * 100 (8 of 10 meets the 80% bar) + 0.3 * 100 (no rule violations)
    assert result.score == 92.0
    assert result.metrics["scoring_mode"] == "client_preferences"
    assert result.metrics["violation_counts"] == {
        "PreferredStyleViolation": 2,
        "MissingEnvironmentIndicator": 2,
    }
    assert "PatternMismatch" not in result.metrics["violation_counts"]
    missing_env = [f for f in result.findings if f.finding_type == "MissingEnvironmentIndicator"]
    assert {f.resource_name for f in missing_env} == {"WebServer1", "DBSERVER02"}
    assert all(f.severity == Severity.HIGH for f in missing_env)


def test_preferences_without_environment_requirement(analyzer, scenario_inventory):
    result = analyzer.analyze(scenario_inventory, _preference_options(allowed_styles=["kebab-case"])).result

    assert result.score == pytest.approx((0.4 * 80 + 0.3 * 100) / 0.7, abs=0.01)
    assert {f.finding_type for f in result.findings} == {"PreferredStyleViolation"}


def test_environment_below_threshold_scores_coverage(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-prod-01"),
        resource_factory("vm-app-02"),
        resource_factory("vm-app-03"),
        resource_factory("vm-app-04"),
    )
    options = _preference_options(require_environment_indicator=True)

    result = analyzer.analyze(inventory, options).result

    assert result.metrics["environment_compliance_percentage"] == 25.0
    assert result.score == pytest.approx((0.3 * 25 + 0.3 * 100) / 0.6, abs=0.01)


def test_required_prefixes(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(
        resource_factory("vm-app-01"),
        resource_factory("app-server-02"),
        resource_factory("stappdata01", resource_type="Microsoft.Storage/storageAccounts"),
    )
    options = _preference_options(required_prefixes={"Microsoft.Compute/virtualMachines": ["VM-"]})

    result = analyzer.analyze(inventory, options).result

    assert [(f.resource_name, f.finding_type) for f in result.findings] == [
        ("app-server-02", "MissingRequiredPrefix")
    ]
    assert result.metrics["compliant_resources"] == 2
    assert result.findings[0].severity == Severity.MEDIUM


def test_preferences_count_rule_violations(analyzer, resource_factory, inventory_factory):
    inventory = inventory_factory(resource_factory("vm-app-01"), resource_factory("vm app 02"))
    options = _preference_options(allowed_styles=["kebab-case", "lowercase"])

    result = analyzer.analyze(inventory, options).result

    assert result.metrics["standards_compliance_percentage"] == 50.0
    assert "InvalidCharacters" in result.metrics["violation_counts"]


def test_no_preferences_keeps_dominant_pattern_scoring(analyzer, options, scenario_inventory):
    result = analyzer.analyze(scenario_inventory, options).result

    assert result.metrics["scoring_mode"] == "dominant_pattern"
    assert result.score == 80.0
