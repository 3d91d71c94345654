"""
Unit tests for ReportFormatter.

Tests cover:
- Header with status, score and error message
- Category score table with unavailable categories
- Findings grouped by severity
- All-clear output for completed assessments without findings
- Recommendations section
- Length limiting of the findings section
"""

import pytest

from governance_engine.formatters import ReportFormatter
from governance_engine.models import (
    AnalyzerError,
    Assessment,
    AssessmentStatus,
    AssessmentType,
    CategoryResult,
    EffortLevel,
    Finding,
    FindingCategory,
    Priority,
    Recommendation,
    Severity,
)


@pytest.fixture
def formatter():
    return ReportFormatter()


def _finding(severity, name="vm-1", finding_type="NoTags", issue="Resource has no tags"):
    return Finding(
        category=FindingCategory.TAG_COVERAGE,
        finding_type=finding_type,
        resource_id=f"/subscriptions/s/resourceGroups/rg/providers/x/{name}",
        resource_name=name,
        severity=severity,
        issue=issue,
        recommendation="Apply the required tags",
    )


def _assessment(**kwargs):
    values = {
        "environment_id": "env-1",
        "assessment_type": AssessmentType.FULL,
        "status": AssessmentStatus.COMPLETED,
        "overall_score": 70.0,
        "total_resources_analyzed": 10,
    }
    values.update(kwargs)
    return Assessment(**values)


def test_header(formatter):
    output = formatter.format(_assessment(issues_found=6))

    assert "## 🔍 Full Assessment" in output
    assert "- **Status**: ✅ Completed" in output
    assert "- **Overall Score**: 70.0" in output
    assert "- **Resources Analyzed**: 10" in output
    assert "- **Issues Found**: 6" in output


def test_failed_header(formatter):
    output = formatter.format(_assessment(
        status=AssessmentStatus.FAILED, overall_score=None, error_message="Inventory unavailable: offline"
    ))

    assert "❌ Failed" in output
    assert "- **Overall Score**: n/a" in output
    assert "- **Error**: Inventory unavailable: offline" in output
    assert "All Clear" not in output


def test_score_table(formatter):
    output = formatter.format(_assessment(
        category_results={
            "NamingConvention": CategoryResult(category="NamingConvention", score=80.0, total_resources=10),
            "Dependency": CategoryResult(category="Dependency", score=None),
        },
        category_errors={"IdentityAccess": AnalyzerError(category="IdentityAccess", cause="down")},
    ))

    assert "| NamingConvention | 80.0 | 10 | 0 |" in output
    assert "| Dependency | n/a | 0 | 0 |" in output
    assert "| IdentityAccess | ⚠️ unavailable | - | - |" in output
    assert "*1 categories unavailable*" in output


def test_findings_grouped_by_severity(formatter):
    findings = [_finding(Severity.LOW, "vm-3"), _finding(Severity.HIGH, "vm-1"), _finding(Severity.HIGH, "vm-2")]

    output = formatter.format(_assessment(findings=findings))

    assert "### 🚨 Findings" in output
    assert "#### 🟠 High (2)" in output
    assert "#### 🟢 Low (1)" in output
    assert output.index("High (2)") < output.index("Low (1)")
    assert "**NoTags** (TagCoverage)" in output
    assert "- **Resource**: `vm-1`" in output


def test_all_clear(formatter):
    output = formatter.format(_assessment())

    assert "### 🟢 All Clear" in output


def test_recommendations(formatter):
    recommendation = Recommendation(
        category="Tagging",
        title="Implement Comprehensive Tagging Strategy",
        description="Found 4 issue(s) across 4 resource(s) (4 high).",
        priority=Priority.HIGH,
        estimated_effort=EffortLevel.MEDIUM,
        action_plan=["Apply the required tags"],
    )

    output = formatter.format(_assessment(recommendations=[recommendation]))

    assert "### 🟢 Key Recommendations" in output
    assert "1. **Implement Comprehensive Tagging Strategy** (priority: high, effort: medium)" in output
    assert "   - Apply the required tags" in output


def test_findings_argument_overrides_assessment(formatter):
    output = formatter.format(_assessment(), findings=[_finding(Severity.MEDIUM)])

    assert "#### 🟡 Medium (1)" in output


def test_length_limit(formatter):
    findings = [
        _finding(Severity.CRITICAL if i < 5 else Severity.LOW, f"vm-{i:03d}", issue="x" * 300)
        for i in range(100)
    ]

    output = formatter.format(_assessment(), findings=findings)

    assert "Output truncated" in output
    assert "additional findings omitted" in output
    section = output[output.index("### 🚨 Findings"):]
    assert len(section) <= ReportFormatter.MAX_SECTION_LENGTH
    assert "vm-000" in section
