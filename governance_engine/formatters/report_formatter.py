"""
Markdown report formatter for finished assessments.

Renders the status header, a category score table, findings grouped by
severity and the derived recommendations.
"""

from typing import Dict, List, Optional

from ..models import Assessment, AssessmentStatus, Finding, Recommendation, Severity, sort_findings


class ReportFormatter:
    """
    Formats an assessment as markdown with emojis and tables.

    Features:
    - Emoji indicators for severity levels (🔴 Critical, 🟠 High, 🟡 Medium, 🟢 Low)
    - Category score table, including unavailable categories
    - Findings grouped by severity, most severe first
    - Output length limiting (9000 characters per section)
    """

    SEVERITY_EMOJIS = {
        Severity.CRITICAL: "🔴",
        Severity.HIGH: "🟠",
        Severity.MEDIUM: "🟡",
        Severity.LOW: "🟢"
    }

    STATUS_EMOJIS = {
        AssessmentStatus.PENDING: "⏳",
        AssessmentStatus.IN_PROGRESS: "🔄",
        AssessmentStatus.COMPLETED: "✅",
        AssessmentStatus.FAILED: "❌",
    }

    # Maximum characters per section before truncation
    MAX_SECTION_LENGTH = 9000

    def format(self, assessment: Assessment, findings: Optional[List[Finding]] = None) -> str:
        """
        Format an assessment as markdown.

        Args:
            assessment: Assessment snapshot
            findings: Findings to render; defaults to the assessment's own

        Returns:
            Markdown report
        """
        findings = sort_findings(findings if findings is not None else assessment.findings)
        parts = [self._format_header(assessment)]

        if assessment.category_results or assessment.category_errors:
            parts.append(self._format_score_table(assessment))

        if findings:
            parts.append(self._format_findings_section(findings))
        elif assessment.status == AssessmentStatus.COMPLETED:
            parts.append("\n### 🟢 All Clear\n\nNo governance issues detected in this environment.\n")

        if assessment.recommendations:
            parts.append(self._format_recommendations_section(assessment.recommendations))

        return "\n".join(parts)

    def _format_header(self, assessment: Assessment) -> str:
        emoji = self.STATUS_EMOJIS.get(assessment.status, "⚪")
        score = "n/a" if assessment.overall_score is None else f"{assessment.overall_score:.1f}"
        lines = [
            f"## 🔍 {assessment.assessment_type.value} Assessment\n",
            f"- **Status**: {emoji} {assessment.status.value}\n",
            f"- **Overall Score**: {score}\n",
            f"- **Resources Analyzed**: {assessment.total_resources_analyzed}\n",
            f"- **Issues Found**: {assessment.issues_found}\n",
        ]
        if assessment.error_message:
            lines.append(f"- **Error**: {assessment.error_message}\n")
        return "".join(lines)

    def _format_score_table(self, assessment: Assessment) -> str:
        table = ["\n### 📊 Category Scores\n", "\n| Category | Score | Resources | Findings |\n"]
        table.append("|----------|-------|-----------|----------|\n")

        for name, result in assessment.category_results.items():
            score = "n/a" if result.score is None else f"{result.score:.1f}"
            table.append(f"| {name} | {score} | {result.total_resources} | {len(result.findings)} |\n")
        for name, error in assessment.category_errors.items():
            table.append(f"| {name} | ⚠️ unavailable | - | - |\n")

        if assessment.category_errors:
            table.append(f"\n*{len(assessment.category_errors)} categories unavailable*\n")
        return "".join(table)

    def _format_findings_section(self, findings: List[Finding]) -> str:
        by_severity: Dict[Severity, List[Finding]] = {}
        for finding in findings:
            by_severity.setdefault(finding.severity, []).append(finding)

        section = ["\n### 🚨 Findings\n"]
        for severity in Severity:
            group = by_severity.get(severity)
            if not group:
                continue
            section.append(f"\n#### {self.SEVERITY_EMOJIS[severity]} {severity.value.capitalize()} ({len(group)})\n")
            for finding in group:
                section.append(self._format_single_finding(finding))

        return self._apply_length_limit("".join(section), findings)

    def _format_recommendations_section(self, recommendations: List[Recommendation]) -> str:
        section = ["\n### 🟢 Key Recommendations\n"]
        for i, rec in enumerate(recommendations, 1):
            section.append(
                f"\n{i}. **{rec.title}** (priority: {rec.priority.value}, effort: {rec.estimated_effort.value})\n"
            )
            section.append(f"   {rec.description}\n")
            for step in rec.action_plan:
                section.append(f"   - {step}\n")
        return "".join(section)

    def _apply_length_limit(self, section: str, findings: List[Finding]) -> str:
        """Keep the section under MAX_SECTION_LENGTH, dropping the least severe findings first."""
        if len(section) <= self.MAX_SECTION_LENGTH:
            return section

        parts = ["\n### 🚨 Findings\n", "\n⚠️ *Output truncated to show the most severe findings only*\n"]
        current_length = len("".join(parts))
        included = 0

        for finding in findings:
            finding_text = self._format_single_finding(finding)
            # Leave room for the footer
            if current_length + len(finding_text) > self.MAX_SECTION_LENGTH - 200:
                break
            parts.append(finding_text)
            current_length += len(finding_text)
            included += 1

        omitted = len(findings) - included
        if omitted > 0:
            parts.append(f"\n\n*{omitted} additional findings omitted due to length constraints*\n")
        return "".join(parts)

    def _format_single_finding(self, finding: Finding) -> str:
        emoji = self.SEVERITY_EMOJIS.get(finding.severity, "⚪")
        parts = [f"\n{emoji} **{finding.finding_type}** ({finding.category.value})\n"]
        parts.append(f"- **Resource**: `{finding.resource_name or finding.resource_id}`\n")
        parts.append(f"- **Issue**: {finding.issue}\n")
        parts.append(f"- **Remediation**: {finding.recommendation}\n")
        return "".join(parts)
