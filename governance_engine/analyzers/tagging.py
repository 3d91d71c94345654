"""
Tagging Analyzer.

This analyzer checks tag coverage and quality including:
- Coverage: share of taggable resources carrying any tag
- Required tags: presence of each configured required tag (case-insensitive)
- Empty tag values
- Tag keys that differ only by case on the same resource

Tag usage frequency is tracked as an auxiliary metric and is not scored.
"""

import logging
from collections import Counter
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
from ..scoring import clamp_score
from .base import AnalysisOptions, BaseAnalyzer

logger = logging.getLogger(__name__)


class TaggingAnalyzer(BaseAnalyzer):
    """
    Scores tag coverage and quality.

    Score = coverage * coverage_weight + quality * quality_weight, normalized
    by the weight sum. Quality is the share of applicable resources carrying
    every required tag with a non-empty value.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = (settings or EngineSettings()).tagging

    @property
    def name(self) -> str:
        return "Tagging"

    @property
    def description(self) -> str:
        return "Checks tag coverage, required tags and tag hygiene on taggable resources"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.TAG_COVERAGE, FindingCategory.TAG_QUALITY)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        required_tags = options.assessment_options.required_tags
        if required_tags is None:
            required_tags = self.settings.required_tags

        non_taggable = {t.lower() for t in self.settings.non_taggable_types}
        applicable = sorted(
            (r for r in inventory.resources if r.normalized_type not in non_taggable),
            key=lambda r: r.id,
        )
        if not applicable:
            return self.make_result(None, 0, [], {"applicable_resources": 0})

        findings: List[Finding] = []
        tagged = 0
        fully_tagged = 0
        usage: Counter = Counter()

        for resource in applicable:
            options.raise_if_cancelled()
            usage.update(resource.tags.keys())
            if resource.has_tags:
                tagged += 1

            missing = [t for t in required_tags if resource.get_tag(t) is None]
            empty_required = [t for t in required_tags if resource.get_tag(t) is not None and not resource.get_tag(t).strip()]
            if not missing and not empty_required:
                fully_tagged += 1

            if missing:
                findings.append(self._missing_tags_finding(resource, missing, len(required_tags)))
            findings.extend(self._hygiene_findings(resource))

        total = len(applicable)
        coverage = tagged / total * 100.0
        quality = fully_tagged / total * 100.0 if required_tags else coverage

        weight_sum = self.settings.coverage_weight + self.settings.quality_weight
        if weight_sum > 0:
            score = (
                coverage * self.settings.coverage_weight + quality * self.settings.quality_weight
            ) / weight_sum
        else:
            score = coverage

        metrics = {
            "applicable_resources": total,
            "tagged_resources": tagged,
            "tag_coverage_percentage": round(coverage, 2),
            "tag_quality_percentage": round(quality, 2),
            "required_tags": list(required_tags),
            "tag_usage_frequency": dict(sorted(usage.items(), key=lambda item: (-item[1], item[0]))),
            "low_adoption_required_tags": self._low_adoption_tags(applicable, required_tags),
        }
        return self.make_result(clamp_score(score), total, findings, metrics)

    def _missing_tags_finding(self, resource: AzureResource, missing: List[str], required_count: int) -> Finding:
        if not resource.has_tags:
            return self.make_finding(
                category=FindingCategory.TAG_COVERAGE,
                finding_type="NoTags",
                severity=Severity.HIGH,
                issue=f"Resource has no tags; missing required tags: {', '.join(missing)}",
                recommendation=f"Apply the required tags ({', '.join(missing)}) to this resource",
                resource=resource,
            )

        severity = Severity.HIGH if len(missing) > self.settings.missing_tags_high_threshold else Severity.MEDIUM
        return self.make_finding(
            category=FindingCategory.TAG_QUALITY,
            finding_type="MissingRequiredTags",
            severity=severity,
            issue=f"Missing {len(missing)} of {required_count} required tags: {', '.join(missing)}",
            recommendation=f"Add the missing tags: {', '.join(missing)}",
            resource=resource,
        )

    def _hygiene_findings(self, resource: AzureResource) -> List[Finding]:
        findings = []

        empty_keys = sorted(k for k, v in resource.tags.items() if not v or not v.strip())
        if empty_keys:
            findings.append(self.make_finding(
                category=FindingCategory.TAG_QUALITY,
                finding_type="EmptyTagValues",
                severity=Severity.MEDIUM,
                issue=f"Tags with empty values: {', '.join(empty_keys)}",
                recommendation="Provide meaningful values for all tags or remove unused tags",
                resource=resource,
            ))

        by_lower: Dict[str, List[str]] = {}
        for key in resource.tags:
            by_lower.setdefault(key.lower(), []).append(key)
        duplicates = sorted(k for keys in by_lower.values() if len(keys) > 1 for k in keys)
        if duplicates:
            findings.append(self.make_finding(
                category=FindingCategory.TAG_QUALITY,
                finding_type="InconsistentTagNaming",
                severity=Severity.LOW,
                issue=f"Tag keys differ only by case: {', '.join(duplicates)}",
                recommendation="Standardize tag key casing and remove the duplicate keys",
                resource=resource,
            ))

        return findings

    def _low_adoption_tags(self, resources: List[AzureResource], required_tags: List[str]) -> List[str]:
        total = len(resources)
        low = []
        for tag in required_tags:
            present = sum(1 for r in resources if r.get_tag(tag) is not None)
            if present / total < self.settings.low_adoption_threshold:
                low.append(tag)
        return low
