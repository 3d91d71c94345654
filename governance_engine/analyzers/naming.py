"""
Naming Convention Analyzer.

This analyzer checks resource names for consistency including:
- Tokenizing each name into a pattern (delimiter, casing, token shapes)
- Finding the dominant pattern per resource type
- Flagging resources that deviate from their type's dominant pattern
- Flagging invalid characters and over-long names

When a request carries NamingPreferences, names are instead scored against
the client's allowed styles, required prefixes and environment indicators.

Use of environment tokens, resource-type prefixes and the dominant separator
are reported as auxiliary metrics and do not affect the score.
"""

import logging
import re
from collections import Counter, defaultdict
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..config import EngineSettings
from ..models import (
    AzureResource,
    CategoryResult,
    Finding,
    FindingCategory,
    NamingPreferences,
    ResourceInventory,
    Severity,
)
from ..models.resource_models import ENVIRONMENT_TOKENS
from ..scoring import aggregate_scores, clamp_score
from .base import AnalysisOptions, BaseAnalyzer

logger = logging.getLogger(__name__)

DELIMITERS = ("-", "_", ".")

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_INVALID_CHARACTERS = re.compile(r"[^a-zA-Z0-9\-_\.]")
_TOKEN_SPLIT = re.compile(r"[-_.]+")
_PASCAL = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_CAMEL = re.compile(r"^[a-z][a-zA-Z0-9]*$")

RESOURCE_TYPE_PREFIXES: Dict[str, Tuple[str, ...]] = {
    "microsoft.compute/virtualmachines": ("vm",),
    "microsoft.compute/disks": ("disk", "osdisk"),
    "microsoft.storage/storageaccounts": ("st", "stor", "storage"),
    "microsoft.network/virtualnetworks": ("vnet",),
    "microsoft.network/networksecuritygroups": ("nsg",),
    "microsoft.network/publicipaddresses": ("pip", "ip"),
    "microsoft.network/networkinterfaces": ("nic",),
    "microsoft.network/loadbalancers": ("lb",),
    "microsoft.web/sites": ("app", "web", "func"),
    "microsoft.web/serverfarms": ("asp", "plan"),
    "microsoft.sql/servers": ("sql",),
    "microsoft.keyvault/vaults": ("kv", "vault"),
    "microsoft.containerregistry/registries": ("cr", "acr"),
    "microsoft.containerservice/managedclusters": ("aks", "k8s"),
    "microsoft.recoveryservices/vaults": ("rsv",),
}


class NamingPattern(NamedTuple):
    """Structural pattern of a resource name"""
    delimiter: str
    casing: str
    shapes: Tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.casing}|{self.delimiter or 'none'}|{'-'.join(self.shapes)}"


def _token_shape(token: str) -> str:
    if token.isdigit():
        return "n"
    if token.isalpha():
        return "a"
    return "x"


def _casing(name: str, delimiter: str) -> str:
    letters = [c for c in name if c.isalpha()]
    if not letters:
        return "numeric"
    if all(c.islower() for c in letters):
        return "lower"
    if all(c.isupper() for c in letters):
        return "upper"
    if not delimiter and _PASCAL.match(name):
        return "pascal"
    if not delimiter and _CAMEL.match(name):
        return "camel"
    return "mixed"


def tokenize_name(name: str) -> NamingPattern:
    """
    Extract the naming pattern of a resource name.

    Args:
        name: Resource name

    Returns:
        NamingPattern with the dominant delimiter, casing class and the
        ordered token shapes ("a" alphabetic, "n" numeric, "x" mixed)

    Example:
        >>> tokenize_name("vm-web-prod-01").signature
        'lower|-|a-a-a-n'
    """
    if _UUID_PATTERN.match(name):
        return NamingPattern("-", "uuid", ("uuid",))

    counts = {d: name.count(d) for d in DELIMITERS}
    delimiter = max(DELIMITERS, key=lambda d: counts[d]) if any(counts.values()) else ""
    tokens = [t for t in _TOKEN_SPLIT.split(name) if t]
    return NamingPattern(delimiter, _casing(name, delimiter), tuple(_token_shape(t) for t in tokens))


_STYLE_BY_DELIMITER = {"-": "kebab-case", "_": "snake_case", ".": "dotted"}
_STYLE_BY_CASING = {"lower": "lowercase", "upper": "uppercase", "pascal": "pascalcase", "camel": "camelcase"}


def naming_style(name: str) -> str:
    """
    Classify a name into one of the client-selectable NAMING_STYLES.

    Delimited names are classified by their dominant delimiter regardless of
    casing; undelimited names by their casing.

    Example:
        >>> naming_style("vm-app-prod-01"), naming_style("WebServer1")
        ('kebab-case', 'pascalcase')
    """
    pattern = tokenize_name(name)
    if pattern.casing == "uuid":
        return "uuid"
    if pattern.delimiter:
        return _STYLE_BY_DELIMITER[pattern.delimiter]
    return _STYLE_BY_CASING.get(pattern.casing, "other")


class NamingConventionAnalyzer(BaseAnalyzer):
    """
    Scores naming consistency per resource type.

    Without client preferences, score = compliant / total * 100, minus
    severity-weighted points for violations other than pattern mismatches.
    With preferences, see _score_preferences.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = (settings or EngineSettings()).naming

    @property
    def name(self) -> str:
        return "NamingConvention"

    @property
    def description(self) -> str:
        return "Checks resource names against the dominant naming pattern of each resource type"

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        return (FindingCategory.NAMING_CONVENTION,)

    def evaluate(self, inventory: ResourceInventory, options: AnalysisOptions) -> CategoryResult:
        resources = sorted(inventory.resources, key=lambda r: r.id)
        if not resources:
            return self.make_result(None, 0, [], {"total_resources": 0})

        patterns = {r.id: tokenize_name(r.name) for r in resources}
        rule_findings: List[Finding] = []
        for resource in resources:
            rule_findings.extend(self._check_name_rules(resource))

        preferences = options.assessment_options.naming_preferences
        if preferences is None:
            score, findings, scoring_metrics = self._score_dominant_patterns(resources, patterns, rule_findings, options)
        else:
            score, findings, scoring_metrics = self._score_preferences(resources, preferences, rule_findings, options)

        total = len(resources)
        metrics = {
            "total_resources": total,
            "scoring_mode": "dominant_pattern" if preferences is None else "client_preferences",
            **scoring_metrics,
            "pattern_distribution": dict(Counter(p.casing for p in patterns.values()).most_common()),
            "violation_counts": dict(Counter(f.finding_type for f in findings)),
            **self._auxiliary_metrics(resources, patterns),
        }
        return self.make_result(score, total, findings, metrics)

    def _score_dominant_patterns(
        self,
        resources: List[AzureResource],
        patterns: Dict[str, NamingPattern],
        rule_findings: List[Finding],
        options: AnalysisOptions
    ) -> Tuple[float, List[Finding], Dict[str, object]]:
        by_type: Dict[str, List[AzureResource]] = defaultdict(list)
        for resource in resources:
            by_type[resource.normalized_type].append(resource)

        findings: List[Finding] = []
        dominant_patterns: Dict[str, str] = {}
        consistent_weight = 0
        compliant_count = 0

        for resource_type in sorted(by_type):
            options.raise_if_cancelled()
            members = by_type[resource_type]
            dominant = self._dominant_pattern([patterns[r.id] for r in members])
            dominant_patterns[resource_type] = dominant.signature

            compliant = [r for r in members if patterns[r.id] == dominant]
            compliant_count += len(compliant)
            if len(compliant) / len(members) >= self.settings.consistency_threshold:
                consistent_weight += len(members)

            example = compliant[0].name
            for resource in members:
                if patterns[resource.id] != dominant:
                    findings.append(self._pattern_mismatch(resource, dominant, example))

        findings.extend(rule_findings)

        total = len(resources)
        penalty = sum(self.settings.violation_points.get(f.severity, 0.0) for f in rule_findings)
        score = clamp_score(compliant_count / total * 100.0 - penalty)

        metrics = {
            "compliant_resources": compliant_count,
            "naming_consistency_percentage": round(consistent_weight / total * 100.0, 2),
            "dominant_patterns": dominant_patterns,
        }
        return score, findings, metrics

    def _score_preferences(
        self,
        resources: List[AzureResource],
        preferences: NamingPreferences,
        rule_findings: List[Finding],
        options: AnalysisOptions
    ) -> Tuple[float, List[Finding], Dict[str, object]]:
        """
        Score names against client preferences.

        The score is a weighted average of three components, normalized over
        the components that apply: preference compliance (allowed style and
        required prefix), environment indicator compliance, and the share of
        names without standard rule violations. Environment compliance counts
        as 100 once coverage reaches the configured threshold.
        """
        findings: List[Finding] = []
        preference_compliant = 0
        with_environment = 0
        check_preferences = bool(preferences.allowed_styles or preferences.required_prefixes)

        for resource in resources:
            options.raise_if_cancelled()
            style = naming_style(resource.name)
            compliant = True

            if preferences.allowed_styles and style not in preferences.allowed_styles:
                compliant = False
                findings.append(self.make_finding(
                    category=FindingCategory.NAMING_CONVENTION,
                    finding_type="PreferredStyleViolation",
                    severity=Severity.MEDIUM,
                    issue=(
                        f"Name '{resource.name}' uses {style} but the client prefers "
                        f"{', '.join(preferences.allowed_styles)}"
                    ),
                    recommendation=f"Rename using {preferences.allowed_styles[0]}",
                    resource=resource,
                ))

            prefixes = preferences.required_prefixes.get(resource.normalized_type)
            if prefixes and not resource.name.lower().startswith(tuple(prefixes)):
                compliant = False
                findings.append(self.make_finding(
                    category=FindingCategory.NAMING_CONVENTION,
                    finding_type="MissingRequiredPrefix",
                    severity=Severity.MEDIUM,
                    issue=(
                        f"Name '{resource.name}' does not start with a required prefix "
                        f"for {resource.resource_type_name} resources ({', '.join(prefixes)})"
                    ),
                    recommendation=f"Prefix the name with '{prefixes[0]}'",
                    resource=resource,
                ))

            if compliant:
                preference_compliant += 1

            tokens = [t.lower() for t in _TOKEN_SPLIT.split(resource.name) if t]
            if any(t in preferences.environment_indicators for t in tokens):
                with_environment += 1
            elif preferences.require_environment_indicator:
                findings.append(self.make_finding(
                    category=FindingCategory.NAMING_CONVENTION,
                    finding_type="MissingEnvironmentIndicator",
                    severity=Severity.HIGH,
                    issue=f"Name '{resource.name}' does not identify its environment",
                    recommendation=(
                        f"Include an environment token such as "
                        f"{', '.join(preferences.environment_indicators[:4])} in the name"
                    ),
                    resource=resource,
                ))

        findings.extend(rule_findings)

        total = len(resources)
        violating = len({f.resource_id for f in rule_findings})
        standards_compliance = clamp_score(100.0 - violating / total * 100.0)
        preference_compliance = preference_compliant / total * 100.0
        environment_coverage = with_environment / total
        environment_compliance = (
            100.0 if environment_coverage >= self.settings.environment_threshold
            else environment_coverage * 100.0
        )

        components = [(standards_compliance, self.settings.standards_weight)]
        if check_preferences:
            components.append((preference_compliance, self.settings.preference_weight))
        if preferences.require_environment_indicator:
            components.append((environment_compliance, self.settings.environment_weight))
        score = clamp_score(aggregate_scores(components) or 0.0)

        metrics = {
            "compliant_resources": preference_compliant,
            "preference_compliance_percentage": round(preference_compliance, 2),
            "environment_compliance_percentage": round(environment_compliance, 2),
            "standards_compliance_percentage": round(standards_compliance, 2),
            "style_distribution": dict(Counter(naming_style(r.name) for r in resources).most_common()),
        }
        return score, findings, metrics

    def _dominant_pattern(self, patterns: List[NamingPattern]) -> NamingPattern:
        counts = Counter(patterns)
        return min(counts, key=lambda p: (-counts[p], p.signature))

    def _pattern_mismatch(self, resource: AzureResource, dominant: NamingPattern, example: str) -> Finding:
        return self.make_finding(
            category=FindingCategory.NAMING_CONVENTION,
            finding_type="PatternMismatch",
            severity=Severity.LOW,
            issue=(
                f"Name '{resource.name}' does not follow the dominant naming pattern "
                f"for {resource.resource_type_name} resources ({dominant.signature})"
            ),
            recommendation=f"Rename to match the pattern used by other {resource.resource_type_name} resources, e.g. '{example}'",
            resource=resource,
        )

    def _check_name_rules(self, resource: AzureResource) -> List[Finding]:
        findings = []

        invalid = sorted(set(_INVALID_CHARACTERS.findall(resource.name)))
        if invalid:
            findings.append(self.make_finding(
                category=FindingCategory.NAMING_CONVENTION,
                finding_type="InvalidCharacters",
                severity=Severity.HIGH,
                issue=f"Name '{resource.name}' contains invalid characters: {' '.join(invalid)}",
                recommendation="Use only letters, digits, hyphens, underscores and periods in resource names",
                resource=resource,
            ))

        if len(resource.name) > self.settings.max_name_length:
            findings.append(self.make_finding(
                category=FindingCategory.NAMING_CONVENTION,
                finding_type="NameTooLong",
                severity=Severity.MEDIUM,
                issue=(
                    f"Name '{resource.name}' is {len(resource.name)} characters long "
                    f"(limit {self.settings.max_name_length})"
                ),
                recommendation="Shorten the name using standard abbreviations for type and environment",
                resource=resource,
            ))

        return findings

    def _auxiliary_metrics(self, resources: List[AzureResource], patterns: Dict[str, NamingPattern]) -> Dict[str, object]:
        total = len(resources)

        with_environment = 0
        prefix_candidates = 0
        with_prefix = 0
        for resource in resources:
            tokens = [t.lower() for t in _TOKEN_SPLIT.split(resource.name) if t]
            if any(t in ENVIRONMENT_TOKENS for t in tokens):
                with_environment += 1

            prefixes = RESOURCE_TYPE_PREFIXES.get(resource.normalized_type)
            if prefixes:
                prefix_candidates += 1
                if resource.name.lower().startswith(prefixes):
                    with_prefix += 1

        separators = Counter(p.delimiter for p in patterns.values() if p.delimiter)
        dominant_separator = None
        separator_share = 0.0
        if separators:
            dominant_separator, count = min(separators.items(), key=lambda item: (-item[1], item[0]))
            separator_share = count / total * 100.0

        return {
            "environment_indicator_percentage": round(with_environment / total * 100.0, 2),
            "resource_type_prefix_percentage": (
                round(with_prefix / prefix_candidates * 100.0, 2) if prefix_candidates else None
            ),
            "dominant_separator": dominant_separator,
            "separator_consistency_percentage": round(separator_share, 2),
        }
