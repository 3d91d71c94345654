"""
Scoring aggregator shared by meta-analyzers and the orchestrator.

The same function combines leaf scores into a domain score and domain or
category scores into the overall score, so nesting depth never changes the
formula.
"""

import math
from typing import Dict, Iterable, List, Optional, Tuple

from .models.finding_models import Finding, Severity


def aggregate_scores(entries: Iterable[Tuple[Optional[float], float]]) -> Optional[float]:
    """
    Weighted mean of the non-null scores.

    Args:
        entries: (score, weight) pairs. A None score, or a weight <= 0,
            contributes nothing to either the numerator or the denominator

    Returns:
        sum(score * weight) / sum(weight) over the contributing entries,
        or None when no entry contributes

    Example:
        >>> aggregate_scores([(80.0, 1.0), (None, 1.0), (60.0, 1.0)])
        70.0
    """
    contributing = [
        (float(score), float(weight))
        for score, weight in entries
        if score is not None and weight > 0
    ]
    if not contributing:
        return None

    total_weight = math.fsum(weight for _, weight in contributing)
    weighted = math.fsum(score * weight for score, weight in contributing)
    return weighted / total_weight


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def deduction_score(
    findings: List[Finding],
    applicable_count: int,
    points: Dict[Severity, float]
) -> Optional[float]:
    """
    Normalized point-deduction score used by most leaf analyzers.

    Each applicable item can lose at most the Critical point value, so an
    inventory where every item carries one Critical finding scores 0.

    Args:
        findings: Findings emitted by the analyzer
        applicable_count: Number of items the analyzer inspected
        points: Points deducted per finding, by severity

    Returns:
        Score in [0, 100], or None when nothing was applicable
    """
    if applicable_count <= 0:
        return None

    budget = applicable_count * max(points.get(Severity.CRITICAL, 0.0), 1.0)
    deducted = math.fsum(points.get(f.severity, 0.0) for f in findings)
    return clamp_score(100.0 * (1.0 - min(1.0, deducted / budget)))
