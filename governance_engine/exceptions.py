"""
Exception hierarchy for the governance assessment engine.

Only inventory and persistence failures are fatal to an assessment.
Analyzer failures are converted to AnalyzerError outcomes at the analyzer
boundary and never reach the orchestrator as exceptions.
"""

from typing import Optional


class GovernanceEngineError(Exception):
    """Base class for all engine errors."""
    pass


class AssessmentValidationError(GovernanceEngineError):
    """Malformed assessment request. Raised before any state is created."""
    pass


class InventoryUnavailableError(GovernanceEngineError):
    """The inventory provider could not return a resource inventory."""
    pass


class AnalyzerUnavailableError(GovernanceEngineError):
    """An analyzer could not evaluate its category.

    Args:
        category: Name of the analyzer that failed
        cause: Human-readable cause
    """

    def __init__(self, category: str, cause: str):
        super().__init__(f"{category} unavailable: {cause}")
        self.category = category
        self.cause = cause


class AnalysisCancelledError(GovernanceEngineError):
    """Raised cooperatively when an assessment or analyzer is cancelled."""
    pass


class PersistenceError(GovernanceEngineError):
    """The persistence gateway failed to read or write a record."""
    pass


class AssessmentNotFoundError(PersistenceError):
    """No assessment exists with the requested id."""

    def __init__(self, assessment_id: str):
        super().__init__(f"Assessment '{assessment_id}' not found")
        self.assessment_id = assessment_id


class InvalidStatusTransitionError(GovernanceEngineError):
    """A status change would move an assessment backwards."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot transition assessment from {current} to {requested}")
        self.current = current
        self.requested = requested


class ConcurrentUpdateError(GovernanceEngineError):
    """The stored status did not match the writer's expected status."""

    def __init__(self, assessment_id: str, expected: Optional[str], actual: str):
        super().__init__(
            f"Assessment '{assessment_id}' expected status {expected} but found {actual}"
        )
        self.assessment_id = assessment_id
        self.expected = expected
        self.actual = actual
