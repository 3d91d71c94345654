"""
Governance assessment engine.

Runs category analyzers over a collected cloud resource inventory, scores
the results and drives each assessment through its lifecycle.
"""

from .config import EngineSettings
from .exceptions import (
    AnalysisCancelledError,
    AnalyzerUnavailableError,
    AssessmentNotFoundError,
    AssessmentValidationError,
    ConcurrentUpdateError,
    GovernanceEngineError,
    InvalidStatusTransitionError,
    InventoryUnavailableError,
    PersistenceError,
)
from .normalizer import FindingNormalizer
from .orchestrator import AssessmentOrchestrator
from .providers import (
    DirectoryProvider,
    InventoryProvider,
    JsonFileInventoryProvider,
    StaticDirectoryProvider,
    StaticInventoryProvider,
)
from .repository import AssessmentRepository, InMemoryAssessmentRepository
from .scoring import aggregate_scores

__version__ = "0.1.0"

__all__ = [
    "EngineSettings",
    "AnalysisCancelledError",
    "AnalyzerUnavailableError",
    "AssessmentNotFoundError",
    "AssessmentValidationError",
    "ConcurrentUpdateError",
    "GovernanceEngineError",
    "InvalidStatusTransitionError",
    "InventoryUnavailableError",
    "PersistenceError",
    "FindingNormalizer",
    "AssessmentOrchestrator",
    "DirectoryProvider",
    "InventoryProvider",
    "JsonFileInventoryProvider",
    "StaticDirectoryProvider",
    "StaticInventoryProvider",
    "AssessmentRepository",
    "InMemoryAssessmentRepository",
    "aggregate_scores",
]
