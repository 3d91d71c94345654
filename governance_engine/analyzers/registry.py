"""
Analyzer Registry mapping assessment types to analyzer nodes.

This module implements a thread-safe registry that holds the available
analyzers and the declarative AssessmentType -> ordered nodes table.
AnalyzerRegistry() returns the process singleton; create_isolated() returns
a private registry, which is what each orchestrator builds its catalog into.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence

from ..exceptions import AssessmentValidationError
from ..models import AssessmentOptions, AssessmentType, FindingCategory
from .base import BaseAnalyzer
from .nodes import AnalyzerNode, CompositeNode, LeafNode

logger = logging.getLogger(__name__)


class AnalyzerRegistry:
    """
    Thread-safe singleton registry for analyzers and assessment plans.

    The registry provides methods to:
    - Register analyzers by name
    - Declare which nodes run for each assessment type
    - Resolve the enabled node set for a request

    Thread Safety:
        Uses double-checked locking pattern for singleton instantiation
        and a lock for thread-safe registration.
    """

    _instance: Optional['AnalyzerRegistry'] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls) -> 'AnalyzerRegistry':
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize the registry (only runs once for singleton)"""
        if self._initialized:
            return

        self._analyzers: Dict[str, BaseAnalyzer] = {}
        self._plans: Dict[AssessmentType, List[AnalyzerNode]] = {}
        self._registry_lock: threading.Lock = threading.Lock()
        self._initialized = True

    @classmethod
    def create_isolated(cls) -> "AnalyzerRegistry":
        """Create a registry that is not the process singleton."""
        instance = super().__new__(cls)
        instance._initialized = False
        instance.__init__()
        return instance

    def register(self, analyzer: BaseAnalyzer, replace: bool = False) -> None:
        """
        Register an analyzer with the registry.

        Args:
            analyzer: Analyzer instance implementing BaseAnalyzer
            replace: Overwrite an analyzer already registered under the same name

        Raises:
            TypeError: If analyzer doesn't implement BaseAnalyzer
            ValueError: If an analyzer with the same name is already registered
        """
        if not isinstance(analyzer, BaseAnalyzer):
            raise TypeError(f"Analyzer must implement BaseAnalyzer interface, got {type(analyzer)}")

        analyzer_name = analyzer.name

        with self._registry_lock:
            if analyzer_name in self._analyzers and not replace:
                raise ValueError(f"Analyzer '{analyzer_name}' is already registered")

            try:
                _ = analyzer.description
                _ = analyzer.categories
            except (AttributeError, NotImplementedError) as e:
                raise ValueError(f"Analyzer '{analyzer_name}' missing required properties: {e}")

            self._analyzers[analyzer_name] = analyzer

    def get_analyzer(self, analyzer_name: str) -> Optional[BaseAnalyzer]:
        with self._registry_lock:
            return self._analyzers.get(analyzer_name)

    def list_analyzers(self) -> List[str]:
        """
        List all registered analyzer names.

        Returns:
            List of analyzer names in registration order
        """
        with self._registry_lock:
            return list(self._analyzers.keys())

    def leaf(self, analyzer_name: str) -> LeafNode:
        """
        Build a leaf node for a registered analyzer.

        Raises:
            KeyError: If the analyzer is not registered
        """
        analyzer = self.get_analyzer(analyzer_name)
        if analyzer is None:
            raise KeyError(f"Analyzer '{analyzer_name}' is not registered")
        return LeafNode(analyzer)

    def register_plan(
        self,
        assessment_type: AssessmentType,
        nodes: Sequence[AnalyzerNode],
        replace: bool = False
    ) -> None:
        """
        Declare the ordered nodes that run for an assessment type.

        Raises:
            ValueError: If the type already has a plan and replace is False
        """
        with self._registry_lock:
            if assessment_type in self._plans and not replace:
                raise ValueError(f"Assessment type '{assessment_type.value}' already has a plan")
            self._plans[assessment_type] = list(nodes)

    def has_plan(self, assessment_type: AssessmentType) -> bool:
        with self._registry_lock:
            return assessment_type in self._plans

    def resolve(self, assessment_type: AssessmentType, options: AssessmentOptions) -> List[AnalyzerNode]:
        """
        Resolve the enabled nodes for a request.

        Disabled leaves are removed; a composite whose children are all
        disabled is removed with them.

        Args:
            assessment_type: Requested assessment type
            options: Request options carrying per-analyzer enable flags

        Returns:
            Ordered list of enabled nodes

        Raises:
            AssessmentValidationError: If the type has no plan or no enabled analyzers
        """
        with self._registry_lock:
            plan = self._plans.get(assessment_type)

        if plan is None:
            raise AssessmentValidationError(
                f"No analyzers are registered for assessment type '{assessment_type.value}'"
            )

        resolved = [n for n in (_filter_node(node, options) for node in plan) if n is not None]
        if not resolved:
            raise AssessmentValidationError(
                f"Assessment type '{assessment_type.value}' has no enabled categories"
            )
        return resolved

    def enabled_categories(self, nodes: Sequence[AnalyzerNode]) -> List[FindingCategory]:
        categories: List[FindingCategory] = []
        for node in nodes:
            for category in node.categories:
                if category not in categories:
                    categories.append(category)
        return categories

    @classmethod
    def reset(cls) -> None:
        """
        Reset the singleton instance (primarily for testing).

        Warning:
            This method should only be used in test scenarios.
        """
        with cls._lock:
            cls._instance = None


def _filter_node(node: AnalyzerNode, options: AssessmentOptions) -> Optional[AnalyzerNode]:
    if isinstance(node, LeafNode):
        return node if options.is_analyzer_enabled(node.name) else None
    if isinstance(node, CompositeNode):
        children = [c for c in (_filter_node(child, options) for child in node.children) if c is not None]
        if not children:
            return None
        if len(children) == len(node.children):
            return node
        return node.with_children(children)
    raise TypeError(f"Unknown analyzer node type: {type(node).__name__}")
