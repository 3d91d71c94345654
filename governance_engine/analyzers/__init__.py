"""
Analyzers package for governance assessments.

This package contains the base analyzer interface, the node model used to
compose analyzers into meta-analyzers, the registry and every built-in
category analyzer.
"""

from .base import AnalysisOptions, BaseAnalyzer
from .nodes import AnalyzerNode, CompositeNode, LeafNode, evaluate_node, execute_nodes
from .registry import AnalyzerRegistry
from .catalog import build_default_registry

__all__ = [
    "AnalysisOptions",
    "BaseAnalyzer",
    "AnalyzerNode",
    "CompositeNode",
    "LeafNode",
    "evaluate_node",
    "execute_nodes",
    "AnalyzerRegistry",
    "build_default_registry",
]
