"""
Analyzer composition and bounded-parallel execution.

An AnalyzerNode is either a LeafNode wrapping one analyzer or a CompositeNode
(meta-analyzer) grouping child nodes under a governance domain. Both are
evaluated by evaluate_node; a composite runs its children through the same
execute_nodes fan-out and combines them with the same aggregate_scores rule
the orchestrator uses for the overall score.
"""

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..config import EngineSettings
from ..exceptions import AnalysisCancelledError
from ..models import (
    AnalyzerOutcome,
    CategoryResult,
    Finding,
    FindingCategory,
    ResourceInventory,
    sort_findings,
)
from ..scoring import aggregate_scores
from ..utils.cancellation import CancellationToken, WorkerSlots
from .base import AnalysisOptions, BaseAnalyzer

logger = logging.getLogger(__name__)


class AnalyzerNode(ABC):
    """A unit of analysis: a single analyzer or a domain of analyzers."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def leaves(self) -> List["LeafNode"]:
        """All leaf nodes under this node, in declaration order."""
        pass

    @property
    def categories(self) -> Tuple[FindingCategory, ...]:
        seen: List[FindingCategory] = []
        for leaf in self.leaves():
            for category in leaf.analyzer.categories:
                if category not in seen:
                    seen.append(category)
        return tuple(seen)


class LeafNode(AnalyzerNode):
    """Node wrapping a single analyzer."""

    def __init__(self, analyzer: BaseAnalyzer):
        self.analyzer = analyzer

    @property
    def name(self) -> str:
        return self.analyzer.name

    def leaves(self) -> List["LeafNode"]:
        return [self]

    def __repr__(self) -> str:
        return f"LeafNode({self.name})"


class CompositeNode(AnalyzerNode):
    """
    Meta-analyzer owning one governance domain.

    Args:
        name: Domain name, used as the category result key
        children: Child nodes, leaves or further composites
        weights: Optional child name -> weight, default 1.0 each
        description: Human-readable description of the domain
    """

    def __init__(
        self,
        name: str,
        children: Sequence[AnalyzerNode],
        weights: Optional[Dict[str, float]] = None,
        description: str = ""
    ):
        if not children:
            raise ValueError(f"Composite '{name}' requires at least one child")
        self._name = name
        self.children = list(children)
        self.weights = dict(weights or {})
        self.description = description

    @property
    def name(self) -> str:
        return self._name

    def weight_for(self, child_name: str) -> float:
        return self.weights.get(child_name, 1.0)

    def leaves(self) -> List[LeafNode]:
        result: List[LeafNode] = []
        for child in self.children:
            result.extend(child.leaves())
        return result

    def with_children(self, children: Sequence[AnalyzerNode]) -> "CompositeNode":
        return CompositeNode(self._name, children, self.weights, self.description)

    def __repr__(self) -> str:
        return f"CompositeNode({self.name}, children={[c.name for c in self.children]})"


def node_timeout(node: AnalyzerNode, settings: EngineSettings) -> float:
    """Per-unit time budget: the leaf timeout, or the sum of a composite's children."""
    if isinstance(node, CompositeNode):
        return sum(node_timeout(child, settings) for child in node.children)
    return settings.analyzer_timeout_seconds


def evaluate_node(
    node: AnalyzerNode,
    inventory: ResourceInventory,
    options: AnalysisOptions,
    settings: EngineSettings
) -> AnalyzerOutcome:
    """
    Evaluate a node recursively.

    Args:
        node: Leaf or composite node
        inventory: Read-only resource inventory
        options: Analysis options, including the cancellation token
        settings: Engine settings (pool size, timeouts)

    Returns:
        AnalyzerOutcome for the node. A composite fails only when every
        child failed.
    """
    if isinstance(node, LeafNode):
        return node.analyzer.analyze(inventory, options)
    if not isinstance(node, CompositeNode):
        raise TypeError(f"Unknown analyzer node type: {type(node).__name__}")

    start_time = time.time()
    try:
        options.raise_if_cancelled()
    except AnalysisCancelledError as e:
        return AnalyzerOutcome.failed(node.name, str(e), "AnalysisCancelled")

    child_outcomes = execute_nodes(node.children, inventory, options, settings)
    duration_ms = (time.time() - start_time) * 1000

    if options.cancellation.is_cancelled:
        return AnalyzerOutcome.failed(node.name, "Assessment cancelled", "AnalysisCancelled", duration_ms)

    successes = {name: o for name, o in child_outcomes.items() if o.success}
    failures = {name: o for name, o in child_outcomes.items() if not o.success}

    if not successes:
        causes = "; ".join(f"{name}: {o.error.cause}" for name, o in failures.items())
        logger.warning(f"All sub-checks of {node.name} failed: {causes}")
        return AnalyzerOutcome.failed(
            node.name, f"All sub-checks unavailable ({causes})", "AllSubChecksFailed", duration_ms
        )

    score = aggregate_scores(
        (outcome.result.score, node.weight_for(name)) for name, outcome in successes.items()
    )

    findings: List[Finding] = []
    for outcome in successes.values():
        findings.extend(outcome.result.findings)

    if failures:
        logger.warning(f"{node.name}: {len(failures)} sub-check(s) unavailable: {list(failures)}")

    result = CategoryResult(
        category=node.name,
        score=round(score, 2) if score is not None else None,
        total_resources=max(o.result.total_resources for o in successes.values()),
        findings=sort_findings(findings),
        metrics={
            "sub_check_scores": {name: o.result.score for name, o in successes.items()},
            "unavailable_sub_checks": list(failures),
            "unavailable_sub_check_count": len(failures),
            "sub_check_errors": {name: o.error.cause for name, o in failures.items()},
        },
    )
    return AnalyzerOutcome.ok(result, duration_ms=duration_ms)


def _run_unit(
    node: AnalyzerNode,
    inventory: ResourceInventory,
    options: AnalysisOptions,
    settings: EngineSettings,
    started: Dict[str, float]
) -> AnalyzerOutcome:
    slots = options.worker_slots
    if slots is None or not isinstance(node, LeafNode):
        started[node.name] = time.monotonic()
        return evaluate_node(node, inventory, options, settings)

    try:
        slots.acquire(options.cancellation, settings.poll_interval_seconds)
    except AnalysisCancelledError as e:
        return AnalyzerOutcome.failed(node.name, str(e), "AnalysisCancelled")
    try:
        started[node.name] = time.monotonic()
        return evaluate_node(node, inventory, options, settings)
    finally:
        slots.release()


def execute_nodes(
    nodes: Sequence[AnalyzerNode],
    inventory: ResourceInventory,
    options: AnalysisOptions,
    settings: EngineSettings,
    on_outcome: Optional[Callable[[AnalyzerOutcome], None]] = None
) -> Dict[str, AnalyzerOutcome]:
    """
    Run nodes on a bounded worker pool and join on all of them.

    Each node gets its own child cancellation token and a time budget that
    starts when the node actually begins running. A node that exceeds its
    budget is recorded as an AnalyzerTimeout error and its token is
    cancelled; siblings are unaffected. Cancelling the parent token stops
    the join, cancels queued nodes and records them as cancelled.

    The whole join is bounded by the sum of the node budgets. Nodes still
    pending at that deadline, including ones that never got a worker
    because an analyzer ignored its token, are recorded as AnalyzerTimeout.

    Leaf analyzers take a slot from options.worker_slots before running.
    The first call creates max_workers slots and nested composites share
    them, so nesting never raises the number of analyzers running at once.

    Args:
        nodes: Nodes to run
        inventory: Shared read-only inventory
        options: Analysis options carrying the parent cancellation token
        settings: Engine settings (max_workers, timeouts, poll interval)
        on_outcome: Optional callback invoked from the joining thread as
            each outcome becomes final

    Returns:
        Outcomes keyed by node name, in the order the nodes were given
    """
    if not nodes:
        return {}

    if options.worker_slots is None:
        options = options.with_worker_slots(WorkerSlots(settings.max_workers))

    outcomes: Dict[str, AnalyzerOutcome] = {}

    def record(outcome: AnalyzerOutcome) -> None:
        outcomes[outcome.analyzer_name] = outcome
        if on_outcome is not None:
            on_outcome(outcome)

    started: Dict[str, float] = {}
    tokens: Dict[str, CancellationToken] = {node.name: options.cancellation.child() for node in nodes}
    join_budget = sum(node_timeout(node, settings) for node in nodes)
    deadline = time.monotonic() + join_budget
    workers = max(1, min(settings.max_workers, len(nodes)))
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analyzer")

    try:
        futures: Dict[Future, AnalyzerNode] = {}
        for node in nodes:
            child_options = options.with_cancellation(tokens[node.name])
            future = executor.submit(_run_unit, node, inventory, child_options, settings, started)
            futures[future] = node

        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=settings.poll_interval_seconds, return_when=FIRST_COMPLETED)

            for future in done:
                node = futures[future]
                try:
                    record(future.result())
                except Exception as e:
                    logger.error(f"Analyzer node {node.name} raised: {type(e).__name__}: {e}", exc_info=True)
                    record(AnalyzerOutcome.failed(node.name, str(e), type(e).__name__))

            if options.cancellation.is_cancelled:
                for future in pending:
                    node = futures[future]
                    tokens[node.name].cancel("Assessment cancelled")
                    future.cancel()
                    record(AnalyzerOutcome.failed(node.name, "Assessment cancelled", "AnalysisCancelled"))
                pending = set()
                break

            now = time.monotonic()
            for future in list(pending):
                node = futures[future]
                began = started.get(node.name)
                budget = node_timeout(node, settings)
                if began is not None and now - began > budget:
                    tokens[node.name].cancel(f"timed out after {budget}s")
                    future.cancel()
                    pending.discard(future)
                    logger.warning(f"Analyzer {node.name} timed out after {budget}s")
                    record(AnalyzerOutcome.failed(
                        node.name, f"Timed out after {budget}s", "AnalyzerTimeout", duration_ms=budget * 1000
                    ))

            if pending and now > deadline:
                for future in pending:
                    node = futures[future]
                    began = started.get(node.name)
                    tokens[node.name].cancel(f"join deadline of {join_budget}s passed")
                    future.cancel()
                    logger.warning(f"Analyzer {node.name} still pending after the {join_budget}s join deadline")
                    record(AnalyzerOutcome.failed(
                        node.name,
                        f"Not finished within the {join_budget}s join deadline",
                        "AnalyzerTimeout",
                        duration_ms=(now - began) * 1000 if began is not None else 0.0,
                    ))
                pending = set()
    finally:
        # Timed-out workers may still be running; they observe their cancelled token.
        executor.shutdown(wait=False, cancel_futures=True)

    return {node.name: outcomes[node.name] for node in nodes}
