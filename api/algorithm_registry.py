"""
Algorithm Version Registry
===========================
Maps each scoring operation to the versioned formula that serves it, so
every audit record can name the exact algorithm that produced a score and an
old result can be re-derived under the version active when it was computed.

A descriptor carries a semantic version, a short description of the formula,
the activation window, and the parameter values the version was published
with (edge weights, gains, thresholds) for comparison across versions.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from engine.scoring_config import (
    DEFAULT_EDGE_RULES,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_NODE_GAINS,
    DEFAULT_TOLERANCE,
    ScoringConfig,
)
from engine.score_provenance_engine import MATCH_TOLERANCE
from models.decision_graph import EdgeKind, NodeType


@dataclass(frozen=True)
class AlgorithmVersionDescriptor:
    """Immutable record describing one algorithm version."""
    version: str
    description: str
    effective_from: datetime = field(default_factory=datetime.utcnow)
    deprecated_at: Optional[datetime] = None
    parameters: Dict[str, Any] = field(default_factory=dict)

    def active_at(self, when: datetime) -> bool:
        if self.effective_from > when:
            return False
        return self.deprecated_at is None or self.deprecated_at > when


def _v1(description: str, **parameters: Any) -> List[AlgorithmVersionDescriptor]:
    return [AlgorithmVersionDescriptor(version="1.0.0", description=description, parameters=parameters)]


_REGISTRY: Dict[str, List[AlgorithmVersionDescriptor]] = {
    "score_graph": _v1(
        "Confidence-weighted own scores, signed kind-specific propagation, "
        "outcome gain, Jacobi fixed point.",
        supports_weight=DEFAULT_EDGE_RULES[EdgeKind.SUPPORTS].weight,
        mitigates_weight=DEFAULT_EDGE_RULES[EdgeKind.MITIGATES].weight,
        outcome_gain=DEFAULT_NODE_GAINS[NodeType.OUTCOME],
        tolerance=DEFAULT_TOLERANCE,
        max_iterations=DEFAULT_MAX_ITERATIONS,
    ),
    "explain_score_change": _v1(
        "Per-node deltas ranked by |delta|, title, id with own/propagation reasons.",
        reason_threshold=ScoringConfig.model_fields["reason_threshold"].default,
    ),
    "simulate_what_if": _v1(
        "Baseline vs overridden graph: disabled nodes lose KR impacts and "
        "outgoing edges, overridden nodes take replacement impacts.",
    ),
    "trace_node": _v1("Per-edge inflow breakdown at the converged state plus ancestor set."),
    "verify_reproducibility": _v1(
        "Re-scores a graph and compares every stored per-node value and the scenario score.",
        match_tolerance=MATCH_TOLERANCE,
    ),
}


def get_current_version(operation: str, at: Optional[datetime] = None) -> AlgorithmVersionDescriptor:
    """
    Returns the descriptor serving *operation* at *at* (default: now): the
    most recently effective entry that was not yet deprecated at that time.
    """
    versions = _REGISTRY.get(operation)
    if not versions:
        raise KeyError(f"Unknown operation: {operation}")

    when = at or datetime.utcnow()
    candidates = [v for v in versions if v.active_at(when)]
    if not candidates:
        raise RuntimeError(f"No active algorithm version for operation '{operation}' at {when.isoformat()}")
    return max(candidates, key=lambda v: v.effective_from)


def register_version(
    operation: str,
    version: str,
    description: str,
    effective_from: Optional[datetime] = None,
    **parameters: Any,
) -> AlgorithmVersionDescriptor:
    """Appends a version; a future *effective_from* delays activation."""
    versions = _REGISTRY.setdefault(operation, [])
    if any(v.version == version for v in versions):
        raise ValueError(f"Version '{version}' already registered for operation '{operation}'")

    desc = AlgorithmVersionDescriptor(
        version=version,
        description=description,
        effective_from=effective_from or datetime.utcnow(),
        parameters=parameters,
    )
    versions.append(desc)
    return desc


def deprecate_version(operation: str, version: str) -> AlgorithmVersionDescriptor:
    versions = _REGISTRY.get(operation, [])
    for i, v in enumerate(versions):
        if v.version == version and v.deprecated_at is None:
            versions[i] = replace(v, deprecated_at=datetime.utcnow())
            return versions[i]
    raise KeyError(f"Active version '{version}' not found for operation '{operation}'")


def list_versions(operation: str) -> List[AlgorithmVersionDescriptor]:
    return list(_REGISTRY.get(operation, []))
