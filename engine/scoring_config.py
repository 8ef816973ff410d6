"""
Scoring Configuration
=====================
Weight tables and iteration bounds for the Graph Scoring Engine.

Each ``EdgeKind`` maps to an ``EdgeRule``: a signed weight and the basis it
is applied to (the source's total score or only its own score). Adding an
edge kind means adding an enum member *and* a row here; ``ScoringConfig``
refuses to build when a kind has no rule.
"""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.decision_graph import EdgeKind, NodeType


class PropagationBasis(str, Enum):
    TOTAL = "total"
    OWN = "own"


class EdgeRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    weight: float
    basis: PropagationBasis = PropagationBasis.TOTAL


DEFAULT_EDGE_RULES: Dict[EdgeKind, EdgeRule] = {
    EdgeKind.SUPPORTS: EdgeRule(weight=0.7, basis=PropagationBasis.TOTAL),
    # Scaled by the mitigating node's own magnitude, so a mitigator with no
    # own impact contributes nothing.
    EdgeKind.MITIGATES: EdgeRule(weight=-0.5, basis=PropagationBasis.OWN),
}

# Outcome nodes amplify what reaches them; every other type passes through.
DEFAULT_NODE_GAINS: Dict[NodeType, float] = {
    NodeType.OUTCOME: 1.5,
}

DEFAULT_TOLERANCE = 1e-6
DEFAULT_MAX_ITERATIONS = 100


class ScoringConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    tolerance: float = Field(default=DEFAULT_TOLERANCE, gt=0)
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    own_scale: float = 100.0
    score_floor: float = 0.0
    score_ceiling: float = 100.0
    reason_threshold: float = 0.5
    edge_rules: Dict[EdgeKind, EdgeRule] = Field(default_factory=lambda: dict(DEFAULT_EDGE_RULES))
    node_gains: Dict[NodeType, float] = Field(default_factory=lambda: dict(DEFAULT_NODE_GAINS))

    @model_validator(mode="after")
    def _every_kind_has_a_rule(self) -> "ScoringConfig":
        missing = [kind.value for kind in EdgeKind if kind not in self.edge_rules]
        if missing:
            raise ValueError(f"No propagation rule for edge kind(s): {sorted(missing)}")
        if self.score_floor >= self.score_ceiling:
            raise ValueError("score_floor must be below score_ceiling")
        return self

    def rule_for(self, kind: EdgeKind) -> EdgeRule:
        return self.edge_rules[kind]

    def gain_for(self, node_type: NodeType) -> float:
        return self.node_gains.get(node_type, 1.0)


@lru_cache
def get_scoring_config() -> ScoringConfig:
    """Builds a config from ``KRSCORE_*`` environment variables, cached."""
    return ScoringConfig(
        tolerance=float(os.getenv("KRSCORE_TOLERANCE", str(DEFAULT_TOLERANCE))),
        max_iterations=int(os.getenv("KRSCORE_MAX_ITERATIONS", str(DEFAULT_MAX_ITERATIONS))),
    )
