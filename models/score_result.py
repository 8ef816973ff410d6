from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class NodeExplain:
    """Own-impact and propagated-impact parts of a node's total score."""
    own: float = 0.0
    from_children: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"own": self.own, "fromChildren": self.from_children}


@dataclass(frozen=True)
class ConvergenceDiagnostics:
    """
    How the fixed-point iteration ended. ``converged`` is False when the
    iteration cap was hit before the update magnitude fell below tolerance.
    """
    converged: bool = True
    iterations: int = 0
    max_delta: float = 0.0
    has_cycles: bool = False
    ignored_edge_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "converged": self.converged,
            "iterations": self.iterations,
            "maxDelta": self.max_delta,
            "hasCycles": self.has_cycles,
            "ignoredEdgeIds": list(self.ignored_edge_ids),
        }


@dataclass(frozen=True)
class ScoreResult:
    per_node: Dict[str, float] = field(default_factory=dict)
    scenario_score: float = 0.0
    explain: Dict[str, NodeExplain] = field(default_factory=dict)
    diagnostics: ConvergenceDiagnostics = field(default_factory=ConvergenceDiagnostics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "perNode": dict(self.per_node),
            "scenarioScore": self.scenario_score,
            "explain": {node_id: e.to_dict() for node_id, e in self.explain.items()},
            "diagnostics": self.diagnostics.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "ScoreResult":
        """
        Rebuilds the scores of a serialised result (the ``to_dict`` shape).
        Diagnostics are not restored. Raises ``ValueError`` on malformed input.
        """
        if not isinstance(payload, dict):
            raise ValueError("Stored score result must be a mapping")
        try:
            per_node = {str(k): float(v) for k, v in (payload.get("perNode") or {}).items()}
            explain = {
                str(k): NodeExplain(own=float(e.get("own", 0.0)), from_children=float(e.get("fromChildren", 0.0)))
                for k, e in (payload.get("explain") or {}).items()
            }
            scenario_score = float(payload.get("scenarioScore", 0.0))
        except (AttributeError, TypeError) as exc:
            raise ValueError(f"Malformed stored score result: {exc}") from exc
        return cls(per_node=per_node, scenario_score=scenario_score, explain=explain)


@dataclass(frozen=True)
class Contributor:
    """One node's score-change record between two results."""
    node_id: str
    title: str
    own: float
    from_children: float
    total: float
    delta: float
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "title": self.title,
            "own": self.own,
            "fromChildren": self.from_children,
            "total": self.total,
            "delta": self.delta,
            "reasons": list(self.reasons),
        }
