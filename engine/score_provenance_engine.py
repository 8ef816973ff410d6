"""
Score Provenance Engine
=======================
Reconstructs how a node arrived at its score: which in-edges fed it, with
which rule, how much each contributed at the converged state, and which
upstream nodes can reach it. Also re-derives a stored ScoreResult from its
graph so any recorded score can be checked for reproducibility.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import networkx as nx

from models.decision_graph import Graph
from models.score_result import ScoreResult
from .graph_scoring_engine import GraphScoringEngine, clamp, edge_contribution
from .scoring_config import ScoringConfig

MATCH_TOLERANCE = 1e-9


class ScoreProvenanceEngine:

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.engine = GraphScoringEngine(config)

    def trace_node(self, graph: Graph, node_id: str, result: Optional[ScoreResult] = None) -> Dict[str, Any]:
        """
        Per-edge breakdown of the inflow reaching ``node_id``. Contributions
        are evaluated against the final totals, so they sum to the pre-gain
        inflow of the last iteration once the scores have converged.
        """
        if node_id not in graph.nodes:
            raise ValueError(f"Node {node_id} not found")

        result = result or self.engine.score(graph)
        G, _ = self.engine.build_nx_graph(graph)
        node = graph.nodes[node_id]
        data = G.nodes[node_id]

        incoming: List[Dict[str, Any]] = []
        for src, _, edge_id, ed in sorted(G.in_edges(node_id, keys=True, data=True), key=lambda e: e[2]):
            rule = ed["rule"]
            source_own = G.nodes[src]["own"]
            source_total = result.per_node.get(src, 0.0)
            incoming.append({
                "edge_id": edge_id,
                "source": src,
                "kind": ed["kind"].value,
                "weight": rule.weight,
                "basis": rule.basis.value,
                "source_own": source_own,
                "source_total": source_total,
                "contribution": edge_contribution(rule, source_own, source_total),
            })

        explain = result.explain.get(node_id)
        cfg = self.engine.config
        own_part = explain.own if explain else clamp(data["gain"] * data["own"], cfg.score_floor, cfg.score_ceiling)
        return {
            "node_id": node_id,
            "title": node.title,
            "type": node.type.value,
            "own": data["own"],
            "own_part": own_part,
            "from_children": explain.from_children if explain else 0.0,
            "total": result.per_node.get(node_id, 0.0),
            "gain": data["gain"],
            "incoming": incoming,
            "inflow": sum(item["contribution"] for item in incoming),
            "ancestors": sorted(nx.ancestors(G, node_id)),
            "on_cycle": self._on_cycle(G, node_id),
        }

    def verify_reproducibility(self, graph: Graph, stored: ScoreResult) -> Dict[str, Any]:
        reproduced = self.engine.score(graph)
        return self._build_reproducibility_report(stored, reproduced)

    @staticmethod
    def _on_cycle(G: nx.MultiDiGraph, node_id: str) -> bool:
        if G.has_edge(node_id, node_id):
            return True
        return any(node_id in component and len(component) > 1
                   for component in nx.strongly_connected_components(G))

    @staticmethod
    def _build_reproducibility_report(stored: ScoreResult, reproduced: ScoreResult) -> Dict[str, Any]:
        per_node = {}
        overall_match = True
        for k in sorted(set(stored.per_node) | set(reproduced.per_node)):
            s = stored.per_node.get(k, 0.0)
            r = reproduced.per_node.get(k, 0.0)
            match = abs(s - r) < MATCH_TOLERANCE
            per_node[k] = {"stored": s, "reproduced": r, "match": match}
            if not match:
                overall_match = False

        scenario_match = abs(stored.scenario_score - reproduced.scenario_score) < MATCH_TOLERANCE
        return {
            "per_node_comparison": per_node,
            "stored_scenario_score": stored.scenario_score,
            "reproduced_scenario_score": reproduced.scenario_score,
            "match": overall_match and scenario_match,
        }
