"""
Graph Scoring Engine
====================
Turns a decision-graph snapshot into bounded per-node scores.

  1. Own score per node from its KR impacts (``delta_p50 * confidence``
     scaled onto 0-100, summed, clamped).
  2. Signed, kind-specific propagation along edges.
  3. Synchronous (Jacobi) fixed-point iteration so feedback loops settle or
     are capped by ``max_iterations``.
  4. Scenario score: the highest total among outcome nodes.

The engine is a pure function of its input: it never mutates the graph and
keeps nothing between calls.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

import networkx as nx

from models.decision_graph import Edge, Graph, Node, NodeType
from models.score_result import ConvergenceDiagnostics, NodeExplain, ScoreResult
from .scoring_config import EdgeRule, PropagationBasis, ScoringConfig

logger = logging.getLogger(__name__)


def finite_or_zero(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, finite_or_zero(value)))


def edge_contribution(rule: EdgeRule, source_own: float, source_total: float) -> float:
    basis = source_own if rule.basis is PropagationBasis.OWN else source_total
    if basis == 0.0:
        return 0.0
    return finite_or_zero(rule.weight * basis)


class GraphScoringEngine:
    """
    Computes a ScoreResult for a Graph snapshot.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def own_score(self, node: Node) -> float:
        total = 0.0
        for impact in node.kr_impacts:
            delta = finite_or_zero(impact.delta_p50)
            confidence = finite_or_zero(impact.confidence)
            if not 0.0 <= confidence <= 1.0:
                continue
            total += delta * confidence * self.config.own_scale
        return clamp(total, self.config.score_floor, self.config.score_ceiling)

    def score(self, graph: Graph) -> ScoreResult:
        cfg = self.config
        if not graph.nodes:
            return ScoreResult()

        G, ignored = self.build_nx_graph(graph)
        node_ids = sorted(G.nodes)

        own: Dict[str, float] = {n: G.nodes[n]["own"] for n in node_ids}
        gain: Dict[str, float] = {n: G.nodes[n]["gain"] for n in node_ids}
        # In-edges per target in edge-id order so float summation never depends
        # on input map ordering.
        in_edges: Dict[str, List[Tuple[str, EdgeRule]]] = {
            n: [
                (src, data["rule"])
                for src, _, _, data in sorted(G.in_edges(n, keys=True, data=True), key=lambda e: e[2])
            ]
            for n in node_ids
        }

        totals = dict(own)
        iterations = 0
        max_delta = 0.0
        converged = False
        while iterations < cfg.max_iterations:
            iterations += 1
            next_totals: Dict[str, float] = {}
            for n in node_ids:
                inflow = 0.0
                for src, rule in in_edges[n]:
                    inflow += edge_contribution(rule, own[src], totals[src])
                next_totals[n] = clamp(gain[n] * (own[n] + inflow), cfg.score_floor, cfg.score_ceiling)
            max_delta = max(abs(next_totals[n] - totals[n]) for n in node_ids)
            totals = next_totals
            if max_delta < cfg.tolerance:
                converged = True
                break

        if not converged:
            logger.warning(
                "Score propagation did not converge after %d iterations (max delta %.3g)",
                iterations, max_delta,
            )

        # The type gain scales the own part too; only edge inflow counts as
        # propagated score.
        own_parts = {n: clamp(gain[n] * own[n], cfg.score_floor, cfg.score_ceiling) for n in node_ids}
        explain = {
            n: NodeExplain(own=own_parts[n], from_children=totals[n] - own_parts[n])
            for n in node_ids
        }
        outcome_scores = [
            totals[n] for n in node_ids if G.nodes[n]["type"] is NodeType.OUTCOME
        ]
        scenario_score = max(outcome_scores) if outcome_scores else 0.0

        diagnostics = ConvergenceDiagnostics(
            converged=converged,
            iterations=iterations,
            max_delta=max_delta,
            has_cycles=not nx.is_directed_acyclic_graph(G),
            ignored_edge_ids=tuple(sorted(ignored)),
        )
        return ScoreResult(
            per_node=totals,
            scenario_score=scenario_score,
            explain=explain,
            diagnostics=diagnostics,
        )

    def build_nx_graph(self, graph: Graph) -> Tuple[nx.MultiDiGraph, List[str]]:
        """
        Builds a NetworkX multigraph keyed by edge id. Edges whose endpoints
        are not in ``graph.nodes`` are left out and returned separately.
        """
        G = nx.MultiDiGraph()
        for node_id, node in graph.nodes.items():
            G.add_node(
                node_id,
                own=self.own_score(node),
                gain=self.config.gain_for(node.type),
                type=node.type,
                title=node.title,
            )

        ignored: List[str] = []
        for edge_id, edge in graph.edges.items():
            if not self._is_usable(graph, edge):
                ignored.append(edge_id)
                continue
            G.add_edge(edge.source, edge.target, key=edge_id, kind=edge.kind, rule=self.config.rule_for(edge.kind))
        if ignored:
            logger.debug("Ignoring %d edge(s) with missing endpoints: %s", len(ignored), sorted(ignored))
        return G, ignored

    @staticmethod
    def _is_usable(graph: Graph, edge: Edge) -> bool:
        return edge.source in graph.nodes and edge.target in graph.nodes


def score_graph(graph: Graph, config: Optional[ScoringConfig] = None) -> ScoreResult:
    return GraphScoringEngine(config).score(graph)
