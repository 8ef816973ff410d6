from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence

from models.decision_graph import Graph, KRImpact
from models.score_result import Contributor, ScoreResult
from .contributor_explainer import ContributorExplainer
from .graph_scoring_engine import GraphScoringEngine
from .scoring_config import ScoringConfig


@dataclass(frozen=True)
class WhatIfOverrides:
    disabled_node_ids: FrozenSet[str] = frozenset()
    kr_overrides: Dict[str, Sequence[KRImpact]] = field(default_factory=dict)

    @property
    def has_overrides(self) -> bool:
        return bool(self.disabled_node_ids or self.kr_overrides)


@dataclass(frozen=True)
class WhatIfResult:
    baseline: ScoreResult
    scenario: ScoreResult
    contributors: List[Contributor]
    scenario_delta: float
    overridden_node_ids: List[str]


class WhatIfSimulation:
    """
    Re-scores a graph with nodes switched off or their KR impacts replaced,
    and explains the difference against the untouched baseline.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.engine = GraphScoringEngine(config)
        self.explainer = ContributorExplainer(self.engine.config.reason_threshold)

    def effective_graph(self, graph: Graph, overrides: WhatIfOverrides) -> Graph:
        """
        Disabled nodes stay in the graph with no KR impacts and lose their
        outgoing edges. Override ids that name no node are ignored.
        """
        if not overrides.has_overrides:
            return graph

        disabled = {n for n in overrides.disabled_node_ids if n in graph.nodes}
        nodes = {}
        for node_id, node in graph.nodes.items():
            if node_id in disabled:
                node = node.model_copy(update={"kr_impacts": ()})
            elif node_id in overrides.kr_overrides:
                node = node.model_copy(update={"kr_impacts": tuple(overrides.kr_overrides[node_id])})
            nodes[node_id] = node

        edges = {
            edge_id: edge
            for edge_id, edge in graph.edges.items()
            if edge.source not in disabled
        }
        return graph.model_copy(update={"nodes": nodes, "edges": edges})

    def simulate(self, graph: Graph, overrides: WhatIfOverrides, limit: Optional[int] = None) -> WhatIfResult:
        effective = self.effective_graph(graph, overrides)
        baseline = self.engine.score(graph)
        scenario = self.engine.score(effective)
        contributors = self.explainer.top_contributors(baseline, scenario, effective, limit=limit)
        overridden = sorted(
            n for n in set(overrides.disabled_node_ids) | set(overrides.kr_overrides)
            if n in graph.nodes
        )
        return WhatIfResult(
            baseline=baseline,
            scenario=scenario,
            contributors=contributors,
            scenario_delta=scenario.scenario_score - baseline.scenario_score,
            overridden_node_ids=overridden,
        )
