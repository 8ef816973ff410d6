from typing import List, Optional

from models.decision_graph import Graph
from models.score_result import Contributor, NodeExplain, ScoreResult
from .graph_scoring_engine import clamp

OWN_KR_CHANGED = "Own KR changed"
PROPAGATION_CHANGED = "Propagation changed"

_BOUND = 100.0
_EMPTY = NodeExplain()


class ContributorExplainer:
    """
    Ranks the nodes of a graph by how much their score moved between two
    ScoreResults and attaches short, deterministic reasons.
    """

    def __init__(self, reason_threshold: float = 0.5):
        self.reason_threshold = reason_threshold

    def top_contributors(
        self,
        before: ScoreResult,
        after: ScoreResult,
        graph: Graph,
        limit: Optional[int] = None,
    ) -> List[Contributor]:
        contributors = [
            self._contributor(node_id, node.title, before, after)
            for node_id, node in graph.nodes.items()
        ]
        # |delta| desc, then title, then id: a total order over distinct ids.
        contributors.sort(key=lambda c: (-abs(c.delta), c.title, c.node_id))
        if limit is not None:
            return contributors[:max(0, limit)]
        return contributors

    def _contributor(self, node_id: str, title: str, before: ScoreResult, after: ScoreResult) -> Contributor:
        a = after.explain.get(node_id, _EMPTY)
        b = before.explain.get(node_id, _EMPTY)

        own = clamp(a.own, -_BOUND, _BOUND)
        from_children = clamp(a.from_children, -_BOUND, _BOUND)
        total = clamp(own + from_children, -_BOUND, _BOUND)

        before_own = clamp(b.own, -_BOUND, _BOUND)
        before_from_children = clamp(b.from_children, -_BOUND, _BOUND)
        before_total = clamp(before_own + before_from_children, -_BOUND, _BOUND)

        reasons: List[str] = []
        if abs(own - before_own) >= self.reason_threshold:
            reasons.append(OWN_KR_CHANGED)
        if abs(from_children - before_from_children) >= self.reason_threshold:
            reasons.append(PROPAGATION_CHANGED)

        return Contributor(
            node_id=node_id,
            title=title,
            own=own,
            from_children=from_children,
            total=total,
            delta=clamp(total - before_total, -_BOUND, _BOUND),
            reasons=reasons,
        )


def top_contributors(
    before: ScoreResult,
    after: ScoreResult,
    graph: Graph,
    limit: Optional[int] = None,
) -> List[Contributor]:
    return ContributorExplainer().top_contributors(before, after, graph, limit=limit)
