import pytest

from engine.contributor_explainer import (
    OWN_KR_CHANGED,
    PROPAGATION_CHANGED,
    ContributorExplainer,
    top_contributors,
)
from engine.graph_scoring_engine import score_graph
from models.decision_graph import Graph, Node, normalize_graph
from models.score_result import NodeExplain, ScoreResult


def _result(explain):
    return ScoreResult(
        per_node={k: own + fc for k, (own, fc) in explain.items()},
        explain={k: NodeExplain(own=own, from_children=fc) for k, (own, fc) in explain.items()},
    )


@pytest.fixture
def graph():
    return Graph(nodes={
        "a": Node(id="a", type="action", title="Alpha"),
        "b": Node(id="b", type="action", title="Bravo"),
        "c": Node(id="c", type="outcome", title="Charlie"),
        "d": Node(id="d", type="problem", title="Alpha"),
    })


def test_orders_by_magnitude_then_title_then_id(graph):
    before = _result({"a": (10, 0), "b": (10, 0), "c": (0, 0), "d": (10, 0)})
    after = _result({"a": (15, 0), "b": (10, -20), "c": (0, 5), "d": (15, 0)})

    ranked = top_contributors(before, after, graph)

    # b moved 20, c/a/d moved 5: "Alpha" (a, d) before "Charlie", id breaks the Alpha tie
    assert [c.node_id for c in ranked] == ["b", "a", "d", "c"]
    assert ranked[0].delta == pytest.approx(-20.0)
    assert ranked[0].reasons == [PROPAGATION_CHANGED]
    assert ranked[1].reasons == [OWN_KR_CHANGED]


def test_reason_threshold_is_inclusive(graph):
    before = _result({"a": (10, 0), "b": (10, 10)})
    after = _result({"a": (10.5, 0), "b": (10.49, 10.49)})

    by_id = {c.node_id: c for c in top_contributors(before, after, graph)}

    assert by_id["a"].reasons == [OWN_KR_CHANGED]
    assert by_id["b"].reasons == []


def test_both_reasons_in_fixed_order(graph):
    before = _result({"a": (0, 0)})
    after = _result({"a": (10, 10)})
    a = next(c for c in top_contributors(before, after, graph) if c.node_id == "a")
    assert a.reasons == [OWN_KR_CHANGED, PROPAGATION_CHANGED]
    assert a.total == pytest.approx(20.0)
    assert a.delta == pytest.approx(20.0)


def test_every_graph_node_is_listed_even_without_scores(graph):
    ranked = top_contributors(ScoreResult(), ScoreResult(), graph)
    assert [c.node_id for c in ranked] == ["a", "d", "b", "c"]
    assert all(c.delta == 0.0 and c.reasons == [] for c in ranked)


def test_non_finite_values_are_zeroed_and_clamped(graph):
    before = _result({"a": (float("nan"), 0), "b": (0, 0)})
    after = _result({"a": (float("inf"), 5), "b": (500, 500)})

    by_id = {c.node_id: c for c in top_contributors(before, after, graph)}

    assert by_id["a"].own == 0.0
    assert by_id["a"].total == pytest.approx(5.0)
    assert by_id["b"].own == 100.0
    assert by_id["b"].total == 100.0
    assert by_id["b"].delta == 100.0


def test_limit_truncates_after_sorting(graph):
    before = _result({"a": (0, 0), "b": (0, 0), "c": (0, 0)})
    after = _result({"a": (1, 0), "b": (30, 0), "c": (2, 0)})
    ranked = ContributorExplainer().top_contributors(before, after, graph, limit=2)
    assert [c.node_id for c in ranked] == ["b", "c"]


def test_deterministic_regardless_of_map_order(graph):
    before = _result({"a": (10, 0), "b": (12, 0), "c": (0, 3), "d": (7, 7)})
    after = _result({"a": (12, 0), "b": (10, 0), "c": (0, 1), "d": (9, 7)})
    shuffled = Graph(nodes=dict(reversed(list(graph.nodes.items()))))

    first = top_contributors(before, after, graph)
    again = top_contributors(before, after, graph)
    reordered = top_contributors(before, after, shuffled)

    assert first == again == reordered


def test_explains_a_real_kr_edit():
    """
        [act action] --(supports)--> [out outcome]; act's KR confidence doubles.
    """
    doc = {
        "nodes": {
            "act": {"type": "action", "title": "Launch", "krImpacts": [{"deltaP50": 0.2, "confidence": 0.5}]},
            "out": {"type": "outcome", "title": "Retention"},
        },
        "edges": {"e1": {"from": "act", "to": "out"}},
    }
    edited = {
        "nodes": {**doc["nodes"], "act": {**doc["nodes"]["act"], "krImpacts": [{"deltaP50": 0.2, "confidence": 1.0}]}},
        "edges": doc["edges"],
    }
    before_graph, after_graph = normalize_graph(doc), normalize_graph(edited)

    ranked = top_contributors(score_graph(before_graph), score_graph(after_graph), after_graph)

    # out: 1.5 * 0.7 * 10 -> 1.5 * 0.7 * 20
    assert [c.node_id for c in ranked] == ["out", "act"]
    assert ranked[0].delta == pytest.approx(10.5)
    assert ranked[0].reasons == [PROPAGATION_CHANGED]
    assert ranked[1].delta == pytest.approx(10.0)
    assert ranked[1].reasons == [OWN_KR_CHANGED]


def test_edge_free_kr_edit_is_only_an_own_change():
    """
        [solo outcome] with no edges; deltaP50 0.10 -> 0.11 at full confidence.
    """
    before_graph = normalize_graph({"nodes": {"solo": {"type": "outcome", "title": "Solo", "krImpacts": [{"deltaP50": 0.10, "confidence": 1.0}]}}})
    after_graph = normalize_graph({"nodes": {"solo": {"type": "outcome", "title": "Solo", "krImpacts": [{"deltaP50": 0.11, "confidence": 1.0}]}}})

    [solo] = top_contributors(score_graph(before_graph), score_graph(after_graph), after_graph)

    assert solo.from_children == 0.0
    assert solo.delta == pytest.approx(1.5)
    assert solo.reasons == [OWN_KR_CHANGED]
