import pytest

from engine.contributor_explainer import OWN_KR_CHANGED, PROPAGATION_CHANGED
from engine.what_if_simulation import WhatIfOverrides, WhatIfSimulation
from models.decision_graph import KRImpact, normalize_graph


@pytest.fixture
def graph():
    """
        [launch action, own 20] --(supports)--> [adoption outcome, own 0]
        [churn problem, own 10] --(mitigates)--> [adoption outcome]
    """
    return normalize_graph({
        "nodes": {
            "launch": {"type": "action", "title": "Launch", "krImpacts": [{"krId": "kr1", "deltaP50": 0.2, "confidence": 1.0}]},
            "churn": {"type": "problem", "title": "Churn", "krImpacts": [{"krId": "kr1", "deltaP50": 0.1, "confidence": 1.0}]},
            "adoption": {"type": "outcome", "title": "Adoption"},
        },
        "edges": {
            "e1": {"from": "launch", "to": "adoption", "kind": "supports"},
            "e2": {"from": "churn", "to": "adoption", "kind": "mitigates"},
        },
    })


def test_no_overrides_returns_same_graph(graph):
    sim = WhatIfSimulation()
    assert sim.effective_graph(graph, WhatIfOverrides()) is graph


def test_disabling_a_node_drops_its_impacts_and_outgoing_edges(graph):
    sim = WhatIfSimulation()
    effective = sim.effective_graph(graph, WhatIfOverrides(disabled_node_ids=frozenset({"launch", "ghost"})))

    assert "launch" in effective.nodes
    assert effective.nodes["launch"].kr_impacts == ()
    assert sorted(effective.edges) == ["e2"]
    # original snapshot untouched
    assert len(graph.nodes["launch"].kr_impacts) == 1
    assert sorted(graph.edges) == ["e1", "e2"]


def test_disabling_support_lowers_outcome(graph):
    result = WhatIfSimulation().simulate(graph, WhatIfOverrides(disabled_node_ids=frozenset({"launch"})))

    # baseline adoption: 1.5 * (0.7 * 20 - 0.5 * 10) = 13.5; scenario: mitigation only -> 0
    assert result.baseline.scenario_score == pytest.approx(13.5)
    assert result.scenario.scenario_score == 0.0
    assert result.scenario_delta == pytest.approx(-13.5)
    assert result.overridden_node_ids == ["launch"]

    launch, adoption = result.contributors[0], result.contributors[1]
    assert launch.node_id == "launch"
    assert launch.delta == pytest.approx(-20.0)
    assert launch.reasons == [OWN_KR_CHANGED]
    assert adoption.node_id == "adoption"
    assert adoption.reasons == [PROPAGATION_CHANGED]
    assert result.contributors[-1].node_id == "churn"
    assert result.contributors[-1].delta == 0.0


def test_kr_override_replaces_impacts(graph):
    overrides = WhatIfOverrides(kr_overrides={
        "churn": [KRImpact(kr_id="kr1", delta_p50=0.0, confidence=1.0)],
        "ghost": [KRImpact(kr_id="kr1", delta_p50=0.5, confidence=1.0)],
    })
    result = WhatIfSimulation().simulate(graph, overrides, limit=1)

    # churn no longer mitigates: 1.5 * 0.7 * 20
    assert result.scenario.per_node["adoption"] == pytest.approx(21.0)
    assert result.overridden_node_ids == ["churn"]
    assert len(result.contributors) == 1
    assert result.contributors[0].node_id == "churn"
