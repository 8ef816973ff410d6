"""
Scoring API Layer
=================
Audited, version-tracked facade over the scoring engines. Every public
method:

  1. Resolves the current algorithm version for the operation.
  2. Normalises the raw graph document(s) it was given.
  3. Delegates to the engine(s).
  4. Writes an AuditLogEntry (with the graph fingerprint) and commits.
  5. Returns an :class:`ApiResponse` carrying data and a short explanation.

Operation failures, including an operation with no active algorithm
version, come back as audited error envelopes rather than exceptions.

Public operations
~~~~~~~~~~~~~~~~~
  - ``score_graph``          – per-node scores and the scenario score.
  - ``explain_score_change`` – ranked contributors between two graph states.
  - ``simulate_what_if``     – baseline vs overridden graph.
  - ``trace_node``           – per-edge provenance of one node's score.
  - ``verify_reproducibility`` – re-derive a stored result and compare.
  - ``query_audit_log``      – read back audit records.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from engine.contributor_explainer import ContributorExplainer
from engine.graph_scoring_engine import GraphScoringEngine
from engine.score_provenance_engine import ScoreProvenanceEngine
from engine.scoring_config import ScoringConfig
from engine.what_if_simulation import WhatIfOverrides, WhatIfSimulation
from models.decision_graph import graph_fingerprint, normalize_graph, normalize_impacts
from models.score_result import ScoreResult

from api.audit_log import AuditLogger
from api.algorithm_registry import get_current_version
from api.logging_config import bind_operation
from api.response_envelope import ApiResponse, error_envelope, success_envelope

logger = logging.getLogger(__name__)

UNRESOLVED_VERSION = "unresolved"

# (data, explanation, diagnostics, graph fingerprint)
_Outcome = Tuple[Dict[str, Any], str, Optional[Dict[str, Any]], Optional[str]]


class ScoringAPI:

    def __init__(
        self,
        session: Session,
        caller_identity: Optional[str] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.session = session
        self.caller_identity = caller_identity

        self._scoring = GraphScoringEngine(config)
        self._explainer = ContributorExplainer(self._scoring.config.reason_threshold)
        self._what_if = WhatIfSimulation(self._scoring.config)
        self._provenance = ScoreProvenanceEngine(self._scoring.config)
        self._audit = AuditLogger(session)

    # =====================================================================
    #  score_graph
    # =====================================================================
    def score_graph(self, raw_graph: Any) -> ApiResponse:
        def run() -> _Outcome:
            graph = normalize_graph(raw_graph)
            result = self._scoring.score(graph)
            explanation = (
                f"Scored {len(graph.nodes)} node(s) over {len(graph.edges)} edge(s). "
                f"Scenario score {result.scenario_score:.2f} "
                f"({'converged' if result.diagnostics.converged else 'iteration cap reached'} "
                f"after {result.diagnostics.iterations} iteration(s))."
            )
            return result.to_dict(), explanation, result.diagnostics.to_dict(), graph_fingerprint(graph)

        return self._run("score_graph", {"graph": raw_graph}, run)

    # =====================================================================
    #  explain_score_change
    # =====================================================================
    def explain_score_change(self, before_graph: Any, after_graph: Any, limit: Optional[int] = None) -> ApiResponse:
        """
        Scores both states and ranks the nodes of ``after_graph`` by the
        magnitude of their change.
        """
        def run() -> _Outcome:
            before = normalize_graph(before_graph)
            after = normalize_graph(after_graph)
            before_result = self._scoring.score(before)
            after_result = self._scoring.score(after)
            contributors = self._explainer.top_contributors(before_result, after_result, after, limit=limit)

            moved = [c for c in contributors if c.delta != 0.0]
            lead = f" Largest change: '{moved[0].title or moved[0].node_id}' ({moved[0].delta:+.2f})." if moved else ""
            explanation = (
                f"{len(moved)} of {len(contributors)} node(s) changed score; scenario score "
                f"{before_result.scenario_score:.2f} -> {after_result.scenario_score:.2f}.{lead}"
            )
            data = {
                "before": before_result.to_dict(),
                "after": after_result.to_dict(),
                "contributors": [c.to_dict() for c in contributors],
            }
            return data, explanation, after_result.diagnostics.to_dict(), graph_fingerprint(after)

        return self._run(
            "explain_score_change",
            {"before_graph": before_graph, "after_graph": after_graph, "limit": limit},
            run,
        )

    # =====================================================================
    #  simulate_what_if
    # =====================================================================
    def simulate_what_if(
        self,
        raw_graph: Any,
        disabled_node_ids: Optional[Iterable[str]] = None,
        kr_overrides: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        limit: Optional[int] = None,
    ) -> ApiResponse:
        disabled = sorted(disabled_node_ids or [])

        def run() -> _Outcome:
            graph = normalize_graph(raw_graph)
            overrides = WhatIfOverrides(
                disabled_node_ids=frozenset(disabled),
                kr_overrides={
                    node_id: normalize_impacts(impacts)
                    for node_id, impacts in (kr_overrides or {}).items()
                },
            )
            outcome = self._what_if.simulate(graph, overrides, limit=limit)
            explanation = (
                f"Overrode {len(outcome.overridden_node_ids)} node(s); scenario score "
                f"{outcome.baseline.scenario_score:.2f} -> {outcome.scenario.scenario_score:.2f} "
                f"({outcome.scenario_delta:+.2f})."
            )
            data = {
                "baseline": outcome.baseline.to_dict(),
                "scenario": outcome.scenario.to_dict(),
                "scenario_delta": outcome.scenario_delta,
                "overridden_node_ids": outcome.overridden_node_ids,
                "contributors": [c.to_dict() for c in outcome.contributors],
            }
            return data, explanation, outcome.scenario.diagnostics.to_dict(), graph_fingerprint(graph)

        return self._run(
            "simulate_what_if",
            {"graph": raw_graph, "disabled_node_ids": disabled, "kr_overrides": kr_overrides, "limit": limit},
            run,
        )

    # =====================================================================
    #  trace_node
    # =====================================================================
    def trace_node(self, raw_graph: Any, node_id: str) -> ApiResponse:
        def run() -> _Outcome:
            graph = normalize_graph(raw_graph)
            result = self._scoring.score(graph)
            trace = self._provenance.trace_node(graph, node_id, result=result)
            explanation = (
                f"Node '{trace['title'] or node_id}' scores {trace['total']:.2f}: own "
                f"{trace['own_part']:.2f}, propagated {trace['from_children']:.2f} from "
                f"{len(trace['incoming'])} incoming edge(s)."
            )
            return trace, explanation, result.diagnostics.to_dict(), graph_fingerprint(graph)

        return self._run("trace_node", {"graph": raw_graph, "node_id": node_id}, run)

    # =====================================================================
    #  verify_reproducibility
    # =====================================================================
    def verify_reproducibility(self, raw_graph: Any, stored_result: Dict[str, Any]) -> ApiResponse:
        """
        Re-scores ``raw_graph`` and compares it with a previously recorded
        result in its serialised form (e.g. the ``response_payload`` of a
        ``score_graph`` audit record).
        """
        def run() -> _Outcome:
            graph = normalize_graph(raw_graph)
            stored = ScoreResult.from_dict(stored_result)
            report = self._provenance.verify_reproducibility(graph, stored)
            mismatched = sorted(k for k, c in report["per_node_comparison"].items() if not c["match"])
            if report["match"]:
                explanation = f"Stored result reproduced for all {len(report['per_node_comparison'])} node(s)."
            else:
                explanation = (
                    f"Stored result differs from recomputation on {len(mismatched)} node(s); "
                    f"scenario score {report['stored_scenario_score']:.2f} stored vs "
                    f"{report['reproduced_scenario_score']:.2f} recomputed."
                )
            report["mismatched_node_ids"] = mismatched
            return report, explanation, None, graph_fingerprint(graph)

        return self._run(
            "verify_reproducibility",
            {"graph": raw_graph, "stored_result": stored_result},
            run,
        )

    # =====================================================================
    #  query_audit_log
    # =====================================================================
    def query_audit_log(
        self,
        operation: Optional[str] = None,
        since: Optional[datetime] = None,
        graph_fingerprint: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        entries = self._audit.query_log(
            operation=operation, since=since, graph_fingerprint=graph_fingerprint, limit=limit
        )
        return [e.to_dict() for e in entries]

    # ------------------------------------------------------------------
    #  Shared audit plumbing
    # ------------------------------------------------------------------
    def _run(self, op: str, request_payload: Dict[str, Any], run: Callable[[], _Outcome]) -> ApiResponse:
        corr_id = bind_operation(op)
        t0 = time.perf_counter()

        try:
            version = get_current_version(op).version
        except (KeyError, RuntimeError) as exc:
            return self._fail(op, UNRESOLVED_VERSION, request_payload, exc, t0, corr_id)

        try:
            data, explanation, diagnostics, fingerprint = run()
        except (ValueError, KeyError) as exc:
            return self._fail(op, version, request_payload, exc, t0, corr_id)

        duration = (time.perf_counter() - t0) * 1000
        audit = self._audit.record_success(
            operation=op,
            algorithm_version=version,
            request_payload=request_payload,
            response_payload=data,
            duration_ms=duration,
            graph_fingerprint=fingerprint,
            caller_identity=self.caller_identity,
            correlation_id=corr_id,
        )
        self.session.commit()
        logger.info(
            "%s completed in %.1f ms", op, duration,
            extra={"graph_fingerprint": fingerprint, "duration_ms": round(duration, 3), "status": "success"},
        )

        return success_envelope(
            operation=op,
            api_version=version,
            data=data,
            explanation=explanation,
            audit_id=audit.id,
            diagnostics=diagnostics,
        )

    def _fail(
        self,
        op: str,
        version: str,
        request_payload: Dict[str, Any],
        exc: Exception,
        t0: float,
        corr_id: str,
    ) -> ApiResponse:
        duration = (time.perf_counter() - t0) * 1000
        logger.info(
            "%s failed: %s", op, exc,
            extra={"duration_ms": round(duration, 3), "status": "error"},
        )
        audit = self._audit.record_failure(
            operation=op,
            algorithm_version=version,
            request_payload=request_payload,
            error=exc,
            duration_ms=duration,
            caller_identity=self.caller_identity,
            correlation_id=corr_id,
        )
        self.session.commit()
        return error_envelope(
            operation=op,
            api_version=version,
            error_message=str(exc),
            audit_id=audit.id,
        )
