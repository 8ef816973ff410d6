"""
Decision Graph Snapshot
=======================
Immutable value types describing the graph an analyst builds on the canvas:

  - ``KRImpact`` – a node's self-reported effect on one key result.
  - ``Node``     – a problem, action, outcome or decision entity.
  - ``Edge``     – a directed, kind-tagged influence link.
  - ``Graph``    – the snapshot handed to the scoring engine.

Field names follow Python conventions; the camelCase keys used by the
document layer (``krImpacts``, ``deltaP50``, ``schemaVersion``, ``from``,
``to``) are accepted as aliases and emitted by ``model_dump(by_alias=True)``.

``normalize_graph`` is the tolerant entry point for untrusted documents: it
never raises, and drops whatever cannot be interpreted.
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class NodeType(str, Enum):
    PROBLEM = "problem"
    ACTION = "action"
    OUTCOME = "outcome"
    DECISION = "decision"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "NodeType":
        if isinstance(value, NodeType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class EdgeKind(str, Enum):
    SUPPORTS = "supports"
    MITIGATES = "mitigates"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class KRImpact(_Snapshot):
    kr_id: str = Field(default="", alias="krId")
    delta_p50: float = Field(default=0.0, alias="deltaP50")
    confidence: float = 0.0


class Node(_Snapshot):
    id: str
    type: NodeType = NodeType.OTHER
    title: str = ""
    kr_impacts: Tuple[KRImpact, ...] = Field(default=(), alias="krImpacts")
    notes: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> NodeType:
        return NodeType.parse(value)

    @field_validator("kr_impacts", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return () if value is None else value


class Edge(_Snapshot):
    id: str
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    kind: EdgeKind = EdgeKind.SUPPORTS
    notes: Optional[str] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> Any:
        if value is None or value == "":
            return EdgeKind.SUPPORTS
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Graph(_Snapshot):
    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    nodes: Dict[str, Node] = Field(default_factory=dict)
    edges: Dict[str, Edge] = Field(default_factory=dict)


def empty_graph() -> Graph:
    return Graph(schema_version=SCHEMA_VERSION, nodes={}, edges={})


def normalize_impacts(raw: Any) -> Tuple[KRImpact, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    impacts = []
    for item in raw:
        if isinstance(item, KRImpact):
            impacts.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            impacts.append(KRImpact.model_validate(item))
        except ValidationError:
            logger.debug("Dropping malformed KR impact %r", item)
    return tuple(impacts)


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _edge_kind(value: Any) -> Optional[EdgeKind]:
    if value is None or value == "":
        return EdgeKind.SUPPORTS
    if not isinstance(value, str):
        return None
    try:
        return EdgeKind(value.strip().lower())
    except ValueError:
        return None


def normalize_graph(raw: Any) -> Graph:
    """
    Builds a ``Graph`` from an untrusted JSON-like document.

    Non-mapping entries are skipped, node ids come from the map keys, edges
    without both endpoints or with an unknown kind are dropped, and the
    result always carries the current ``SCHEMA_VERSION``.
    """
    if isinstance(raw, Graph):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, dict):
        return empty_graph()

    nodes: Dict[str, Node] = {}
    raw_nodes = raw.get("nodes") or {}
    if isinstance(raw_nodes, dict):
        for node_id, n in raw_nodes.items():
            if not isinstance(n, dict):
                continue
            nodes[str(node_id)] = Node(
                id=str(node_id),
                type=n.get("type"),
                title=str(n.get("title") or ""),
                kr_impacts=normalize_impacts(n.get("krImpacts", n.get("kr_impacts"))),
                notes=_text_or_none(n.get("notes")),
            )

    edges: Dict[str, Edge] = {}
    raw_edges = raw.get("edges") or {}
    if isinstance(raw_edges, dict):
        for edge_id, e in raw_edges.items():
            if not isinstance(e, dict):
                continue
            source = str(e.get("from") or e.get("source") or "")
            target = str(e.get("to") or e.get("target") or "")
            if not source or not target:
                continue
            kind = _edge_kind(e.get("kind"))
            if kind is None:
                logger.debug("Dropping edge %s with unknown kind %r", edge_id, e.get("kind"))
                continue
            edges[str(edge_id)] = Edge(
                id=str(edge_id),
                source=source,
                target=target,
                kind=kind,
                notes=_text_or_none(e.get("notes")),
            )

    return Graph(schema_version=SCHEMA_VERSION, nodes=nodes, edges=edges)


def graph_fingerprint(graph: Graph) -> str:
    """SHA-256 of the canonical JSON form; independent of map ordering."""
    payload = graph.model_dump(mode="json", by_alias=True)
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
