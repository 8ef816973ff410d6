"""
Scoring Audit Ledger
====================
Append-only record of every scoring operation run through the facade. A
record names the operation and algorithm version, the fingerprint of the
graph snapshot that was scored, the request and response payloads (JSON),
timing, the caller and the correlation id of the log lines it produced.

Records are never updated; the caller commits.
"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Session

from models.base import Base

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def _dump(payload: Any) -> str:
    return json.dumps(payload, default=str, sort_keys=True)


def _load(raw: Optional[str]) -> Any:
    return json.loads(raw) if raw else None


class AuditLogEntry(Base):
    __tablename__ = "score_audit_log"
    __table_args__ = (
        Index("ix_score_audit_log_fingerprint", "graph_fingerprint"),
        Index("ix_score_audit_log_op_created", "operation", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    operation = Column(String, nullable=False)
    algorithm_version = Column(String, nullable=False)
    graph_fingerprint = Column(String, nullable=True)  # sha256 of the scored snapshot
    correlation_id = Column(String, nullable=True)
    caller_identity = Column(String, nullable=True)
    request_json = Column(Text, nullable=False)
    response_json = Column(Text, nullable=True)  # null for failed operations
    duration_ms = Column(Float, nullable=False)
    status = Column(String, nullable=False, default=STATUS_SUCCESS)
    error_detail = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry {self.operation}@{self.algorithm_version} "
            f"graph={(self.graph_fingerprint or '-')[:8]} {self.status}>"
        )

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "operation": self.operation,
            "algorithm_version": self.algorithm_version,
            "graph_fingerprint": self.graph_fingerprint,
            "correlation_id": self.correlation_id,
            "caller_identity": self.caller_identity,
            "request_payload": _load(self.request_json),
            "response_payload": _load(self.response_json),
            "duration_ms": self.duration_ms,
            "status": self.status,
            "error_detail": self.error_detail,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
        }


class AuditLogger:
    """Writes and reads ledger records through the caller's session."""

    def __init__(self, session: Session):
        self.session = session

    def record_success(
        self,
        operation: str,
        algorithm_version: str,
        request_payload: Any,
        response_payload: Any,
        duration_ms: float,
        graph_fingerprint: Optional[str] = None,
        caller_identity: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self._add(
            operation=operation,
            algorithm_version=algorithm_version,
            request_json=_dump(request_payload),
            response_json=_dump(response_payload),
            duration_ms=duration_ms,
            graph_fingerprint=graph_fingerprint,
            caller_identity=caller_identity,
            correlation_id=correlation_id,
            status=STATUS_SUCCESS,
        )

    def record_failure(
        self,
        operation: str,
        algorithm_version: str,
        request_payload: Any,
        error: Exception,
        duration_ms: float,
        caller_identity: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self._add(
            operation=operation,
            algorithm_version=algorithm_version,
            request_json=_dump(request_payload),
            response_json=None,
            duration_ms=duration_ms,
            caller_identity=caller_identity,
            correlation_id=correlation_id,
            status=STATUS_ERROR,
            error_detail=f"{type(error).__name__}: {error}",
        )

    def _add(self, **columns: Any) -> AuditLogEntry:
        entry = AuditLogEntry(**columns)
        self.session.add(entry)
        # Flush so the generated id is available before the caller commits.
        self.session.flush()
        return entry

    def query_log(
        self,
        operation: Optional[str] = None,
        since: Optional[datetime] = None,
        graph_fingerprint: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuditLogEntry]:
        q = self.session.query(AuditLogEntry)
        if operation:
            q = q.filter(AuditLogEntry.operation == operation)
        if graph_fingerprint:
            q = q.filter(AuditLogEntry.graph_fingerprint == graph_fingerprint)
        if since:
            q = q.filter(AuditLogEntry.created_at >= since)
        return q.order_by(AuditLogEntry.created_at.desc()).limit(limit).all()
