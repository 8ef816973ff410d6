"""
Response Envelope
=================
Uniform shape returned by every facade call: the operation and algorithm
version that served it, ``"ok"`` or ``"error"``, the structured payload, a
short human-readable explanation (the error message on failure), the id of
the audit record written for the call, and convergence diagnostics when a
scoring run was involved.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

STATUS_OK = "ok"
STATUS_ERROR = "error"


def _utc_stamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@dataclass
class ApiResponse:
    operation: str
    api_version: str
    status: str
    explanation: str
    audit_id: str
    data: Any = None
    diagnostics: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=_utc_stamp)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if not self.diagnostics:
            payload.pop("diagnostics")
        return payload


def success_envelope(
    operation: str,
    api_version: str,
    data: Any,
    explanation: str,
    audit_id: str,
    diagnostics: Optional[Dict[str, Any]] = None,
) -> ApiResponse:
    return ApiResponse(operation, api_version, STATUS_OK, explanation, audit_id, data=data, diagnostics=diagnostics)


def error_envelope(operation: str, api_version: str, error_message: str, audit_id: str) -> ApiResponse:
    return ApiResponse(operation, api_version, STATUS_ERROR, error_message, audit_id)
