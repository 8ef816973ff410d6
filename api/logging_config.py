"""
Structured logging for scoring operations.

Every facade call binds an operation name and a fresh correlation id to the
current context. Both are stamped on each record emitted while the call runs
(and the correlation id is stored on the audit entry), so log lines can be
joined to the ledger. Records logged with ``extra={"graph_fingerprint": ...}``
carry the fingerprint of the snapshot that was scored.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Dict, Optional
from uuid import uuid4

from pythonjsonlogger.json import JsonFormatter


correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
current_operation: ContextVar[Optional[str]] = ContextVar("current_operation", default=None)

TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(operation)s/%(short_correlation_id)s: %(message)s"


def generate_correlation_id() -> str:
    corr_id = str(uuid4())
    correlation_id.set(corr_id)
    return corr_id


def bind_operation(operation: str) -> str:
    """Marks the start of a facade operation; returns its new correlation id."""
    current_operation.set(operation)
    return generate_correlation_id()


class JSONFormatter(JsonFormatter):
    """One JSON object per record, stamped with the bound operation context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        corr_id = correlation_id.get()
        if corr_id:
            log_record["correlation_id"] = corr_id
        operation = current_operation.get()
        if operation:
            log_record.setdefault("operation", operation)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class OperationContextFilter(logging.Filter):
    """Fills the context fields used by ``TEXT_FORMAT``; ``-`` when unbound."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation = current_operation.get() or "-"
        corr_id = correlation_id.get()
        record.short_correlation_id = corr_id[:8] if corr_id else "-"
        return True


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    module_levels: Optional[Dict[str, str]] = None,
) -> None:
    """
    Replaces root handlers with a single stdout handler.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ...).
        log_format: "json" for structured records, anything else for text.
        module_levels: Per-logger overrides, e.g. {"engine.graph_scoring_engine": "DEBUG"}.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = logging.StreamHandler(sys.stdout)
    if log_format.lower() == "json":
        console_handler.setFormatter(JSONFormatter(fmt="%(message)s", datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        console_handler.addFilter(OperationContextFilter())
        console_handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%H:%M:%S"))
    root_logger.addHandler(console_handler)

    for module_name, level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))
