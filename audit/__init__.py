"""Audit module - human review decisions over the discrepancy set."""

from audit.reducer import (
    AuditSummary,
    status_of,
    set_status,
    set_status_bulk,
    auto_reconcile,
    reset,
    summarize,
)

__all__ = [
    "AuditSummary",
    "status_of",
    "set_status",
    "set_status_bulk",
    "auto_reconcile",
    "reset",
    "summarize",
]
