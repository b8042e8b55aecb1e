"""Reconciliation - key-based set difference between the two ledgers."""

from reconciliation.engine import reconcile, control_key_set, find_missing
from reconciliation.compare import FieldComparison, find_control_candidate, compare_records

__all__ = [
    "reconcile",
    "control_key_set",
    "find_missing",
    "FieldComparison",
    "find_control_candidate",
    "compare_records",
]
