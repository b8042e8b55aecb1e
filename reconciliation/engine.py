"""Reconciliation engine for softland vs. control ledgers.

Exposes high-level function:
- reconcile(softland_records, control_records) -> AnalysisResult

Key equality (normalized tax id + normalized invoice number) is the whole
automatic matching criterion. Amount, date and name differences are left to
the human review step and the comparison view.
"""

import time
from typing import List, Sequence, Set

from core.observability.logging import get_logger, with_correlation
from models.canonical import AnalysisResult, CanonicalRecord


logger = get_logger(__name__)


def control_key_set(control_records: Sequence[CanonicalRecord]) -> Set[str]:
    """Matching keys present in the control ledger."""
    return {record.key for record in control_records}


def find_missing(
    softland_records: Sequence[CanonicalRecord],
    control_keys: Set[str],
) -> List[CanonicalRecord]:
    """Softland records whose key is absent from control.

    Duplicate softland keys are kept; each row is tested independently.
    """
    return [record for record in softland_records if record.key not in control_keys]


def reconcile(
    softland_records: Sequence[CanonicalRecord],
    control_records: Sequence[CanonicalRecord],
) -> AnalysisResult:
    """Compute the set difference softland − control by matching key.

    Args:
        softland_records: Validated accounting-system records
        control_records: Validated budget-control records

    Returns:
        AnalysisResult with counts, missing records and both record sets
    """
    start = time.time()

    with with_correlation(stage="reconcile"):
        control_keys = control_key_set(control_records)
        missing = find_missing(softland_records, control_keys)
        missing_amount = sum(record.amount for record in missing)

        result = AnalysisResult(
            softland_total=len(softland_records),
            control_total=len(control_records),
            matched_count=len(softland_records) - len(missing),
            missing_count=len(missing),
            missing_amount=missing_amount,
            missing_records=list(missing),
            softland_records=list(softland_records),
            control_records=list(control_records),
        )

        logger.info(
            "Reconciliation complete",
            extra_fields={
                "softland_valid": result.softland_total,
                "control_valid": result.control_total,
                "matched": result.matched_count,
                "missing": result.missing_count,
                "missing_amount": result.missing_amount,
                "duration_ms": round((time.time() - start) * 1000, 1),
            },
        )

    return result
