"""Audit state reducer.

Tracks the auditor's decision for each discrepancy, keyed by matching key.
Every function returns a new state dict and leaves its input untouched.

Keys are not checked against the current discrepancy set, so decisions
survive a re-run of the analysis over edited files.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Mapping, Optional, Sequence

from models.canonical import AnalysisResult, AuditState, AuditStatus, CanonicalRecord
from normalizers.normalize import normalize_invoice_number


def status_of(state: Mapping[str, AuditStatus], key: str) -> AuditStatus:
    """Current status of a key; unset keys are pending."""
    return AuditStatus(state.get(key, AuditStatus.PENDING))


def set_status(
    state: Mapping[str, AuditStatus],
    key: str,
    status: AuditStatus,
) -> AuditState:
    """Overwrite the status of one key."""
    new_state = dict(state)
    new_state[key] = AuditStatus(status)
    return new_state


def set_status_bulk(
    state: Mapping[str, AuditStatus],
    keys: Iterable[str],
    status: AuditStatus,
) -> AuditState:
    """Apply one status to many keys. Last write per key wins."""
    new_state = dict(state)
    status = AuditStatus(status)
    for key in keys:
        new_state[key] = status
    return new_state


def auto_reconcile(
    state: Mapping[str, AuditStatus],
    keys: Iterable[str],
    control_records: Sequence[CanonicalRecord],
    missing_records: Sequence[CanonicalRecord],
) -> AuditState:
    """Resolve discrepancies by invoice number alone.

    A discrepancy whose normalized invoice number appears anywhere in control
    (whatever the tax id or amount) is marked FAILED as a false positive;
    otherwise it is VERIFIED as genuinely missing. This looser match catches
    mistyped tax ids but misfires when two suppliers share an invoice number.

    Keys with no matching discrepancy are skipped.
    """
    control_invoices = {normalize_invoice_number(r.factura_val) for r in control_records}

    by_key: Dict[str, CanonicalRecord] = {}
    for record in missing_records:
        by_key.setdefault(record.key, record)

    new_state = dict(state)
    for key in keys:
        record = by_key.get(key)
        if record is None:
            continue
        invoice = normalize_invoice_number(record.factura_val)
        new_state[key] = AuditStatus.FAILED if invoice in control_invoices else AuditStatus.VERIFIED
    return new_state


def reset() -> AuditState:
    """Empty audit state."""
    return {}


# =============================================================================
# Derived Metrics
# =============================================================================

@dataclass(frozen=True)
class AuditSummary:
    """Audit metrics, always computed from the current state."""
    verified_count: int
    failed_count: int
    pending_count: int
    real_missing_count: int
    real_missing_amount: int

    def to_dict(self) -> dict:
        return asdict(self)


def summarize(
    state: Mapping[str, AuditStatus],
    analysis: Optional[AnalysisResult],
) -> AuditSummary:
    """Compute audit metrics for an analysis.

    verified/failed counts cover the whole state. Pending and the "real"
    figures are relative to the analysis' missing records; a record counts
    as really missing unless it is marked FAILED.
    """
    statuses = [AuditStatus(s) for s in state.values()]
    verified = sum(1 for s in statuses if s == AuditStatus.VERIFIED)
    failed = sum(1 for s in statuses if s == AuditStatus.FAILED)

    if analysis is None:
        return AuditSummary(verified, failed, 0, 0, 0)

    missing = analysis.missing_records
    pending = sum(1 for r in missing if status_of(state, r.key) == AuditStatus.PENDING)
    real_amount = sum(
        r.amount for r in missing if status_of(state, r.key) != AuditStatus.FAILED
    )

    return AuditSummary(
        verified_count=verified,
        failed_count=failed,
        pending_count=pending,
        real_missing_count=analysis.missing_count - failed,
        real_missing_amount=real_amount,
    )
