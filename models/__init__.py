"""Models Package.

Data models for ledger reconciliation:
- Raw input shapes (rows, column mappings, loaded files)
- Canonical records and the analysis result
- Audit statuses
"""

from models.canonical import (
    RawRow,
    ColumnMapping,
    Source,
    CanonicalField,
    FIELD_LABELS,
    AuditStatus,
    AuditState,
    CanonicalBase,
    DataFile,
    CanonicalRecord,
    AnalysisResult,
)

__all__ = [
    "RawRow",
    "ColumnMapping",
    "Source",
    "CanonicalField",
    "FIELD_LABELS",
    "AuditStatus",
    "AuditState",
    "CanonicalBase",
    "DataFile",
    "CanonicalRecord",
    "AnalysisResult",
]
