"""Reporting - derived views and outputs of an analysis.

- Monthly breakdown of discrepancies
- XLSX export of the discrepancy list with audit statuses
- Narrative report through an LLM
"""

from reporting.monthly import MonthlyBucket, aggregate_by_month
from reporting.export import STATUS_LABELS, export_rows, export_discrepancies, export_filename
from reporting.narrative import (
    ReportSummary,
    NarrativeReport,
    build_report_summary,
    build_prompt,
    generate_report,
)

__all__ = [
    "MonthlyBucket",
    "aggregate_by_month",
    "STATUS_LABELS",
    "export_rows",
    "export_discrepancies",
    "export_filename",
    "ReportSummary",
    "NarrativeReport",
    "build_report_summary",
    "build_prompt",
    "generate_report",
]
