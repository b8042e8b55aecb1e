"""Session - per-entity state snapshots, reducer and table views."""

from session.state import (
    Tab,
    SessionState,
    LoadFile,
    ClearFile,
    SetMapping,
    RunAnalysis,
    SetAuditStatus,
    AutoReconcile,
    DeepLink,
    SetActiveTab,
    Reset,
    ReportStarted,
    ReportFinished,
    can_run_analysis,
    run_analysis,
    reduce,
    SessionStore,
)
from session.views import (
    PAGE_SIZE,
    Page,
    record_row,
    search_rows,
    sort_rows,
    paginate,
    table_view,
)

__all__ = [
    "Tab",
    "SessionState",
    "LoadFile",
    "ClearFile",
    "SetMapping",
    "RunAnalysis",
    "SetAuditStatus",
    "AutoReconcile",
    "DeepLink",
    "SetActiveTab",
    "Reset",
    "ReportStarted",
    "ReportFinished",
    "can_run_analysis",
    "run_analysis",
    "reduce",
    "SessionStore",
    "PAGE_SIZE",
    "Page",
    "record_row",
    "search_rows",
    "sort_rows",
    "paginate",
    "table_view",
]
