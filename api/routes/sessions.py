"""Per-entity reconciliation session endpoints.

Upload the two ledgers, map their columns, run the analysis, and work
through the discrepancy list with audit decisions, exports and reports.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from pydantic import BaseModel, Field

from audit.reducer import status_of, summarize
from core.errors import ExportError, IngestionError, UnknownEntityError
from core.observability.logging import get_logger, log_stage_error, with_correlation
from ingestion.loader import load_file
from mapping.engine import REQUIRED_FIELDS, missing_fields, suggest_mapping
from models.canonical import AuditStatus, Source
from reconciliation.compare import compare_records, find_control_candidate
from reporting.export import export_discrepancies, export_filename
from reporting.monthly import aggregate_by_month
from reporting.narrative import build_report_summary, generate_report
from session.state import (
    AutoReconcile,
    ClearFile,
    DeepLink,
    LoadFile,
    ReportFinished,
    Reset,
    RunAnalysis,
    SessionState,
    SessionStore,
    SetActiveTab,
    SetAuditStatus,
    SetMapping,
    Tab,
    can_run_analysis,
)
from session.views import PAGE_SIZE, record_row, table_view


logger = get_logger(__name__)

router = APIRouter()


XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# Global session store instance
_store: Optional[SessionStore] = None


def get_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore()
    return _store


# =============================================================================
# Request / Response Models
# =============================================================================

class EntityResponse(BaseModel):
    id: str
    name: str


class FileInfo(BaseModel):
    name: str
    row_count: int
    headers: List[str]


class AnalysisSummary(BaseModel):
    softland_total: int
    control_total: int
    matched_count: int
    missing_count: int
    missing_amount: int


class AuditSummaryResponse(BaseModel):
    verified_count: int
    failed_count: int
    pending_count: int
    real_missing_count: int
    real_missing_amount: int


class SessionResponse(BaseModel):
    """Current state of an entity's session."""
    entity: EntityResponse
    softland_file: Optional[FileInfo] = None
    control_file: Optional[FileInfo] = None
    softland_mapping: Dict[str, str]
    control_mapping: Dict[str, str]
    softland_missing_fields: List[str]
    control_missing_fields: List[str]
    can_run_analysis: bool
    analysis: Optional[AnalysisSummary] = None
    audit: AuditSummaryResponse
    softland_search: str
    control_search: str
    active_tab: str
    report_text: Optional[str] = None
    report_error: Optional[str] = None
    report_loading: bool


class MappingRequest(BaseModel):
    mapping: Dict[str, str] = Field(..., description="Canonical field -> source column")


class AuditRequest(BaseModel):
    keys: List[str] = Field(..., description="Matching keys of the discrepancies")
    status: AuditStatus


class AutoReconcileRequest(BaseModel):
    keys: Optional[List[str]] = Field(None, description="Keys to resolve; all discrepancies when omitted")


class DeepLinkRequest(BaseModel):
    target: Source
    query: str = ""


class TabRequest(BaseModel):
    tab: Tab


class MonthlyRow(BaseModel):
    month: str
    count: int
    total: int


class ReportResponse(BaseModel):
    text: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================

def _entity(store: SessionStore, entity_id: str):
    try:
        return store.entity(entity_id)
    except UnknownEntityError as e:
        raise HTTPException(status_code=404, detail=e.message)


def _state(store: SessionStore, entity_id: str) -> SessionState:
    _entity(store, entity_id)
    return store.get(entity_id)


def _require_analysis(state: SessionState):
    if state.analysis is None:
        raise HTTPException(status_code=409, detail="Debe ejecutar el análisis primero")
    return state.analysis


def _file_info(data_file) -> Optional[FileInfo]:
    if data_file is None:
        return None
    return FileInfo(name=data_file.name, row_count=data_file.row_count, headers=data_file.headers)


def _session_response(store: SessionStore, state: SessionState) -> SessionResponse:
    entity = store.entity(state.entity_id)
    analysis = state.analysis
    return SessionResponse(
        entity=EntityResponse(id=entity.id, name=entity.name),
        softland_file=_file_info(state.softland_file),
        control_file=_file_info(state.control_file),
        softland_mapping=state.softland_mapping,
        control_mapping=state.control_mapping,
        softland_missing_fields=missing_fields(state.softland_mapping),
        control_missing_fields=missing_fields(state.control_mapping),
        can_run_analysis=can_run_analysis(state),
        analysis=AnalysisSummary(
            softland_total=analysis.softland_total,
            control_total=analysis.control_total,
            matched_count=analysis.matched_count,
            missing_count=analysis.missing_count,
            missing_amount=analysis.missing_amount,
        ) if analysis is not None else None,
        audit=AuditSummaryResponse(**summarize(state.audit_state, analysis).to_dict()),
        softland_search=state.softland_search,
        control_search=state.control_search,
        active_tab=state.active_tab.value,
        report_text=state.report_text,
        report_error=state.report_error,
        report_loading=state.report_loading,
    )


# =============================================================================
# Entities & Session
# =============================================================================

@router.get("", response_model=List[EntityResponse])
async def list_entities(store: SessionStore = Depends(get_store)) -> List[EntityResponse]:
    """List auditable entities."""
    return [EntityResponse(id=e.id, name=e.name) for e in store.entities]


@router.get("/{entity_id}", response_model=SessionResponse)
async def get_session(entity_id: str, store: SessionStore = Depends(get_store)) -> SessionResponse:
    """Get the current session of an entity."""
    return _session_response(store, _state(store, entity_id))


@router.post("/{entity_id}/reset", response_model=SessionResponse)
async def reset_session(entity_id: str, store: SessionStore = Depends(get_store)) -> SessionResponse:
    """Clear all files, mappings, analysis and audit decisions."""
    _entity(store, entity_id)
    state = store.dispatch(entity_id, Reset())
    logger.info("Session reset", extra_fields={"entity_id": entity_id})
    return _session_response(store, state)


@router.put("/{entity_id}/tab", response_model=SessionResponse)
async def set_active_tab(
    entity_id: str,
    request: TabRequest,
    store: SessionStore = Depends(get_store),
) -> SessionResponse:
    _entity(store, entity_id)
    return _session_response(store, store.dispatch(entity_id, SetActiveTab(request.tab)))


@router.post("/{entity_id}/deep-link", response_model=SessionResponse)
async def deep_link(
    entity_id: str,
    request: DeepLinkRequest,
    store: SessionStore = Depends(get_store),
) -> SessionResponse:
    """Switch to a source table with a search pre-filled."""
    _entity(store, entity_id)
    return _session_response(store, store.dispatch(entity_id, DeepLink(request.target, request.query)))


# =============================================================================
# Files & Mappings
# =============================================================================

@router.post("/{entity_id}/files/{source}", response_model=FileInfo)
async def upload_file(
    entity_id: str,
    source: Source,
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_store),
) -> FileInfo:
    """Upload a CSV or Excel file for one source."""
    _entity(store, entity_id)
    content = await file.read()

    with with_correlation(entity_id=entity_id, source=source.value, stage="ingest"):
        try:
            data_file = load_file(file.filename or "upload", content)
        except IngestionError as e:
            logger.warning(f"Upload rejected: {e.message}")
            raise HTTPException(status_code=400, detail=e.message)

    store.dispatch(entity_id, LoadFile(source, data_file))
    return _file_info(data_file)


@router.delete("/{entity_id}/files/{source}", response_model=SessionResponse)
async def clear_file(
    entity_id: str,
    source: Source,
    store: SessionStore = Depends(get_store),
) -> SessionResponse:
    """Remove a source file and its mapping."""
    _entity(store, entity_id)
    return _session_response(store, store.dispatch(entity_id, ClearFile(source)))


@router.get("/{entity_id}/fields")
async def list_fields(entity_id: str, store: SessionStore = Depends(get_store)) -> List[Dict[str, str]]:
    """Canonical fields that every mapping must cover."""
    _entity(store, entity_id)
    return [{"field": f.value, "label": f.label} for f in REQUIRED_FIELDS]


@router.put("/{entity_id}/mappings/{source}", response_model=SessionResponse)
async def set_mapping(
    entity_id: str,
    source: Source,
    request: MappingRequest,
    store: SessionStore = Depends(get_store),
) -> SessionResponse:
    """Set the column mapping of one source."""
    _entity(store, entity_id)
    return _session_response(store, store.dispatch(entity_id, SetMapping(source, request.mapping)))


@router.get("/{entity_id}/mappings/{source}/suggestion")
async def get_mapping_suggestion(
    entity_id: str,
    source: Source,
    store: SessionStore = Depends(get_store),
) -> Dict[str, str]:
    """Suggest a mapping from the loaded file's headers."""
    data_file = _state(store, entity_id).file_for(source)
    if data_file is None:
        raise HTTPException(status_code=409, detail=f"No hay archivo cargado para {source.value}")
    return suggest_mapping(data_file.headers)


# =============================================================================
# Analysis
# =============================================================================

@router.post("/{entity_id}/analysis", response_model=SessionResponse)
def run_analysis(entity_id: str, store: SessionStore = Depends(get_store)) -> SessionResponse:
    """Run the reconciliation. Audit decisions are kept."""
    state = _state(store, entity_id)
    if not can_run_analysis(state):
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Faltan archivos o mapeos para ejecutar el análisis",
                "softland_missing_fields": missing_fields(state.softland_mapping),
                "control_missing_fields": missing_fields(state.control_mapping),
                "softland_loaded": state.softland_file is not None,
                "control_loaded": state.control_file is not None,
            },
        )
    return _session_response(store, store.dispatch(entity_id, RunAnalysis()))


@router.get("/{entity_id}/missing")
async def list_missing(
    entity_id: str,
    q: Optional[str] = None,
    sort: Optional[str] = None,
    desc: bool = False,
    status: Optional[AuditStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE, ge=1, le=1000),
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    """Discrepancies with their audit status, searchable and sortable."""
    state = _state(store, entity_id)
    analysis = _require_analysis(state)

    rows = []
    for record in analysis.missing_records:
        record_status = status_of(state.audit_state, record.key)
        if status is not None and record_status != status:
            continue
        row = record_row(record)
        row["_status"] = record_status.value
        rows.append(row)

    return table_view(rows, q, sort, desc, page, page_size).to_dict()


@router.get("/{entity_id}/records/{source}")
async def list_source_rows(
    entity_id: str,
    source: Source,
    q: Optional[str] = None,
    sort: Optional[str] = None,
    desc: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE, ge=1, le=1000),
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    """Raw rows of one source file. Defaults to the session's search text."""
    state = _state(store, entity_id)
    data_file = state.file_for(source)
    if data_file is None:
        raise HTTPException(status_code=409, detail=f"No hay archivo cargado para {source.value}")

    if q is None:
        q = state.softland_search if source == Source.SOFTLAND else state.control_search

    result = table_view(data_file.rows, q, sort, desc, page, page_size).to_dict()
    result["headers"] = data_file.headers
    result["search"] = q
    return result


@router.get("/{entity_id}/comparison")
async def compare_discrepancy(
    entity_id: str,
    key: str,
    store: SessionStore = Depends(get_store),
) -> Dict[str, Any]:
    """Compare one discrepancy with the control row sharing its invoice number."""
    state = _state(store, entity_id)
    analysis = _require_analysis(state)

    record = next((r for r in analysis.missing_records if r.key == key), None)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Discrepancia no encontrada: {key}")

    candidate = find_control_candidate(record, analysis.control_records)
    return {
        "key": key,
        "status": status_of(state.audit_state, key).value,
        "candidate_found": candidate is not None,
        "fields": [c.to_dict() for c in compare_records(record, candidate)],
    }


@router.get("/{entity_id}/monthly", response_model=List[MonthlyRow])
async def monthly_stats(entity_id: str, store: SessionStore = Depends(get_store)) -> List[MonthlyRow]:
    """Discrepancies grouped by month."""
    analysis = _require_analysis(_state(store, entity_id))
    return [
        MonthlyRow(month=month, count=bucket.count, total=bucket.total)
        for month, bucket in aggregate_by_month(analysis.missing_records)
    ]


# =============================================================================
# Audit
# =============================================================================

@router.get("/{entity_id}/audit", response_model=AuditSummaryResponse)
async def get_audit_summary(entity_id: str, store: SessionStore = Depends(get_store)) -> AuditSummaryResponse:
    state = _state(store, entity_id)
    return AuditSummaryResponse(**summarize(state.audit_state, state.analysis).to_dict())


@router.put("/{entity_id}/audit", response_model=AuditSummaryResponse)
async def set_audit_status(
    entity_id: str,
    request: AuditRequest,
    store: SessionStore = Depends(get_store),
) -> AuditSummaryResponse:
    """Mark one or more discrepancies as verified, failed or pending."""
    _entity(store, entity_id)
    state = store.dispatch(entity_id, SetAuditStatus(tuple(request.keys), request.status))
    logger.info(
        f"Marked {len(request.keys)} discrepancies as {request.status.value}",
        extra_fields={"entity_id": entity_id},
    )
    return AuditSummaryResponse(**summarize(state.audit_state, state.analysis).to_dict())


@router.post("/{entity_id}/audit/auto", response_model=AuditSummaryResponse)
async def auto_reconcile(
    entity_id: str,
    request: AutoReconcileRequest,
    store: SessionStore = Depends(get_store),
) -> AuditSummaryResponse:
    """Resolve discrepancies by looking their invoice number up in control."""
    analysis = _require_analysis(_state(store, entity_id))
    keys = request.keys
    if keys is None:
        keys = [r.key for r in analysis.missing_records]
    state = store.dispatch(entity_id, AutoReconcile(tuple(keys)))
    return AuditSummaryResponse(**summarize(state.audit_state, state.analysis).to_dict())


# =============================================================================
# Outputs
# =============================================================================

@router.get("/{entity_id}/export")
def export_xlsx(entity_id: str, store: SessionStore = Depends(get_store)) -> Response:
    """Download the discrepancy list as an Excel workbook."""
    entity = _entity(store, entity_id)
    state = store.get(entity_id)
    analysis = _require_analysis(state)

    with with_correlation(entity_id=entity_id, stage="export"):
        try:
            content = export_discrepancies(analysis.missing_records, state.audit_state)
        except ExportError as e:
            raise HTTPException(status_code=500, detail=e.message)

    filename = export_filename(entity.name)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{entity_id}/report", response_model=ReportResponse)
def create_report(entity_id: str, store: SessionStore = Depends(get_store)) -> ReportResponse:
    """Generate the narrative report. Only one request per entity at a time."""
    entity = _entity(store, entity_id)
    state = store.get(entity_id)
    analysis = _require_analysis(state)

    if not store.start_report(entity_id):
        raise HTTPException(status_code=409, detail="Ya se está generando un informe")

    try:
        with with_correlation(entity_id=entity_id, stage="report"):
            summary = build_report_summary(analysis, state.audit_state, entity.name)
            report = generate_report(summary)
    except Exception as e:
        log_stage_error("report", str(e), entity_id=entity_id)
        store.dispatch(entity_id, ReportFinished(error="Error generando informe"))
        raise

    store.dispatch(entity_id, ReportFinished(text=report.text, error=report.error))
    return ReportResponse(text=report.text, error=report.error)
