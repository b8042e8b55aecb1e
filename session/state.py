"""Per-entity session state.

Each entity (school) owns an immutable ``SessionState`` snapshot. Changes go
through ``reduce(state, action)``, which returns a new snapshot and never
mutates the old one. ``SessionStore`` holds the current snapshot per entity
and serialises replacements, since HTTP handlers may run on a thread pool.
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from audit import reducer as audit
from core.config import EntityConfig, get_settings
from core.errors import UnknownEntityError
from core.observability.logging import get_logger, log_stage_complete, log_stage_start, with_correlation
from mapping.engine import is_mapping_complete, prepare_records
from models.canonical import AnalysisResult, AuditState, AuditStatus, ColumnMapping, DataFile, Source
from reconciliation.engine import reconcile


logger = get_logger(__name__)


class Tab(str, Enum):
    DASHBOARD = "dashboard"
    SOFTLAND = "softland"
    CONTROL = "control"


class SessionState(BaseModel):
    """Snapshot of one entity's working session."""
    model_config = ConfigDict(frozen=True)

    entity_id: str
    softland_file: Optional[DataFile] = None
    control_file: Optional[DataFile] = None
    softland_mapping: ColumnMapping = Field(default_factory=dict)
    control_mapping: ColumnMapping = Field(default_factory=dict)
    analysis: Optional[AnalysisResult] = None
    audit_state: AuditState = Field(default_factory=dict)
    softland_search: str = ""
    control_search: str = ""
    active_tab: Tab = Tab.DASHBOARD
    report_text: Optional[str] = None
    report_error: Optional[str] = None
    report_loading: bool = False

    def file_for(self, source: Source) -> Optional[DataFile]:
        return self.softland_file if Source(source) == Source.SOFTLAND else self.control_file

    def mapping_for(self, source: Source) -> ColumnMapping:
        return self.softland_mapping if Source(source) == Source.SOFTLAND else self.control_mapping


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class LoadFile:
    source: Source
    file: DataFile


@dataclass(frozen=True)
class ClearFile:
    source: Source


@dataclass(frozen=True)
class SetMapping:
    source: Source
    mapping: ColumnMapping


@dataclass(frozen=True)
class RunAnalysis:
    pass


@dataclass(frozen=True)
class SetAuditStatus:
    keys: Sequence[str]
    status: AuditStatus


@dataclass(frozen=True)
class AutoReconcile:
    keys: Sequence[str]


@dataclass(frozen=True)
class DeepLink:
    """Jump to one source's table with a search pre-filled."""
    target: Source
    query: str


@dataclass(frozen=True)
class SetActiveTab:
    tab: Tab


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class ReportStarted:
    pass


@dataclass(frozen=True)
class ReportFinished:
    text: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Reducer
# =============================================================================

def can_run_analysis(state: SessionState) -> bool:
    """Both files loaded and both mappings complete."""
    return (
        state.softland_file is not None
        and state.control_file is not None
        and is_mapping_complete(state.softland_mapping)
        and is_mapping_complete(state.control_mapping)
    )


def _file_field(source: Source) -> str:
    return "softland_file" if Source(source) == Source.SOFTLAND else "control_file"


def _mapping_field(source: Source) -> str:
    return "softland_mapping" if Source(source) == Source.SOFTLAND else "control_mapping"


def run_analysis(state: SessionState) -> AnalysisResult:
    """Map, filter and reconcile the loaded files."""
    run_id = uuid.uuid4().hex[:8]
    start = time.time()
    with with_correlation(entity_id=state.entity_id, run_id=run_id):
        log_stage_start("analysis")
        softland = prepare_records(state.softland_file.rows, state.softland_mapping, Source.SOFTLAND)
        control = prepare_records(state.control_file.rows, state.control_mapping, Source.CONTROL)
        analysis = reconcile(softland.records, control.records)
        log_stage_complete(
            "analysis",
            duration_ms=(time.time() - start) * 1000,
            missing=analysis.missing_count,
        )
    return analysis


def reduce(state: SessionState, action) -> SessionState:
    """Apply one action, returning the next snapshot.

    Actions whose preconditions are unmet (analysis without complete inputs,
    auto-reconcile without an analysis) leave the state unchanged.
    """
    if isinstance(action, LoadFile):
        return state.model_copy(update={_file_field(action.source): action.file})

    if isinstance(action, ClearFile):
        return state.model_copy(update={
            _file_field(action.source): None,
            _mapping_field(action.source): {},
        })

    if isinstance(action, SetMapping):
        return state.model_copy(update={_mapping_field(action.source): dict(action.mapping)})

    if isinstance(action, RunAnalysis):
        if not can_run_analysis(state):
            return state
        # Audit decisions survive a re-run
        return state.model_copy(update={"analysis": run_analysis(state)})

    if isinstance(action, SetAuditStatus):
        return state.model_copy(update={
            "audit_state": audit.set_status_bulk(state.audit_state, action.keys, action.status),
        })

    if isinstance(action, AutoReconcile):
        if state.analysis is None:
            return state
        return state.model_copy(update={
            "audit_state": audit.auto_reconcile(
                state.audit_state,
                action.keys,
                state.analysis.control_records,
                state.analysis.missing_records,
            ),
        })

    if isinstance(action, DeepLink):
        target = Source(action.target)
        search_field = "softland_search" if target == Source.SOFTLAND else "control_search"
        return state.model_copy(update={search_field: action.query, "active_tab": Tab(target.value)})

    if isinstance(action, SetActiveTab):
        return state.model_copy(update={"active_tab": Tab(action.tab)})

    if isinstance(action, Reset):
        return SessionState(entity_id=state.entity_id)

    if isinstance(action, ReportStarted):
        return state.model_copy(update={"report_loading": True, "report_error": None})

    if isinstance(action, ReportFinished):
        return state.model_copy(update={
            "report_loading": False,
            "report_text": action.text,
            "report_error": action.error,
        })

    raise TypeError(f"Unknown session action: {type(action).__name__}")


# =============================================================================
# Store
# =============================================================================

class SessionStore:
    """Current session snapshot for every configured entity."""

    def __init__(self, entities: Optional[Iterable[EntityConfig]] = None):
        if entities is None:
            entities = get_settings().entities
        self._entities: Dict[str, EntityConfig] = {e.id: e for e in entities}
        self._states: Dict[str, SessionState] = {
            entity_id: SessionState(entity_id=entity_id) for entity_id in self._entities
        }
        self._lock = Lock()

    @property
    def entities(self) -> List[EntityConfig]:
        return list(self._entities.values())

    def entity(self, entity_id: str) -> EntityConfig:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise UnknownEntityError(
                f"Entidad desconocida: {entity_id}",
                details={"entity_id": entity_id},
            )

    def get(self, entity_id: str) -> SessionState:
        self.entity(entity_id)
        with self._lock:
            return self._states[entity_id]

    def dispatch(self, entity_id: str, action) -> SessionState:
        """Reduce the entity's snapshot with ``action`` and store the result."""
        self.entity(entity_id)
        with self._lock:
            new_state = reduce(self._states[entity_id], action)
            self._states[entity_id] = new_state
        logger.debug(
            f"Dispatched {type(action).__name__}",
            extra_fields={"entity_id": entity_id},
        )
        return new_state

    def start_report(self, entity_id: str) -> bool:
        """Mark a report as in flight. False if one already is."""
        self.entity(entity_id)
        with self._lock:
            state = self._states[entity_id]
            if state.report_loading:
                return False
            self._states[entity_id] = reduce(state, ReportStarted())
        return True
