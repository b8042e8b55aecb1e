"""
Session Tests

Reducer transitions over immutable snapshots, the per-entity store and the
table views (search, sort, pagination).
"""

import pytest

from core.config import EntityConfig
from core.errors import UnknownEntityError
from models.canonical import AuditStatus, DataFile, Source
from session import (
    AutoReconcile,
    ClearFile,
    DeepLink,
    LoadFile,
    ReportFinished,
    ReportStarted,
    Reset,
    RunAnalysis,
    SessionState,
    SessionStore,
    SetActiveTab,
    SetAuditStatus,
    SetMapping,
    Tab,
    can_run_analysis,
    paginate,
    reduce,
    search_rows,
    sort_rows,
    table_view,
)


MAPPING = {
    "factura": "Folio",
    "rut": "RUT",
    "monto": "Monto",
    "nombre": "Proveedor",
    "fecha": "Fecha",
    "tipo": "Tipo",
}


def row(folio, rut="12.345.678-5", monto="10.000", proveedor="Proveedor Uno SpA", fecha="15/03/2024", tipo="33"):
    return {"Folio": folio, "RUT": rut, "Monto": monto, "Proveedor": proveedor, "Fecha": fecha, "Tipo": tipo}


SOFTLAND = DataFile(
    name="softland.xlsx",
    headers=list(MAPPING.values()),
    rows=[row("100"), row("101"), row("102", rut="76.543.210-K"), row("0", proveedor="Totales")],
)
CONTROL = DataFile(
    name="control.xlsx",
    headers=list(MAPPING.values()),
    rows=[row("0101"), row("102", rut="11.111.111-1")],
)


def loaded_state() -> SessionState:
    state = SessionState(entity_id="pullinque")
    for action in (
        LoadFile(Source.SOFTLAND, SOFTLAND),
        LoadFile(Source.CONTROL, CONTROL),
        SetMapping(Source.SOFTLAND, MAPPING),
        SetMapping(Source.CONTROL, MAPPING),
    ):
        state = reduce(state, action)
    return state


class TestReducer:

    def test_initial_state(self):
        state = SessionState(entity_id="e1")
        assert state.analysis is None
        assert state.audit_state == {}
        assert state.active_tab == Tab.DASHBOARD
        assert not can_run_analysis(state)

    def test_snapshots_are_not_mutated(self):
        state = SessionState(entity_id="e1")
        new_state = reduce(state, LoadFile(Source.SOFTLAND, SOFTLAND))
        assert state.softland_file is None
        assert new_state.softland_file is SOFTLAND
        assert new_state is not state

    def test_run_analysis(self):
        state = reduce(loaded_state(), RunAnalysis())

        analysis = state.analysis
        assert analysis.softland_total == 3
        assert analysis.control_total == 2
        assert analysis.matched_count == 1
        assert analysis.missing_count == 2
        assert analysis.missing_amount == 20000

    def test_run_analysis_requires_complete_mapping(self):
        state = reduce(loaded_state(), SetMapping(Source.CONTROL, dict(MAPPING, tipo="")))
        assert not can_run_analysis(state)
        assert reduce(state, RunAnalysis()) is state

    def test_run_analysis_requires_both_files(self):
        state = reduce(loaded_state(), ClearFile(Source.CONTROL))
        assert state.control_file is None
        assert state.control_mapping == {}
        assert reduce(state, RunAnalysis()) is state

    def test_audit_state_survives_rerun(self):
        state = reduce(loaded_state(), RunAnalysis())
        key = state.analysis.missing_records[0].key
        state = reduce(state, SetAuditStatus([key], AuditStatus.VERIFIED))

        state = reduce(state, RunAnalysis())

        assert state.audit_state == {key: AuditStatus.VERIFIED}

    def test_auto_reconcile(self):
        state = reduce(loaded_state(), RunAnalysis())
        keys = [r.key for r in state.analysis.missing_records]

        state = reduce(state, AutoReconcile(keys))

        # "100" is absent from control; "102" exists there under another tax id
        by_invoice = {r.factura_val: state.audit_state[r.key] for r in state.analysis.missing_records}
        assert by_invoice == {"100": AuditStatus.VERIFIED, "102": AuditStatus.FAILED}

    def test_auto_reconcile_without_analysis(self):
        state = loaded_state()
        assert reduce(state, AutoReconcile(["x"])) is state

    def test_deep_link(self):
        state = reduce(SessionState(entity_id="e1"), DeepLink(Source.CONTROL, "1045"))
        assert state.control_search == "1045"
        assert state.softland_search == ""
        assert state.active_tab == Tab.CONTROL

    def test_set_active_tab(self):
        state = reduce(SessionState(entity_id="e1"), SetActiveTab(Tab.SOFTLAND))
        assert state.active_tab == Tab.SOFTLAND

    def test_reset(self):
        state = reduce(loaded_state(), RunAnalysis())
        state = reduce(state, Reset())
        assert state == SessionState(entity_id="pullinque")

    def test_report_lifecycle(self):
        state = reduce(SessionState(entity_id="e1"), ReportStarted())
        assert state.report_loading

        state = reduce(state, ReportFinished(text="Informe"))
        assert not state.report_loading
        assert state.report_text == "Informe"
        assert state.report_error is None

    def test_unknown_action(self):
        with pytest.raises(TypeError):
            reduce(SessionState(entity_id="e1"), object())


class TestSessionStore:

    def setup_method(self):
        self.store = SessionStore([EntityConfig("a", "Colegio A"), EntityConfig("b", "Colegio B")])

    def test_entities(self):
        assert [e.id for e in self.store.entities] == ["a", "b"]

    def test_sessions_are_isolated(self):
        self.store.dispatch("a", LoadFile(Source.SOFTLAND, SOFTLAND))
        assert self.store.get("a").softland_file is not None
        assert self.store.get("b").softland_file is None

    def test_unknown_entity(self):
        with pytest.raises(UnknownEntityError):
            self.store.get("zzz")
        with pytest.raises(UnknownEntityError):
            self.store.dispatch("zzz", Reset())

    def test_report_guard(self):
        assert self.store.start_report("a")
        assert not self.store.start_report("a")
        self.store.dispatch("a", ReportFinished(error="falló"))
        assert self.store.start_report("a")


class TestViews:

    ROWS = [
        {"nombre_val": "Ferretería Sur", "monto_val": "9000", "fecha_val": "02/03/2024"},
        {"nombre_val": "Proveedor Uno", "monto_val": "10000", "fecha_val": "01/03/2024"},
        {"nombre_val": "Librería Central", "monto_val": "500", "fecha_val": "03/03/2024"},
    ]

    def test_search_is_case_insensitive(self):
        assert [r["nombre_val"] for r in search_rows(self.ROWS, "FERRET")] == ["Ferretería Sur"]

    def test_search_matches_any_column(self):
        assert len(search_rows(self.ROWS, "03/2024")) == 3

    def test_empty_search(self):
        assert search_rows(self.ROWS, "") == self.ROWS

    def test_amount_columns_sort_numerically(self):
        assert [r["monto_val"] for r in sort_rows(self.ROWS, "monto_val")] == ["500", "9000", "10000"]

    def test_text_sort_descending(self):
        result = sort_rows(self.ROWS, "nombre_val", descending=True)
        assert [r["nombre_val"] for r in result] == ["Proveedor Uno", "Librería Central", "Ferretería Sur"]

    def test_paginate(self):
        rows = [{"i": i} for i in range(120)]
        page = paginate(rows, page=3)
        assert page.total == 120
        assert page.total_pages == 3
        assert [r["i"] for r in page.items] == list(range(100, 120))

    def test_page_out_of_range(self):
        assert paginate([{"i": 1}], page=5).items == []

    def test_table_view(self):
        page = table_view(self.ROWS, query="0", sort="monto_val", descending=True, page_size=2)
        assert page.total == 3
        assert [r["monto_val"] for r in page.items] == ["10000", "9000"]

    def test_integer_columns_sort_numerically(self):
        rows = [{"_originalIndex": i} for i in (9, 10, 2)]
        assert [r["_originalIndex"] for r in sort_rows(rows, "_originalIndex")] == [2, 9, 10]
        assert [r["_originalIndex"] for r in sort_rows(rows, "_originalIndex", descending=True)] == [10, 9, 2]

    def test_mixed_column_sorts_as_text(self):
        rows = [{"folio": 10}, {"folio": "9"}]
        assert [r["folio"] for r in sort_rows(rows, "folio")] == [10, "9"]
