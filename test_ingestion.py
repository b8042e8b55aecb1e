"""
Ingestion Tests

CSV and Excel loading: delimiter and encoding detection, header row
detection in ledger exports, multi-sheet consolidation.
"""

import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from core.errors import IngestionError
from ingestion import find_header_row, format_cell, load_csv, load_file, unique_headers


def workbook_bytes(sheets) -> bytes:
    """Build an .xlsx from {title: rows}."""
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


SOFTLAND_SHEET = [
    ["LIBRO DE COMPRAS"],
    ["Período: Marzo 2024"],
    [],
    ["Fecha", "Tipo", "Folio", "RUT", "Proveedor", "Monto Total"],
    [datetime(2024, 3, 15), 33, "1045", "12.345.678-5", "Proveedor Uno SpA", 10000],
    [datetime(2024, 3, 20), 33, "1046", "76.543.210-K", "Ferretería Sur", 25000.0],
    [None, None, None, None, None, None],
    [None, None, None, None, "Total", 35000],
]


class TestHeaderDetection:

    def test_skips_title_rows(self):
        assert find_header_row(SOFTLAND_SHEET) == 3

    def test_defaults_to_first_row(self):
        assert find_header_row([["a", "b"], ["c", "d"]]) == 0

    def test_needs_two_keywords(self):
        rows = [["Fecha de emisión"], ["Fecha", "Monto"]]
        assert find_header_row(rows) == 1

    def test_only_scans_first_twenty_rows(self):
        rows = [["x"]] * 25 + [["Fecha", "RUT"]]
        assert find_header_row(rows) == 0


class TestCellFormatting:

    def test_dates(self):
        assert format_cell(datetime(2024, 3, 5, 0, 0)) == "05/03/2024"

    def test_integral_float(self):
        assert format_cell(10000.0) == "10000"

    def test_fractional_float(self):
        assert format_cell(1234.5) == "1234.5"

    def test_none_and_strings(self):
        assert format_cell(None) == ""
        assert format_cell("  Proveedor  ") == "Proveedor"

    def test_unique_headers(self):
        assert unique_headers(["Monto", "Monto", None, "", "Monto"]) == \
            ["Monto", "Monto_1", "__EMPTY", "__EMPTY_1", "Monto_2"]


class TestCsv:

    def test_semicolon_delimited(self):
        content = (
            "Fecha;Folio;RUT;Proveedor;Monto\n"
            "15/03/2024;1045;12.345.678-5;Proveedor Uno;10.000\n"
            "\n"
            "20/03/2024;1046;76.543.210-K;Ferreteria Sur;25.000\n"
        ).encode("utf-8")

        data = load_csv("softland.csv", content)

        assert data.headers == ["Fecha", "Folio", "RUT", "Proveedor", "Monto"]
        assert data.row_count == 2
        assert data.rows[1]["Monto"] == "25.000"

    def test_latin1_fallback(self):
        content = "Fecha,Razón Social,Monto\n15/03/2024,Ferretería Sur,1000\n".encode("latin-1")
        data = load_csv("control.csv", content)
        assert data.headers[1] == "Razón Social"
        assert data.rows[0]["Razón Social"] == "Ferretería Sur"

    def test_utf8_bom(self):
        content = "\ufeffFecha\tMonto\n15/03/2024\t1000\n".encode("utf-8")
        data = load_csv("control.csv", content)
        assert data.headers == ["Fecha", "Monto"]

    def test_short_rows_are_padded(self):
        content = b"Fecha|Folio|Monto\n15/03/2024|1045\n"
        data = load_csv("x.csv", content)
        assert data.rows[0]["Monto"] == ""

    def test_header_only_is_empty(self):
        with pytest.raises(IngestionError):
            load_csv("empty.csv", b"Fecha,Folio,Monto\n")


class TestExcel:

    def test_detects_header_and_formats_cells(self):
        data = load_file("softland.xlsx", workbook_bytes({"Marzo": SOFTLAND_SHEET}))

        assert data.headers == ["Fecha", "Tipo", "Folio", "RUT", "Proveedor", "Monto Total"]
        assert data.row_count == 3
        first = data.rows[0]
        assert first["Fecha"] == "15/03/2024"
        assert first["Tipo"] == "33"
        assert first["Monto Total"] == "10000"
        assert data.rows[1]["Monto Total"] == "25000"
        assert data.rows[2]["Proveedor"] == "Total"

    def test_sheets_are_consolidated(self):
        april = [
            ["Fecha", "Tipo", "Folio", "RUT", "Proveedor", "Monto Total"],
            [datetime(2024, 4, 2), 33, "2001", "12.345.678-5", "Proveedor Uno SpA", 5000],
        ]
        data = load_file("softland.xlsx", workbook_bytes({"Marzo": SOFTLAND_SHEET, "Abril": april, "Vacía": []}))

        assert data.row_count == 4
        assert data.rows[-1]["Folio"] == "2001"
        assert data.headers[0] == "Fecha"

    def test_empty_workbook(self):
        with pytest.raises(IngestionError):
            load_file("vacio.xlsx", workbook_bytes({"Hoja1": []}))

    def test_corrupt_workbook(self):
        with pytest.raises(IngestionError):
            load_file("roto.xlsx", b"not a zip file")


class TestDispatch:

    def test_unsupported_extension(self):
        with pytest.raises(IngestionError) as exc_info:
            load_file("informe.pdf", b"%PDF-1.4")
        assert ".csv" in exc_info.value.details["supported"]

    def test_legacy_xls_is_unsupported(self):
        with pytest.raises(IngestionError):
            load_file("softland.xls", b"\xd0\xcf\x11\xe0")

    def test_extension_is_case_insensitive(self):
        data = load_file("SOFTLAND.CSV", b"Fecha,Monto\n15/03/2024,1000\n")
        assert data.name == "SOFTLAND.CSV"
