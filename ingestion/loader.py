"""Tabular file ingestion.

Loads a CSV or Excel file into a DataFile of string-valued rows. Excel
workbooks have every sheet consolidated into one row set; each sheet's real
header row is detected first, since ledger exports usually open with title
and period lines.
"""

import csv
import io
from datetime import date, datetime, time
from pathlib import PurePath
from typing import Any, List, Optional, Sequence

from openpyxl import load_workbook

from core.errors import IngestionError
from core.observability.logging import get_logger
from models.canonical import DataFile, RawRow


logger = get_logger(__name__)


# Keywords that identify the real header row of a ledger sheet
HEADER_KEYWORDS = [
    "fecha", "factura", "documento", "numero", "rut", "proveedor",
    "monto", "total", "debe", "haber", "tipo",
]
HEADER_SCAN_ROWS = 20
MIN_HEADER_HITS = 2

CSV_DELIMITERS = ",;\t|"
CSV_ENCODINGS = ("utf-8-sig", "latin-1")

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
CSV_EXTENSIONS = (".csv",)

BLANK_HEADER = "__EMPTY"


# =============================================================================
# Header Detection
# =============================================================================

def find_header_row(rows: Sequence[Sequence[Any]]) -> int:
    """Index of the first row that looks like a header.

    Scans the first 20 rows and returns the first whose joined lower-cased
    text contains at least two header keywords. Defaults to 0.

    Examples:
        >>> find_header_row([["LIBRO DE COMPRAS"], ["Periodo 2024"], ["Fecha", "RUT", "Monto"]])
        2
    """
    for idx, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        text = " ".join(str(cell) for cell in row if cell is not None).lower()
        hits = sum(1 for keyword in HEADER_KEYWORDS if keyword in text)
        if hits >= MIN_HEADER_HITS:
            return idx
    return 0


def unique_headers(raw_headers: Sequence[Any]) -> List[str]:
    """Name blank headers ``__EMPTY``, ``__EMPTY_1``... and suffix duplicates."""
    headers: List[str] = []
    seen = set()
    blank_count = 0
    for value in raw_headers:
        name = format_cell(value)
        if not name:
            name = BLANK_HEADER if blank_count == 0 else f"{BLANK_HEADER}_{blank_count}"
            blank_count += 1
        candidate = name
        suffix = 1
        while candidate in seen:
            candidate = f"{name}_{suffix}"
            suffix += 1
        seen.add(candidate)
        headers.append(candidate)
    return headers


def format_cell(value: Any) -> str:
    """Render a cell value as trimmed text.

    Dates become ``dd/mm/yyyy`` and integral floats lose their ``.0``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_to_records(headers: List[str], rows: Sequence[Sequence[Any]]) -> List[RawRow]:
    records = []
    for row in rows:
        cells = [format_cell(v) for v in row]
        if not any(cells):
            continue
        cells = cells + [""] * (len(headers) - len(cells))
        records.append({header: cells[i] for i, header in enumerate(headers)})
    return records


# =============================================================================
# Loaders
# =============================================================================

def _decode(content: bytes) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise IngestionError("No se pudo decodificar el archivo CSV")


def load_csv(name: str, content: bytes) -> DataFile:
    """Load a delimited text file. The first line is the header row."""
    text = _decode(content)
    lines = [line for line in text.splitlines() if line.strip()]
    sample = "\n".join(lines[:5])
    try:
        delimiter = csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        # Ragged rows defeat the sniffer; fall back to the header line
        header_line = lines[0] if lines else ""
        delimiter = max(CSV_DELIMITERS, key=header_line.count)
        if not header_line.count(delimiter):
            delimiter = ","

    rows = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    rows = [row for row in rows if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise IngestionError(f"El archivo {name} parece estar vacío o no se detectaron datos válidos.")

    headers = unique_headers(rows[0])
    records = _rows_to_records(headers, rows[1:])
    if not records:
        raise IngestionError(f"El archivo {name} parece estar vacío o no se detectaron datos válidos.")

    logger.info(
        f"Loaded CSV {name}",
        extra_fields={"rows": len(records), "columns": len(headers), "delimiter": delimiter},
    )
    return DataFile(name=name, rows=records, headers=headers)


def load_excel(name: str, content: bytes) -> DataFile:
    """Load every sheet of a workbook into one row set.

    Headers reported are those of the first sheet that yields data.
    """
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise IngestionError(f"Error al leer el archivo Excel {name}: {e}") from e

    sheet_count = len(workbook.sheetnames)
    all_rows: List[RawRow] = []
    detected_headers: List[str] = []
    try:
        for sheet in workbook.worksheets:
            raw = [list(row) for row in sheet.iter_rows(values_only=True)]
            if not raw:
                continue
            header_idx = find_header_row(raw)
            headers = unique_headers(raw[header_idx])
            records = _rows_to_records(headers, raw[header_idx + 1:])
            logger.debug(
                f"Sheet {sheet.title}: header at row {header_idx}, {len(records)} rows",
                extra_fields={"sheet": sheet.title, "header_row": header_idx},
            )
            if records:
                all_rows.extend(records)
                if not detected_headers:
                    detected_headers = headers
    finally:
        workbook.close()

    if not all_rows:
        raise IngestionError(f"El archivo Excel {name} parece estar vacío o no se detectaron datos válidos.")

    logger.info(
        f"Loaded workbook {name}",
        extra_fields={"rows": len(all_rows), "sheets": sheet_count},
    )
    return DataFile(name=name, rows=all_rows, headers=detected_headers)


def load_file(name: str, content: bytes, suffix: Optional[str] = None) -> DataFile:
    """Load a source file, dispatching on its extension.

    Raises:
        IngestionError: Unsupported file type, unreadable or empty file
    """
    suffix = (suffix or PurePath(name).suffix).lower()
    if suffix in CSV_EXTENSIONS:
        return load_csv(name, content)
    if suffix in EXCEL_EXTENSIONS:
        return load_excel(name, content)
    raise IngestionError(
        f"Tipo de archivo no soportado: {suffix or name}",
        details={"supported": list(CSV_EXTENSIONS + EXCEL_EXTENSIONS)},
    )
