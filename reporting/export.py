"""Spreadsheet export of the discrepancy list.

Serializes missing records together with their audit status into an XLSX
workbook. Export never touches reconciliation or audit state, so a failed
export can simply be retried.
"""

import io
import re
from datetime import date
from typing import Mapping, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from audit.reducer import status_of
from core.errors import ExportError
from core.observability.logging import get_logger
from models.canonical import AuditStatus, CanonicalRecord


logger = get_logger(__name__)


SHEET_TITLE = "Discrepancias"

STATUS_LABELS = {
    AuditStatus.PENDING: "Pendiente",
    AuditStatus.VERIFIED: "Verificado",
    AuditStatus.FAILED: "Falso Positivo",
}

# (header, width)
COLUMNS = [
    ("Estado", 16),
    ("Fecha", 12),
    ("N° Factura", 15),
    ("RUT", 15),
    ("Nombre Proveedor", 40),
    ("Monto", 15),
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFE2EFDA")


def export_rows(
    missing_records: Sequence[CanonicalRecord],
    audit_state: Mapping[str, AuditStatus],
) -> list:
    """Rows of the export table, without the header."""
    return [
        [
            STATUS_LABELS[status_of(audit_state, record.key)],
            record.fecha_val,
            record.factura_val,
            record.rut_val,
            record.nombre_val,
            record.amount,
        ]
        for record in missing_records
    ]


def export_discrepancies(
    missing_records: Sequence[CanonicalRecord],
    audit_state: Mapping[str, AuditStatus],
) -> bytes:
    """Render the discrepancy list as an XLSX workbook.

    Returns:
        Workbook file content

    Raises:
        ExportError: If the workbook cannot be built or serialized
    """
    try:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_TITLE

        sheet.append([header for header, _ in COLUMNS])
        for row in export_rows(missing_records, audit_state):
            sheet.append(row)

        for idx, (_, width) in enumerate(COLUMNS, start=1):
            sheet.column_dimensions[get_column_letter(idx)].width = width
        for cell in sheet[1]:
            cell.font = Font(bold=True)
            cell.fill = HEADER_FILL

        buffer = io.BytesIO()
        workbook.save(buffer)
    except Exception as e:
        logger.exception(f"Export failed: {e}")
        raise ExportError(f"No se pudo generar el archivo Excel: {e}") from e

    logger.info("Exported discrepancies", extra_fields={"rows": len(missing_records)})
    return buffer.getvalue()


def export_filename(entity_name: str, day: Optional[date] = None) -> str:
    """File name for a download, e.g. ``Discrepancias_Colegio_Pullinque_2024-05-01.xlsx``."""
    day = day or date.today()
    safe_name = re.sub(r"[^\w\-]+", "_", entity_name.strip()).strip("_") or "entidad"
    return f"{SHEET_TITLE}_{safe_name}_{day.isoformat()}.xlsx"
