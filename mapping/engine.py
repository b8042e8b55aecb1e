"""Column mapping engine.

Turns raw spreadsheet rows into canonical records using a user-supplied
column mapping (canonical field → source column name).

The mapper never fails on a bad mapping: an unmapped field or a missing
column simply yields an empty value. Completeness of the mapping is a
precondition checked separately (``is_mapping_complete``) before analysis.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from core.observability.logging import get_logger, with_correlation
from models.canonical import CanonicalField, CanonicalRecord, ColumnMapping, RawRow, Source
from normalizers.normalize import matching_key, parse_amount
from validation.rules import check_record


logger = get_logger(__name__)


REQUIRED_FIELDS: List[CanonicalField] = [
    CanonicalField.FACTURA,
    CanonicalField.RUT,
    CanonicalField.MONTO,
    CanonicalField.NOMBRE,
    CanonicalField.FECHA,
    CanonicalField.TIPO,
]

# Header keywords used to pre-fill a mapping, in assignment order.
# "tipo" goes first so "Tipo Documento" is not claimed as the invoice column.
SUGGESTION_KEYWORDS: List[tuple] = [
    (CanonicalField.TIPO, ("tipo",)),
    (CanonicalField.RUT, ("rut",)),
    (CanonicalField.FECHA, ("fecha",)),
    (CanonicalField.NOMBRE, ("proveedor", "razon social", "razón social", "nombre")),
    (CanonicalField.MONTO, ("monto", "total", "importe", "valor")),
    (CanonicalField.FACTURA, ("factura", "folio", "n° doc", "documento", "numero", "número", "nro")),
]


# =============================================================================
# Mapping Completeness
# =============================================================================

def missing_fields(mapping: Optional[ColumnMapping]) -> List[str]:
    """Canonical fields that have no source column selected."""
    mapping = mapping or {}
    return [f.value for f in REQUIRED_FIELDS if not mapping.get(f.value)]


def is_mapping_complete(mapping: Optional[ColumnMapping]) -> bool:
    """True when every required field maps to a column."""
    return not missing_fields(mapping)


def suggest_mapping(headers: Sequence[str]) -> ColumnMapping:
    """Guess a column mapping from header names.

    Each header is assigned to at most one field. Fields without a plausible
    header are left out, so the result may be incomplete.

    Examples:
        >>> suggest_mapping(["Fecha", "Tipo Docto", "Folio", "RUT", "Razón Social", "Monto Total"])["factura"]
        'Folio'
    """
    suggestion: ColumnMapping = {}
    used = set()
    for canonical_field, keywords in SUGGESTION_KEYWORDS:
        for keyword in keywords:
            match = next(
                (h for h in headers if h not in used and keyword in str(h).lower()),
                None,
            )
            if match is not None:
                suggestion[canonical_field.value] = match
                used.add(match)
                break
    return suggestion


# =============================================================================
# Row Mapper
# =============================================================================

def _cell(row: RawRow, mapping: ColumnMapping, canonical_field: CanonicalField) -> str:
    column = mapping.get(canonical_field.value)
    if not column:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    return str(value)


def map_row(row: RawRow, mapping: ColumnMapping, index: int = 0) -> CanonicalRecord:
    """Apply a column mapping to one raw row."""
    factura = _cell(row, mapping, CanonicalField.FACTURA)
    rut = _cell(row, mapping, CanonicalField.RUT)
    monto = _cell(row, mapping, CanonicalField.MONTO)

    return CanonicalRecord(
        factura_val=factura,
        rut_val=rut,
        monto_val=str(parse_amount(monto or "0")),
        nombre_val=_cell(row, mapping, CanonicalField.NOMBRE),
        fecha_val=_cell(row, mapping, CanonicalField.FECHA),
        tipo_val=_cell(row, mapping, CanonicalField.TIPO),
        key=matching_key(rut, factura),
        original_index=index,
        raw=dict(row),
    )


def map_rows(
    raw_rows: Iterable[RawRow],
    column_mapping: ColumnMapping,
    source: Source,
) -> List[CanonicalRecord]:
    """Map every raw row of one source into a canonical record.

    Args:
        raw_rows: Rows from the ingestion step
        column_mapping: Canonical field → source column
        source: Which ledger the rows come from (logging only)

    Returns:
        One CanonicalRecord per input row, in input order
    """
    mapping = column_mapping or {}
    records = [map_row(row, mapping, idx) for idx, row in enumerate(raw_rows)]
    logger.debug(
        f"Mapped {len(records)} rows",
        extra_fields={"source": Source(source).value, "mapped": len(records)},
    )
    return records


# =============================================================================
# Map-then-filter
# =============================================================================

@dataclass
class PreparedSource:
    """Canonical record set for one ledger plus filtering diagnostics."""
    source: Source
    records: List[CanonicalRecord]
    raw_count: int
    rejections: Dict[str, int] = field(default_factory=dict)

    @property
    def rejected_count(self) -> int:
        return self.raw_count - len(self.records)


def prepare_records(
    raw_rows: Sequence[RawRow],
    column_mapping: ColumnMapping,
    source: Source,
) -> PreparedSource:
    """Map rows and drop everything the validator rejects.

    Rejection tallies go to the diagnostic log only; they are never surfaced
    as errors.
    """
    source = Source(source)
    start = time.time()

    with with_correlation(source=source.value, stage="map"):
        mapped = map_rows(raw_rows, column_mapping, source)

        kept: List[CanonicalRecord] = []
        rejections: Dict[str, int] = {}
        for record in mapped:
            reason = check_record(record)
            if reason is None:
                kept.append(record)
            else:
                rejections[reason.value] = rejections.get(reason.value, 0) + 1

        prepared = PreparedSource(
            source=source,
            records=kept,
            raw_count=len(mapped),
            rejections=rejections,
        )

        logger.info(
            f"{len(kept)} valid rows after filtering, {prepared.rejected_count} discarded",
            extra_fields={
                "raw": prepared.raw_count,
                "kept": len(kept),
                "rejections": rejections,
                "duration_ms": round((time.time() - start) * 1000, 1),
            },
        )

    return prepared
