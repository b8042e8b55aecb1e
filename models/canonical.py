"""Canonical data models for ledger reconciliation.

These models represent rows from both ledgers after column mapping, in a
standardized shape that does not depend on the spreadsheet layout of either
source.

Raw spreadsheet rows stay untyped (``RawRow``); the row mapper is the single
point where they become ``CanonicalRecord`` instances.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field, ConfigDict


# =============================================================================
# Raw Input
# =============================================================================

RawRow = Dict[str, str]
ColumnMapping = Dict[str, str]


class Source(str, Enum):
    """The two ledgers being compared."""
    SOFTLAND = "softland"   # Accounting-system export
    CONTROL = "control"     # Budget-control register


class CanonicalField(str, Enum):
    """Fields a user maps from source columns."""
    FACTURA = "factura"
    RUT = "rut"
    MONTO = "monto"
    NOMBRE = "nombre"
    FECHA = "fecha"
    TIPO = "tipo"

    @property
    def label(self) -> str:
        return FIELD_LABELS[self]


FIELD_LABELS = {
    CanonicalField.FACTURA: "N° Factura/Doc",
    CanonicalField.RUT: "RUT",
    CanonicalField.MONTO: "Monto Total",
    CanonicalField.NOMBRE: "Nombre/Proveedor",
    CanonicalField.FECHA: "Fecha",
    CanonicalField.TIPO: "Tipo Docto (Ej: 33, 61, Factura)",
}


class AuditStatus(str, Enum):
    """Human disposition of a discrepancy."""
    PENDING = "pending"
    VERIFIED = "verified"   # Confirmed missing from control
    FAILED = "failed"       # False positive, excluded from the report


AuditState = Dict[str, AuditStatus]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class DataFile(CanonicalBase):
    """A loaded source file: every sheet consolidated into one row set."""
    name: str
    rows: List[RawRow] = Field(default_factory=list)
    headers: List[str] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class CanonicalRecord(CanonicalBase):
    """A source row after column mapping.

    Attributes:
        factura_val: Invoice number text as found in the source
        rut_val: Tax id text as found in the source
        monto_val: Normalized integer amount serialized as text
        nombre_val: Supplier name
        fecha_val: Date text
        tipo_val: Document type text (may be empty)
        key: Matching key, normalized tax id + "_" + normalized invoice number
        original_index: Position of the row in its source file
        raw: All original columns, carried forward for display
    """
    factura_val: str = ""
    rut_val: str = ""
    monto_val: str = "0"
    nombre_val: str = ""
    fecha_val: str = ""
    tipo_val: str = ""
    key: str = ""
    original_index: int = 0
    raw: RawRow = Field(default_factory=dict)

    @property
    def amount(self) -> int:
        try:
            return int(self.monto_val)
        except (TypeError, ValueError):
            return 0


class AnalysisResult(CanonicalBase):
    """Output of one reconciliation run. Replaced wholesale on re-run."""
    softland_total: int = Field(..., description="Valid softland records")
    control_total: int = Field(..., description="Valid control records")
    matched_count: int = Field(..., description="Softland records whose key exists in control")
    missing_count: int = Field(..., description="Softland records whose key is absent from control")
    missing_amount: int = Field(..., description="Sum of amounts over missing records")
    missing_records: List[CanonicalRecord] = Field(default_factory=list)
    softland_records: List[CanonicalRecord] = Field(default_factory=list)
    control_records: List[CanonicalRecord] = Field(default_factory=list)
