"""Row validity rules.

Separates genuine purchase-register lines from spreadsheet noise: subtotal
and title rows, credit/debit notes, dispatch guides and malformed tax ids.

Exposes:
- check_record(record) -> Optional[RejectionReason]
- is_valid(record) -> bool
- count_rejections(records) -> Dict[str, int]

Rules are evaluated in a fixed order and the first failing rule decides the
reason. Rejected rows are dropped from both ledgers before matching; they are
never reported as missing.
"""

import re
from collections import Counter
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from normalizers.normalize import normalize_tax_id, parse_amount


# =============================================================================
# Vocabularies
# =============================================================================

NULL_LITERALS = ("0", "nan", "null")

# Report furniture: titles, running totals, filter headers
NOISE_NAME_KEYWORDS = (
    "total",
    "subtotal",
    "suma",
    "libro de compra",
    "ordenado",
    "desde:",
    "hasta:",
    "moneda:",
    "período",
    "periodo",
    "resumen",
)

EXCLUDED_DOCUMENT_TYPES = (
    "61",   # Nota de crédito electrónica
    "56",   # Nota de débito
    "52",   # Guía de despacho
    "60",   # Nota de crédito manual
    "nc",
    "n/c",
    "notacredito",
    "notadebito",
    "credito",
    "debito",
    "débito",
    "crédito",
)

MIN_TAX_ID_LENGTH = 7
MIN_NAME_LENGTH = 3

_TAX_ID_BODY = re.compile(r"[0-9]{7,9}")
_CHECK_DIGIT = re.compile(r"[0-9K]")
_WHITESPACE = re.compile(r"\s+")


class RejectionReason(str, Enum):
    """Why a row was excluded, in evaluation order."""
    INVALID_INVOICE = "INVALID_INVOICE"
    SHORT_TAX_ID = "SHORT_TAX_ID"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MISSING_NAME = "MISSING_NAME"
    SUMMARY_ROW = "SUMMARY_ROW"
    SHORT_NAME = "SHORT_NAME"
    EXCLUDED_DOCUMENT_TYPE = "EXCLUDED_DOCUMENT_TYPE"
    CREDIT_NOTE_NAME = "CREDIT_NOTE_NAME"
    NEGATIVE_AMOUNT = "NEGATIVE_AMOUNT"
    MALFORMED_TAX_ID = "MALFORMED_TAX_ID"


# =============================================================================
# Field Access
# =============================================================================

def _field(record: Any, name: str) -> str:
    """Read a ``*_val`` field from a record or mapping as trimmed text."""
    if record is None:
        return ""
    if isinstance(record, dict):
        value = record.get(name)
    else:
        value = getattr(record, name, None)
    if value is None:
        return ""
    return str(value).strip()


def _clean_document_type(tipo: str) -> str:
    """Lowercase, remove whitespace and a trailing ".0" left by numeric cells."""
    clean = _WHITESPACE.sub("", tipo.lower())
    if clean.endswith(".0"):
        clean = clean[:-2]
    return clean


# =============================================================================
# Rules
# =============================================================================

def check_record(record: Any) -> Optional[RejectionReason]:
    """Return the first rule a record fails, or None if it is a real transaction.

    Accepts a CanonicalRecord, any mapping with ``*_val`` keys, or None.
    Never raises.
    """
    factura = _field(record, "factura_val")
    rut = normalize_tax_id(_field(record, "rut_val"))
    monto = _field(record, "monto_val")
    nombre = _field(record, "nombre_val").lower()
    tipo = _clean_document_type(_field(record, "tipo_val"))

    if not factura or factura in NULL_LITERALS:
        return RejectionReason.INVALID_INVOICE

    if len(rut) < MIN_TAX_ID_LENGTH:
        return RejectionReason.SHORT_TAX_ID

    # Textual check happens before numeric parsing on purpose
    if not monto or monto in NULL_LITERALS:
        return RejectionReason.INVALID_AMOUNT

    if not nombre or nombre in ("nan", "null"):
        return RejectionReason.MISSING_NAME

    if any(keyword in nombre for keyword in NOISE_NAME_KEYWORDS):
        return RejectionReason.SUMMARY_ROW

    if len(nombre) < MIN_NAME_LENGTH:
        return RejectionReason.SHORT_NAME

    if tipo and any(t == tipo or t in tipo for t in EXCLUDED_DOCUMENT_TYPES):
        return RejectionReason.EXCLUDED_DOCUMENT_TYPE

    if "nota" in nombre and ("credito" in nombre or "crédito" in nombre):
        return RejectionReason.CREDIT_NOTE_NAME

    if parse_amount(monto) < 0:
        return RejectionReason.NEGATIVE_AMOUNT

    # Structural shape only; the modulo-11 check digit is not computed
    body, check_digit = rut[:-1], rut[-1:]
    if not _TAX_ID_BODY.fullmatch(body) or not _CHECK_DIGIT.fullmatch(check_digit):
        return RejectionReason.MALFORMED_TAX_ID

    return None


def is_valid(record: Any) -> bool:
    """True if the record is a genuine transaction line."""
    return check_record(record) is None


def count_rejections(records: Iterable[Any]) -> Dict[str, int]:
    """Tally rejection reasons over a batch of records.

    Valid records are not counted.
    """
    counts: Counter = Counter()
    for record in records:
        reason = check_record(record)
        if reason is not None:
            counts[reason.value] += 1
    return dict(counts)
