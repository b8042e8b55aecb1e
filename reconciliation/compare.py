"""Side-by-side comparison of a discrepancy against its closest control row.

The candidate is looked up by normalized invoice number only, so a row whose
tax id was mistyped in control still shows up here for the auditor to judge.
Nothing in this module changes the automatic match decision.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from models.canonical import CanonicalRecord
from normalizers.normalize import normalize_invoice_number, normalize_tax_id, parse_amount


@dataclass(frozen=True)
class FieldComparison:
    """One compared field."""
    field: str
    label: str
    softland_value: str
    control_value: Optional[str]
    matches: bool

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "label": self.label,
            "softland_value": self.softland_value,
            "control_value": self.control_value,
            "matches": self.matches,
        }


def _same_text(a: str, b: str) -> bool:
    return a == b


# (field, label, equality)
COMPARED_FIELDS: List[tuple] = [
    ("factura_val", "N° Factura", lambda a, b: normalize_invoice_number(a) == normalize_invoice_number(b)),
    ("rut_val", "RUT", lambda a, b: normalize_tax_id(a) == normalize_tax_id(b)),
    ("monto_val", "Monto", lambda a, b: parse_amount(a) == parse_amount(b)),
    ("nombre_val", "Nombre", _same_text),
    ("fecha_val", "Fecha", _same_text),
]


def find_control_candidate(
    record: CanonicalRecord,
    control_records: Sequence[CanonicalRecord],
) -> Optional[CanonicalRecord]:
    """First control record sharing the record's normalized invoice number."""
    target = normalize_invoice_number(record.factura_val)
    for candidate in control_records:
        if normalize_invoice_number(candidate.factura_val) == target:
            return candidate
    return None


def compare_records(
    record: CanonicalRecord,
    candidate: Optional[CanonicalRecord],
) -> List[FieldComparison]:
    """Compare a discrepancy field by field with a control candidate.

    With no candidate every field is reported as not matching and the
    control value is None.
    """
    comparisons = []
    for field_name, label, equals in COMPARED_FIELDS:
        softland_value = getattr(record, field_name)
        if candidate is None:
            comparisons.append(FieldComparison(field_name, label, softland_value, None, False))
            continue
        control_value = getattr(candidate, field_name)
        comparisons.append(
            FieldComparison(
                field=field_name,
                label=label,
                softland_value=softland_value,
                control_value=control_value,
                matches=equals(softland_value, control_value),
            )
        )
    return comparisons
