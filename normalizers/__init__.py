"""Normalizers - pure conversions from raw cell text to comparable forms.

Usage:
    from normalizers import normalize_tax_id, normalize_invoice_number, parse_amount

    key = f"{normalize_tax_id(rut)}_{normalize_invoice_number(factura)}"
    amount = parse_amount("$1.234.567")  # 1234567
"""

from normalizers.normalize import (
    UNKNOWN_MONTH,
    normalize_tax_id,
    normalize_invoice_number,
    parse_amount,
    matching_key,
    month_key,
)

__all__ = [
    "UNKNOWN_MONTH",
    "normalize_tax_id",
    "normalize_invoice_number",
    "parse_amount",
    "matching_key",
    "month_key",
]
