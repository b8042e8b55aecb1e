"""Field Normalization Utilities.

This module converts raw cell text from either ledger into canonical,
comparable forms:
1. Tax ids (RUT): strip dots and dashes, uppercase
2. Invoice numbers: trim, drop leading zeros
3. Amounts: Chilean integer format ("$1.234.567" → 1234567)
4. Dates: bucket into a "YYYY-MM" month key

Examples:
    "12.345.678-5"  → "123456785"
    "00042"         → "42"
    "$1.234.567"    → 1234567
    "15/03/2024"    → "2024-03"

All functions are total: empty or missing input yields an empty/zero value,
never an exception.
"""

import re
from typing import Optional, Union


UNKNOWN_MONTH = "Desconocido"

_AMOUNT_JUNK = re.compile(r"[^0-9,.\-]")
_LEADING_INT = re.compile(r"^-?\d+")
_LEADING_ZEROS = re.compile(r"^0+")
_DATE_SEPARATORS = re.compile(r"[-/]")


def normalize_tax_id(rut: Optional[str]) -> str:
    """Normalize a Chilean tax id (RUT) for matching.

    Args:
        rut: Raw RUT text, e.g. "12.345.678-5"

    Returns:
        RUT without dots or dashes, uppercased and trimmed

    Examples:
        >>> normalize_tax_id("12.345.678-5")
        '123456785'
        >>> normalize_tax_id("9.876.543-k")
        '9876543K'
    """
    if not rut:
        return ""
    return re.sub(r"[.\-]", "", str(rut)).upper().strip()


def normalize_invoice_number(invoice: Optional[str]) -> str:
    """Normalize an invoice number by trimming and removing leading zeros.

    Examples:
        >>> normalize_invoice_number("  00042 ")
        '42'
    """
    if not invoice:
        return ""
    return _LEADING_ZEROS.sub("", str(invoice).strip())


def parse_amount(amount: Union[str, int, float, None]) -> int:
    """Parse an amount written in Chilean integer format.

    Periods are always thousands separators, never decimal points. Everything
    other than digits, commas, periods and minus signs is discarded first,
    then the leading integer is read (so a decimal comma truncates).

    Args:
        amount: Raw cell text or an already-numeric value

    Returns:
        Integer amount; 0 when nothing parseable is found

    Examples:
        >>> parse_amount("$1.234.567")
        1234567
        >>> parse_amount("-15.000")
        -15000
        >>> parse_amount("1234,56")
        1234
        >>> parse_amount("")
        0
    """
    if isinstance(amount, bool):
        return int(amount)
    if isinstance(amount, int):
        return amount
    if isinstance(amount, float):
        if amount != amount or amount in (float("inf"), float("-inf")):
            return 0
        return int(amount)
    if not amount:
        return 0

    clean = _AMOUNT_JUNK.sub("", str(amount))
    clean = clean.replace(".", "")

    match = _LEADING_INT.match(clean)
    if not match:
        return 0
    try:
        return int(match.group(0))
    except ValueError:
        # Digit runs beyond the interpreter's int conversion limit
        return 0


def matching_key(rut: Optional[str], invoice: Optional[str]) -> str:
    """Build the cross-source identity of a document.

    Examples:
        >>> matching_key("12.345.678-5", "0001045")
        '123456785_1045'
    """
    return f"{normalize_tax_id(rut)}_{normalize_invoice_number(invoice)}"


def month_key(date_text: Optional[str]) -> str:
    """Bucket a date string into "YYYY-MM".

    Splits on "-" or "/". With exactly three parts, a four-character first
    part is taken as the year (ISO order); otherwise the last part is the
    year and the middle part the month. Month values are not validated and
    DD/MM vs MM/DD is not disambiguated.

    Examples:
        >>> month_key("15/03/2024")
        '2024-03'
        >>> month_key("2024-03-15")
        '2024-03'
        >>> month_key("marzo 2024")
        'Desconocido'
    """
    parts = _DATE_SEPARATORS.split(date_text or "")
    if len(parts) != 3:
        return UNKNOWN_MONTH
    if len(parts[0]) == 4:
        return f"{parts[0]}-{parts[1]}"
    return f"{parts[2]}-{parts[1]}"
