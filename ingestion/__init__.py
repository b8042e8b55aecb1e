"""Ingestion - CSV and Excel loading into string-valued rows."""

from ingestion.loader import (
    HEADER_KEYWORDS,
    find_header_row,
    unique_headers,
    format_cell,
    load_csv,
    load_excel,
    load_file,
)

__all__ = [
    "HEADER_KEYWORDS",
    "find_header_row",
    "unique_headers",
    "format_cell",
    "load_csv",
    "load_excel",
    "load_file",
]
