"""Mapping - apply user column mappings to raw rows.

Usage:
    from mapping import prepare_records, is_mapping_complete
    from models import Source

    if is_mapping_complete(mapping):
        prepared = prepare_records(data_file.rows, mapping, Source.SOFTLAND)
        records = prepared.records
"""

from mapping.engine import (
    REQUIRED_FIELDS,
    PreparedSource,
    missing_fields,
    is_mapping_complete,
    suggest_mapping,
    map_row,
    map_rows,
    prepare_records,
)

__all__ = [
    "REQUIRED_FIELDS",
    "PreparedSource",
    "missing_fields",
    "is_mapping_complete",
    "suggest_mapping",
    "map_row",
    "map_rows",
    "prepare_records",
]
