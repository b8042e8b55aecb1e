"""Table views over row sets: free-text search, column sort, pagination.

Rows are plain dicts, either raw source rows or flattened canonical
records (``record_row``).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from models.canonical import CanonicalRecord
from normalizers.normalize import parse_amount


PAGE_SIZE = 50

# Columns whose name contains one of these sort numerically
NUMERIC_SORT_HINTS = ("monto", "total")


def record_row(record: CanonicalRecord) -> Dict[str, Any]:
    """Flatten a canonical record into a table row.

    Original columns come first; canonical values override any column of the
    same name.
    """
    row: Dict[str, Any] = dict(record.raw)
    row.update(
        factura_val=record.factura_val,
        rut_val=record.rut_val,
        monto_val=record.monto_val,
        nombre_val=record.nombre_val,
        fecha_val=record.fecha_val,
        tipo_val=record.tipo_val,
        _key=record.key,
        _originalIndex=record.original_index,
    )
    return row


def search_rows(rows: Sequence[Dict[str, Any]], query: Optional[str]) -> List[Dict[str, Any]]:
    """Keep rows where any value contains ``query``, case-insensitively."""
    if not query:
        return list(rows)
    needle = query.lower()
    return [
        row for row in rows
        if any(needle in str(value).lower() for value in row.values())
    ]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def sort_rows(
    rows: Sequence[Dict[str, Any]],
    key: Optional[str],
    descending: bool = False,
) -> List[Dict[str, Any]]:
    """Sort rows by one column.

    Amount-like columns (name containing "monto" or "total") compare as
    parsed integers, columns holding only integers (``_originalIndex``)
    compare numerically, everything else as text. The sort is stable.
    """
    if not key:
        return list(rows)

    if any(hint in key.lower() for hint in NUMERIC_SORT_HINTS):
        sort_key = lambda row: parse_amount(row.get(key) or "")
    elif rows and all(_is_int(row.get(key)) for row in rows):
        sort_key = lambda row: row.get(key)
    else:
        sort_key = lambda row: str(row.get(key) or "")
    return sorted(rows, key=sort_key, reverse=descending)


@dataclass
class Page:
    items: List[Dict[str, Any]]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0

    def to_dict(self) -> dict:
        return {
            "items": self.items,
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
        }


def paginate(rows: Sequence[Dict[str, Any]], page: int = 1, page_size: int = PAGE_SIZE) -> Page:
    """Slice one 1-based page out of ``rows``. Out-of-range pages are empty."""
    page = max(page, 1)
    start = (page - 1) * page_size
    return Page(
        items=list(rows[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=len(rows),
    )


def table_view(
    rows: Sequence[Dict[str, Any]],
    query: Optional[str] = None,
    sort: Optional[str] = None,
    descending: bool = False,
    page: int = 1,
    page_size: int = PAGE_SIZE,
) -> Page:
    """Search, then sort, then paginate."""
    return paginate(sort_rows(search_rows(rows, query), sort, descending), page, page_size)
