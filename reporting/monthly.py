"""Monthly breakdown of discrepancies."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from models.canonical import CanonicalRecord
from normalizers.normalize import month_key, parse_amount


@dataclass
class MonthlyBucket:
    count: int = 0
    total: int = 0


def aggregate_by_month(records: Iterable[CanonicalRecord]) -> List[Tuple[str, MonthlyBucket]]:
    """Group records by the month of ``fecha_val``, sorted by month key.

    Unparseable dates land in the "Desconocido" bucket, which sorts after
    the numeric keys.
    """
    grouped: Dict[str, MonthlyBucket] = {}
    for record in records:
        bucket = grouped.setdefault(month_key(record.fecha_val), MonthlyBucket())
        bucket.count += 1
        bucket.total += parse_amount(record.monto_val)
    return sorted(grouped.items(), key=lambda item: item[0])
