from typing import Iterable, List, TypeVar

from .models import DailyRecord

R = TypeVar("R", bound=DailyRecord)


def dedupe_daily(records: Iterable[R]) -> List[R]:
    """
    Collapse a fetched batch to one record per (entity key, date).

    The first occurrence wins and later duplicates are dropped, so input must
    be in provider-response order. Records without a key or a date cannot be
    stored and are dropped as well.
    """
    seen = set()
    result = []
    for record in records:
        if record.key is None or record.date is None:
            continue
        ident = (record.key, record.date)
        if ident in seen:
            continue
        seen.add(ident)
        result.append(record)
    return result
