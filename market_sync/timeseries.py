import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, List, Optional, Sequence, Type

from . import db
from .dedup import dedupe_daily
from .models import DailyRecord
from .watermark import FetchWindow, WorkItem, resolve_windows
from .workers import FetchWorkerPool

logger = logging.getLogger(__name__)

Fetch = Callable[[Hashable, FetchWindow], Sequence[DailyRecord]]
Prepare = Callable[[Hashable, Sequence[DailyRecord]], Sequence[DailyRecord]]


@dataclass(frozen=True)
class DailyTable:
    """A time-series table and how its watermark is keyed."""

    model: Type[DailyRecord]
    key_column: str

    @property
    def table(self) -> str:
        return self.model.TABLE


@dataclass
class DailySyncResult:
    planned: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: int = 0
    rows: int = 0

    def as_dict(self) -> dict:
        return {
            "planned": self.planned,
            "skipped": self.skipped,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rows": self.rows,
        }


def sync_daily(
    pool: FetchWorkerPool,
    target: DailyTable,
    keys: Iterable[Hashable],
    fetch: Fetch,
    default_start: dt.date,
    today: dt.date,
    prepare: Optional[Prepare] = None,
    db_path: Optional[str] = None,
) -> DailySyncResult:
    """
    Fetch and store everything missing from `target` for each key.

    Watermarks come from one MAX(date) query; each key is fetched, stamped,
    deduplicated and inserted on a worker. A key whose fetch or write fails
    keeps its watermark and is picked up by the next cycle.
    """
    keys = list(keys)
    max_dates = db.max_date_per_key(target.table, target.key_column, db_path=db_path)
    logger.info(f"Found {len(max_dates)} keys with stored {target.table} data")

    items = resolve_windows(keys, max_dates, default_start, today)
    result = DailySyncResult(planned=len(items), skipped=len(keys) - len(items))

    def task(item: WorkItem) -> int:
        logger.debug(f"Fetching {target.table} for {item.key} from {item.window.start} to {item.window.end}")
        records = list(fetch(item.key, item.window))
        if prepare is not None:
            records = list(prepare(item.key, records))
        unique = dedupe_daily(records)
        if not unique:
            return 0
        written = db.insert_records(unique, db_path=db_path)
        logger.debug(f"Inserted {written} {target.table} rows for {item.key}")
        return written

    outcome = pool.run(items, task, label=f"{target.table} fetch for")
    result.succeeded = len(outcome.completed)
    result.failed = len(outcome.failed)
    result.rows = sum(n for _, n in outcome.completed)
    logger.info(
        f"{target.table}: {result.succeeded} keys synced, {result.failed} failed, "
        f"{result.skipped} up to date, {result.rows} rows written"
    )
    return result


def stamp(records: Sequence[DailyRecord], **values) -> List[DailyRecord]:
    """Return copies of `records` with `values` set."""
    return [r.model_copy(update=values) for r in records]
