import datetime as dt
import logging
from dataclasses import dataclass
from typing import Hashable, Iterable, List, Mapping, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Earliest plausible date per family when nothing is stored yet.
DEFAULT_START_DATES = {
    "stock": dt.date(1995, 1, 1),
    "bond": dt.date(2000, 1, 1),
    "fund": dt.date(2000, 1, 1),
}


@dataclass(frozen=True)
class FetchWindow:
    """Half-open date range [start, end) requested for one entity key."""

    start: dt.date
    end: dt.date

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    @property
    def days(self) -> int:
        return max(0, (self.end - self.start).days)


class WorkItem(NamedTuple):
    key: Hashable
    window: FetchWindow


def cycle_end(today: dt.date) -> dt.date:
    """Exclusive upper bound for a cycle started on `today` (captures same-day data)."""
    return today + dt.timedelta(days=1)


def resolve_window(max_date: Optional[dt.date], default_start: dt.date, today: dt.date) -> FetchWindow:
    start = max_date + dt.timedelta(days=1) if max_date is not None else default_start
    return FetchWindow(start=start, end=cycle_end(today))


def resolve_windows(
    keys: Iterable[Hashable],
    max_dates: Mapping[Hashable, dt.date],
    default_start: dt.date,
    today: dt.date,
) -> List[WorkItem]:
    """
    Build the work list for one time-series table.

    Keys already stored up to today get an empty window and are left out;
    that is the normal steady state, not an error.
    """
    items = []
    skipped = 0
    for key in keys:
        window = resolve_window(max_dates.get(key), default_start, today)
        if window.is_empty:
            skipped += 1
            continue
        items.append(WorkItem(key, window))
    if skipped:
        logger.debug(f"{skipped} keys already up to date, nothing to fetch")
    return items
