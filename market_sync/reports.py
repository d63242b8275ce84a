"""
Stock report handling: missing-period inserts and differential updates.

A stored (code, period) report is in one of three states:

- UNKNOWN: nothing stored yet. Filled by the insert-only missing-period path.
- UP_TO_DATE: stored last_update date equals the remote LastUpdate date.
- STALE: the dates differ. Every (property_id, value) of the pair is
  rewritten in one batched update; on failure the pair stays stale and is
  retried next cycle.
"""
import datetime as dt
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import db
from .models import ReportValueUpdate, StockReport, StockReportPayload

logger = logging.getLogger(__name__)


class ReportState(str, Enum):
    UNKNOWN = "unknown"
    UP_TO_DATE = "up_to_date"
    STALE = "stale"


def classify_report(stored: Optional[dt.date], remote: Optional[dt.datetime]) -> ReportState:
    """Compare at date granularity; a missing remote marker counts as up to date."""
    if stored is None:
        return ReportState.UNKNOWN
    if remote is None:
        return ReportState.UP_TO_DATE
    remote_date = remote.date() if isinstance(remote, dt.datetime) else remote
    return ReportState.UP_TO_DATE if stored == remote_date else ReportState.STALE


def missing_periods(remote_periods: Sequence[str], current_periods: Iterable[str]) -> List[str]:
    """Remote periods not stored yet, in remote order."""
    current = set(current_periods)
    return [p for p in remote_periods if p not in current]


def build_report_rows(payload: StockReportPayload) -> List[StockReport]:
    return [
        StockReport(
            code=payload.code,
            period=payload.period,
            property_id=detail.property_id,
            value=detail.value,
            last_update=payload.last_update,
        )
        for detail in payload.details
    ]


def build_report_updates(payload: StockReportPayload) -> List[ReportValueUpdate]:
    return [
        ReportValueUpdate(
            code=payload.code,
            period=payload.period,
            property_id=detail.property_id,
            value=detail.value,
            last_update=payload.last_update,
        )
        for detail in payload.details
    ]


def find_payload(payloads: Iterable[StockReportPayload], code: str, period: str) -> Optional[StockReportPayload]:
    code, period = code.lower(), period.lower()
    for payload in payloads:
        if payload.code.lower() == code and payload.period.lower() == period:
            return payload
    return None


@dataclass
class ReportUpdateOutcome:
    updated: List[Tuple[str, str]] = field(default_factory=list)
    up_to_date: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class DifferentialReportUpdater:
    """
    Rewrites stored report values whose upstream LastUpdate moved.

    `stored_dates` is the read-only {code: {period: date}} snapshot taken once
    per stage and shared by all workers.
    """

    def __init__(
        self,
        stored_dates: Mapping[str, Mapping[str, dt.date]],
        writer: Optional[Callable[[Sequence[ReportValueUpdate]], object]] = None,
        db_path: Optional[str] = None,
    ):
        self._stored_dates = stored_dates
        self._writer = writer or (lambda updates: db.update_report_values(updates, db_path=db_path))

    def stored_date(self, code: str, period: str) -> Optional[dt.date]:
        return self._stored_dates.get(code, {}).get(period)

    def apply(self, code: str, periods: Sequence[str], payloads: Sequence[StockReportPayload]) -> ReportUpdateOutcome:
        outcome = ReportUpdateOutcome()
        for period in periods:
            payload = find_payload(payloads, code, period)
            if payload is None or payload.last_update is None:
                continue
            stored = self.stored_date(code, period)
            state = classify_report(stored, payload.last_update)
            if state is ReportState.UNKNOWN:
                continue
            if state is ReportState.UP_TO_DATE:
                logger.debug(f"Skipping stock reports for code {code} period {period}, up to date {stored}")
                outcome.up_to_date.append((code, period))
                continue

            logger.debug(
                f"Updating stock reports for code {code} period {period} "
                f"from {stored} to {payload.last_update.date()}"
            )
            updates = build_report_updates(payload)
            try:
                self._writer(updates)
            except Exception as e:
                logger.error(f"Failed to update stock report for code {payload.code} period {payload.period}: {e}")
                outcome.failed.append((code, period))
                continue
            outcome.updated.append((code, period))
        return outcome

