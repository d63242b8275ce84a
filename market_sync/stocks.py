import datetime as dt
import logging
from typing import List, Optional

from . import db
from .client import PasardanaClient, decode_strings
from .models import Stock, StockDaily, StockReportPayload
from .reports import DifferentialReportUpdater, build_report_rows, missing_periods
from .timeseries import DailySyncResult, DailyTable, stamp, sync_daily
from .upsert import apply_upserts, partition_upserts
from .watermark import DEFAULT_START_DATES, FetchWindow
from .workers import FetchWorkerPool

logger = logging.getLogger(__name__)

STOCK_LIST_PATH = "StockSearchResult/GetAll"
STOCK_DATA_PATH = "StockAPI/GetStockData"
REPORT_PERIODS_PATH = "StockAPI/GetStockReportPeriods"
REPORTS_PATH = "StockAPI/GetStockReports"

STOCK_DAILY = DailyTable(StockDaily, "code")


class StockSync:
    """Stocks: master list, daily prices, financial reports."""

    name = "stock"

    def __init__(self, client: PasardanaClient, pool: FetchWorkerPool, db_path: Optional[str] = None):
        self.client = client
        self.pool = pool
        self.db_path = db_path

    def stages(self, today: dt.date):
        return [
            ("stock", self.sync_stocks),
            ("stock daily", lambda: self.sync_daily(today)),
            ("stock report", self.sync_reports),
            ("stock report update", self.sync_report_updates),
        ]

    def sync_stocks(self) -> dict:
        stocks = self.client.get_many(
            STOCK_LIST_PATH,
            Stock,
            {"pageBegin": 1, "pageLength": 9000, "sortField": "Code", "sortOrder": "ASC"},
        )
        stocks = [s for s in stocks if s.code and s.code.strip()]
        logger.info(f"Found {len(stocks)} stocks")

        existing = db.existing_keys(Stock.TABLE, "code", db_path=self.db_path)
        plan = partition_upserts(stocks, existing)
        logger.info(f"Updating {len(plan.updates)} stocks and inserting {len(plan.inserts)} stocks")
        apply_upserts(plan, db_path=self.db_path)
        return {"updated": len(plan.updates), "inserted": len(plan.inserts)}

    def fetch_daily(self, code: str, window: FetchWindow) -> List[StockDaily]:
        return self.client.get_many(
            STOCK_DATA_PATH,
            StockDaily,
            {"code": code, "datestart": window.start.isoformat(), "dateend": window.end.isoformat()},
        )

    def fill_identity(self, code: str, records: List[StockDaily], today: dt.date) -> List[StockDaily]:
        filled = [r if r.code is not None else r.model_copy(update={"code": code}) for r in records]
        return stamp(filled, created_at=today)

    def sync_daily(self, today: dt.date) -> dict:
        codes = sorted(db.existing_keys(Stock.TABLE, "code", db_path=self.db_path))
        logger.info(f"Found {len(codes)} stocks to sync daily data for")
        result: DailySyncResult = sync_daily(
            self.pool,
            STOCK_DAILY,
            codes,
            self.fetch_daily,
            DEFAULT_START_DATES["stock"],
            today,
            prepare=lambda code, records: self.fill_identity(code, records, today),
            db_path=self.db_path,
        )
        return result.as_dict()

    def report_periods(self) -> List[str]:
        periods = decode_strings(self.client.get(REPORT_PERIODS_PATH))
        logger.info(f"Found {len(periods)} report periods")
        return periods

    def fetch_reports(self, code: str, periods: List[str]) -> List[StockReportPayload]:
        return self.client.get_many(REPORTS_PATH, StockReportPayload, {"codes": code, "periods": ",".join(periods)})

    def sync_reports(self) -> dict:
        """Insert reports for periods a code has upstream but not in storage."""
        codes = sorted(db.existing_keys(Stock.TABLE, "code", db_path=self.db_path))
        periods = self.report_periods()
        current = db.current_report_periods(db_path=self.db_path)
        logger.info(f"Found stored reports for {len(current)} stock codes")

        work = []
        for code in codes:
            missing = missing_periods(periods, current.get(code, ()))
            if missing:
                work.append((code, missing))

        def task(item) -> int:
            code, missing = item
            logger.debug(f"Fetching {len(missing)} missing report periods for code {code}")
            written = 0
            for payload in self.fetch_reports(code, missing):
                rows = build_report_rows(payload)
                written += db.insert_records(rows, db_path=self.db_path)
            return written

        outcome = self.pool.run(work, task, label="stock report fetch for")
        return {
            "codes": len(work),
            "failed": len(outcome.failed),
            "rows": sum(n for _, n in outcome.completed),
        }

    def sync_report_updates(self) -> dict:
        """Rewrite stored reports whose upstream LastUpdate changed."""
        codes = sorted(db.existing_keys(Stock.TABLE, "code", db_path=self.db_path))
        periods = self.report_periods()
        stored = db.report_update_dates(db_path=self.db_path)
        logger.info(f"Found stored report dates for {len(stored)} stock codes")
        updater = DifferentialReportUpdater(stored, db_path=self.db_path)

        # Codes without stored reports have nothing to diff against.
        work = [code for code in codes if code in stored] if periods else []

        def task(code: str):
            return updater.apply(code, periods, self.fetch_reports(code, periods))

        outcome = self.pool.run(work, task, label="stock report update for")
        updated = sum(len(o.updated) for _, o in outcome.completed)
        failed_writes = sum(len(o.failed) for _, o in outcome.completed)
        return {
            "codes": len(work),
            "failed": len(outcome.failed),
            "updated": updated,
            "failed_writes": failed_writes,
        }
