import datetime as dt
import logging
from typing import List, Optional, Type

from . import db
from .client import PasardanaClient
from .models import DailyRecord, Fund, FundAum, FundDaily, FundUnit
from .timeseries import DailyTable, sync_daily
from .upsert import apply_upserts, partition_upserts
from .watermark import DEFAULT_START_DATES, FetchWindow
from .workers import FetchWorkerPool

logger = logging.getLogger(__name__)

FUND_SEARCH_PATH = "FundAPI/SearchFund"

# (stage name, table, endpoint)
FUND_SERIES = (
    ("fund nav daily", DailyTable(FundDaily, "fund_id"), "FundAPI/GetFundNAVHistoricData"),
    ("fund aum daily", DailyTable(FundAum, "fund_id"), "FundAPI/GetFundAUMHistoricData"),
    ("fund unit daily", DailyTable(FundUnit, "fund_id"), "FundAPI/GetFundUPHistoricData"),
)


class FundSync:
    """Mutual funds: fund list, then NAV, AUM and unit history."""

    name = "fund"

    def __init__(self, client: PasardanaClient, pool: FetchWorkerPool, db_path: Optional[str] = None):
        self.client = client
        self.pool = pool
        self.db_path = db_path

    def stages(self, today: dt.date):
        stages = [("funds", self.sync_funds)]
        for stage_name, target, path in FUND_SERIES:
            stages.append((stage_name, self._series_stage(target, path, today)))
        return stages

    def _series_stage(self, target: DailyTable, path: str, today: dt.date):
        return lambda: self.sync_series(target, path, today)

    def sync_funds(self) -> dict:
        funds = self.client.get_many(FUND_SEARCH_PATH, Fund)
        funds = sorted((f for f in funds if f.id is not None and f.id > 0), key=lambda f: f.id)
        logger.info(f"Found {len(funds)} funds")

        existing = db.existing_keys(Fund.TABLE, "id", db_path=self.db_path)
        logger.info(f"Found {len(existing)} existing funds")
        plan = partition_upserts(funds, existing)
        logger.info(f"Updating {len(plan.updates)} funds and inserting {len(plan.inserts)} funds")
        apply_upserts(plan, db_path=self.db_path)
        return {"updated": len(plan.updates), "inserted": len(plan.inserts)}

    def fetch_series(self, model: Type[DailyRecord], path: str, fund_id: int, window: FetchWindow) -> List[DailyRecord]:
        return self.client.get_many(
            path,
            model,
            {"fundId": fund_id, "dateBegin": window.start.isoformat(), "dateEnd": window.end.isoformat()},
        )

    def sync_series(self, target: DailyTable, path: str, today: dt.date) -> dict:
        fund_ids = sorted(db.existing_keys(Fund.TABLE, "id", db_path=self.db_path))
        logger.info(f"Found {len(fund_ids)} funds to sync {target.table} for")

        def fetch(fund_id, window):
            return self.fetch_series(target.model, path, fund_id, window)

        def fill_fund_id(fund_id, records):
            return [r if r.fund_id is not None else r.model_copy(update={"fund_id": fund_id}) for r in records]

        result = sync_daily(
            self.pool,
            target,
            fund_ids,
            fetch,
            DEFAULT_START_DATES["fund"],
            today,
            prepare=fill_fund_id,
            db_path=self.db_path,
        )
        return result.as_dict()
