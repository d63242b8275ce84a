import datetime as dt
import logging
from typing import Dict, List, Optional

from . import db
from .client import PasardanaClient, PasardanaError
from .models import Bond, BondDaily, BondIdEntry
from .timeseries import DailyTable, sync_daily
from .upsert import apply_upserts, partition_upserts
from .watermark import DEFAULT_START_DATES, FetchWindow
from .workers import FetchWorkerPool

logger = logging.getLogger(__name__)

BOND_PROFILE_PATH = "BondAPI/GetBondProfile"
BOND_ID_PATH = "bondAPI/GetBondsId"
BOND_DATA_PATH = "BondAPI/GetBondDataAddition"

BOND_DAILY = DailyTable(BondDaily, "bond_code")


def build_bond_id_map(entries: List[BondIdEntry]) -> Dict[str, int]:
    """Bond code -> numeric bond id; the first id seen for a code wins."""
    result: Dict[str, int] = {}
    for entry in entries:
        code = entry.bond_code
        if not code or not code.strip() or entry.bond_id is None:
            continue
        result.setdefault(code, entry.bond_id)
    return result


class BondSync:
    """Bonds: profiles (stamped with bond ids) and daily trading data."""

    name = "bond"

    def __init__(self, client: PasardanaClient, pool: FetchWorkerPool, db_path: Optional[str] = None):
        self.client = client
        self.pool = pool
        self.db_path = db_path
        self.bond_ids: Dict[str, int] = {}

    def stages(self, today: dt.date):
        return [
            ("bonds", self.sync_bonds),
            ("bond daily", lambda: self.sync_daily(today)),
        ]

    def fetch_bond_ids(self) -> Dict[str, int]:
        """Missing ids only degrade the data, so a failed lookup is not fatal."""
        try:
            entries = self.client.get_many(BOND_ID_PATH, BondIdEntry)
        except PasardanaError as e:
            logger.warning(f"Failed to fetch bond ids: {e}")
            return {}
        result = build_bond_id_map(entries)
        logger.info(f"Fetched {len(result)} bond ids")
        return result

    def sync_bonds(self) -> dict:
        # Refreshed here so the daily stage sees the same mapping.
        self.bond_ids = self.fetch_bond_ids()

        bonds = self.client.get_many(BOND_PROFILE_PATH, Bond, {"all": "all"})
        logger.info(f"Found {len(bonds)} bonds")

        prepared = []
        for bond in bonds:
            if not bond.code or not bond.code.strip():
                logger.debug("Skipping bond without code")
                continue
            bond_id = self.bond_ids.get(bond.code)
            if bond_id is None:
                logger.debug(f"No bond id found for code {bond.code}")
            else:
                bond = bond.model_copy(update={"bond_id": bond_id})
            prepared.append(bond)

        existing = db.existing_keys(Bond.TABLE, "code", db_path=self.db_path)
        logger.info(f"Found {len(existing)} existing bonds")
        plan = partition_upserts(prepared, existing)
        logger.info(f"Updating {len(plan.updates)} bonds and inserting {len(plan.inserts)} bonds")
        apply_upserts(plan, db_path=self.db_path)
        return {"updated": len(plan.updates), "inserted": len(plan.inserts)}

    def fetch_daily(self, code: str, window: FetchWindow) -> List[BondDaily]:
        return self.client.get_many(
            BOND_DATA_PATH,
            BondDaily,
            {
                "code": code,
                "datestart": window.start.isoformat(),
                "dateend": window.end.isoformat(),
                "complete": "complete",
            },
        )

    def fill_identity(self, code: str, records: List[BondDaily]) -> List[BondDaily]:
        bond_id = self.bond_ids.get(code)
        filled = []
        for record in records:
            update = {}
            if record.bond_code is None:
                update["bond_code"] = code
            if record.bond_id is None and bond_id is not None:
                update["bond_id"] = bond_id
            filled.append(record.model_copy(update=update) if update else record)
        return filled

    def sync_daily(self, today: dt.date) -> dict:
        codes = sorted(db.existing_keys(Bond.TABLE, "code", db_path=self.db_path))
        if not codes:
            logger.info("No bond codes found to sync bond daily data")
            return {"planned": 0}
        result = sync_daily(
            self.pool,
            BOND_DAILY,
            codes,
            self.fetch_daily,
            DEFAULT_START_DATES["bond"],
            today,
            prepare=self.fill_identity,
            db_path=self.db_path,
        )
        return result.as_dict()
