import logging
from typing import Optional, Sequence

from .bonds import BondSync
from .client import PasardanaClient
from .config import SyncSettings
from .db import init_db
from .funds import FundSync
from .orchestrator import CycleReport, SyncOrchestrator
from .stocks import StockSync
from .workers import FetchWorkerPool

logger = logging.getLogger(__name__)

FAMILY_TYPES = {
    "stock": StockSync,
    "bond": BondSync,
    "fund": FundSync,
}


class SyncService:
    """
    Facade that wires the sync engine from settings.

    Owns the HTTP client and the worker pool for its whole lifetime;
    `shutdown()` drains the pool and closes the client.
    - run_once: one full cycle (or a subset of families)
    - status: running flag and the last cycle report
    """

    def __init__(
        self,
        settings: SyncSettings,
        client: Optional[PasardanaClient] = None,
        pool: Optional[FetchWorkerPool] = None,
    ):
        self.settings = settings
        init_db(settings.db_path)
        self.client = client or PasardanaClient(
            settings.username,
            settings.password,
            base_url=settings.base_url,
            timeout_s=settings.timeout_s,
        )
        self.pool = pool or FetchWorkerPool(settings.pool_size)
        families = [FAMILY_TYPES[name](self.client, self.pool, db_path=settings.db_path) for name in settings.families]
        self.orchestrator = SyncOrchestrator(families)

    def run_once(self, families: Optional[Sequence[str]] = None) -> CycleReport:
        report = self.orchestrator.run_cycle(families)
        if not report.skipped and report.failed_stages:
            failed = ", ".join(f"{s.family}/{s.stage}" for s in report.failed_stages)
            logger.warning(f"Sync cycle finished with failed stages: {failed}")
        return report

    def status(self) -> dict:
        last = self.orchestrator.last_report
        return {
            "running": self.orchestrator.running,
            "families": list(self.settings.families),
            "pool_size": self.pool.max_workers,
            "last_cycle": last.as_dict() if last else None,
        }

    def shutdown(self) -> None:
        self.pool.shutdown(wait=True)
        self.client.close()

    def __enter__(self) -> "SyncService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
