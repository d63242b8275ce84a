import datetime as dt
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    family: str
    stage: str
    started_at: dt.datetime
    finished_at: Optional[dt.datetime] = None
    ok: bool = False
    error: Optional[str] = None
    detail: dict = field(default_factory=dict)

    @property
    def duration(self) -> dt.timedelta:
        return (self.finished_at or self.started_at) - self.started_at

    def as_dict(self) -> dict:
        return {
            "family": self.family,
            "stage": self.stage,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "seconds": round(self.duration.total_seconds(), 3),
            "ok": self.ok,
            "error": self.error,
            "detail": self.detail,
        }


@dataclass
class CycleReport:
    started_at: dt.datetime
    finished_at: Optional[dt.datetime] = None
    skipped: bool = False
    stages: List[StageResult] = field(default_factory=list)

    @property
    def failed_stages(self) -> List[StageResult]:
        return [s for s in self.stages if not s.ok]

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "stages": [s.as_dict() for s in self.stages],
        }


def log_end_time(event: str, started_at: dt.datetime, finished_at: dt.datetime) -> None:
    duration = finished_at - started_at
    minutes, seconds = divmod(int(duration.total_seconds()), 60)
    logger.info(f"Finished syncing {event} with time spent: {minutes} minutes {seconds} seconds")


class SyncOrchestrator:
    """
    Runs one synchronization cycle across entity families.

    Within a family the stages run strictly in order (reference data, then
    time series, then differential updates). A failing stage is logged and
    recorded; the remaining stages and families still run.

    Only one cycle runs at a time: a trigger that arrives while a cycle is in
    flight returns a skipped report immediately.
    """

    def __init__(self, families: Sequence, clock: Callable[[], dt.datetime] = dt.datetime.now):
        self.families = list(families)
        self._clock = clock
        self._run_lock = threading.Lock()
        self.last_report: Optional[CycleReport] = None

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run_cycle(self, families: Optional[Sequence[str]] = None) -> CycleReport:
        started_at = self._clock()
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Sync cycle already running; skipping this trigger")
            return CycleReport(started_at=started_at, finished_at=started_at, skipped=True)

        try:
            report = CycleReport(started_at=started_at)
            today = started_at.date()
            logger.info(f"Starting sync cycle for {today}")
            for family in self.families:
                if families is not None and family.name not in families:
                    continue
                self._run_family(family, today, report)
            report.finished_at = self._clock()
            log_end_time("cycle", report.started_at, report.finished_at)
            self.last_report = report
            return report
        finally:
            self._run_lock.release()

    def _run_family(self, family, today: dt.date, report: CycleReport) -> None:
        try:
            stages = family.stages(today)
        except Exception as e:
            logger.error(f"Failed to plan {family.name} stages: {e}", exc_info=True)
            report.stages.append(StageResult(family.name, "plan", self._clock(), self._clock(), False, str(e)))
            return

        for stage_name, run in stages:
            result = StageResult(family=family.name, stage=stage_name, started_at=self._clock())
            logger.info(f"Starting to sync {stage_name}")
            try:
                detail = run()
            except Exception as e:
                logger.error(f"Failed to sync {stage_name}: {e}", exc_info=True)
                result.error = str(e)
            else:
                result.ok = True
                result.detail = detail or {}
            result.finished_at = self._clock()
            log_end_time(stage_name, result.started_at, result.finished_at)
            report.stages.append(result)
