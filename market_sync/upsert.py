import logging
from dataclasses import dataclass
from typing import AbstractSet, Generic, Iterable, Optional, Tuple, TypeVar

from . import db
from .models import ReferenceRecord

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ReferenceRecord)


@dataclass(frozen=True)
class UpsertPlan(Generic[R]):
    updates: Tuple[R, ...]
    inserts: Tuple[R, ...]


def partition_upserts(records: Iterable[R], existing_keys: AbstractSet) -> UpsertPlan[R]:
    """
    Split a reference batch into updates (key already stored) and inserts.

    Membership is checked against a snapshot taken once per stage. A key
    inserted by another writer after the snapshot still lands in `inserts`;
    the duplicate-safe insert ignores it and the next cycle updates it.
    """
    updates = []
    inserts = []
    for record in records:
        if record.key in existing_keys:
            updates.append(record)
        else:
            inserts.append(record)
    return UpsertPlan(updates=tuple(updates), inserts=tuple(inserts))


def apply_upserts(plan: UpsertPlan, db_path: Optional[str] = None) -> None:
    """One bulk update and one bulk insert."""
    if plan.updates:
        db.update_records(plan.updates, db_path=db_path)
    if plan.inserts:
        db.insert_records(plan.inserts, db_path=db_path)
