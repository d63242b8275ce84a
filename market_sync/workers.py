import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Tuple, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 20

T = TypeVar("T")


@dataclass
class PoolResult(Generic[T]):
    completed: List[Tuple[T, Any]] = field(default_factory=list)
    failed: List[T] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.failed)


class FetchWorkerPool:
    """
    Bounded pool of worker threads shared by every stage of a sync cycle.

    `run` is a barrier: it returns only after every submitted item has
    finished or failed. A failing item is logged and recorded; it never
    cancels its siblings and is not retried in the same call.

    The pool owns its executor. `shutdown()` (or leaving the `with` block)
    waits for running items to drain; nothing can be submitted afterwards.
    """

    def __init__(self, max_workers: int = DEFAULT_POOL_SIZE, name: str = "sync-worker"):
        self.max_workers = max(1, int(max_workers))
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def run(self, items: Iterable[T], task: Callable[[T], Any], label: str = "work item") -> PoolResult[T]:
        with self._lock:
            if self._closed:
                raise RuntimeError("FetchWorkerPool is shut down")
            futures = {self._executor.submit(task, item): item for item in items}

        result: PoolResult[T] = PoolResult()
        for future in as_completed(futures):
            item = futures[future]
            try:
                value = future.result()
            except Exception as e:
                logger.warning(f"Failed {label} {_describe(item)}: {e}")
                result.failed.append(item)
                continue
            result.completed.append((item, value))
        return result

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "FetchWorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)


def _describe(item: Any) -> str:
    key = getattr(item, "key", None)
    return str(key if key is not None else item)
