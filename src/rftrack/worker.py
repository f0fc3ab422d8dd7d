"""Background execution of detection and prediction requests.

Work is submitted to a thread pool and returns a ``Future`` resolving to a
:class:`TaskResult`. Each request is stamped with a generation number that
increases monotonically per kind of task, so the consumer can tell whether a
result is still the newest one it asked for. Superseded work is never
cancelled; its result is simply ignored when it arrives.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

SIGNALS = "signals"
PREDICTIONS = "predictions"


@dataclass(frozen=True)
class TaskResult:
    """Outcome of a background task.

    Attributes:
        kind: Task category, e.g. ``"signals"`` or ``"predictions"``.
        generation: Request number within ``kind``, starting at 1.
        value: Whatever the task function returned.
    """
    kind: str
    generation: int
    value: Any


class TaskRunner:
    """Thread-pool runner that stamps each task with a generation number."""

    def __init__(self, max_workers: int = 2):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rftrack")
        self._issued: dict[str, int] = {}
        self._lock = threading.Lock()

    def _next_generation(self, kind: str) -> int:
        with self._lock:
            self._issued[kind] = self._issued.get(kind, 0) + 1
            return self._issued[kind]

    def current(self, kind: str) -> int:
        """Latest generation issued for ``kind``, or 0 if none."""
        with self._lock:
            return self._issued.get(kind, 0)

    def submit(self, kind: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run ``fn(*args, **kwargs)`` in the pool.

        Exceptions raised by ``fn`` surface from ``Future.result()``.
        """
        generation = self._next_generation(kind)
        logger.debug("Submitting %s task #%d", kind, generation)

        def run() -> TaskResult:
            return TaskResult(kind, generation, fn(*args, **kwargs))

        return self._pool.submit(run)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> TaskRunner:
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
