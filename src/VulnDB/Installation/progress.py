# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.progress",
#   "purpose": "Thread-safe progress counters, stage labels, and the per-operation monitor",
#   "sections": [
#     {"id": "progress", "name": "Progress", "anchor": "PRG", "kind": "api"},
#     {"id": "stage", "name": "AtomicStage", "anchor": "STG", "kind": "api"},
#     {"id": "aggregate", "name": "AggregateProgress & StagedProgress", "anchor": "AGG", "kind": "api"},
#     {"id": "monitor", "name": "Monitor", "anchor": "MON", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Progress reporting for database updates and imports.

Each ``update``/``import`` operation owns a :class:`Monitor` holding two
independent counters (download and import) plus a stage label.  The combined
view is handed once to an optional listener callback at the start of the
operation; the listener keeps the object and polls it from its own thread
while downloaders advance the counters from theirs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, Optional, Sequence, Type

__all__ = [
    "Progress",
    "AtomicStage",
    "AggregateProgress",
    "StagedProgress",
    "ProgressSnapshot",
    "ProgressListener",
    "Monitor",
]

logger = logging.getLogger("VulnDB.Installation.progress")


class Progress:
    """Thread-safe manual progress counter.

    Examples:
        >>> progress = Progress(size=10)
        >>> progress.add(4)
        >>> progress.current
        4
        >>> progress.set_completed()
        >>> progress.completed
        True
    """

    def __init__(self, size: int = 1) -> None:
        self._lock = threading.Lock()
        self._current = 0
        self._size = size
        self._completed = False
        self._error: Optional[BaseException] = None

    @property
    def current(self) -> int:
        with self._lock:
            return self._current

    @property
    def size(self) -> int:
        with self._lock:
            return self._size

    @property
    def completed(self) -> bool:
        with self._lock:
            return self._completed

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error

    def set(self, current: int) -> None:
        with self._lock:
            self._current = current

    def add(self, delta: int) -> None:
        with self._lock:
            self._current += delta

    def set_size(self, size: int) -> None:
        with self._lock:
            self._size = size

    def set_error(self, error: BaseException) -> None:
        with self._lock:
            self._error = error

    def set_completed(self) -> None:
        """Mark the counter as finished; the current value snaps to the size."""

        with self._lock:
            self._completed = True
            if self._size > 0:
                self._current = max(self._current, self._size)


class AtomicStage:
    """Thread-safe stage label."""

    def __init__(self, stage: str = "") -> None:
        self._lock = threading.Lock()
        self._stage = stage

    def set(self, stage: str) -> None:
        with self._lock:
            self._stage = stage

    def get(self) -> str:
        with self._lock:
            return self._stage


class AggregateProgress:
    """Combined read-only view over several :class:`Progress` counters."""

    def __init__(self, parts: Sequence[Progress]) -> None:
        self._parts = tuple(parts)

    @property
    def current(self) -> int:
        return sum(part.current for part in self._parts)

    @property
    def size(self) -> int:
        return sum(part.size for part in self._parts)

    @property
    def completed(self) -> bool:
        return all(part.completed for part in self._parts)

    @property
    def fraction(self) -> float:
        size = self.size
        if size <= 0:
            return 1.0 if self.completed else 0.0
        return min(1.0, self.current / size)


@dataclass(frozen=True)
class ProgressSnapshot:
    stage: str
    current: int
    size: int
    completed: bool


class StagedProgress:
    """Stage label plus combined progress, as seen by observers."""

    def __init__(self, stage: AtomicStage, progress: AggregateProgress) -> None:
        self._stage = stage
        self._progress = progress

    @property
    def stage(self) -> str:
        return self._stage.get()

    @property
    def progress(self) -> AggregateProgress:
        return self._progress

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            stage=self.stage,
            current=self._progress.current,
            size=self._progress.size,
            completed=self._progress.completed,
        )


ProgressListener = Callable[[StagedProgress], None]


class Monitor:
    """Per-operation progress monitor.

    Used as a context manager: leaving the ``with`` block marks both counters
    complete regardless of how the operation ended.
    """

    def __init__(self, listener: Optional[ProgressListener] = None) -> None:
        self.stage = AtomicStage("")
        self.download_progress = Progress(1)
        self.import_progress = Progress(1)
        self.staged = StagedProgress(
            self.stage, AggregateProgress((self.download_progress, self.import_progress))
        )
        self._publish(listener)

    def _publish(self, listener: Optional[ProgressListener]) -> None:
        if listener is None:
            return
        try:
            listener(self.staged)
        except Exception as exc:  # listener failures never affect the operation
            logger.warning(
                "progress listener failed",
                extra={"stage": "progress", "error": str(exc)},
            )

    def set(self, stage: str) -> None:
        self.stage.set(stage)
        logger.debug(stage, extra={"stage": "progress"})

    def set_completed(self) -> None:
        self.download_progress.set_completed()
        self.import_progress.set_completed()

    def __enter__(self) -> "Monitor":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc is not None:
            self.import_progress.set_error(exc)
        self.set_completed()
