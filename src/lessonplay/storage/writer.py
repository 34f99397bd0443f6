"""Asynchronous snapshot persistence.

SnapshotWriter takes snapshots off the session's hot path:

- at most one write per session is in flight at a time
- while a write is in flight, only the newest waiting snapshot is kept;
  older waiting snapshots are dropped (superseded) without being written
- a failed write is reported as a PersistenceWarning through the failure
  callback and the log, never raised into the session

Writes run on a concurrent.futures executor (one worker by default), or
inline in the caller's thread when no executor is given.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Optional

from lessonplay.errors import PersistenceWarning
from lessonplay.storage.repository import SnapshotRepository

logger = logging.getLogger(__name__)

FailureCallback = Callable[[PersistenceWarning], None]


@dataclass
class _PendingWrite:
    snapshot: dict
    terminal: bool


class SnapshotWriter:
    """Single-flight, superseding snapshot writer.

    Attributes:
        writes_completed: Number of snapshots successfully written
        writes_failed: Number of failed writes
        writes_superseded: Number of queued snapshots replaced before writing
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        executor: Optional[Executor] = None,
        on_failure: Optional[FailureCallback] = None,
    ):
        self.repository = repository
        self._executor = executor
        self._on_failure = on_failure
        self._lock = threading.RLock()
        self._in_flight: dict[str, tuple[Optional[Future], bool]] = {}
        self._pending: dict[str, _PendingWrite] = {}
        self.writes_completed = 0
        self.writes_failed = 0
        self.writes_superseded = 0

    @classmethod
    def threaded(
        cls,
        repository: SnapshotRepository,
        on_failure: Optional[FailureCallback] = None,
    ) -> "SnapshotWriter":
        """Writer with its own one-worker thread pool."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lessonplay-snapshots")
        return cls(repository, executor=executor, on_failure=on_failure)

    def submit(self, session_id: str, snapshot: dict, terminal: bool = False) -> None:
        """Queue a snapshot for writing.

        Args:
            session_id: Session the snapshot belongs to
            snapshot: Snapshot dict (must not be mutated afterwards)
            terminal: Whether this snapshot records a completed session
        """
        with self._lock:
            if session_id in self._in_flight:
                if session_id in self._pending:
                    self.writes_superseded += 1
                    terminal = terminal or self._pending[session_id].terminal
                self._pending[session_id] = _PendingWrite(snapshot, terminal)
                return
            self._start(session_id, _PendingWrite(snapshot, terminal))

    def in_flight(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    def terminal_write_in_flight(self, session_id: str) -> bool:
        """Whether a write recording session completion has not finished yet."""
        with self._lock:
            current = self._in_flight.get(session_id)
            pending = self._pending.get(session_id)
            return bool((current and current[1]) or (pending and pending.terminal))

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every queued snapshot has been written (or failed)."""
        while True:
            with self._lock:
                futures = [f for f, _ in self._in_flight.values() if f is not None]
            if not futures:
                return
            wait(futures, timeout=timeout)
            if timeout is not None:
                return

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _start(self, session_id: str, write: _PendingWrite) -> None:
        if self._executor is None:
            self._in_flight[session_id] = (None, write.terminal)
            while write is not None:
                self._write(session_id, write.snapshot)
                write = self._pending.pop(session_id, None)
                if write is not None:
                    self._in_flight[session_id] = (None, write.terminal)
            self._in_flight.pop(session_id, None)
            return

        future = self._executor.submit(self._write, session_id, write.snapshot)
        self._in_flight[session_id] = (future, write.terminal)
        future.add_done_callback(lambda _: self._on_done(session_id))

    def _on_done(self, session_id: str) -> None:
        with self._lock:
            self._in_flight.pop(session_id, None)
            write = self._pending.pop(session_id, None)
            if write is not None:
                self._start(session_id, write)

    def _write(self, session_id: str, snapshot: dict) -> None:
        try:
            self.repository.save_snapshot(session_id, snapshot)
        except Exception as e:
            self.writes_failed += 1
            warning = PersistenceWarning(session_id, e)
            logger.warning(str(warning))
            if self._on_failure is not None:
                self._on_failure(warning)
            return
        self.writes_completed += 1
