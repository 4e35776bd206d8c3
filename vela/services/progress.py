"""Lock-guarded transfer progress, written by one worker, polled by the UI."""

import enum
import threading
from dataclasses import dataclass
from typing import Optional


class TransferState(enum.Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressSnapshot:
    state: TransferState
    error: Optional[str]
    current_file: str
    bytes_done: int
    bytes_total: int
    files_done: int
    files_total: int

    @property
    def is_terminal(self) -> bool:
        return self.state is not TransferState.RUNNING

    @property
    def file_fraction(self) -> Optional[float]:
        """0–1 progress of the current file; None when the size is unknown."""
        if self.bytes_total <= 0:
            return None
        return min(max(self.bytes_done / self.bytes_total, 0.0), 1.0)

    @property
    def overall_fraction(self) -> float:
        """0–1 progress by file count."""
        if self.files_total <= 0:
            return 1.0
        return min(max(self.files_done / self.files_total, 0.0), 1.0)

    def label(self) -> str:
        pct = int(self.overall_fraction * 100)
        name = self.current_file or "…"
        return f"{name} {self.files_done}/{self.files_total} ({pct}%)"


class ProgressMonitor:
    """Shared progress record for one batch.

    The transfer worker is the only writer. ``DONE`` and ``FAILED`` are
    write-once: after either is set every further write is dropped.
    """

    def __init__(self, files_total: int = 1):
        self._lock = threading.Lock()
        self._state = TransferState.RUNNING
        self._error = None
        self._current_file = ""
        self._bytes_done = 0
        self._bytes_total = 0
        self._files_done = 0
        self._files_total = files_total

    # ── Reader side ──────────────────────────────────────────────────────────

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                state=self._state,
                error=self._error,
                current_file=self._current_file,
                bytes_done=self._bytes_done,
                bytes_total=self._bytes_total,
                files_done=self._files_done,
                files_total=self._files_total,
            )

    @property
    def state(self) -> TransferState:
        with self._lock:
            return self._state

    @property
    def is_failed(self) -> bool:
        return self.state is TransferState.FAILED

    # ── Writer side (transfer worker) ────────────────────────────────────────

    def set_files_total(self, total: int):
        with self._lock:
            if self._state is TransferState.RUNNING:
                self._files_total = total

    def begin_file(self, name: str, bytes_total: int):
        with self._lock:
            if self._state is TransferState.RUNNING:
                self._current_file = name
                self._bytes_done = 0
                self._bytes_total = max(bytes_total, 0)

    def advance(self, nbytes: int):
        with self._lock:
            if self._state is not TransferState.RUNNING:
                return
            done = self._bytes_done + nbytes
            if self._bytes_total > 0:
                done = min(done, self._bytes_total)
            self._bytes_done = done

    def finish_file(self):
        with self._lock:
            if self._state is TransferState.RUNNING:
                self._files_done += 1

    def mark_done(self):
        """Set DONE unless the batch already reached a terminal state."""
        with self._lock:
            if self._state is TransferState.RUNNING:
                self._state = TransferState.DONE

    def mark_failed(self, message: str):
        with self._lock:
            if self._state is TransferState.RUNNING:
                self._state = TransferState.FAILED
                self._error = message
