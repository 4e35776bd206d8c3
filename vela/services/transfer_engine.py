"""Batched upload/download on a dedicated worker with its own session."""

import enum
import logging
import os
import posixpath
import stat
import threading
from typing import Callable, List, Optional

from vela.models.file_entry import FileEntry
from vela.models.profile import Profile
from vela.services.errors import (
    LocalIOError,
    SftpError,
    TransferBusyError,
)
from vela.services.progress import ProgressMonitor, ProgressSnapshot
from vela.services.sftp_session import (
    REMOTE_ERRORS,
    TRANSFER_TIMEOUT,
    RemoteSession,
    download_file_to_path,
    remote_error,
    remote_is_dir,
    remote_join,
    upload_file_to_path,
)

log = logging.getLogger(__name__)


def _open_fresh(profile: Profile, password: Optional[str]) -> RemoteSession:
    return RemoteSession.connect(profile, password, timeout=TRANSFER_TIMEOUT)


class Direction(enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


# ── Upload ───────────────────────────────────────────────────────────────────

def upload_batch(
    profile: Profile,
    password: Optional[str],
    entries: List[FileEntry],
    source_dir: str,
    dest_dir: str,
    monitor: ProgressMonitor,
    connect: Callable = _open_fresh,
):
    """Upload ``entries`` from local ``source_dir`` into remote ``dest_dir``.

    Runs on the worker thread. Opens its own session; the first failure
    marks ``monitor`` FAILED and ends the batch.
    """
    session = None
    try:
        session = connect(profile, password)
        sftp = session.sftp
        for entry in entries:
            if monitor.is_failed:
                return
            local = os.path.join(source_dir, entry.name)
            if os.path.isdir(local):
                _upload_dir(sftp, local, remote_join(dest_dir, entry.name), monitor)
            else:
                _upload_file(sftp, local, remote_join(dest_dir, entry.name), monitor)
        monitor.mark_done()
        log.info("Upload of %d entries to %s finished", len(entries), dest_dir)
    except (SftpError, *REMOTE_ERRORS) as e:
        log.warning("Upload to %s failed: %s", dest_dir, e)
        monitor.mark_failed(str(e))
    except Exception as e:
        log.exception("Upload worker crashed")
        monitor.mark_failed(str(e) or e.__class__.__name__)
    finally:
        if session is not None:
            session.close()


def _upload_file(sftp, local: str, remote: str, monitor: ProgressMonitor):
    try:
        total = os.path.getsize(local)
    except OSError as e:
        raise LocalIOError(f"{local}: {e.strerror or e}") from e
    monitor.begin_file(os.path.basename(local), total)
    upload_file_to_path(sftp, local, remote, on_chunk=monitor.advance)
    monitor.finish_file()


def _ensure_remote_dir(sftp, path: str):
    """mkdir that treats an existing directory as success."""
    try:
        sftp.mkdir(path, 0o755)
    except REMOTE_ERRORS as e:
        if not remote_is_dir(sftp, path):
            raise remote_error(path, e) from e


def _upload_dir(sftp, local_dir: str, remote_dir: str, monitor: ProgressMonitor):
    _ensure_remote_dir(sftp, remote_dir)
    try:
        names = sorted(os.listdir(local_dir))
    except OSError as e:
        raise LocalIOError(f"{local_dir}: {e.strerror or e}") from e
    for name in names:
        local = os.path.join(local_dir, name)
        remote = remote_join(remote_dir, name)
        if os.path.isdir(local):
            _upload_dir(sftp, local, remote, monitor)
        else:
            _upload_file(sftp, local, remote, monitor)


# ── Download ─────────────────────────────────────────────────────────────────

def count_remote_files(sftp, path: str) -> int:
    """Recursive count of files below a remote path (stat failures count 0)."""
    try:
        st = sftp.stat(path)
    except OSError:
        return 0
    except REMOTE_ERRORS as e:
        raise remote_error(path, e) from e
    if not stat.S_ISDIR(st.st_mode or 0):
        return 1
    try:
        attrs = sftp.listdir_attr(path)
    except OSError:
        return 0
    except REMOTE_ERRORS as e:
        raise remote_error(path, e) from e
    return sum(count_remote_files(sftp, remote_join(path, a.filename)) for a in attrs)


def download_batch(
    profile: Profile,
    password: Optional[str],
    entries: List[FileEntry],
    source_dir: str,
    dest_dir: str,
    monitor: ProgressMonitor,
    connect: Callable = _open_fresh,
):
    """Download ``entries`` from remote ``source_dir`` into local ``dest_dir``.

    Counts all files up front so ``files_total`` is exact from the first
    transferred byte.
    """
    session = None
    try:
        session = connect(profile, password)
        sftp = session.sftp
        total = sum(count_remote_files(sftp, remote_join(source_dir, e.name)) for e in entries)
        monitor.set_files_total(total)

        for entry in entries:
            if monitor.is_failed:
                return
            remote = remote_join(source_dir, entry.name)
            try:
                st = sftp.stat(remote)
            except REMOTE_ERRORS as e:
                raise remote_error(remote, e) from e
            local = os.path.join(dest_dir, entry.name)
            if stat.S_ISDIR(st.st_mode or 0):
                _download_dir(sftp, remote, local, monitor)
            else:
                _download_file(sftp, remote, local, st.st_size or 0, monitor)
        monitor.mark_done()
        log.info("Download of %d entries into %s finished", len(entries), dest_dir)
    except (SftpError, *REMOTE_ERRORS) as e:
        log.warning("Download into %s failed: %s", dest_dir, e)
        monitor.mark_failed(str(e))
    except Exception as e:
        log.exception("Download worker crashed")
        monitor.mark_failed(str(e) or e.__class__.__name__)
    finally:
        if session is not None:
            session.close()


def _download_file(sftp, remote: str, local: str, size: int, monitor: ProgressMonitor):
    # Unknown or zero size leaves bytes_total at 0 (indeterminate).
    monitor.begin_file(posixpath.basename(remote), size)
    download_file_to_path(sftp, remote, local, on_chunk=monitor.advance)
    monitor.finish_file()


def _download_dir(sftp, remote_dir: str, local_dir: str, monitor: ProgressMonitor):
    try:
        os.mkdir(local_dir)
    except FileExistsError:
        if not os.path.isdir(local_dir):
            raise LocalIOError(f"{local_dir}: exists and is not a directory")
    except OSError as e:
        raise LocalIOError(f"{local_dir}: {e.strerror or e}") from e
    try:
        attrs = sftp.listdir_attr(remote_dir)
    except REMOTE_ERRORS as e:
        raise remote_error(remote_dir, e) from e
    for attr in sorted(attrs, key=lambda a: a.filename):
        remote = remote_join(remote_dir, attr.filename)
        local = os.path.join(local_dir, attr.filename)
        if stat.S_ISDIR(attr.st_mode or 0):
            _download_dir(sftp, remote, local, monitor)
        else:
            _download_file(sftp, remote, local, attr.st_size or 0, monitor)


# ── Single file over a fresh session ─────────────────────────────────────────

def upload_file_fresh(
    profile: Profile,
    password: Optional[str],
    local: str,
    remote: str,
    connect: Callable = _open_fresh,
):
    """Overwrite one remote file using a newly opened session."""
    session = connect(profile, password)
    try:
        upload_file_to_path(session.sftp, local, remote)
    finally:
        session.close()


# ── Worker management ────────────────────────────────────────────────────────

class TransferEngine:
    """At most one upload and one download in flight, each on its own thread.

    Starting a batch while the same direction is busy raises
    ``TransferBusyError``; there is no queue.
    """

    def __init__(self, connect: Callable = _open_fresh):
        self._connect = connect
        self._lock = threading.Lock()
        self._monitors = {Direction.UPLOAD: None, Direction.DOWNLOAD: None}
        self._threads = {Direction.UPLOAD: None, Direction.DOWNLOAD: None}

    def monitor(self, direction: Direction) -> Optional[ProgressMonitor]:
        with self._lock:
            return self._monitors[direction]

    def is_busy(self, direction: Direction) -> bool:
        return self.monitor(direction) is not None

    @property
    def is_uploading(self) -> bool:
        return self.is_busy(Direction.UPLOAD)

    @property
    def is_downloading(self) -> bool:
        return self.is_busy(Direction.DOWNLOAD)

    def start_upload(self, profile, password, entries, source_dir, dest_dir,
                     files_total: int = 1) -> ProgressMonitor:
        return self._start(Direction.UPLOAD, upload_batch, ProgressMonitor(files_total),
                           profile, password, entries, source_dir, dest_dir)

    def start_download(self, profile, password, entries, source_dir, dest_dir) -> ProgressMonitor:
        # Placeholder total; the worker corrects it after counting.
        return self._start(Direction.DOWNLOAD, download_batch, ProgressMonitor(1),
                           profile, password, entries, source_dir, dest_dir)

    def _start(self, direction, batch, monitor, profile, password, entries,
               source_dir, dest_dir) -> ProgressMonitor:
        with self._lock:
            if self._monitors[direction] is not None:
                raise TransferBusyError(f"{direction.value.capitalize()} already running")
            self._monitors[direction] = monitor
            t = threading.Thread(
                target=batch,
                args=(profile, password, list(entries), source_dir, dest_dir, monitor),
                kwargs={"connect": self._connect},
                name=f"vela-{direction.value}",
                daemon=True,
            )
            self._threads[direction] = t
        log.info("Starting %s of %d entries: %s -> %s",
                 direction.value, len(entries), source_dir, dest_dir)
        t.start()
        return monitor

    def take_finished(self, direction: Direction) -> Optional[ProgressSnapshot]:
        """Final snapshot once the batch is terminal (frees the slot), else None."""
        with self._lock:
            monitor = self._monitors[direction]
            if monitor is None:
                return None
            snap = monitor.snapshot()
            if not snap.is_terminal:
                return None
            self._monitors[direction] = None
            self._threads[direction] = None
            return snap

    def join(self, direction: Direction, timeout: Optional[float] = None):
        """Wait for the worker of ``direction`` (used by tests and shutdown)."""
        with self._lock:
            t = self._threads[direction]
        if t is not None:
            t.join(timeout)
