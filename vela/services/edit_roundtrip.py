"""Download → external editor → conditional re-upload.

The editor's exit status is never consulted; only the scratch file's
modification time decides whether anything goes back to the server.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from vela.models.edit_request import EditRequest, LocalEdit, RemoteEdit
from vela.models.panel import PanelModel
from vela.services.errors import SftpError
from vela.services.local_fs import load_local_directory
from vela.services.sftp_session import RemoteSession, remote_join
from vela.services.temp_manager import TempManager
from vela.services.transfer_engine import upload_file_fresh

log = logging.getLogger(__name__)


@dataclass
class EditOutcome:
    message: str
    uploaded: bool = False
    refreshed: bool = False


def prepare_local_edit(directory: str, name: str) -> LocalEdit:
    return LocalEdit(path=os.path.join(directory, name))


def prepare_remote_edit(session: RemoteSession, name: str) -> RemoteEdit:
    """Download ``name`` from the session's directory into scratch space.

    Synchronous on the live session, no progress reporting.
    """
    remote_path = remote_join(session.remote_path, name)
    scratch = TempManager.scratch_path(remote_path, session.host)
    try:
        session.download_to(remote_path, str(scratch))
        mtime_before = os.stat(scratch).st_mtime_ns
    except (SftpError, OSError):
        TempManager.discard(scratch)
        raise
    log.debug("Downloaded %s to %s for editing", remote_path, scratch)
    return RemoteEdit(scratch_path=str(scratch), remote_path=remote_path,
                      mtime_before=mtime_before)


def _modified_since(path: str, before: int) -> bool:
    try:
        return os.stat(path).st_mtime_ns > before
    except OSError:
        return False


def finish_edit(
    request: EditRequest,
    session: Optional[RemoteSession],
    local_panel: PanelModel,
    remote_panel: PanelModel,
    uploader: Callable = upload_file_fresh,
) -> EditOutcome:
    """Called once the editor process has exited, whatever its exit code."""
    if isinstance(request, LocalEdit):
        local_panel.load(local_panel.path, load_local_directory(local_panel.path),
                         keep_cursor=True)
        return EditOutcome("Editor closed", refreshed=True)

    try:
        if not _modified_since(request.scratch_path, request.mtime_before):
            return EditOutcome("No changes, nothing uploaded")
        if session is None:
            log.info("Session gone; discarding edit of %s", request.remote_path)
            return EditOutcome("Not connected, changes discarded")

        # The live session may have timed out while the editor was open.
        try:
            uploader(session.profile, session.saved_password,
                     request.scratch_path, request.remote_path)
            outcome = EditOutcome(f"'{request.filename}' uploaded", uploaded=True)
            log.info("Uploaded edited %s", request.remote_path)
        except SftpError as e:
            log.warning("Upload of edited %s failed: %s", request.remote_path, e)
            outcome = EditOutcome(f"Upload failed: {e}")

        try:
            remote_panel.load(session.remote_path, session.list(), keep_cursor=True)
            outcome.refreshed = True
        except SftpError as e:
            log.warning("Listing after edit upload failed: %s", e)
        return outcome
    finally:
        TempManager.discard(request.scratch_path)
