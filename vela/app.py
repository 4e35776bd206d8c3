"""Application state for the dual-pane view.

Holds both panels, the live session, the single active dialog and the
transfer slots. Every failure ends up in ``status_message``.
"""

import logging
import os
from typing import Callable, Optional

from vela.models.dialogs import (
    DeleteDialog,
    Dialog,
    HelpDialog,
    MkdirDialog,
    PasswordDialog,
    RenameDialog,
    Side,
)
from vela.models.edit_request import EditRequest
from vela.models.panel import PanelModel
from vela.models.profile import AuthMethod, Profile
from vela.services import credential_store, edit_roundtrip
from vela.services.errors import AuthFailedError, SftpError, TransferBusyError
from vela.services.local_fs import (
    LocalTarget,
    count_local_files,
    expand_local_path,
    load_local_directory,
)
from vela.services.editor import run_shell
from vela.services.mutations import MutationOps
from vela.services.progress import TransferState
from vela.services.sftp_session import RemoteSession
from vela.services.transfer_engine import Direction, TransferEngine

log = logging.getLogger(__name__)


def _cwd_or_home() -> str:
    try:
        return os.getcwd()
    except OSError:
        return os.path.expanduser("~")


class App:
    def __init__(
        self,
        start_dir: Optional[str] = None,
        connect: Callable = RemoteSession.connect,
        engine: Optional[TransferEngine] = None,
        remember_passwords: bool = False,
    ):
        self._connect = connect
        self.remember_passwords = remember_passwords
        self.engine = engine or TransferEngine()

        start = start_dir or _cwd_or_home()
        self.local = PanelModel(path=start)
        self.local.load(start, load_local_directory(start))
        self.remote = PanelModel(path="/")

        self.active = Side.LOCAL
        self.session: Optional[RemoteSession] = None
        self.dialog: Optional[Dialog] = None
        self.status_message: Optional[str] = None
        self.pending_edit: Optional[EditRequest] = None
        self.panels_swapped = False
        self.running = True

    # --- Panels ---

    def panel(self, side: Side) -> PanelModel:
        return self.local if side is Side.LOCAL else self.remote

    @property
    def active_panel(self) -> PanelModel:
        return self.panel(self.active)

    def toggle_panel(self):
        self.active = self.active.toggle()

    def swap_panels(self):
        self.panels_swapped = not self.panels_swapped

    def move_up(self):
        self.active_panel.move_up()

    def move_down(self):
        self.active_panel.move_down()

    def toggle_mark(self):
        self.active_panel.toggle_mark()

    def mark_all(self):
        self.active_panel.mark_all()

    def close_dialog(self):
        self.dialog = None

    def show_help(self):
        self.dialog = HelpDialog()

    def quit(self):
        self.running = False
        if self.session:
            self.session.close()
            self.session = None

    @property
    def is_connected(self) -> bool:
        return self.session is not None

    def _mutations(self, side: Side) -> MutationOps:
        if side is Side.LOCAL:
            return MutationOps(LocalTarget(self.local.path), self.local)
        return MutationOps(self.session, self.remote)

    # --- Connection ---

    def begin_connect(self, profile: Profile):
        """Connect right away for key auth; otherwise ask for the password."""
        if profile.auth is AuthMethod.KEY:
            self.connect(profile)
            return
        stored = None
        if self.remember_passwords:
            stored = credential_store.get_password(profile.name)
        if not stored:
            self.dialog = PasswordDialog(profile)
            return
        if self.session:
            self.disconnect()
        try:
            session = self._connect(profile, stored)
        except AuthFailedError as e:
            # Stale keyring entry: forget it and ask again.
            log.info("Remembered password for %s was rejected", profile.name)
            credential_store.delete_password(profile.name)
            self.dialog = PasswordDialog(profile, error=str(e))
            return
        except SftpError as e:
            log.warning("Connect to %s failed: %s", profile.host, e)
            self.status_message = f"Connection failed: {e}"
            return
        self._attach(profile, session, stored)

    def connect(self, profile: Profile, password: Optional[str] = None):
        if self.session:
            self.disconnect()
        try:
            session = self._connect(profile, password)
        except SftpError as e:
            log.warning("Connect to %s failed: %s", profile.host, e)
            if isinstance(self.dialog, PasswordDialog):
                self.dialog.error = str(e)
            else:
                self.status_message = f"Connection failed: {e}"
            return
        self._attach(profile, session, password)

    def _attach(self, profile: Profile, session: RemoteSession, password: Optional[str]):
        """Install a freshly opened session and show its start directory."""
        if self.remember_passwords and password and profile.auth is AuthMethod.PASSWORD:
            credential_store.store_password(profile.name, password)
        self.session = session
        if isinstance(self.dialog, PasswordDialog):
            self.dialog = None

        message = f"Connected: {session.user}@{session.host}"
        start = profile.remote_start
        try:
            if start:
                try:
                    entries = session.change_to_absolute(start)
                    message = f"{message} → {session.remote_path}"
                except SftpError as e:
                    # A bad start directory never aborts the connection.
                    message = f"Start directory '{start}' unavailable: {e}"
                    entries = session.list()
            else:
                entries = session.list()
            self.remote.load(session.remote_path, entries)
        except SftpError as e:
            message = f"Connected, listing failed: {e}"
        self.status_message = message

        local_start = profile.local_start
        if local_start:
            path = expand_local_path(local_start)
            # A missing local start directory keeps the current one.
            if os.path.isdir(path):
                try:
                    self.local.load(path, load_local_directory(path))
                except SftpError as e:
                    self.status_message = f"{message} | Local start path failed: {e}"

    def disconnect(self):
        if self.session:
            self.session.close()
        self.session = None
        self.remote = PanelModel(path="/")
        if self.active is Side.REMOTE:
            self.active = Side.LOCAL
        self.status_message = "Disconnected"

    # --- Navigation ---

    def enter_selected(self):
        panel = self.active_panel
        entry = panel.selected
        if entry is None or not entry.is_dir:
            return
        if self.active is Side.LOCAL:
            if entry.is_parent:
                path = os.path.dirname(panel.path)
            else:
                path = os.path.join(panel.path, entry.name)
            self._load_local(path)
        elif self.session:
            try:
                entries = self.session.enter_directory(entry.name)
                self.remote.load(self.session.remote_path, entries)
            except SftpError as e:
                self.session.remote_path = self.remote.path
                self.status_message = f"Open directory failed: {e}"

    def go_up(self):
        if self.active is Side.LOCAL:
            self._load_local(os.path.dirname(self.local.path))
        elif self.session:
            try:
                entries = self.session.go_up()
                self.remote.load(self.session.remote_path, entries)
            except SftpError as e:
                self.session.remote_path = self.remote.path
                self.status_message = f"Change directory failed: {e}"

    def _load_local(self, path: str):
        try:
            entries = load_local_directory(path)
        except SftpError as e:
            self.status_message = f"Open directory failed: {e}"
            return
        self.local.load(path, entries)

    def refresh_local(self):
        try:
            self.local.load(self.local.path, load_local_directory(self.local.path),
                            keep_cursor=True)
        except SftpError as e:
            self.status_message = f"Local refresh failed: {e}"

    def refresh_remote(self):
        if not self.session:
            return
        try:
            self.remote.load(self.session.remote_path, self.session.list(), keep_cursor=True)
        except SftpError as e:
            self.status_message = f"Remote refresh failed: {e}"

    # --- Transfers ---

    @staticmethod
    def _label(entries) -> str:
        if len(entries) == 1:
            return f"'{entries[0].name}'"
        return f"{len(entries)} files"

    def start_upload(self):
        """Upload marked local entries (or the one under the cursor)."""
        if not self.session:
            return
        entries = self.local.targeted_entries()
        if not entries:
            return
        if self.engine.is_uploading:
            self.status_message = "Upload already running"
            return
        total = sum(count_local_files(os.path.join(self.local.path, e.name)) for e in entries)
        try:
            self.engine.start_upload(
                self.session.profile, self.session.saved_password, entries,
                self.local.path, self.session.remote_path, files_total=max(total, 1),
            )
        except TransferBusyError as e:
            self.status_message = str(e)
            return
        self.status_message = f"Uploading {self._label(entries)}…"
        self.local.clear_marks()

    def start_download(self):
        """Download marked remote entries (or the one under the cursor)."""
        if not self.session:
            return
        entries = self.remote.targeted_entries()
        if not entries:
            return
        if self.engine.is_downloading:
            self.status_message = "Download already running"
            return
        try:
            self.engine.start_download(
                self.session.profile, self.session.saved_password, entries,
                self.session.remote_path, self.local.path,
            )
        except TransferBusyError as e:
            self.status_message = str(e)
            return
        self.status_message = f"Downloading {self._label(entries)}…"
        self.remote.clear_marks()

    def poll_transfers(self):
        """Sample both transfer slots; called once per loop tick."""
        snap = self.engine.take_finished(Direction.UPLOAD)
        if snap is not None:
            if snap.state is TransferState.DONE:
                self.status_message = "Upload complete"
                self.refresh_remote()
            else:
                self.status_message = f"Upload failed: {snap.error}"

        snap = self.engine.take_finished(Direction.DOWNLOAD)
        if snap is not None:
            if snap.state is TransferState.DONE:
                self.status_message = "Download complete"
                self.refresh_local()
            else:
                self.status_message = f"Download failed: {snap.error}"

    def transfer_status(self) -> Optional[str]:
        parts = []
        for direction in (Direction.UPLOAD, Direction.DOWNLOAD):
            monitor = self.engine.monitor(direction)
            if monitor is not None:
                parts.append(f"{direction.value}: {monitor.snapshot().label()}")
        return " | ".join(parts) or None

    # --- Rename / mkdir / delete ---

    def _editable_side(self) -> Optional[Side]:
        if self.active is Side.REMOTE and not self.session:
            return None
        return self.active

    def open_rename_dialog(self):
        side = self._editable_side()
        if side is None:
            return
        entry = self.panel(side).selected
        if entry is None or entry.is_parent:
            return
        self.dialog = RenameDialog(side, entry.name)

    def confirm_rename(self, new_name: str):
        dialog = self.dialog
        if not isinstance(dialog, RenameDialog):
            return
        self.dialog = None
        new_name = new_name.strip()
        if not new_name or new_name == dialog.original:
            return
        if dialog.side is Side.REMOTE and not self.session:
            return
        self.status_message = self._mutations(dialog.side).rename(dialog.original, new_name)

    def open_mkdir_dialog(self):
        side = self._editable_side()
        if side is not None:
            self.dialog = MkdirDialog(side)

    def confirm_mkdir(self, name: str):
        dialog = self.dialog
        if not isinstance(dialog, MkdirDialog):
            return
        self.dialog = None
        name = name.strip()
        if not name:
            return
        if dialog.side is Side.REMOTE and not self.session:
            return
        self.status_message = self._mutations(dialog.side).mkdir(name)

    def open_delete_dialog(self):
        side = self._editable_side()
        if side is None:
            return
        items = [(e.name, e.is_dir) for e in self.panel(side).targeted_entries()]
        if items:
            self.dialog = DeleteDialog(side, items)

    def confirm_delete(self):
        dialog = self.dialog
        if not isinstance(dialog, DeleteDialog):
            return
        self.dialog = None
        if dialog.side is Side.REMOTE and not self.session:
            return
        summary = self._mutations(dialog.side).delete_batch(dialog.entries)
        self.status_message = summary.message(dialog.entries[0][0])

    # --- Edit ---

    def prepare_edit(self):
        """Set ``pending_edit`` for the file under the cursor.

        Remote files are downloaded first, synchronously.
        """
        side = self._editable_side()
        if side is None:
            return
        entry = self.panel(side).selected
        if entry is None or entry.is_dir:
            self.status_message = "No editable entry selected"
            return
        if side is Side.LOCAL:
            self.pending_edit = edit_roundtrip.prepare_local_edit(self.local.path, entry.name)
            return
        try:
            self.pending_edit = edit_roundtrip.prepare_remote_edit(self.session, entry.name)
        except (SftpError, OSError) as e:
            self.status_message = f"Download for editing failed: {e}"

    def finish_edit(self, request: EditRequest):
        try:
            outcome = edit_roundtrip.finish_edit(request, self.session, self.local, self.remote)
        except SftpError as e:
            self.status_message = f"Refresh after edit failed: {e}"
            return
        self.status_message = outcome.message

    def take_pending_edit(self) -> Optional[EditRequest]:
        request, self.pending_edit = self.pending_edit, None
        return request

    # --- Shell ---

    def run_shell(self, command: str) -> Optional[str]:
        """Run ``command`` in the local panel's directory and return its output.

        The local listing is reloaded afterwards since the command may have
        changed it.
        """
        command = command.strip()
        if not command:
            return None
        try:
            output, code = run_shell(command, self.local.path)
        except OSError as e:
            self.status_message = f"! {command}: {e}"
            return None
        self.refresh_local()
        self.status_message = f"! {command}: exit {code}"
        return output
