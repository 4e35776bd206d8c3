"""Foreground loop: a GLib main loop that polls transfers once per tick and
dispatches one console command per stdin event."""

import argparse
import getpass
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Optional

from gi.repository import GLib

from vela import APP_NAME, VERSION
from vela.app import App
from vela.models.dialogs import DeleteDialog, HelpDialog, PasswordDialog, Side
from vela.models.profile import Profile
from vela.services import credential_store
from vela.services.config import ConfigService
from vela.services.editor import launch_editor

log = logging.getLogger(__name__)

STATE_DIR = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "vela"
DEFAULT_TICK_MS = 200
PASSWORD_ATTEMPTS = 3

HELP_TEXT = """\
connect NAME   connect using a saved profile     disconnect
ls             show both panels                  tab / swap
cd NAME        enter directory (.. for parent)   up
sel N          move cursor to entry N            mark [N] / markall
put            upload marked local entries       get   download marked remote entries
mv NEW         rename entry under cursor         mkdir NAME
rm             delete marked entries (asks)      edit  open file in $EDITOR
profile [list]                      profile add NAME field=value...
profile edit NAME field=value...    profile rm NAME
  fields: host port user auth(key|password) key remote local
set [PREF VALUE]   show or change editor, tick_ms, remember_passwords
!CMD           run CMD in the local directory
help           this text                         quit"""


class VelaApplication:
    def __init__(self, app: App, tick_ms: int = DEFAULT_TICK_MS, editor=None,
                 stdin=None, stdout=None):
        self.app = app
        self._tick_ms = tick_ms
        self._editor = editor
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout
        self._loop = GLib.MainLoop()
        self._last_progress = None
        self._commands = {
            "connect": self._cmd_connect,
            "disconnect": lambda args: self.app.disconnect(),
            "ls": lambda args: self.render(),
            "tab": lambda args: self.app.toggle_panel(),
            "swap": lambda args: self.app.swap_panels(),
            "cd": self._cmd_cd,
            "up": lambda args: self.app.go_up(),
            "sel": self._cmd_sel,
            "mark": self._cmd_mark,
            "markall": lambda args: self.app.mark_all(),
            "put": lambda args: self.app.start_upload(),
            "get": lambda args: self.app.start_download(),
            "mv": self._cmd_mv,
            "mkdir": self._cmd_mkdir,
            "rm": lambda args: self.app.open_delete_dialog(),
            "edit": lambda args: self.app.prepare_edit(),
            "profile": self._cmd_profile,
            "set": self._cmd_set,
            "help": lambda args: self.app.show_help(),
            "quit": lambda args: self.app.quit(),
        }

    # ── Loop ─────────────────────────────────────────────────────────────────

    def run(self):
        self.render()
        GLib.timeout_add(self._tick_ms, self._on_tick)
        GLib.io_add_watch(self._in.fileno(), GLib.PRIORITY_DEFAULT,
                          GLib.IOCondition.IN | GLib.IOCondition.HUP, self._on_input)
        self._prompt()
        self._loop.run()

    def _stop(self):
        self.app.quit()
        self._loop.quit()
        return GLib.SOURCE_REMOVE

    def _on_tick(self):
        before = self.app.status_message
        self.app.poll_transfers()
        progress = self.app.transfer_status()
        if progress and progress != self._last_progress:
            self._write(f"[{progress}]")
        self._last_progress = progress
        if self.app.status_message != before:
            self._write_status()
        if not self.app.running:
            return self._stop()
        return GLib.SOURCE_CONTINUE

    def _on_input(self, fd, condition):
        line = self._in.readline()
        if not line:
            return self._stop()
        self.dispatch(line)
        self.run_pending_edit()
        if not self.app.running:
            return self._stop()
        self._prompt()
        return GLib.SOURCE_CONTINUE

    def run_pending_edit(self):
        request = self.app.take_pending_edit()
        if request is None:
            return
        # Blocks the loop until the editor exits; the exit code is ignored.
        launch_editor(request.edit_path, self._editor)
        self.app.finish_edit(request)
        self._write_status()

    # ── Commands ─────────────────────────────────────────────────────────────

    def dispatch(self, line: str):
        if isinstance(self.app.dialog, DeleteDialog):
            if line.strip().lower() in ("y", "yes"):
                self.app.confirm_delete()
            else:
                self.app.close_dialog()
            self._write_status()
            return
        if isinstance(self.app.dialog, HelpDialog):
            self.app.close_dialog()
        if line.lstrip().startswith("!"):
            output = self.app.run_shell(line.lstrip()[1:])
            if output is not None:
                self._write(output.rstrip("\n") or "(no output)")
            self._write_status()
            return

        try:
            words = shlex.split(line)
        except ValueError as e:
            self._write(f"Parse error: {e}")
            return
        if not words:
            return
        handler = self._commands.get(words[0])
        if handler is None:
            self._write(f"Unknown command '{words[0]}', try 'help'")
            return
        before = self.app.status_message
        handler(words[1:])

        dialog = self.app.dialog
        if isinstance(dialog, DeleteDialog):
            names = ", ".join(name for name, _ in dialog.entries)
            self._write(f"Delete {names}? [y/N]")
        elif isinstance(dialog, HelpDialog):
            self._write(HELP_TEXT)
        if self.app.status_message != before:
            self._write_status()

    def _cmd_connect(self, args):
        if not args:
            names = ", ".join(p.name for p in ConfigService.load_profiles()) or "none"
            self._write(f"Profiles: {names}")
            return
        profile = ConfigService.find_profile(args[0])
        if profile is None:
            self._write(f"No profile named '{args[0]}'")
            return
        self.connect_profile(profile)

    def connect_profile(self, profile):
        self.app.begin_connect(profile)
        for _ in range(PASSWORD_ATTEMPTS):
            dialog = self.app.dialog
            if not isinstance(dialog, PasswordDialog):
                break
            if dialog.error:
                self._write(f"Error: {dialog.error}")
            try:
                password = getpass.getpass(f"Password for {profile.display_name}: ")
            except (EOFError, KeyboardInterrupt):
                break
            self.app.connect(profile, password)
        if isinstance(self.app.dialog, PasswordDialog):
            self.app.close_dialog()
        if self.app.is_connected:
            self.render()

    def _cmd_profile(self, args):
        action = args[0] if args else "list"
        if action == "list":
            profiles = ConfigService.load_profiles()
            if not profiles:
                self._write("No profiles; add one with 'profile add NAME host=... user=...'")
            for p in profiles:
                self._write(f"{p.name:<16} {p.user}@{p.host}:{p.port}  {p.auth.value}"
                            f"  {p.remote_start or ''}")
            return
        if action not in ("add", "edit", "rm") or len(args) < 2:
            self._write("Usage: profile [list] | add NAME field=value... | "
                        "edit NAME field=value... | rm NAME")
            return

        name = args[1]
        existing = ConfigService.find_profile(name)
        if action == "rm":
            if existing is None:
                self._write(f"No profile named '{name}'")
                return
            ConfigService.delete_profile(name)
            if self.app.remember_passwords:
                credential_store.delete_password(name)
            self._write(f"Profile '{name}' deleted")
            return

        if action == "add" and existing is not None:
            self._write(f"Profile '{name}' already exists, use 'profile edit'")
            return
        if action == "edit" and existing is None:
            self._write(f"No profile named '{name}'")
            return
        try:
            fields = _parse_fields(args[2:])
            profile = (existing or Profile(name=name)).updated(fields)
        except ValueError as e:
            self._write(f"Invalid profile: {e}")
            return
        if existing is None:
            ConfigService.add_profile(profile)
        else:
            ConfigService.update_profile(name, profile)
        self._write(f"Profile '{name}' saved")

    def _cmd_set(self, args):
        if not args:
            for key in PREFERENCES:
                self._write(f"{key} = {ConfigService.get_preference(key)}")
            return
        key, raw = args[0], " ".join(args[1:])
        if key not in PREFERENCES:
            self._write(f"Unknown preference '{key}' (use: {', '.join(PREFERENCES)})")
            return
        try:
            value = PREFERENCES[key](raw)
        except ValueError as e:
            self._write(f"Invalid value for {key}: {e}")
            return
        ConfigService.set_preference(key, value)
        if key == "editor":
            self._editor = value
        elif key == "remember_passwords":
            self.app.remember_passwords = value
        self._write(f"{key} = {value}"
                    + (" (applies on next start)" if key == "tick_ms" else ""))

    def _cmd_cd(self, args):
        if not args:
            return
        panel = self.app.active_panel
        for i, entry in enumerate(panel.entries):
            if entry.name == args[0]:
                panel.select(i)
                self.app.enter_selected()
                self.render_panel(self.app.active)
                return
        self._write(f"No entry '{args[0]}'")

    def _cmd_sel(self, args):
        if args and args[0].isdigit():
            self.app.active_panel.select(int(args[0]))

    def _cmd_mark(self, args):
        panel = self.app.active_panel
        if args and args[0].isdigit():
            panel.toggle_mark(int(args[0]))
        else:
            panel.toggle_mark()

    def _cmd_mv(self, args):
        if not args:
            return
        self.app.open_rename_dialog()
        self.app.confirm_rename(args[0])

    def _cmd_mkdir(self, args):
        if not args:
            return
        self.app.open_mkdir_dialog()
        self.app.confirm_mkdir(args[0])

    # ── Rendering ────────────────────────────────────────────────────────────

    def _write(self, text: str):
        print(text, file=self._out, flush=True)

    def _write_status(self):
        if self.app.status_message:
            self._write(f"-- {self.app.status_message}")

    def _prompt(self):
        side = "remote" if self.app.active is Side.REMOTE else "local"
        self._out.write(f"{side}> ")
        self._out.flush()

    def render_panel(self, side: Side):
        panel = self.app.panel(side)
        active = "*" if side is self.app.active else " "
        if side is Side.REMOTE and not self.app.is_connected:
            self._write(f"{active}[remote] not connected")
            return
        self._write(f"{active}[{side.value}] {panel.path}")
        for i, entry in enumerate(panel.entries):
            cursor = ">" if i == panel.cursor else " "
            mark = "+" if i in panel.marked else " "
            name = entry.name + ("/" if entry.is_dir and not entry.is_parent else "")
            self._write(
                f"{cursor}{mark}{i:4d}  {name:<40} {entry.human_size():>10}  "
                f"{entry.human_time():<16} {entry.permissions or ''}"
            )

    def render(self):
        order = [Side.LOCAL, Side.REMOTE]
        if self.app.panels_swapped:
            order.reverse()
        for side in order:
            self.render_panel(side)
        self._write_status()


def _parse_fields(tokens) -> dict:
    fields = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep:
            raise ValueError(f"expected field=value, got '{token}'")
        fields[key] = value
    return fields


def _parse_editor(raw: str) -> Optional[str]:
    return raw.strip() or None


def _parse_tick(raw: str) -> int:
    if not raw.isdigit() or int(raw) <= 0:
        raise ValueError("expected a positive number of milliseconds")
    return int(raw)


def _parse_flag(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("on", "true", "yes", "1"):
        return True
    if value in ("off", "false", "no", "0"):
        return False
    raise ValueError("expected on or off")


PREFERENCES = {
    "editor": _parse_editor,
    "tick_ms": _parse_tick,
    "remember_passwords": _parse_flag,
}


def _setup_logging(debug: bool):
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(STATE_DIR / "vela.log"),
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # paramiko is chatty at DEBUG
    logging.getLogger("paramiko").setLevel(logging.INFO if debug else logging.WARNING)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="vela", description=f"{APP_NAME} dual-pane SFTP commander")
    parser.add_argument("--profile", help="connect to this saved profile at startup")
    parser.add_argument("--debug", action="store_true", help="verbose log file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    args = parser.parse_args(argv)

    _setup_logging(args.debug)
    app = App(remember_passwords=bool(ConfigService.get_preference("remember_passwords", False)))
    ui = VelaApplication(
        app,
        tick_ms=int(ConfigService.get_preference("tick_ms", DEFAULT_TICK_MS)),
        editor=ConfigService.get_preference("editor"),
    )
    if args.profile:
        profile = ConfigService.find_profile(args.profile)
        if profile is None:
            print(f"No profile named '{args.profile}'", file=sys.stderr)
            return 2
        ui.connect_profile(profile)
    try:
        ui.run()
    except KeyboardInterrupt:
        app.quit()
    return 0
