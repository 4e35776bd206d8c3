"""Live SSH+SFTP session: connect, listing, navigation, single mutations."""

import logging
import os
import posixpath
import socket
import stat
import threading
from typing import List, Optional

import paramiko

from vela.models.file_entry import FileEntry, sort_entries
from vela.models.profile import AuthMethod, Profile
from vela.services.errors import (
    AuthFailedError,
    KeyNotFoundError,
    LocalIOError,
    RemotePathError,
    SftpError,
    TransportError,
)
from vela.services.local_fs import expand_local_path

log = logging.getLogger(__name__)

# Foreground sessions; background sessions use TRANSFER_TIMEOUT.
CONNECT_TIMEOUT = 10
TRANSFER_TIMEOUT = 30
CHUNK_SIZE = 64 * 1024
DEFAULT_KEY_PATH = "~/.ssh/id_rsa"


def open_transport(profile: Profile, password: Optional[str], timeout: float):
    """Open and authenticate a transport, returning ``(transport, sftp)``."""
    key_path = None
    if profile.auth is AuthMethod.KEY:
        key_path = expand_local_path(profile.key_path or DEFAULT_KEY_PATH)
        if not os.path.isfile(key_path):
            raise KeyNotFoundError(key_path)

    try:
        sock = socket.create_connection((profile.host, profile.port), timeout=timeout)
    except OSError as e:
        raise TransportError(f"TCP connection failed: {e}") from e

    try:
        transport = paramiko.Transport(sock)
    except (paramiko.SSHException, OSError) as e:
        sock.close()
        raise TransportError(f"SSH error: {e}") from e
    try:
        transport.banner_timeout = timeout
        transport.start_client(timeout=timeout)
        if key_path:
            pkey = paramiko.PKey.from_path(key_path)
            transport.auth_publickey(profile.user, pkey)
        else:
            transport.auth_password(profile.user, password or "")
        if not transport.is_authenticated():
            raise AuthFailedError()
        sftp = paramiko.SFTPClient.from_transport(transport)
        sftp.get_channel().settimeout(timeout)
    except paramiko.AuthenticationException as e:
        transport.close()
        raise AuthFailedError() from e
    except paramiko.SSHException as e:
        transport.close()
        raise TransportError(f"SSH error: {e}") from e
    except OSError as e:
        transport.close()
        raise TransportError(f"SSH error: {e}") from e
    except SftpError:
        transport.close()
        raise
    return transport, sftp


# Server status replies arrive as IOError; a dropped channel surfaces as
# SSHException or EOFError.
REMOTE_ERRORS = (OSError, EOFError, paramiko.SSHException)


def remote_error(context: str, e: BaseException) -> SftpError:
    """Map an exception from a paramiko SFTP call to a project error."""
    if isinstance(e, (EOFError, paramiko.SSHException)):
        return TransportError(f"Connection lost: {str(e) or e.__class__.__name__}")
    return RemotePathError(f"{context}: {e}")


def remote_join(parent: str, name: str) -> str:
    return posixpath.join(parent, name)


def remote_parent(path: str) -> str:
    """Parent of ``path``; the root is its own parent."""
    if path in ("", "/"):
        return "/"
    return posixpath.dirname(path.rstrip("/")) or "/"


def remote_is_dir(sftp, path: str) -> bool:
    try:
        return stat.S_ISDIR(sftp.stat(path).st_mode or 0)
    except REMOTE_ERRORS:
        return False


class RemoteSession:
    """One authenticated SFTP channel plus the current remote directory.

    ``home`` is resolved once at construction (realpath of ".") and never
    changes; it is the expansion target for a leading ``~``.
    """

    def __init__(self, sftp, profile: Profile, password: Optional[str] = None, transport=None):
        self._sftp = sftp
        self._transport = transport
        self._lock = threading.Lock()
        self.profile = profile
        # Kept in memory so workers can open their own sessions.
        self.saved_password = password
        try:
            self.home = sftp.normalize(".")
        except REMOTE_ERRORS as e:
            raise remote_error("Cannot resolve home directory", e) from e
        self.remote_path = self.home

    @classmethod
    def connect(cls, profile: Profile, password: Optional[str] = None,
                timeout: float = CONNECT_TIMEOUT) -> "RemoteSession":
        """Connect, authenticate and resolve the home directory. Blocks."""
        transport, sftp = open_transport(profile, password, timeout)
        try:
            session = cls(sftp, profile, password, transport=transport)
        except SftpError:
            transport.close()
            raise
        log.info("Connected to %s@%s:%s (home %s)",
                 profile.user, profile.host, profile.port, session.home)
        return session

    @property
    def host(self) -> str:
        return self.profile.host

    @property
    def user(self) -> str:
        return self.profile.user

    @property
    def current_path(self) -> str:
        return self.remote_path

    @property
    def sftp(self):
        """Raw SFTP handle, for the synchronous edit download."""
        return self._sftp

    @property
    def is_connected(self) -> bool:
        if self._sftp is None:
            return False
        return self._transport is None or self._transport.is_active()

    def close(self):
        with self._lock:
            if self._sftp:
                try:
                    self._sftp.close()
                except REMOTE_ERRORS:
                    log.debug("Ignoring error while closing SFTP channel", exc_info=True)
                self._sftp = None
            if self._transport:
                self._transport.close()
                self._transport = None

    def _require(self):
        if not self._sftp:
            raise TransportError("Not connected")
        return self._sftp

    # --- Listing and navigation ---

    def list(self) -> List[FileEntry]:
        """List the current directory, sorted, with ".." unless at "/"."""
        with self._lock:
            sftp = self._require()
            try:
                attrs = sftp.listdir_attr(self.remote_path)
            except REMOTE_ERRORS as e:
                raise remote_error(self.remote_path, e) from e
        entries = [FileEntry.from_sftp_attr(a) for a in attrs]
        return sort_entries(entries, with_parent=self.remote_path != "/")

    def enter_directory(self, name: str) -> List[FileEntry]:
        """Descend into ``name`` (or go up for ".."). The target is not checked
        beforehand; a failing listing surfaces as ``RemotePathError``."""
        if name == "..":
            self.remote_path = remote_parent(self.remote_path)
        else:
            self.remote_path = remote_join(self.remote_path, name)
        return self.list()

    def go_up(self) -> List[FileEntry]:
        self.remote_path = remote_parent(self.remote_path)
        return self.list()

    def expand_home(self, raw: str) -> str:
        if raw == "~":
            return self.home
        if raw.startswith("~/"):
            return self.home.rstrip("/") + raw[1:]
        return raw

    def change_to_absolute(self, raw: str) -> List[FileEntry]:
        """Switch to ``raw`` (``~`` expanded, canonicalised, must be a dir)."""
        expanded = self.expand_home(raw)
        with self._lock:
            sftp = self._require()
            try:
                canonical = sftp.normalize(expanded)
            except REMOTE_ERRORS as e:
                raise remote_error(f"Path not found '{expanded}'", e) from e
            try:
                st = sftp.stat(canonical)
            except REMOTE_ERRORS as e:
                raise remote_error("stat failed", e) from e
        if not stat.S_ISDIR(st.st_mode or 0):
            raise RemotePathError(f"'{canonical}' is not a directory")
        self.remote_path = canonical
        return self.list()

    # --- Mutations (scoped to the current directory) ---

    def rename(self, old: str, new: str):
        old_path = remote_join(self.remote_path, old)
        new_path = remote_join(self.remote_path, new)
        with self._lock:
            try:
                self._require().rename(old_path, new_path)
            except REMOTE_ERRORS as e:
                raise remote_error(old_path, e) from e

    def mkdir(self, name: str):
        path = remote_join(self.remote_path, name)
        with self._lock:
            try:
                self._require().mkdir(path, 0o755)
            except REMOTE_ERRORS as e:
                raise remote_error(path, e) from e

    def delete_file(self, name: str):
        path = remote_join(self.remote_path, name)
        with self._lock:
            try:
                self._require().remove(path)
            except REMOTE_ERRORS as e:
                raise remote_error(path, e) from e

    def delete_directory(self, name: str):
        """Recursively remove ``name``. Stops at the first failing child;
        whatever was removed before that stays removed."""
        path = remote_join(self.remote_path, name)
        with self._lock:
            self._rmdir_recursive_unlocked(self._require(), path)

    def _rmdir_recursive_unlocked(self, sftp, path: str):
        try:
            attrs = sftp.listdir_attr(path)
        except REMOTE_ERRORS as e:
            raise remote_error(path, e) from e
        for attr in attrs:
            child = remote_join(path, attr.filename)
            if stat.S_ISDIR(attr.st_mode or 0):
                self._rmdir_recursive_unlocked(sftp, child)
            else:
                try:
                    sftp.remove(child)
                except REMOTE_ERRORS as e:
                    raise remote_error(child, e) from e
        try:
            sftp.rmdir(path)
        except REMOTE_ERRORS as e:
            raise remote_error(path, e) from e

    # --- Single-file helpers for the edit round trip ---

    def download_to(self, remote_path: str, local_path: str):
        """Copy one remote file to ``local_path`` without progress reporting."""
        with self._lock:
            download_file_to_path(self._require(), remote_path, local_path)


def download_file_to_path(sftp, remote_path: str, local_path: str, on_chunk=None):
    try:
        fin = sftp.open(remote_path, "rb")
    except REMOTE_ERRORS as e:
        raise remote_error(remote_path, e) from e
    with fin:
        try:
            fout = open(local_path, "wb")
        except OSError as e:
            raise LocalIOError(f"{local_path}: {e.strerror or e}") from e
        with fout:
            while True:
                try:
                    chunk = fin.read(CHUNK_SIZE)
                except REMOTE_ERRORS as e:
                    raise remote_error(remote_path, e) from e
                if not chunk:
                    break
                try:
                    fout.write(chunk)
                except OSError as e:
                    raise LocalIOError(f"{local_path}: {e.strerror or e}") from e
                if on_chunk:
                    on_chunk(len(chunk))


def upload_file_to_path(sftp, local_path: str, remote_path: str, on_chunk=None):
    """Stream ``local_path`` to ``remote_path`` (create or truncate)."""
    try:
        fin = open(local_path, "rb")
    except OSError as e:
        raise LocalIOError(f"{local_path}: {e.strerror or e}") from e
    with fin:
        try:
            fout = sftp.open(remote_path, "wb")
        except REMOTE_ERRORS as e:
            raise remote_error(remote_path, e) from e
        # close() waits for the server to acknowledge pending writes
        try:
            with fout:
                while True:
                    try:
                        chunk = fin.read(CHUNK_SIZE)
                    except OSError as e:
                        raise LocalIOError(f"{local_path}: {e.strerror or e}") from e
                    if not chunk:
                        break
                    fout.write(chunk)
                    if on_chunk:
                        on_chunk(len(chunk))
        except REMOTE_ERRORS as e:
            raise remote_error(remote_path, e) from e
