import errno
import os
import posixpath
from pathlib import Path

import paramiko
import pytest

from vela.models.profile import AuthMethod, Profile
from vela.services.sftp_session import RemoteSession

HOME = "/home/alice"


class FakeSftp:
    """Stands in for ``paramiko.SFTPClient``; remote paths live under ``root``.

    ``fail_open`` / ``fail_remove`` hold remote paths whose operation raises.
    """

    def __init__(self, root: Path, home: str = HOME):
        self.root = root
        self.home = home
        self.fail_open = set()
        self.fail_remove = set()
        self.opened = []
        self.closed = False
        (root / home.lstrip("/")).mkdir(parents=True, exist_ok=True)

    def _abs(self, path: str) -> str:
        if not path.startswith("/"):
            path = posixpath.join(self.home, path)
        return posixpath.normpath(path)

    def _local(self, path: str) -> Path:
        return self.root / self._abs(path).lstrip("/")

    @staticmethod
    def _missing(path):
        return IOError(errno.ENOENT, "No such file", path)

    def normalize(self, path):
        abs_path = self._abs(path)
        local = self._local(abs_path)
        if not local.exists():
            raise self._missing(path)
        # resolve symlinks inside the fake root
        real = os.path.realpath(local)
        rel = os.path.relpath(real, os.path.realpath(self.root))
        return "/" if rel == "." else "/" + rel.replace(os.sep, "/")

    def stat(self, path):
        local = self._local(path)
        if not local.exists():
            raise self._missing(path)
        return paramiko.SFTPAttributes.from_stat(os.stat(local), posixpath.basename(path))

    def listdir_attr(self, path="."):
        local = self._local(path)
        if not local.is_dir():
            raise self._missing(path)
        return [
            paramiko.SFTPAttributes.from_stat(os.stat(local / name), name)
            for name in sorted(os.listdir(local))
        ]

    def open(self, path, mode="r"):
        abs_path = self._abs(path)
        if abs_path in self.fail_open:
            raise IOError(errno.EACCES, "Permission denied", path)
        self.opened.append(abs_path)
        try:
            return open(self._local(path), mode)
        except FileNotFoundError:
            raise self._missing(path)

    def mkdir(self, path, mode=0o777):
        local = self._local(path)
        if local.exists():
            raise IOError("Failure")
        local.mkdir()

    def rename(self, old, new):
        if self._local(new).exists():
            raise IOError("Failure")
        os.rename(self._local(old), self._local(new))

    def remove(self, path):
        if self._abs(path) in self.fail_remove:
            raise IOError(errno.EACCES, "Permission denied", path)
        local = self._local(path)
        if not local.is_file():
            raise self._missing(path)
        local.unlink()

    def rmdir(self, path):
        self._local(path).rmdir()

    def close(self):
        self.closed = True


@pytest.fixture
def profile():
    return Profile(name="test", host="sftp.example", port=22, user="alice",
                   auth=AuthMethod.PASSWORD)


@pytest.fixture
def remote_root(tmp_path):
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def fake_sftp(remote_root):
    return FakeSftp(remote_root)


@pytest.fixture
def session(fake_sftp, profile):
    return RemoteSession(fake_sftp, profile, password="secret")


@pytest.fixture
def remote_home(remote_root):
    """Local path backing the fake remote home directory."""
    home = remote_root / HOME.lstrip("/")
    home.mkdir(parents=True, exist_ok=True)
    return home


@pytest.fixture
def connect_factory(remote_root):
    """Connect callable opening a fresh session on the same fake server."""
    opened = []
    sftps = []

    def connect(profile, password=None, **kwargs):
        sftp = FakeSftp(remote_root)
        s = RemoteSession(sftp, profile, password)
        sftps.append(sftp)
        opened.append(s)
        return s

    connect.opened = opened
    connect.sftps = sftps
    return connect
