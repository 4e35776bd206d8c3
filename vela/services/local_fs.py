"""Local side of the dual-pane view: listing, path expansion, mutations."""

import logging
import os
import shutil
from pathlib import Path
from typing import List

from vela.models.file_entry import FileEntry, sort_entries
from vela.services.errors import LocalIOError

log = logging.getLogger(__name__)


def home_dir() -> str:
    return str(Path.home())


def expand_local_path(raw: str) -> str:
    """Expand a leading ``~`` / ``~/`` to the process home and make absolute."""
    if raw == "~":
        path = home_dir()
    elif raw.startswith("~/"):
        path = os.path.join(home_dir(), raw[2:])
    else:
        path = raw
    return os.path.abspath(path)


def is_root(path: str) -> bool:
    return os.path.dirname(path) == path


def load_local_directory(path: str) -> List[FileEntry]:
    """Return the sorted listing of ``path`` with ".." unless at the root."""
    try:
        scan = os.scandir(path)
    except OSError as e:
        raise LocalIOError(f"{path}: {e.strerror or e}") from e

    entries: List[FileEntry] = []
    with scan as it:
        for dirent in it:
            try:
                st = dirent.stat()
            except OSError:
                # dangling symlink and friends: list it, without metadata
                entries.append(FileEntry(name=dirent.name))
                continue
            is_dir = dirent.is_dir()
            entries.append(FileEntry(
                name=dirent.name,
                size=None if is_dir else st.st_size,
                modified=st.st_mtime,
                is_dir=is_dir,
            ))
    return sort_entries(entries, with_parent=not is_root(path))


def count_local_files(path: str) -> int:
    """Recursive count of regular files below ``path`` (a file counts as 1)."""
    if not os.path.isdir(path):
        return 1 if os.path.exists(path) else 0
    try:
        names = os.listdir(path)
    except OSError:
        return 0
    return sum(count_local_files(os.path.join(path, n)) for n in names)


class LocalTarget:
    """Mutation target for the local panel, scoped to one directory."""

    def __init__(self, path: str):
        self.path = path

    def _join(self, name: str) -> str:
        return os.path.join(self.path, name)

    @property
    def current_path(self) -> str:
        return self.path

    def list(self) -> List[FileEntry]:
        return load_local_directory(self.path)

    def rename(self, old: str, new: str):
        try:
            os.rename(self._join(old), self._join(new))
        except OSError as e:
            raise LocalIOError(f"{old}: {e.strerror or e}") from e

    def mkdir(self, name: str):
        try:
            os.mkdir(self._join(name))
        except OSError as e:
            raise LocalIOError(f"{name}: {e.strerror or e}") from e

    def delete_file(self, name: str):
        try:
            os.remove(self._join(name))
        except OSError as e:
            raise LocalIOError(f"{name}: {e.strerror or e}") from e

    def delete_directory(self, name: str):
        try:
            shutil.rmtree(self._join(name))
        except OSError as e:
            raise LocalIOError(f"{name}: {e.strerror or e}") from e
