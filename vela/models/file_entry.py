import stat
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

PARENT_NAME = ".."


@dataclass
class FileEntry:
    """One directory child on either side (local or remote)."""

    name: str
    size: Optional[int] = None
    modified: Optional[float] = None
    is_dir: bool = False
    # "rwxr-xr-x" style; only set for remote entries
    permissions: Optional[str] = None

    @classmethod
    def parent(cls) -> "FileEntry":
        return cls(name=PARENT_NAME, is_dir=True)

    @classmethod
    def from_sftp_attr(cls, attr) -> "FileEntry":
        mode = attr.st_mode or 0
        is_dir = stat.S_ISDIR(mode)
        return cls(
            name=attr.filename,
            size=None if is_dir else attr.st_size,
            modified=float(attr.st_mtime) if attr.st_mtime is not None else None,
            is_dir=is_dir,
            permissions=format_permissions(mode) if attr.st_mode is not None else None,
        )

    @property
    def is_parent(self) -> bool:
        return self.name == PARENT_NAME

    def human_size(self) -> str:
        if self.is_dir or self.size is None:
            return ""
        size = float(self.size)
        for unit in ("B", "KB", "MB", "GB"):
            if size < 1024:
                return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} TB"

    def human_time(self) -> str:
        if self.modified is None:
            return "—"
        try:
            return datetime.fromtimestamp(self.modified).strftime("%Y-%m-%d %H:%M")
        except (OverflowError, OSError, ValueError):
            return "—"


def format_permissions(mode: int) -> str:
    """Convert a Unix mode bitmask into a ``rwxr-xr-x`` style string."""
    out = []
    for shift in (6, 3, 0):
        out.append("r" if mode & (4 << shift) else "-")
        out.append("w" if mode & (2 << shift) else "-")
        out.append("x" if mode & (1 << shift) else "-")
    return "".join(out)


def sort_entries(entries: Iterable[FileEntry], with_parent: bool) -> List[FileEntry]:
    """Directories first, then files; case-sensitive by name; ".." leads."""
    children = [e for e in entries if not e.is_parent]
    children.sort(key=lambda e: (not e.is_dir, e.name))
    if with_parent:
        return [FileEntry.parent()] + children
    return children
