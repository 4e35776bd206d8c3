"""Scratch space for the remote edit round trip.

Layout: ``$TMPDIR/vela-XXXX/<host>-<token>/<remote basename>``. One slot
per edit keeps the original filename visible to the editor even when two
remote files share a name.
"""

import atexit
import logging
import re
import shutil
import tempfile
import uuid
from pathlib import Path

log = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class TempManager:
    _base_dir: Path | None = None
    _cleanup_registered = False

    @classmethod
    def _base(cls) -> Path:
        if cls._base_dir is None or not cls._base_dir.exists():
            cls._base_dir = Path(tempfile.mkdtemp(prefix="vela-"))
            if not cls._cleanup_registered:
                atexit.register(cls.cleanup)
                cls._cleanup_registered = True
        return cls._base_dir

    @classmethod
    def scratch_path(cls, remote_path: str, host: str = "") -> Path:
        """Fresh local path for editing ``remote_path`` fetched from ``host``."""
        token = uuid.uuid4().hex[:8]
        tag = _UNSAFE.sub("_", host)
        slot = cls._base() / (f"{tag}-{token}" if tag else token)
        slot.mkdir(mode=0o700)
        return slot / (_basename(remote_path) or "unnamed")

    @classmethod
    def discard(cls, path):
        """Delete one scratch file and its slot; anything else is left alone."""
        path = Path(path)
        path.unlink(missing_ok=True)
        if cls._base_dir is not None and path.parent.parent == cls._base_dir:
            shutil.rmtree(path.parent, ignore_errors=True)
        else:
            log.debug("%s is not a scratch slot, only the file was removed", path)

    @classmethod
    def cleanup(cls):
        if cls._base_dir is not None and cls._base_dir.exists():
            shutil.rmtree(cls._base_dir, ignore_errors=True)
        cls._base_dir = None


def _basename(remote_path: str) -> str:
    return remote_path.rstrip("/").rsplit("/", 1)[-1]
