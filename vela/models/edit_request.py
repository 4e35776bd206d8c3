from dataclasses import dataclass
from typing import Union


@dataclass
class LocalEdit:
    """A local file handed to the editor; the local panel reloads afterwards."""

    path: str

    @property
    def edit_path(self) -> str:
        return self.path


@dataclass
class RemoteEdit:
    """A remote file downloaded to scratch space for editing."""

    scratch_path: str
    remote_path: str
    # st_mtime_ns of the scratch file right after the download
    mtime_before: int

    @property
    def edit_path(self) -> str:
        return self.scratch_path

    @property
    def filename(self) -> str:
        return self.remote_path.rsplit("/", 1)[-1]


EditRequest = Union[LocalEdit, RemoteEdit]
