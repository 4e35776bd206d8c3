"""The one dialog that may be active at a time.

``App.dialog`` holds exactly one of these or ``None``.
"""

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from vela.models.profile import Profile


class Side(enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"

    def toggle(self) -> "Side":
        return Side.REMOTE if self is Side.LOCAL else Side.LOCAL


@dataclass
class PasswordDialog:
    profile: Profile
    error: Optional[str] = None


@dataclass
class RenameDialog:
    side: Side
    original: str


@dataclass
class MkdirDialog:
    side: Side


@dataclass
class DeleteDialog:
    side: Side
    # (name, is_dir) in listing order
    entries: List[Tuple[str, bool]] = field(default_factory=list)


@dataclass
class HelpDialog:
    pass


Dialog = Union[PasswordDialog, RenameDialog, MkdirDialog, DeleteDialog, HelpDialog]
