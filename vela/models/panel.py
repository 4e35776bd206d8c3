from dataclasses import dataclass, field
from typing import List, Optional, Set

from vela.models.file_entry import FileEntry


@dataclass
class PanelModel:
    """Snapshot of one side's listing plus cursor and marks.

    ``marked`` holds indices into the *current* listing; every load clears it.
    """

    path: str
    entries: List[FileEntry] = field(default_factory=list)
    cursor: int = 0
    marked: Set[int] = field(default_factory=set)

    def load(self, path: str, entries: List[FileEntry], keep_cursor: bool = False):
        """Replace the listing.

        Navigation resets the cursor to the top; refreshes keep it where it
        was, clamped to the new listing.
        """
        self.path = path
        self.entries = list(entries)
        self.marked.clear()
        if not keep_cursor:
            self.cursor = 0
        self.cursor = max(0, min(self.cursor, len(self.entries) - 1))

    @property
    def selected(self) -> Optional[FileEntry]:
        if 0 <= self.cursor < len(self.entries):
            return self.entries[self.cursor]
        return None

    def move_up(self):
        if self.cursor > 0:
            self.cursor -= 1

    def move_down(self):
        if self.cursor + 1 < len(self.entries):
            self.cursor += 1

    def select(self, index: int):
        if self.entries:
            self.cursor = max(0, min(index, len(self.entries) - 1))

    def toggle_mark(self, index: Optional[int] = None):
        """Toggle the mark on ``index`` (default: cursor). ".." is never marked."""
        if index is None:
            index = self.cursor
        if not 0 <= index < len(self.entries) or self.entries[index].is_parent:
            return
        if index in self.marked:
            self.marked.remove(index)
        else:
            self.marked.add(index)

    def mark_all(self):
        """Mark every entry but ".."; if all are marked already, clear instead."""
        eligible = {i for i, e in enumerate(self.entries) if not e.is_parent}
        if eligible and eligible <= self.marked:
            self.marked.clear()
        else:
            self.marked |= eligible

    def clear_marks(self):
        self.marked.clear()

    def targeted_entries(self) -> List[FileEntry]:
        """Marked entries in listing order, else the entry under the cursor."""
        if not self.marked:
            entry = self.selected
            if entry is None or entry.is_parent:
                return []
            return [entry]
        return [
            self.entries[i]
            for i in sorted(self.marked)
            if i < len(self.entries) and not self.entries[i].is_parent
        ]
