"""Rename, mkdir and batch delete against one panel's directory.

Every operation re-lists the panel afterwards, so the visible listing
always reflects the state left behind, including after failures.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from vela.models.panel import PanelModel
from vela.services.errors import SftpError

log = logging.getLogger(__name__)


@dataclass
class DeleteSummary:
    total: int
    succeeded: int = 0
    # Only the most recent failure is kept.
    last_error: Optional[str] = None
    refresh_error: Optional[str] = None

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def message(self, single_name: Optional[str] = None) -> str:
        if self.refresh_error:
            return self.refresh_error
        if self.last_error:
            return f"{self.succeeded}/{self.total} deleted, error: {self.last_error}"
        if self.total == 1 and single_name:
            return f"'{single_name}' deleted"
        return f"{self.succeeded} entries deleted"


class MutationOps:
    """Synchronous mutations on a target (``RemoteSession`` or ``LocalTarget``).

    The target must provide ``rename``, ``mkdir``, ``delete_file``,
    ``delete_directory``, ``list`` and ``current_path``.
    """

    def __init__(self, target, panel: PanelModel):
        self.target = target
        self.panel = panel

    def refresh(self):
        """Re-list the target into the panel, keeping the cursor position."""
        entries = self.target.list()
        self.panel.load(self.target.current_path, entries, keep_cursor=True)

    def rename(self, old: str, new: str) -> str:
        try:
            self.target.rename(old, new)
            message = f"Renamed: {old} → {new}"
        except SftpError as e:
            log.warning("Rename %s -> %s failed: %s", old, new, e)
            message = f"Rename failed: {e}"
        return self._refresh_with(message)

    def mkdir(self, name: str) -> str:
        try:
            self.target.mkdir(name)
            message = f"Directory '{name}' created"
        except SftpError as e:
            log.warning("mkdir %s failed: %s", name, e)
            message = f"Create directory failed: {e}"
        return self._refresh_with(message)

    def delete_batch(self, items: Iterable[Tuple[str, bool]]) -> DeleteSummary:
        """Delete every ``(name, is_dir)`` item, carrying on past failures.

        The panel is refreshed once, after the whole batch.
        """
        items = list(items)
        summary = DeleteSummary(total=len(items))
        for name, is_dir in items:
            try:
                if is_dir:
                    self.target.delete_directory(name)
                else:
                    self.target.delete_file(name)
                summary.succeeded += 1
            except SftpError as e:
                log.warning("Delete %s failed: %s", name, e)
                summary.last_error = f"'{name}': {e}"
        try:
            self.refresh()
        except SftpError as e:
            summary.refresh_error = f"Listing failed: {e}"
        return summary

    def _refresh_with(self, message: str) -> str:
        try:
            self.refresh()
        except SftpError as e:
            return f"Listing failed: {e}"
        return message
