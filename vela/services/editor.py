"""External programs: the user's editor and one-off shell commands.

The editor's exit code is ignored.
"""

import logging
import os
import shlex
import shutil
import subprocess
from typing import Optional, Tuple

log = logging.getLogger(__name__)

FALLBACK_EDITORS = ("vim", "nano", "vi")


def find_editor(preferred: Optional[str] = None) -> Optional[list]:
    """First installed candidate of: preference, $EDITOR, $VISUAL, vim, nano, vi."""
    candidates = [preferred, os.environ.get("EDITOR"), os.environ.get("VISUAL"),
                  *FALLBACK_EDITORS]
    for candidate in candidates:
        if not candidate or not candidate.strip():
            continue
        argv = shlex.split(candidate)
        if shutil.which(argv[0]):
            return argv
    return None


def launch_editor(path: str, preferred: Optional[str] = None) -> bool:
    """Run the editor on ``path`` and wait. False when no editor was found."""
    argv = find_editor(preferred)
    if argv is None:
        log.warning("No editor found; %s left untouched", path)
        return False
    try:
        subprocess.run([*argv, path], check=False)
    except OSError as e:
        log.warning("Editor %s failed to start: %s", argv[0], e)
        return False
    return True


def run_shell(command: str, cwd: str) -> Tuple[str, int]:
    """Run ``command`` with ``sh -c`` in ``cwd``; stdout then stderr, and the exit code."""
    log.debug("Running shell command in %s: %s", cwd, command)
    result = subprocess.run(["sh", "-c", command], cwd=cwd, capture_output=True,
                            text=True, errors="replace", check=False)
    return result.stdout + result.stderr, result.returncode
