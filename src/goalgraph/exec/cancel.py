"""Cross-process cancellation flag for a running execution."""

from __future__ import annotations

import os
import stat
from pathlib import Path

CANCEL_FILE = "cancel.request"


class CancelFlag:
    """A regular file inside the execution's run directory.

    ``goalgraph cancel`` raises the flag from another process; the executor
    polls it through ``__call__`` before each level. Symlinks never count as
    a raised flag and are refused when raising one.
    """

    def __init__(self, run_dir: Path) -> None:
        self.path = run_dir / CANCEL_FILE

    def __call__(self) -> bool:
        return self.is_raised()

    def is_raised(self) -> bool:
        try:
            return stat.S_ISREG(self.path.lstat().st_mode)
        except OSError:
            return False

    def raise_flag(self) -> None:
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0)
        if self.path.is_symlink():
            raise OSError(f"cancel flag must not be symlink: {self.path}")
        fd = os.open(self.path, flags, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write("cancel requested\n")

    def clear(self) -> None:
        try:
            if not stat.S_ISDIR(self.path.lstat().st_mode):
                self.path.unlink()
        except OSError:
            return
