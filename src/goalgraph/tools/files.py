from __future__ import annotations

import asyncio
import errno
import os
import stat
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from goalgraph.util.errors import OperationError


@dataclass(slots=True)
class WriteResult:
    path: str
    size: int

    def to_dict(self) -> dict[str, object]:
        return {"path": self.path, "size": self.size}


class ArtifactWriter(Protocol):
    async def write(self, name: str, content: str) -> WriteResult:
        """Persist ``content`` under ``name``; raise OperationError on failure."""
        ...


def has_symlink_below(root: Path, path: Path) -> bool:
    """Return True when any component between ``root`` and ``path`` is a symlink."""
    current = path
    while current != root and current != current.parent:
        try:
            meta = current.lstat()
        except FileNotFoundError:
            pass
        except (OSError, RuntimeError):
            return True
        else:
            if stat.S_ISLNK(meta.st_mode):
                return True
        current = current.parent
    return False


def _safe_relative_name(name: str) -> PurePosixPath:
    rel = PurePosixPath(name.replace("\\", "/"))
    if not name.strip() or "\x00" in name or rel.is_absolute():
        raise OperationError(f"invalid artifact name: {name!r}", retryable=False)
    if any(part in ("", ".", "..") for part in rel.parts):
        raise OperationError(f"invalid artifact name: {name!r}", retryable=False)
    return rel


class FileArtifactWriter:
    """Writes artifacts beneath ``root``; names are relative paths."""

    def __init__(self, root: Path) -> None:
        self.root = root

    async def write(self, name: str, content: str) -> WriteResult:
        rel = _safe_relative_name(name)
        destination = self.root.joinpath(*rel.parts)
        try:
            await asyncio.to_thread(self._write_sync, destination, content)
        except OSError as exc:
            raise OperationError(f"failed to write artifact {name}: {exc}") from exc
        return WriteResult(path=destination.as_posix(), size=len(content.encode("utf-8")))

    def _write_sync(self, destination: Path, content: str) -> None:
        if has_symlink_below(self.root, destination):
            raise OSError(f"artifact path must not include symlink: {destination}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = destination.with_name(destination.name + ".tmp")
        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
        if hasattr(os, "O_NOFOLLOW"):
            flags |= os.O_NOFOLLOW
        try:
            fd = os.open(str(tmp_path), flags, 0o644)
        except OSError as exc:
            if exc.errno == errno.ELOOP:
                raise OSError(f"artifact path must not be symlink: {tmp_path}") from exc
            raise
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, destination)
        except OSError:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise
