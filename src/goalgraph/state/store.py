from __future__ import annotations

import errno
import json
import os
from contextlib import suppress
from pathlib import Path

from goalgraph.state.model import Execution
from goalgraph.util.errors import StateError

EXECUTION_FILE = "execution.json"


def _fsync_directory(path: Path) -> None:
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        with suppress(OSError):
            os.close(fd)


def load_execution(run_dir: Path) -> Execution:
    path = run_dir / EXECUTION_FILE
    if path.is_symlink():
        raise StateError(f"execution file must not be symlink: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise StateError(f"execution not found: {path}") from exc
    except (OSError, UnicodeError) as exc:
        raise StateError(f"failed to read execution: {path}") from exc
    except json.JSONDecodeError as exc:
        raise StateError(f"invalid execution json: {exc}") from exc
    if not isinstance(raw, dict):
        raise StateError("invalid execution field: root")
    if not isinstance(raw.get("id"), str) or not raw["id"]:
        raise StateError("invalid execution field: id")
    if not isinstance(raw.get("plan"), dict):
        raise StateError("invalid execution field: plan")
    try:
        return Execution.from_dict(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise StateError(f"invalid execution plan: {exc}") from exc


def save_execution_atomic(run_dir: Path, execution: Execution) -> None:
    state_path = run_dir / EXECUTION_FILE
    tmp_path = run_dir / f"{EXECUTION_FILE}.tmp"
    payload = json.dumps(execution.to_dict(), ensure_ascii=False, indent=2, default=str)
    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
    if hasattr(os, "O_NOFOLLOW"):
        flags |= os.O_NOFOLLOW
    try:
        fd = os.open(str(tmp_path), flags, 0o600)
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            raise OSError(f"temporary state path must not be symlink: {tmp_path}") from exc
        raise
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise
    try:
        os.replace(tmp_path, state_path)
    except OSError:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise
    _fsync_directory(run_dir)
