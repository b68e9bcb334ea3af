from __future__ import annotations

import errno
import os
import re
import stat
from contextlib import suppress
from pathlib import Path
from typing import Any

import yaml

from goalgraph.config.schema import Goal
from goalgraph.util.errors import GoalError

_SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_GOAL_ID_MAX_LEN = 128
_ALLOWED_GOAL_KEYS = {"id", "title", "description", "constraints", "success_criteria"}


def _is_non_blank_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and "\x00" not in value


def _read_text_no_follow(path: Path) -> str:
    try:
        meta = path.lstat()
    except FileNotFoundError as exc:
        raise GoalError(f"goal file not found: {path}") from exc
    except (OSError, RuntimeError) as exc:
        raise GoalError(f"failed to read goal file: {path}") from exc
    if stat.S_ISLNK(meta.st_mode):
        raise GoalError(f"goal file must not be symlink: {path}")
    if not stat.S_ISREG(meta.st_mode):
        raise GoalError(f"failed to read goal file: {path}")

    open_flags = os.O_RDONLY
    if hasattr(os, "O_NOFOLLOW"):
        open_flags |= os.O_NOFOLLOW
    fd: int | None = None
    try:
        fd = os.open(str(path), open_flags)
        with os.fdopen(fd, "r", encoding="utf-8") as f:
            fd = None
            return f.read()
    except UnicodeError as exc:
        raise GoalError(f"failed to decode goal file as utf-8: {path}") from exc
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            raise GoalError(f"goal file must not be symlink: {path}") from exc
        raise GoalError(f"failed to read goal file: {path}") from exc
    finally:
        if fd is not None:
            with suppress(OSError):
                os.close(fd)


def parse_goal(raw: Any, *, default_id: str = "goal") -> Goal:
    if not isinstance(raw, dict):
        raise GoalError("goal root must be a mapping")
    if any(not isinstance(key, str) for key in raw):
        raise GoalError("goal keys must be strings")
    unknown = set(raw.keys()) - _ALLOWED_GOAL_KEYS
    if unknown:
        raise GoalError(f"goal contains unknown fields: {sorted(unknown)}")

    goal_id = raw.get("id", default_id)
    if not isinstance(goal_id, str) or not _SAFE_ID_PATTERN.fullmatch(goal_id):
        raise GoalError("goal.id must match ^[A-Za-z0-9][A-Za-z0-9._-]*$")
    if len(goal_id) > _GOAL_ID_MAX_LEN:
        raise GoalError(f"goal.id must be <= {_GOAL_ID_MAX_LEN} characters")

    title = raw.get("title")
    if not _is_non_blank_str(title):
        raise GoalError("goal.title is required and must be non-empty string")

    description = raw.get("description", "")
    if not isinstance(description, str):
        raise GoalError("goal.description must be string")

    constraints = raw.get("constraints") or {}
    if not isinstance(constraints, dict) or any(not isinstance(k, str) for k in constraints):
        raise GoalError("goal.constraints must be mapping with string keys")

    criteria = raw.get("success_criteria") or []
    if not isinstance(criteria, list) or not all(_is_non_blank_str(c) for c in criteria):
        raise GoalError("goal.success_criteria must be list of non-empty strings")

    return Goal(
        id=goal_id,
        title=title.strip(),
        description=description,
        constraints=constraints,
        success_criteria=criteria,
    )


def load_goal(path: Path) -> Goal:
    content = _read_text_no_follow(path)
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise GoalError(f"failed to parse yaml: {exc}") from exc
    default_id = path.stem if _SAFE_ID_PATTERN.fullmatch(path.stem) else "goal"
    return parse_goal(raw, default_id=default_id)
