from __future__ import annotations

import os
from pathlib import Path

import pytest

from goalgraph.exec.cancel import CANCEL_FILE, CancelFlag
from goalgraph.tools.files import FileArtifactWriter, has_symlink_below
from goalgraph.util.errors import OperationError


@pytest.mark.asyncio
async def test_writer_creates_nested_file_and_reports_size(tmp_path: Path) -> None:
    writer = FileArtifactWriter(tmp_path)
    result = await writer.write("docs/readme.md", "héllo")

    target = tmp_path / "docs" / "readme.md"
    assert target.read_text(encoding="utf-8") == "héllo"
    assert result.path == target.as_posix()
    assert result.size == len("héllo".encode("utf-8"))
    assert not (tmp_path / "docs" / "readme.md.tmp").exists()


@pytest.mark.asyncio
async def test_writer_overwrites_existing_artifact(tmp_path: Path) -> None:
    writer = FileArtifactWriter(tmp_path)
    await writer.write("a.txt", "one")
    await writer.write("a.txt", "two")
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "two"


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", "/etc/passwd", "../escape.txt", "a/../../b", "x\x00"])
async def test_writer_rejects_unsafe_names(tmp_path: Path, name: str) -> None:
    with pytest.raises(OperationError) as exc_info:
        await FileArtifactWriter(tmp_path).write(name, "data")
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_writer_refuses_symlinked_directory(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(outside, root / "link")

    with pytest.raises(OperationError, match="symlink"):
        await FileArtifactWriter(root).write("link/file.txt", "data")
    assert not (outside / "file.txt").exists()


def test_has_symlink_below_ignores_missing_components(tmp_path: Path) -> None:
    assert has_symlink_below(tmp_path, tmp_path / "missing" / "file.txt") is False


def test_cancel_flag_raise_and_clear(tmp_path: Path) -> None:
    flag = CancelFlag(tmp_path)
    assert flag() is False
    flag.raise_flag()
    assert flag() is True
    assert (tmp_path / CANCEL_FILE).read_text(encoding="utf-8") == "cancel requested\n"
    flag.clear()
    assert flag() is False
    flag.clear()


def test_cancel_flag_symlink_is_ignored_and_refused(tmp_path: Path) -> None:
    target = tmp_path / "elsewhere"
    target.write_text("x", encoding="utf-8")
    os.symlink(target, tmp_path / CANCEL_FILE)

    flag = CancelFlag(tmp_path)
    assert flag() is False
    with pytest.raises(OSError, match="symlink"):
        flag.raise_flag()
    assert target.read_text(encoding="utf-8") == "x"


def test_cancel_flag_directory_is_not_raised_nor_removed(tmp_path: Path) -> None:
    (tmp_path / CANCEL_FILE).mkdir()
    flag = CancelFlag(tmp_path)
    assert flag() is False
    flag.clear()
    assert (tmp_path / CANCEL_FILE).is_dir()
