from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from filebase.fileerrors import PathResolutionError
from filebase.filewalker import FileWalker


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """
    tree/
        file01.txt          (10 bytes)
        directory01/
            file02.txt      (1000 bytes)
            directory02/
                file03.txt  (500 bytes)
        link.txt -> file01.txt
    """
    root = tmp_path / "tree"
    (root / "directory01" / "directory02").mkdir(parents=True)
    (root / "file01.txt").write_bytes(b"x" * 10)
    (root / "directory01" / "file02.txt").write_bytes(b"x" * 1000)
    (root / "directory01" / "directory02" / "file03.txt").write_bytes(b"x" * 500)
    (root / "link.txt").symlink_to(root / "file01.txt")
    return root


def test_canonicalize_relative_path(tree: Path, monkeypatch) -> None:
    monkeypatch.chdir(tree.parent)

    assert FileWalker.canonicalize("tree") == str(tree.resolve())
    assert FileWalker.canonicalize("./tree/directory01/..") == str(tree.resolve())


def test_canonicalize_resolves_symlinked_root(tree: Path, tmp_path: Path) -> None:
    alias = tmp_path / "alias"
    alias.symlink_to(tree, target_is_directory=True)

    assert FileWalker.canonicalize(str(alias)) == str(tree.resolve())


def test_canonicalize_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(PathResolutionError):
        FileWalker.canonicalize(str(tmp_path / "missing"))


def test_canonicalize_file_root_raises(tree: Path) -> None:
    with pytest.raises(PathResolutionError):
        FileWalker.canonicalize(str(tree / "file01.txt"))


def test_canonicalize_symlink_loop_raises(tmp_path: Path) -> None:
    (tmp_path / "loop_a").symlink_to(tmp_path / "loop_b")
    (tmp_path / "loop_b").symlink_to(tmp_path / "loop_a")

    with pytest.raises(PathResolutionError):
        FileWalker.canonicalize(str(tmp_path / "loop_a"))


def test_walk_yields_regular_files_only(tree: Path) -> None:
    walker = FileWalker(str(tree), clock=lambda: 1234.9)

    records = sorted(walker.walk(), key=lambda record: record.path)

    root = str(tree.resolve())
    assert [record.path for record in records] == [
        os.path.join(root, "directory01", "directory02", "file03.txt"),
        os.path.join(root, "directory01", "file02.txt"),
        os.path.join(root, "file01.txt"),
    ]
    assert [record.size for record in records] == [500, 1000, 10]
    assert all(record.sampletime == 1234 for record in records)
    assert walker.entry_errors == 0


def test_walk_records_mode_and_mtime(tree: Path) -> None:
    target = tree / "file01.txt"
    target.chmod(0o640)
    os.utime(target, (1_600_000_000, 1_600_000_000))
    walker = FileWalker(str(tree), exclude_directory_pattern="directory01")

    records = list(walker.walk())

    assert len(records) == 1
    assert records[0].mode == 0o640
    assert records[0].mtime == 1_600_000_000


def test_walk_excludes_files(tree: Path) -> None:
    walker = FileWalker(str(tree), exclude_file_pattern="file0[12]")

    records = list(walker.walk())

    assert [Path(record.path).name for record in records] == ["file03.txt"]


def test_walk_excluded_directory_is_pruned(tree: Path) -> None:
    walker = FileWalker(str(tree), exclude_directory_pattern=r"directory01$")

    records = list(walker.walk())

    assert [Path(record.path).name for record in records] == ["file01.txt"]


def test_walk_continues_past_stat_error(tree: Path) -> None:
    real_lstat = os.lstat
    broken = str(tree.resolve() / "directory01" / "file02.txt")

    def flaky_lstat(path, *args, **kwargs):
        if str(path) == broken:
            raise PermissionError(13, "Permission denied", path)
        return real_lstat(path, *args, **kwargs)

    walker = FileWalker(str(tree))
    with patch("filebase.filewalker.os.lstat", side_effect=flaky_lstat):
        records = list(walker.walk())

    assert len(records) == 2
    assert broken not in [record.path for record in records]
    assert walker.entry_errors == 1


def test_walk_continues_past_listing_error(tree: Path) -> None:
    walker = FileWalker(str(tree))

    def failing_walk(top, onerror=None, **kwargs):
        onerror(PermissionError(13, "Permission denied", str(tree / "hidden")))
        yield top, [], ["file01.txt"]

    with patch("filebase.filewalker.os.walk", side_effect=failing_walk):
        records = list(walker.walk())

    assert [Path(record.path).name for record in records] == ["file01.txt"]
    assert walker.entry_errors == 1
    assert walker.unlisted_directories == [str(tree / "hidden")]


def test_walk_never_excludes_the_root(tree: Path) -> None:
    walker = FileWalker(str(tree), exclude_directory_pattern="tree")

    records = list(walker.walk())

    assert len(records) == 3


def test_walk_matches_directories_below_the_root(tree: Path) -> None:
    walker = FileWalker(str(tree), exclude_directory_pattern=r"^/directory01/")

    records = sorted(Path(record.path).name for record in walker.walk())

    assert records == ["file01.txt", "file02.txt"]


def test_walk_records_unlisted_root(tree: Path) -> None:
    walker = FileWalker(str(tree))
    real_scandir = os.scandir

    def failing_scandir(path=".", *args, **kwargs):
        if os.fspath(path) == walker.root:
            raise PermissionError(13, "Permission denied", path)
        return real_scandir(path, *args, **kwargs)

    with patch("filebase.filewalker.os.scandir", side_effect=failing_scandir):
        records = list(walker.walk())

    assert records == []
    assert walker.unlisted_directories == [walker.root]
    assert walker.entry_errors == 1


def test_walk_logs_entry_errors(tree: Path, caplog: pytest.LogCaptureFixture) -> None:
    walker = FileWalker(str(tree))

    walker._on_error(FileNotFoundError(2, "No such file", "gone.txt"))

    assert "gone.txt" in caplog.text
    assert walker.entry_errors == 1


def test_is_ignored_filename() -> None:
    walker = FileWalker(".", exclude_file_pattern="file0.*")

    assert walker._is_ignored_filename("file01.txt") is True
    assert walker._is_ignored_filename("other.txt") is False


def test_is_ignored_directory() -> None:
    walker = FileWalker(".", exclude_directory_pattern=r"\/foo$|\/bar")

    assert walker._is_ignored_directory("/foo") is True
    assert walker._is_ignored_directory("/foo/bar/baz") is True
    assert walker._is_ignored_directory("/foo/baz") is False
