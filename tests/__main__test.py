from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from filebase import __main__
from filebase.fileerrors import StoreWriteError
from filebase.filestore import FileStore


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "tree"
    root.mkdir()
    (root / "small.bin").write_bytes(b"x" * 10)
    (root / "large.bin").write_bytes(b"x" * 1000)
    return root


@pytest.fixture
def database_path(tmp_path: Path) -> str:
    return str(tmp_path / "filebase.sqlite3")


def test_parse_args():
    args = __main__.parse_args(["root1", "root2", "--biggest", "--list", "5"])
    assert args.roots == ["root1", "root2"]
    assert args.biggest is True
    assert args.fastest is False
    assert args.list == 5
    assert args.noscan is False


def test_parse_args_defaults():
    args = __main__.parse_args([])
    assert args.roots == []
    assert args.config is None
    assert args.db is None
    assert args.list is None
    assert args.batch_size is None


@pytest.mark.parametrize(
    "cli_args",
    [
        ["--batch-size", "0"],
        ["--batch-size", "-3"],
        ["--list", "-1"],
        ["--list", "many"],
    ],
)
def test_parse_args_rejects_invalid_counts(cli_args: list[str], capsys) -> None:
    with pytest.raises(SystemExit) as error:
        __main__.parse_args(cli_args)

    assert error.value.code == 2
    assert "argument --" in capsys.readouterr().err


def test_parse_args_accepts_zero_list() -> None:
    args = __main__.parse_args(["--list", "0", "--batch-size", "1"])
    assert args.list == 0
    assert args.batch_size == 1


def test_main_scans_and_reports(tree: Path, database_path: str, capsys) -> None:
    cli_args = [str(tree), "--db", database_path, "--biggest", "--list", "1"]

    result = __main__.main(cli_args=cli_args)

    assert result == 0
    output = capsys.readouterr().out
    assert "*** BIGGEST FILES ***" in output
    assert "large.bin" in output
    assert "small.bin" not in output

    with FileStore(database_path) as store:
        assert store.count_files() == 2


def test_main_noscan_does_not_scan(tree: Path, database_path: str) -> None:
    cli_args = [str(tree), "--db", database_path, "--noscan"]

    with patch("filebase.__main__.FileScanner.scan") as mock_scan:
        result = __main__.main(cli_args=cli_args)

    assert result == 0
    assert mock_scan.call_count == 0


def test_main_noscan_reports_existing(tree: Path, database_path: str, capsys) -> None:
    __main__.main(cli_args=[str(tree), "--db", database_path])
    capsys.readouterr()

    result = __main__.main(
        cli_args=[str(tree), "--db", database_path, "--noscan", "--oldest"]
    )

    assert result == 0
    assert "*** OLDEST FILES ***" in capsys.readouterr().out


def test_main_missing_root_continues(
    tree: Path,
    database_path: str,
    tmp_path: Path,
) -> None:
    missing = str(tmp_path / "missing")

    result = __main__.main(cli_args=[missing, str(tree), "--db", database_path])

    assert result == __main__.EXIT_PATH_ERROR
    with FileStore(database_path) as store:
        assert store.count_files() == 2


def test_main_store_error_exits(tree: Path, database_path: str) -> None:
    cli_args = [str(tree), "--db", database_path]

    with patch("filebase.__main__.FileScanner.scan") as mock_scan:
        mock_scan.side_effect = StoreWriteError("disk I/O error")
        result = __main__.main(cli_args=cli_args)

    assert result == __main__.EXIT_STORE_ERROR


def test_main_batch_size_override(tree: Path, database_path: str) -> None:
    cli_args = [str(tree), "--db", database_path, "--batch-size", "1"]

    with patch("filebase.__main__.FileScanner.scan") as mock_scan:
        __main__.main(cli_args=cli_args)

    assert mock_scan.call_count == 1


def test_main_create_config():
    cli_args = ["--config", "tests/new_test_config.ini", "--make-config"]

    with patch("filebase.__main__.write_new_config") as mock_write:
        result = __main__.main(cli_args=cli_args)

    assert result == 0
    mock_write.assert_called_once_with("tests/new_test_config.ini")


def test_main_creates_log_file_with_database(tree: Path, database_path: str):
    cli_args = [str(tree), "--db", database_path, "--log-file"]
    log_path = Path(database_path).with_suffix(".log")

    try:
        result = __main__.main(cli_args=cli_args)

        assert result == 0
        assert log_path.exists()

    finally:
        for handler in logging.root.handlers:
            if isinstance(handler, logging.FileHandler):
                handler.close()
                logging.root.handlers.remove(handler)
