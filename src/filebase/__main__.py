from __future__ import annotations

import argparse
import logging
from pathlib import Path

from filebase.fileconfig import FilebaseConfig
from filebase.fileconfig import write_new_config
from filebase.fileerrors import PathResolutionError
from filebase.fileerrors import StoreWriteError
from filebase.filereport import FileReport
from filebase.filescanner import FileScanner
from filebase.filestore import FileStore
from filebase.filewalker import FileWalker

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_CONFIG = "filebase.ini"

EXIT_PATH_ERROR = 1
EXIT_STORE_ERROR = 2


def positive_int(value: str) -> int:
    """Argparse type for counts that must be at least 1."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def non_negative_int(value: str) -> int:
    """Argparse type for counts that may be zero."""
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="filebase",
        description="Record file sizes and ages over time. Report the biggest, "
        "oldest, newest, and fastest growing files.",
    )
    parser.add_argument(
        "roots",
        nargs="*",
        help="Directories to scan. Default: root_directories from the config.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="The path to the configuration file.",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the database file. Overrides the config.",
    )
    parser.add_argument(
        "--biggest",
        help="List the biggest files.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--oldest",
        help="List the files with the oldest modification time.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--newest",
        help="List the files with the newest modification time.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--fastest",
        help="List the fastest growing files.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--noscan",
        help="Don't rescan. Just report from the existing database.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--list",
        type=non_negative_int,
        default=None,
        help="How many files to list. Overrides the config.",
    )
    parser.add_argument(
        "--batch-size",
        type=positive_int,
        default=None,
        help="Files written per transaction. Overrides the config.",
    )
    parser.add_argument(
        "--debug",
        help="Enable debug logging.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--log-file",
        help="Enable logging to a file next to the config (or database) file.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--make-config",
        help="Create a default configuration file at --config and exit.",
        default=False,
        action="store_true",
    )
    return parser.parse_args(args)


def add_file_handler_to_logging(anchor_filepath: str) -> None:
    """Add a file handler to the root logger next to the file provided."""
    filepath = Path(anchor_filepath).expanduser().absolute()
    log_filepath = filepath.parent / f"{filepath.stem}.log"
    file_handler = logging.FileHandler(log_filepath)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger().addHandler(file_handler)


def report_root(
    report: FileReport,
    dirid: int,
    args: argparse.Namespace,
    config: FilebaseConfig,
) -> None:
    """Queue every requested ranking for one root."""
    count = args.list if args.list is not None else config.list_size

    if args.biggest or config.report_biggest:
        report.add_section("biggest files", report.biggest(dirid, count))

    if args.oldest or config.report_oldest:
        report.add_section("oldest files", report.oldest(dirid, count))

    if args.newest or config.report_newest:
        report.add_section("newest files", report.newest(dirid, count))

    if args.fastest or config.report_fastest:
        report.add_section("fastest growing files", report.fastest(dirid, count))


def main(*, cli_args: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(cli_args)

    if args.make_config:
        write_new_config(args.config or DEFAULT_CONFIG)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    config = FilebaseConfig(args.config)

    if args.log_file:
        add_file_handler_to_logging(args.config or args.db or config.database_path)

    roots = args.roots or config.root_directories
    exit_code = 0

    store = FileStore(args.db) if args.db else FileStore.from_config(config)

    with store:
        if args.batch_size is None:
            scanner = FileScanner.from_config(config, store)
        else:
            scanner = FileScanner(
                store,
                batch_size=args.batch_size,
                exclude_directory_pattern=config.exclude_directory_pattern,
                exclude_file_pattern=config.exclude_file_pattern,
            )
        report = FileReport(store, config)

        for root in roots:
            try:
                if args.noscan:
                    dirid = store.find_directory_id(FileWalker.canonicalize(root))
                else:
                    dirid = scanner.scan(root).dirid

            except PathResolutionError as error:
                logging.error("Skipping root: %s", error)
                exit_code = EXIT_PATH_ERROR
                continue

            except StoreWriteError as error:
                logging.error("Scan of %s failed: %s", root, error)
                return EXIT_STORE_ERROR

            if dirid is None:
                logging.warning("%s has never been scanned", root)
                continue

            report_root(report, dirid, args, config)
            report.emit()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
