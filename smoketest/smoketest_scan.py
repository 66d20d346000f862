from __future__ import annotations

import argparse
import logging
import random
import shutil
import threading
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from filebase.filereport import FileReport
from filebase.filescanner import FileScanner
from filebase.filestore import FileStore

BASE_DIR: Path = Path(__file__).resolve().parent
TEST_DIR: Path = BASE_DIR / "smoketest_tree"
DATABASE_PATH: Path = BASE_DIR / "smoketest.sqlite3"
DIRECTORY_COUNT = 20
FILE_COUNT_RANGE: tuple[int, int] = (10, 200)
CHANCE_OF_DELETE = 0.05  # out of 1.0

# Time intervals in seconds
FILE_CHURN_INTERVAL = 1
SCAN_INTERVAL = 5

logger = logging.getLogger(__name__)


class _ReportConfig:
    report_stdout = True
    report_file = None


def build_smoketest_tree() -> None:
    """Create a tree of directories with a random number of small files."""
    for index in range(DIRECTORY_COUNT):
        directory = TEST_DIR / f"directory{index:02d}"
        directory.mkdir(parents=True, exist_ok=True)
        for count in range(random.randint(*FILE_COUNT_RANGE)):
            (directory / f"file{count:04d}.bin").write_bytes(b"x" * count)

    logger.debug("Built smoketest tree at %s", TEST_DIR)


def destroy_smoketest_tree() -> None:
    """Remove the smoketest tree and database."""
    shutil.rmtree(TEST_DIR, ignore_errors=True)
    DATABASE_PATH.unlink(missing_ok=True)


def thread_file_churn(stop_flag: threading.Event) -> None:
    """Thread handler: Grow, create, and delete files at a regular interval."""
    while not stop_flag.is_set():
        for path in list(TEST_DIR.rglob("*.bin")):
            if random.random() < CHANCE_OF_DELETE:
                path.unlink(missing_ok=True)
                continue

            with open(path, "ab") as file_out:
                file_out.write(b"x" * random.randint(0, 1024))

        directory = random.choice(list(TEST_DIR.iterdir()))
        (directory / f"new{time.time_ns()}.bin").write_bytes(b"x")

        stop_flag.wait(FILE_CHURN_INTERVAL)


@contextmanager
def smoketest_runner() -> Generator[None, None, None]:
    """Build the tree and keep it changing until the context exits."""
    stop_flag = threading.Event()

    logger.debug("Building smoketest tree...")
    build_smoketest_tree()
    thread = threading.Thread(target=thread_file_churn, args=(stop_flag,))

    try:
        logger.debug("Starting churn thread...")
        thread.start()

        yield None

    finally:
        logger.debug("Stopping churn thread...")
        stop_flag.set()
        thread.join()
        logger.debug("Destroying smoketest tree...")
        destroy_smoketest_tree()


def parse_args() -> str:
    """Parse command line arguments, return log level."""
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set the logging level.",
    )
    return parser.parse_args().log_level


def run() -> int:
    """Scan the churning tree until ctrl-c is pressed - blocking."""
    logging.basicConfig(level=parse_args(), format="%(asctime)s %(message)s")

    with smoketest_runner():
        with FileStore(str(DATABASE_PATH)) as store:
            scanner = FileScanner(store, batch_size=256)
            report = FileReport(store, _ReportConfig())

            while True:
                try:
                    result = scanner.scan(str(TEST_DIR))
                    fastest = report.fastest(result.dirid, 5)
                    report.add_section("fastest growing files", fastest)
                    report.add_section("biggest files", report.biggest(result.dirid, 5))
                    report.emit()
                    time.sleep(SCAN_INTERVAL)

                except KeyboardInterrupt:
                    break

    return 0


if __name__ == "__main__":
    raise SystemExit(run())
