from __future__ import annotations

import logging
import os
from configparser import ConfigParser

DEFAULT_DATABASE_PATH = os.path.join("~", ".filebase.sqlite3")

NEW_CONFIG = """\
[system]
# The sqlite database holding every sample ever taken.
database_path = {filename}
# Number of files written per committed transaction.
batch_size = 1024

[scan]
# One root directory per line.
root_directories = .

# Exclude directories and files from the scan.
# The following are regular expressions. Directories are matched against their
# path below the root (for example /build/cache), files against the file name.
# Multiline values are combined into a single regular expression.
exclude_directories =
exclude_files =

[report]
# Number of files listed in each report.
list_size = 25
biggest = false
oldest = false
newest = false
fastest = false

# Write reports to stdout and/or append them to a file.
stdout = true
file =

    """


class FilebaseConfig:
    """Configuration for scans and reports."""

    logger = logging.getLogger("filebase.FilebaseConfig")

    def __init__(self, filepath: str | None = None) -> None:
        """
        Load the configuration from the given file.

        Args:
            filepath: The INI file to read. When None every value falls back
                to its default.

        Raises:
            ValueError: The file could not be read.
        """
        self._config = ConfigParser()
        if filepath is None:
            return

        success = self._config.read(filepath)

        if not success:
            raise ValueError(f"Could not read config file at {filepath}")

        self.logger.debug("Loaded config from %s", filepath)

    @property
    def database_path(self) -> str:
        """Return the path to the database file, with ~ expanded."""
        path = self._config.get("system", "database_path", fallback="")
        return os.path.expanduser(path or DEFAULT_DATABASE_PATH)

    @property
    def batch_size(self) -> int:
        """Return the number of files written per transaction."""
        return self._config.getint("system", "batch_size", fallback=1024)

    @property
    def root_directories(self) -> list[str]:
        """Return the root directories to scan, one per line."""
        config_line = self._config.get("scan", "root_directories", fallback=".")
        return [line.strip() for line in config_line.splitlines() if line.strip()]

    @property
    def exclude_directory_pattern(self) -> str | None:
        """Return the pattern to exclude directories from the walk."""
        config_line = self._config.get("scan", "exclude_directories", fallback="")
        lines = [line.strip() for line in config_line.splitlines() if line.strip()]
        return "|".join(lines) or None

    @property
    def exclude_file_pattern(self) -> str | None:
        """Return the pattern to exclude files from the walk."""
        config_line = self._config.get("scan", "exclude_files", fallback="")
        lines = [line.strip() for line in config_line.splitlines() if line.strip()]
        return "|".join(lines) or None

    @property
    def list_size(self) -> int:
        """Return how many files each report lists."""
        return self._config.getint("report", "list_size", fallback=25)

    @property
    def report_biggest(self) -> bool:
        return self._config.getboolean("report", "biggest", fallback=False)

    @property
    def report_oldest(self) -> bool:
        return self._config.getboolean("report", "oldest", fallback=False)

    @property
    def report_newest(self) -> bool:
        return self._config.getboolean("report", "newest", fallback=False)

    @property
    def report_fastest(self) -> bool:
        return self._config.getboolean("report", "fastest", fallback=False)

    @property
    def report_stdout(self) -> bool:
        """Return whether to write reports to stdout."""
        return self._config.getboolean("report", "stdout", fallback=True)

    @property
    def report_file(self) -> str | None:
        """Return the file reports are appended to, or None."""
        return self._config.get("report", "file", fallback="") or None


def write_new_config(filename: str) -> None:
    """Write a new config file if one does not exist."""
    if os.path.exists(filename):
        return

    database_name = filename.replace(".ini", ".sqlite3")
    config = NEW_CONFIG.format(filename=database_name)

    with open(filename, "w") as config_file:
        config_file.write(config)
