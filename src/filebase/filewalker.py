from __future__ import annotations

import logging
import os
import re
import stat
import time
from collections.abc import Callable
from collections.abc import Iterator
from pathlib import Path

from .fileerrors import EntryError
from .fileerrors import PathResolutionError
from .filemodel import ScanRecord


class FileWalker:
    """Enumerate the regular files under one canonical root directory."""

    logger = logging.getLogger("filebase.FileWalker")

    def __init__(
        self,
        root: str,
        *,
        clock: Callable[[], float] = time.time,
        exclude_directory_pattern: str | None = None,
        exclude_file_pattern: str | None = None,
    ) -> None:
        """
        Initialize a walker for the given root.

        Args:
            root: The directory to walk. It is canonicalized immediately.

        Keyword Args:
            clock: Returns the wall-clock time used as the capture time of
                each record. Defaults to time.time.
            exclude_directory_pattern: Regular expression matched against the
                path of each directory below the root, relative to the root
                and with a leading separator (`/build/cache`). Matching
                directories are not descended into. The root itself is never
                excluded.
            exclude_file_pattern: Regular expression matched against each
                file name. Matching files produce no record.

        Raises:
            PathResolutionError: The root cannot be canonicalized.
        """
        self.root = self.canonicalize(root)
        self.entry_errors = 0
        self.unlisted_directories: list[str] = []

        self._clock = clock
        self._exclude_directory_pattern = exclude_directory_pattern
        self._exclude_file_pattern = exclude_file_pattern

    @staticmethod
    def canonicalize(path: str) -> str:
        """
        Return the absolute path of a directory with every symlink resolved.

        Raises:
            PathResolutionError: The path does not exist, loops, or is not a
                directory.
        """
        try:
            resolved = Path(path).absolute().resolve(strict=True)

        except (OSError, RuntimeError) as error:
            raise PathResolutionError(f"Cannot resolve '{path}': {error}") from error

        if not resolved.is_dir():
            raise PathResolutionError(f"'{resolved}' is not a directory")

        return str(resolved)

    def walk(self) -> Iterator[ScanRecord]:
        """
        Yield a record for every regular file under the root.

        The sequence is lazy and can only be consumed once. Entries that cannot
        be listed or stat'ed are logged and skipped. Directories that cannot be
        listed are kept in `unlisted_directories`.
        """
        self.logger.debug("Walking directory: %s", self.root)

        for dirpath, dirnames, filenames in os.walk(
            self.root, onerror=self._on_listing_error
        ):
            if dirpath != self.root and self._is_ignored_directory(
                self._relative_dirpath(dirpath)
            ):
                self.logger.debug("Ignoring directory '%s'", dirpath)
                dirnames[:] = []
                continue

            for filename in filenames:
                if self._is_ignored_filename(filename):
                    self.logger.debug("Ignoring file `%s`", filename)
                    continue

                record = self._build_record(os.path.join(dirpath, filename))
                if record is not None:
                    yield record

    def _relative_dirpath(self, dirpath: str) -> str:
        """Return the directory path below the root, with a leading separator."""
        return os.sep + os.path.relpath(dirpath, self.root)

    def _build_record(self, filepath: str) -> ScanRecord | None:
        """Stat the path, returning None for errors and non-regular files."""
        try:
            stat_result = os.lstat(filepath)

        except OSError as error:
            self._on_error(error, filepath)
            return None

        if not stat.S_ISREG(stat_result.st_mode):
            return None

        return ScanRecord.from_stat(filepath, stat_result, int(self._clock()))

    def _on_listing_error(self, error: OSError) -> None:
        """Remember a directory that could not be listed and keep walking."""
        self.unlisted_directories.append(error.filename or self.root)
        self._on_error(error)

    def _on_error(self, error: OSError, filepath: str | None = None) -> None:
        """Log a per-entry error and keep walking."""
        entry_error = EntryError(filepath or error.filename or self.root, error)
        self.entry_errors += 1
        self.logger.warning("Skipping entry: %s", entry_error)

    def _is_ignored_filename(self, filename: str) -> bool:
        """True if the filename is in the excluded pattern."""
        ptn = self._exclude_file_pattern
        if ptn and re.search(ptn, filename):
            return True

        return False

    def _is_ignored_directory(self, dirpath: str) -> bool:
        """True if the directory path is in the excluded pattern."""
        ptn = self._exclude_directory_pattern
        if ptn and re.search(ptn, dirpath):
            return True

        return False
