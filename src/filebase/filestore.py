from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import closing
from typing import TYPE_CHECKING

from .fileerrors import DuplicateSampleError
from .fileerrors import StoreWriteError
from .filemodel import FileEntry
from .filemodel import RankOrder

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType
    from typing import Protocol

    class _FilebaseConfig(Protocol):
        @property
        def database_path(self) -> str:
            ...


SCHEMA = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS dir (
    dirid INTEGER PRIMARY KEY,
    dirpath TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS file (
    fileid INTEGER PRIMARY KEY,
    dirid INTEGER NOT NULL,
    path TEXT NOT NULL,
    FOREIGN KEY (dirid) REFERENCES dir(dirid) ON UPDATE RESTRICT ON DELETE CASCADE
);
CREATE UNIQUE INDEX IF NOT EXISTS filediridpath ON file(dirid, path);

CREATE TABLE IF NOT EXISTS sample (
    fileid INTEGER NOT NULL,
    sampletime INTEGER NOT NULL,
    mode INTEGER NOT NULL,
    size INTEGER NOT NULL,
    mtime INTEGER NOT NULL,
    PRIMARY KEY (fileid, sampletime),
    FOREIGN KEY (fileid) REFERENCES file(fileid) ON UPDATE RESTRICT ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS samplesize ON sample(size);
CREATE INDEX IF NOT EXISTS samplemtime ON sample(mtime);

CREATE VIEW IF NOT EXISTS rates AS
    SELECT bounds.fileid, bounds.mintime, bounds.maxtime,
        CAST(latest.size - earliest.size AS REAL)
            / NULLIF(bounds.maxtime - bounds.mintime, 0) AS rate
    FROM (
        SELECT fileid, MIN(sampletime) AS mintime, MAX(sampletime) AS maxtime
        FROM sample
        GROUP BY fileid
    ) AS bounds
    JOIN sample AS earliest
        ON earliest.fileid = bounds.fileid AND earliest.sampletime = bounds.mintime
    JOIN sample AS latest
        ON latest.fileid = bounds.fileid AND latest.sampletime = bounds.maxtime;

CREATE TEMPORARY TABLE IF NOT EXISTS found (fileid INTEGER PRIMARY KEY);
"""


class FileStore:
    """Database of scanned roots, their files, and time-stamped file samples."""

    logger = logging.getLogger("filebase.FileStore")

    def __init__(self, database_path: str = ":memory:") -> None:
        """
        Initialize a new FileStore connected to the given path.

        The connection runs in autocommit mode. Writers group their work with
        begin(), commit(), and rollback(). The connection may be handed to a
        writer thread as long as only one thread uses it at a time.

        Args:
            database_path: The path to the database file. Defaults to an
                in-memory database.
        """
        self.logger.debug("Initializing FileStore at %s", database_path)
        self._connection = sqlite3.connect(
            database_path,
            isolation_level=None,
            check_same_thread=False,
        )
        self._connection.executescript(SCHEMA)
        self.logger.debug("Created schema")

    @classmethod
    def from_config(cls, config: _FilebaseConfig) -> FileStore:
        """Build a FileStore from the given configuration."""
        return cls(config.database_path)

    def __enter__(self) -> FileStore:
        """Enter a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Exit a context manager, closing the connection."""
        self.close()

    def close(self) -> None:
        """Roll back any open transaction and close the connection."""
        self.rollback()
        self._connection.close()

    @property
    def in_transaction(self) -> bool:
        return self._connection.in_transaction

    def begin(self) -> None:
        """Open a new transaction."""
        self._execute("BEGIN")

    def commit(self) -> None:
        """Commit the open transaction."""
        self._execute("COMMIT")

    def rollback(self) -> None:
        """Roll back the open transaction, if there is one."""
        if self._connection.in_transaction:
            self.logger.debug("Rolling back open transaction")
            self._connection.execute("ROLLBACK")

    def _execute(
        self,
        sql: str,
        parameters: tuple[object, ...] = (),
    ) -> sqlite3.Cursor:
        """Execute a write-path statement, raising StoreWriteError on failure."""
        try:
            return self._connection.execute(sql, parameters)

        except sqlite3.Error as error:
            verb = sql.split()[0]
            raise StoreWriteError(f"{error} (while executing {verb})") from error

    def get_directory_id(self, dirpath: str) -> int:
        """Return the id of the root directory, inserting it if it is new."""
        dirid = self.find_directory_id(dirpath)
        if dirid is not None:
            return dirid

        cursor = self._execute("INSERT INTO dir (dirpath) VALUES (?)", (dirpath,))
        self.logger.debug("Added directory %s as %s", dirpath, cursor.lastrowid)
        return int(cursor.lastrowid)  # type: ignore[arg-type]

    def find_directory_id(self, dirpath: str) -> int | None:
        """Return the id of the root directory or None if it was never scanned."""
        with closing(self._connection.cursor()) as cursor:
            cursor.execute("SELECT dirid FROM dir WHERE dirpath = ?", (dirpath,))
            row = cursor.fetchone()

        return row[0] if row else None

    def resolve_file(self, dirid: int, path: str) -> int:
        """
        Return the id of the file at `path` under `dirid`, inserting it if new.

        The unique index on (dirid, path) keeps a single row per file even if
        the same path is resolved many times.
        """
        row = self._execute(
            "SELECT fileid FROM file WHERE dirid = ? AND path = ?",
            (dirid, path),
        ).fetchone()
        if row:
            return row[0]

        cursor = self._execute(
            "INSERT INTO file (dirid, path) VALUES (?, ?)",
            (dirid, path),
        )
        return int(cursor.lastrowid)  # type: ignore[arg-type]

    def record_sample(
        self,
        fileid: int,
        sampletime: int,
        mode: int,
        size: int,
        mtime: int,
    ) -> None:
        """
        Append one sample for the file.

        Raises:
            DuplicateSampleError: A sample for (fileid, sampletime) exists.
            StoreWriteError: Any other write failure.
        """
        try:
            self._connection.execute(
                """
                INSERT INTO sample (fileid, sampletime, mode, size, mtime)
                VALUES (?, ?, ?, ?, ?)
                """,
                (fileid, sampletime, mode, size, mtime),
            )

        except sqlite3.IntegrityError as error:
            if "UNIQUE" not in str(error):
                raise StoreWriteError(str(error)) from error

            raise DuplicateSampleError(
                f"file {fileid} already sampled at {sampletime}: {error}"
            ) from error

        except sqlite3.Error as error:
            raise StoreWriteError(str(error)) from error

    def mark_seen(self, fileid: int) -> None:
        """Add the file to the seen-set of the scan in progress."""
        self._execute("INSERT OR IGNORE INTO found (fileid) VALUES (?)", (fileid,))

    def reset_seen(self) -> None:
        """Empty the seen-set. Called once at the start of every scan."""
        self._execute("DELETE FROM found")

    def evict_unseen(self, dirid: int, keep_under: Iterable[str] = ()) -> int:
        """
        Delete every file under `dirid` that is missing from the seen-set.

        Samples are removed by cascade. Only call this once the seen-set for
        the root is complete.

        Args:
            dirid: The root directory to evict from.
            keep_under: Directories the walk could not list. Files below them
                were not seen but may still exist, so they are kept.

        Returns:
            The number of files evicted.
        """
        sql = """
            DELETE FROM file
            WHERE dirid = ? AND fileid NOT IN (SELECT fileid FROM found)
        """
        parameters: list[int | str] = [dirid]
        for directory in keep_under:
            prefix = directory.rstrip(os.sep) + os.sep
            sql += " AND substr(path, 1, ?) != ?"
            parameters.extend((len(prefix), prefix))

        cursor = self._execute(sql, tuple(parameters))
        self.logger.debug("Evicted %s files from directory %s", cursor.rowcount, dirid)
        return cursor.rowcount

    def latest_ranking(
        self,
        dirid: int | None,
        order: RankOrder,
        limit: int,
    ) -> list[FileEntry]:
        """
        Rank files by their most recent sample.

        Args:
            dirid: The root to rank, or None for every root.
            order: Size descending, mtime ascending, or mtime descending.
            limit: The maximum number of entries returned.
        """
        self._check_limit(limit)
        with closing(self._connection.cursor()) as cursor:
            # order.value comes from RankOrder only, never from user input
            cursor.execute(
                f"""
                SELECT file.path, sample.sampletime, sample.mode, sample.size,
                    sample.mtime
                FROM file
                JOIN sample ON sample.fileid = file.fileid
                WHERE (? IS NULL OR file.dirid = ?)
                    AND sample.sampletime = (
                        SELECT MAX(sampletime) FROM sample AS latest
                        WHERE latest.fileid = file.fileid
                    )
                ORDER BY {order.value}, file.path
                LIMIT ?
                """,
                (dirid, dirid, limit),
            )
            # Watch the order of the columns here, must match the model
            return [FileEntry(*row) for row in cursor.fetchall()]

    def growth_ranking(self, dirid: int | None, limit: int) -> list[FileEntry]:
        """
        Rank files by growth rate between their earliest and latest samples.

        Files with a single sample have no rate and sort last.
        """
        self._check_limit(limit)
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                """
                SELECT file.path, sample.sampletime, sample.mode, sample.size,
                    sample.mtime, rates.rate
                FROM rates
                JOIN file ON file.fileid = rates.fileid
                JOIN sample
                    ON sample.fileid = rates.fileid
                    AND sample.sampletime = rates.maxtime
                WHERE (? IS NULL OR file.dirid = ?)
                ORDER BY rates.rate IS NULL, rates.rate DESC, file.path
                LIMIT ?
                """,
                (dirid, dirid, limit),
            )
            # Watch the order of the columns here, must match the model
            return [FileEntry(*row) for row in cursor.fetchall()]

    def count_files(self, dirid: int | None = None) -> int:
        """Return the number of file rows, optionally for one root."""
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                "SELECT COUNT(*) FROM file WHERE (? IS NULL OR dirid = ?)",
                (dirid, dirid),
            )
            return cursor.fetchone()[0]

    def count_samples(self, dirid: int | None = None) -> int:
        """Return the number of sample rows, optionally for one root."""
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) FROM sample
                JOIN file ON file.fileid = sample.fileid
                WHERE (? IS NULL OR file.dirid = ?)
                """,
                (dirid, dirid),
            )
            return cursor.fetchone()[0]

    @staticmethod
    def _check_limit(limit: int) -> None:
        # sqlite treats a negative LIMIT as no limit at all
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
