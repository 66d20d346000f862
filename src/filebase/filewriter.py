from __future__ import annotations

import logging
import queue
import threading

from .filemodel import ScanRecord
from .filestore import FileStore

FILES_PER_BATCH = 1024


class FileWriter:
    """Commit scan records to the store in fixed-size batches."""

    logger = logging.getLogger("filebase.FileWriter")

    def __init__(
        self,
        store: FileStore,
        dirid: int,
        *,
        batch_size: int = FILES_PER_BATCH,
    ) -> None:
        """
        Initialize a writer for one scan of one root directory.

        Args:
            store: The store to write to. The writer owns its connection
                until run() returns.
            dirid: The root directory the records belong to.

        Keyword Args:
            batch_size: The number of records per transaction. Defaults to
                FILES_PER_BATCH.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        self._store = store
        self._dirid = dirid
        self._batch_size = batch_size

        self.records_written = 0
        self.batches_committed = 0
        self.error: Exception | None = None
        self.failed = threading.Event()

    def run(self, channel: queue.Queue[ScanRecord | None]) -> None:
        """
        Consume records until the end marker. Thread target.

        Any failure is kept in `error` and signalled through `failed`; the
        caller is expected to raise it once the thread has joined.
        """
        try:
            self._consume(channel)

        except Exception as error:
            self.logger.error(
                "Writer stopped after %s committed batches: %s",
                self.batches_committed,
                error,
            )
            self.error = error
            self.failed.set()

    def _consume(self, channel: queue.Queue[ScanRecord | None]) -> None:
        """Write every record, committing each full batch and the final one."""
        pending = 0
        self._store.begin()
        try:
            while True:
                record = channel.get()
                if record is None:
                    break

                self.write_record(record)
                pending += 1

                if pending == self._batch_size:
                    self._commit(pending)
                    pending = 0
                    self._store.begin()

            self._commit(pending)

        except BaseException:
            self._store.rollback()
            raise

    def write_record(self, record: ScanRecord) -> None:
        """Resolve the file, append its sample, and mark it seen."""
        fileid = self._store.resolve_file(self._dirid, record.path)
        self._store.record_sample(
            fileid,
            record.sampletime,
            record.mode,
            record.size,
            record.mtime,
        )
        self._store.mark_seen(fileid)

    def _commit(self, pending: int) -> None:
        self._store.commit()
        self.records_written += pending
        if pending:
            self.batches_committed += 1
            self.logger.debug(
                "Committed batch %s (%s records)",
                self.batches_committed,
                pending,
            )
