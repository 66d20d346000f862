from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from .filemodel import ScanRecord
from .filemodel import ScanResult
from .filemodel import ScanState
from .filestore import FileStore
from .filewalker import FileWalker
from .filewriter import FILES_PER_BATCH
from .filewriter import FileWriter

if TYPE_CHECKING:
    from typing import Protocol

    class _FilebaseConfig(Protocol):
        @property
        def batch_size(self) -> int:
            ...

        @property
        def exclude_directory_pattern(self) -> str | None:
            ...

        @property
        def exclude_file_pattern(self) -> str | None:
            ...


# How often a blocked handoff checks whether the writer has failed
HANDOFF_POLL_SECONDS = 0.1


class FileScanner:
    """Run complete scans of root directories into a FileStore."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        store: FileStore,
        *,
        batch_size: int = FILES_PER_BATCH,
        clock: Callable[[], float] = time.time,
        exclude_directory_pattern: str | None = None,
        exclude_file_pattern: str | None = None,
    ) -> None:
        """
        Initialize a new FileScanner.

        Args:
            store: The store every scan writes to. Scans run one at a time.

        Keyword Args:
            batch_size: Records per committed transaction, also the capacity
                of the walker to writer handoff queue.
            clock: Source of capture times, passed to the walker.
            exclude_directory_pattern: Passed to the walker.
            exclude_file_pattern: Passed to the walker.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        self._store = store
        self._batch_size = batch_size
        self._clock = clock
        self._exclude_directory_pattern = exclude_directory_pattern
        self._exclude_file_pattern = exclude_file_pattern

        self.state = ScanState.IDLE

    @classmethod
    def from_config(cls, config: _FilebaseConfig, store: FileStore) -> FileScanner:
        """Build a FileScanner from the given configuration."""
        return cls(
            store,
            batch_size=config.batch_size,
            exclude_directory_pattern=config.exclude_directory_pattern,
            exclude_file_pattern=config.exclude_file_pattern,
        )

    def scan(self, root: str) -> ScanResult:
        """
        Walk the root, write every regular file, then evict files not seen.

        Eviction only happens once the writer has committed its final batch.
        If anything fails before that point the store keeps every committed
        batch and nothing is evicted.

        Raises:
            PathResolutionError: The root cannot be canonicalized.
            StoreWriteError: A write failed; the open batch was rolled back.
        """
        self._set_state(ScanState.IDLE)
        tic = time.perf_counter()

        try:
            walker = FileWalker(
                root,
                clock=self._clock,
                exclude_directory_pattern=self._exclude_directory_pattern,
                exclude_file_pattern=self._exclude_file_pattern,
            )
            dirid = self._store.get_directory_id(walker.root)
            self._store.reset_seen()

            self.logger.info("Scanning %s...", walker.root)
            writer = self._drain(walker, dirid)

            self._set_state(ScanState.EVICTING)
            for directory in walker.unlisted_directories:
                self.logger.warning("Keeping unseen files under %s", directory)
            evicted = self._store.evict_unseen(
                dirid,
                keep_under=walker.unlisted_directories,
            )

        except Exception:
            self._set_state(ScanState.FAILED)
            raise

        self._set_state(ScanState.DONE)
        toc = time.perf_counter()

        self.logger.info("Scan of %s finished in %s seconds", walker.root, toc - tic)
        self.logger.info(
            "Recorded %s files, evicted %s, skipped %s entries",
            writer.records_written,
            evicted,
            walker.entry_errors,
        )
        self.logger.info(
            "%s now holds %s files and %s samples",
            walker.root,
            self._store.count_files(dirid),
            self._store.count_samples(dirid),
        )

        return ScanResult(
            root=walker.root,
            dirid=dirid,
            files_recorded=writer.records_written,
            batches_committed=writer.batches_committed,
            entry_errors=walker.entry_errors,
            files_evicted=evicted,
            elapsed_seconds=toc - tic,
            state=self.state,
            unlisted_directories=tuple(walker.unlisted_directories),
        )

    def _drain(self, walker: FileWalker, dirid: int) -> FileWriter:
        """
        Feed the walker into a writer thread and wait for it to finish.

        Returns:
            The finished writer, once every record has been committed.

        Raises:
            Whatever stopped the writer.
        """
        channel = self._new_channel()
        writer = FileWriter(self._store, dirid, batch_size=self._batch_size)
        thread = threading.Thread(
            target=writer.run,
            args=(channel,),
            name="filebase-writer",
        )

        self._set_state(ScanState.WALKING)
        thread.start()
        try:
            for record in walker.walk():
                if not self._handoff(channel, record, writer):
                    break

        finally:
            self._set_state(ScanState.DRAINING)
            self._handoff(channel, None, writer)
            thread.join()

        if writer.error is not None:
            raise writer.error

        return writer

    def _new_channel(self) -> queue.Queue[ScanRecord | None]:
        """Return the bounded walker to writer queue."""
        return queue.Queue(maxsize=self._batch_size)

    @staticmethod
    def _handoff(
        channel: queue.Queue[ScanRecord | None],
        record: ScanRecord | None,
        writer: FileWriter,
    ) -> bool:
        """
        Block until the record is queued. False if the writer has failed.

        A None record closes the stream.
        """
        while not writer.failed.is_set():
            try:
                channel.put(record, timeout=HANDOFF_POLL_SECONDS)
                return True

            except queue.Full:
                continue

        return False

    def _set_state(self, state: ScanState) -> None:
        self.logger.debug("Scan state %s -> %s", self.state.name, state.name)
        self.state = state
