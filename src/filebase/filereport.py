from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from .filemodel import FileEntry
from .filemodel import RankOrder
from .filestore import FileStore

if TYPE_CHECKING:
    from typing import Protocol

    class _FilebaseConfig(Protocol):
        @property
        def report_stdout(self) -> bool:
            ...

        @property
        def report_file(self) -> str | None:
            ...


class FileReport:
    """Rank stored files and write the rankings to the configured targets."""

    logger = logging.getLogger(__name__)

    def __init__(self, store: FileStore, config: _FilebaseConfig) -> None:
        """Initialize the report."""
        self._store = store
        self._config = config
        self._report_lines: deque[str] = deque()

    def biggest(self, dirid: int | None, count: int) -> list[FileEntry]:
        """Return at most `count` files with the largest latest size."""
        return self._store.latest_ranking(dirid, RankOrder.BIGGEST, count)

    def oldest(self, dirid: int | None, count: int) -> list[FileEntry]:
        """Return at most `count` files with the oldest modification time."""
        return self._store.latest_ranking(dirid, RankOrder.OLDEST, count)

    def newest(self, dirid: int | None, count: int) -> list[FileEntry]:
        """Return at most `count` files with the newest modification time."""
        return self._store.latest_ranking(dirid, RankOrder.NEWEST, count)

    def fastest(self, dirid: int | None, count: int) -> list[FileEntry]:
        """Return at most `count` files with the highest growth rate."""
        return self._store.growth_ranking(dirid, count)

    def add_section(self, title: str, entries: list[FileEntry]) -> None:
        """Queue a titled section, one line per entry, followed by a blank line."""
        self._report_lines.append(f"*** {title.upper()} ***")
        self._report_lines.extend(str(entry) for entry in entries)
        self._report_lines.append("")

    def emit(self, *, batch_size: int = 500) -> None:
        """
        Write all queued lines to the configured targets. Empties the queue.

        Keyword Args:
            batch_size: The number of lines to write at a time. Defaults to 500.
        """
        count = 0
        while self._report_lines:
            lines = self._get_lines(batch_size)

            self.to_stdout(lines)
            self.to_file(lines)

            count += len(lines)

        self.logger.debug("Emitted %d report lines.", count)

    def _get_lines(self, max_lines: int) -> list[str]:
        """Take up to `max_lines` lines off the queue."""
        lines: list[str] = []
        while self._report_lines and len(lines) < max_lines:
            lines.append(self._report_lines.popleft())

        return lines

    def to_file(self, report_lines: list[str]) -> None:
        """
        Append report lines to the configured report file.

        Args:
            report_lines: A list of lines to write.
        """
        filename = self._config.report_file
        if not filename or not report_lines:
            return

        with open(filename, "a") as file_out:
            file_out.write("\n".join(report_lines) + "\n")

        self.logger.debug("Emitted %d lines to %s", len(report_lines), filename)

    def to_stdout(self, report_lines: list[str]) -> None:
        """
        Print report lines to stdout.

        Args:
            report_lines: A list of lines to write.
        """
        if not self._config.report_stdout or not report_lines:
            return

        print("\n".join(report_lines))
