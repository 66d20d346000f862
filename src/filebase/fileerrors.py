"""
Errors raised while scanning and storing file metadata.

Per-entry errors are logged by the walker and never escape a scan. Path
resolution errors end the scan of one root. Store write errors end the scan
and leave only the batches that were already committed.
"""
from __future__ import annotations


class FilebaseError(Exception):
    """Base exception for filebase."""


class EntryError(FilebaseError):
    """A single directory entry could not be listed or stat'ed."""

    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class PathResolutionError(FilebaseError):
    """A root directory could not be made absolute and symlink free."""


class StoreWriteError(FilebaseError):
    """A write to the metadata store failed; the open batch was rolled back."""


class DuplicateSampleError(StoreWriteError):
    """A sample for the same file and capture time already exists."""
