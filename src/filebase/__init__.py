from __future__ import annotations

from .fileconfig import FilebaseConfig
from .filereport import FileReport
from .filescanner import FileScanner
from .filestore import FileStore

__all__ = [
    "FileReport",
    "FileScanner",
    "FileStore",
    "FilebaseConfig",
]
