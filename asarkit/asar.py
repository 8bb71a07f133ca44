from __future__ import annotations

import os
from typing import List, Optional

from .errors import InvalidOperationError, NotFoundError
from .pathutil import PathLike
from .reader import ArchiveReader
from .tree import Home, ListingEntry
from .writer import ArchiveWriter, scan_directory


MODE_DIRECTORY = "directory"
MODE_ARCHIVE = "archive"


class Asar:
    """Entry point for both a source directory and a packed archive.

    A directory opens in directory mode and can only be packed; an archive
    file opens in archive mode and can be listed, read and extracted.
    Instances are not safe to share between threads without a lock.
    """
    def __init__(self, path: str, mode: str, *, listing: Optional[List[ListingEntry]] = None,
                 reader: Optional[ArchiveReader] = None):
        self.path = path
        self.mode = mode
        self.listing = listing
        self.reader = reader

    @classmethod
    def open(cls, path: str) -> "Asar":
        path = os.fspath(path)
        if os.path.isdir(path):
            return cls(path, MODE_DIRECTORY, listing=scan_directory(path))
        if os.path.isfile(path):
            reader = ArchiveReader(path)
            reader.open()
            return cls(path, MODE_ARCHIVE, reader=reader)
        raise NotFoundError(f"No such file or directory: {path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self.reader is not None:
            self.reader.close()
            self.reader = None

    def __repr__(self) -> str:
        return f"Asar({self.path!r}, mode={self.mode!r})"

    @property
    def tree(self) -> Home:
        if self.mode == MODE_DIRECTORY:
            return Home.from_listing(self.listing)
        return self._archive().tree

    # directory mode
    def pack(self, destination: str) -> Home:
        """Write the scanned directory as an archive at ``destination``."""
        if self.mode != MODE_DIRECTORY:
            raise InvalidOperationError("pack() requires a directory; this is an archive")
        with ArchiveWriter(os.fspath(destination)) as w:
            for entry in self.listing:
                w.add_file(entry.path, os.path.join(self.path, *entry.path), entry.size)
            return w.finalize()

    # archive mode
    def list(self, include_folders: bool = False) -> List[str]:
        return self._archive().list(include_folders=include_folders)

    def get_file(self, path: PathLike) -> bytes:
        return self._archive().get_file(path)

    def find_paths(self, pattern: str) -> List[str]:
        return self._archive().find_paths(pattern)

    def extract(self, target_directory: str):
        self._archive().extract(os.fspath(target_directory))

    def _archive(self) -> ArchiveReader:
        if self.mode != MODE_ARCHIVE:
            raise InvalidOperationError("Operation requires an archive; this is a directory")
        if self.reader is None:
            raise RuntimeError("Archive closed")
        return self.reader


def open(path: str) -> Asar:
    """Open a directory or an archive file, like ``tarfile.open``."""
    return Asar.open(path)
