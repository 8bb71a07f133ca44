"""
asarkit: pack, inspect and extract .asar archives.

An archive is a JSON header describing a directory tree (file sizes plus
offsets into a content region) followed by the concatenated file contents.

- ``asarkit.open(path)`` opens a source directory (to pack it) or an archive
  (to list, read and extract it).
- ``asarkit.writer.pack`` / ``ArchiveWriter`` build archives.
- ``asarkit.reader.ArchiveReader`` reads them.
- ``asarkit.header`` holds the header codec and the on-disk framing.

Archives are read fully into memory; very large archives need as much RAM.
"""

from .asar import Asar, open
from .errors import (
    AsarError,
    ArchiveIOError,
    InvalidOperationError,
    InvalidPathError,
    MalformedHeaderError,
    NotFoundError,
)

__version__ = "0.1"

__all__ = [
    "Asar",
    "open",
    "AsarError",
    "ArchiveIOError",
    "InvalidOperationError",
    "InvalidPathError",
    "MalformedHeaderError",
    "NotFoundError",
    "constants",
    "header",
    "reader",
    "tree",
    "writer",
]
