from __future__ import annotations

import io
import os
import stat
from typing import BinaryIO, List, Optional, Sequence, Tuple

from .errors import ArchiveIOError, NotFoundError
from .header import pack_header, serialize
from .pathutil import split_path
from .tree import Home, ListingEntry


def scan_directory(source: str) -> List[ListingEntry]:
    """Walk ``source`` and list every regular file with its size.

    Entries of each directory are visited in ascending name order, depth
    first, so files and sub-folders interleave by name. Symlinks and other
    special files are skipped.
    """
    if not os.path.isdir(source):
        raise NotFoundError(f"Not a directory: {source}")
    listing: List[ListingEntry] = []

    def _walk(fs_dir: str, prefix: Tuple[str, ...]) -> None:
        try:
            names = sorted(os.listdir(fs_dir))
        except OSError as exc:
            raise ArchiveIOError(f"Cannot list {fs_dir}: {exc}") from exc
        for name in names:
            full = os.path.join(fs_dir, name)
            try:
                st = os.lstat(full)
            except OSError as exc:
                raise ArchiveIOError(f"Cannot stat {full}: {exc}") from exc
            if stat.S_ISDIR(st.st_mode):
                _walk(full, prefix + (name,))
            elif stat.S_ISREG(st.st_mode):
                listing.append(ListingEntry(path=prefix + (name,), size=st.st_size))

    _walk(source, ())
    return listing


def _read_source(fs_path: str, expected: int) -> bytes:
    try:
        with open(fs_path, "rb") as rf:
            data = rf.read()
    except OSError as exc:
        raise ArchiveIOError(f"Cannot read {fs_path}: {exc}") from exc
    if len(data) != expected:
        raise ArchiveIOError(f"{fs_path} changed size since it was scanned ({expected} -> {len(data)} bytes)")
    return data


def write_archive(fh: BinaryIO, listing: Sequence[ListingEntry], sources: Sequence[str]) -> Home:
    """Write a complete archive to ``fh``.

    ``sources[i]`` is the filesystem path holding the bytes of
    ``listing[i]``. Offsets are assigned in listing order and contents are
    written in that same order. Returns the tree that was serialized.
    """
    if len(listing) != len(sources):
        raise ValueError("listing and sources differ in length")
    tree = Home.from_listing(listing)
    fh.write(pack_header(serialize(tree)))
    for entry, fs_path in zip(listing, sources):
        fh.write(_read_source(fs_path, entry.size))
    return tree


def pack(source_directory: str) -> bytes:
    """Pack a directory into archive bytes held in memory."""
    listing = scan_directory(source_directory)
    sources = [os.path.join(source_directory, *e.path) for e in listing]
    buf = io.BytesIO()
    write_archive(buf, listing, sources)
    return buf.getvalue()


class ArchiveWriter:
    """Collects files and writes them out as a single archive."""
    def __init__(self, out_path: str):
        self.out_path = out_path
        self.f: Optional[BinaryIO] = None
        self.listing: List[ListingEntry] = []
        self.sources: List[str] = []
        self.tree: Optional[Home] = None
        self._seen: Home = Home()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        try:
            self.f = open(self.out_path, "wb")
        except OSError as exc:
            raise ArchiveIOError(f"Cannot create {self.out_path}: {exc}") from exc

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def add_file(self, arc_path, fs_path: str, size: Optional[int] = None) -> bool:
        """Queue ``fs_path`` to be stored under ``arc_path``.

        ``size`` is the length recorded by an earlier scan; when omitted the
        file is stat-ed now. A file whose length differs at write time fails.
        The archive being written is never stored in itself: such a call is
        ignored and returns False.
        """
        if self.is_output(fs_path):
            return False
        segments = split_path(arc_path)
        if size is None:
            try:
                size = os.path.getsize(fs_path)
            except OSError as exc:
                raise ArchiveIOError(f"Cannot stat {fs_path}: {exc}") from exc
        # Reject collisions now rather than at finalize time
        self._seen.insert(segments, size)
        self.listing.append(ListingEntry(path=segments, size=size))
        self.sources.append(fs_path)
        return True

    def is_output(self, fs_path: str) -> bool:
        return os.path.abspath(fs_path) == os.path.abspath(self.out_path)

    def add_directory(self, source: str, prefix=()):
        """Queue every regular file below ``source``, optionally under ``prefix``."""
        base = split_path(prefix)
        for entry in scan_directory(source):
            self.add_file(base + entry.path, os.path.join(source, *entry.path), entry.size)

    def finalize(self) -> Home:
        if self.f is None:
            raise RuntimeError("Archive not open")
        if self.tree is not None:
            raise RuntimeError("Archive already finalized")
        try:
            self.tree = write_archive(self.f, self.listing, self.sources)
        except OSError as exc:
            raise ArchiveIOError(f"Cannot write {self.out_path}: {exc}") from exc
        return self.tree
