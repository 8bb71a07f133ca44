from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from .errors import ArchiveIOError, InvalidPathError, MalformedHeaderError, NotFoundError
from .header import HeaderLayout, deserialize, read_layout
from .pathutil import PathLike, join_path
from .tree import File, Folder, Home


class ArchiveReader:
    """Read access to an archive held entirely in memory.

    The whole archive is loaded on ``open()``; lookups and extraction then
    slice the buffer. This bounds usable archive size to available memory.
    """
    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.data: Optional[bytes] = None
        self.layout: Optional[HeaderLayout] = None
        self.tree: Optional[Home] = None

    @classmethod
    def from_bytes(cls, data: bytes) -> "ArchiveReader":
        r = cls()
        r._load(bytes(data))
        return r

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.data is not None:
            return
        if self.path is None:
            raise RuntimeError("No archive path to open")
        if not os.path.exists(self.path):
            raise NotFoundError(f"No such archive: {self.path}")
        try:
            with open(self.path, "rb") as fh:
                data = fh.read()
        except OSError as exc:
            raise ArchiveIOError(f"Cannot read {self.path}: {exc}") from exc
        self._load(data)

    def close(self):
        self.data = None
        self.layout = None
        self.tree = None

    # queries
    @property
    def content_offset(self) -> int:
        self._require_open()
        return self.layout.content_offset

    @property
    def content_length(self) -> int:
        self._require_open()
        return len(self.data) - self.layout.content_offset

    def list(self, include_folders: bool = False) -> List[str]:
        self._require_open()
        if include_folders:
            return [join_path(n.path) for n in self.tree.walk()]
        return [join_path(path) for path, _off, _size in self.tree.flatten()]

    def get_file(self, path: PathLike) -> bytes:
        self._require_open()
        try:
            node = self.tree.lookup(path)
        except InvalidPathError as exc:
            # a path that climbs out of the archive names nothing in it
            raise NotFoundError(f"Not found: {path!r}") from exc
        if not isinstance(node, File):
            raise NotFoundError(f"Not a file: {join_path(node.path) or '<root>'}")
        return self._slice(node)

    def find_paths(self, pattern: str) -> List[str]:
        """Paths (files and folders) whose last segment contains ``pattern``."""
        self._require_open()
        return [join_path(n.path) for n in self.tree.walk() if pattern in n.name]

    def extract(self, target_directory: str):
        """Write every folder and file of the archive below ``target_directory``.

        Aborts on the first filesystem error; files already written stay.
        """
        self._require_open()
        try:
            os.makedirs(target_directory, exist_ok=True)
            for node in self.tree.walk():
                dst = os.path.join(target_directory, *node.path)
                if isinstance(node, Folder):
                    os.makedirs(dst, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(dst), exist_ok=True)
                with open(dst, "wb") as wf:
                    wf.write(self._slice(node))
        except OSError as exc:
            raise ArchiveIOError(f"Extraction to {target_directory} failed: {exc}") from exc

    def info(self) -> Dict[str, Any]:
        self._require_open()
        return {
            "header_size": self.layout.header_size,
            "json_length": self.layout.json_length,
            "content_offset": self.layout.content_offset,
            "content_length": self.content_length,
            "files": sum(1 for _ in self.tree.files()),
            "folders": sum(1 for _ in self.tree.folders()),
            "total_size": self.tree.total_size(),
        }

    # internals
    def _require_open(self):
        if self.data is None:
            raise RuntimeError("Archive not open")

    def _slice(self, f: File) -> bytes:
        start = self.layout.content_offset + f.offset
        return self.data[start:start + f.size]

    def _load(self, data: bytes):
        """Parse framing and header, then bounds-check every file range."""
        layout, header_bytes = read_layout(data)
        tree = deserialize(header_bytes)
        content_length = len(data) - layout.content_offset
        for f in tree.files():
            if f.end > content_length:
                raise MalformedHeaderError(
                    f"File data of {join_path(f.path)!r} extends past the end of the archive"
                )
        self.data = data
        self.layout = layout
        self.tree = tree
