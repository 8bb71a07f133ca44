from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple, Union

from .errors import InvalidPathError, NotFoundError
from .pathutil import PathLike, join_path, split_path


@dataclass(frozen=True)
class ListingEntry:
    """One regular file found by a directory scan (no offset yet)."""
    path: Tuple[str, ...]
    size: int

    @property
    def arc_path(self) -> str:
        return join_path(self.path)


@dataclass
class File:
    path: Tuple[str, ...]
    offset: int
    size: int

    @property
    def name(self) -> str:
        return self.path[-1]

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass
class Folder:
    path: Tuple[str, ...]
    children: Dict[str, "Node"] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.path[-1]


Node = Union[File, Folder]


def _check_segment(name: str) -> None:
    if name in ("", ".", "..") or "/" in name:
        raise InvalidPathError(f"Invalid path segment: {name!r}")


@dataclass
class Home:
    """Root of an archive tree.

    Children map a unique name to a ``File`` or a nested ``Folder``. The
    root has no path of its own; every node below it records its full
    segment path from the root.
    """
    children: Dict[str, Node] = field(default_factory=dict)

    path: Tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)

    @classmethod
    def from_listing(cls, listing: Iterable[ListingEntry]) -> "Home":
        """Build a tree from a flat listing, assigning cumulative offsets.

        The N-th entry's offset is the sum of the sizes of the entries
        before it, so contents are laid out back to back in listing order.
        """
        home = cls()
        offset = 0
        for entry in listing:
            home.insert(entry.path, entry.size, offset)
            offset += entry.size
        return home

    def insert(self, path: PathLike, size: int, offset: int = 0) -> File:
        segments = split_path(path)
        if not segments:
            raise InvalidPathError("Cannot insert a file at the archive root")
        for name in segments:
            _check_segment(name)
        if size < 0 or offset < 0:
            raise ValueError("size and offset must be non-negative")
        parent: Union[Home, Folder] = self
        for depth, name in enumerate(segments[:-1], start=1):
            child = parent.children.get(name)
            if child is None:
                child = Folder(path=segments[:depth])
                parent.children[name] = child
            elif isinstance(child, File):
                raise InvalidPathError(
                    f"Cannot create folder {join_path(segments[:depth])!r}: a file exists there"
                )
            parent = child
        leaf = segments[-1]
        if leaf in parent.children:
            raise InvalidPathError(f"Entry already exists: {join_path(segments)!r}")
        node = File(path=segments, offset=offset, size=size)
        parent.children[leaf] = node
        return node

    def lookup(self, path: PathLike) -> Union["Home", Node]:
        segments = split_path(path)
        node: Union[Home, Node] = self
        for name in segments:
            if isinstance(node, File):
                raise NotFoundError(f"Not found: {join_path(segments)}")
            child = node.children.get(name)
            if child is None:
                raise NotFoundError(f"Not found: {join_path(segments)}")
            node = child
        return node

    def walk(self) -> Iterator[Node]:
        """Pre-order walk over every node below the root, names ascending."""
        stack: List[Node] = [self.children[k] for k in sorted(self.children, reverse=True)]
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, Folder):
                stack.extend(node.children[k] for k in sorted(node.children, reverse=True))

    def files(self) -> Iterator[File]:
        return (n for n in self.walk() if isinstance(n, File))

    def folders(self) -> Iterator[Folder]:
        return (n for n in self.walk() if isinstance(n, Folder))

    def flatten(self) -> Iterator[Tuple[Tuple[str, ...], int, int]]:
        for f in self.files():
            yield f.path, f.offset, f.size

    def total_size(self) -> int:
        return sum(f.size for f in self.files())
