from __future__ import annotations

from typing import Sequence, Tuple, Union

from .errors import InvalidPathError


PathLike = Union[str, Sequence[str]]


def norm_path(p: str) -> str:
    """Canonical archive key for a user-supplied path string.

    Backslashes become '/', outer slashes and '.' segments go away, and
    '..' is refused. Empty interior segments ("a//b") survive so that
    ``Home.insert`` can reject them instead of silently merging.
    """
    p = p.replace("\\", "/").strip("/")
    if not p:
        return ""
    parts = [q for q in p.split("/") if q != "."]
    if ".." in parts:
        raise InvalidPathError(f"Path may not contain '..': {p!r}")
    return "/".join(parts)


def split_path(p: PathLike) -> Tuple[str, ...]:
    """Split an archive path into its segments; the root is ``()``.

    Strings go through ``norm_path``; sequences are taken as already split.
    """
    if isinstance(p, str):
        key = norm_path(p)
        return tuple(key.split("/")) if key else ()
    parts = tuple(p)
    if ".." in parts:
        raise InvalidPathError(f"Path may not contain '..': {join_path(parts)!r}")
    return parts


def join_path(segments: Sequence[str]) -> str:
    return "/".join(segments)
