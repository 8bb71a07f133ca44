from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from .constants import (
    FRAMING_SIZE,
    FRAMING_STRUCT,
    HEADER_ALIGNMENT,
    HEADER_PICKLE_FIELDS,
    KEY_FILES,
    KEY_OFFSET,
    KEY_SIZE,
    MAX_HEADER_SIZE,
    MAX_SAFE_INTEGER,
    PAD_BYTE,
    SIZE_PICKLE_PAYLOAD,
)
from .errors import MalformedHeaderError
from .pathutil import join_path
from .tree import File, Folder, Home


_OFFSET_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class HeaderLayout:
    """Sizes of the header region.

    ``header_size`` is the size of the header pickle: its two uint32 length
    fields plus the padded header text. ``json_length`` is the exact,
    un-padded length of the header text.
    """
    header_size: int
    json_length: int

    @property
    def padded_length(self) -> int:
        return self.header_size - HEADER_PICKLE_FIELDS

    @property
    def content_offset(self) -> int:
        # size pickle (marker + header_size) precedes the header pickle
        return 8 + self.header_size


def _align(n: int) -> int:
    return (n + HEADER_ALIGNMENT - 1) // HEADER_ALIGNMENT * HEADER_ALIGNMENT


# -------- Tree <-> header text --------

def _encode_dir(node: Union[Home, Folder]) -> Dict[str, Any]:
    files: Dict[str, Any] = {}
    for name in sorted(node.children):
        child = node.children[name]
        if isinstance(child, File):
            files[name] = {KEY_SIZE: child.size, KEY_OFFSET: str(child.offset)}
        else:
            files[name] = _encode_dir(child)
    return {KEY_FILES: files}


def serialize(tree: Home) -> bytes:
    """Render a tree as compact UTF-8 JSON header text."""
    doc = _encode_dir(tree)
    return json.dumps(doc, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _parse_file(path: Tuple[str, ...], item: Dict[str, Any]) -> File:
    where = join_path(path)
    if KEY_SIZE not in item:
        raise MalformedHeaderError(f"File entry {where!r} is missing 'size'")
    if KEY_OFFSET not in item:
        raise MalformedHeaderError(f"File entry {where!r} is missing 'offset'")
    size = item[KEY_SIZE]
    raw_offset = item[KEY_OFFSET]
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise MalformedHeaderError(f"File entry {where!r} has invalid size {size!r}")
    if size > MAX_SAFE_INTEGER:
        raise MalformedHeaderError(f"Size of {where!r} is greater than MAX_SAFE_INTEGER")
    if not isinstance(raw_offset, str) or not _OFFSET_RE.fullmatch(raw_offset):
        raise MalformedHeaderError(f"File entry {where!r} has invalid offset {raw_offset!r}")
    try:
        offset = int(raw_offset)
    except ValueError as exc:
        # int() refuses very long digit strings
        raise MalformedHeaderError(f"File entry {where!r} has an oversized offset") from exc
    if offset > MAX_SAFE_INTEGER:
        raise MalformedHeaderError(f"Offset of {where!r} is greater than MAX_SAFE_INTEGER")
    return File(path=path, offset=offset, size=size)


def _parse_dir(parent: Union[Home, Folder], files: Any) -> None:
    if not isinstance(files, dict):
        raise MalformedHeaderError(f"'files' of {join_path(parent.path) or '<root>'!r} is not an object")
    for name, item in files.items():
        if name in ("", ".", "..") or "/" in name:
            raise MalformedHeaderError(f"Invalid entry name {name!r}")
        path = parent.path + (name,)
        if not isinstance(item, dict):
            raise MalformedHeaderError(f"Entry {join_path(path)!r} is not an object")
        # size + offset wins over files when an entry carries both
        if KEY_SIZE in item and KEY_OFFSET in item:
            parent.children[name] = _parse_file(path, item)
        elif KEY_FILES in item:
            folder = Folder(path=path)
            parent.children[name] = folder
            _parse_dir(folder, item[KEY_FILES])
        elif KEY_SIZE in item or KEY_OFFSET in item:
            parent.children[name] = _parse_file(path, item)
        else:
            raise MalformedHeaderError(f"Error parsing header for entry {join_path(path)!r}")


def check_ranges(tree: Home) -> None:
    """Reject trees whose file byte ranges overlap.

    Empty files occupy no bytes and are skipped.
    """
    ranges: List[File] = sorted((f for f in tree.files() if f.size), key=lambda f: f.offset)
    prev = None
    for f in ranges:
        if prev is not None and f.offset < prev.end:
            raise MalformedHeaderError(
                f"File data of {join_path(f.path)!r} overlaps {join_path(prev.path)!r}"
            )
        prev = f


def deserialize(header_bytes: bytes) -> Home:
    """Parse header text into a validated tree."""
    try:
        doc = json.loads(header_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise MalformedHeaderError(f"Header is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict) or KEY_FILES not in doc:
        raise MalformedHeaderError("'files' not found in archive root")
    home = Home()
    try:
        _parse_dir(home, doc[KEY_FILES])
    except RecursionError as exc:
        raise MalformedHeaderError("Header nests folders too deeply") from exc
    check_ranges(home)
    return home


# -------- Framing --------

def compute_layout(header_bytes: bytes) -> HeaderLayout:
    json_length = len(header_bytes)
    return HeaderLayout(header_size=HEADER_PICKLE_FIELDS + _align(json_length), json_length=json_length)


def pack_header(header_bytes: bytes) -> bytes:
    """Frame header text: size pickle, header pickle, padded header text."""
    layout = compute_layout(header_bytes)
    framing = FRAMING_STRUCT.pack(
        SIZE_PICKLE_PAYLOAD,
        layout.header_size,
        layout.header_size - 4,
        layout.json_length,
    )
    padding = PAD_BYTE * (layout.padded_length - layout.json_length)
    return framing + header_bytes + padding


def read_layout(buf: bytes) -> Tuple[HeaderLayout, bytes]:
    """Decode the framing at the start of ``buf``.

    Returns the layout and the exact header text. Padding bytes are not
    inspected, so archives aligned to 4 bytes by other packers open too.
    """
    if len(buf) < FRAMING_SIZE:
        raise MalformedHeaderError("Archive too short for header framing")
    marker, header_size, payload_size, json_length = FRAMING_STRUCT.unpack_from(buf, 0)
    if marker != SIZE_PICKLE_PAYLOAD:
        raise MalformedHeaderError(f"Unexpected size pickle marker {marker}")
    if header_size > MAX_HEADER_SIZE:
        raise MalformedHeaderError("Header size exceeds safety bound")
    if header_size < HEADER_PICKLE_FIELDS or payload_size != header_size - 4:
        raise MalformedHeaderError("Header size and pickle payload size disagree")
    layout = HeaderLayout(header_size=header_size, json_length=json_length)
    if json_length > layout.padded_length:
        raise MalformedHeaderError("JSON length exceeds the header region")
    if len(buf) < layout.content_offset:
        raise MalformedHeaderError("Archive truncated inside the header region")
    header_bytes = bytes(buf[FRAMING_SIZE:FRAMING_SIZE + json_length])
    return layout, header_bytes
