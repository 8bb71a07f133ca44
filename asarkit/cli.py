from __future__ import annotations

import os
import sys
import time
import argparse
import json as _json

from typing import List

from asarkit.reader import ArchiveReader
from asarkit.writer import ArchiveWriter, scan_directory
from asarkit.errors import AsarError, MalformedHeaderError


def _open_archive(archive: str) -> ArchiveReader:
    """Open an archive, turning header damage into a readable hint."""
    try:
        r = ArchiveReader(archive)
        r.open()
        return r
    except MalformedHeaderError as exc:
        print(
            f"Archive header is malformed: {exc}\n"
            "Hint: the file may be truncated or not an asar archive.",
            file=sys.stderr,
        )
        sys.exit(2)


def cmd_pack(source: str, output: str, *, quiet: bool = False) -> bool:
    """Pack a directory into a new archive.

    Args:
        source: Directory whose regular files are stored.
        output: Path of the archive to write.
        quiet: Limit output to the summary line.
    """
    listing = scan_directory(source)
    processed = 0
    t0 = time.time()

    with ArchiveWriter(output) as w:
        listing = [e for e in listing if not w.is_output(os.path.join(source, *e.path))]
        total_bytes = sum(e.size for e in listing) or 1
        for entry in listing:
            w.add_file(entry.path, os.path.join(source, *entry.path), entry.size)
            processed += entry.size
            if not quiet:
                pct = processed * 100.0 / total_bytes
                print(f" {pct:6.2f}% packing: {entry.arc_path}")
        tree = w.finalize()

    dt = max(0.000001, time.time() - t0)
    n_files = len(w.listing)
    n_dirs = sum(1 for _ in tree.folders())
    mib = processed / (1024.0 * 1024.0)
    print(f"Done: {n_files} files, {n_dirs} dirs; {mib:.2f} MiB in {dt:.1f}s")
    return True


def cmd_list(archive: str, *, folders: bool = False) -> bool:
    """List archive paths, one per line.

    Args:
        archive: Path to an .asar file.
        folders: Include folder paths as well as files.
    """
    r = _open_archive(archive)
    for p in r.list(include_folders=folders):
        print(p)
    return True


def cmd_extract(archive: str, *, outdir: str = ".", quiet: bool = False) -> bool:
    """Extract every file of an archive below ``outdir``."""
    r = _open_archive(archive)
    t0 = time.time()
    if not quiet:
        for p in r.list():
            print(f" extracting: {p}")
    r.extract(outdir)
    info = r.info()
    dt = max(0.000001, time.time() - t0)
    mib = info["total_size"] / (1024.0 * 1024.0)
    print(f"Done: extracted {info['files']} files ({mib:.2f} MiB) in {dt:.1f}s; dirs={info['folders']}")
    return True


def cmd_cat(archive: str, path: str) -> bool:
    """Write the bytes of one archived file to stdout."""
    r = _open_archive(archive)
    data = r.get_file(path)
    out = getattr(sys.stdout, "buffer", None)
    if out is None:
        sys.stdout.write(data.decode("utf-8", errors="replace"))
    else:
        out.write(data)
        out.flush()
    return True


def cmd_find(archive: str, pattern: str) -> bool:
    """Print paths whose final segment contains ``pattern``."""
    r = _open_archive(archive)
    matches = r.find_paths(pattern)
    for p in matches:
        print(p)
    return bool(matches)


def cmd_info(archive: str, *, as_json: bool = False) -> bool:
    """Show header and content region sizes."""
    r = _open_archive(archive)
    info = r.info()
    if as_json:
        print(_json.dumps({"archive": archive, **info}))
        return True
    print(f"Archive: {archive}")
    print(f"  Header size: {info['header_size']}")
    print(f"  JSON length: {info['json_length']}")
    print(f"  Content offset: {info['content_offset']}")
    print(f"  Content length: {info['content_length']}")
    print(f"  Files: {info['files']}")
    print(f"  Folders: {info['folders']}")
    print(f"  Total file bytes: {info['total_size']}")
    if info["total_size"] < info["content_length"]:
        print(
            f"Warning: {info['content_length'] - info['total_size']} content byte(s) are not referenced by the header",
            file=sys.stderr,
        )
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="asarkit",
        description="asar archive tool",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Pack a directory into an archive")
    ap_pack.add_argument("source", help="Source directory")
    ap_pack.add_argument("output", help="Output .asar path")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")
    ap_list.add_argument("--folders", action="store_true", help="Include folders in the listing")

    ap_extract = sub.add_parser("extract", help="Extract all files")
    ap_extract.add_argument("archive", help="Archive path")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_cat = sub.add_parser("cat", help="Write one archived file to stdout")
    ap_cat.add_argument("archive", help="Archive path")
    ap_cat.add_argument("path", help="Path inside the archive")

    ap_find = sub.add_parser("find", help="Find paths whose name contains a pattern")
    ap_find.add_argument("archive", help="Archive path")
    ap_find.add_argument("pattern", help="Substring to look for")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("archive", help="Archive path")
    ap_info.add_argument("--json", action="store_true", help="Emit JSON")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "pack":
            cmd_pack(args.source, args.output, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.archive, folders=args.folders)
        elif args.cmd == "extract":
            cmd_extract(args.archive, outdir=args.outdir, quiet=args.quiet)
        elif args.cmd == "cat":
            cmd_cat(args.archive, args.path)
        elif args.cmd == "find":
            found = cmd_find(args.archive, args.pattern)
            sys.exit(0 if found else 1)
        elif args.cmd == "info":
            cmd_info(args.archive, as_json=args.json)
        else:
            raise RuntimeError("Unknown command")
    except (AsarError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
