from __future__ import annotations

import json
import os
import struct
import tempfile
import unittest
from pathlib import Path

import asarkit
from asarkit.asar import Asar, MODE_ARCHIVE, MODE_DIRECTORY
from asarkit.errors import (
    ArchiveIOError,
    InvalidOperationError,
    InvalidPathError,
    MalformedHeaderError,
    NotFoundError,
)
from asarkit.header import pack_header, read_layout
from asarkit.reader import ArchiveReader
from asarkit.writer import ArchiveWriter, pack, scan_directory


def _create_sample_files(base: Path):
    """The three-file layout used throughout: 21 + 55 + 29968 bytes."""
    (base / "folder1").mkdir()
    (base / "test1.txt").write_bytes(b"hello from test1.txt\n")
    (base / "folder1" / "script.py").write_bytes(b"print('hello world')\n" + b"#" * 33 + b"\n")
    (base / "folder1" / "test_image.jpg").write_bytes(os.urandom(29968))


def _read_tree(root: Path):
    out = {}
    for dirpath, _dirs, files in os.walk(root):
        for fn in files:
            full = Path(dirpath) / fn
            out[full.relative_to(root).as_posix()] = full.read_bytes()
    return out


def _archive_with_header(header: dict, content: bytes = b"") -> bytes:
    return pack_header(json.dumps(header).encode("utf-8")) + content


class AsarTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_sample_sizes(self):
        def scenario(tmp_path: Path):
            _create_sample_files(tmp_path)
            sizes = {e.arc_path: e.size for e in scan_directory(str(tmp_path))}
            self.assertEqual(
                sizes,
                {"folder1/script.py": 55, "folder1/test_image.jpg": 29968, "test1.txt": 21},
            )

        self.run_with_tmpdir(scenario)

    def test_pack_offsets_follow_name_order(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            r = ArchiveReader.from_bytes(pack(str(src)))
            self.assertEqual(
                list(r.tree.flatten()),
                [
                    (("folder1", "script.py"), 0, 55),
                    (("folder1", "test_image.jpg"), 55, 29968),
                    (("test1.txt",), 30023, 21),
                ],
            )
            self.assertEqual(set(r.list()), {"test1.txt", "folder1/script.py", "folder1/test_image.jpg"})
            self.assertEqual(len(r.list()), 3)
            self.assertEqual(r.list(include_folders=True)[0], "folder1")

        self.run_with_tmpdir(scenario)

    def test_offsets_partition_content_region(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            (src / "a" / "b").mkdir(parents=True)
            (src / "c").mkdir()
            (src / "a" / "b" / "one.bin").write_bytes(os.urandom(100))
            (src / "a" / "empty.txt").write_bytes(b"")
            (src / "a" / "two.txt").write_bytes(b"two")
            (src / "c" / "three.bin").write_bytes(os.urandom(4097))
            (src / "z.txt").write_bytes(b"zzz")
            data = pack(str(src))
            r = ArchiveReader.from_bytes(data)
            ranges = sorted((off, size) for _p, off, size in r.tree.flatten())
            pos = 0
            for off, size in ranges:
                self.assertEqual(off, pos)
                pos += size
            self.assertEqual(pos, r.tree.total_size())
            self.assertEqual(r.content_length, r.tree.total_size())
            self.assertEqual(len(data), r.content_offset + r.tree.total_size())

        self.run_with_tmpdir(scenario)

    def test_roundtrip_extract(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            (src / "folder1" / "deeper").mkdir()
            (src / "folder1" / "deeper" / "empty.dat").write_bytes(b"")
            archive = tmp_path / "out.asar"
            with Asar.open(str(src)) as a:
                self.assertEqual(a.mode, MODE_DIRECTORY)
                a.pack(str(archive))
            out = tmp_path / "extracted"
            with asarkit.open(str(archive)) as a:
                self.assertEqual(a.mode, MODE_ARCHIVE)
                a.extract(str(out))
            self.assertEqual(_read_tree(out), _read_tree(src))

        self.run_with_tmpdir(scenario)

    def test_get_file(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            archive = tmp_path / "out.asar"
            Asar.open(str(src)).pack(str(archive))
            a = Asar.open(str(archive))
            expected = (src / "folder1" / "test_image.jpg").read_bytes()
            self.assertEqual(a.get_file("folder1/test_image.jpg"), expected)
            self.assertEqual(a.get_file(("folder1", "test_image.jpg")), expected)
            self.assertEqual(a.get_file("/test1.txt"), (src / "test1.txt").read_bytes())
            missing_paths = (
                "folder1", "", "nope.txt", "test1.txt/x", "folder1/nope",
                "../test1.txt", "folder1/../test1.txt",
            )
            for missing in missing_paths:
                with self.subTest(path=missing):
                    with self.assertRaises(NotFoundError):
                        a.get_file(missing)

        self.run_with_tmpdir(scenario)

    def test_find_paths(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            r = ArchiveReader.from_bytes(pack(str(src)))
            self.assertEqual(sorted(r.find_paths("test")), ["folder1/test_image.jpg", "test1.txt"])
            self.assertEqual(r.find_paths("folder"), ["folder1"])
            self.assertEqual(r.find_paths("missing"), [])

        self.run_with_tmpdir(scenario)

    def test_mode_checks(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            archive = tmp_path / "out.asar"
            d = Asar.open(str(src))
            for call in (d.list, lambda: d.get_file("test1.txt"), lambda: d.extract(str(tmp_path / "x"))):
                with self.assertRaises(InvalidOperationError):
                    call()
            d.pack(str(archive))
            a = Asar.open(str(archive))
            with self.assertRaises(InvalidOperationError):
                a.pack(str(tmp_path / "again.asar"))
            with self.assertRaises(NotFoundError):
                Asar.open(str(tmp_path / "does-not-exist"))

        self.run_with_tmpdir(scenario)

    def test_missing_size_fails_open(self):
        def scenario(tmp_path: Path):
            archive = tmp_path / "bad.asar"
            archive.write_bytes(_archive_with_header({"files": {"a.txt": {"offset": "0"}}}, b"abc"))
            with self.assertRaises(MalformedHeaderError):
                Asar.open(str(archive))
            archive.write_bytes(_archive_with_header({"files": {"a.txt": {"size": 3}}}, b"abc"))
            with self.assertRaises(MalformedHeaderError):
                asarkit.open(str(archive))

        self.run_with_tmpdir(scenario)

    def test_file_past_end_rejected(self):
        data = _archive_with_header({"files": {"a.txt": {"size": 4, "offset": "0"}}}, b"abc")
        with self.assertRaises(MalformedHeaderError):
            ArchiveReader.from_bytes(data)
        ok = ArchiveReader.from_bytes(data + b"d")
        self.assertEqual(ok.get_file("a.txt"), b"abcd")

    def test_oversized_offset_rejected(self):
        data = _archive_with_header({"files": {"a": {"size": 1, "offset": "1" * 5000}}}, b"x")
        with self.assertRaises(MalformedHeaderError):
            ArchiveReader.from_bytes(data)

    def test_garbage_rejected(self):
        for data in (b"", b"not an archive at all", os.urandom(64)):
            with self.subTest(data=data[:8]):
                with self.assertRaises(MalformedHeaderError):
                    ArchiveReader.from_bytes(data)

    def test_size_invariant_on_external_archive(self):
        # gaps are legal in archives written elsewhere
        data = _archive_with_header(
            {"files": {"x": {"size": 2, "offset": "4"}, "y": {"size": 1, "offset": "0"}}},
            b"y___xx",
        )
        r = ArchiveReader.from_bytes(data)
        layout, _ = read_layout(data)
        self.assertLessEqual(r.tree.total_size(), len(data) - layout.content_offset)
        self.assertEqual(r.get_file("x"), b"xx")
        self.assertEqual(r.get_file("y"), b"y")

    def test_writer_rejects_collisions(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            f = src / "f.txt"
            f.write_bytes(b"data")
            with ArchiveWriter(str(tmp_path / "w.asar")) as w:
                w.add_file("a/f.txt", str(f))
                with self.assertRaises(InvalidPathError):
                    w.add_file("a/f.txt", str(f))
                with self.assertRaises(InvalidPathError):
                    w.add_file("a/f.txt/g", str(f))
                with self.assertRaises(ArchiveIOError):
                    w.add_file("b.txt", str(tmp_path / "missing.txt"))
                w.add_directory(str(src), prefix="copy")
                tree = w.finalize()
            self.assertEqual(tree.lookup("copy/f.txt").size, 4)
            r = ArchiveReader(str(tmp_path / "w.asar"))
            with r:
                self.assertEqual(r.get_file("copy/f.txt"), b"data")

        self.run_with_tmpdir(scenario)

    def test_repack_into_source_keeps_archive(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            archive = src / "out.asar"
            Asar.open(str(src)).pack(str(archive))
            first = archive.read_bytes()
            tree = Asar.open(str(src)).pack(str(archive))
            self.assertNotIn(("out.asar",), [p for p, _off, _size in tree.flatten()])
            self.assertEqual(archive.read_bytes(), first)
            with asarkit.open(str(archive)) as a:
                self.assertEqual(a.get_file("test1.txt"), (src / "test1.txt").read_bytes())

        self.run_with_tmpdir(scenario)

    def test_size_change_between_scan_and_read(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            (src / "grow.txt").write_bytes(b"abc")
            a = Asar.open(str(src))
            (src / "grow.txt").write_bytes(b"abcdef")
            with self.assertRaises(ArchiveIOError):
                a.pack(str(tmp_path / "out.asar"))

        self.run_with_tmpdir(scenario)

    def test_extract_keeps_empty_folders(self):
        def scenario(tmp_path: Path):
            data = _archive_with_header(
                {"files": {"empty": {"files": {}}, "a.txt": {"size": 1, "offset": "0"}}},
                b"a",
            )
            out = tmp_path / "out"
            ArchiveReader.from_bytes(data).extract(str(out))
            self.assertTrue((out / "empty").is_dir())
            self.assertEqual((out / "a.txt").read_bytes(), b"a")

        self.run_with_tmpdir(scenario)

    def test_extract_failure_reports_io_error(self):
        def scenario(tmp_path: Path):
            data = _archive_with_header({"files": {"a": {"files": {"b.txt": {"size": 1, "offset": "0"}}}}}, b"b")
            out = tmp_path / "out"
            out.mkdir()
            (out / "a").write_bytes(b"a file where a folder should go")
            with self.assertRaises(ArchiveIOError):
                ArchiveReader.from_bytes(data).extract(str(out))

        self.run_with_tmpdir(scenario)

    def test_framing_of_packed_archive(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            src.mkdir()
            _create_sample_files(src)
            data = pack(str(src))
            marker, header_size, payload, json_len = struct.unpack_from("<IIII", data, 0)
            self.assertEqual(marker, 4)
            self.assertEqual(header_size % 8, 0)
            self.assertEqual(payload, header_size - 4)
            header = json.loads(data[16:16 + json_len])
            self.assertEqual(header["files"]["test1.txt"], {"size": 21, "offset": "30023"})
            self.assertEqual(data[8 + header_size + 30023:], (src / "test1.txt").read_bytes())

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
