# Copyright Red Hat
#
# tests/patch/test_filetree.py - File tree backend tests.
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import os

from dirdelta import DirDeltaFormatError
from dirdelta.patch.filetree import (
    LocalFileTree,
    ZipFileTree,
    normalize_path,
    open_tree,
)

from ._util import make_tree, make_zip

FILES = {
    "a.txt": "alpha",
    "b/c.txt": "charlie",
    "b/d/e.bin": b"\x00\x01\x02",
    "z.txt": "zulu",
}


class TestNormalizePath(unittest.TestCase):
    def test_normalize(self):
        self.assertEqual(normalize_path("a/b"), "a/b")
        self.assertEqual(normalize_path("/a/b"), "a/b")
        self.assertEqual(normalize_path("./a//b/"), "a/b")
        self.assertEqual(normalize_path(os.path.join("a", "b")), "a/b")

    def test_normalize_not_utf8(self):
        with self.assertRaisesRegex(DirDeltaFormatError, "UTF-8"):
            normalize_path("dir/\udcff.txt")

    def test_normalize_bad(self):
        for path in ("", "/", ".", "../a", "a/../../b"):
            with self.subTest(path=path):
                with self.assertRaises(DirDeltaFormatError):
                    normalize_path(path)


class TestLocalFileTree(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp_dir.cleanup)
        self.root = make_tree(os.path.join(self.tmp_dir.name, "tree"), FILES)

    def test_exists(self):
        self.assertTrue(LocalFileTree(self.root).exists())
        missing = os.path.join(self.tmp_dir.name, "missing")
        self.assertFalse(LocalFileTree(missing).exists())
        self.assertFalse(LocalFileTree(os.path.join(self.root, "a.txt")).exists())

    def test_list_files(self):
        tree = LocalFileTree(self.root)
        self.assertEqual(sorted(tree.list_files()), sorted(FILES.keys()))

    def test_list_files_skips_directories(self):
        os.makedirs(os.path.join(self.root, "empty_dir"))
        tree = LocalFileTree(self.root)
        self.assertNotIn("empty_dir", tree.list_files())

    def test_list_files_skips_symlinks(self):
        os.symlink(
            os.path.join(self.root, "a.txt"), os.path.join(self.root, "link.txt")
        )
        tree = LocalFileTree(self.root)
        self.assertNotIn("link.txt", tree.list_files())

    def test_include_patterns(self):
        tree = LocalFileTree(self.root, file_patterns=("*.txt",))
        self.assertEqual(sorted(tree.list_files()), ["a.txt", "b/c.txt", "z.txt"])

    def test_exclude_patterns(self):
        tree = LocalFileTree(self.root, exclude_patterns=("b/*",))
        self.assertEqual(sorted(tree.list_files()), ["a.txt", "z.txt"])

    def test_visit(self):
        visited = []
        tree = LocalFileTree(self.root, visit=visited.append)
        tree.list_files()
        self.assertIn(os.path.join(self.root, "a.txt"), visited)
        self.assertIn(os.path.join(self.root, "b"), visited)
        self.assertIn(os.path.join(self.root, "b", "d", "e.bin"), visited)

    def test_relative_path(self):
        tree = LocalFileTree(self.root)
        full = os.path.join(self.root, "b", "c.txt")
        self.assertEqual(tree.relative_path(full), "b/c.txt")

    def test_open_read(self):
        tree = LocalFileTree(self.root)
        with tree.open_read("b/c.txt") as f:
            self.assertEqual(f.read(), b"charlie")

    def test_open_seekable_read(self):
        tree = LocalFileTree(self.root)
        with tree.open_seekable_read("a.txt") as f:
            self.assertEqual(f.read(), b"alpha")
            f.seek(0)
            self.assertEqual(f.read(2), b"al")

    def test_open_read_missing(self):
        tree = LocalFileTree(self.root)
        with self.assertRaises(FileNotFoundError):
            tree.open_read("nope.txt")


class TestZipFileTree(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp_dir.cleanup)
        self.zip_path = make_zip(os.path.join(self.tmp_dir.name, "tree.zip"), FILES)
        self.temp_root = os.path.join(self.tmp_dir.name, "tmp")
        os.makedirs(self.temp_root)
        self._saved_tempdir = tempfile.tempdir
        tempfile.tempdir = self.temp_root

    def tearDown(self):
        tempfile.tempdir = self._saved_tempdir

    def test_exists(self):
        self.assertTrue(ZipFileTree(self.zip_path).exists())
        not_zip = make_tree(os.path.join(self.tmp_dir.name, "dir"), {"x": "x"})
        self.assertFalse(ZipFileTree(os.path.join(not_zip, "x")).exists())

    def test_list_files(self):
        tree = ZipFileTree(self.zip_path)
        self.assertEqual(sorted(tree.list_files()), sorted(FILES.keys()))

    def test_list_files_patterns(self):
        tree = ZipFileTree(self.zip_path, exclude_patterns=("*.bin",))
        self.assertNotIn("b/d/e.bin", tree.list_files())

    def test_open_read(self):
        tree = ZipFileTree(self.zip_path)
        with tree.open_read("b/d/e.bin") as f:
            self.assertEqual(f.read(), b"\x00\x01\x02")

    def test_open_read_missing(self):
        tree = ZipFileTree(self.zip_path)
        with self.assertRaises(FileNotFoundError):
            with tree.open_read("nope.txt"):
                pass

    def test_open_seekable_read_removes_copy(self):
        tree = ZipFileTree(self.zip_path)
        with tree.open_seekable_read("z.txt") as f:
            self.assertEqual(f.read(), b"zulu")
            f.seek(1)
            self.assertEqual(f.read(), b"ulu")
            self.assertEqual(len(os.listdir(self.temp_root)), 1)
        self.assertEqual(os.listdir(self.temp_root), [])

    def test_open_seekable_read_removes_copy_on_error(self):
        tree = ZipFileTree(self.zip_path)
        with self.assertRaises(RuntimeError):
            with tree.open_seekable_read("z.txt"):
                raise RuntimeError("boom")
        self.assertEqual(os.listdir(self.temp_root), [])

    def test_corrupt_archive(self):
        bad = os.path.join(self.tmp_dir.name, "bad.zip")
        with open(bad, "wb") as f:
            f.write(b"PK\x05\x06" + b"\x00" * 10)
        with self.assertRaises(OSError):
            ZipFileTree(bad).list_files()


class TestOpenTree(unittest.TestCase):
    def test_open_tree(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = make_tree(os.path.join(tmp, "tree"), FILES)
            zip_path = make_zip(os.path.join(tmp, "tree.zip"), FILES)
            self.assertIsInstance(open_tree(root), LocalFileTree)
            self.assertIsInstance(open_tree(zip_path), ZipFileTree)
            missing = open_tree(os.path.join(tmp, "missing"))
            self.assertIsInstance(missing, LocalFileTree)
            self.assertFalse(missing.exists())
