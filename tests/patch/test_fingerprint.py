# Copyright Red Hat
#
# tests/patch/test_fingerprint.py - Content fingerprint tests.
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import io
import os

from dirdelta import DirDeltaArgumentError, DirDeltaFormatError, DirDeltaIOError
from dirdelta.patch.filetree import LocalFileTree
from dirdelta.patch.fingerprint import (
    ContentFingerprinter,
    hash_algorithm_for_digest,
)

from ._util import make_tree

HELLO_SHA1 = "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d"
EMPTY_SHA1 = "da39a3ee5e6b4b0d3255bfef95601890afd80709"


class TestContentFingerprinter(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp_dir.cleanup)
        self.root = make_tree(
            os.path.join(self.tmp_dir.name, "tree"),
            {"hello.txt": "hello", "empty": b"", "sub/hello2.txt": "hello"},
        )
        self.tree = LocalFileTree(self.root)

    def test_fingerprint_stream(self):
        fp = ContentFingerprinter()
        self.assertEqual(fp.fingerprint_stream(io.BytesIO(b"hello")), HELLO_SHA1)
        self.assertEqual(fp.fingerprint_stream(io.BytesIO(b"")), EMPTY_SHA1)

    def test_fingerprint_large_stream(self):
        data = os.urandom(65536 * 3 + 17)
        fp = ContentFingerprinter("sha256")
        whole = ContentFingerprinter("sha256").hasher(data).hexdigest()
        self.assertEqual(fp.fingerprint_stream(io.BytesIO(data)), whole)

    def test_fingerprint_file(self):
        fp = ContentFingerprinter()
        self.assertEqual(fp.fingerprint(self.tree, "hello.txt"), HELLO_SHA1)
        self.assertEqual(fp.fingerprint(self.tree, "empty"), EMPTY_SHA1)

    def test_fingerprint_depends_only_on_content(self):
        fp = ContentFingerprinter()
        self.assertEqual(
            fp.fingerprint(self.tree, "hello.txt"),
            fp.fingerprint(self.tree, "sub/hello2.txt"),
        )

    def test_fingerprint_missing_file(self):
        fp = ContentFingerprinter()
        with self.assertRaises(DirDeltaIOError):
            fp.fingerprint(self.tree, "nope.txt")

    def test_unknown_algorithm(self):
        with self.assertRaises(DirDeltaArgumentError):
            ContentFingerprinter("crc32")

    def test_digest_lengths(self):
        lengths = {"md5": 32, "sha1": 40, "sha256": 64, "sha512": 128}
        for name, length in lengths.items():
            fp = ContentFingerprinter(name)
            digest = fp.fingerprint_stream(io.BytesIO(b"hello"))
            self.assertEqual(len(digest), length)
            self.assertEqual(hash_algorithm_for_digest(digest), name)

    def test_hash_algorithm_for_bad_digest(self):
        with self.assertRaises(DirDeltaFormatError):
            hash_algorithm_for_digest("abc")
