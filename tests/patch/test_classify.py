# Copyright Red Hat
#
# tests/patch/test_classify.py - Path and change classifier tests.
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import os

from dirdelta import DirDeltaFormatError
from dirdelta.patch.classify import (
    ChangeClassifier,
    ClassificationResult,
    PathClassifier,
    PathPartition,
)
from dirdelta.patch.filetree import LocalFileTree
from dirdelta.patch.fingerprint import ContentFingerprinter
from dirdelta.patch.indextypes import IndexEntry, IndexKind

from ._util import make_tree


class TestPathClassifier(unittest.TestCase):
    def setUp(self):
        self.classifier = PathClassifier()

    def test_partition(self):
        old = ["b", "a", "c/d", "e"]
        new = ["e", "f", "a", "c/e"]
        part = self.classifier.classify(old, new)
        self.assertEqual(part.created, ["c/e", "f"])
        self.assertEqual(part.deleted, ["b", "c/d"])
        self.assertEqual(part.existing, ["a", "e"])

    def test_partition_disjoint_union(self):
        old = ["x/1", "x/2", "y", "z", "A"]
        new = ["x/2", "x/3", "z", "a"]
        part = self.classifier.classify(old, new)
        groups = [set(part.created), set(part.deleted), set(part.existing)]
        for i, first in enumerate(groups):
            for second in groups[i + 1:]:
                self.assertFalse(first & second)
        self.assertEqual(set().union(*groups), set(old) | set(new))
        self.assertEqual(set(part.created), set(new) - set(old))
        self.assertEqual(set(part.deleted), set(old) - set(new))

    def test_partition_lexicographic_order(self):
        paths = ["b", "B", "a/b", "a", "a-b", "ä"]
        part = self.classifier.classify([], paths)
        self.assertEqual(part.created, sorted(paths))
        self.assertEqual(part.created[0], "B")

    def test_partition_empty(self):
        part = self.classifier.classify([], [])
        self.assertEqual(part, PathPartition([], [], []))

    def test_duplicate_old_path(self):
        with self.assertRaisesRegex(DirDeltaFormatError, "Duplicate path in old"):
            self.classifier.classify(["a", "a"], ["a"])

    def test_duplicate_new_path(self):
        with self.assertRaisesRegex(DirDeltaFormatError, "Duplicate path in new"):
            self.classifier.classify(["a"], ["b", "b"])


class TestClassificationResult(unittest.TestCase):
    def setUp(self):
        self.result = ClassificationResult(
            created=[IndexEntry.created("c", "11")],
            deleted=[IndexEntry.deleted("d", "22")],
            updated=[IndexEntry.updated("a", "33", "44")],
            unchanged=[IndexEntry.unchanged("b", "55")],
        )

    def test_entries_group_order(self):
        kinds = [entry.kind for entry in self.result.entries()]
        self.assertEqual(
            kinds,
            [IndexKind.CREATED, IndexKind.DELETED, IndexKind.UPDATED, IndexKind.UNCHANGED],
        )

    def test_len_and_str(self):
        self.assertEqual(len(self.result), 4)
        self.assertEqual(
            str(self.result), "created=1, deleted=1, updated=1, unchanged=1"
        )

    def test_paths(self):
        self.assertEqual(self.result.paths(IndexKind.UPDATED), ["a"])
        self.assertEqual(self.result.paths(IndexKind.UNCHANGED), ["b"])


class TestChangeClassifier(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp_dir.cleanup)
        old_root = make_tree(
            os.path.join(self.tmp_dir.name, "old"),
            {"same.txt": "hello", "changed.txt": "abc", "gone.txt": "bye", "z/k": "k"},
        )
        new_root = make_tree(
            os.path.join(self.tmp_dir.name, "new"),
            {"same.txt": "hello", "changed.txt": "abcd", "added.txt": "x", "z/k": "K"},
        )
        self.old_tree = LocalFileTree(old_root)
        self.new_tree = LocalFileTree(new_root)
        self.fingerprinter = ContentFingerprinter()

    def _classify(self, jobs=1):
        partition = PathClassifier().classify(
            self.old_tree.list_files(), self.new_tree.list_files()
        )
        classifier = ChangeClassifier(self.fingerprinter, jobs=jobs)
        return classifier.classify(self.old_tree, self.new_tree, partition)

    def test_classify(self):
        result = self._classify()
        self.assertEqual(result.paths(IndexKind.CREATED), ["added.txt"])
        self.assertEqual(result.paths(IndexKind.DELETED), ["gone.txt"])
        self.assertEqual(result.paths(IndexKind.UPDATED), ["changed.txt", "z/k"])
        self.assertEqual(result.paths(IndexKind.UNCHANGED), ["same.txt"])

    def test_classify_hashes(self):
        result = self._classify()
        fp = self.fingerprinter.fingerprint
        created = result.created[0]
        self.assertEqual(created.old_hash, "")
        self.assertEqual(created.new_hash, fp(self.new_tree, "added.txt"))
        deleted = result.deleted[0]
        self.assertEqual(deleted.old_hash, fp(self.old_tree, "gone.txt"))
        self.assertEqual(deleted.new_hash, "")
        unchanged = result.unchanged[0]
        self.assertEqual(unchanged.old_hash, unchanged.new_hash)
        for entry in result.updated:
            self.assertNotEqual(entry.old_hash, entry.new_hash)

    def test_unchanged_iff_equal_fingerprints(self):
        result = self._classify()
        fp = self.fingerprinter.fingerprint
        for entry in result.updated + result.unchanged:
            same = fp(self.old_tree, entry.path) == fp(self.new_tree, entry.path)
            self.assertEqual(same, entry.kind == IndexKind.UNCHANGED)

    def test_classify_parallel_matches_sequential(self):
        self.assertEqual(self._classify(jobs=4), self._classify(jobs=1))
