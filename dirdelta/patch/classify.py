# Copyright Red Hat
#
# dirdelta/patch/classify.py - Directory delta path classification
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Path and change classification.

``PathClassifier`` splits two path sets into created, deleted and existing
paths without touching any file content. ``ChangeClassifier`` then
fingerprints every path to build the final four-way
``ClassificationResult``.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, NamedTuple, Set
from dataclasses import dataclass, field
import logging

from dirdelta import DIRDELTA_SUBSYSTEM_PATCH, DirDeltaFormatError

from .filetree import FileTree
from .fingerprint import ContentFingerprinter
from .indextypes import IndexEntry, IndexKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_patch(msg, *args, **kwargs):
    """A wrapper for patch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_PATCH}, **kwargs)


class PathPartition(NamedTuple):
    """
    Sorted, pairwise disjoint split of two path sets.
    """

    #: Paths present only in the new tree
    created: List[str]
    #: Paths present only in the old tree
    deleted: List[str]
    #: Paths present in both trees
    existing: List[str]


@dataclass
class ClassificationResult:
    """
    Four-way classification of the union of two trees' paths. Each list is
    sorted by path and no path appears in more than one list.
    """

    created: List[IndexEntry] = field(default_factory=list)
    deleted: List[IndexEntry] = field(default_factory=list)
    updated: List[IndexEntry] = field(default_factory=list)
    unchanged: List[IndexEntry] = field(default_factory=list)

    def __str__(self):
        return (
            f"created={len(self.created)}, deleted={len(self.deleted)}, "
            f"updated={len(self.updated)}, unchanged={len(self.unchanged)}"
        )

    def __len__(self):
        return (
            len(self.created)
            + len(self.deleted)
            + len(self.updated)
            + len(self.unchanged)
        )

    def entries(self) -> Iterator[IndexEntry]:
        """
        Iterate over all entries in manifest order: created, deleted,
        updated and then unchanged, each group in ascending path order.
        """
        yield from self.created
        yield from self.deleted
        yield from self.updated
        yield from self.unchanged

    def paths(self, kind: IndexKind) -> List[str]:
        """
        Return the paths classified as ``kind``.

        :param kind: The classification to select.
        :type kind: ``IndexKind``
        :returns: A sorted list of relative paths.
        :rtype: ``List[str]``
        """
        groups = {
            IndexKind.CREATED: self.created,
            IndexKind.DELETED: self.deleted,
            IndexKind.UPDATED: self.updated,
            IndexKind.UNCHANGED: self.unchanged,
        }
        return [entry.path for entry in groups[kind]]


def _unique_paths(paths: Iterable[str], side: str) -> Set[str]:
    """
    Convert ``paths`` to a set, rejecting duplicates.

    :param paths: The paths listed for one tree.
    :type paths: ``Iterable[str]``
    :param side: "old" or "new", for error messages.
    :type side: ``str``
    :returns: The set of paths.
    :rtype: ``Set[str]``
    :raises DirDeltaFormatError: If a path is listed more than once.
    """
    seen = set()
    for path in paths:
        if path in seen:
            raise DirDeltaFormatError(f"Duplicate path in {side} tree: '{path}'")
        seen.add(path)
    return seen


class PathClassifier:
    """
    Partition two path sets into created, deleted and existing paths.
    """

    def classify(self, old_paths: Iterable[str], new_paths: Iterable[str]) -> PathPartition:
        """
        Partition ``old_paths`` and ``new_paths``.

        :param old_paths: Normalized relative paths of the old tree.
        :type old_paths: ``Iterable[str]``
        :param new_paths: Normalized relative paths of the new tree.
        :type new_paths: ``Iterable[str]``
        :returns: The sorted created, deleted and existing paths.
        :rtype: ``PathPartition``
        :raises DirDeltaFormatError: If either input repeats a path.
        """
        old_set = _unique_paths(old_paths, "old")
        new_set = _unique_paths(new_paths, "new")

        partition = PathPartition(
            created=sorted(new_set - old_set),
            deleted=sorted(old_set - new_set),
            existing=sorted(old_set & new_set),
        )
        _log_debug_patch(
            "Partitioned paths: created=%d deleted=%d existing=%d",
            len(partition.created),
            len(partition.deleted),
            len(partition.existing),
        )
        return partition


class ChangeClassifier:
    """
    Fingerprint partitioned paths and split existing paths into updated
    and unchanged.
    """

    def __init__(self, fingerprinter: ContentFingerprinter, jobs: int = 1):
        """
        Initialise a new ``ChangeClassifier``.

        :param fingerprinter: The fingerprinter used to hash file content.
        :type fingerprinter: ``ContentFingerprinter``
        :param jobs: The number of worker threads used to hash existing
                     paths. Results are always collected in path order.
        :type jobs: ``int``
        """
        self.fingerprinter = fingerprinter
        self.jobs = jobs

    def _compare(self, old_tree: FileTree, new_tree: FileTree, path: str) -> IndexEntry:
        old_hash = self.fingerprinter.fingerprint(old_tree, path)
        new_hash = self.fingerprinter.fingerprint(new_tree, path)
        if old_hash == new_hash:
            return IndexEntry.unchanged(path, old_hash)
        _log_debug_patch("Content changed: %s (%s -> %s)", path, old_hash, new_hash)
        return IndexEntry.updated(path, old_hash, new_hash)

    def _compare_all(
        self, old_tree: FileTree, new_tree: FileTree, paths: List[str]
    ) -> List[IndexEntry]:
        if self.jobs > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as executor:
                return list(
                    executor.map(
                        lambda path: self._compare(old_tree, new_tree, path), paths
                    )
                )
        return [self._compare(old_tree, new_tree, path) for path in paths]

    def classify(
        self, old_tree: FileTree, new_tree: FileTree, partition: PathPartition
    ) -> ClassificationResult:
        """
        Build the four-way classification for ``partition``.

        :param old_tree: The old tree.
        :type old_tree: ``FileTree``
        :param new_tree: The new tree.
        :type new_tree: ``FileTree``
        :param partition: The path partition of the two trees.
        :type partition: ``PathPartition``
        :returns: The classification result.
        :rtype: ``ClassificationResult``
        """
        fingerprint = self.fingerprinter.fingerprint
        result = ClassificationResult(
            created=[
                IndexEntry.created(path, fingerprint(new_tree, path))
                for path in partition.created
            ],
            deleted=[
                IndexEntry.deleted(path, fingerprint(old_tree, path))
                for path in partition.deleted
            ],
        )

        for entry in self._compare_all(old_tree, new_tree, partition.existing):
            if entry.kind == IndexKind.UPDATED:
                result.updated.append(entry)
            else:
                result.unchanged.append(entry)

        _log_info("Classified %d paths: %s", len(result), result)
        return result
