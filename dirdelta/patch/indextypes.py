# Copyright Red Hat
#
# dirdelta/patch/indextypes.py - Directory delta index entry types
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Patch index entry types
"""
from dataclasses import dataclass
from typing import Any, Dict
from enum import Enum

#: Hash value recorded for the absent side of a created or deleted path.
NO_HASH = ""


class IndexKind(Enum):
    """
    Enum for the four ways a path can differ between two trees.
    """

    CREATED = "created"
    DELETED = "deleted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class IndexEntry:
    """
    A single manifest record: the classification of one relative path.
    """

    #: How the path changed between the old and new trees
    kind: IndexKind
    #: Normalized relative path
    path: str
    #: Hex digest of the old content, or ``NO_HASH``
    old_hash: str = NO_HASH
    #: Hex digest of the new content, or ``NO_HASH``
    new_hash: str = NO_HASH

    @classmethod
    def created(cls, path: str, new_hash: str) -> "IndexEntry":
        """Return a ``CREATED`` entry for ``path``."""
        return cls(IndexKind.CREATED, path, NO_HASH, new_hash)

    @classmethod
    def deleted(cls, path: str, old_hash: str) -> "IndexEntry":
        """Return a ``DELETED`` entry for ``path``."""
        return cls(IndexKind.DELETED, path, old_hash, NO_HASH)

    @classmethod
    def updated(cls, path: str, old_hash: str, new_hash: str) -> "IndexEntry":
        """Return an ``UPDATED`` entry for ``path``."""
        return cls(IndexKind.UPDATED, path, old_hash, new_hash)

    @classmethod
    def unchanged(cls, path: str, content_hash: str) -> "IndexEntry":
        """Return an ``UNCHANGED`` entry for ``path``."""
        return cls(IndexKind.UNCHANGED, path, content_hash, content_hash)

    def __str__(self):
        return (
            f"{self.kind.value}: {self.path} "
            f"({self.old_hash or '-'} -> {self.new_hash or '-'})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``IndexEntry`` into a dictionary suitable for encoding
        as a JSON manifest record.

        :returns: A dictionary mapping record keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "kind": self.kind.value,
            "path": self.path,
            "old_hash": self.old_hash,
            "new_hash": self.new_hash,
        }
