# Copyright Red Hat
#
# dirdelta/patch/__init__.py - Directory delta patch package
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Directory patch package.

Provides two-tree comparison and patch archive facilities: path and
content classification, manifest writing, binary delta encoding and
archive assembly. The main entry points are ``PatchCreator``,
``PatchApplier`` and ``PatchOptions``.
"""
from .applier import PatchApplier, read_manifest
from .classify import ClassificationResult
from .creator import PatchCreator
from .filetree import FileTree, LocalFileTree, ZipFileTree, open_tree
from .indextypes import IndexEntry, IndexKind
from .options import PatchOptions

__all__ = [
    "ClassificationResult",
    "FileTree",
    "IndexEntry",
    "IndexKind",
    "LocalFileTree",
    "PatchApplier",
    "PatchCreator",
    "PatchOptions",
    "ZipFileTree",
    "open_tree",
    "read_manifest",
]
