# Copyright Red Hat
#
# dirdelta/patch/creator.py - Directory delta patch creation
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level patch creation interface.
"""
from typing import BinaryIO, Callable, List, Optional, Union
from datetime import datetime
import logging

from dirdelta import DirDeltaInvalidRootError

from .archive import ArchiveAssembler
from .classify import ChangeClassifier, ClassificationResult, PathClassifier
from .encoder import BsdiffEncoder, DeltaEncoder
from .filetree import FileTree, VisitCallback, open_tree
from .fingerprint import ContentFingerprinter
from .manifest import IndexWriter
from .options import PatchOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class PatchCreator:
    """
    Create a patch archive describing how to turn an old tree into a new
    tree.
    """

    def __init__(
        self,
        options: Optional[PatchOptions] = None,
        encoder: Optional[DeltaEncoder] = None,
        id_factory: Optional[Callable[[], str]] = None,
        visit: Optional[VisitCallback] = None,
    ):
        """
        Initialise a new ``PatchCreator``.

        :param options: Options to control this ``PatchCreator`` instance.
        :type options: ``PatchOptions``
        :param encoder: The delta encoder for updated paths (``BsdiffEncoder``
                        by default).
        :type encoder: ``Optional[DeltaEncoder]``
        :param id_factory: Callable returning the run-unique manifest id. Tests
                           supply a fixed id to get reproducible archives.
        :type id_factory: ``Optional[Callable[[], str]]``
        :param visit: Optional callback receiving every path visited while
                      listing trees given by location.
        :type visit: ``Optional[VisitCallback]``
        """
        options = options or PatchOptions()
        self.options: PatchOptions = options
        self.encoder: DeltaEncoder = encoder or BsdiffEncoder()
        self.id_factory = id_factory
        self.visit = visit
        self.path_classifier = PathClassifier()
        self.change_classifier = ChangeClassifier(
            ContentFingerprinter(options.hash_algorithm), jobs=options.jobs
        )
        self.index_writer = IndexWriter()

    def _as_tree(self, tree: Union[str, FileTree]) -> FileTree:
        if isinstance(tree, FileTree):
            return tree
        return open_tree(
            tree,
            file_patterns=self.options.file_patterns,
            exclude_patterns=self.options.exclude_patterns,
            visit=self.visit,
        )

    @staticmethod
    def _list_files(tree: FileTree, side: str) -> List[str]:
        if not tree.exists():
            raise DirDeltaInvalidRootError(f"Bad {side} tree root: {tree.root}")
        try:
            return tree.list_files()
        except OSError as err:
            raise DirDeltaInvalidRootError(
                f"Cannot enumerate {side} tree {tree.root}: {err}"
            ) from err

    def classify(
        self, old: Union[str, FileTree], new: Union[str, FileTree]
    ) -> ClassificationResult:
        """
        Classify every path of the ``old`` and ``new`` trees without
        writing any output.

        :param old: The old tree or its location.
        :type old: ``Union[str, FileTree]``
        :param new: The new tree or its location.
        :type new: ``Union[str, FileTree]``
        :returns: The classification result.
        :rtype: ``ClassificationResult``
        """
        old_tree = self._as_tree(old)
        new_tree = self._as_tree(new)
        return self._classify(old_tree, new_tree)

    def _classify(self, old_tree: FileTree, new_tree: FileTree) -> ClassificationResult:
        old_paths = self._list_files(old_tree, "old")
        new_paths = self._list_files(new_tree, "new")
        partition = self.path_classifier.classify(old_paths, new_paths)
        return self.change_classifier.classify(old_tree, new_tree, partition)

    def create(
        self,
        old: Union[str, FileTree],
        new: Union[str, FileTree],
        sink: BinaryIO,
    ) -> ClassificationResult:
        """
        Write a patch archive turning ``old`` into ``new`` to ``sink``.

        Both roots are validated before anything is written. Any failure
        aborts the run immediately: the sink then holds a partial archive
        that the caller should discard. The sink is not closed.

        :param old: The old tree or its location.
        :type old: ``Union[str, FileTree]``
        :param new: The new tree or its location.
        :type new: ``Union[str, FileTree]``
        :param sink: A writable binary stream receiving the archive.
        :type sink: ``BinaryIO``
        :returns: The classification written to the archive.
        :rtype: ``ClassificationResult``
        :raises DirDeltaInvalidRootError: If either root is unusable.
        :raises DirDeltaIOError: On any read or write failure.
        :raises DirDeltaFormatError: If an internal invariant is broken.
        """
        old_tree = self._as_tree(old)
        new_tree = self._as_tree(new)
        for tree, side in ((old_tree, "old"), (new_tree, "new")):
            if not tree.exists():
                raise DirDeltaInvalidRootError(f"Bad {side} tree root: {tree.root}")

        start_time = datetime.now()
        _log_info("Creating patch from %s to %s", old_tree.root, new_tree.root)
        result = self._classify(old_tree, new_tree)

        assembler = ArchiveAssembler(
            sink,
            self.encoder,
            id_factory=self.id_factory,
            index_writer=self.index_writer,
        )
        assembler.assemble(result, old_tree, new_tree)
        end_time = datetime.now()
        _log_info("Created patch (%s) in %s", result, end_time - start_time)
        return result
