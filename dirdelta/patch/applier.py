# Copyright Red Hat
#
# dirdelta/patch/applier.py - Directory delta patch application
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Patch application: rebuild the new tree from the old tree and a patch
archive.
"""
from typing import BinaryIO, Optional, Union
from zipfile import BadZipFile, ZipFile
from datetime import datetime
import logging
import shutil
import os

from dirdelta import (
    DIRDELTA_SUBSYSTEM_PATCH,
    MANIFEST_PREFIX,
    DirDeltaArgumentError,
    DirDeltaFormatError,
    DirDeltaInvalidRootError,
    DirDeltaIOError,
)

from .archive import delta_entry_name
from .classify import ClassificationResult
from .encoder import BsdiffEncoder, DeltaEncoder
from .filetree import FileTree, LocalFileTree, READ_ERRORS, normalize_path, open_tree
from .fingerprint import ContentFingerprinter, hash_algorithm_for_digest
from .indextypes import IndexEntry, IndexKind
from .manifest import IndexReader
from .options import PatchOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_patch(msg, *args, **kwargs):
    """A wrapper for patch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_PATCH}, **kwargs)


#: Buffer size for copying file content.
_COPY_BUFSIZE = 262144


def find_manifest_name(zf: ZipFile) -> str:
    """
    Return the name of the manifest entry of patch archive ``zf``.

    The manifest is always the first entry and carries the reserved
    ``MANIFEST_PREFIX``.

    :param zf: An open patch archive.
    :type zf: ``ZipFile``
    :returns: The manifest entry name.
    :rtype: ``str``
    :raises DirDeltaFormatError: If the archive has no manifest.
    """
    infos = zf.infolist()
    if not infos or not infos[0].filename.startswith(MANIFEST_PREFIX):
        raise DirDeltaFormatError("Patch archive has no manifest entry")
    return infos[0].filename


def read_manifest(patch: Union[str, BinaryIO]) -> ClassificationResult:
    """
    Read the manifest of a patch archive into a ``ClassificationResult``.

    :param patch: The patch archive path or a readable, seekable stream.
    :type patch: ``Union[str, BinaryIO]``
    :returns: The classification recorded in the manifest.
    :rtype: ``ClassificationResult``
    """
    result = ClassificationResult()
    groups = {
        IndexKind.CREATED: result.created,
        IndexKind.DELETED: result.deleted,
        IndexKind.UPDATED: result.updated,
        IndexKind.UNCHANGED: result.unchanged,
    }
    try:
        with ZipFile(patch) as zf:
            with zf.open(find_manifest_name(zf)) as manifest:
                for entry in IndexReader().read(manifest):
                    groups[entry.kind].append(entry)
    except READ_ERRORS as err:
        raise DirDeltaIOError(f"Failed to read patch manifest: {err}") from err
    return result


class PatchApplier:
    """
    Rebuild a new tree from an old tree and a patch archive.
    """

    def __init__(
        self,
        options: Optional[PatchOptions] = None,
        encoder: Optional[DeltaEncoder] = None,
    ):
        """
        Initialise a new ``PatchApplier``.

        :param options: Options to control this ``PatchApplier`` instance.
        :type options: ``PatchOptions``
        :param encoder: The delta codec matching the one that created the
                        patch (``BsdiffEncoder`` by default).
        :type encoder: ``Optional[DeltaEncoder]``
        """
        self.options: PatchOptions = options or PatchOptions()
        self.encoder: DeltaEncoder = encoder or BsdiffEncoder()

    def _check_hash(self, tree: FileTree, path: str, expected: str):
        if not self.options.verify:
            return
        fingerprinter = ContentFingerprinter(hash_algorithm_for_digest(expected))
        actual = fingerprinter.fingerprint(tree, path)
        if actual != expected:
            raise DirDeltaFormatError(
                f"Content hash mismatch for {path} in {tree.root}: "
                f"expected {expected}, found {actual}"
            )

    @staticmethod
    def _out_path(out_dir: str, path: str) -> str:
        if normalize_path(path) != path:
            raise DirDeltaFormatError(f"Invalid path in manifest: '{path}'")
        out_path = os.path.join(out_dir, *path.split("/"))
        os.makedirs(os.path.dirname(out_path), exist_ok=True)
        return out_path

    def _apply_entry(
        self, zf: ZipFile, old_tree: FileTree, out_tree: FileTree, entry: IndexEntry
    ):
        if entry.kind == IndexKind.DELETED:
            self._check_hash(old_tree, entry.path, entry.old_hash)
            _log_debug_patch("Dropped deleted path %s", entry.path)
            return

        out_path = self._out_path(out_tree.root, entry.path)
        if entry.kind == IndexKind.CREATED:
            with zf.open(entry.path) as src, open(out_path, "wb") as dst:
                shutil.copyfileobj(src, dst, _COPY_BUFSIZE)
        elif entry.kind == IndexKind.UNCHANGED:
            self._check_hash(old_tree, entry.path, entry.old_hash)
            with old_tree.open_read(entry.path) as src, open(out_path, "wb") as dst:
                shutil.copyfileobj(src, dst, _COPY_BUFSIZE)
        else:
            self._check_hash(old_tree, entry.path, entry.old_hash)
            with old_tree.open_read(entry.path) as src:
                old_data = src.read()
            script = zf.read(delta_entry_name(entry.path))
            with open(out_path, "wb") as dst:
                dst.write(self.encoder.decode(old_data, script))

        self._check_hash(out_tree, entry.path, entry.new_hash)
        _log_debug_patch("Applied %s", entry)

    def apply(
        self,
        old: Union[str, FileTree],
        patch: Union[str, BinaryIO],
        out_dir: str,
    ) -> ClassificationResult:
        """
        Write the tree described by ``patch`` applied to ``old`` into
        ``out_dir``.

        :param old: The old tree or its location.
        :type old: ``Union[str, FileTree]``
        :param patch: The patch archive path or a readable, seekable stream.
        :type patch: ``Union[str, BinaryIO]``
        :param out_dir: An empty or absent output directory.
        :type out_dir: ``str``
        :returns: The classification recorded in the patch.
        :rtype: ``ClassificationResult``
        :raises DirDeltaInvalidRootError: If the old tree root is unusable.
        :raises DirDeltaArgumentError: If ``out_dir`` is not empty.
        :raises DirDeltaFormatError: If the patch or old tree do not match.
        :raises DirDeltaIOError: On any read or write failure.
        """
        old_tree = old if isinstance(old, FileTree) else open_tree(old)
        if not old_tree.exists():
            raise DirDeltaInvalidRootError(f"Bad old tree root: {old_tree.root}")
        if os.path.exists(out_dir) and (
            not os.path.isdir(out_dir) or os.listdir(out_dir)
        ):
            raise DirDeltaArgumentError(
                f"Output directory {out_dir} exists and is not empty"
            )

        start_time = datetime.now()
        result = read_manifest(patch)
        if hasattr(patch, "seek"):
            patch.seek(0)

        path = ""
        try:
            os.makedirs(out_dir, exist_ok=True)
            out_tree = LocalFileTree(out_dir)
            with ZipFile(patch) as zf:
                for entry in result.entries():
                    path = entry.path
                    self._apply_entry(zf, old_tree, out_tree, entry)
        except (KeyError, BadZipFile) as err:
            raise DirDeltaFormatError(f"Missing or corrupt patch entry for {path}: {err}") from err
        except OSError as err:
            raise DirDeltaIOError(f"Failed to apply patch entry for {path}: {err}") from err

        end_time = datetime.now()
        _log_info(
            "Applied patch (%s) to %s in %s", result, out_dir, end_time - start_time
        )
        return result
