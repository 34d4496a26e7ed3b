# Copyright Red Hat
#
# dirdelta/patch/archive.py - Directory delta patch archive assembly
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Patch archive assembly.

A patch archive is a ZIP container holding, in order:

  1. the manifest, named ``MANIFEST_PREFIX`` plus a run-unique id,
  2. the full content of every created path, named as the path,
  3. an edit script for every updated path, named as the path plus
     ``DELTA_SUFFIX``.

Deleted and unchanged paths are recorded only in the manifest.
"""
from typing import BinaryIO, Callable, List, Optional
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo
from uuid import uuid4
import logging
import shutil
import stat

from dirdelta import (
    DIRDELTA_SUBSYSTEM_PATCH,
    MANIFEST_PREFIX,
    DELTA_SUFFIX,
    DirDeltaFormatError,
    DirDeltaIOError,
)

from .classify import ClassificationResult
from .encoder import DeltaEncoder, NonClosingWriter
from .filetree import FileTree, READ_ERRORS
from .manifest import IndexWriter

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_patch(msg, *args, **kwargs):
    """A wrapper for patch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_PATCH}, **kwargs)


#: Earliest valid ZIP timestamp, used for every entry.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

#: Fixed DEFLATE level.
_COMPRESS_LEVEL = 6

#: Buffer size for copying created file content.
_COPY_BUFSIZE = 262144


def new_manifest_id() -> str:
    """
    Return a fresh run-unique manifest id.
    """
    return str(uuid4())


def delta_entry_name(path: str) -> str:
    """
    Return the archive entry name for the edit script of ``path``.
    """
    return path + DELTA_SUFFIX


def _zip_info(name: str) -> ZipInfo:
    """
    Return a ``ZipInfo`` for ``name`` with fixed metadata, so that equal
    inputs produce byte-identical archives.
    """
    zi = ZipInfo(filename=name, date_time=_ZIP_EPOCH)
    zi.create_system = 3  # Unix
    zi.external_attr = (stat.S_IFREG | 0o644) << 16
    zi.compress_type = ZIP_DEFLATED
    return zi


class _SinkView:
    """
    Write access to the caller's sink that can be cut off.

    The ``ZipFile`` writes only through this view. Once ``detach()`` has
    been called every operation becomes a no-op, so a ``ZipFile`` that is
    closed later (for instance by garbage collection) cannot append a
    central directory to a failed archive.
    """

    def __init__(self, sink: BinaryIO):
        self._sink: Optional[BinaryIO] = sink

    def detach(self):
        """Stop forwarding to the sink."""
        self._sink = None

    def write(self, b) -> int:
        if self._sink is None:
            return len(b)
        return self._sink.write(b)

    def tell(self) -> int:
        if self._sink is None:
            return 0
        return self._sink.tell()

    def seek(self, offset: int, whence: int = 0) -> int:
        if self._sink is None:
            return 0
        return self._sink.seek(offset, whence)

    def flush(self):
        if self._sink is not None:
            self._sink.flush()


class ArchiveAssembler:
    """
    Write a classification result and its payloads into a patch archive.

    The assembler is the sole writer of the archive. The caller owns the
    sink: it is never closed here.
    """

    def __init__(
        self,
        sink: BinaryIO,
        encoder: DeltaEncoder,
        id_factory: Optional[Callable[[], str]] = None,
        index_writer: Optional[IndexWriter] = None,
    ):
        """
        Initialise a new ``ArchiveAssembler``.

        :param sink: A writable binary stream receiving the archive.
        :type sink: ``BinaryIO``
        :param encoder: The delta encoder used for updated paths.
        :type encoder: ``DeltaEncoder``
        :param id_factory: Callable returning the run-unique manifest id.
                           Defaults to a random UUID.
        :type id_factory: ``Optional[Callable[[], str]]``
        :param index_writer: The manifest writer to use.
        :type index_writer: ``Optional[IndexWriter]``
        """
        self.sink = sink
        self.encoder = encoder
        self.id_factory = id_factory or new_manifest_id
        self.index_writer = index_writer or IndexWriter()

    def entry_names(self, result: ClassificationResult, manifest_name: str) -> List[str]:
        """
        Return the archive entry names for ``result`` in write order.

        :param result: The classification to be written.
        :type result: ``ClassificationResult``
        :param manifest_name: The manifest entry name.
        :type manifest_name: ``str``
        :returns: The entry names, manifest first.
        :rtype: ``List[str]``
        :raises DirDeltaFormatError: If two entries would share a name.
        """
        names = [manifest_name]
        names.extend(entry.path for entry in result.created)
        names.extend(delta_entry_name(entry.path) for entry in result.updated)
        seen = set()
        for name in names:
            if name in seen:
                raise DirDeltaFormatError(f"Archive entry name collision: '{name}'")
            seen.add(name)
        return names

    def _write_manifest(self, zf: ZipFile, name: str, result: ClassificationResult):
        with zf.open(_zip_info(name), "w", force_zip64=True) as entry:
            count = self.index_writer.write(result.entries(), entry)
        _log_debug_patch("Wrote manifest %s (%d records)", name, count)

    def _write_created(self, zf: ZipFile, new_tree: FileTree, path: str):
        with new_tree.open_read(path) as src:
            with zf.open(_zip_info(path), "w", force_zip64=True) as entry:
                shutil.copyfileobj(src, entry, _COPY_BUFSIZE)
        _log_debug_patch("Wrote created entry %s", path)

    def _write_updated(
        self, zf: ZipFile, old_tree: FileTree, new_tree: FileTree, path: str
    ):
        name = delta_entry_name(path)
        with old_tree.open_seekable_read(path) as source:
            with new_tree.open_read(path) as target:
                with zf.open(_zip_info(name), "w", force_zip64=True) as entry:
                    self.encoder.encode(source, target, NonClosingWriter(entry))
        _log_debug_patch("Wrote delta entry %s", name)

    def assemble(
        self, result: ClassificationResult, old_tree: FileTree, new_tree: FileTree
    ) -> List[str]:
        """
        Write the manifest and all payload entries for ``result``.

        On failure the archive is left unfinalized and the error is
        raised; the caller discards the partial output.

        :param result: The classification to write.
        :type result: ``ClassificationResult``
        :param old_tree: The old tree, source of edit script bases.
        :type old_tree: ``FileTree``
        :param new_tree: The new tree, source of created and updated content.
        :type new_tree: ``FileTree``
        :returns: The names of the entries written, in order.
        :rtype: ``List[str]``
        """
        manifest_name = MANIFEST_PREFIX + self.id_factory()
        names = self.entry_names(result, manifest_name)

        path = manifest_name
        view = _SinkView(self.sink)
        try:
            try:
                zf = ZipFile(view, mode="w", compresslevel=_COMPRESS_LEVEL)
                self._write_manifest(zf, manifest_name, result)
                for entry in result.created:
                    path = entry.path
                    self._write_created(zf, new_tree, path)
                for entry in result.updated:
                    path = entry.path
                    self._write_updated(zf, old_tree, new_tree, path)
                path = manifest_name
                zf.close()
            except BaseException:
                view.detach()
                raise
        except READ_ERRORS as err:
            raise DirDeltaIOError(f"Failed to write patch entry for {path}: {err}") from err

        _log_info(
            "Wrote patch archive with %d entries (%s)", len(names), manifest_name
        )
        return names
