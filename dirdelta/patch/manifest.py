# Copyright Red Hat
#
# dirdelta/patch/manifest.py - Directory delta patch manifest
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Patch manifest reading and writing.

The manifest holds one JSON object per line, in the order created,
deleted, updated, unchanged, each group sorted by path::

    {"kind":"created","path":"b.txt","old_hash":"","new_hash":"11f6ad8e..."}

A reader can parse records one line at a time without buffering the
whole manifest.
"""
from typing import BinaryIO, Iterable, Iterator, Optional
import logging
import json

from dirdelta import DIRDELTA_SUBSYSTEM_PATCH, DirDeltaFormatError

from .indextypes import IndexEntry, IndexKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_patch(msg, *args, **kwargs):
    """A wrapper for patch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_PATCH}, **kwargs)


#: Manifest text encoding
MANIFEST_ENCODING = "utf-8"

#: Group order of manifest records
_KIND_ORDER = {
    IndexKind.CREATED: 0,
    IndexKind.DELETED: 1,
    IndexKind.UPDATED: 2,
    IndexKind.UNCHANGED: 3,
}

_RECORD_KEYS = ("kind", "path", "old_hash", "new_hash")


class IndexWriter:
    """
    Serialize classification entries as manifest records.
    """

    def encode(self, entry: IndexEntry) -> bytes:
        """
        Encode a single entry as one newline terminated manifest line.

        :param entry: The entry to encode.
        :type entry: ``IndexEntry``
        :returns: The encoded record.
        :rtype: ``bytes``
        """
        record = json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":"))
        return (record + "\n").encode(MANIFEST_ENCODING)

    def write(self, entries: Iterable[IndexEntry], stream: BinaryIO) -> int:
        """
        Write ``entries`` to ``stream`` in manifest order.

        :param entries: The entries to write, already in manifest order (see
                        ``ClassificationResult.entries()``).
        :type entries: ``Iterable[IndexEntry]``
        :param stream: A writable binary stream.
        :type stream: ``BinaryIO``
        :returns: The number of records written.
        :rtype: ``int``
        :raises DirDeltaFormatError: If a path appears more than once.
        """
        seen = set()
        count = 0
        for entry in entries:
            if entry.path in seen:
                raise DirDeltaFormatError(
                    f"Path classified more than once: '{entry.path}'"
                )
            seen.add(entry.path)
            stream.write(self.encode(entry))
            count += 1
        _log_debug_patch("Wrote %d manifest records", count)
        return count


class IndexReader:
    """
    Parse manifest records back into ``IndexEntry`` objects.
    """

    def decode(self, line: bytes, lineno: int = 0) -> IndexEntry:
        """
        Decode one manifest line.

        :param line: The encoded record.
        :type line: ``bytes``
        :param lineno: The line number, for error messages.
        :type lineno: ``int``
        :returns: The decoded entry.
        :rtype: ``IndexEntry``
        :raises DirDeltaFormatError: If the line is not a valid record.
        """
        try:
            record = json.loads(line.decode(MANIFEST_ENCODING))
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise DirDeltaFormatError(
                f"Malformed manifest record at line {lineno}: {err}"
            ) from err

        if not isinstance(record, dict) or any(
            not isinstance(record.get(key), str) for key in _RECORD_KEYS
        ):
            raise DirDeltaFormatError(f"Invalid manifest record at line {lineno}")
        try:
            kind = IndexKind(record["kind"])
        except ValueError as err:
            raise DirDeltaFormatError(
                f"Unknown record kind at line {lineno}: {record['kind']}"
            ) from err

        return IndexEntry(kind, record["path"], record["old_hash"], record["new_hash"])

    def read(self, stream: BinaryIO) -> Iterator[IndexEntry]:
        """
        Stream entries from a manifest, checking group and path order.

        :param stream: A readable binary stream positioned at the start of
                       the manifest.
        :type stream: ``BinaryIO``
        :returns: An iterator over the manifest entries.
        :rtype: ``Iterator[IndexEntry]``
        :raises DirDeltaFormatError: If a record is malformed or out of
                                     order.
        """
        last: Optional[IndexEntry] = None
        seen = set()
        for lineno, line in enumerate(stream, start=1):
            if not line.strip():
                continue
            entry = self.decode(line, lineno)
            if last is not None:
                order = (_KIND_ORDER[last.kind], last.path)
                if (_KIND_ORDER[entry.kind], entry.path) <= order:
                    raise DirDeltaFormatError(
                        f"Manifest record out of order at line {lineno}: {entry.path}"
                    )
            if entry.path in seen:
                raise DirDeltaFormatError(
                    f"Path classified more than once at line {lineno}: {entry.path}"
                )
            seen.add(entry.path)
            last = entry
            yield entry
