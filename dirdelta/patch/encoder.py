# Copyright Red Hat
#
# dirdelta/patch/encoder.py - Directory delta binary delta encoding
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Binary delta encoding for updated files.

A ``DeltaEncoder`` reads the old version of a file from a seekable
source and the new version from a forward-only stream, and writes an
edit script to a borrowed writer. The writer is a ``NonClosingWriter``
view of the archive entry: closing it never closes the archive.
"""
from typing import BinaryIO
from abc import ABC, abstractmethod
import io
import logging

import bsdiff4

from dirdelta import DIRDELTA_SUBSYSTEM_PATCH, DirDeltaFormatError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_patch(msg, *args, **kwargs):
    """A wrapper for patch subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_PATCH}, **kwargs)


class NonClosingWriter(io.RawIOBase):
    """
    A writable view of a stream owned by somebody else.

    ``close()`` flushes the underlying stream and marks this view closed,
    but leaves the underlying stream open.
    """

    def __init__(self, stream: BinaryIO):
        super().__init__()
        self._stream = stream

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed NonClosingWriter")
        self._stream.write(b)
        return len(b)

    def flush(self):
        if not self.closed:
            self._stream.flush()

    def close(self):
        if not self.closed:
            self.flush()
        super().close()


class DeltaEncoder(ABC):
    """
    Abstract binary delta codec.
    """

    @abstractmethod
    def encode(self, source: BinaryIO, target: BinaryIO, out: BinaryIO):
        """
        Write an edit script reconstructing ``target`` from ``source``.

        Output must be deterministic for a given pair of inputs. The
        encoder closes ``out`` when done but must not close ``source`` or
        ``target``.

        :param source: Seekable stream of the old file content.
        :type source: ``BinaryIO``
        :param target: Forward-only stream of the new file content.
        :type target: ``BinaryIO``
        :param out: Borrowed writer receiving the edit script.
        :type out: ``BinaryIO``
        """

    @abstractmethod
    def decode(self, source: bytes, script: bytes) -> bytes:
        """
        Apply an edit script produced by ``encode()`` to ``source``.

        :param source: The old file content.
        :type source: ``bytes``
        :param script: The edit script.
        :type script: ``bytes``
        :returns: The reconstructed new file content.
        :rtype: ``bytes``
        :raises DirDeltaFormatError: If the script is corrupt.
        """


class BsdiffEncoder(DeltaEncoder):
    """
    Delta codec using the BSDIFF4 format.

    BSDIFF4 compares whole buffers, so both file versions are read into
    memory for the duration of one ``encode()`` call.
    """

    def encode(self, source: BinaryIO, target: BinaryIO, out: BinaryIO):
        source.seek(0)
        old_data = source.read()
        new_data = target.read()
        script = bsdiff4.diff(old_data, new_data)
        _log_debug_patch(
            "Encoded delta: %d -> %d bytes (script %d bytes)",
            len(old_data),
            len(new_data),
            len(script),
        )
        with out:
            out.write(script)

    def decode(self, source: bytes, script: bytes) -> bytes:
        try:
            return bsdiff4.patch(source, script)
        except (ValueError, OSError) as err:
            raise DirDeltaFormatError(f"Corrupt edit script: {err}") from err
