# Copyright Red Hat
#
# dirdelta/patch/fingerprint.py - Directory delta content fingerprints
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content fingerprinting for patch creation.
"""
from typing import BinaryIO
from hashlib import md5, sha1, sha256, sha512
import logging

from dirdelta import DirDeltaArgumentError, DirDeltaFormatError, DirDeltaIOError

from .filetree import FileTree, READ_ERRORS

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

HASH_TYPES = {
    "md5": md5,
    "sha1": sha1,
    "sha256": sha256,
    "sha512": sha512,
}

#: Read size used when streaming file content through the hasher
_CHUNK_SIZE = 65536


class ContentFingerprinter:
    """
    Compute hex encoded content digests by streaming file data.

    The digest depends only on the bytes read: paths and timestamps play
    no part in it.
    """

    def __init__(self, hash_algorithm: str = "sha1"):
        """
        Initialise a new ``ContentFingerprinter`` object.

        :param hash_algorithm: A string naming the hash algorithm to use.
        :type hash_algorithm: ``str``
        """
        if hash_algorithm not in HASH_TYPES:
            raise DirDeltaArgumentError(f"Unknown hash algorithm: {hash_algorithm}")
        self.hash_algorithm: str = hash_algorithm
        self.hasher = HASH_TYPES[hash_algorithm]

    def fingerprint_stream(self, stream: BinaryIO) -> str:
        """
        Consume ``stream`` to EOF and return its hex digest.

        :param stream: A readable binary stream.
        :type stream: ``BinaryIO``
        :returns: The hex digest of the bytes read.
        :rtype: ``str``
        """
        hasher = self.hasher(usedforsecurity=False)
        for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
        return hasher.hexdigest()

    def fingerprint(self, tree: FileTree, path: str) -> str:
        """
        Return the hex digest of the file at ``path`` in ``tree``.

        :param tree: The tree containing ``path``.
        :type tree: ``FileTree``
        :param path: A relative path within ``tree``.
        :type path: ``str``
        :returns: The hex digest of the file content.
        :rtype: ``str``
        """
        try:
            with tree.open_read(path) as stream:
                digest = self.fingerprint_stream(stream)
        except READ_ERRORS as err:
            raise DirDeltaIOError(
                f"Failed to read {path} from {tree.root}: {err}"
            ) from err
        return digest


def hash_algorithm_for_digest(digest: str) -> str:
    """
    Return the name of the hash algorithm that produces hex digests of the
    same length as ``digest``.

    :param digest: A hex encoded digest.
    :type digest: ``str``
    :returns: The algorithm name.
    :rtype: ``str``
    :raises DirDeltaFormatError: If no supported algorithm matches.
    """
    for name, hasher in HASH_TYPES.items():
        if len(digest) == hasher(usedforsecurity=False).digest_size * 2:
            return name
    raise DirDeltaFormatError(f"Unrecognised content hash: '{digest}'")
