# Copyright Red Hat
#
# dirdelta/patch/options.py - Directory delta patch options
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Patch creation and application options.
"""
from dataclasses import dataclass, field, fields
from typing import Tuple, Union
from argparse import Namespace
import logging

from dirdelta import DirDeltaArgumentError

from .fingerprint import HASH_TYPES

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


@dataclass(frozen=True)
class PatchOptions:
    """
    Patch creation and application options.
    """

    #: Digest algorithm used to fingerprint file content
    hash_algorithm: str = "sha1"
    #: File patterns to include (glob notation, relative paths)
    file_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: File patterns to exclude (glob notation, relative paths)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Number of worker threads used to fingerprint existing paths
    jobs: int = 1
    #: Verify old and new content hashes when applying a patch
    verify: bool = True

    def __post_init__(self):
        if self.hash_algorithm not in HASH_TYPES:
            raise DirDeltaArgumentError(
                f"Unknown hash algorithm: {self.hash_algorithm}"
            )
        if self.jobs < 1:
            raise DirDeltaArgumentError(f"Invalid number of jobs: {self.jobs}")

    def __str__(self):
        """
        Return a human readable string representation of this
        ``PatchOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, val) if not isinstance(val, tuple) else (key, " ".join(val))
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    @classmethod
    def from_cmd_args(cls, cmd_args: Namespace) -> "PatchOptions":
        """
        Initialise PatchOptions from command line arguments.

        Construct a new ``PatchOptions`` object from the command line
        arguments in ``cmd_args``. Arguments that are absent or ``None``
        keep their default values.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :returns: A new ``PatchOptions`` instance
        :rtype: ``PatchOptions``
        """

        def get_value(name: str) -> Union[bool, int, str, Tuple[str, ...]]:
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = cls(**kwargs)
        _log_debug("Initialised PatchOptions from arguments: %s", repr(options))
        return options
