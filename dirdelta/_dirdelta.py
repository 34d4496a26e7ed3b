# Copyright Red Hat
#
# dirdelta/_dirdelta.py - Directory delta global definitions
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level dirdelta package.
"""
import logging

_log = logging.getLogger("dirdelta")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Dirdelta debugging subsystem mask
DIRDELTA_DEBUG_TREE = 1
DIRDELTA_DEBUG_PATCH = 2
DIRDELTA_DEBUG_COMMAND = 4
DIRDELTA_DEBUG_ALL = DIRDELTA_DEBUG_TREE | DIRDELTA_DEBUG_PATCH | DIRDELTA_DEBUG_COMMAND

# Dirdelta debugging subsystem names
DIRDELTA_SUBSYSTEM_TREE = "dirdelta.tree"
DIRDELTA_SUBSYSTEM_PATCH = "dirdelta.patch"
DIRDELTA_SUBSYSTEM_COMMAND = "dirdelta.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    DIRDELTA_DEBUG_TREE: DIRDELTA_SUBSYSTEM_TREE,
    DIRDELTA_DEBUG_PATCH: DIRDELTA_SUBSYSTEM_PATCH,
    DIRDELTA_DEBUG_COMMAND: DIRDELTA_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

#: Reserved prefix for the manifest entry of a patch archive.
MANIFEST_PREFIX = ".index_"

#: Reserved suffix for edit script entries of a patch archive.
DELTA_SUFFIX = ".bsdiff"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``dirdelta`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    dirdelta_log = logging.getLogger("dirdelta")

    for handler in dirdelta_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``dirdelta`` package.

    :param mask: the logical OR of the ``DIRDELTA_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > DIRDELTA_DEBUG_ALL:
        raise ValueError(f"Invalid dirdelta debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    dirdelta_log = logging.getLogger("dirdelta")
    for handler in dirdelta_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


#
# Dirdelta exception types
#


class DirDeltaError(Exception):
    """
    Base class for directory delta errors.
    """


class DirDeltaInvalidRootError(DirDeltaError):
    """
    A tree root does not exist or cannot be enumerated.
    """


class DirDeltaIOError(DirDeltaError):
    """
    A read or write failed while hashing, encoding or writing a patch.
    """


class DirDeltaFormatError(DirDeltaError):
    """
    An internal invariant was broken: duplicate or colliding paths, a
    malformed manifest, or content that does not match its recorded hash.
    """


class DirDeltaArgumentError(DirDeltaError):
    """
    An invalid argument was passed to a dirdelta API call.
    """


__all__ = [
    "DIRDELTA_DEBUG_TREE",
    "DIRDELTA_DEBUG_PATCH",
    "DIRDELTA_DEBUG_COMMAND",
    "DIRDELTA_DEBUG_ALL",
    "DIRDELTA_SUBSYSTEM_TREE",
    "DIRDELTA_SUBSYSTEM_PATCH",
    "DIRDELTA_SUBSYSTEM_COMMAND",
    "MANIFEST_PREFIX",
    "DELTA_SUFFIX",
    # Debug logging - subsystem name interface
    "SubsystemFilter",
    "set_debug_mask",
    "get_debug_mask",
    "DirDeltaError",
    "DirDeltaInvalidRootError",
    "DirDeltaIOError",
    "DirDeltaFormatError",
    "DirDeltaArgumentError",
]
