# Copyright Red Hat
#
# dirdelta/patch/filetree.py - Directory delta file tree backends
#
# This file is part of the dirdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File tree access for patch creation and application.

A ``FileTree`` is the only view of a directory tree the patch engine
uses: it can check that its root exists, list the regular files beneath
it as normalized relative paths, and open those files for sequential or
seekable reading. ``LocalFileTree`` serves a directory on local disk and
``ZipFileTree`` serves the members of a ZIP archive.
"""
from typing import BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
from abc import ABC, abstractmethod
from fnmatch import fnmatch
from zipfile import BadZipFile, ZipFile, is_zipfile
import posixpath
import logging
import shutil
import stat
import tempfile
import os

from dirdelta import DIRDELTA_SUBSYSTEM_TREE, DirDeltaFormatError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_tree(msg, *args, **kwargs):
    """A wrapper for tree subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": DIRDELTA_SUBSYSTEM_TREE}, **kwargs)


#: Exceptions raised by tree backends when file content cannot be read.
READ_ERRORS = (OSError, BadZipFile)

#: Buffer size used when materializing seekable copies.
_COPY_BUFSIZE = 262144

#: Prefix for temporary seekable copies.
_TEMP_PREFIX = "dirdelta-source-"

#: Optional observer invoked with every path a traversal visits.
VisitCallback = Callable[[str], None]


def normalize_path(path: str) -> str:
    """
    Normalize a relative path to use '/' separators with no leading root
    marker.

    :param path: The path to normalize.
    :type path: ``str``
    :returns: The normalized relative path.
    :rtype: ``str``
    :raises DirDeltaFormatError: If the path is empty, escapes its root or
                                 cannot be encoded as UTF-8.
    """
    try:
        path.encode("utf-8")
    except UnicodeEncodeError as err:
        raise DirDeltaFormatError(
            f"Path is not valid UTF-8: {ascii(path)}"
        ) from err
    norm = path.replace(os.sep, "/").lstrip("/")
    parts = [part for part in norm.split("/") if part not in ("", ".")]
    if not parts or ".." in parts:
        raise DirDeltaFormatError(f"Invalid relative path: '{path}'")
    return "/".join(parts)


class FileTree(ABC):
    """
    Abstract read-only view of a tree of regular files.
    """

    def __init__(
        self,
        root: str,
        file_patterns: Tuple[str, ...] = (),
        exclude_patterns: Tuple[str, ...] = (),
        visit: Optional[VisitCallback] = None,
    ):
        """
        Initialise a new ``FileTree``.

        :param root: The location of the tree root.
        :type root: ``str``
        :param file_patterns: Glob patterns a relative path must match to be
                              listed (all paths if empty).
        :type file_patterns: ``Tuple[str, ...]``
        :param exclude_patterns: Glob patterns excluding relative paths from
                                 listing.
        :type exclude_patterns: ``Tuple[str, ...]``
        :param visit: An optional callback receiving every visited path.
        :type visit: ``Optional[VisitCallback]``
        """
        self.root: str = str(root)
        self.file_patterns: Tuple[str, ...] = tuple(file_patterns)
        self.exclude_patterns: Tuple[str, ...] = tuple(exclude_patterns)
        self.visit: Optional[VisitCallback] = visit

    def __str__(self):
        return f"{self.__class__.__name__}({self.root})"

    def _visit(self, path: str):
        if self.visit is not None:
            self.visit(path)

    def _selected(self, rel_path: str) -> bool:
        """
        Apply the include and exclude patterns to ``rel_path``.
        """
        if any(fnmatch(rel_path, pat) for pat in self.exclude_patterns):
            return False
        if self.file_patterns and not any(
            fnmatch(rel_path, pat) for pat in self.file_patterns
        ):
            return False
        return True

    @abstractmethod
    def exists(self) -> bool:
        """
        Return ``True`` if the tree root exists and can be enumerated.
        """

    @abstractmethod
    def list_files(self) -> List[str]:
        """
        Return the normalized relative paths of all regular files in the
        tree. Directories and symbolic links are never listed.

        :raises OSError: If the tree cannot be enumerated.
        """

    @abstractmethod
    def relative_path(self, path: str) -> str:
        """
        Return ``path``, a location beneath the root, relative to the root.
        """

    @abstractmethod
    def open_read(self, path: str) -> BinaryIO:
        """
        Open the file at relative ``path`` for sequential binary reading.
        The returned object is a context manager.
        """

    @contextmanager
    def open_seekable_read(self, path: str) -> Iterator[BinaryIO]:
        """
        Open the file at relative ``path`` for random access reading.

        The default implementation copies the content into a temporary
        local file that is removed when the context exits, whether or not
        the body raised.

        :param path: The relative path to open.
        :type path: ``str``
        :returns: A context manager yielding a seekable binary stream.
        """
        fd, tmp_path = tempfile.mkstemp(prefix=_TEMP_PREFIX)
        _log_debug_tree("Materializing %s from %s at %s", path, self, tmp_path)
        try:
            with os.fdopen(fd, "w+b") as tmp:
                with self.open_read(path) as src:
                    shutil.copyfileobj(src, tmp, _COPY_BUFSIZE)
                tmp.seek(0)
                yield tmp
        finally:
            os.unlink(tmp_path)
            _log_debug_tree("Removed temporary copy %s", tmp_path)


class LocalFileTree(FileTree):
    """
    A ``FileTree`` backed by a directory on local disk.
    """

    def exists(self) -> bool:
        return os.path.isdir(self.root) and os.access(self.root, os.R_OK | os.X_OK)

    def list_files(self) -> List[str]:
        def _raise(err: OSError):
            raise err

        _log_info("Gathering paths from %s", self.root)
        paths = []
        excluded = 0
        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_raise):
            dirnames.sort()
            for name in dirnames:
                self._visit(os.path.join(dirpath, name))
            for name in sorted(filenames):
                full_path = os.path.join(dirpath, name)
                self._visit(full_path)
                try:
                    file_stat = os.lstat(full_path)
                except FileNotFoundError:
                    # Path vanished between discovery and stat; skip it.
                    continue
                if not stat.S_ISREG(file_stat.st_mode):
                    _log_debug_tree("Skipping non-regular file '%s'", full_path)
                    continue
                rel_path = self.relative_path(full_path)
                if not self._selected(rel_path):
                    excluded += 1
                    continue
                paths.append(rel_path)
        _log_info(
            "Found %d files in %s (excluded %d)", len(paths), self.root, excluded
        )
        return paths

    def relative_path(self, path: str) -> str:
        return normalize_path(os.path.relpath(path, self.root))

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root, *normalize_path(path).split("/"))

    def open_read(self, path: str) -> BinaryIO:
        return open(self._full_path(path), "rb")

    @contextmanager
    def open_seekable_read(self, path: str) -> Iterator[BinaryIO]:
        # Local files are seekable without a temporary copy.
        with open(self._full_path(path), "rb") as f:
            yield f


class ZipFileTree(FileTree):
    """
    A ``FileTree`` backed by the members of a ZIP archive.

    Archive members do not support efficient random access, so seekable
    reads go through the temporary copy provided by ``FileTree``.
    """

    def __init__(self, root: str, **kwargs):
        super().__init__(root, **kwargs)
        self._members: Optional[Dict[str, str]] = None

    def exists(self) -> bool:
        return os.path.isfile(self.root) and is_zipfile(self.root)

    def _scan(self) -> Tuple[List[str], Dict[str, str]]:
        paths = []
        members = {}
        try:
            with ZipFile(self.root) as zf:
                for info in zf.infolist():
                    self._visit(info.filename)
                    if info.is_dir():
                        continue
                    mode = info.external_attr >> 16
                    if stat.S_IFMT(mode) and not stat.S_ISREG(mode):
                        _log_debug_tree("Skipping non-regular member '%s'", info.filename)
                        continue
                    rel_path = normalize_path(info.filename)
                    if not self._selected(rel_path):
                        continue
                    paths.append(rel_path)
                    members[rel_path] = info.filename
        except BadZipFile as err:
            raise OSError(f"Cannot read archive {self.root}: {err}") from err
        return paths, members

    def list_files(self) -> List[str]:
        paths, self._members = self._scan()
        _log_info("Found %d files in %s", len(paths), self.root)
        return paths

    def relative_path(self, path: str) -> str:
        return normalize_path(posixpath.normpath(path))

    @contextmanager
    def open_read(self, path: str) -> Iterator[BinaryIO]:
        if self._members is None:
            _, self._members = self._scan()
        rel_path = normalize_path(path)
        if rel_path not in self._members:
            raise FileNotFoundError(f"No member '{rel_path}' in {self.root}")
        with ZipFile(self.root) as zf:
            with zf.open(self._members[rel_path]) as member:
                yield member


def open_tree(root: str, **kwargs) -> FileTree:
    """
    Return a ``FileTree`` for ``root``: a ``ZipFileTree`` if ``root`` is a
    ZIP archive or a ``LocalFileTree`` otherwise.

    :param root: The location of the tree.
    :type root: ``str``
    :returns: A new ``FileTree`` instance.
    :rtype: ``FileTree``
    """
    if os.path.isfile(root) and is_zipfile(root):
        return ZipFileTree(root, **kwargs)
    return LocalFileTree(root, **kwargs)
