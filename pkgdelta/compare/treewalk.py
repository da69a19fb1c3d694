# Copyright Red Hat
#
# pkgdelta/compare/treewalk.py - Package delta file table ingestion
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Ingestion of extracted package trees into file tables.

A file table maps logical paths (the version independent identity of a
file, for example ``/usr/lib64/libfoo.so.1``) to immutable ``FileEntry``
objects describing the physical copy of the file in one version.
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple
from fnmatch import fnmatch
import logging
import stat
import os

from pkgdelta import PKGDELTA_SUBSYSTEM_COMPARE, PkgdeltaParseError, PkgdeltaPathError
from pkgdelta.progress import ProgressFactory, TermControl

from .context import RunContext
from .formats import FormatTag, split_logical_path

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


@dataclass(frozen=True)
class FileEntry:
    """
    A single file in one version of a package.
    """

    #: Version independent logical path
    path: str
    #: Location of the file content, if available
    full_path: Optional[str]
    #: Size in bytes (the target length for symbolic links)
    size: int
    #: Classified format
    file_format: FormatTag
    #: The entry is a directory
    is_dir: bool = False
    #: The entry is a symbolic link
    is_symlink: bool = False
    #: The symbolic link target
    link_target: Optional[str] = None

    def __str__(self):
        """
        Return a human readable string representation of this ``FileEntry``.

        :returns: A human readable string.
        :rtype: ``str``
        """
        desc = f"{self.path} ({self.file_format}, {self.size} bytes)"
        if self.is_symlink:
            desc += f" -> {self.link_target}"
        return desc

    @property
    def name(self) -> str:
        """The file name of this entry."""
        return split_logical_path(self.path)[1]

    @property
    def directory(self) -> str:
        """The logical directory of this entry."""
        return split_logical_path(self.path)[0]

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this ``FileEntry``.

        :returns: A dictionary of entry properties.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "path": self.path,
            "full_path": self.full_path,
            "size": self.size,
            "file_format": str(self.file_format),
            "is_dir": self.is_dir,
            "is_symlink": self.is_symlink,
            "link_target": self.link_target,
        }


class TreeWalker:
    """
    Build file tables from extracted trees or from path maps.
    """

    def __init__(self, context: RunContext):
        """
        Initialise a new ``TreeWalker``.

        :param context: The comparison run context.
        :type context: ``RunContext``
        """
        self.context = context
        self.exclude_patterns = context.options.exclude_patterns

    def _excluded(self, logical_path: str) -> bool:
        return any(fnmatch(logical_path, pat) for pat in self.exclude_patterns)

    def make_entry(self, logical_path: str, full_path: str) -> FileEntry:
        """
        Create a ``FileEntry`` for the file at ``full_path``.

        :param logical_path: The logical path of the file.
        :type logical_path: ``str``
        :param full_path: The physical location of the file.
        :type full_path: ``str``
        :returns: A new, classified ``FileEntry``.
        :rtype: ``FileEntry``
        :raises PkgdeltaPathError: If ``full_path`` does not exist.
        """
        try:
            path_stat = os.lstat(full_path)
        except OSError as err:
            raise PkgdeltaPathError(f"Cannot access {full_path}: {err}") from err

        is_symlink = stat.S_ISLNK(path_stat.st_mode)
        is_dir = stat.S_ISDIR(path_stat.st_mode)
        link_target = os.readlink(full_path) if is_symlink else None
        if is_symlink:
            size = len(link_target)
        elif is_dir:
            size = 0
        else:
            size = path_stat.st_size

        file_format = self.context.classifier.classify(
            logical_path, full_path, is_dir=is_dir, is_symlink=is_symlink
        )
        return FileEntry(
            logical_path,
            full_path,
            size,
            file_format,
            is_dir=is_dir,
            is_symlink=is_symlink,
            link_target=link_target,
        )

    def walk_tree(
        self,
        root: str,
        name: Optional[str] = None,
        quiet: bool = False,
        term_control: Optional[TermControl] = None,
    ) -> Dict[str, FileEntry]:
        """
        Walk an extracted tree and return its file table.

        Logical paths are formed by prefixing the path relative to ``root``
        with '/'. Directories are included as entries of format ``DIR``.
        Symbolic links are not followed.

        :param root: The root of the extracted tree.
        :type root: ``str``
        :param name: A name for the tree used in progress output.
        :type name: ``Optional[str]``
        :param quiet: Suppress progress output.
        :type quiet: ``bool``
        :param term_control: Optional pre-initialised terminal control object.
        :type term_control: ``Optional[TermControl]``
        :returns: A dictionary mapping logical paths to ``FileEntry`` objects.
        :rtype: ``Dict[str, FileEntry]``
        :raises PkgdeltaPathError: If ``root`` is not a directory.
        """
        if not os.path.isdir(root):
            raise PkgdeltaPathError(f"Tree root {root} is not a directory")

        _log_info("Gathering paths from %s", root)
        to_visit = sorted(
            os.path.join(dirpath, entry)
            for dirpath, dirs, files in os.walk(root)
            for entry in dirs + files
        )

        table: Dict[str, FileEntry] = {}
        if not to_visit:
            return table

        progress = ProgressFactory.get_progress(
            f"Reading {name or root}", quiet=quiet, term_control=term_control
        )
        progress.start(len(to_visit))
        excluded = 0
        try:
            for i, full_path in enumerate(to_visit):
                logical_path = "/" + os.path.relpath(full_path, root).replace(os.sep, "/")
                if self._excluded(logical_path):
                    excluded += 1
                    continue
                progress.progress(i, f"Reading {logical_path}")
                try:
                    table[logical_path] = self.make_entry(logical_path, full_path)
                except PkgdeltaPathError as err:
                    # Vanished between discovery and lstat().
                    _log_debug_compare("Skipping %s: %s", logical_path, err)
        except (KeyboardInterrupt, SystemExit):
            progress.cancel("Quit!")
            raise
        progress.end(f"Read {len(table)} paths from {name or root}")

        _log_debug_compare(
            "Ingested %d entries from %s (%d excluded)", len(table), root, excluded
        )
        return table

    def entries_from_map(
        self, file_map: Mapping[str, Tuple[Optional[str], int]]
    ) -> Dict[str, FileEntry]:
        """
        Build a file table from a ``{logical path: (physical path, size)}``
        map as produced by an external package extractor.

        Entries whose physical path is ``None`` are classified by name only.

        :param file_map: The extractor output.
        :type file_map: ``Mapping[str, Tuple[Optional[str], int]]``
        :returns: A dictionary mapping logical paths to ``FileEntry`` objects.
        :rtype: ``Dict[str, FileEntry]``
        :raises PkgdeltaParseError: If a map value is malformed.
        """
        table: Dict[str, FileEntry] = {}
        for logical_path in sorted(file_map):
            if self._excluded(logical_path):
                continue
            try:
                full_path, size = file_map[logical_path]
                size = int(size)
            except (TypeError, ValueError) as err:
                raise PkgdeltaParseError(
                    f"Malformed file map entry for {logical_path}: {err}"
                ) from err
            if size < 0:
                raise PkgdeltaParseError(
                    f"Negative size for {logical_path}: {size}"
                )

            is_symlink = full_path is not None and os.path.islink(full_path)
            is_dir = (
                full_path is not None and not is_symlink and os.path.isdir(full_path)
            )
            link_target = os.readlink(full_path) if is_symlink else None
            file_format = self.context.classifier.classify(
                logical_path, full_path, is_dir=is_dir, is_symlink=is_symlink
            )
            table[logical_path] = FileEntry(
                logical_path,
                full_path,
                size,
                file_format,
                is_dir=is_dir,
                is_symlink=is_symlink,
                link_target=link_target,
            )
        return table


__all__ = [
    "FileEntry",
    "TreeWalker",
]
