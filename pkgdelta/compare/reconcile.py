# Copyright Red Hat
#
# pkgdelta/compare/reconcile.py - Package delta file set reconciliation
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Reconciliation of two file tables into stable, added, removed, renamed
and moved paths.

Matching is sequential and order dependent: each accepted rename or move
claims its two paths, and claimed paths are never considered again. All
iteration is over sorted keys so that results are reproducible.
"""
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from enum import Enum
import logging

from pkgdelta import PKGDELTA_SUBSYSTEM_COMPARE

from .context import RunContext
from .formats import split_logical_path
from .similarity import (
    common_affix_length,
    get_depth,
    get_prefixes,
    is_moved,
    is_renamed,
)
from .treewalk import FileEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


#: Rename match factor when a directory holds one removed and one added file.
STRONG_RENAME_MATCH = 4

#: Rename match factor otherwise.
WEAK_RENAME_MATCH = 2


class CorrespondenceKind(Enum):
    """
    Enum for the kinds of old to new path correspondence.
    """

    RENAME = "rename"
    MOVE = "move"


class Reconciliation:
    """
    The result of reconciling two file tables.

    ``stable``, ``added`` and ``removed`` partition the union of both path
    sets by exact membership. ``renamed`` and ``moved`` map removed paths to
    added paths and together form a partial injection.
    """

    def __init__(
        self,
        stable: List[str],
        added: List[str],
        removed: List[str],
        renamed: Optional[Dict[str, str]] = None,
        moved: Optional[Dict[str, str]] = None,
    ):
        """
        Initialise a new ``Reconciliation``.

        :param stable: Paths present in both versions.
        :type stable: ``List[str]``
        :param added: Paths only present in the new version.
        :type added: ``List[str]``
        :param removed: Paths only present in the old version.
        :type removed: ``List[str]``
        :param renamed: Old to new path renames.
        :type renamed: ``Optional[Dict[str, str]]``
        :param moved: Old to new path moves.
        :type moved: ``Optional[Dict[str, str]]``
        """
        self.stable = sorted(stable)
        self.added = sorted(added)
        self.removed = sorted(removed)
        self.renamed: Dict[str, str] = dict(renamed or {})
        self.moved: Dict[str, str] = dict(moved or {})
        self.retracted: Dict[str, Tuple[str, CorrespondenceKind]] = {}

    def __str__(self):
        return (
            f"stable: {len(self.stable)}, added: {len(self.added)}, "
            f"removed: {len(self.removed)}, renamed: {len(self.renamed)}, "
            f"moved: {len(self.moved)}, retracted: {len(self.retracted)}"
        )

    def correspondence(self, old_path: str) -> Optional[Tuple[str, CorrespondenceKind]]:
        """
        Return the current correspondence for ``old_path``, if any.

        :param old_path: A removed logical path.
        :type old_path: ``str``
        :returns: A ``(new_path, kind)`` tuple or ``None``.
        :rtype: ``Optional[Tuple[str, CorrespondenceKind]]``
        """
        if old_path in self.moved:
            return (self.moved[old_path], CorrespondenceKind.MOVE)
        if old_path in self.renamed:
            return (self.renamed[old_path], CorrespondenceKind.RENAME)
        return None

    def pairs(self) -> List[Tuple[str, str, Optional[CorrespondenceKind]]]:
        """
        Return every ``(old_path, new_path, kind)`` pair to be rated, in
        logical path order. Stable pairs have a ``kind`` of ``None``.

        :rtype: ``List[Tuple[str, str, Optional[CorrespondenceKind]]]``
        """
        pairs = [(path, path, None) for path in self.stable]
        pairs.extend(
            (old, new, CorrespondenceKind.RENAME) for old, new in self.renamed.items()
        )
        pairs.extend(
            (old, new, CorrespondenceKind.MOVE) for old, new in self.moved.items()
        )
        return sorted(pairs, key=lambda pair: pair[0])

    def retract(self, old_path: str):
        """
        Undo the rename or move of ``old_path``: both of its paths revert to
        plain removed and added paths.

        :param old_path: The source path of the correspondence.
        :type old_path: ``str``
        :raises KeyError: If ``old_path`` has no correspondence.
        """
        match = self.correspondence(old_path)
        if match is None:
            raise KeyError(old_path)
        new_path, kind = match
        if kind == CorrespondenceKind.MOVE:
            del self.moved[old_path]
        else:
            del self.renamed[old_path]
        self.retracted[old_path] = (new_path, kind)
        _log_debug_compare("Retracted %s %s -> %s", kind.value, old_path, new_path)

    @property
    def matched_sources(self) -> Set[str]:
        """Removed paths that are the source of a correspondence."""
        return set(self.renamed) | set(self.moved)

    @property
    def matched_targets(self) -> Set[str]:
        """Added paths that are the target of a correspondence."""
        return set(self.renamed.values()) | set(self.moved.values())

    def unmatched_added(self) -> List[str]:
        """Added paths that are not the target of a correspondence."""
        targets = self.matched_targets
        return [path for path in self.added if path not in targets]

    def unmatched_removed(self) -> List[str]:
        """Removed paths that are not the source of a correspondence."""
        sources = self.matched_sources
        return [path for path in self.removed if path not in sources]

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this ``Reconciliation``.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "stable": list(self.stable),
            "added": list(self.added),
            "removed": list(self.removed),
            "renamed": dict(sorted(self.renamed.items())),
            "moved": dict(sorted(self.moved.items())),
        }


def _group(paths: List[str], key_func) -> Dict[str, List[str]]:
    groups = defaultdict(list)
    for path in paths:
        for key in key_func(path):
            groups[key].append(path)
    return groups


class FileSetReconciler:
    """
    Pair the paths of two file tables.
    """

    def __init__(self, context: RunContext):
        """
        Initialise a new ``FileSetReconciler``.

        :param context: The comparison run context.
        :type context: ``RunContext``
        """
        self.context = context
        self.options = context.options

    # pylint: disable=too-many-locals
    def _detect_moves(
        self,
        old_files: Mapping[str, FileEntry],
        new_files: Mapping[str, FileEntry],
        added: List[str],
        removed: List[str],
    ) -> Dict[str, str]:
        depth = self.options.move_depth
        moved: Dict[str, str] = {}
        claimed_targets: Set[str] = set()

        def _name(path):
            return [split_logical_path(path)[1]]

        def _prefixes(path):
            return get_prefixes(path, depth)

        removed_by_name = _group(removed, _name)
        added_by_name = _group(added, _name)
        removed_by_prefix = _group(removed, _prefixes)
        added_by_prefix = _group(added, _prefixes)

        # Deepest paths first so that specific matches claim targets early.
        for old_path in sorted(removed, key=lambda p: (-get_depth(p), p)):
            name = split_logical_path(old_path)[1]
            removed_cands = [p for p in removed_by_name[name] if p not in moved]
            added_cands = [p for p in added_by_name[name] if p not in claimed_targets]

            if not (len(added_cands) == 1 and len(removed_cands) == 1):
                narrowed = None
                for prefix in get_prefixes(old_path, depth):
                    removed_pre = [
                        p for p in removed_by_prefix[prefix] if p not in moved
                    ]
                    added_pre = [
                        p for p in added_by_prefix[prefix] if p not in claimed_targets
                    ]
                    if len(added_pre) == 1 and len(removed_pre) == 1:
                        narrowed = added_pre
                if narrowed is None:
                    continue
                added_cands = narrowed

            old_format = old_files[old_path].file_format
            for new_path in sorted(added_cands):
                if new_files[new_path].file_format != old_format:
                    continue
                if new_path in claimed_targets:
                    continue
                if is_moved(old_path, new_path):
                    _log_debug_compare("Detected move %s -> %s", old_path, new_path)
                    moved[old_path] = new_path
                    claimed_targets.add(new_path)
                    break
        return moved

    def _detect_renames(
        self,
        old_files: Mapping[str, FileEntry],
        new_files: Mapping[str, FileEntry],
        added: List[str],
        removed: List[str],
        moved: Dict[str, str],
    ) -> Dict[str, str]:
        base_ratio = self.options.rename_file_match
        cache = self.context.affix_cache
        renamed: Dict[str, str] = {}
        claimed_targets: Set[str] = set(moved.values())

        def _dir(path):
            return [split_logical_path(path)[0]]

        removed_by_dir = _group(removed, _dir)
        added_by_dir = _group(added, _dir)

        for old_path in removed:
            if old_path in moved:
                continue
            directory, name = split_logical_path(old_path)
            removed_in_dir = removed_by_dir[directory]
            added_in_dir = added_by_dir[directory]

            match_factor = WEAK_RENAME_MATCH
            if len(removed_in_dir) == 1 and len(added_in_dir) == 1:
                match_factor = STRONG_RENAME_MATCH

            def _rank(new_path, name=name):
                new_name = split_logical_path(new_path)[1]
                return (
                    -common_affix_length(name, new_name, cache=cache),
                    abs(len(name) - len(new_name)),
                    new_path,
                )

            old_format = old_files[old_path].file_format
            for new_path in sorted(added_in_dir, key=_rank):
                if new_path in claimed_targets:
                    continue
                if new_files[new_path].file_format != old_format:
                    continue
                if is_renamed(
                    old_path, new_path, match_factor, base_ratio=base_ratio, cache=cache
                ):
                    _log_debug_compare("Detected rename %s -> %s", old_path, new_path)
                    renamed[old_path] = new_path
                    claimed_targets.add(new_path)
                    break
        return renamed

    def reconcile(
        self,
        old_files: Mapping[str, FileEntry],
        new_files: Mapping[str, FileEntry],
    ) -> Reconciliation:
        """
        Partition two file tables and detect moves and renames.

        Moves are detected before renames: a path taking part in a move is
        never considered for a rename. Both kinds of match require the two
        entries to share a format.

        :param old_files: The old version file table.
        :type old_files: ``Mapping[str, FileEntry]``
        :param new_files: The new version file table.
        :type new_files: ``Mapping[str, FileEntry]``
        :returns: The reconciliation of the two tables.
        :rtype: ``Reconciliation``
        """
        stable = sorted(path for path in old_files if path in new_files)
        removed = sorted(path for path in old_files if path not in new_files)
        added = sorted(path for path in new_files if path not in old_files)

        moved = self._detect_moves(old_files, new_files, added, removed)
        renamed = self._detect_renames(old_files, new_files, added, removed, moved)

        result = Reconciliation(stable, added, removed, renamed=renamed, moved=moved)
        _log_debug_compare("Reconciled file tables: %s", result)
        return result


__all__ = [
    "CorrespondenceKind",
    "FileSetReconciler",
    "Reconciliation",
]
