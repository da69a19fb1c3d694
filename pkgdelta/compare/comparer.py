# Copyright Red Hat
#
# pkgdelta/compare/comparer.py - Package delta package comparer
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top-level package comparison interface.
"""
from typing import Mapping, Optional, Tuple, Union
import logging

from pkgdelta.progress import TermControl

from .context import RunContext
from .deps import DependencyTable, read_dependency_file
from .engine import CompareEngine, CompareResults
from .formats import FormatRules
from .options import CompareOptions
from .treewalk import TreeWalker

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Dependencies given as a declaration file path or as a table.
DependencySource = Union[str, DependencyTable, None]


def _load_deps(deps: DependencySource) -> Optional[DependencyTable]:
    """
    Return a dependency table for ``deps``, reading it if it is a path.

    :param deps: A dependency file path, a table or ``None``.
    :type deps: ``DependencySource``
    :rtype: ``Optional[DependencyTable]``
    """
    if isinstance(deps, str):
        return read_dependency_file(deps)
    return deps


class PackageComparer:
    """
    Top-level interface for comparing two versions of a package.

    Each ``PackageComparer`` owns a ``RunContext``; use one instance per
    concurrent comparison.
    """

    def __init__(
        self,
        options: Optional[CompareOptions] = None,
        rules: Optional[FormatRules] = None,
        color: str = "auto",
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``PackageComparer``.

        :param options: Options to control this ``PackageComparer``.
        :type options: ``Optional[CompareOptions]``
        :param rules: Format classification tables, the defaults if unset.
        :type rules: ``Optional[FormatRules]``
        :param color: A string to control color rendering: "auto", "always",
                      or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` instance to use for
                             progress output. The supplied instance overrides
                             any ``color`` argument if set.
        :type term_control: ``Optional[TermControl]``
        """
        self.context = RunContext(options=options, rules=rules)
        self.options: CompareOptions = self.context.options
        self.tree_walker = TreeWalker(self.context)
        self.engine = CompareEngine(self.context)
        self._term_control = term_control or TermControl(color=color)

    def compare_trees(
        self,
        old_root: str,
        new_root: str,
        old_deps: DependencySource = None,
        new_deps: DependencySource = None,
        old_info: Optional[Mapping[str, str]] = None,
        new_info: Optional[Mapping[str, str]] = None,
    ) -> CompareResults:
        """
        Compare two extracted package trees.

        :param old_root: The root of the old version tree.
        :type old_root: ``str``
        :param new_root: The root of the new version tree.
        :type new_root: ``str``
        :param old_deps: Old dependencies: a declaration file or a table.
        :type old_deps: ``DependencySource``
        :param new_deps: New dependencies: a declaration file or a table.
        :type new_deps: ``DependencySource``
        :param old_info: Old metadata blobs by package name.
        :type old_info: ``Optional[Mapping[str, str]]``
        :param new_info: New metadata blobs by package name.
        :type new_info: ``Optional[Mapping[str, str]]``
        :returns: The comparison results.
        :rtype: ``CompareResults``
        :raises PkgdeltaPathError: If a tree or dependency file cannot be read.
        :raises PkgdeltaParseError: If a dependency file is malformed.
        """
        # Structural inputs are all read before any comparison work starts.
        old_deps = _load_deps(old_deps)
        new_deps = _load_deps(new_deps)

        old_files = self.tree_walker.walk_tree(
            old_root, name="old", quiet=self.options.quiet, term_control=self._term_control
        )
        new_files = self.tree_walker.walk_tree(
            new_root, name="new", quiet=self.options.quiet, term_control=self._term_control
        )
        _log_debug(
            "Comparing %s (%d paths) to %s (%d paths)",
            old_root,
            len(old_files),
            new_root,
            len(new_files),
        )
        return self.engine.compute(
            old_files,
            new_files,
            old_deps=old_deps,
            new_deps=new_deps,
            old_info=old_info,
            new_info=new_info,
            term_control=self._term_control,
        )

    def compare_maps(
        self,
        old_map: Mapping[str, Tuple[Optional[str], int]],
        new_map: Mapping[str, Tuple[Optional[str], int]],
        old_deps: DependencySource = None,
        new_deps: DependencySource = None,
        old_info: Optional[Mapping[str, str]] = None,
        new_info: Optional[Mapping[str, str]] = None,
    ) -> CompareResults:
        """
        Compare two ``{logical path: (physical path, size)}`` maps as
        produced by an external package extractor.

        :param old_map: The old version map.
        :type old_map: ``Mapping[str, Tuple[Optional[str], int]]``
        :param new_map: The new version map.
        :type new_map: ``Mapping[str, Tuple[Optional[str], int]]``
        :param old_deps: Old dependencies: a declaration file or a table.
        :type old_deps: ``DependencySource``
        :param new_deps: New dependencies: a declaration file or a table.
        :type new_deps: ``DependencySource``
        :param old_info: Old metadata blobs by package name.
        :type old_info: ``Optional[Mapping[str, str]]``
        :param new_info: New metadata blobs by package name.
        :type new_info: ``Optional[Mapping[str, str]]``
        :returns: The comparison results.
        :rtype: ``CompareResults``
        :raises PkgdeltaParseError: If a map or dependency file is malformed.
        """
        old_deps = _load_deps(old_deps)
        new_deps = _load_deps(new_deps)
        old_files = self.tree_walker.entries_from_map(old_map)
        new_files = self.tree_walker.entries_from_map(new_map)
        return self.engine.compute(
            old_files,
            new_files,
            old_deps=old_deps,
            new_deps=new_deps,
            old_info=old_info,
            new_info=new_info,
            term_control=self._term_control,
        )


__all__ = [
    "DependencySource",
    "PackageComparer",
]
