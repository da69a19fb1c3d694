# Copyright Red Hat
#
# pkgdelta/compare/similarity.py - Package delta similarity measures
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Cheap string similarity measures used to pair renamed and moved files.

These are best-effort heuristics: a positive result means two names are
similar enough to be worth confirming by content, not that they denote
the same file.
"""
from typing import Dict, List, Optional, Tuple
import re

from .formats import split_logical_path

#: Default base ratio for the rename affix test.
RENAME_FILE_MATCH = 0.55

#: Names up to this length have a shared extension removed before scoring.
SHORT_NAME_LENGTH = 8

_EXT_RE = re.compile(r"\.(\w+)\Z")


def common_affix_length(
    a: str, b: str, cache: Optional[Dict[Tuple[str, str], int]] = None
) -> int:
    """
    Return the shared prefix length plus the shared suffix length of two
    strings.

    The prefix and suffix are each measured independently over at most
    ``min(len(a), len(b))`` positions, so for similar strings the two
    regions may overlap. Identical strings score their own length.

    :param a: The first string.
    :type a: ``str``
    :param b: The second string.
    :type b: ``str``
    :param cache: An optional memo keyed by ``(a, b)``.
    :type cache: ``Optional[Dict[Tuple[str, str], int]]``
    :returns: The combined affix length.
    :rtype: ``int``
    """
    if cache is not None and (a, b) in cache:
        return cache[(a, b)]

    if a == b:
        length = len(a)
    else:
        shortest = min(len(a), len(b))
        prefix = 0
        while prefix < shortest and a[prefix] == b[prefix]:
            prefix += 1
        suffix = 0
        while suffix < shortest and a[-1 - suffix] == b[-1 - suffix]:
            suffix += 1
        length = prefix + suffix

    if cache is not None:
        cache[(a, b)] = length
    return length


def is_renamed(
    old_path: str,
    new_path: str,
    match_factor: float,
    base_ratio: float = RENAME_FILE_MATCH,
    cache: Optional[Dict[Tuple[str, str], int]] = None,
) -> bool:
    """
    Decide whether ``new_path`` looks like a rename of ``old_path``.

    Both paths must share a directory and differ in name. Names of at most
    eight characters have a shared extension removed first. The affix
    length of the names must then reach
    ``(len(old) + len(new)) / (match_factor / base_ratio)``, where the
    lengths are those of the unstripped names. A larger ``match_factor``
    is more permissive.

    :param old_path: The logical path in the old version.
    :type old_path: ``str``
    :param new_path: The logical path in the new version.
    :type new_path: ``str``
    :param match_factor: Match strength: the reconciler passes 4 when the
                         directory holds a single removed and a single added
                         file and 2 otherwise.
    :type match_factor: ``float``
    :param base_ratio: The tuned base ratio.
    :type base_ratio: ``float``
    :param cache: An optional memo for ``common_affix_length``.
    :type cache: ``Optional[Dict[Tuple[str, str], int]]``
    :rtype: ``bool``
    """
    old_dir, old_name = split_logical_path(old_path)
    new_dir, new_name = split_logical_path(new_path)
    if old_dir != new_dir or old_name == new_name:
        return False

    threshold_len = len(old_name) + len(new_name)
    if len(old_name) <= SHORT_NAME_LENGTH:
        match = _EXT_RE.search(old_name)
        if match:
            ext = "." + match.group(1)
            if new_name.endswith(ext):
                old_name = old_name[: -len(ext)]
                new_name = new_name[: -len(ext)]

    threshold = threshold_len / (match_factor / base_ratio)
    return common_affix_length(old_name, new_name, cache=cache) >= threshold


def is_moved(old_path: str, new_path: str) -> bool:
    """
    Return ``True`` if two paths share a file name but not a directory.

    :param old_path: The logical path in the old version.
    :type old_path: ``str``
    :param new_path: The logical path in the new version.
    :type new_path: ``str``
    :rtype: ``bool``
    """
    old_dir, old_name = split_logical_path(old_path)
    new_dir, new_name = split_logical_path(new_path)
    return old_name == new_name and old_dir != new_dir


def get_prefixes(path: str, depth: int) -> List[str]:
    """
    Return the trailing sub-paths of ``path`` up to ``depth`` directories.

    For ``"/usr/lib/foo/x.so"`` and a depth of 4 this returns
    ``["foo/x.so", "lib/foo/x.so", "usr/lib/foo/x.so"]``: each entry adds
    one parent directory, walking from the leaf upward, and the top-level
    component is never included.

    :param path: A '/' separated logical path.
    :type path: ``str``
    :param depth: The maximum number of parent directories to add.
    :type depth: ``int``
    :rtype: ``List[str]``
    """
    parts = path.split("/")
    prefix = parts[-1]
    prefixes = []
    for i in range(1, depth + 1):
        if i < len(parts) - 1:
            prefix = parts[-1 - i] + "/" + prefix
            prefixes.append(prefix)
    return prefixes


def get_depth(path: str) -> int:
    """
    Return the number of '/' separators in ``path``.
    """
    return path.count("/")


def size_change_rate(old_size: int, new_size: int) -> float:
    """
    Return the relative size difference of two files, saturating at 1.

    An empty old file is defined as maximally changed.

    :param old_size: The old size in bytes.
    :type old_size: ``int``
    :param new_size: The new size in bytes.
    :type new_size: ``int``
    :rtype: ``float``
    """
    if not old_size:
        return 1.0
    return min(1.0, abs(old_size - new_size) / old_size)


__all__ = [
    "RENAME_FILE_MATCH",
    "common_affix_length",
    "get_depth",
    "get_prefixes",
    "is_moved",
    "is_renamed",
    "size_change_rate",
]
