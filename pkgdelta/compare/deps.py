# Copyright Red Hat
#
# pkgdelta/compare/deps.py - Package delta dependency reconciliation
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Dependency declaration parsing and reconciliation.

Dependencies are grouped by kind ("requires", "provides", ...) and keyed
by name. A dependency table has the shape
``{kind: {name: (operator, version)}}``.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from enum import Enum
import logging
import re

from pkgdelta import PKGDELTA_SUBSYSTEM_COMPARE, PkgdeltaParseError, PkgdeltaPathError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


#: Dependency table type: kind -> name -> (operator, version)
DependencyTable = Dict[str, Dict[str, Tuple[str, str]]]

_DEP_RE = re.compile(r"\A(.+?)(\s+|\[|\()(=|==|<=|>=|<|>)\s+(.+?)(\]|\)|\Z)")
_EPOCH_RE = re.compile(r"\A[^\-:]+:")
_KIND_RE = re.compile(r"\A([A-Za-z][\w\-]*)\s*:\s*(.*)\Z")


def parse_dependency(declaration: str) -> Tuple[str, str, str]:
    """
    Split a dependency declaration into name, operator and version.

    Accepts ``name op version``, ``name (op version)`` and
    ``name [op version]``. An epoch prefix ``N:`` is stripped from the
    version. A declaration without a version constraint yields empty
    operator and version strings.

    :param declaration: The declaration, for example ``"libfoo (>= 1.0)"``.
    :type declaration: ``str``
    :returns: A ``(name, operator, version)`` tuple.
    :rtype: ``Tuple[str, str, str]``
    """
    declaration = declaration.strip()
    match = _DEP_RE.match(declaration)
    if not match:
        return (declaration, "", "")
    name = match.group(1).strip()
    operator = match.group(3)
    version = _EPOCH_RE.sub("", match.group(4).strip())
    return (name, operator, version)


@dataclass(frozen=True)
class DependencyRecord:
    """
    A single versioned dependency declaration.
    """

    #: Dependency kind
    kind: str
    #: Dependency name
    name: str
    #: Comparison operator, empty if unversioned
    operator: str = ""
    #: Version string, empty if unversioned
    version: str = ""

    def __str__(self):
        if self.operator or self.version:
            return f"{self.name} {self.operator} {self.version}"
        return self.name

    @classmethod
    def from_declaration(cls, kind: str, declaration: str) -> "DependencyRecord":
        """
        Build a ``DependencyRecord`` by parsing ``declaration``.

        :param kind: The dependency kind.
        :type kind: ``str``
        :param declaration: The declaration string.
        :type declaration: ``str``
        :rtype: ``DependencyRecord``
        """
        return cls(kind, *parse_dependency(declaration))

    def to_dict(self) -> Dict[str, str]:
        """
        Return a dictionary representation of this ``DependencyRecord``.

        :rtype: ``Dict[str, str]``
        """
        return {
            "kind": self.kind,
            "name": self.name,
            "operator": self.operator,
            "version": self.version,
        }


def build_dependency_table(records: Iterable[DependencyRecord]) -> DependencyTable:
    """
    Group records into a dependency table. Later records of the same kind
    and name replace earlier ones.

    :param records: The records to group.
    :type records: ``Iterable[DependencyRecord]``
    :rtype: ``DependencyTable``
    """
    table: DependencyTable = {}
    for record in records:
        table.setdefault(record.kind, {})[record.name] = (record.operator, record.version)
    return table


def read_dependency_file(path: str) -> DependencyTable:
    """
    Read a dependency declaration file.

    Each non-blank line not starting with '#' has the form
    ``kind: declaration[, declaration...]``; kinds are case insensitive.

    :param path: The file to read.
    :type path: ``str``
    :returns: The dependency table.
    :rtype: ``DependencyTable``
    :raises PkgdeltaPathError: If the file cannot be read.
    :raises PkgdeltaParseError: If a line is malformed or the file holds
                                no declarations.
    """
    try:
        with open(path, "r", encoding="utf8") as fp:
            lines = fp.readlines()
    except OSError as err:
        raise PkgdeltaPathError(f"Cannot read dependency file {path}: {err}") from err

    records = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _KIND_RE.match(line)
        if not match:
            raise PkgdeltaParseError(
                f"Malformed dependency declaration at {path}:{lineno}: '{line}'"
            )
        kind = match.group(1).lower()
        for declaration in match.group(2).split(","):
            if declaration.strip():
                records.append(DependencyRecord.from_declaration(kind, declaration))

    if not records:
        raise PkgdeltaParseError(f"No dependency declarations found in {path}")
    _log_debug_compare("Read %d dependency records from %s", len(records), path)
    return build_dependency_table(records)


class DependencyStatus(Enum):
    """
    Enum for the reconciliation status of a dependency.
    """

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DependencyChange:
    """
    The reconciliation outcome for one dependency name.
    """

    #: Dependency kind
    kind: str
    #: Dependency name
    name: str
    #: Reconciliation status
    status: DependencyStatus
    #: The old record, if any
    old: Optional[DependencyRecord] = None
    #: The new record, if any
    new: Optional[DependencyRecord] = None

    def __str__(self):
        if self.status == DependencyStatus.CHANGED:
            return f"{self.status.value} {self.kind}: {self.old} -> {self.new}"
        return f"{self.status.value} {self.kind}: {self.old or self.new}"

    @property
    def size(self) -> int:
        """The accounting size of this dependency: the name length."""
        return len(self.name)

    @property
    def size_delta(self) -> int:
        """The size if this dependency differs between versions, else 0."""
        return 0 if self.status == DependencyStatus.UNCHANGED else self.size

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this ``DependencyChange``.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "kind": self.kind,
            "name": self.name,
            "status": self.status.value,
            "old": self.old.to_dict() if self.old else None,
            "new": self.new.to_dict() if self.new else None,
        }


class DependencyChanges:
    """
    The reconciliation of one dependency kind.
    """

    def __init__(self, kind: str, changes: List[DependencyChange]):
        self.kind = kind
        self.changes = sorted(changes, key=lambda c: c.name)

    def __str__(self):
        counts = ", ".join(
            f"{status.value}: {len(self.by_status(status))}" for status in DependencyStatus
        )
        return f"{self.kind}: {counts}"

    def by_status(self, status: DependencyStatus) -> List[DependencyChange]:
        """
        Return the changes with the given status, ordered by name.
        """
        return [change for change in self.changes if change.status == status]

    @property
    def added(self) -> List[DependencyChange]:
        """Dependencies only present in the new version."""
        return self.by_status(DependencyStatus.ADDED)

    @property
    def removed(self) -> List[DependencyChange]:
        """Dependencies only present in the old version."""
        return self.by_status(DependencyStatus.REMOVED)

    @property
    def changed(self) -> List[DependencyChange]:
        """Dependencies with a different constraint in each version."""
        return self.by_status(DependencyStatus.CHANGED)

    @property
    def unchanged(self) -> List[DependencyChange]:
        """Dependencies equal in both versions."""
        return self.by_status(DependencyStatus.UNCHANGED)

    @property
    def total(self) -> int:
        """The number of dependency names of this kind."""
        return len(self.changes)

    @property
    def size(self) -> int:
        """The sum of the accounting sizes of this kind."""
        return sum(change.size for change in self.changes)

    @property
    def size_delta(self) -> int:
        """The sum of the accounting size deltas of this kind."""
        return sum(change.size_delta for change in self.changes)

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this ``DependencyChanges``.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "kind": self.kind,
            "total": self.total,
            "added": len(self.added),
            "removed": len(self.removed),
            "changed": len(self.changed),
            "size": self.size,
            "size_delta": self.size_delta,
            "dependencies": [change.to_dict() for change in self.changes],
        }


class DependencyReconciler:
    """
    Reconcile the dependency tables of two package versions.

    Identity is by exact name within a kind; there is no rename logic.
    """

    @staticmethod
    def _reconcile_kind(
        kind: str,
        old_deps: Mapping[str, Tuple[str, str]],
        new_deps: Mapping[str, Tuple[str, str]],
    ) -> DependencyChanges:
        changes = []
        for name in sorted(set(old_deps) | set(new_deps)):
            old = new = None
            if name in old_deps:
                old = DependencyRecord(kind, name, *old_deps[name])
            if name in new_deps:
                new = DependencyRecord(kind, name, *new_deps[name])

            if new is None:
                status = DependencyStatus.REMOVED
            elif old is None:
                status = DependencyStatus.ADDED
            elif (
                old.operator
                and old.version
                and (old.operator != new.operator or old.version != new.version)
            ):
                status = DependencyStatus.CHANGED
            else:
                status = DependencyStatus.UNCHANGED
            changes.append(DependencyChange(kind, name, status, old=old, new=new))
        return DependencyChanges(kind, changes)

    def reconcile(
        self,
        old_deps: Mapping[str, Mapping[str, Tuple[str, str]]],
        new_deps: Mapping[str, Mapping[str, Tuple[str, str]]],
    ) -> Dict[str, DependencyChanges]:
        """
        Reconcile two dependency tables kind by kind.

        A name absent from the new table is removed, absent from the old
        table is added, and present in both with a differing constraint is
        changed. A constraint is only considered when the old record has
        both an operator and a version.

        :param old_deps: The old version dependency table.
        :type old_deps: ``Mapping[str, Mapping[str, Tuple[str, str]]]``
        :param new_deps: The new version dependency table.
        :type new_deps: ``Mapping[str, Mapping[str, Tuple[str, str]]]``
        :returns: A dictionary mapping kinds to their reconciliation.
        :rtype: ``Dict[str, DependencyChanges]``
        """
        result = {}
        for kind in sorted(set(old_deps) | set(new_deps)):
            result[kind] = self._reconcile_kind(
                kind, old_deps.get(kind, {}), new_deps.get(kind, {})
            )
            _log_debug_compare("Reconciled dependencies: %s", result[kind])
        return result


__all__ = [
    "DependencyChange",
    "DependencyChanges",
    "DependencyReconciler",
    "DependencyRecord",
    "DependencyStatus",
    "DependencyTable",
    "build_dependency_table",
    "parse_dependency",
    "read_dependency_file",
]
