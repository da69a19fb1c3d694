# Copyright Red Hat
#
# pkgdelta/compare/engine.py - Package delta comparison engine
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Package comparison engine
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
from datetime import datetime
from enum import Enum
from math import floor
import logging
import json

from pkgdelta import PKGDELTA_SUBSYSTEM_COMPARE, size_fmt
from pkgdelta.progress import ProgressFactory, TermControl

from .context import RunContext
from .deps import DependencyChanges, DependencyReconciler
from .formats import DEFAULT_FORMAT_RULES, FormatRules, FormatTag
from .options import CompareOptions
from .ratediff import ChangeRateComputer, DiffArtifact, RateResult, RateStatus
from .reconcile import CorrespondenceKind, FileSetReconciler, Reconciliation
from .treewalk import FileEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


class FileStatus(Enum):
    """
    Enum for the reported status of a file.
    """

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    RENAMED = "renamed"
    MOVED = "moved"
    SKIPPED = "skipped"


_CORRESPONDENCE_STATUS = {
    CorrespondenceKind.RENAME: FileStatus.RENAMED,
    CorrespondenceKind.MOVE: FileStatus.MOVED,
}


class FileRecord:
    """
    The reported outcome for one logical path (or one rename or move).
    """

    def __init__(
        self,
        path: str,
        status: FileStatus,
        old_entry: Optional[FileEntry] = None,
        new_entry: Optional[FileEntry] = None,
        result: Optional[RateResult] = None,
    ):
        """
        Initialise a new ``FileRecord`` object.

        :param path: The logical path: the old path for renames and moves.
        :type path: ``str``
        :param status: The reported status.
        :type status: ``FileStatus``
        :param old_entry: The old version entry, if any.
        :type old_entry: ``Optional[FileEntry]``
        :param new_entry: The new version entry, if any.
        :type new_entry: ``Optional[FileEntry]``
        :param result: The rating of the pair, if it was rated.
        :type result: ``Optional[RateResult]``
        """
        self.path = path
        self.status = status
        self.old_entry = old_entry
        self.new_entry = new_entry
        self.rate: Optional[float] = result.rate if result else None
        self.artifact: Optional[DiffArtifact] = result.artifact if result else None
        self.reason: Optional[str] = result.reason if result else None
        self.content_changed = bool(result and result.status == RateStatus.CHANGED)

    def __str__(self):
        desc = f"{self.status.value}: {self.path}"
        if self.new_path != self.path:
            desc += f" -> {self.new_path}"
        if self.rate is not None and self.status != FileStatus.UNCHANGED:
            desc += f" ({self.rate * 100:.1f}%)"
        if self.reason:
            desc += f" [{self.reason}]"
        return desc

    @property
    def new_path(self) -> str:
        """The logical path in the new version."""
        return self.new_entry.path if self.new_entry else self.path

    @property
    def file_format(self) -> FormatTag:
        """The format of the old entry, or of the new one if added."""
        entry = self.old_entry or self.new_entry
        return entry.file_format

    @property
    def size(self) -> int:
        """The size of the old entry, or of the new one if added."""
        entry = self.old_entry or self.new_entry
        return entry.size

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``FileRecord`` into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        out = {
            "path": self.path,
            "status": self.status.value,
            "file_format": str(self.file_format),
            "size": self.size,
            "content_changed": self.content_changed,
        }
        if self.new_path != self.path:
            out["new_path"] = self.new_path
        if self.rate is not None:
            out["rate"] = self.rate
        if self.reason:
            out["reason"] = self.reason
        if self.artifact is not None:
            out["diff"] = self.artifact.to_dict()
        return out

    def json(self, pretty=False) -> str:
        """
        Return a string representation of this ``FileRecord`` in JSON
        notation.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :returns: A JSON representation of this instance.
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)


class FormatChanges:
    """
    Per-format counters.
    """

    def __init__(self, file_format: FormatTag):
        self.file_format = file_format
        self.total = 0
        self.added = 0
        self.removed = 0
        self.changed = 0
        self.skipped = 0
        self.size = 0
        self.size_delta = 0.0

    def __repr__(self):
        return (
            f"FormatChanges({self.file_format}: total={self.total}, "
            f"added={self.added}, removed={self.removed}, changed={self.changed}, "
            f"skipped={self.skipped}, size={self.size}, "
            f"size_delta={self.size_delta})"
        )

    def add_added(self, entry: FileEntry):
        """Account for a file only present in the new version."""
        self.total += 1
        self.added += 1
        self.size += entry.size
        self.size_delta += entry.size

    def add_removed(self, entry: FileEntry):
        """Account for a file only present in the old version."""
        self.total += 1
        self.removed += 1
        self.size += entry.size
        self.size_delta += entry.size

    def shown_total(self, hide_unchanged: bool = False) -> int:
        """
        Return the total to report for this format.

        :param hide_unchanged: Count only added, removed and changed files.
        :type hide_unchanged: ``bool``
        :rtype: ``int``
        """
        if hide_unchanged:
            return self.added + self.removed + self.changed
        return self.total

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of these counters.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "format": str(self.file_format),
            "total": self.total,
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
            "skipped": self.skipped,
            "size": self.size,
            "size_delta": self.size_delta,
        }


class InfoChange:
    """
    The comparison of one package's metadata blob.
    """

    def __init__(
        self,
        name: str,
        status: FileStatus,
        size: int,
        size_delta: float,
        result: Optional[RateResult] = None,
    ):
        self.name = name
        self.status = status
        self.size = size
        self.size_delta = size_delta
        self.rate: Optional[float] = result.rate if result else None
        self.artifact: Optional[DiffArtifact] = result.artifact if result else None

    def __str__(self):
        return f"{self.status.value}: {self.name}"

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this ``InfoChange``.

        :rtype: ``Dict[str, Any]``
        """
        out = {
            "name": self.name,
            "status": self.status.value,
            "size": self.size,
            "size_delta": self.size_delta,
        }
        if self.rate is not None:
            out["rate"] = self.rate
        if self.artifact is not None:
            out["diff"] = self.artifact.to_dict()
        return out


def _record_sort_key(record: FileRecord) -> Tuple[str, bool]:
    return (record.path, record.status != FileStatus.REMOVED)


class CompareResults:
    """Container for package comparison results with formatting methods."""

    def __init__(
        self,
        records: List[FileRecord],
        formats: Dict[FormatTag, FormatChanges],
        dependencies: Dict[str, DependencyChanges],
        info: List[InfoChange],
        reconciliation: Reconciliation,
        options: CompareOptions,
        timestamp: int,
        total_files: int = 0,
        rules: Optional[FormatRules] = None,
    ):
        self._records = sorted(records, key=_record_sort_key)
        self.rules = rules or DEFAULT_FORMAT_RULES
        self.formats = formats
        self.dependencies = dependencies
        self.info = info
        self.reconciliation = reconciliation
        self.options = options
        self.timestamp = timestamp
        self.total_files = total_files

    def __repr__(self) -> str:
        return f"CompareResults([...], {self.options!r}, {self.timestamp})"

    # List-like interface
    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self._records)

    def __len__(self):
        return len(self._records)

    def __getitem__(self, index: int) -> FileRecord:
        return self._records[index]

    def by_status(self, status: FileStatus) -> List[FileRecord]:
        """
        Return the records with ``status`` in logical path order.

        :param status: The status to select.
        :type status: ``FileStatus``
        :rtype: ``List[FileRecord]``
        """
        return [r for r in self._records if r.status == status]

    @property
    def added(self) -> List[FileRecord]:
        """Records for files only present in the new version."""
        return self.by_status(FileStatus.ADDED)

    @property
    def removed(self) -> List[FileRecord]:
        """Records for files only present in the old version."""
        return self.by_status(FileStatus.REMOVED)

    @property
    def changed(self) -> List[FileRecord]:
        """Records for stable files with changed content."""
        return self.by_status(FileStatus.CHANGED)

    @property
    def unchanged(self) -> List[FileRecord]:
        """Records for stable files with unchanged content."""
        return self.by_status(FileStatus.UNCHANGED)

    @property
    def renamed(self) -> List[FileRecord]:
        """Records for confirmed renames."""
        return self.by_status(FileStatus.RENAMED)

    @property
    def moved(self) -> List[FileRecord]:
        """Records for confirmed moves."""
        return self.by_status(FileStatus.MOVED)

    @property
    def skipped(self) -> List[FileRecord]:
        """Records for stable files that were not rated."""
        return self.by_status(FileStatus.SKIPPED)

    @property
    def total_size(self) -> float:
        """
        The cumulative size of files, dependencies and metadata blobs.
        """
        return (
            sum(fmt.size for fmt in self.formats.values())
            + sum(kind.size for kind in self.dependencies.values())
            + sum(info.size for info in self.info)
        )

    @property
    def total_delta(self) -> float:
        """
        The cumulative size delta of files, dependencies and metadata blobs.
        """
        return (
            sum(fmt.size_delta for fmt in self.formats.values())
            + sum(kind.size_delta for kind in self.dependencies.values())
            + sum(info.size_delta for info in self.info)
        )

    @property
    def percent_affected(self) -> float:
        """
        The weighted share of the package affected by changes, in [0, 100].
        """
        total = self.total_size
        if not total:
            return 0.0
        return max(0.0, min(100.0, 100.0 * self.total_delta / total))

    @property
    def verdict(self) -> str:
        """
        "Changed" if anything contributed a size delta, else "Unchanged".
        """
        return "Changed" if self.total_delta else "Unchanged"

    def sorted_formats(self) -> List[FormatChanges]:
        """
        Return the per-format counters to report: heaviest formats first,
        then by summary. Formats with nothing to report are omitted.

        :rtype: ``List[FormatChanges]``
        """
        rules = self.rules
        hide = self.options.hide_unchanged

        def _key(fmt):
            info = rules.get_info(fmt.file_format)
            return (-info.weight, info.summary.lower())

        return sorted(
            (fmt for fmt in self.formats.values() if fmt.shown_total(hide)), key=_key
        )

    # Output formats
    def paths(self) -> List[str]:
        """
        Return the logical paths of every record that is not unchanged.

        :returns: Path list.
        :rtype: ``List[str]``
        """
        return [r.path for r in self._records if r.status != FileStatus.UNCHANGED]

    def stat_line(self) -> str:
        """
        Return a one line machine readable summary of this comparison.

        :rtype: ``str``
        """
        recon = self.reconciliation
        changed = [r for r in self._records if r.content_changed]
        unchanged = [
            r
            for r in self._records
            if r.status in (FileStatus.UNCHANGED, FileStatus.RENAMED, FileStatus.MOVED)
            and not r.content_changed
        ]
        return (
            f"changed:{self.percent_affected:.2f};"
            f"added:{len(recon.added)};"
            f"removed:{len(recon.removed)};"
            f"moved:{len(recon.moved)};"
            f"renamed:{len(recon.renamed)};"
            f"changed:{len(changed)};"
            f"unchanged:{len(unchanged)};"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert these results into a dictionary representation suitable for
        encoding as JSON.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "timestamp": self.timestamp,
            "verdict": self.verdict,
            "affected": self.percent_affected,
            "total_files": self.total_files,
            "formats": [fmt.to_dict() for fmt in self.sorted_formats()],
            "files": [record.to_dict() for record in self._records],
            "dependencies": {
                kind: changes.to_dict() for kind, changes in self.dependencies.items()
            },
            "info": [info.to_dict() for info in self.info],
        }

    def json(self, pretty: bool = False) -> str:
        """
        Return a JSON representation of these results.

        :param pretty: Indent JSON to be human readable.
        :type pretty: ``bool``
        :rtype: ``str``
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)

    def diff(self, color: str = "auto", term_control: Optional[TermControl] = None) -> str:
        """
        Return the diffs produced while rating changed files.

        :param color: "auto", "always" or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` overriding ``color``.
        :type term_control: ``Optional[TermControl]``
        :rtype: ``str``
        """
        tc = term_control or TermControl(color=color)
        out = []
        for record in self._records:
            if record.artifact is None or not record.artifact.has_changes:
                continue
            out.append(f"{tc.BOLD}diff {record.path} {record.new_path}{tc.NORMAL}")
            for line in record.artifact.diff_data:
                line = line.rstrip("\n")
                if line.startswith("@@"):
                    line = tc.CYAN + line + tc.NORMAL
                elif line.startswith("-"):
                    line = tc.RED + line + tc.NORMAL
                elif line.startswith("+"):
                    line = tc.GREEN + line + tc.NORMAL
                out.append(line)
        return "\n".join(out)

    def summary(self, color: str = "auto", term_control: Optional[TermControl] = None) -> str:
        """
        Return a human readable summary of these results.

        :param color: "auto", "always" or "never".
        :type color: ``str``
        :param term_control: An optional ``TermControl`` overriding ``color``.
        :type term_control: ``Optional[TermControl]``
        :rtype: ``str``
        """
        tc = term_control or TermControl(color=color)
        rules = self.rules
        verdict_color = tc.RED if self.verdict == "Changed" else tc.GREEN
        lines = [
            f"Verdict:           {verdict_color}{self.verdict}{tc.NORMAL}"
            f" ({self.percent_affected:.2f}% affected)",
            f"Total files:       {self.total_files}",
            f"Total size:        {size_fmt(self.total_size)}",
            f"  Files {tc.GREEN + 'added:    ' + tc.NORMAL} {len(self.added)}",
            f"  Files {tc.RED + 'removed:  ' + tc.NORMAL} {len(self.removed)}",
            f"  Files {tc.YELLOW + 'changed:  ' + tc.NORMAL} {len(self.changed)}",
            f"  Files {tc.CYAN + 'renamed:  ' + tc.NORMAL} {len(self.renamed)}",
            f"  Files {tc.CYAN + 'moved:    ' + tc.NORMAL} {len(self.moved)}",
            f"  Files skipped:   {len(self.skipped)}",
        ]
        formats = self.sorted_formats()
        if formats:
            lines.append("Formats:")
        for fmt in formats:
            summary = rules.get_info(fmt.file_format).summary
            total = fmt.shown_total(self.options.hide_unchanged)
            lines.append(
                f"  {summary} ({total}): added {fmt.added}, removed {fmt.removed}, "
                f"changed {fmt.changed}, size {size_fmt(fmt.size)}"
            )
        if self.dependencies:
            lines.append("Dependencies:")
        for kind, changes in self.dependencies.items():
            lines.append(
                f"  {kind} ({changes.total}): added {len(changes.added)}, "
                f"removed {len(changes.removed)}, changed {len(changes.changed)}"
            )
        for info in self.info:
            lines.append(f"Info {info.name}: {info.status.value}")
        return "\n".join(lines)


class CompareEngine:
    """
    Core class for generating package comparisons.
    """

    def __init__(self, context: Optional[RunContext] = None):
        """
        Initialise a new ``CompareEngine``.

        :param context: The comparison run context, a default one if unset.
        :type context: ``Optional[RunContext]``
        """
        self.context = context or RunContext()
        self.options = self.context.options
        self.reconciler = FileSetReconciler(self.context)
        self.rater = ChangeRateComputer(self.context)
        self.dep_reconciler = DependencyReconciler()

    def _rate_pairs(
        self,
        work: List[Tuple[FileEntry, FileEntry]],
        term_control: Optional[TermControl] = None,
    ) -> Dict[str, RateResult]:
        results: Dict[str, RateResult] = {}
        if not work:
            return results

        progress = ProgressFactory.get_progress(
            "Rating changes", quiet=self.options.quiet, term_control=term_control
        )
        max_workers = self.options.max_workers or None
        progress.start(len(work))
        try:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(self.rater.compute, old, new): old.path
                    for old, new in work
                }
                for i, future in enumerate(as_completed(futures)):
                    path = futures[future]
                    # Each path is written by exactly one future.
                    try:
                        results[path] = future.result()
                    except Exception as err:  # pylint: disable=broad-exception-caught
                        _log_error("Error rating %s: %s", path, err)
                        results[path] = RateResult.skipped(f"rating failed: {err}")
                    progress.progress(i, f"Rated {path}")
        except KeyboardInterrupt:
            progress.cancel("Quit!")
            raise
        except SystemExit:
            progress.cancel("Exiting.")
            raise
        except BaseException:
            progress.cancel("Failed.")
            raise
        progress.end(f"Rated {len(work)} file pairs")
        return results

    # pylint: disable=too-many-locals,too-many-branches
    def _commit_files(
        self,
        old_files: Mapping[str, FileEntry],
        new_files: Mapping[str, FileEntry],
        recon: Reconciliation,
        results: Dict[str, RateResult],
    ) -> Tuple[List[FileRecord], Dict[FormatTag, FormatChanges]]:
        formats: Dict[FormatTag, FormatChanges] = {}

        def _counters(tag: FormatTag) -> FormatChanges:
            if tag not in formats:
                formats[tag] = FormatChanges(tag)
            return formats[tag]

        # Every added and removed path counts, including the ends of renames
        # and moves.
        for path in recon.removed:
            _counters(old_files[path].file_format).add_removed(old_files[path])
        for path in recon.added:
            _counters(new_files[path].file_format).add_added(new_files[path])

        records: List[FileRecord] = []
        for old_path, new_path, kind in recon.pairs():
            old, new = old_files[old_path], new_files[new_path]
            result = results.get(old_path)

            if kind is None:
                if old.file_format != new.file_format:
                    _counters(old.file_format).add_removed(old)
                    _counters(new.file_format).add_added(new)
                    records.append(FileRecord(old_path, FileStatus.REMOVED, old_entry=old))
                    records.append(FileRecord(new_path, FileStatus.ADDED, new_entry=new))
                    continue
                counters = _counters(old.file_format)
                counters.total += 1
                counters.size += old.size
                if result.status == RateStatus.CHANGED:
                    counters.changed += 1
                    counters.size_delta += old.size * result.rate
                    status = FileStatus.CHANGED
                elif result.status == RateStatus.SKIPPED:
                    counters.skipped += 1
                    status = FileStatus.SKIPPED
                else:
                    status = FileStatus.UNCHANGED
                records.append(FileRecord(old_path, status, old, new, result))
                continue

            # Unrated correspondences count as maximally different.
            rate = 1.0 if result.rate is None else result.rate
            if kind == CorrespondenceKind.RENAME:
                ceiling = self.options.rename_content_match
            else:
                ceiling = self.options.move_content_match
            if rate >= ceiling:
                recon.retract(old_path)
                continue
            records.append(
                FileRecord(old_path, _CORRESPONDENCE_STATUS[kind], old, new, result)
            )

        # Rename and move targets are reported by their source record.
        for path in recon.unmatched_removed():
            records.append(FileRecord(path, FileStatus.REMOVED, old_entry=old_files[path]))
        for path in recon.unmatched_added():
            records.append(FileRecord(path, FileStatus.ADDED, new_entry=new_files[path]))
        return (records, formats)

    def _compare_info(
        self,
        old_info: Optional[Mapping[str, str]],
        new_info: Optional[Mapping[str, str]],
    ) -> List[InfoChange]:
        old_info = dict(old_info or {})
        new_info = dict(new_info or {})
        if (
            len(old_info) == 1
            and len(new_info) == 1
            and set(old_info) != set(new_info)
        ):
            # One package per side under a new name: compare the two blobs.
            old_name = next(iter(old_info))
            new_info = {old_name: next(iter(new_info.values()))}

        changes = []
        for name in sorted(set(old_info) | set(new_info)):
            old_text = old_info.get(name, "")
            new_text = new_info.get(name, "")
            old_size, new_size = len(old_text), len(new_text)
            if old_text and not new_text:
                change = InfoChange(name, FileStatus.REMOVED, old_size, old_size)
            elif new_text and not old_text:
                change = InfoChange(name, FileStatus.ADDED, new_size, new_size)
            elif old_text != new_text:
                result = self.rater.rate_text(old_text, new_text)
                if result.status == RateStatus.SKIPPED:
                    change = InfoChange(name, FileStatus.SKIPPED, old_size, 0, result)
                else:
                    change = InfoChange(
                        name,
                        FileStatus.CHANGED,
                        old_size,
                        old_size * result.rate,
                        result,
                    )
            else:
                # Unchanged blobs count towards the delta as well.
                change = InfoChange(name, FileStatus.UNCHANGED, old_size, old_size)
            _log_debug_compare("Compared package info: %s", change)
            changes.append(change)
        return changes

    def compute(
        self,
        old_files: Mapping[str, FileEntry],
        new_files: Mapping[str, FileEntry],
        old_deps: Optional[Mapping[str, Mapping[str, Tuple[str, str]]]] = None,
        new_deps: Optional[Mapping[str, Mapping[str, Tuple[str, str]]]] = None,
        old_info: Optional[Mapping[str, str]] = None,
        new_info: Optional[Mapping[str, str]] = None,
        term_control: Optional[TermControl] = None,
    ) -> CompareResults:
        """
        Compare two file tables and, optionally, their dependency tables and
        metadata blobs.

        Reconciliation runs on the calling thread. Pairs that need a diff are
        rated on a worker pool and their results collected by logical path;
        records and counters are then committed in logical path order, so
        the outcome does not depend on worker completion order.

        :param old_files: The old version file table.
        :type old_files: ``Mapping[str, FileEntry]``
        :param new_files: The new version file table.
        :type new_files: ``Mapping[str, FileEntry]``
        :param old_deps: The old version dependency table.
        :type old_deps: ``Optional[Mapping[str, Mapping[str, Tuple[str, str]]]]``
        :param new_deps: The new version dependency table.
        :type new_deps: ``Optional[Mapping[str, Mapping[str, Tuple[str, str]]]]``
        :param old_info: Old metadata blobs by package name.
        :type old_info: ``Optional[Mapping[str, str]]``
        :param new_info: New metadata blobs by package name.
        :type new_info: ``Optional[Mapping[str, str]]``
        :param term_control: A ``TermControl`` for progress output.
        :type term_control: ``Optional[TermControl]``
        :returns: The comparison results.
        :rtype: ``CompareResults``
        """
        start_time = datetime.now()
        total_files = len(set(old_files) | set(new_files))
        _log_debug("Starting comparison with %d paths", total_files)

        recon = self.reconciler.reconcile(old_files, new_files)

        results: Dict[str, RateResult] = {}
        work: List[Tuple[FileEntry, FileEntry]] = []
        for old_path, new_path, _kind in recon.pairs():
            old, new = old_files[old_path], new_files[new_path]
            if old.file_format != new.file_format:
                continue
            settled = self.rater.precheck(old, new)
            if settled is not None:
                results[old_path] = settled
            else:
                work.append((old, new))
        _log_debug_compare(
            "Settled %d pairs without diffing; %d to rate", len(results), len(work)
        )

        results.update(self._rate_pairs(work, term_control=term_control))

        records, formats = self._commit_files(old_files, new_files, recon, results)
        dependencies = self.dep_reconciler.reconcile(old_deps or {}, new_deps or {})
        info = self._compare_info(old_info, new_info)

        compare_results = CompareResults(
            records,
            formats,
            dependencies,
            info,
            recon,
            self.options,
            floor(start_time.timestamp()),
            total_files=total_files,
            rules=self.context.rules,
        )
        _log_info(
            "Compared %d paths in %s: %s", total_files, datetime.now() - start_time,
            compare_results.stat_line(),
        )
        return compare_results


__all__ = [
    "CompareEngine",
    "CompareResults",
    "FileRecord",
    "FileStatus",
    "FormatChanges",
    "InfoChange",
]
