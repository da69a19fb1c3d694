# Copyright Red Hat
#
# pkgdelta/compare/ratediff.py - Package delta change rate computation
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Change rate computation.

The change rate of a file pair is a number in [0, 1] derived from a
unified diff of the two files (or of textual renderings of them):

    rate = min(1, (removed + max(0, new_size - old_size)) / old_size)

where ``removed`` is the byte length of the patch once every line that is
not a removed line has been deleted. An empty old file has rate 1. The
measure is deliberately crude and line oriented.
"""
from typing import Any, Dict, List, Optional, Tuple
from fnmatch import fnmatch
from enum import Enum
import subprocess
import tempfile
import filecmp
import logging
import gzip
import zlib
import lzma
import bz2
import os
import re

from pkgdelta import (
    PKGDELTA_SUBSYSTEM_COMPARE,
    PkgdeltaCalloutError,
    PkgdeltaTimeoutError,
)

from .context import RunContext
from .formats import FormatKind, FormatTag, split_logical_path
from .options import CompareOptions
from .treewalk import FileEntry

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


# Every patch line that is not a removed line, along with the newline
# preceding it. An empty line also swallows the line following it.
_NOT_REMOVED_RE = re.compile(rb"(\A|\n)([^\-]|\+{3}|-{3}).*")

_COMPRESSED_RE = re.compile(r"(?i)\.(gz|bz2|xz|lzma)\Z")

_DECOMPRESSORS = {
    "gz": gzip.open,
    "bz2": bz2.open,
    "xz": lzma.open,
    "lzma": lzma.open,
}

#: Formats rendered with readelf before comparison.
_ELF_FORMATS = (
    FormatTag.SHARED_OBJECT,
    FormatTag.KERNEL_MODULE,
    FormatTag.DEBUG_INFO,
    FormatTag.EXE,
    FormatTag.COMPILED_OBJECT,
    FormatTag.STATIC_LIBRARY,
)

_DUMP_COMMANDS: Dict[FormatTag, List[str]] = {
    **{tag: ["readelf", "-Wa"] for tag in _ELF_FORMATS},
    FormatTag.SHARED_LIBRARY: ["otool", "-TVL"],
    FormatTag.MANPAGE: ["man", "-l"],
    FormatTag.INFODOC: ["info", "--subnodes", "-o", "-", "-f"],
    FormatTag.JAVA_CLASS: ["javap", "-p"],
}

# Relocation addresses and symbol values that change on every relink.
_ELF_NOISE = (
    (re.compile(r"[0-9a-f]{8}\s+[0-9a-f]{8}\s+R_386_(RELATIVE|NONE)\s*"), ""),
    (
        re.compile(r"[0-9a-f]{16}\s+[0-9a-f]{16}\s+R_X86_64_RELATIVE\s+[0-9a-f]{16}\s*"),
        "",
    ),
    (
        re.compile(r"\n([0-9a-f]{8}|[0-9a-f]{16})\s+([0-9a-f]{8}|[0-9a-f]{16}) "),
        "\nXXX YYY ",
    ),
    (re.compile(r"    [0-9a-f]{16} "), " ZZZ "),
    (
        re.compile(r"\n\s*\d+:(\s+[0-9a-f]{8}|\s+[0-9a-f]{16})\s+\d+\s+"),
        "\nN: XXX W ",
    ),
    (re.compile(r"\s+Build ID: \w+\s+"), ""),
)

_OVERSTRIKE_RE = re.compile(r".\x08")


class RateStatus(Enum):
    """
    Enum for the outcome of rating a file pair.
    """

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    SKIPPED = "skipped"


def removed_bytes(patch: bytes) -> int:
    """
    Return the byte length of the removed lines in a unified diff.

    Every line that does not start with '-', and every '---' header line,
    is deleted together with the newline preceding it; the length of
    what remains is returned. This reproduces the historical counting
    shape exactly, quirks included.

    :param patch: The unified diff output.
    :type patch: ``bytes``
    :rtype: ``int``
    """
    return len(_NOT_REMOVED_RE.sub(b"", patch))


def change_rate(old_size: int, new_size: int, removed: int) -> float:
    """
    Combine removed bytes and growth into a change rate in [0, 1].

    :param old_size: The old size in bytes.
    :type old_size: ``int``
    :param new_size: The new size in bytes.
    :type new_size: ``int``
    :param removed: The number of removed or changed bytes.
    :type removed: ``int``
    :returns: The change rate; 1 if ``old_size`` is zero.
    :rtype: ``float``
    """
    if not old_size:
        return 1.0
    rate = removed + max(0, new_size - old_size)
    return min(1.0, rate / old_size)


def hex_dump(path: str) -> bytes:
    """
    Return the content of ``path`` as hex, one byte per line.
    """
    with open(path, "rb") as fp:
        data = fp.read()
    return b"".join(b"%02x\n" % byte for byte in data)


class DiffArtifact:
    """
    Represents the diff produced while rating a file pair.
    """

    def __init__(
        self,
        diff_type: str,
        diff_data: Optional[List[str]] = None,
        summary: str = "",
    ):
        """
        Initialise a new ``DiffArtifact`` object.

        :param diff_type: The kind of diff: 'unified', 'dump', 'hexdump',
                          'binary' or 'link'.
        :type diff_type: ``str``
        :param diff_data: The diff lines, if any.
        :type diff_data: ``Optional[List[str]]``
        :param summary: A summary of the difference.
        :type summary: ``str``
        """
        self.diff_type = diff_type
        self.diff_data = diff_data or []
        self.summary = summary

    def __str__(self):
        return f"{self.diff_type} diff: {self.summary}"

    @classmethod
    def from_patch(cls, diff_type: str, patch: bytes) -> "DiffArtifact":
        """
        Build a ``DiffArtifact`` from raw diff output.

        :param diff_type: The kind of diff.
        :type diff_type: ``str``
        :param patch: The raw unified diff output.
        :type patch: ``bytes``
        :rtype: ``DiffArtifact``
        """
        lines = patch.decode("utf8", errors="replace").splitlines(keepends=True)

        def _count(prefix):
            return len(
                [
                    ln
                    for ln in lines
                    if ln.startswith(prefix) and not ln.startswith(3 * prefix)
                ]
            )

        summary = f"{_count('-')} deletions, {_count('+')} additions"
        return cls(diff_type, diff_data=lines, summary=summary)

    @property
    def has_changes(self) -> bool:
        """``True`` if this artifact holds diff lines."""
        return bool(self.diff_data)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``DiffArtifact`` into a dictionary representation
        suitable for encoding as JSON.

        :rtype: ``Dict[str, Any]``
        """
        return {
            "diff_type": self.diff_type,
            "diff_data": self.diff_data,
            "summary": self.summary,
        }


class RateResult:
    """
    The outcome of rating one file or metadata pair.
    """

    def __init__(
        self,
        status: RateStatus,
        rate: Optional[float] = None,
        artifact: Optional[DiffArtifact] = None,
        reason: Optional[str] = None,
    ):
        """
        Initialise a new ``RateResult``.

        :param status: The outcome.
        :type status: ``RateStatus``
        :param rate: The change rate, ``None`` for skipped pairs.
        :type rate: ``Optional[float]``
        :param artifact: The diff produced, if any.
        :type artifact: ``Optional[DiffArtifact]``
        :param reason: Why the pair was skipped.
        :type reason: ``Optional[str]``
        """
        self.status = status
        self.rate = rate
        self.artifact = artifact
        self.reason = reason

    def __str__(self):
        desc = self.status.value
        if self.rate is not None:
            desc += f" ({self.rate:.3f})"
        if self.reason:
            desc += f": {self.reason}"
        return desc

    @classmethod
    def unchanged(cls) -> "RateResult":
        """Return a result for an unchanged pair."""
        return cls(RateStatus.UNCHANGED, rate=0.0)

    @classmethod
    def skipped(cls, reason: str) -> "RateResult":
        """Return a result for a pair that was not rated."""
        return cls(RateStatus.SKIPPED, reason=reason)


class DiffTool:
    """
    Wrapper for the external ``diff`` program.
    """

    def __init__(
        self,
        program: str = "diff",
        context_lines: int = 10,
        ignore_space_change: bool = False,
        ignore_all_space: bool = False,
        ignore_blank_lines: bool = False,
        minimal: bool = False,
        timeout: int = 60,
    ):
        """
        Initialise a new ``DiffTool``.

        :param program: The diff program to run.
        :type program: ``str``
        :param context_lines: Lines of unified context.
        :type context_lines: ``int``
        :param ignore_space_change: Pass ``-b``.
        :type ignore_space_change: ``bool``
        :param ignore_all_space: Pass ``-w``.
        :type ignore_all_space: ``bool``
        :param ignore_blank_lines: Pass ``-B``.
        :type ignore_blank_lines: ``bool``
        :param minimal: Pass ``-d``.
        :type minimal: ``bool``
        :param timeout: Seconds allowed for each invocation.
        :type timeout: ``int``
        """
        self.program = program
        self.context_lines = context_lines
        self.ignore_space_change = ignore_space_change
        self.ignore_all_space = ignore_all_space
        self.ignore_blank_lines = ignore_blank_lines
        self.minimal = minimal
        self.timeout = timeout

    @classmethod
    def from_options(cls, options: CompareOptions) -> "DiffTool":
        """
        Initialise a ``DiffTool`` from ``CompareOptions``.

        :param options: The comparison options.
        :type options: ``CompareOptions``
        :rtype: ``DiffTool``
        """
        return cls(
            program=options.diff_program,
            context_lines=options.context_lines,
            ignore_space_change=options.ignore_space_change,
            ignore_all_space=options.ignore_all_space,
            ignore_blank_lines=options.ignore_blank_lines,
            minimal=options.minimal,
            timeout=options.diff_timeout,
        )

    def command(self, old_path: str, new_path: str, exact: bool = False) -> List[str]:
        """
        Return the command line comparing ``old_path`` to ``new_path``.

        :param old_path: The old file.
        :type old_path: ``str``
        :param new_path: The new file.
        :type new_path: ``str``
        :param exact: Build the whitespace insensitive command used for
                      exact binary comparison instead of the configured
                      options.
        :type exact: ``bool``
        :rtype: ``List[str]``
        """
        cmd = [self.program]
        if exact:
            cmd.extend(["-B", "-w"])
        else:
            if self.ignore_blank_lines:
                cmd.append("-B")
            if self.minimal:
                cmd.append("-d")
            if self.ignore_space_change:
                cmd.append("-b")
            if self.ignore_all_space:
                cmd.append("-w")
        cmd.extend(["-U", str(self.context_lines), old_path, new_path])
        return cmd

    def diff(self, old_path: str, new_path: str, exact: bool = False) -> bytes:
        """
        Run the diff program and return its output.

        :param old_path: The old file.
        :type old_path: ``str``
        :param new_path: The new file.
        :type new_path: ``str``
        :param exact: Use the exact binary comparison options.
        :type exact: ``bool``
        :returns: The unified diff, empty if the files do not differ.
        :rtype: ``bytes``
        :raises PkgdeltaTimeoutError: If the program does not finish in time.
        :raises PkgdeltaCalloutError: If the program is missing or fails.
        """
        cmd = self.command(old_path, new_path, exact=exact)
        env = dict(os.environ, LC_ALL="C", LANG="C")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                check=False,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as err:
            raise PkgdeltaCalloutError(
                f"{self.program} not found while comparing '{old_path}': {err}"
            ) from err
        except subprocess.TimeoutExpired as err:
            raise PkgdeltaTimeoutError(
                f"Timed out comparing '{old_path}' and '{new_path}' after "
                f"{self.timeout}s"
            ) from err

        if result.returncode == 0:
            return b""
        if result.returncode == 1:
            return result.stdout
        raise PkgdeltaCalloutError(
            f"{self.program} failed comparing '{old_path}' and '{new_path}' "
            f"(status={result.returncode}): "
            f"{result.stderr.decode('utf8', errors='replace').strip()}"
        )


def _normalize_elf_dump(text: str, directory: str) -> str:
    for pattern, repl in _ELF_NOISE:
        text = pattern.sub(repl, text)
    if directory:
        text = text.replace(directory + "/", "")
    lines = []
    prev = None
    for line in text.split("\n"):
        if line != prev:
            lines.append(line)
            prev = line
    return "\n".join(lines) + "\n"


def render_dump(
    file_format: FormatTag, path: str, timeout: int = 60, width: int = 80
) -> str:
    """
    Render a binary or formatted file as comparable text.

    :param file_format: The format of the file.
    :type file_format: ``FormatTag``
    :param path: The physical path of the file.
    :type path: ``str``
    :param timeout: Seconds allowed for the renderer.
    :type timeout: ``int``
    :param width: The line width for formatted documents.
    :type width: ``int``
    :returns: The rendered text.
    :rtype: ``str``
    :raises PkgdeltaCalloutError: If no renderer exists for the format or
                                  the renderer fails.
    """
    if file_format not in _DUMP_COMMANDS:
        raise PkgdeltaCalloutError(f"No renderer for {file_format} file '{path}'")
    cmd = _DUMP_COMMANDS[file_format] + [path]
    env = dict(os.environ, LC_ALL="C", LANG="C", MANWIDTH=str(width))
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            check=True,
            encoding="utf8",
            errors="replace",
            timeout=timeout,
            env=env,
        )
    except FileNotFoundError as err:
        raise PkgdeltaCalloutError(f"{cmd[0]} not found while rendering '{path}'") from err
    except subprocess.TimeoutExpired as err:
        raise PkgdeltaTimeoutError(
            f"Timed out rendering '{path}' after {timeout}s"
        ) from err
    except subprocess.CalledProcessError as err:
        raise PkgdeltaCalloutError(
            f"Failed to render '{path}' with {cmd[0]}: {err.stderr}"
        ) from err

    text = result.stdout
    if file_format in _ELF_FORMATS:
        text = _normalize_elf_dump(text, os.path.dirname(path))
    elif file_format == FormatTag.MANPAGE:
        text = _OVERSTRIKE_RE.sub("", text)
    return text


class ChangeRateComputer:
    """
    Rate the difference between corresponding files.

    ``precheck()`` runs on the calling thread before work is dispatched;
    ``compute()`` may run concurrently for different pairs.
    """

    def __init__(self, context: RunContext, diff_tool: Optional[DiffTool] = None):
        """
        Initialise a new ``ChangeRateComputer``.

        :param context: The comparison run context.
        :type context: ``RunContext``
        :param diff_tool: The diff collaborator, built from the options if
                          unset.
        :type diff_tool: ``Optional[DiffTool]``
        """
        self.context = context
        self.options = context.options
        self.diff_tool = diff_tool or DiffTool.from_options(context.options)

    @staticmethod
    def identical(old: FileEntry, new: FileEntry) -> bool:
        """
        Return ``True`` if two regular files have equal size and content.
        """
        if old.size != new.size or not old.full_path or not new.full_path:
            return False
        try:
            return filecmp.cmp(old.full_path, new.full_path, shallow=False)
        except OSError as err:
            _log_debug_compare("Could not compare %s: %s", old.path, err)
            return False

    def skip_match(self, logical_path: str) -> Optional[str]:
        """
        Return the skip pattern matching ``logical_path``, if any.

        Patterns holding '*', '?' or '[' are globs matched against the
        logical path, patterns holding '/' match any part of the path, and
        other patterns match the file name exactly.

        :param logical_path: The logical path to test.
        :type logical_path: ``str``
        :rtype: ``Optional[str]``
        """
        name = split_logical_path(logical_path)[1]
        for pattern in self.options.skip_patterns:
            if any(c in pattern for c in "*?["):
                if fnmatch(logical_path, pattern) or fnmatch(name, pattern):
                    return pattern
            elif "/" in pattern:
                if pattern in logical_path:
                    return pattern
            elif pattern == name:
                return pattern
        return None

    def precheck(self, old: FileEntry, new: FileEntry) -> Optional[RateResult]:
        """
        Settle pairs that need no diff, before dispatching work.

        Directories are unchanged; pairs without content are skipped; pairs
        exceeding the size limit are skipped unless they are identical.

        :param old: The old entry.
        :type old: ``FileEntry``
        :param new: The new entry.
        :type new: ``FileEntry``
        :returns: A final result, or ``None`` if the pair must be rated.
        :rtype: ``Optional[RateResult]``
        """
        if old.is_dir or new.is_dir:
            return RateResult.unchanged()
        if old.is_symlink or new.is_symlink:
            return None
        if not old.full_path or not new.full_path:
            return RateResult.skipped("content unavailable")
        limit = self.options.size_limit
        if limit and (old.size > limit or new.size > limit):
            if self.identical(old, new):
                return RateResult.unchanged()
            return RateResult.skipped(f"larger than size limit ({limit} bytes)")
        return None

    def rate(self, old: FileEntry, new: FileEntry) -> RateResult:
        """
        Rate the difference between two entries of the same format.

        :param old: The old entry.
        :type old: ``FileEntry``
        :param new: The new entry.
        :type new: ``FileEntry``
        :rtype: ``RateResult``
        """
        return self.precheck(old, new) or self.compute(old, new)

    def compute(self, old: FileEntry, new: FileEntry) -> RateResult:
        """
        Rate a pair that passed ``precheck()``.

        Identical files are unchanged without running any external program.
        Collaborator failures and timeouts yield a skipped result.

        :param old: The old entry.
        :type old: ``FileEntry``
        :param new: The new entry.
        :type new: ``FileEntry``
        :rtype: ``RateResult``
        """
        if old.is_symlink or new.is_symlink:
            try:
                return self._rate_links(old, new)
            except PkgdeltaCalloutError as err:
                _log_warn("Skipping %s: %s", old.path, err)
                return RateResult.skipped(str(err))

        if self.identical(old, new):
            return RateResult.unchanged()

        if self.options.quick:
            return RateResult(RateStatus.CHANGED, rate=1.0)

        pattern = self.skip_match(old.path)
        if pattern is not None:
            return RateResult.skipped(f"matches skip pattern '{pattern}'")

        kind = self.context.rules.get_info(old.file_format).kind
        try:
            if kind == FormatKind.TEXT:
                return self._rate_text_files(old, new)
            if kind == FormatKind.DUMP:
                return self._rate_dumps(old, new)
            return self._rate_binary(old, new)
        except PkgdeltaCalloutError as err:
            _log_warn("Skipping %s: %s", old.path, err)
            return RateResult.skipped(str(err))
        except OSError as err:
            _log_warn("Skipping %s: %s", old.path, err)
            return RateResult.skipped(f"cannot read content: {err}")

    def _rate_patch(
        self, diff_type: str, old_size: int, new_size: int, patch: bytes
    ) -> RateResult:
        if not patch:
            return RateResult.unchanged()
        rate = change_rate(old_size, new_size, removed_bytes(patch))
        return RateResult(
            RateStatus.CHANGED,
            rate=rate,
            artifact=DiffArtifact.from_patch(diff_type, patch),
        )

    def _rate_rendered(self, diff_type: str, old_text: bytes, new_text: bytes) -> RateResult:
        with tempfile.TemporaryDirectory(prefix="pkgdelta-") as tmpdir:
            old_tmp = os.path.join(tmpdir, "old")
            new_tmp = os.path.join(tmpdir, "new")
            with open(old_tmp, "wb") as fp:
                fp.write(old_text)
            with open(new_tmp, "wb") as fp:
                fp.write(new_text)
            patch = self.diff_tool.diff(old_tmp, new_tmp)
        return self._rate_patch(diff_type, len(old_text), len(new_text), patch)

    def _rate_text_files(self, old: FileEntry, new: FileEntry) -> RateResult:
        match = _COMPRESSED_RE.search(old.full_path)
        if match and old.file_format != FormatTag.ARCHIVE:
            opener = _DECOMPRESSORS[match.group(1).lower()]
            try:
                with opener(old.full_path, "rb") as fp:
                    old_text = fp.read()
                with opener(new.full_path, "rb") as fp:
                    new_text = fp.read()
            except (OSError, EOFError, lzma.LZMAError, zlib.error) as err:
                _log_warn("Skipping %s: cannot decompress: %s", old.path, err)
                return RateResult.skipped(f"cannot decompress content: {err}")
            return self._rate_rendered("unified", old_text, new_text)
        patch = self.diff_tool.diff(old.full_path, new.full_path)
        return self._rate_patch("unified", old.size, new.size, patch)

    def _rate_dumps(self, old: FileEntry, new: FileEntry) -> RateResult:
        timeout = self.options.diff_timeout
        width = self.options.diff_width
        old_text = render_dump(old.file_format, old.full_path, timeout=timeout, width=width)
        new_text = render_dump(new.file_format, new.full_path, timeout=timeout, width=width)
        return self._rate_rendered("dump", old_text.encode("utf8"), new_text.encode("utf8"))

    def _rate_links(self, old: FileEntry, new: FileEntry) -> RateResult:
        old_target = old.link_target or ""
        new_target = new.link_target or ""
        if old.is_symlink != new.is_symlink:
            return RateResult(RateStatus.CHANGED, rate=1.0)
        if old_target == new_target:
            return RateResult.unchanged()
        # Targets are diffed as one-line files, like any other text.
        return self._rate_rendered(
            "link", f"{old_target}\n".encode("utf8"), f"{new_target}\n".encode("utf8")
        )

    def _rate_binary(self, old: FileEntry, new: FileEntry) -> RateResult:
        old_size, new_size = old.size, new.size
        summary = f"{old_size} -> {new_size} bytes"
        if not old_size:
            return RateResult(
                RateStatus.CHANGED, rate=1.0, artifact=DiffArtifact("binary", summary=summary)
            )

        rate = abs(old_size - new_size) / old_size
        average = (old_size + new_size) / 2
        artifact = DiffArtifact("binary", summary=summary)
        if average < self.options.exact_diff_size and rate < self.options.exact_diff_rate:
            if self.context.probe.is_text(old.full_path):
                patch = self.diff_tool.diff(old.full_path, new.full_path, exact=True)
                rate = change_rate(old_size, new_size, removed_bytes(patch))
                diff_type = "unified"
            else:
                patch, rate = self._rate_hex(old, new)
                diff_type = "hexdump"
            if patch:
                artifact = DiffArtifact.from_patch(diff_type, patch)
        return RateResult(RateStatus.CHANGED, rate=min(1.0, rate), artifact=artifact)

    def _rate_hex(self, old: FileEntry, new: FileEntry) -> Tuple[bytes, float]:
        with tempfile.TemporaryDirectory(prefix="pkgdelta-") as tmpdir:
            old_tmp = os.path.join(tmpdir, "old.hex")
            new_tmp = os.path.join(tmpdir, "new.hex")
            with open(old_tmp, "wb") as fp:
                fp.write(hex_dump(old.full_path))
            with open(new_tmp, "wb") as fp:
                fp.write(hex_dump(new.full_path))
            patch = self.diff_tool.diff(old_tmp, new_tmp, exact=True)
        return (patch, change_rate(old.size, new.size, removed_bytes(patch)))

    def rate_text(self, old_text: str, new_text: str) -> RateResult:
        """
        Rate the difference between two metadata blobs.

        :param old_text: The old blob.
        :type old_text: ``str``
        :param new_text: The new blob.
        :type new_text: ``str``
        :rtype: ``RateResult``
        """
        if old_text == new_text:
            return RateResult.unchanged()
        try:
            return self._rate_rendered(
                "unified", old_text.encode("utf8"), new_text.encode("utf8")
            )
        except PkgdeltaCalloutError as err:
            _log_warn("Skipping metadata comparison: %s", err)
            return RateResult.skipped(str(err))


__all__ = [
    "ChangeRateComputer",
    "DiffArtifact",
    "DiffTool",
    "RateResult",
    "RateStatus",
    "change_rate",
    "hex_dump",
    "removed_bytes",
    "render_dump",
]
