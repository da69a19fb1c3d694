# Copyright Red Hat
#
# tests/compare/test_ratediff.py - Change rate computation tests.
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import gzip
import os
import subprocess
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from pkgdelta import PkgdeltaCalloutError, PkgdeltaTimeoutError
from pkgdelta.compare.context import RunContext
from pkgdelta.compare.formats import FormatTag
from pkgdelta.compare.options import CompareOptions
from pkgdelta.compare.ratediff import (
    ChangeRateComputer,
    DiffArtifact,
    DiffTool,
    RateResult,
    RateStatus,
    _normalize_elf_dump,
    change_rate,
    hex_dump,
    removed_bytes,
    render_dump,
)

from tests import have_diff

from ._util import c_source, make_entry, write_file

_PATCH = b"--- a\n+++ b\n@@ -1,2 +1,2 @@\n-foo\n+bar\n baz\n"


class TestRateFormula(unittest.TestCase):
    def test_removed_bytes(self):
        # "\n-foo" and the final newline survive.
        self.assertEqual(removed_bytes(_PATCH), 6)

    def test_removed_bytes_empty(self):
        self.assertEqual(removed_bytes(b""), 0)

    def test_removed_bytes_blank_line_quirk(self):
        # An empty line swallows the removed line that follows it.
        self.assertEqual(removed_bytes(b"-a\n\n-b\n"), 3)

    def test_change_rate(self):
        self.assertEqual(change_rate(100, 100, 10), 0.1)
        self.assertAlmostEqual(change_rate(100, 150, 10), 0.6)
        self.assertEqual(change_rate(100, 50, 10), 0.1)

    def test_change_rate_saturates(self):
        self.assertEqual(change_rate(10, 100, 5), 1.0)

    def test_change_rate_empty_old(self):
        self.assertEqual(change_rate(0, 10, 0), 1.0)


class TestArtifacts(unittest.TestCase):
    def test_from_patch(self):
        artifact = DiffArtifact.from_patch("unified", _PATCH)
        self.assertEqual(artifact.summary, "1 deletions, 1 additions")
        self.assertTrue(artifact.has_changes)
        self.assertEqual(artifact.diff_data[3], "-foo\n")
        self.assertEqual(artifact.to_dict()["diff_type"], "unified")

    def test_empty_artifact(self):
        self.assertFalse(DiffArtifact("binary", summary="1 -> 2 bytes").has_changes)

    def test_rate_results(self):
        unchanged = RateResult.unchanged()
        self.assertEqual(unchanged.status, RateStatus.UNCHANGED)
        self.assertEqual(unchanged.rate, 0.0)
        skipped = RateResult.skipped("too big")
        self.assertEqual(skipped.status, RateStatus.SKIPPED)
        self.assertIsNone(skipped.rate)
        self.assertIn("too big", str(skipped))


class TestDiffTool(unittest.TestCase):
    def test_command_default(self):
        self.assertEqual(DiffTool().command("a", "b"), ["diff", "-U", "10", "a", "b"])

    def test_command_flags(self):
        tool = DiffTool(
            context_lines=3,
            ignore_space_change=True,
            ignore_all_space=True,
            ignore_blank_lines=True,
            minimal=True,
        )
        self.assertEqual(
            tool.command("a", "b"), ["diff", "-B", "-d", "-b", "-w", "-U", "3", "a", "b"]
        )

    def test_command_exact(self):
        tool = DiffTool(ignore_space_change=True)
        self.assertEqual(
            tool.command("a", "b", exact=True), ["diff", "-B", "-w", "-U", "10", "a", "b"]
        )

    def test_from_options(self):
        tool = DiffTool.from_options(
            CompareOptions(diff_program="gdiff", context_lines=2, diff_timeout=5)
        )
        self.assertEqual(tool.program, "gdiff")
        self.assertEqual(tool.context_lines, 2)
        self.assertEqual(tool.timeout, 5)

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_diff_no_differences(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=b"", stderr=b"")
        self.assertEqual(DiffTool().diff("a", "b"), b"")
        env = mock_run.call_args.kwargs["env"]
        self.assertEqual(env["LC_ALL"], "C")

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_diff_differences(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout=_PATCH, stderr=b"")
        self.assertEqual(DiffTool().diff("a", "b"), _PATCH)

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_diff_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=2, stdout=b"", stderr=b"no such file")
        with self.assertRaises(PkgdeltaCalloutError):
            DiffTool().diff("a", "b")

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_diff_missing_program(self, mock_run):
        mock_run.side_effect = FileNotFoundError("diff")
        with self.assertRaises(PkgdeltaCalloutError):
            DiffTool().diff("a", "b")

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_diff_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("diff", 1)
        with self.assertRaises(PkgdeltaTimeoutError):
            DiffTool(timeout=1).diff("a", "b")


class TestDumps(unittest.TestCase):
    def test_hex_dump(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_file(tmpdir, "blob", b"\x00\xff\x10")
            self.assertEqual(hex_dump(path), b"00\nff\n10\n")

    def test_normalize_elf_dump(self):
        text = "  /tmp/x/libfoo.so\nsame\nsame\nother"
        self.assertEqual(
            _normalize_elf_dump(text, "/tmp/x"), "  libfoo.so\nsame\nother\n"
        )

    def test_normalize_build_id(self):
        self.assertNotIn("Build ID", _normalize_elf_dump("a\n    Build ID: abc123\nb", ""))

    def test_render_dump_unknown_format(self):
        with self.assertRaises(PkgdeltaCalloutError):
            render_dump(FormatTag.IMAGE, "/x.png")

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_render_manpage_strips_overstrike(self, mock_run):
        mock_run.return_value = MagicMock(stdout="N\x08NA\x08AME\n")
        self.assertEqual(render_dump(FormatTag.MANPAGE, "/x.1"), "NAME\n")
        self.assertEqual(mock_run.call_args.args[0], ["man", "-l", "/x.1"])

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_render_failure(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, "readelf", stderr="bad")
        with self.assertRaises(PkgdeltaCalloutError):
            render_dump(FormatTag.SHARED_OBJECT, "/x.so")


class TestChangeRateComputer(unittest.TestCase):
    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = tmpdir.name

    def _computer(self, **kwargs):
        kwargs.setdefault("use_magic", False)
        return ChangeRateComputer(RunContext(CompareOptions(**kwargs)))

    def _pair(self, name, old_content, new_content, file_format=FormatTag.TEXT):
        old_path = write_file(self.root, "old/" + name, old_content)
        new_path = write_file(self.root, "new/" + name, new_content)
        old = make_entry(
            "/" + name, os.path.getsize(old_path), file_format, full_path=old_path
        )
        new = make_entry(
            "/" + name, os.path.getsize(new_path), file_format, full_path=new_path
        )
        return old, new

    def test_identical_never_diffs(self):
        computer = self._computer()
        old, new = self._pair("a.txt", "same\n", "same\n")
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.rate(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.UNCHANGED)
        self.assertEqual(result.rate, 0.0)

    def test_directories_unchanged(self):
        computer = self._computer()
        old = make_entry("/d", is_dir=True)
        result = computer.rate(old, make_entry("/d", is_dir=True))
        self.assertEqual(result.status, RateStatus.UNCHANGED)

    def test_missing_content_skipped(self):
        computer = self._computer()
        result = computer.rate(make_entry("/a.txt"), make_entry("/a.txt"))
        self.assertEqual(result.status, RateStatus.SKIPPED)

    def test_size_limit(self):
        computer = self._computer(size_limit=4)
        old, new = self._pair("a.txt", "0123456789\n", "0123456789!\n")
        result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.SKIPPED)
        self.assertIn("size limit", result.reason)

    def test_size_limit_identical_unchanged(self):
        computer = self._computer(size_limit=4)
        old, new = self._pair("a.txt", "0123456789\n", "0123456789\n")
        self.assertEqual(computer.rate(old, new).status, RateStatus.UNCHANGED)

    def test_quick(self):
        computer = self._computer(quick=True)
        old, new = self._pair("a.txt", "one\n", "two\n")
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.rate(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.rate, 1.0)

    def test_skip_match(self):
        computer = self._computer(skip_patterns=("*.log", "/generated/", "VERSION"))
        self.assertEqual(computer.skip_match("/var/x.log"), "*.log")
        self.assertEqual(computer.skip_match("/src/generated/a.c"), "/generated/")
        self.assertEqual(computer.skip_match("/src/VERSION"), "VERSION")
        self.assertIsNone(computer.skip_match("/src/VERSION.txt"))

    def test_skip_pattern(self):
        computer = self._computer(skip_patterns=("*.txt",))
        old, new = self._pair("a.txt", "one\n", "two\n")
        result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.SKIPPED)
        self.assertIn("*.txt", result.reason)

    def test_text_rate_from_patch(self):
        computer = self._computer()
        old, new = self._pair("a.txt", "foo\nbaz\n", "bar\nbaz\n")
        with patch.object(computer.diff_tool, "diff", return_value=_PATCH):
            result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertAlmostEqual(result.rate, 6 / 8)
        self.assertEqual(result.artifact.diff_type, "unified")

    def test_diff_failure_skipped(self):
        computer = self._computer(diff_program="/nonexistent/pkgdelta-diff")
        old, new = self._pair("a.txt", "one\n", "two\n")
        result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.SKIPPED)
        self.assertIn("not found", result.reason)

    def test_diff_timeout_skipped(self):
        computer = self._computer()
        old, new = self._pair("a.txt", "one\n", "two\n")
        error = PkgdeltaTimeoutError("Timed out")
        with patch.object(computer.diff_tool, "diff", side_effect=error):
            result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.SKIPPED)

    def test_compressed_text_decompressed(self):
        computer = self._computer()
        old, new = self._pair(
            "doc.txt.gz", gzip.compress(b"hello\n"), gzip.compress(b"hello world\n")
        )
        seen = []

        def _diff(old_path, new_path, exact=False):
            with open(old_path, "rb") as fp:
                seen.append(fp.read())
            return b"--- a\n+++ b\n@@ -1 +1 @@\n-hello\n+hello world\n"

        with patch.object(computer.diff_tool, "diff", side_effect=_diff):
            result = computer._rate_text_files(old, new)
        self.assertEqual(seen, [b"hello\n"])
        self.assertEqual(result.status, RateStatus.CHANGED)

    def test_binary_large_size_change(self):
        computer = self._computer()
        old, new = self._pair("a.bin", b"\0" * 100, b"\0" * 200, FormatTag.DATA)
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.rate(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.rate, 1.0)

    def test_binary_empty_old(self):
        computer = self._computer()
        old, new = self._pair("a.bin", b"", b"\0\1", FormatTag.DATA)
        self.assertEqual(computer.rate(old, new).rate, 1.0)

    def test_binary_hex_diff(self):
        computer = self._computer()
        old, new = self._pair(
            "a.bin", b"\0" * 99 + b"\1", b"\0" * 99 + b"\2", FormatTag.DATA
        )
        hex_patch = b"--- old.hex\n+++ new.hex\n@@ -100 +100 @@\n-01\n+02\n"
        with patch.object(computer.diff_tool, "diff", return_value=hex_patch) as mock_diff:
            result = computer.rate(old, new)
        self.assertTrue(mock_diff.call_args.kwargs["exact"])
        self.assertEqual(result.status, RateStatus.CHANGED)
        # "\n-01\n" survives: five removed bytes out of 100.
        self.assertAlmostEqual(result.rate, 0.05)
        self.assertEqual(result.artifact.diff_type, "hexdump")

    def test_binary_changed_without_differences(self):
        # Binary pairs that are not identical are always CHANGED.
        computer = self._computer()
        old, new = self._pair("a.bin", b"\0\1\2\3", b"\0\1\2\4", FormatTag.DATA)
        with patch.object(computer.diff_tool, "diff", return_value=b""):
            result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.rate, 0.0)

    def test_dump_formats_rendered(self):
        computer = self._computer()
        old, new = self._pair(
            "libfoo.so", b"\x7fELF1", b"\x7fELF2", FormatTag.SHARED_OBJECT
        )
        renders = {old.full_path: "sym a\n", new.full_path: "sym b\n"}
        with patch(
            "pkgdelta.compare.ratediff.render_dump",
            side_effect=lambda fmt, path, timeout=60, width=80: renders[path],
        ), patch.object(
            computer.diff_tool,
            "diff",
            return_value=b"--- a\n+++ b\n@@ -1 +1 @@\n-sym a\n+sym b\n",
        ):
            result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.artifact.diff_type, "dump")

    def test_dump_width_passed_to_renderer(self):
        computer = self._computer(diff_width=132)
        old, new = self._pair("foo.1", b".TH FOO 1\n", b".TH FOO 2\n", FormatTag.MANPAGE)
        with patch("pkgdelta.compare.ratediff.subprocess.run") as mock_run, patch.object(
            computer.diff_tool, "diff", return_value=b""
        ):
            mock_run.return_value = MagicMock(stdout="FOO(1)\n")
            result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.UNCHANGED)
        self.assertEqual(mock_run.call_count, 2)
        for call in mock_run.call_args_list:
            self.assertEqual(call.kwargs["env"]["MANWIDTH"], "132")

    @patch("pkgdelta.compare.ratediff.subprocess.run")
    def test_render_dump_default_width(self, mock_run):
        mock_run.return_value = MagicMock(stdout="NAME\n")
        render_dump(FormatTag.MANPAGE, "/x.1")
        self.assertEqual(mock_run.call_args.kwargs["env"]["MANWIDTH"], "80")

    def test_symlinks(self):
        computer = self._computer()
        old = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.0")
        same = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.0")
        new = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.1")
        self.assertEqual(computer.rate(old, same).status, RateStatus.UNCHANGED)
        seen = []

        def _diff(old_path, new_path, exact=False):
            for path in (old_path, new_path):
                with open(path, "rb") as fp:
                    seen.append(fp.read())
            return b"--- old\n+++ new\n@@ -1 +1 @@\n-libfoo.so.1.0\n+libfoo.so.1.1\n"

        with patch.object(computer.diff_tool, "diff", side_effect=_diff):
            result = computer.rate(old, new)
        # Targets are rated like one-line text files.
        self.assertEqual(seen, [b"libfoo.so.1.0\n", b"libfoo.so.1.1\n"])
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertAlmostEqual(result.rate, 1.0)
        self.assertEqual(result.artifact.diff_type, "link")

    def test_symlink_to_file_changed(self):
        computer = self._computer()
        old = make_entry("/l", is_symlink=True, link_target="foo")
        new = make_entry("/l", full_path="/nonexistent/l")
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.compute(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.rate, 1.0)

    def test_symlink_diff_failure_skipped(self):
        computer = self._computer(diff_program="/nonexistent/pkgdelta-diff")
        old = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.0")
        new = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.1")
        self.assertEqual(computer.rate(old, new).status, RateStatus.SKIPPED)

    def test_empty_files_unchanged(self):
        computer = self._computer()
        old, new = self._pair("empty.txt", b"", b"")
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.rate(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.UNCHANGED)
        self.assertEqual(result.rate, 0.0)

    def test_truncated_gzip_skipped(self):
        computer = self._computer()
        data = gzip.compress(b"* Mon Jan 1 2024 Packager\n- Rebuilt\n" * 20)
        old, new = self._pair("changelog.gz", data, data[: len(data) // 2])
        with patch.object(computer.diff_tool, "diff") as mock_diff:
            result = computer.rate(old, new)
        mock_diff.assert_not_called()
        self.assertEqual(result.status, RateStatus.SKIPPED)
        self.assertIn("cannot decompress", result.reason)

    def test_corrupt_xz_skipped(self):
        computer = self._computer()
        old, new = self._pair("NEWS.xz", b"not xz data", b"not xz data either")
        result = computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.SKIPPED)
        self.assertIn("cannot decompress", result.reason)

    def test_rate_text_equal(self):
        computer = self._computer()
        self.assertEqual(computer.rate_text("a", "a").status, RateStatus.UNCHANGED)

    def test_rate_text_failure_skipped(self):
        computer = self._computer(diff_program="/nonexistent/pkgdelta-diff")
        self.assertEqual(computer.rate_text("a\n", "b\n").status, RateStatus.SKIPPED)


@unittest.skipIf(not have_diff(), "diff program not available")
class TestChangeRateWithDiff(unittest.TestCase):
    """Tests running the real diff program."""

    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = tmpdir.name
        self.computer = ChangeRateComputer(RunContext(CompareOptions(use_magic=False)))

    def test_one_line_change(self):
        old_path = write_file(self.root, "old/foo.c", c_source("int main(){}"))
        new_path = write_file(self.root, "new/foo.c", c_source("int main(){return 1;}"))
        old = make_entry("/foo.c", os.path.getsize(old_path), FormatTag.C_SOURCE, old_path)
        new = make_entry("/foo.c", os.path.getsize(new_path), FormatTag.C_SOURCE, new_path)
        result = self.computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertGreater(result.rate, 0.0)
        self.assertLess(result.rate, 0.2)
        self.assertEqual(result.artifact.summary, "1 deletions, 1 additions")

    def test_empty_old_file_fully_changed(self):
        old_path = write_file(self.root, "old/NEWS", "")
        new_path = write_file(self.root, "new/NEWS", "Version 2\n")
        old = make_entry("/NEWS", 0, FormatTag.TEXT, old_path)
        new = make_entry("/NEWS", os.path.getsize(new_path), FormatTag.TEXT, new_path)
        result = self.computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.rate, 1.0)

    def test_symlink_targets(self):
        old = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.0")
        new = make_entry("/l", is_symlink=True, link_target="libfoo.so.1.1")
        result = self.computer.rate(old, new)
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertEqual(result.artifact.summary, "1 deletions, 1 additions")

    def test_rate_text(self):
        result = self.computer.rate_text("Name: foo\nVersion: 1\n", "Name: foo\nVersion: 2\n")
        self.assertEqual(result.status, RateStatus.CHANGED)
        self.assertGreater(result.rate, 0.0)
