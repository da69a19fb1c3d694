# Copyright Red Hat
#
# tests/compare/test_engine.py - Comparison engine tests.
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import gzip
import json
import os
import tempfile
import unittest
from unittest.mock import patch

from pkgdelta import size_fmt
from pkgdelta.compare.context import RunContext
from pkgdelta.compare.engine import CompareEngine, FileRecord, FileStatus, FormatChanges
from pkgdelta.compare.formats import FormatTag
from pkgdelta.compare.options import CompareOptions
from pkgdelta.compare.ratediff import DiffArtifact, RateResult, RateStatus
from pkgdelta.progress import TermControl

from tests import have_diff

from ._util import c_source, make_entry, make_table, write_file

_PATCH = b"--- a\n+++ b\n@@ -1,2 +1,2 @@\n-foo\n+bar\n baz\n"


def _engine(**kwargs):
    kwargs.setdefault("use_magic", False)
    kwargs.setdefault("quiet", True)
    return CompareEngine(RunContext(CompareOptions(**kwargs)))


def _entry(path, size=100, file_format=FormatTag.TEXT):
    # A fake physical path passes the pre-checks; content is never read
    # because rating is mocked.
    return make_entry(path, size, file_format, full_path="/nonexistent" + path)


def _rates(rates):
    """
    Return a side effect for ``ChangeRateComputer.compute`` that looks up
    results by old path; unlisted paths are unchanged.
    """

    def _compute(old, new):
        return rates.get(old.path, RateResult.unchanged())

    return _compute


class TestFormatChanges(unittest.TestCase):
    def test_counters(self):
        counters = FormatChanges(FormatTag.TEXT)
        counters.add_added(make_entry("/a", 10))
        counters.add_removed(make_entry("/b", 5))
        self.assertEqual(counters.total, 2)
        self.assertEqual(counters.size, 15)
        self.assertEqual(counters.size_delta, 15)
        self.assertEqual(counters.to_dict()["format"], "TEXT")

    def test_shown_total(self):
        counters = FormatChanges(FormatTag.TEXT)
        counters.total = 10
        counters.changed = 2
        counters.added = 1
        self.assertEqual(counters.shown_total(), 10)
        self.assertEqual(counters.shown_total(hide_unchanged=True), 3)


class TestFileRecord(unittest.TestCase):
    def test_rename_record(self):
        old = make_entry("/a/foo-1.0.c", 50, FormatTag.C_SOURCE)
        new = make_entry("/a/foo-2.0.c", 52, FormatTag.C_SOURCE)
        result = RateResult(
            RateStatus.CHANGED, rate=0.1, artifact=DiffArtifact.from_patch("unified", _PATCH)
        )
        record = FileRecord("/a/foo-1.0.c", FileStatus.RENAMED, old, new, result)
        self.assertEqual(record.new_path, "/a/foo-2.0.c")
        self.assertEqual(record.size, 50)
        self.assertTrue(record.content_changed)
        self.assertIn("-> /a/foo-2.0.c", str(record))
        data = json.loads(record.json())
        self.assertEqual(data["status"], "renamed")
        self.assertEqual(data["new_path"], "/a/foo-2.0.c")
        self.assertEqual(data["rate"], 0.1)
        self.assertEqual(data["diff"]["summary"], "1 deletions, 1 additions")

    def test_added_record(self):
        record = FileRecord("/b", FileStatus.ADDED, new_entry=make_entry("/b", 7))
        self.assertEqual(record.size, 7)
        self.assertFalse(record.content_changed)
        self.assertNotIn("rate", record.to_dict())


class TestCompareEngine(unittest.TestCase):
    def test_stable_unchanged(self):
        engine = _engine()
        table = make_table(_entry("/a.txt"), _entry("/b.txt"))
        with patch.object(engine.rater, "compute", side_effect=_rates({})):
            results = engine.compute(table, dict(table))
        self.assertEqual(len(results.unchanged), 2)
        self.assertEqual(results.verdict, "Unchanged")
        self.assertEqual(results.percent_affected, 0.0)
        counters = results.formats[FormatTag.TEXT]
        self.assertEqual(counters.total, 2)
        self.assertEqual(counters.size, 200)
        self.assertEqual(counters.size_delta, 0)
        self.assertEqual(results.paths(), [])

    def test_empty_inputs(self):
        results = _engine().compute({}, {})
        self.assertEqual(len(results), 0)
        self.assertEqual(results.verdict, "Unchanged")
        self.assertEqual(results.percent_affected, 0.0)

    def test_changed_counters(self):
        engine = _engine()
        table = make_table(_entry("/a.txt"), _entry("/b.txt"))
        rates = {"/a.txt": RateResult(RateStatus.CHANGED, rate=0.5)}
        with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
            results = engine.compute(table, dict(table))
        counters = results.formats[FormatTag.TEXT]
        self.assertEqual(counters.changed, 1)
        self.assertEqual(counters.size, 200)
        self.assertAlmostEqual(counters.size_delta, 50.0)
        self.assertAlmostEqual(results.percent_affected, 25.0)
        self.assertEqual(results.verdict, "Changed")
        self.assertEqual([r.path for r in results.changed], ["/a.txt"])
        self.assertEqual(results.paths(), ["/a.txt"])

    def test_added_and_removed(self):
        engine = _engine()
        old = make_table(_entry("/gone.txt", 30))
        new = make_table(_entry("/fresh.bin", 20, FormatTag.DATA))
        results = engine.compute(old, new)
        self.assertEqual([r.path for r in results.added], ["/fresh.bin"])
        self.assertEqual([r.path for r in results.removed], ["/gone.txt"])
        self.assertEqual(results.formats[FormatTag.TEXT].removed, 1)
        self.assertEqual(results.formats[FormatTag.DATA].added, 1)
        self.assertEqual(results.total_size, 50)
        self.assertEqual(results.total_delta, 50)
        self.assertEqual(results.percent_affected, 100.0)

    def test_skipped_counted_without_delta(self):
        engine = _engine()
        table = make_table(make_entry("/a.txt", 100))
        results = engine.compute(table, dict(table))
        self.assertEqual([r.path for r in results.skipped], ["/a.txt"])
        self.assertEqual(results.skipped[0].reason, "content unavailable")
        counters = results.formats[FormatTag.TEXT]
        self.assertEqual(counters.skipped, 1)
        self.assertEqual(counters.total, 1)
        self.assertEqual(counters.size_delta, 0)
        self.assertEqual(results.verdict, "Unchanged")

    def test_rating_error_contained(self):
        engine = _engine()
        table = make_table(_entry("/a.txt"), _entry("/b.txt"))

        def _compute(old, new):
            if old.path == "/a.txt":
                raise RuntimeError("diff collaborator crashed")
            return RateResult.unchanged()

        with patch.object(engine.rater, "compute", side_effect=_compute):
            results = engine.compute(table, dict(table))
        (record,) = results.skipped
        self.assertEqual(record.path, "/a.txt")
        self.assertIn("diff collaborator crashed", record.reason)
        self.assertEqual([r.path for r in results.unchanged], ["/b.txt"])
        self.assertEqual(results.verdict, "Unchanged")

    def test_truncated_compressed_file_skipped(self):
        with tempfile.TemporaryDirectory() as root:
            data = gzip.compress(b"- Rebuilt for new toolchain\n" * 50)
            old_path = write_file(root, "old/changelog.gz", data)
            new_path = write_file(root, "new/changelog.gz", data[:-12])
            old = make_table(make_entry("/changelog.gz", len(data), full_path=old_path))
            new = make_table(
                make_entry("/changelog.gz", len(data) - 12, full_path=new_path)
            )
            results = _engine().compute(old, new)
        (record,) = results.skipped
        self.assertEqual(record.path, "/changelog.gz")
        self.assertIn("cannot decompress", record.reason)

    def test_format_change_is_remove_and_add(self):
        engine = _engine()
        old = make_table(_entry("/x", 10, FormatTag.TEXT))
        new = make_table(_entry("/x", 12, FormatTag.DATA))
        with patch.object(engine.rater, "compute") as mock_compute:
            results = engine.compute(old, new)
        mock_compute.assert_not_called()
        self.assertEqual(
            [(r.path, r.status) for r in results],
            [("/x", FileStatus.REMOVED), ("/x", FileStatus.ADDED)],
        )
        self.assertEqual(results.formats[FormatTag.TEXT].removed, 1)
        self.assertEqual(results.formats[FormatTag.DATA].added, 1)

    def test_confirmed_rename(self):
        engine = _engine()
        old = make_table(_entry("/a/foo-1.0.c", 100, FormatTag.C_SOURCE))
        new = make_table(_entry("/a/foo-2.0.c", 100, FormatTag.C_SOURCE))
        rates = {"/a/foo-1.0.c": RateResult(RateStatus.CHANGED, rate=0.2)}
        with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
            results = engine.compute(old, new)
        self.assertEqual(len(results), 1)
        record = results.renamed[0]
        self.assertEqual(record.path, "/a/foo-1.0.c")
        self.assertEqual(record.new_path, "/a/foo-2.0.c")
        self.assertEqual(record.rate, 0.2)
        # Both ends of the rename are counted; the rename itself is not.
        counters = results.formats[FormatTag.C_SOURCE]
        self.assertEqual((counters.added, counters.removed, counters.changed), (1, 1, 0))
        self.assertEqual(results.paths(), ["/a/foo-1.0.c"])

    def test_rename_retracted(self):
        engine = _engine()
        old = make_table(_entry("/a/foo-1.0.c", 100, FormatTag.C_SOURCE))
        new = make_table(_entry("/a/foo-2.0.c", 100, FormatTag.C_SOURCE))
        rates = {"/a/foo-1.0.c": RateResult(RateStatus.CHANGED, rate=0.9)}
        with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
            results = engine.compute(old, new)
        self.assertEqual(results.renamed, [])
        self.assertEqual([r.path for r in results.removed], ["/a/foo-1.0.c"])
        self.assertEqual([r.path for r in results.added], ["/a/foo-2.0.c"])
        self.assertIn("/a/foo-1.0.c", results.reconciliation.retracted)

    def test_retraction_thresholds(self):
        engine = _engine()
        old = make_table(
            _entry("/a/foo-1.0.c", 100, FormatTag.C_SOURCE),
            _entry("/lib/libx.so", 100, FormatTag.SHARED_OBJECT),
        )
        new = make_table(
            _entry("/a/foo-2.0.c", 100, FormatTag.C_SOURCE),
            _entry("/lib64/libx.so", 100, FormatTag.SHARED_OBJECT),
        )
        # 0.87 retracts a rename (>= 0.85) but not a move (< 0.90).
        rates = {
            "/a/foo-1.0.c": RateResult(RateStatus.CHANGED, rate=0.87),
            "/lib/libx.so": RateResult(RateStatus.CHANGED, rate=0.87),
        }
        with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
            results = engine.compute(old, new)
        self.assertEqual(results.renamed, [])
        self.assertEqual([r.path for r in results.moved], ["/lib/libx.so"])

    def test_unrated_rename_retracted(self):
        engine = _engine()
        old = make_table(make_entry("/a/foo-1.0.c", 100, FormatTag.C_SOURCE))
        new = make_table(make_entry("/a/foo-2.0.c", 100, FormatTag.C_SOURCE))
        results = engine.compute(old, new)
        self.assertEqual(results.renamed, [])
        self.assertEqual(len(results.removed), 1)
        self.assertEqual(len(results.added), 1)

    def test_deterministic_across_workers(self):
        old = make_table(*(_entry(f"/d/file{i:02d}.txt") for i in range(20)))
        new = dict(old)
        rates = {
            f"/d/file{i:02d}.txt": RateResult(RateStatus.CHANGED, rate=i / 20)
            for i in range(1, 20, 3)
        }
        outputs = []
        for workers in (1, 8):
            engine = _engine(max_workers=workers)
            with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
                data = engine.compute(old, new).to_dict()
            data.pop("timestamp")
            outputs.append(data)
        self.assertEqual(outputs[0], outputs[1])

    def test_dependencies_counted(self):
        engine = _engine()
        results = engine.compute(
            {},
            {},
            old_deps={"requires": {"libfoo": (">=", "1.0")}},
            new_deps={"requires": {"libfoo": (">=", "2.0"), "libbar": ("", "")}},
        )
        self.assertEqual(results.total_size, 12)
        self.assertEqual(results.total_delta, 12)
        self.assertEqual(results.verdict, "Changed")
        self.assertEqual(len(results.dependencies["requires"].changed), 1)


class TestCompareInfo(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()

    def test_added_and_removed(self):
        changes = self.engine._compare_info({"a": "Name: a\n"}, {"b": "", "c": "xyz"})
        by_name = {change.name: change for change in changes}
        # One package per side is not the case here, so no pairing.
        self.assertEqual(by_name["a"].status, FileStatus.REMOVED)
        self.assertEqual(by_name["a"].size_delta, 8)
        self.assertEqual(by_name["c"].status, FileStatus.ADDED)
        self.assertEqual(by_name["c"].size, 3)

    def test_unchanged_counts_delta(self):
        (change,) = self.engine._compare_info({"a": "same"}, {"a": "same"})
        self.assertEqual(change.status, FileStatus.UNCHANGED)
        self.assertEqual(change.size, 4)
        self.assertEqual(change.size_delta, 4)

    def test_single_package_renamed(self):
        result = RateResult(RateStatus.CHANGED, rate=0.5)
        with patch.object(self.engine.rater, "rate_text", return_value=result) as mock_rate:
            (change,) = self.engine._compare_info({"foo": "0123456789"}, {"foo2": "x"})
        mock_rate.assert_called_once_with("0123456789", "x")
        self.assertEqual(change.name, "foo")
        self.assertEqual(change.status, FileStatus.CHANGED)
        self.assertEqual(change.size, 10)
        self.assertEqual(change.size_delta, 5.0)

    def test_skipped(self):
        result = RateResult.skipped("diff failed")
        with patch.object(self.engine.rater, "rate_text", return_value=result):
            (change,) = self.engine._compare_info({"a": "one"}, {"a": "two"})
        self.assertEqual(change.status, FileStatus.SKIPPED)
        self.assertEqual(change.size, 3)
        self.assertEqual(change.size_delta, 0)


class TestCompareResultsOutput(unittest.TestCase):
    def setUp(self):
        engine = _engine()
        old = make_table(
            _entry("/a.txt"),
            _entry("/gone.txt", 10),
            _entry("/a/foo-1.0.c", 100, FormatTag.C_SOURCE),
        )
        new = make_table(
            _entry("/a.txt"),
            _entry("/new.txt", 10),
            _entry("/a/foo-2.0.c", 100, FormatTag.C_SOURCE),
        )
        artifact = DiffArtifact.from_patch("unified", _PATCH)
        rates = {
            "/a.txt": RateResult(RateStatus.CHANGED, rate=0.5, artifact=artifact),
            "/a/foo-1.0.c": RateResult(RateStatus.CHANGED, rate=0.1),
        }
        with patch.object(engine.rater, "compute", side_effect=_rates(rates)):
            self.results = engine.compute(old, new)
        self.tc = TermControl(color="never")

    def test_records_ordered(self):
        self.assertEqual(
            [r.path for r in self.results],
            ["/a.txt", "/a/foo-1.0.c", "/gone.txt", "/new.txt"],
        )

    def test_stat_line(self):
        stat = self.results.stat_line()
        self.assertTrue(stat.startswith("changed:"))
        self.assertIn(";added:2;removed:2;moved:0;renamed:1;changed:2;unchanged:0;", stat)

    def test_summary(self):
        summary = self.results.summary(term_control=self.tc)
        self.assertIn("Verdict:           Changed", summary)
        self.assertIn("Total files:       5", summary)
        self.assertIn("  Files renamed:   1", summary)
        self.assertIn("C sources (2)", summary)
        # Heavier formats are listed first.
        self.assertLess(summary.index("C sources"), summary.index("Text files"))

    def test_summary_sizes(self):
        summary = self.results.summary(term_control=self.tc)
        self.assertIn(f"Total size:        {size_fmt(self.results.total_size)}", summary)
        c_sources = self.results.formats[FormatTag.C_SOURCE]
        self.assertIn(f"size {size_fmt(c_sources.size)}", summary)

    def test_diff(self):
        diff = self.results.diff(term_control=self.tc)
        self.assertIn("diff /a.txt /a.txt", diff)
        self.assertIn("-foo", diff)
        self.assertIn("+bar", diff)

    def test_json(self):
        data = json.loads(self.results.json(pretty=True))
        self.assertEqual(data["verdict"], "Changed")
        self.assertEqual(data["total_files"], 5)
        self.assertEqual([f["path"] for f in data["files"]][0], "/a.txt")
        self.assertEqual(data["formats"][0]["format"], "C_SOURCE")

    def test_hide_unchanged(self):
        engine = _engine(hide_unchanged=True)
        table = make_table(_entry("/a.txt"))
        with patch.object(engine.rater, "compute", side_effect=_rates({})):
            results = engine.compute(table, dict(table))
        self.assertEqual(results.sorted_formats(), [])


@unittest.skipIf(not have_diff(), "diff program not available")
class TestCompareEngineWithDiff(unittest.TestCase):
    """End to end rating of real files."""

    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = tmpdir.name
        self.engine = _engine()

    def _entry(self, side, path, content, file_format):
        full_path = write_file(self.root, side + path, content)
        return make_entry(path, os.path.getsize(full_path), file_format, full_path)

    def test_renamed_source_with_small_change(self):
        old = make_table(
            self._entry("old", "/a/foo-1.0.c", c_source("int main(){}"), FormatTag.C_SOURCE)
        )
        new = make_table(
            self._entry(
                "new", "/a/foo-2.0.c", c_source("int main(){return 1;}"), FormatTag.C_SOURCE
            )
        )
        results = self.engine.compute(old, new)
        (record,) = results.renamed
        self.assertEqual(record.new_path, "/a/foo-2.0.c")
        self.assertGreater(record.rate, 0.0)
        self.assertLess(record.rate, 0.85)

    def test_identical_files_never_diffed(self):
        old = make_table(self._entry("old", "/x.txt", "same\n", FormatTag.TEXT))
        new = make_table(self._entry("new", "/x.txt", "same\n", FormatTag.TEXT))
        with patch("pkgdelta.compare.ratediff.subprocess.run") as mock_run:
            results = self.engine.compute(old, new)
        mock_run.assert_not_called()
        self.assertEqual(results.unchanged[0].rate, 0.0)
