# Copyright Red Hat
#
# pkgdelta/compare/__init__.py - Package delta comparison package
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Package comparison package.

Provides format classification, file set reconciliation with rename and
move detection, change rate computation and dependency reconciliation.
The main entry points are ``PackageComparer`` and ``CompareOptions``.
"""
from .comparer import PackageComparer
from .deps import DependencyReconciler, parse_dependency, read_dependency_file
from .engine import CompareEngine, CompareResults, FileRecord, FileStatus
from .formats import FormatClassifier, FormatTag
from .options import CompareOptions
from .reconcile import FileSetReconciler, Reconciliation
from .ratediff import ChangeRateComputer, DiffTool
from .treewalk import FileEntry, TreeWalker

__all__ = [
    "ChangeRateComputer",
    "CompareEngine",
    "CompareOptions",
    "CompareResults",
    "DependencyReconciler",
    "DiffTool",
    "FileEntry",
    "FileRecord",
    "FileSetReconciler",
    "FileStatus",
    "FormatClassifier",
    "FormatTag",
    "PackageComparer",
    "Reconciliation",
    "TreeWalker",
    "parse_dependency",
    "read_dependency_file",
]
