# Copyright Red Hat
#
# pkgdelta/__init__.py - Package delta analyser package initialisation
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Pkgdelta top-level package.
"""
from ._pkgdelta import *  # noqa: F401, F403
from ._pkgdelta import __all__  # noqa: F401

__version__ = "0.1.0"
