# Copyright Red Hat
#
# tests/compare/__init__.py - Package comparison test package
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
