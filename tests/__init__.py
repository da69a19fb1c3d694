# Copyright Red Hat
#
# tests/__init__.py - Package delta test package
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import shutil
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    old = None
    new = None
    old_deps = None
    new_deps = None
    old_info = None
    new_info = None
    config = None
    debug = None
    verbose = 0
    version = False
    quick = None
    all_text = None
    ignore_space_change = None
    ignore_all_space = None
    ignore_blank_lines = None
    minimal = None
    context_lines = None
    diff_program = None
    diff_timeout = None
    size_limit = None
    skip_patterns = None
    exclude_patterns = None
    max_workers = None
    use_magic = None
    hide_unchanged = None
    move_depth = None
    quiet = None
    output_format = None
    pretty = False
    color = "never"


def have_diff():
    """Return ``True`` if a ``diff`` program is available."""
    return shutil.which("diff") is not None
