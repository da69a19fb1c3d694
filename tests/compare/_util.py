# Copyright Red Hat
#
# tests/compare/_util.py - Package comparison test utilities.
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
import os

from pkgdelta.compare.formats import FormatTag
from pkgdelta.compare.treewalk import FileEntry


def make_entry(
    path_str,
    size=1024,
    file_format=FormatTag.TEXT,
    full_path=None,
    is_dir=False,
    is_symlink=False,
    link_target=None,
):
    """
    Factory to create FileEntry objects without touching disk.
    """
    if is_dir:
        file_format = FormatTag.DIR
        size = 0
    elif is_symlink:
        file_format = FormatTag.SYMLINK
        size = len(link_target or "")
    return FileEntry(
        path_str,
        full_path,
        size,
        file_format,
        is_dir=is_dir,
        is_symlink=is_symlink,
        link_target=link_target,
    )


def make_table(*entries):
    """
    Return a ``{path: entry}`` file table for ``entries``.
    """
    return {entry.path: entry for entry in entries}


def write_file(root, rel_path, content):
    """
    Write ``content`` (``str`` or ``bytes``) to ``root/rel_path``, creating
    parent directories, and return the full path.
    """
    full_path = os.path.join(root, rel_path.lstrip("/"))
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    mode = "wb" if isinstance(content, bytes) else "w"
    with open(full_path, mode) as fp:
        fp.write(content)
    return full_path


def c_source(body):
    """
    Return a C source file with a fixed preamble and ``body`` as its last
    line.
    """
    preamble = "".join(f"/* preamble line {i:02d} */\n" for i in range(30))
    return preamble + body + "\n"
