# Copyright Red Hat
#
# pkgdelta/_pkgdelta.py - Package delta analyser global definitions
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level pkgdelta package.
"""
from typing import Optional, TextIO, TYPE_CHECKING
import logging
import weakref
import math
import sys
import re

if TYPE_CHECKING:
    from .progress import ProgressBase

_log = logging.getLogger("pkgdelta")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Pkgdelta debugging subsystem mask
PKGDELTA_DEBUG_COMPARE = 1
PKGDELTA_DEBUG_COMMAND = 2
PKGDELTA_DEBUG_ALL = PKGDELTA_DEBUG_COMPARE | PKGDELTA_DEBUG_COMMAND

# Pkgdelta debugging subsystem names
PKGDELTA_SUBSYSTEM_COMPARE = "pkgdelta.compare"
PKGDELTA_SUBSYSTEM_COMMAND = "pkgdelta.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    PKGDELTA_DEBUG_COMPARE: PKGDELTA_SUBSYSTEM_COMPARE,
    PKGDELTA_DEBUG_COMMAND: PKGDELTA_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

# Progress instances that must be told when log output displaces them.
_active_progress: weakref.WeakSet = weakref.WeakSet()

#: Default location of the pkgdelta configuration file.
PKGDELTA_CONF = "/etc/pkgdelta/pkgdelta.conf"

_SIZE_RE = re.compile(r"^(?P<size>[0-9]+)(?P<units>([KMGTPEZkmgtpez]i{,1})?[Bb]{,1})$")

#: All suffixes are expressed in powers of two.
_SIZE_SUFFIXES = {
    "B": 1,
    "K": 2**10,
    "M": 2**20,
    "G": 2**30,
    "T": 2**40,
    "P": 2**50,
    "E": 2**60,
    "Z": 2**70,
}


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``pkgdelta`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    pkgdelta_log = logging.getLogger("pkgdelta")

    for handler in pkgdelta_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``pkgdelta`` package.

    :param mask: the logical OR of the ``PKGDELTA_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > PKGDELTA_DEBUG_ALL:
        raise ValueError(f"Invalid pkgdelta debug mask: {mask}")

    enabled_subsystems = [
        name for flag, name in _DEBUG_MASK_TO_SUBSYSTEM.items() if mask & flag
    ]

    pkgdelta_log = logging.getLogger("pkgdelta")
    for handler in pkgdelta_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_progress(progress: "ProgressBase"):
    """Register a progress instance for log coordination."""
    _active_progress.add(progress)
    progress.registered = True


def unregister_progress(progress: "ProgressBase"):
    """Unregister a progress instance."""
    _active_progress.discard(progress)
    progress.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify progress instances that log output occurred on stream.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for progress in list(_active_progress):
        if hasattr(progress, "reset_position"):
            progress.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active Progress instances.

    After emitting a log record, notifies any Progress instances writing
    to the same stream so that the next redraw does not erase the message.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Pkgdelta exception types
#


class PkgdeltaError(Exception):
    """
    Base class for package delta errors.
    """


class PkgdeltaPathError(PkgdeltaError):
    """
    An invalid path was supplied, for example a comparison root that
    does not exist or is not a directory.
    """


class PkgdeltaParseError(PkgdeltaError):
    """
    An error parsing input data: a malformed file map, dependency list
    or configuration file.
    """


class PkgdeltaCalloutError(PkgdeltaError):
    """
    An error calling out to an external program.
    """


class PkgdeltaTimeoutError(PkgdeltaCalloutError):
    """
    An external program did not complete within the configured timeout.
    """


class PkgdeltaArgumentError(PkgdeltaError):
    """
    An invalid argument was passed to a pkgdelta API call.
    """


def size_fmt(value):
    """
    Format a size in bytes as a human readable string.

    :param value: The integer value to format.
    :returns: A human readable string reflecting value.
    """
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB"]
    if value == 0:
        return "0B"
    magnitude = math.floor(math.log(abs(value), 1024))
    val = value / math.pow(1024, magnitude)
    if magnitude > 7:
        return f"{val:.1f}YiB"
    return f"{val:3.1f}{suffixes[magnitude]}"


def parse_size_with_units(value):
    """
    Parse a size string with optional unit suffix and return a value in bytes.

    :param value: The size string to parse.
    :returns: an integer size in bytes.
    :raises: ``PkgdeltaParseError`` if the string could not be parsed as a
             valid size value.
    """
    match = _SIZE_RE.search(value.strip())
    if match is None:
        raise PkgdeltaParseError(f"Malformed size expression: '{value}'")
    (size, unit) = (match.group("size"), match.group("units").upper())
    if not unit:
        return int(size)
    return int(size) * _SIZE_SUFFIXES[unit[0]]


__all__ = [
    "PKGDELTA_CONF",
    "PKGDELTA_DEBUG_ALL",
    "PKGDELTA_DEBUG_COMMAND",
    "PKGDELTA_DEBUG_COMPARE",
    "PKGDELTA_SUBSYSTEM_COMMAND",
    "PKGDELTA_SUBSYSTEM_COMPARE",
    "PkgdeltaArgumentError",
    "PkgdeltaCalloutError",
    "PkgdeltaError",
    "PkgdeltaParseError",
    "PkgdeltaPathError",
    "PkgdeltaTimeoutError",
    "ProgressAwareHandler",
    "SubsystemFilter",
    "get_debug_mask",
    "notify_log_output",
    "parse_size_with_units",
    "register_progress",
    "set_debug_mask",
    "size_fmt",
    "unregister_progress",
]
