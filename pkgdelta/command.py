# Copyright Red Hat
#
# pkgdelta/command.py - Package delta command interface
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``pkgdelta.command`` module provides the pkgdelta command line
interface, and a simple procedural interface to the ``pkgdelta.compare``
package.
"""
from argparse import ArgumentParser
from typing import Dict, List, Optional
from os.path import basename
import logging
import sys

from pkgdelta import (
    PKGDELTA_DEBUG_ALL,
    PKGDELTA_DEBUG_COMMAND,
    PKGDELTA_DEBUG_COMPARE,
    PKGDELTA_SUBSYSTEM_COMMAND,
    PkgdeltaError,
    PkgdeltaParseError,
    PkgdeltaPathError,
    ProgressAwareHandler,
    SubsystemFilter,
    set_debug_mask,
    __version__,
)
from .compare import CompareOptions, CompareResults, PackageComparer

#: Output formats accepted by ``--output-format``.
OUTPUT_FORMATS = ["summary", "paths", "json", "diff", "stat"]

#: Exit status for an unchanged verdict.
EXIT_UNCHANGED = 0
#: Exit status for a changed verdict.
EXIT_CHANGED = 1
#: Exit status for an undifferentiated error.
EXIT_ERROR = 2
#: Exit status when an input cannot be accessed.
EXIT_ACCESS_ERROR = 4

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def _read_info(path: Optional[str], name: str) -> Optional[Dict[str, str]]:
    """
    Read a metadata blob file into a ``{name: text}`` mapping.
    """
    if not path:
        return None
    try:
        with open(path, "r", encoding="utf8", errors="replace") as fp:
            return {name: fp.read()}
    except OSError as err:
        raise PkgdeltaPathError(f"Cannot read package info {path}: {err}") from err


def compare_packages(
    old_root: str,
    new_root: str,
    options: Optional[CompareOptions] = None,
    old_deps: Optional[str] = None,
    new_deps: Optional[str] = None,
    old_info: Optional[str] = None,
    new_info: Optional[str] = None,
    color: str = "auto",
) -> CompareResults:
    """
    Compare two extracted package trees.

    :param old_root: The old version tree.
    :type old_root: ``str``
    :param new_root: The new version tree.
    :type new_root: ``str``
    :param options: Comparison options.
    :type options: ``Optional[CompareOptions]``
    :param old_deps: Old version dependency declaration file.
    :type old_deps: ``Optional[str]``
    :param new_deps: New version dependency declaration file.
    :type new_deps: ``Optional[str]``
    :param old_info: Old version metadata blob file.
    :type old_info: ``Optional[str]``
    :param new_info: New version metadata blob file.
    :type new_info: ``Optional[str]``
    :param color: "auto", "always" or "never".
    :type color: ``str``
    :returns: The comparison results.
    :rtype: ``CompareResults``
    """
    comparer = PackageComparer(options=options, color=color)
    return comparer.compare_trees(
        old_root,
        new_root,
        old_deps=old_deps,
        new_deps=new_deps,
        old_info=_read_info(old_info, basename(old_root.rstrip("/"))),
        new_info=_read_info(new_info, basename(new_root.rstrip("/"))),
    )


def print_results(
    results: CompareResults,
    output_formats: List[str],
    pretty: bool = False,
    color: str = "auto",
):
    """
    Print ``results`` in each of ``output_formats``.
    """
    spacer = ""
    for output_format in output_formats:
        print(spacer, end="")
        if output_format == "paths":
            print("\n".join(results.paths()))
        elif output_format == "json":
            print(results.json(pretty=pretty))
        elif output_format == "diff":
            print(results.diff(color=color))
        elif output_format == "stat":
            print(results.stat_line() + f"tool_version:{__version__}")
        elif output_format == "summary":
            print(results.summary(color=color))
        spacer = "\n"


def _compare_cmd(cmd_args) -> int:
    """
    Compare command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    output_formats = cmd_args.output_format or ["summary"]
    if cmd_args.pretty and "json" not in output_formats:
        _log_error("Option --pretty only supported with --output-format=json")
        return EXIT_ERROR

    base = CompareOptions.from_config_file(cmd_args.config)
    options = CompareOptions.from_cmd_args(cmd_args, base=base)
    _log_debug_command("Effective options:\n%s", options)

    results = compare_packages(
        cmd_args.old,
        cmd_args.new,
        options=options,
        old_deps=cmd_args.old_deps,
        new_deps=cmd_args.new_deps,
        old_info=cmd_args.old_info,
        new_info=cmd_args.new_info,
        color=cmd_args.color,
    )
    print_results(results, output_formats, pretty=cmd_args.pretty, color=cmd_args.color)
    return EXIT_CHANGED if results.verdict == "Changed" else EXIT_UNCHANGED


def setup_logging(cmd_args):
    """
    Set up pkgdelta logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    pkgdelta_log = logging.getLogger("pkgdelta")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    pkgdelta_log.setLevel(level)
    if pkgdelta_log.hasHandlers():
        pkgdelta_log.handlers.clear()

    # Subsystem log filtering
    _pkgdelta_subsystem_filter = SubsystemFilter("pkgdelta")

    # Main console handler
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_pkgdelta_subsystem_filter)

    pkgdelta_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down pkgdelta logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "compare": PKGDELTA_DEBUG_COMPARE,
        "command": PKGDELTA_DEBUG_COMMAND,
        "all": PKGDELTA_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_input_args(parser):
    parser.add_argument("old", metavar="OLD", help="The old version package tree")
    parser.add_argument("new", metavar="NEW", help="The new version package tree")
    parser.add_argument(
        "--old-deps",
        metavar="FILE",
        help="Dependency declarations of the old version ('kind: declaration')",
    )
    parser.add_argument(
        "--new-deps",
        metavar="FILE",
        help="Dependency declarations of the new version ('kind: declaration')",
    )
    parser.add_argument(
        "--old-info", metavar="FILE", help="Package information of the old version"
    )
    parser.add_argument(
        "--new-info", metavar="FILE", help="Package information of the new version"
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Read comparison options from FILE",
    )


def _add_compare_args(parser):
    parser.add_argument(
        "-Q",
        "--quick",
        action="store_true",
        default=None,
        help="Report differing files as changed without computing diffs",
    )
    parser.add_argument(
        "--all-text",
        action="store_true",
        default=None,
        help="Treat files of unknown format as text",
    )
    parser.add_argument(
        "-b",
        "--ignore-space-change",
        action="store_true",
        default=None,
        help="Ignore changes in the amount of white space",
    )
    parser.add_argument(
        "-w",
        "--ignore-all-space",
        action="store_true",
        default=None,
        help="Ignore all white space",
    )
    parser.add_argument(
        "-B",
        "--ignore-blank-lines",
        action="store_true",
        default=None,
        help="Ignore changes whose lines are all blank",
    )
    parser.add_argument(
        "--minimal",
        action="store_true",
        default=None,
        help="Try hard to find a smaller set of changes",
    )
    parser.add_argument(
        "-U",
        "--context-lines",
        type=int,
        metavar="NUM",
        help="Lines of unified diff context (default: 10)",
    )
    parser.add_argument(
        "--diff-program",
        metavar="PROGRAM",
        help="The diff program to run (default: diff)",
    )
    parser.add_argument(
        "--diff-timeout",
        type=int,
        metavar="SECONDS",
        help="Time allowed for each diff (default: 60)",
    )
    parser.add_argument(
        "-m",
        "--size-limit",
        metavar="SIZE",
        help="Skip rating files larger than SIZE (default: unlimited)",
    )
    parser.add_argument(
        "-s",
        "--skip-pattern",
        action="append",
        metavar="PATTERN",
        dest="skip_patterns",
        default=None,
        help="Do not rate files matching PATTERN",
    )
    parser.add_argument(
        "-x",
        "--exclude",
        action="append",
        metavar="PATTERN",
        dest="exclude_patterns",
        default=None,
        help="Exclude paths matching PATTERN (glob notation)",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        dest="max_workers",
        metavar="NUM",
        help="Number of files to rate in parallel (default: automatic)",
    )
    parser.add_argument(
        "--no-magic",
        dest="use_magic",
        action="store_false",
        default=None,
        help="Do not probe file content with libmagic",
    )
    parser.add_argument(
        "--hide-unchanged",
        action="store_true",
        default=None,
        help="Count only added, removed and changed files in format totals",
    )
    parser.add_argument(
        "--move-depth",
        type=int,
        metavar="NUM",
        help="Directory levels considered when detecting moves (default: 4)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=None,
        help="Suppress progress output",
    )


def _add_output_args(parser):
    parser.add_argument(
        "-o",
        "--output-format",
        action="append",
        choices=OUTPUT_FORMATS,
        help="Output format (may be given more than once; default: summary)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )
    parser.add_argument(
        "--color",
        choices=["auto", "always", "never"],
        default="auto",
        help="Control colored output",
    )


def main(args):
    """
    Main entry point for pkgdelta.
    """
    parser = ArgumentParser(
        description="Package Delta Analyser", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of pkgdelta",
        version=__version__,
    )
    _add_input_args(parser)
    _add_compare_args(parser)
    _add_output_args(parser)

    cmd_args = parser.parse_args(args[1:])

    status = EXIT_ERROR

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if cmd_args.debug:
        status = _compare_cmd(cmd_args)
    else:
        try:
            status = _compare_cmd(cmd_args)
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except (PkgdeltaPathError, PkgdeltaParseError) as err:
            _log_error("Cannot read input: %s", err)
            status = EXIT_ACCESS_ERROR
        except PkgdeltaError as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
