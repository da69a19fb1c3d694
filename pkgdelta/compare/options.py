# Copyright Red Hat
#
# pkgdelta/compare/options.py - Package delta comparison options
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Package comparison options.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple, Union
from configparser import ConfigParser, Error as ConfigParserError
from argparse import Namespace
from os.path import exists
import logging

from pkgdelta import (
    PKGDELTA_CONF,
    PkgdeltaArgumentError,
    PkgdeltaParseError,
    parse_size_with_units,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Configuration file section holding comparison options.
_PKGDELTA_CFG_COMPARE = "compare"

#: Option fields that hold byte sizes and accept unit suffixes.
_SIZE_FIELDS = ("exact_diff_size", "size_limit")


@dataclass(frozen=True)
class CompareOptions:
    """
    Package comparison options.
    """

    #: Base ratio for the filename affix similarity test
    rename_file_match: float = 0.55
    #: Change rate at or above which a rename is retracted
    rename_content_match: float = 0.85
    #: Change rate at or above which a move is retracted
    move_content_match: float = 0.90
    #: Number of parent directories considered by move detection
    move_depth: int = 4
    #: Average size below which binary files are compared exactly
    exact_diff_size: int = 256 * 2**10
    #: Size change rate below which binary files are compared exactly
    exact_diff_rate: float = 0.1
    #: Skip rating files larger than this many bytes (0 for no limit)
    size_limit: int = 0
    #: Treat files of unknown format as text
    all_text: bool = False
    #: Report non-identical files as fully changed without diffing them
    quick: bool = False
    #: Ignore changes in the amount of white space
    ignore_space_change: bool = False
    #: Ignore all white space
    ignore_all_space: bool = False
    #: Ignore changes whose lines are all blank
    ignore_blank_lines: bool = False
    #: Try hard to find a smaller set of changes
    minimal: bool = False
    #: Lines of context in generated diffs
    context_lines: int = 10
    #: Width of rendered diff output
    diff_width: int = 80
    #: External program used to produce textual diffs
    diff_program: str = "diff"
    #: Seconds allowed for each external program invocation
    diff_timeout: int = 60
    #: Number of rate computation workers (0 chooses automatically)
    max_workers: int = 0
    #: Describe file content with libmagic when classifying
    use_magic: bool = True
    #: Logical path patterns that are reported as skipped
    skip_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Logical path patterns (glob notation) excluded from tree ingestion
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Do not count unchanged files in per-format totals
    hide_unchanged: bool = False
    #: Do not output progress or status updates
    quiet: bool = False

    def __post_init__(self):
        for name in ("rename_file_match", "rename_content_match", "move_content_match"):
            value = getattr(self, name)
            if not 0.0 < value <= 1.0:
                raise PkgdeltaArgumentError(f"{name} must be in (0, 1]: {value}")
        if self.exact_diff_rate < 0:
            raise PkgdeltaArgumentError(
                f"exact_diff_rate cannot be negative: {self.exact_diff_rate}"
            )
        for name in ("move_depth", "size_limit", "exact_diff_size", "max_workers"):
            if getattr(self, name) < 0:
                raise PkgdeltaArgumentError(
                    f"{name} cannot be negative: {getattr(self, name)}"
                )
        if self.context_lines < 0:
            raise PkgdeltaArgumentError(
                f"context_lines cannot be negative: {self.context_lines}"
            )
        if self.diff_timeout <= 0:
            raise PkgdeltaArgumentError(
                f"diff_timeout must be positive: {self.diff_timeout}"
            )

    def __str__(self):
        """
        Return a human readable string representation of this
        ``CompareOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        items = [
            (key, " ".join(val) if isinstance(val, tuple) else val)
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    @classmethod
    def from_cmd_args(
        cls, cmd_args: Namespace, base: Optional["CompareOptions"] = None
    ) -> "CompareOptions":
        """
        Initialise CompareOptions from command line arguments.

        Arguments that are absent from ``cmd_args`` or set to ``None`` keep
        the values of ``base``, or the defaults if ``base`` is unset.

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :param base: Options to override, for example from a config file.
        :type base: ``Optional[CompareOptions]``
        :returns: A new ``CompareOptions`` instance
        :rtype: ``CompareOptions``
        """

        def get_value(name: str) -> Union[bool, int, float, str, Tuple[str, ...]]:
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            if name in _SIZE_FIELDS and isinstance(attr, str):
                return parse_size_with_units(attr)
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }
        options = replace(base, **kwargs) if base is not None else cls(**kwargs)
        _log_debug("Initialised CompareOptions from arguments: %s", repr(options))
        return options

    @classmethod
    def from_config_file(
        cls, config_file: Optional[str] = None, **overrides: Any
    ) -> "CompareOptions":
        """
        Load ``CompareOptions`` from an INI-style configuration file.

        Values are read from the ``[compare]`` section using the option
        field names as keys. A missing file yields the default options.
        Keyword arguments override values read from the file.

        :param config_file: Path to the configuration file.
        :type config_file: ``Optional[str]``
        :returns: A ``CompareOptions`` instance initialised from
                  ``config_file``.
        :rtype: ``CompareOptions``
        :raises PkgdeltaParseError: If the file cannot be parsed or holds an
                                    invalid value.
        """
        config_file = config_file or PKGDELTA_CONF
        values: Dict[str, Any] = {}

        if exists(config_file):
            _log_debug("Loading configuration from '%s'", config_file)
            cfg = ConfigParser()
            try:
                cfg.read([config_file])
            except ConfigParserError as err:
                raise PkgdeltaParseError(
                    f"Could not parse configuration file '{config_file}': {err}"
                ) from err
            if cfg.has_section(_PKGDELTA_CFG_COMPARE):
                values = _read_section(cfg, config_file)

        values.update(overrides)
        return cls(**values)


def _read_section(cfg: ConfigParser, config_file: str) -> Dict[str, Any]:
    """
    Convert the ``[compare]`` section of ``cfg`` to typed option values.

    :param cfg: The parsed configuration.
    :type cfg: ``ConfigParser``
    :param config_file: The configuration file path, used in error messages.
    :type config_file: ``str``
    :returns: A dictionary of option values keyed by field name.
    :rtype: ``Dict[str, Any]``
    """
    values = {}
    section = cfg[_PKGDELTA_CFG_COMPARE]
    for opt_field in fields(CompareOptions):
        name = opt_field.name
        if not cfg.has_option(_PKGDELTA_CFG_COMPARE, name):
            continue
        try:
            if name in _SIZE_FIELDS:
                value = parse_size_with_units(section[name])
            elif opt_field.type in (bool, "bool"):
                value = section.getboolean(name)
            elif opt_field.type in (int, "int"):
                value = section.getint(name)
            elif opt_field.type in (float, "float"):
                value = section.getfloat(name)
            elif name in ("skip_patterns", "exclude_patterns"):
                value = tuple(
                    pattern.strip()
                    for pattern in section[name].split(",")
                    if pattern.strip()
                )
            else:
                value = section[name]
        except ValueError as err:
            raise PkgdeltaParseError(
                f"Invalid value for '{name}' in '{config_file}': {err}"
            ) from err
        values[name] = value
    for name in section:
        if name not in values:
            _log_warn("Ignoring unknown option '%s' in '%s'", name, config_file)
    return values


__all__ = [
    "CompareOptions",
]
