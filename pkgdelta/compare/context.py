# Copyright Red Hat
#
# pkgdelta/compare/context.py - Package delta per-run comparison context
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Per-run comparison state.
"""
from typing import Dict, Optional, Tuple
import logging

from .formats import (
    DEFAULT_FORMAT_RULES,
    ContentProbe,
    FormatClassifier,
    FormatRules,
)
from .options import CompareOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug


class RunContext:
    """
    State shared by the components of a single comparison run.

    Holds the options, the immutable classification rules and every
    memoisation cache used while comparing one pair of versions. Nothing
    here is global: concurrent runs each own their own ``RunContext``.
    """

    def __init__(
        self,
        options: Optional[CompareOptions] = None,
        rules: Optional[FormatRules] = None,
    ):
        """
        Initialise a new ``RunContext``.

        :param options: Comparison options, defaults if unset.
        :type options: ``Optional[CompareOptions]``
        :param rules: Classification tables, the defaults if unset.
        :type rules: ``Optional[FormatRules]``
        """
        self.options: CompareOptions = options or CompareOptions()
        self.rules: FormatRules = rules or DEFAULT_FORMAT_RULES
        self.probe = ContentProbe(use_magic=self.options.use_magic)
        self.classifier = FormatClassifier(
            rules=self.rules, probe=self.probe, all_text=self.options.all_text
        )
        #: Memoised affix lengths keyed by name pair.
        self.affix_cache: Dict[Tuple[str, str], int] = {}
        _log_debug("Initialised comparison context with options: %s", repr(self.options))


__all__ = [
    "RunContext",
]
