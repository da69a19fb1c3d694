# Copyright Red Hat
#
# pkgdelta/compare/formats.py - Package delta file format classification
#
# This file is part of the pkgdelta project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File format classification support.

Every file taking part in a comparison is assigned exactly one
``FormatTag``. Classification is driven by an immutable ``FormatRules``
table that is consulted in a fixed priority order: path type, exact
names, source control metadata, include directories, name patterns and
extensions, directory context, the shared object name pattern, and
finally content probes (byte signatures and ``libmagic`` descriptions).
Anything that cannot be classified resolves to ``FormatTag.OTHER``.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Pattern, Tuple
from enum import Enum
import logging
import os
import re

import magic

from pkgdelta import PKGDELTA_SUBSYSTEM_COMPARE

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_compare(msg, *args, **kwargs):
    """A wrapper for compare subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": PKGDELTA_SUBSYSTEM_COMPARE}, **kwargs)


#: Hex encoded ELF magic number.
ELF_SIGNATURE = "7f454c46"

#: Number of leading bytes read for a byte signature.
SIGNATURE_LENGTH = 4

#: Number of leading bytes inspected by the text heuristic.
_TEXT_PROBE_SIZE = 512

#: Control characters that may appear in text files.
_TEXT_CONTROL = frozenset(b"\b\t\n\f\r\x1b")

_TERM_RE = re.compile(r"[\w\-]+")
_DOUBLE_EXT_RE = re.compile(r"\.(\w+\.\w+)(\.(in|\d+)|)\Z")
_SINGLE_EXT_RE = re.compile(r"\.(\w+)(\.(in|\d+)|)\Z")
_ANY_EXT_RE = re.compile(r"\.(\w+)\Z")
_INCLUDE_DIR_RE = re.compile(r"(\A|/)(include|includes)(/|\Z)")
_SHARED_OBJECT_RE = re.compile(r"\.(so)(|\.\d[0-9\-\.\_]*)\Z", re.IGNORECASE)
_SCM_DIR_RE = re.compile(r"(\A|/)\.(svn|git|bzr|hg)(/|\Z)")
_SCM_NAME_RE = re.compile(r"\A\.(git|cvs|hg)")
_CVS_DIR_RE = re.compile(r"(\A|/)CVS(/|\Z)")
_SCM_HINT_RE = re.compile(r"svn|git|bzr|hg|cvs", re.IGNORECASE)


class FormatTag(Enum):
    """
    Enum for symbolic file format categories.
    """

    ARCHIVE = "ARCHIVE"
    AUTOMAKE = "AUTOMAKE"
    BZR = "BZR"
    C_SOURCE = "C_SOURCE"
    CHANGELOG = "CHANGELOG"
    CMAKE = "CMAKE"
    COMPILED_OBJECT = "COMPILED_OBJECT"
    CONFIG = "CONFIG"
    CVS = "CVS"
    CXX_SOURCE = "CXX_SOURCE"
    DATA = "DATA"
    DEBUG_INFO = "DEBUG_INFO"
    DESKTOP = "DESKTOP"
    DIR = "DIR"
    DOCUMENT = "DOCUMENT"
    DOXYGEN = "DOXYGEN"
    ELF_BINARY = "ELF_BINARY"
    EXE = "EXE"
    FONT = "FONT"
    GIT = "GIT"
    GNU_LD_SCRIPT = "GNU_LD_SCRIPT"
    HEADER = "HEADER"
    HG = "HG"
    HIDDEN = "HIDDEN"
    HTML = "HTML"
    IMAGE = "IMAGE"
    INFODOC = "INFODOC"
    INFORM = "INFORM"
    JAVA_CLASS = "JAVA_CLASS"
    JAVA_SOURCE = "JAVA_SOURCE"
    JSON = "JSON"
    KERNEL_MODULE = "KERNEL_MODULE"
    LICENSE = "LICENSE"
    MAKEFILE = "MAKEFILE"
    MANPAGE = "MANPAGE"
    MESSAGE_CATALOG = "MESSAGE_CATALOG"
    OTHER = "OTHER"
    PATCH = "PATCH"
    PERL = "PERL"
    PKGCONFIG = "PKGCONFIG"
    PYTHON = "PYTHON"
    README = "README"
    SCRIPT = "SCRIPT"
    SHARED_LIBRARY = "SHARED_LIBRARY"
    SHARED_OBJECT = "SHARED_OBJECT"
    STATIC_LIBRARY = "STATIC_LIBRARY"
    SVN = "SVN"
    SYMLINK = "SYMLINK"
    TEXT = "TEXT"
    TRANSLATION = "TRANSLATION"
    XML = "XML"

    def __str__(self):
        return self.value


class FormatKind(Enum):
    """
    Enum for the comparison strategy used for a format.
    """

    #: Compare file content with a textual diff.
    TEXT = "text"
    #: Compare a textual rendering produced by an external dump tool.
    DUMP = "dump"
    #: Compare sizes, or hex dumps of small files.
    BINARY = "binary"
    #: Never rated.
    NONE = "none"


@dataclass(frozen=True)
class FormatInfo:
    """
    Descriptive information for a ``FormatTag``.
    """

    #: Human readable plural summary used in reports
    summary: str
    #: Report ordering weight (heavier formats are listed first)
    weight: int
    #: Comparison strategy
    kind: FormatKind


_T = FormatTag
_K = FormatKind

# fmt: off
_FORMAT_INFO: Dict[FormatTag, FormatInfo] = {
    _T.SHARED_OBJECT: FormatInfo("Shared objects", 100, _K.DUMP),
    _T.KERNEL_MODULE: FormatInfo("Kernel modules", 95, _K.DUMP),
    _T.SHARED_LIBRARY: FormatInfo("Shared libraries", 95, _K.DUMP),
    _T.STATIC_LIBRARY: FormatInfo("Static libraries", 90, _K.DUMP),
    _T.EXE: FormatInfo("Executables", 90, _K.DUMP),
    _T.HEADER: FormatInfo("Headers", 85, _K.TEXT),
    _T.JAVA_CLASS: FormatInfo("Java classes", 80, _K.DUMP),
    _T.COMPILED_OBJECT: FormatInfo("Compiled objects", 75, _K.DUMP),
    _T.DEBUG_INFO: FormatInfo("Debug info", 70, _K.DUMP),
    _T.ELF_BINARY: FormatInfo("ELF binaries", 70, _K.BINARY),
    _T.GNU_LD_SCRIPT: FormatInfo("Linker scripts", 65, _K.TEXT),
    _T.C_SOURCE: FormatInfo("C sources", 60, _K.TEXT),
    _T.CXX_SOURCE: FormatInfo("C++ sources", 60, _K.TEXT),
    _T.JAVA_SOURCE: FormatInfo("Java sources", 60, _K.TEXT),
    _T.PYTHON: FormatInfo("Python scripts", 55, _K.TEXT),
    _T.PERL: FormatInfo("Perl scripts", 55, _K.TEXT),
    _T.SCRIPT: FormatInfo("Scripts", 55, _K.TEXT),
    _T.PKGCONFIG: FormatInfo("Pkg-config files", 50, _K.TEXT),
    _T.CONFIG: FormatInfo("Configuration files", 50, _K.TEXT),
    _T.DESKTOP: FormatInfo("Desktop entries", 45, _K.TEXT),
    _T.MAKEFILE: FormatInfo("Makefiles", 40, _K.TEXT),
    _T.AUTOMAKE: FormatInfo("Automake files", 40, _K.TEXT),
    _T.CMAKE: FormatInfo("CMake files", 40, _K.TEXT),
    _T.DOXYGEN: FormatInfo("Doxygen files", 35, _K.TEXT),
    _T.XML: FormatInfo("XML files", 35, _K.TEXT),
    _T.JSON: FormatInfo("JSON files", 35, _K.TEXT),
    _T.HTML: FormatInfo("HTML files", 30, _K.TEXT),
    _T.MANPAGE: FormatInfo("Manual pages", 30, _K.DUMP),
    _T.INFODOC: FormatInfo("Info documents", 30, _K.DUMP),
    _T.TRANSLATION: FormatInfo("Translations", 25, _K.TEXT),
    _T.MESSAGE_CATALOG: FormatInfo("Message catalogs", 25, _K.BINARY),
    _T.PATCH: FormatInfo("Patches", 25, _K.TEXT),
    _T.LICENSE: FormatInfo("Licenses", 20, _K.TEXT),
    _T.CHANGELOG: FormatInfo("Changelogs", 20, _K.TEXT),
    _T.README: FormatInfo("Readme files", 20, _K.TEXT),
    _T.INFORM: FormatInfo("Informational files", 20, _K.TEXT),
    _T.TEXT: FormatInfo("Text files", 15, _K.TEXT),
    _T.DOCUMENT: FormatInfo("Documents", 15, _K.BINARY),
    _T.IMAGE: FormatInfo("Images", 10, _K.BINARY),
    _T.FONT: FormatInfo("Fonts", 10, _K.BINARY),
    _T.ARCHIVE: FormatInfo("Archives", 10, _K.BINARY),
    _T.DATA: FormatInfo("Data files", 5, _K.BINARY),
    _T.GIT: FormatInfo("Git files", 3, _K.TEXT),
    _T.SVN: FormatInfo("Subversion files", 3, _K.BINARY),
    _T.CVS: FormatInfo("CVS files", 3, _K.TEXT),
    _T.HG: FormatInfo("Mercurial files", 3, _K.BINARY),
    _T.BZR: FormatInfo("Bazaar files", 3, _K.BINARY),
    _T.HIDDEN: FormatInfo("Hidden files", 2, _K.BINARY),
    _T.SYMLINK: FormatInfo("Symbolic links", 1, _K.DUMP),
    _T.DIR: FormatInfo("Directories", 0, _K.NONE),
    _T.OTHER: FormatInfo("Other files", 0, _K.BINARY),
}

_NAMES: Dict[str, FormatTag] = {
    "Makefile": _T.MAKEFILE,
    "GNUmakefile": _T.MAKEFILE,
    "makefile": _T.MAKEFILE,
    "Kbuild": _T.MAKEFILE,
    "CMakeLists.txt": _T.CMAKE,
    "configure": _T.SCRIPT,
    "config.guess": _T.SCRIPT,
    "config.sub": _T.SCRIPT,
    "Doxyfile": _T.DOXYGEN,
    "Kconfig": _T.CONFIG,
    "PKG-INFO": _T.INFORM,
    "METADATA": _T.INFORM,
}

_INAMES: Dict[str, FormatTag] = {
    "authors": _T.INFORM,
    "bugs": _T.INFORM,
    "contributors": _T.INFORM,
    "credits": _T.INFORM,
    "maintainers": _T.INFORM,
    "thanks": _T.INFORM,
    "notice": _T.LICENSE,
    "news": _T.CHANGELOG,
    "setup.py": _T.PYTHON,
}

# Ordered (name regex, tag, directory regex) rules: a rule with a directory
# regex only matches files inside a matching directory.
_NAME_PATTERNS: List[Tuple[str, FormatTag, Optional[str]]] = [
    (r"(?i)\A(readme)(\W|_|\Z)", _T.README, None),
    (r"(?i)(\W|_)(readme)(\.txt|)\Z", _T.README, None),
    (r"(?i)\A(license|licenses|licence|copyright|copying)(\W|_|\Z)", _T.LICENSE, None),
    (r"(?i)\.(license|licence)\Z", _T.LICENSE, None),
    (r"(?i)\A(gpl|lgpl|bsd|qpl|artistic)(\W|_|)(v|)([\d\.]+|)(\.txt|)\Z", _T.LICENSE, None),
    (r"(?i)\A(changelog|changes|relnotes)(\W|\Z)", _T.CHANGELOG, None),
    (r"\A(NEWS)(\W|\Z)", _T.CHANGELOG, None),
    (r"\A(INSTALL|TODO)(\.|\-|\Z)", _T.INFORM, None),
    (r"\A[A-Z\-_]+(\.txt|\.TXT|\Z)", _T.INFORM, None),
    (r"\A[A-Z_]+\.[A-Z_]+\Z", _T.INFORM, None),
    # Compressed manual and info pages must win over archive extensions.
    (r"(?i)\.(gz|xz|lzma|bz2)\Z", _T.MANPAGE, r"/(man\d*|manpages)(/|\Z)"),
    (r"(?i)\.info(|\-\d+)\.(gz|xz|lzma|bz2)\Z", _T.INFODOC, r"/(info|share|doc|docs)(/|\Z)"),
    (r"(?i)\ADoxyfile(\W|\Z)", _T.DOXYGEN, None),
    (r"(?i)(make|conf)[^\.]*(\.in)+\Z", _T.AUTOMAKE, None),
    (r"(?i)\.(am|ac|m4)\Z", _T.AUTOMAKE, None),
    (r"(?i)\A(g|)(makefile)(\.|\Z)", _T.MAKEFILE, None),
    (r"(?i)\.(mk|mak)\Z", _T.MAKEFILE, None),
    (r"(?i)\A(CMakeLists.*\.txt)\Z", _T.CMAKE, None),
    (r"(?i)\.cmake\Z", _T.CMAKE, None),
]

# Directory context rules, consulted after names and extensions.
_DIR_CONTEXT: List[Tuple[str, FormatTag, Optional[str]]] = [
    (r"\.(\d+)\Z", _T.MANPAGE, r"/(man\d*|manpages)(/|\Z)"),
    (r"\.(\d+)\Z", _T.MANPAGE, r"/(doc|docs|src|libs|utils)(/|\Z)"),
    (r"\.(man)\Z", _T.MANPAGE, None),
    (r"(?i)\.info(|\-\d+)\Z", _T.INFODOC, r"/(info|share|doc|docs)(/|\Z)"),
]

_EXTENSIONS: Dict[str, FormatTag] = {
    "C": _T.CXX_SOURCE,
    "H": _T.HEADER,
}

_IEXTENSIONS: Dict[str, FormatTag] = {
    # Sources and headers
    "c": _T.C_SOURCE,
    "cc": _T.CXX_SOURCE, "cpp": _T.CXX_SOURCE, "cxx": _T.CXX_SOURCE,
    "h": _T.HEADER, "hh": _T.HEADER, "hpp": _T.HEADER, "hxx": _T.HEADER,
    "inl": _T.HEADER, "tcc": _T.HEADER,
    "java": _T.JAVA_SOURCE,
    "py": _T.PYTHON, "pyw": _T.PYTHON,
    "pl": _T.PERL, "pm": _T.PERL, "pod": _T.PERL,
    "sh": _T.SCRIPT, "bash": _T.SCRIPT, "zsh": _T.SCRIPT, "ksh": _T.SCRIPT,
    "csh": _T.SCRIPT, "rb": _T.SCRIPT, "lua": _T.SCRIPT, "tcl": _T.SCRIPT,
    "js": _T.SCRIPT,
    # Markup and configuration
    "html": _T.HTML, "htm": _T.HTML, "xhtml": _T.HTML, "css": _T.HTML,
    "xml": _T.XML, "xsd": _T.XML, "xsl": _T.XML, "xslt": _T.XML, "ui": _T.XML,
    "json": _T.JSON,
    "conf": _T.CONFIG, "cfg": _T.CONFIG, "cnf": _T.CONFIG, "ini": _T.CONFIG,
    "yaml": _T.CONFIG, "yml": _T.CONFIG, "toml": _T.CONFIG,
    "properties": _T.CONFIG, "service": _T.CONFIG,
    "pc": _T.PKGCONFIG,
    "desktop": _T.DESKTOP,
    "txt": _T.TEXT, "text": _T.TEXT, "md": _T.TEXT, "rst": _T.TEXT,
    "adoc": _T.TEXT, "la": _T.TEXT,
    "patch": _T.PATCH, "diff": _T.PATCH,
    "po": _T.TRANSLATION, "pot": _T.TRANSLATION,
    "mo": _T.MESSAGE_CATALOG, "gmo": _T.MESSAGE_CATALOG, "qm": _T.MESSAGE_CATALOG,
    # Objects and binaries
    "a": _T.STATIC_LIBRARY, "lib": _T.STATIC_LIBRARY,
    "o": _T.COMPILED_OBJECT, "obj": _T.COMPILED_OBJECT, "lo": _T.COMPILED_OBJECT,
    "ko": _T.KERNEL_MODULE,
    "debug": _T.DEBUG_INFO,
    "dylib": _T.SHARED_LIBRARY,
    "class": _T.JAVA_CLASS,
    "exe": _T.EXE, "dll": _T.EXE,
    # Documents, media and data
    "pdf": _T.DOCUMENT, "ps": _T.DOCUMENT, "eps": _T.DOCUMENT, "dvi": _T.DOCUMENT,
    "doc": _T.DOCUMENT, "docx": _T.DOCUMENT, "odt": _T.DOCUMENT,
    "png": _T.IMAGE, "jpg": _T.IMAGE, "jpeg": _T.IMAGE, "gif": _T.IMAGE,
    "bmp": _T.IMAGE, "ico": _T.IMAGE, "svg": _T.IMAGE, "xpm": _T.IMAGE,
    "tif": _T.IMAGE, "tiff": _T.IMAGE, "webp": _T.IMAGE,
    "ttf": _T.FONT, "otf": _T.FONT, "pfa": _T.FONT, "pfb": _T.FONT,
    "pcf": _T.FONT, "woff": _T.FONT, "woff2": _T.FONT,
    "bin": _T.DATA, "dat": _T.DATA, "db": _T.DATA, "sqlite": _T.DATA,
    # Archives
    "tar.gz": _T.ARCHIVE, "tar.z": _T.ARCHIVE, "tar.xz": _T.ARCHIVE,
    "tar.bz2": _T.ARCHIVE, "tar.lzma": _T.ARCHIVE, "tar.lz": _T.ARCHIVE,
    "tar.zst": _T.ARCHIVE,
    "tgz": _T.ARCHIVE, "taz": _T.ARCHIVE, "txz": _T.ARCHIVE, "tbz2": _T.ARCHIVE,
    "tbz": _T.ARCHIVE, "tb2": _T.ARCHIVE, "tlzma": _T.ARCHIVE, "tlz": _T.ARCHIVE,
    "zip": _T.ARCHIVE, "zae": _T.ARCHIVE, "tar": _T.ARCHIVE, "lzma": _T.ARCHIVE,
    "gz": _T.ARCHIVE, "xz": _T.ARCHIVE, "bz2": _T.ARCHIVE, "zst": _T.ARCHIVE,
    "7z": _T.ARCHIVE, "rar": _T.ARCHIVE, "cpio": _T.ARCHIVE,
    "rpm": _T.ARCHIVE, "deb": _T.ARCHIVE,
    "jar": _T.ARCHIVE, "war": _T.ARCHIVE, "ear": _T.ARCHIVE, "aar": _T.ARCHIVE,
    "apk": _T.ARCHIVE,
}

_DIRS: Dict[str, FormatTag] = {
    "include": _T.HEADER,
    "includes": _T.HEADER,
    "pkgconfig": _T.PKGCONFIG,
    "applications": _T.DESKTOP,
    "LC_MESSAGES": _T.MESSAGE_CATALOG,
    "icons": _T.IMAGE,
    "pixmaps": _T.IMAGE,
    "fonts": _T.FONT,
    "etc": _T.CONFIG,
    "share/licenses": _T.LICENSE,
    "share/man": _T.MANPAGE,
}

_SIGNATURES: Dict[str, FormatTag] = {
    ELF_SIGNATURE: _T.ELF_BINARY,
    "cafebabe": _T.JAVA_CLASS,
    "213c6172": _T.STATIC_LIBRARY,
    "89504e47": _T.IMAGE,
    "47494638": _T.IMAGE,
    "ffd8ffe0": _T.IMAGE,
    "ffd8ffe1": _T.IMAGE,
    "ffd8ffdb": _T.IMAGE,
    "00000100": _T.IMAGE,
    "25504446": _T.DOCUMENT,
    "504b0304": _T.ARCHIVE,
    "1f8b0800": _T.ARCHIVE,
    "1f8b0808": _T.ARCHIVE,
    "425a6839": _T.ARCHIVE,
    "fd377a58": _T.ARCHIVE,
    "28b52ffd": _T.ARCHIVE,
    "edabeedb": _T.ARCHIVE,
    "de120495": _T.MESSAGE_CATALOG,
    "950412de": _T.MESSAGE_CATALOG,
    "00010000": _T.FONT,
    "4f54544f": _T.FONT,
}

_TERMS: Dict[str, FormatTag] = {
    "SHARED_OBJECT": _T.SHARED_OBJECT,
    "RELOCATABLE": _T.COMPILED_OBJECT,
    "CURRENT_AR": _T.STATIC_LIBRARY,
    "AR_ARCHIVE": _T.STATIC_LIBRARY,
    "COMPILED_JAVA": _T.JAVA_CLASS,
    "POSIX_SHELL": _T.SCRIPT,
    "SHELL_SCRIPT": _T.SCRIPT,
    "BOURNE-AGAIN_SHELL": _T.SCRIPT,
    "TROFF": _T.MANPAGE,
    "SVG": _T.IMAGE,
    "PNG_IMAGE": _T.IMAGE,
    "GZIP": _T.ARCHIVE,
    "BZIP2": _T.ARCHIVE,
    "XZ": _T.ARCHIVE,
    "ZSTANDARD": _T.ARCHIVE,
    "POSIX_TAR": _T.ARCHIVE,
    "RPM": _T.ARCHIVE,
    "DEBIAN_BINARY": _T.ARCHIVE,
    "GNU_MESSAGE": _T.MESSAGE_CATALOG,
    "TRUETYPE": _T.FONT,
    "OPENTYPE": _T.FONT,
    "PDF": _T.DOCUMENT,
    "POSTSCRIPT": _T.DOCUMENT,
    "PKGCONFIG": _T.PKGCONFIG,
}
# fmt: on


@dataclass(frozen=True)
class FormatRules:
    """
    Immutable classification tables consulted by ``FormatClassifier``.

    Mappings are read-only views; ordered pattern rules are tuples of
    ``(compiled name regex, tag, compiled directory regex or None)``.
    """

    #: Exact file names (case sensitive)
    names: Mapping[str, FormatTag]
    #: Exact file names (lower case keys, case insensitive)
    inames: Mapping[str, FormatTag]
    #: Ordered name pattern rules
    name_patterns: Tuple[Tuple[Pattern, FormatTag, Optional[Pattern]], ...]
    #: Ordered directory context rules
    dir_context: Tuple[Tuple[Pattern, FormatTag, Optional[Pattern]], ...]
    #: Extensions (case sensitive)
    extensions: Mapping[str, FormatTag]
    #: Extensions (lower case keys, case insensitive)
    iextensions: Mapping[str, FormatTag]
    #: Directory components and sub-paths
    dirs: Mapping[str, FormatTag]
    #: Hex encoded leading bytes
    signatures: Mapping[str, FormatTag]
    #: Terms from content descriptions
    terms: Mapping[str, FormatTag]
    #: Descriptive information for each known format
    info: Mapping[FormatTag, FormatInfo]

    def get_info(self, tag: FormatTag) -> FormatInfo:
        """
        Return the ``FormatInfo`` for ``tag``, or that of ``OTHER`` if
        ``tag`` is unknown to this table.
        """
        return self.info.get(tag, self.info[FormatTag.OTHER])


def _compile_rules(
    rules: List[Tuple[str, FormatTag, Optional[str]]],
) -> Tuple[Tuple[Pattern, FormatTag, Optional[Pattern]], ...]:
    return tuple(
        (re.compile(name_re), tag, re.compile(dir_re) if dir_re else None)
        for name_re, tag, dir_re in rules
    )


def default_format_rules() -> FormatRules:
    """
    Build the default classification tables.

    :returns: A new immutable ``FormatRules`` instance.
    :rtype: ``FormatRules``
    """
    return FormatRules(
        names=MappingProxyType(dict(_NAMES)),
        inames=MappingProxyType(dict(_INAMES)),
        name_patterns=_compile_rules(_NAME_PATTERNS),
        dir_context=_compile_rules(_DIR_CONTEXT),
        extensions=MappingProxyType(dict(_EXTENSIONS)),
        iextensions=MappingProxyType(dict(_IEXTENSIONS)),
        dirs=MappingProxyType(dict(_DIRS)),
        signatures=MappingProxyType(dict(_SIGNATURES)),
        terms=MappingProxyType(dict(_TERMS)),
        info=MappingProxyType(dict(_FORMAT_INFO)),
    )


#: Shared default rules: immutable, so safe to use from any run.
DEFAULT_FORMAT_RULES = default_format_rules()


def split_logical_path(path: str) -> Tuple[str, str]:
    """
    Split a logical path into its directory and file name.

    :param path: A '/' separated logical path.
    :type path: ``str``
    :returns: A ``(directory, name)`` tuple.
    :rtype: ``Tuple[str, str]``
    """
    if "/" not in path:
        return ("", path)
    directory, name = path.rsplit("/", 1)
    return (directory, name)


def get_terms(description: str) -> List[str]:
    """
    Split a content description into upper case terms.

    Each word contributes a unigram and, after the first word, a bigram
    joining it to the previous word. Terms are ordered by their last
    occurrence in the description.

    :param description: A free text type description.
    :type description: ``str``
    :returns: A list of terms such as ``["ELF", "ELF_64-BIT", "64-BIT"]``.
    :rtype: ``List[str]``
    """
    terms: Dict[str, int] = {}
    prev = ""
    num = 0
    for match in _TERM_RE.finditer(description):
        word = match.group(0)
        if prev:
            terms.pop(f"{prev}_{word}".upper(), None)
            terms[f"{prev}_{word}".upper()] = num
            num += 1
        terms.pop(word.upper(), None)
        terms[word.upper()] = num
        num += 1
        prev = word
    return sorted(terms, key=terms.get)


class ContentProbe:
    """
    Read-only content inspection used as a classification fallback.

    Descriptions come from ``libmagic`` via the ``magic`` module from
    python3-file-magic. Results are memoised per physical path.
    """

    def __init__(self, use_magic: bool = True):
        """
        Initialise a new ``ContentProbe``.

        :param use_magic: Describe content using ``libmagic``.
        :type use_magic: ``bool``
        """
        self.use_magic = use_magic
        self._descriptions: Dict[str, str] = {}
        self._signatures: Dict[str, str] = {}
        self._heads: Dict[str, bytes] = {}

    def describe(self, path: str) -> str:
        """
        Return a free text description of the content at ``path``.

        :param path: The physical path to describe.
        :type path: ``str``
        :returns: The ``libmagic`` description, or the empty string if
                  content description is disabled or fails.
        :rtype: ``str``
        """
        if not self.use_magic:
            return ""
        if path in self._descriptions:
            return self._descriptions[path]

        # c9s magic does not have magic.error
        if hasattr(magic, "error"):
            magic_errors = (magic.error, OSError, ValueError)
        else:
            magic_errors = (OSError, ValueError)

        try:
            description = magic.detect_from_filename(path).name or ""
        except magic_errors as err:
            _log_warn("Error detecting file type for %s: %s", path, err)
            description = ""

        self._descriptions[path] = description
        return description

    def _head(self, path: str) -> bytes:
        if path not in self._heads:
            try:
                with open(path, "rb") as fp:
                    self._heads[path] = fp.read(_TEXT_PROBE_SIZE)
            except OSError as err:
                _log_debug_compare("Could not read %s: %s", path, err)
                self._heads[path] = b""
        return self._heads[path]

    def signature(self, path: str) -> str:
        """
        Return the first four bytes of ``path`` encoded as hex.

        :param path: The physical path to read.
        :type path: ``str``
        :returns: A hex string, or the empty string if the file cannot be
                  read or is shorter than four bytes.
        :rtype: ``str``
        """
        if path not in self._signatures:
            head = self._head(path)
            sig = head[:SIGNATURE_LENGTH].hex() if len(head) >= SIGNATURE_LENGTH else ""
            self._signatures[path] = sig
        return self._signatures[path]

    def first_line(self, path: str) -> str:
        """
        Return the first line of ``path`` decoded leniently.
        """
        return self._head(path).split(b"\n", 1)[0].decode("utf8", errors="replace")

    def is_text(self, path: str) -> bool:
        """
        Guess whether ``path`` holds text by inspecting its first block.

        A block holding a NUL byte, or in which more than 30% of bytes are
        control characters, is not text. An empty file is text.

        :param path: The physical path to inspect.
        :type path: ``str``
        :rtype: ``bool``
        """
        head = self._head(path)
        if not head:
            return True
        if b"\0" in head:
            return False
        odd = sum(1 for byte in head if byte < 32 and byte not in _TEXT_CONTROL)
        return odd * 10 <= len(head) * 3


class FormatClassifier:
    """
    Assign a ``FormatTag`` to each file.

    Results are memoised for the lifetime of the classifier, which is
    owned by a single comparison run.
    """

    def __init__(
        self,
        rules: Optional[FormatRules] = None,
        probe: Optional[ContentProbe] = None,
        all_text: bool = False,
    ):
        """
        Initialise a new ``FormatClassifier``.

        :param rules: The classification tables to use.
        :type rules: ``Optional[FormatRules]``
        :param probe: The content probe used for fallbacks.
        :type probe: ``Optional[ContentProbe]``
        :param all_text: Treat files of unknown format as text.
        :type all_text: ``bool``
        """
        self.rules = rules or DEFAULT_FORMAT_RULES
        self.probe = probe or ContentProbe()
        self.all_text = all_text
        self._cache: Dict[Tuple[str, Optional[str]], FormatTag] = {}

    # pylint: disable=too-many-return-statements
    def _classify_name(self, directory: str, name: str) -> FormatTag:
        """
        Classify by file name and directory alone.
        """
        rules = self.rules
        if name in rules.names:
            return rules.names[name]
        if name.lower() in rules.inames:
            return rules.inames[name.lower()]

        if _SCM_HINT_RE.search(f"{directory}/{name}"):
            scm = self._scm_tag(directory, name)
            if scm is not None:
                return scm

        if not _ANY_EXT_RE.search(name) and _INCLUDE_DIR_RE.search(directory):
            return FormatTag.HEADER

        for name_re, tag, dir_re in rules.name_patterns:
            if name_re.search(name) and (dir_re is None or dir_re.search(directory)):
                return tag

        for ext_re in (_DOUBLE_EXT_RE, _SINGLE_EXT_RE):
            match = ext_re.search(name)
            if not match:
                continue
            ext = match.group(1)
            if ext in rules.extensions:
                return rules.extensions[ext]
            if ext.lower() in rules.iextensions:
                return rules.iextensions[ext.lower()]

        for name_re, tag, dir_re in rules.dir_context:
            if name_re.search(name) and (dir_re is None or dir_re.search(directory)):
                return tag
        if (
            re.search(r"(?i)[a-z]{3,}\.(\d+)\Z", name)
            and not re.search(r"(?i)\.(tar|gz|xz|bz2|lzma|zip)\.", name)
            and not re.search(r"(?i)log", directory)
        ):
            return FormatTag.MANPAGE

        if _SHARED_OBJECT_RE.search(name):
            return FormatTag.SHARED_OBJECT

        if name.startswith("."):
            return FormatTag.HIDDEN

        return FormatTag.OTHER

    @staticmethod
    def _scm_tag(directory: str, name: str) -> Optional[FormatTag]:
        match = _SCM_DIR_RE.search(directory)
        if match:
            return FormatTag(match.group(2).upper())
        match = _SCM_NAME_RE.search(name)
        if match:
            return FormatTag(match.group(1).upper())
        if _CVS_DIR_RE.search(directory):
            return FormatTag.CVS
        return None

    def _classify_by_dir(self, directory: str) -> Optional[FormatTag]:
        dirs = self.rules.dirs
        for component in reversed(directory.split("/")):
            if component in dirs:
                return dirs[component]
        for sub_path in sorted(dirs):
            if "/" not in sub_path:
                continue
            if re.search(rf"(\A|/){re.escape(sub_path)}(/|\Z)", directory):
                return dirs[sub_path]
        return None

    def _classify_by_content(self, name: str, physical: str) -> FormatTag:
        rules = self.rules
        tag = FormatTag.OTHER

        sig = self.probe.signature(physical)
        if sig in rules.signatures:
            tag = rules.signatures[sig]
        if sig == ELF_SIGNATURE and not _ANY_EXT_RE.search(name):
            tag = FormatTag.EXE
        if tag != FormatTag.OTHER:
            return tag

        description = self.probe.describe(physical)
        if not description:
            return tag

        known = {t.value for t in rules.info}
        for term in get_terms(description):
            if term in ("TEXT", "DATA", "OTHER"):
                continue
            if term in known:
                return FormatTag(term)
            if term in rules.terms:
                return rules.terms[term]

        if re.search(r"(?i)compressed|Zip archive", description):
            return FormatTag.ARCHIVE
        if re.search(r"(?i)data", description):
            return FormatTag.DATA
        if re.search(r"(?i)text", description):
            return FormatTag.TEXT
        if re.search(r"(?i)executable", description):
            return FormatTag.EXE
        if re.search(r"\AELF\s", description):
            return FormatTag.ELF_BINARY
        return tag

    def _check_elf(self, tag: FormatTag, physical: str) -> FormatTag:
        """
        Verify formats that must be ELF objects against the file content.
        """
        if tag == FormatTag.SHARED_OBJECT:
            description = self.probe.describe(physical)
            if description:
                is_ascii = "ascii" in description.lower()
            else:
                sig = self.probe.signature(physical)
                is_ascii = bool(sig) and sig != ELF_SIGNATURE
                is_ascii = is_ascii and self.probe.is_text(physical)
            if is_ascii:
                if re.search(r"(?i)GNU ld script", self.probe.first_line(physical)):
                    return FormatTag.GNU_LD_SCRIPT
                return FormatTag.TEXT

        if tag in (
            FormatTag.SHARED_OBJECT,
            FormatTag.KERNEL_MODULE,
            FormatTag.DEBUG_INFO,
        ):
            sig = self.probe.signature(physical)
            if sig and sig != ELF_SIGNATURE:
                return FormatTag.OTHER
        return tag

    def classify(
        self,
        logical_path: str,
        physical_path: Optional[str] = None,
        is_dir: Optional[bool] = None,
        is_symlink: Optional[bool] = None,
    ) -> FormatTag:
        """
        Return the ``FormatTag`` for a file.

        Path type is taken from ``is_dir`` and ``is_symlink`` when given,
        otherwise from ``lstat()`` of ``physical_path``. Content is only
        read for files whose name does not determine the format, and
        never for directories or symbolic links.

        :param logical_path: The version independent path of the file.
        :type logical_path: ``str``
        :param physical_path: The location of the file content, if any.
        :type physical_path: ``Optional[str]``
        :param is_dir: The file is a directory.
        :type is_dir: ``Optional[bool]``
        :param is_symlink: The file is a symbolic link.
        :type is_symlink: ``Optional[bool]``
        :returns: The format of the file.
        :rtype: ``FormatTag``
        """
        key = (logical_path, physical_path)
        if key in self._cache:
            return self._cache[key]

        if physical_path is not None:
            if is_symlink is None:
                is_symlink = os.path.islink(physical_path)
            if is_dir is None:
                is_dir = not is_symlink and os.path.isdir(physical_path)

        directory, name = split_logical_path(logical_path)
        name = re.sub(r"~+\Z", "", name)

        if is_symlink:
            tag = FormatTag.SYMLINK
        elif is_dir:
            tag = FormatTag.DIR
        else:
            tag = self._classify_name(directory, name)

            if tag in (
                FormatTag.OTHER,
                FormatTag.INFORM,
                FormatTag.DATA,
                FormatTag.TEXT,
            ):
                tag = self._classify_by_dir(directory) or tag

            if physical_path is not None:
                if tag == FormatTag.OTHER:
                    tag = self._classify_by_content(name, physical_path)
                tag = self._check_elf(tag, physical_path)

        if tag not in self.rules.info:
            tag = FormatTag.OTHER
        if self.all_text and tag == FormatTag.OTHER:
            tag = FormatTag.TEXT

        _log_debug_compare("Classified %s as %s", logical_path, tag)
        self._cache[key] = tag
        return tag

    def get_info(self, tag: FormatTag) -> FormatInfo:
        """
        Return the ``FormatInfo`` for ``tag``.
        """
        return self.rules.get_info(tag)


__all__ = [
    "ContentProbe",
    "DEFAULT_FORMAT_RULES",
    "ELF_SIGNATURE",
    "FormatClassifier",
    "FormatInfo",
    "FormatKind",
    "FormatRules",
    "FormatTag",
    "default_format_rules",
    "get_terms",
    "split_logical_path",
]
