#!/usr/bin/env python3
"""
code2clipboard - Copy a project's source files to the clipboard for LLMs

Scans a directory tree, keeps the text files that pass the configured
filters, and assembles them into a single Markdown document with a project
summary, a directory tree and one metadata block per file.

Architecture:
    CLI Args / Env → ScanConfig → PatternMatcher + FileClassifier →
    DirectoryWalker → ContentFormatter → ReportAssembler → OutputWriter
"""

from __future__ import annotations

import argparse
import codecs
import logging
import mimetypes
import os
import re
import sys
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, auto
from pathlib import Path
from typing import (
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import gitignore_parser
import pathspec
import pyperclip
from colorama import Fore, Style, just_fix_windows_console


# =============================================================================
# VERSION MANAGEMENT
# =============================================================================

__version__ = "1.0.0"


def get_version() -> str:
    """Get version from package metadata or fallback to hardcoded."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("code2clipboard")
    except PackageNotFoundError:
        return __version__


# =============================================================================
# CONSTANTS
# =============================================================================

class Defaults:
    """Default configuration values."""
    MAX_DEPTH = 5
    MAX_FILE_SIZE_KB = 100
    MAX_FILES = 100
    WORKERS = 4
    BINARY_SAMPLE_BYTES = 8192
    OMITTED_DISPLAY_LIMIT = 20


DEFAULT_IGNORE: Tuple[str, ...] = (
    "node_modules", ".git", "dist", "build",
    "package-lock.json", "yarn.lock",
    ".idea", ".vscode", ".DS_Store",
    "out", "bin", "obj", ".cache", "cache", "tmp", "temp", "logs", "*.log",
    ".env", ".env.local", ".env.development", ".env.production",
    "*.config.js", "*.config.json",
    "secret", "*.pem", "*.key",
    "__tests__", "__mocks__", "*.spec.js", "*.test.js",
    "bower_components",
    "*.tar.gz", "*.zip", "*.rar",
    "Thumbs.db", "ehthumbs.db", "Desktop.ini",
    ".aws-sam", "samconfig.toml",
    "coverage", "venv", ".venv", "__pycache__",
    ".npm", ".yarn", ".history",
    "*.out", "*.err", "*.dmp", "*.bak",
    ".temp", ".tmp", ".sass-cache",
)

CODE_BLOCK_TYPES: Dict[str, str] = {
    # Web
    "html": "html", "htm": "html", "xml": "xml",
    "css": "css", "scss": "scss", "sass": "sass", "less": "less",
    "js": "javascript", "mjs": "javascript", "cjs": "javascript",
    "jsx": "jsx", "ts": "typescript", "tsx": "tsx",
    "json": "json", "md": "markdown", "markdown": "markdown",
    # Server-side languages
    "php": "php", "py": "python", "rb": "ruby", "java": "java",
    "c": "c", "h": "c", "cpp": "cpp", "hpp": "cpp", "cs": "csharp",
    "go": "go", "rs": "rust", "swift": "swift", "kt": "kotlin",
    "scala": "scala", "lua": "lua", "dart": "dart", "groovy": "groovy",
    # Shell
    "sh": "bash", "bash": "bash", "zsh": "bash", "fish": "fish",
    "bat": "batch", "cmd": "batch", "ps1": "powershell",
    # Configuration
    "yml": "yaml", "yaml": "yaml", "toml": "toml", "ini": "ini",
    "cfg": "ini", "conf": "ini", "env": "dotenv", "dockerfile": "dockerfile",
    # Database
    "sql": "sql",
    # Other
    "graphql": "graphql", "gql": "graphql",
    "diff": "diff", "patch": "diff",
    "txt": "plaintext",
}

CONTENT_TYPES: Dict[str, str] = {
    "ts": "application/typescript", "tsx": "application/typescript",
    "js": "application/javascript", "jsx": "application/javascript",
    "mjs": "application/javascript",
    "html": "text/html", "htm": "text/html", "css": "text/css",
    "scss": "text/x-scss", "sass": "text/x-scss", "less": "text/x-less",
    "json": "application/json",
    "yaml": "application/x-yaml", "yml": "application/x-yaml",
    "xml": "application/xml",
    "md": "text/markdown", "markdown": "text/markdown",
    "sh": "application/x-sh", "bash": "application/x-sh",
    "zsh": "application/x-sh", "fish": "application/x-sh",
    "toml": "application/toml", "ini": "text/x-ini", "env": "text/plain",
    "py": "text/x-python", "rb": "text/x-ruby",
    "php": "application/x-httpd-php", "java": "text/x-java-source",
    "c": "text/x-c", "cpp": "text/x-c", "h": "text/x-c", "hpp": "text/x-c",
    "cs": "text/x-csharp", "go": "text/x-go", "rs": "text/x-rust",
    "swift": "text/x-swift",
}

# Tree display glyphs
GLYPH_CHILD = "├── "
GLYPH_LAST = "└── "
GLYPH_PIPE = "│   "
GLYPH_SPACE = "    "

CODE_FENCE = "`" * 10
RULE_SEPARATOR = "---"
EXCESS_LINE_BREAKS = re.compile(r"\n\s*\n\s*\n")


# =============================================================================
# ERRORS
# =============================================================================

class Code2ClipboardError(Exception):
    """Base exception for code2clipboard errors."""


class ConfigurationError(Code2ClipboardError):
    """Raised when an option value is invalid."""


class ScanRootError(Code2ClipboardError):
    """Raised when the scan root cannot be read."""


# =============================================================================
# ENUMS AND DATA MODELS
# =============================================================================

class EntryKind(Enum):
    """Kind of a discovered filesystem entry."""
    FILE = auto()
    DIRECTORY = auto()


class SkipReason(Enum):
    """Why an entry was left out of the report. Values are display labels."""
    IGNORED_FILE = "Ignored"
    IGNORED_DIRECTORY = "Ignored Directory"
    NOT_ALLOWED = "Not allowed (size or binary)"
    EXCEEDED_MAX_FILES = "Exceeded max files limit"
    UNREADABLE = "Unreadable"


@dataclass(frozen=True)
class ScanConfig:
    """Immutable scan configuration."""
    root_dir: Path
    max_depth: int = Defaults.MAX_DEPTH
    max_file_size: int = Defaults.MAX_FILE_SIZE_KB * 1024
    max_files: int = Defaults.MAX_FILES

    # Pattern sets
    extensions: FrozenSet[str] = frozenset()
    ignore_patterns: Tuple[str, ...] = DEFAULT_IGNORE
    extensions_ignore: Tuple[str, ...] = ()

    # Presentation
    omit_tree: bool = False
    project_description: str = ""
    use_markdown_delimiter: bool = True

    # Behavior flags
    use_gitignore: bool = False
    output_to_console: bool = False
    copy_to_clipboard: bool = True
    output_file: Optional[Path] = None
    workers: int = Defaults.WORKERS

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ConfigurationError(f"max depth must be >= 0, got {self.max_depth}")
        if self.max_files < 1:
            raise ConfigurationError(f"max files must be >= 1, got {self.max_files}")
        if self.max_file_size < 0:
            raise ConfigurationError(f"max file size must be >= 0, got {self.max_file_size}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")


@dataclass(frozen=True)
class ScanEntry:
    """A filesystem entry discovered during the walk."""
    absolute_path: Path
    relative_path: str
    kind: EntryKind


@dataclass(frozen=True)
class Candidate:
    """A file about to be classified, with its stat data already read."""
    absolute_path: Path
    relative_path: str
    size_bytes: int
    modified: float

    @property
    def extension(self) -> str:
        return file_extension(self.relative_path)


@dataclass(frozen=True)
class SelectedFile:
    """A file that passed classification."""
    absolute_path: Path
    relative_path: str
    size_bytes: int
    last_modified: str
    extension: str


@dataclass(frozen=True)
class SkipRecord:
    """An entry left out of the report, and why."""
    relative_path: str
    reason: SkipReason


@dataclass(frozen=True)
class FormattedBlock:
    """Header and body for one selected file."""
    relative_path: str
    header_text: str
    body_text: str
    size_bytes: int

    @property
    def text(self) -> str:
        return f"{self.header_text}\n{self.body_text}\n{RULE_SEPARATOR}\n"


@dataclass(frozen=True)
class TreeLeaf:
    """Terminal node of the rendered tree."""


@dataclass
class TreeDirectory:
    """Inner node of the rendered tree; children keep insertion order."""
    children: Dict[str, Union[TreeLeaf, "TreeDirectory"]] = field(default_factory=dict)


TreeNode = Union[TreeLeaf, TreeDirectory]


@dataclass
class WalkResult:
    """Everything the walker learned about the tree."""
    files: List[SelectedFile]
    skipped: List[SkipRecord]
    ignored_files: int = 0
    ignored_directories: int = 0
    total_matched: int = 0
    extension_counts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Classification:
    """Outcome of running the filter rules over a candidate."""
    eligible: bool
    detail: str = ""


def file_extension(path: Union[str, Path]) -> str:
    """Extension without the dot; dotfiles like ``.env`` have none."""
    return Path(path).suffix[1:]


def format_kb(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.2f}"


# =============================================================================
# LOOKUP TABLES
# =============================================================================

def get_content_type(extension: str) -> str:
    """Content type for an extension, falling back to mimetypes then text/plain."""
    ext = extension.lower()
    if ext in CONTENT_TYPES:
        return CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f"file.{ext}") if ext else (None, None)
    return guessed or "text/plain"


def get_code_block_type(extension: str) -> str:
    """Markdown code block language for an extension."""
    return CODE_BLOCK_TYPES.get(extension.lower(), "plaintext")


# =============================================================================
# PATTERN MATCHING
# =============================================================================

def _is_directory_pattern(pattern: str) -> bool:
    return pattern.endswith("/") or ("." not in pattern and not pattern.startswith("*"))


def expand_ignore_patterns(
    patterns: Iterable[str],
    extensions_ignore: Iterable[str] = (),
    allowed_extensions: Iterable[str] = (),
) -> List[str]:
    """Expand raw ignore patterns into globs that apply at any depth.

    Directory names become ``**/<name>/**`` plus ``**/<name>``; everything else
    becomes ``**/<pattern>``. Each ignored extension is added as ``*.<ext>``
    before expansion. Expanded ``**/*.<ext>`` rules are dropped when ``<ext>``
    is in ``allowed_extensions``, since explicit inclusion wins.
    """
    raw = [p for p in patterns if p]
    for ext in extensions_ignore:
        if not ext:
            continue
        raw.append(f"*.{ext[1:] if ext.startswith('.') else ext}")

    expanded: List[str] = []
    for pattern in raw:
        if _is_directory_pattern(pattern):
            name = pattern.rstrip("/")
            expanded.extend([f"**/{name}/**", f"**/{name}"])
        else:
            expanded.append(f"**/{pattern}")

    allowed = set(allowed_extensions)
    if not allowed:
        return expanded

    kept = []
    for pattern in expanded:
        if pattern.startswith("**/*.") and pattern[len("**/*."):] in allowed:
            logging.info(
                f"Excluding '{pattern}' from ignore list as "
                f"'{pattern[len('**/*.'):]}' is explicitly included."
            )
            continue
        kept.append(pattern)
    return kept


def load_gitignore(root: Path) -> Optional[Callable[[Path], bool]]:
    """Load .gitignore matcher for the scan root, if there is one."""
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return None
    try:
        return gitignore_parser.parse_gitignore(gitignore, base_dir=root)
    except (OSError, ValueError) as e:
        logging.warning(f"Could not parse .gitignore: {e}")
        return None


class PatternMatcher:
    """Decides whether a root-relative path is ignored."""

    def __init__(
        self,
        expanded_patterns: Sequence[str],
        root: Optional[Path] = None,
        gitignore: Optional[Callable[[Path], bool]] = None,
    ):
        self.patterns = list(expanded_patterns)
        self.spec = pathspec.PathSpec.from_lines("gitwildmatch", self.patterns)
        self.root = root
        self.gitignore = gitignore

    @classmethod
    def from_config(cls, config: ScanConfig) -> PatternMatcher:
        expanded = expand_ignore_patterns(
            config.ignore_patterns, config.extensions_ignore, config.extensions
        )
        gitignore = load_gitignore(config.root_dir) if config.use_gitignore else None
        return cls(expanded, root=config.root_dir, gitignore=gitignore)

    def is_ignored(self, relative_path: str) -> bool:
        if self.spec.match_file(relative_path):
            return True
        if self.gitignore is not None and self.root is not None:
            return bool(self.gitignore(self.root / relative_path))
        return False


# =============================================================================
# FILTER RULES (Strategy Pattern)
# =============================================================================

class FilterRule(ABC):
    """Abstract base for file filter rules."""

    @abstractmethod
    def check(self, candidate: Candidate, config: ScanConfig) -> Tuple[bool, str]:
        """Check if candidate passes this rule. Returns (passes, reason)."""


class SizeRule(FilterRule):
    """Reject files above the size ceiling."""

    def check(self, candidate: Candidate, config: ScanConfig) -> Tuple[bool, str]:
        if candidate.size_bytes > config.max_file_size:
            return False, f"Too large: {candidate.size_bytes:,} > {config.max_file_size:,}"
        return True, ""


def is_binary_sample(data: bytes) -> bool:
    """Heuristic: NUL bytes or invalid UTF-8 mean binary."""
    if b"\x00" in data:
        return True
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        # final=False tolerates a multibyte sequence cut at the sample edge
        decoder.decode(data, final=False)
    except UnicodeDecodeError:
        return True
    return False


class BinaryRule(FilterRule):
    """Detect and exclude binary files. OSError propagates to the caller."""

    def check(self, candidate: Candidate, config: ScanConfig) -> Tuple[bool, str]:
        with open(candidate.absolute_path, "rb") as f:
            chunk = f.read(Defaults.BINARY_SAMPLE_BYTES)
        if is_binary_sample(chunk):
            return False, "Binary file"
        return True, ""


class ExtensionRule(FilterRule):
    """Apply the extension allow-list, when one is configured."""

    def check(self, candidate: Candidate, config: ScanConfig) -> Tuple[bool, str]:
        if config.extensions and candidate.extension not in config.extensions:
            return False, f"Extension not allowed: {candidate.extension or '(none)'}"
        return True, ""


class FileClassifier:
    """Composite filter applying the rules in order."""

    def __init__(self, config: ScanConfig, rules: Optional[List[FilterRule]] = None):
        self.config = config
        self.rules: List[FilterRule] = rules if rules is not None else [
            SizeRule(),
            BinaryRule(),
            ExtensionRule(),
        ]
        self.extension_counts: Dict[str, int] = defaultdict(int)

    def classify(self, candidate: Candidate) -> Classification:
        for rule in self.rules:
            passes, reason = rule.check(candidate, self.config)
            if not passes:
                return Classification(False, reason)
        self.extension_counts[candidate.extension] += 1
        return Classification(True, "Passed all filters")


# =============================================================================
# WALKER
# =============================================================================

def _modified_date(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


class DirectoryWalker:
    """Recursively collects eligible files under the scan root."""

    def __init__(
        self,
        config: ScanConfig,
        matcher: PatternMatcher,
        classifier: FileClassifier,
    ):
        self.config = config
        self.root = config.root_dir
        self.matcher = matcher
        self.classifier = classifier
        self.skipped: List[SkipRecord] = []
        self.ignored_files = 0
        self.ignored_directories = 0

    def walk(self) -> WalkResult:
        """Scan the root and apply the max-files policy to the full list."""
        self._check_root()
        self.skipped = []
        self.ignored_files = 0
        self.ignored_directories = 0
        self.classifier.extension_counts.clear()

        matched = self._walk_directory(self.root, 0, is_root=True)
        files = matched[: self.config.max_files]
        for dropped in matched[self.config.max_files:]:
            self.skipped.append(
                SkipRecord(dropped.relative_path, SkipReason.EXCEEDED_MAX_FILES)
            )

        return WalkResult(
            files=files,
            skipped=list(self.skipped),
            ignored_files=self.ignored_files,
            ignored_directories=self.ignored_directories,
            total_matched=len(matched),
            extension_counts=dict(self.classifier.extension_counts),
        )

    def _check_root(self) -> None:
        if not self.root.exists():
            raise ScanRootError(f"Root directory '{self.root}' does not exist")
        if not self.root.is_dir():
            raise ScanRootError(f"Root path '{self.root}' is not a directory")

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _list(self, directory: Path, is_root: bool) -> Optional[List[os.DirEntry]]:
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda e: e.name)
        except OSError as e:
            if is_root:
                raise ScanRootError(f"Could not scan directory '{directory}': {e}") from e
            logging.warning(f"Could not read directory {directory}: {e}")
            self.skipped.append(SkipRecord(self._relative(directory), SkipReason.UNREADABLE))
            return None

    def _scan_entry(self, dir_entry: os.DirEntry) -> ScanEntry:
        path = Path(dir_entry.path)
        try:
            is_dir = dir_entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        kind = EntryKind.DIRECTORY if is_dir else EntryKind.FILE
        return ScanEntry(path, self._relative(path), kind)

    def _record_ignored(self, entry: ScanEntry) -> None:
        if entry.kind is EntryKind.DIRECTORY:
            self.ignored_directories += 1
            self.skipped.append(SkipRecord(entry.relative_path, SkipReason.IGNORED_DIRECTORY))
        else:
            self.ignored_files += 1
            self.skipped.append(SkipRecord(entry.relative_path, SkipReason.IGNORED_FILE))
        logging.debug(f"Ignored {entry.relative_path}")

    def _walk_directory(self, directory: Path, depth: int, is_root: bool = False) -> List[SelectedFile]:
        if depth > self.config.max_depth:
            return []

        dir_entries = self._list(directory, is_root)
        if dir_entries is None:
            return []

        files: List[SelectedFile] = []
        for dir_entry in dir_entries:
            entry = self._scan_entry(dir_entry)

            if self.matcher.is_ignored(entry.relative_path):
                self._record_ignored(entry)
                continue

            if entry.kind is EntryKind.DIRECTORY:
                files.extend(self._walk_directory(entry.absolute_path, depth + 1))
                continue

            selected = self._select_file(dir_entry, entry)
            if selected is not None:
                files.append(selected)

        return files

    def _select_file(self, dir_entry: os.DirEntry, entry: ScanEntry) -> Optional[SelectedFile]:
        path, rel = entry.absolute_path, entry.relative_path
        try:
            if not dir_entry.is_file():
                logging.debug(f"Excluded {rel}: not a regular file")
                self.skipped.append(SkipRecord(rel, SkipReason.NOT_ALLOWED))
                return None
            stat = dir_entry.stat()
            candidate = Candidate(path, rel, stat.st_size, stat.st_mtime)
            outcome = self.classifier.classify(candidate)
        except OSError as e:
            logging.warning(f"Could not read {rel}: {e}")
            self.skipped.append(SkipRecord(rel, SkipReason.UNREADABLE))
            return None

        if not outcome.eligible:
            logging.debug(f"Excluded {rel}: {outcome.detail}")
            self.skipped.append(SkipRecord(rel, SkipReason.NOT_ALLOWED))
            return None

        return SelectedFile(
            absolute_path=path,
            relative_path=rel,
            size_bytes=candidate.size_bytes,
            last_modified=_modified_date(candidate.modified),
            extension=candidate.extension,
        )


# =============================================================================
# FORMATTERS
# =============================================================================

def make_code_block(content: str, language: str = "plaintext") -> str:
    """Wrap content in a fenced block; markdown gets comment markers instead."""
    if language == "markdown":
        return (
            "\n<!-- Start of Markdown file content -->\n"
            f"{content.strip()}\n"
            "<!-- End of Markdown file content -->\n"
        )
    return f"{CODE_FENCE}{language}\n{content.strip()}\n{CODE_FENCE}"


def build_tree(paths: Iterable[str]) -> TreeDirectory:
    """Build a nested tree from '/'-separated relative paths, keeping order."""
    root = TreeDirectory()
    for path in paths:
        segments = [s for s in path.split("/") if s]
        current = root
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            node = current.children.get(segment)
            if node is None:
                node = TreeLeaf() if last else TreeDirectory()
                current.children[segment] = node
            elif isinstance(node, TreeLeaf) and not last:
                node = TreeDirectory()
                current.children[segment] = node
            if isinstance(node, TreeDirectory):
                current = node
    return root


def render_tree(node: TreeNode, prefix: str = "") -> str:
    """Render a tree with box-drawing connectors, one line per node."""
    if isinstance(node, TreeLeaf):
        return ""
    lines = []
    items = list(node.children.items())
    for index, (name, child) in enumerate(items):
        is_last = index == len(items) - 1
        connector = GLYPH_LAST if is_last else GLYPH_CHILD
        lines.append(f"{prefix}{connector}{name}\n")
        if isinstance(child, TreeDirectory):
            lines.append(render_tree(child, prefix + (GLYPH_SPACE if is_last else GLYPH_PIPE)))
    return "".join(lines)


class ContentFormatter:
    """Formats selected files and the tree."""

    def __init__(self, config: ScanConfig):
        self.config = config

    def format_file(self, selected: SelectedFile) -> FormattedBlock:
        """Read a selected file and build its header and body."""
        raw = selected.absolute_path.read_bytes()
        content = raw.decode("utf-8", errors="replace")

        header = "\n".join([
            f"### {selected.relative_path}",
            f"- **Size:** {format_kb(selected.size_bytes)} KB",
            f"- **Last Modified:** {selected.last_modified}",
            f"- **Content-Type:** {get_content_type(selected.extension)}",
        ])
        return FormattedBlock(
            relative_path=selected.relative_path,
            header_text=header,
            body_text=self._body(selected, content),
            size_bytes=len(raw),
        )

    def _body(self, selected: SelectedFile, content: str) -> str:
        if self.config.use_markdown_delimiter:
            return make_code_block(content, get_code_block_type(selected.extension))
        rel = selected.relative_path
        return (
            f"//************** Start {rel} **************//\n"
            f"{content.strip()}\n"
            f"//************** End {rel} **************//"
        )

    def tree(self, paths: Iterable[str]) -> Tuple[TreeDirectory, str]:
        node = build_tree(paths)
        return node, render_tree(node)


# =============================================================================
# REPORT
# =============================================================================

def remove_excess_line_breaks(content: str) -> str:
    """Reduce runs of blank lines down to a single blank line."""
    return EXCESS_LINE_BREAKS.sub("\n\n", content)


@dataclass
class ScanStatistics:
    """Console-side summary of a run."""
    copied_files: int
    total_bytes: int
    ignored_files: int
    ignored_directories: int
    extension_counts: List[Tuple[str, int]]
    total_matched: int
    max_files: int
    destination: str = "the clipboard"

    @property
    def excluded_by_limit(self) -> int:
        return max(self.total_matched - self.max_files, 0)

    def lines(self) -> List[Tuple[str, str]]:
        """Messages paired with the colour they are shown in."""
        out: List[Tuple[str, str]] = []
        if self.copied_files == 0:
            out.append((Fore.RED, "No files found."))
        else:
            out.append((
                Fore.GREEN,
                f"{self.copied_files} files to {self.destination}, "
                f"totaling {format_kb(self.total_bytes)} KB.",
            ))

        if self.ignored_files or self.ignored_directories:
            out.append((
                Fore.YELLOW,
                f"Skipped {self.ignored_files} files and {self.ignored_directories} "
                "directories based on the ignore configuration.",
            ))

        if self.extension_counts:
            stats = ", ".join(
                f"{ext or 'no extension'}: {count}" for ext, count in self.extension_counts
            )
            out.append((Fore.BLUE, f"Matched extension: {stats}"))

        if self.excluded_by_limit:
            out.append((
                Fore.RED,
                f"Maximum number of files copied: {self.max_files:,}. "
                f"{self.excluded_by_limit:,} files were not included due to the max files "
                "limit. You can increase this with the --max-files or -f "
                "(code2cb -f 200) option.",
            ))
            out.append((
                Fore.RED,
                "To further refine the selection, exclude specific file types with "
                "--extensions-ignore or --ei (code2cb --ei txt,md,json) or use -i "
                "for more complex patterns.",
            ))
        return out


class ReportAssembler:
    """Combines tree, blocks, summary and omitted files into the final text."""

    def __init__(self, config: ScanConfig, formatter: Optional[ContentFormatter] = None):
        self.config = config
        self.formatter = formatter or ContentFormatter(config)

    def assemble(self, blocks: Sequence[FormattedBlock], skipped: Sequence[SkipRecord]) -> str:
        header = ""
        if self.config.project_description:
            header += f"## Project Description:\n{self.config.project_description}\n\n"

        header += f"{self.project_summary(blocks)}\n\n"

        if not self.config.omit_tree and blocks:
            _, tree = self.formatter.tree(b.relative_path for b in blocks)
            header += f"\n## Tree Structure:\n{make_code_block(tree)}\n"

        header += self.omitted_files(skipped)

        content = header
        if blocks:
            content += "\n\n## Files\n" + "\n".join(b.text for b in blocks)

        return remove_excess_line_breaks(content)

    def project_summary(self, blocks: Sequence[FormattedBlock]) -> str:
        type_counts: Dict[str, int] = {}
        for block in blocks:
            ext = file_extension(block.relative_path).lower()
            type_counts[ext] = type_counts.get(ext, 0) + 1

        file_types = ", ".join(
            f"{ext.upper() or 'NO EXTENSION'} ({count})" for ext, count in type_counts.items()
        )
        total = sum(b.size_bytes for b in blocks)
        return (
            "## Project Summary:\n"
            f"- Total Files: {len(blocks)}\n"
            f"- Total Size: {format_kb(total)} KB\n"
            f"- File Types: {file_types}"
        )

    def omitted_files(self, skipped: Sequence[SkipRecord]) -> str:
        if not skipped:
            return ""
        limit = Defaults.OMITTED_DISPLAY_LIMIT
        listing = "\n".join(
            f"- {record.relative_path} ({record.reason.value})" for record in skipped[:limit]
        )
        output = f"\n### Omitted Files\n{listing}\n"
        if len(skipped) > limit:
            remaining = len(skipped) - limit
            output += f"\n... and {remaining} more file{'s' if remaining > 1 else ''} not shown.\n"
        return output

    def statistics(self, blocks: Sequence[FormattedBlock], walk: WalkResult) -> ScanStatistics:
        counts = sorted(walk.extension_counts.items(), key=lambda x: x[1], reverse=True)
        return ScanStatistics(
            copied_files=len(blocks),
            total_bytes=sum(b.size_bytes for b in blocks),
            ignored_files=walk.ignored_files,
            ignored_directories=walk.ignored_directories,
            extension_counts=counts,
            total_matched=walk.total_matched,
            max_files=self.config.max_files,
            destination="the clipboard" if self.config.copy_to_clipboard else "the output",
        )


# =============================================================================
# PIPELINE
# =============================================================================

@dataclass
class Report:
    """Result of one scan-and-format pass."""
    text: str
    tree_text: str
    blocks: List[FormattedBlock]
    walk: WalkResult
    statistics: ScanStatistics


def read_blocks(
    files: Sequence[SelectedFile],
    formatter: ContentFormatter,
    workers: int = 1,
) -> Tuple[List[FormattedBlock], List[SkipRecord]]:
    """Format files, concurrently when workers > 1, keeping selection order."""

    def _format(selected: SelectedFile) -> Optional[FormattedBlock]:
        try:
            return formatter.format_file(selected)
        except OSError as e:
            logging.warning(f"Could not read {selected.relative_path}: {e}")
            return None

    if workers > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reader") as executor:
            results = list(executor.map(_format, files))
    else:
        results = [_format(f) for f in files]

    blocks: List[FormattedBlock] = []
    unreadable: List[SkipRecord] = []
    for selected, block in zip(files, results):
        if block is None:
            unreadable.append(SkipRecord(selected.relative_path, SkipReason.UNREADABLE))
        else:
            blocks.append(block)
    return blocks, unreadable


def run(config: ScanConfig) -> Report:
    """Scan, format and assemble; nothing is written anywhere."""
    start = time.time()
    matcher = PatternMatcher.from_config(config)
    classifier = FileClassifier(config)
    walker = DirectoryWalker(config, matcher, classifier)
    walk = walker.walk()
    logging.info(
        f"Scan complete. Selected: {len(walk.files)}, Skipped: {len(walk.skipped)} "
        f"in {time.time() - start:.3f}s"
    )

    formatter = ContentFormatter(config)
    blocks, unreadable = read_blocks(walk.files, formatter, config.workers)
    walk.skipped.extend(unreadable)

    assembler = ReportAssembler(config, formatter)
    text = assembler.assemble(blocks, walk.skipped)
    _, tree_text = formatter.tree(b.relative_path for b in blocks)
    logging.info(f"Total processing time: {time.time() - start:.3f} seconds.")

    return Report(
        text=text,
        tree_text=tree_text,
        blocks=blocks,
        walk=walk,
        statistics=assembler.statistics(blocks, walk),
    )


# =============================================================================
# OUTPUT WRITER
# =============================================================================

class OutputWriter:
    """Handles output to the configured destinations."""

    @staticmethod
    def write(content: str, config: ScanConfig) -> bool:
        """Write content everywhere the config asks for. Returns success."""
        success = True
        if config.output_to_console:
            success = OutputWriter._write_stdout(content) and success
        if config.output_file is not None:
            success = OutputWriter._write_file(content, config.output_file) and success
        if config.copy_to_clipboard:
            success = OutputWriter._write_clipboard(content) and success
        return success

    @staticmethod
    def _write_file(content: str, path: Path) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            print(f"Written to {path}", file=sys.stderr)
            return True
        except OSError as e:
            logging.error(f"Could not write output file {path}: {e}")
            return False

    @staticmethod
    def _write_stdout(content: str) -> bool:
        try:
            print(content)
            return True
        except OSError as e:
            logging.error(f"Could not write to stdout: {e}")
            return False

    @staticmethod
    def _write_clipboard(content: str) -> bool:
        try:
            pyperclip.copy(content)
            return True
        except pyperclip.PyperclipException as e:
            logging.error(f"Clipboard error: {e}")
            return False


def print_statistics(statistics: ScanStatistics, stream=None) -> None:
    stream = stream or sys.stderr
    for colour, message in statistics.lines():
        print(f"{colour}{message}{Style.RESET_ALL}", file=stream)


def print_search_config(config: ScanConfig, stream=None) -> None:
    stream = stream or sys.stderr
    print("Configuration:", file=stream)
    print(f"- Directory: {config.root_dir}", file=stream)
    print(
        f"- Max Depth: {config.max_depth} Max File Size: "
        f"{config.max_file_size // 1024}kb Max Files: {config.max_files}",
        file=stream,
    )
    if config.extensions:
        print(f"- Match Extensions: {', '.join(sorted(config.extensions))}", file=stream)


# =============================================================================
# CONFIGURATION BUILDER
# =============================================================================

def split_csv(value: Union[str, Sequence[str], None]) -> List[str]:
    """Split a comma-separated string into trimmed, non-empty items."""
    if not value:
        return []
    if not isinstance(value, str):
        return [item for item in value if item]
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


class ConfigBuilder:
    """Builds ScanConfig from CLI arguments."""

    @staticmethod
    def from_args(args: argparse.Namespace) -> ScanConfig:
        """Create config from parsed arguments."""
        ignore = split_csv(args.ignore) + split_csv(args.add_ignore)
        output_file = Path(args.output).resolve() if args.output else None

        return ScanConfig(
            root_dir=Path(args.root_dir).resolve(),
            max_depth=args.max_depth,
            max_file_size=args.max_filesize * 1024,
            max_files=args.max_files,
            extensions=frozenset(split_csv(args.extensions)),
            ignore_patterns=tuple(ignore),
            extensions_ignore=tuple(split_csv(args.extensions_ignore)),
            omit_tree=args.omit_tree,
            project_description=args.project_description or "",
            use_markdown_delimiter=not args.plain_delimiter,
            use_gitignore=args.gitignore,
            output_to_console=args.output_to_console,
            copy_to_clipboard=not args.no_clipboard,
            output_file=output_file,
            workers=args.workers,
        )


# =============================================================================
# CLI PARSER
# =============================================================================

def create_parser(env: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    """Create argument parser; defaults come from the environment."""
    env = os.environ if env is None else env
    default_ignore = ",".join(DEFAULT_IGNORE)

    parser = argparse.ArgumentParser(
        prog="code2cb",
        description="Copy a project's source files to the clipboard, formatted for LLMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  code2cb                       # Scan current dir, copy to clipboard
  code2cb ./src                 # Scan specific directory
  code2cb -e py,md              # Only Python and Markdown files
  code2cb --ei json,lock        # Skip JSON and lock files
  code2cb -f 200 -d 3           # Up to 200 files, 3 levels deep
  code2cb -c --no-clipboard     # Print to stdout only
        """,
    )

    parser.add_argument(
        "root_dir",
        nargs="?",
        type=Path,
        default=Path("."),
        help="Directory to scan (default: current)",
    )

    limits = parser.add_argument_group("Limits")
    limits.add_argument(
        "-d", "--max-depth", type=int, metavar="N",
        default=_env_int(env, "MAX_DEPTH", Defaults.MAX_DEPTH),
        help="Maximum depth for directory scanning (default: %(default)s)",
    )
    limits.add_argument(
        "-s", "--max-filesize", type=int, metavar="KB",
        default=_env_int(env, "MAX_FILE_SIZE", Defaults.MAX_FILE_SIZE_KB),
        help="Maximum file size in kilobytes (default: %(default)s)",
    )
    limits.add_argument(
        "-f", "--max-files", type=int, metavar="N",
        default=_env_int(env, "MAX_FILES", Defaults.MAX_FILES),
        help="Maximum number of files (default: %(default)s)",
    )

    filt = parser.add_argument_group("Filtering")
    filt.add_argument(
        "-i", "--add-ignore", metavar="PATTERNS",
        default=env.get("ADD_IGNORE", ""),
        help="Additional patterns to ignore, comma-separated. Use * as a wildcard.",
    )
    filt.add_argument(
        "--ignore", "--oi", metavar="PATTERNS",
        default=env.get("IGNORE", default_ignore),
        help="Override ignore patterns entirely, comma-separated.",
    )
    filt.add_argument(
        "-e", "--extensions", metavar="EXTS",
        default=env.get("EXTENSIONS", ""),
        help="Only copy files with these extensions; overrides extension ignore patterns.",
    )
    filt.add_argument(
        "--extensions-ignore", "--ei", metavar="EXTS",
        default=env.get("EXTENSIONS_IGNORE", ""),
        help="Ignore files with these extensions, comma-separated.",
    )
    filt.add_argument(
        "--gitignore", action="store_true",
        default=_env_bool(env, "USE_GITIGNORE"),
        help="Also skip paths matched by the root .gitignore",
    )

    out = parser.add_argument_group("Output Options")
    out.add_argument(
        "--omit-tree", "--ot", action="store_true",
        default=_env_bool(env, "OMIT_TREE"),
        help="Omit the tree from the copied content",
    )
    out.add_argument(
        "--project-description", "--pd", metavar="TEXT",
        default=env.get("PROJECT_DESCRIPTION", ""),
        help="Brief description of the project, placed at the top",
    )
    out.add_argument(
        "-c", "--output-to-console", action="store_true",
        default=_env_bool(env, "OUTPUT_TO_CONSOLE"),
        help="Also print the copied content to stdout",
    )
    out.add_argument(
        "--plain-delimiter", action="store_true",
        default=not _env_bool(env, "USE_MARKDOWN_DELIMITER", default=True),
        help="Wrap files in start/end comment markers instead of code fences",
    )
    out.add_argument("--no-clipboard", action="store_true", help="Don't copy to clipboard")
    out.add_argument("-o", "--output", metavar="FILE", help="Also write to file")

    meta = parser.add_argument_group("Information")
    meta.add_argument(
        "--workers", type=int, default=Defaults.WORKERS, metavar="N",
        help="Threads used to read file contents (default: %(default)s)",
    )
    meta.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    meta.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")

    return parser


# =============================================================================
# MAIN
# =============================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        parser = create_parser()
    except ConfigurationError as e:
        logging.error(str(e))
        return 1
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.getLogger().setLevel(level)
    just_fix_windows_console()

    try:
        config = ConfigBuilder.from_args(args)
        print_search_config(config)

        report = run(config)

        if not report.blocks:
            logging.warning("No files matched the filters")
            config = replace(config, copy_to_clipboard=False)

        success = OutputWriter.write(report.text, config)
        if report.blocks and config.copy_to_clipboard:
            print(f"\nCopied Files:\n{report.tree_text}", file=sys.stderr)
        print_statistics(report.statistics)
        return 0 if success else 1

    except Code2ClipboardError as e:
        logging.error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception:
        logging.exception("Critical error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
