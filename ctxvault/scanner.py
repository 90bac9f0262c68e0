"""
File discovery and change detection for ctxvault.

Walks a directory tree honouring the built-in and caller exclude patterns,
classifies files as indexable text, fingerprints them and decides, against a
prior snapshot, whether each file was added, updated, left unchanged or
deleted.
"""

import enum
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import pathspec

from .exceptions import EnumerationError
from .models import FileFingerprint

logger = logging.getLogger(__name__)


# Matched with gitignore semantics: "dir/" excludes a directory at any depth,
# "/dir/" only at the root of the walk. "*" stays within one path segment and
# "**" crosses segments.
DEFAULT_EXCLUDES = [
    # Version control
    ".git/",
    ".svn/",
    ".hg/",
    # Dependencies
    "node_modules/",
    ".venv/",
    "venv/",
    "__pycache__/",
    # Build output (top level only; src/bin/ and nested build/ packages are source)
    "/dist/",
    "/build/",
    "/.next/",
    "/.nuxt/",
    "/coverage/",
    "/target/",
    "/bin/",
    "/obj/",
    # Lockfiles
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    # Minified assets
    "*.min.js",
    "*.min.css",
    # Logs and temp files
    "*.log",
    "*.tmp",
    "*.temp",
    # OS metadata
    ".DS_Store",
    "Thumbs.db",
    # Environment files (may contain secrets)
    ".env*",
]

TEXT_EXTENSIONS = frozenset({
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".c", ".cpp", ".h", ".hpp",
    ".cs", ".php", ".rb", ".go", ".rs", ".swift", ".kt", ".scala", ".clj",
    ".html", ".css", ".scss", ".sass", ".less", ".xml", ".json", ".yaml", ".yml",
    ".md", ".txt", ".sql", ".sh", ".bash", ".zsh", ".fish", ".ps1", ".bat",
    ".dockerfile", ".gitignore", ".conf", ".config", ".ini",
    ".toml", ".lock", ".vue", ".svelte", ".astro", ".r", ".m", ".pl",
    ".rst", ".cfg", ".proto", ".graphql", ".lua", ".dart", ".ex", ".exs",
})


class FileChange(str, enum.Enum):
    """Delta decision for one file."""
    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ScannedFile:
    """Content and fingerprint of one file read from disk."""
    rel_path: str
    content: str
    content_hash: str
    file_size: int
    last_modified: float

    @property
    def fingerprint(self) -> FileFingerprint:
        return FileFingerprint(
            content_hash=self.content_hash,
            file_size=self.file_size,
            last_modified=self.last_modified,
        )

    @property
    def file_type(self) -> str:
        return Path(self.rel_path).suffix


def build_exclude_spec(patterns: list[str]) -> pathspec.GitIgnoreSpec:
    """Compile exclude patterns with gitignore semantics."""
    return pathspec.GitIgnoreSpec.from_lines(patterns)


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_text_file(path: str) -> bool:
    """
    Check whether a file is eligible for indexing.

    Args:
        path: File name or path

    Returns:
        True if the extension is a known text extension or there is none
    """
    suffix = Path(path).suffix
    return not suffix or suffix.lower() in TEXT_EXTENSIONS


def walk_files(root: Path, exclude_patterns: Optional[list[str]] = None) -> Iterator[str]:
    """
    Enumerate files under ``root`` in a stable order.

    Directories are visited depth first with entries sorted by name. Hidden
    entries and anything matched by the built-in or caller exclude patterns
    are pruned.

    Args:
        root: Directory to walk
        exclude_patterns: Additional gitignore-style patterns

    Yields:
        File paths relative to ``root`` using forward slashes

    Raises:
        EnumerationError: If ``root`` is missing or not a readable directory
    """
    root = Path(root)
    if not root.is_dir():
        raise EnumerationError(f"Directory does not exist: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise EnumerationError(f"Directory is not readable: {root}")

    spec = build_exclude_spec(DEFAULT_EXCLUDES + list(exclude_patterns or []))

    def on_error(error: OSError) -> None:
        if Path(error.filename or "") == root:
            raise EnumerationError(f"Cannot read directory {root}: {error}") from error
        logger.warning(f"Cannot read directory {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        # Pruning in place keeps os.walk out of excluded trees
        dirnames[:] = sorted(
            d for d in dirnames
            if not is_hidden(d) and not spec.match_file(f"{prefix}{d}/")
        )

        for name in sorted(filenames):
            if is_hidden(name):
                continue
            rel_path = f"{prefix}{name}"
            if spec.match_file(rel_path):
                continue
            yield rel_path


def compute_hash(data: bytes) -> str:
    """SHA256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def fingerprint_file(root: Path, rel_path: str) -> ScannedFile:
    """
    Read a file and capture its fingerprint.

    Blocking; the orchestrator runs it in a worker thread.

    Args:
        root: Indexed root directory
        rel_path: Path relative to ``root``

    Returns:
        ScannedFile with decoded text and fingerprint
    """
    full_path = Path(root) / rel_path
    stat = full_path.stat()
    data = full_path.read_bytes()
    return ScannedFile(
        rel_path=rel_path,
        content=data.decode("utf-8", errors="replace"),
        content_hash=compute_hash(data),
        file_size=stat.st_size,
        last_modified=stat.st_mtime,
    )


def classify(prior: Optional[FileFingerprint], current: FileFingerprint) -> FileChange:
    """
    Decide whether a file needs re-indexing.

    A file is unchanged only when hash and size match and the stored
    modification time is not older than the current one; equal times count as
    covered, which tolerates coarse filesystem timestamps.

    Args:
        prior: Fingerprint from the last run, or None if never indexed
        current: Fingerprint just read from disk

    Returns:
        FileChange.ADDED, FileChange.UPDATED or FileChange.UNCHANGED
    """
    if prior is None:
        return FileChange.ADDED
    if (
        prior.content_hash == current.content_hash
        and prior.file_size == current.file_size
        and prior.last_modified >= current.last_modified
    ):
        return FileChange.UNCHANGED
    return FileChange.UPDATED


def find_deleted(snapshot: dict[str, FileFingerprint], visited: set[str]) -> list[str]:
    """
    Paths present in the prior snapshot but not seen by the current walk.

    Returns:
        Sorted list of relative paths
    """
    return sorted(path for path in snapshot if path not in visited)
