"""
Unit tests for file discovery and change detection.
"""

import os
import warnings

import pytest

from ctxvault.exceptions import EnumerationError
from ctxvault.models import FileFingerprint
from ctxvault.scanner import (
    FileChange,
    build_exclude_spec,
    classify,
    compute_hash,
    find_deleted,
    fingerprint_file,
    is_text_file,
    walk_files,
)


def test_walk_files_stable_order_and_default_excludes(sample_codebase):
    """Walk is sorted, depth first and prunes dependency, hidden and log entries."""
    files = list(walk_files(sample_codebase))

    assert files == [
        "README.md",
        "image.png",
        "sample.py",
        "src/main.py",
        "src/utils.py",
        "tests/test_utils.py",
    ]
    assert list(walk_files(sample_codebase)) == files


def test_walk_files_caller_patterns(sample_codebase):
    """Caller patterns are added to the built-in set."""
    files = list(walk_files(sample_codebase, ["tests/", "*.md"]))

    assert "README.md" not in files
    assert not any(path.startswith("tests/") for path in files)
    assert "src/utils.py" in files


def test_walk_files_double_star_pattern(sample_codebase):
    """A "**" pattern crosses directory levels."""
    (sample_codebase / "src" / "deep").mkdir()
    (sample_codebase / "src" / "deep" / "gen.py").write_text("x = 1\n")

    files = list(walk_files(sample_codebase, ["src/**/gen.py"]))

    assert "src/deep/gen.py" not in files
    assert "src/main.py" in files


def test_walk_files_excludes_nested_dependency_dirs(sample_codebase):
    """Directory patterns apply at any depth."""
    nested = sample_codebase / "src" / "node_modules" / "pkg"
    nested.mkdir(parents=True)
    (nested / "index.js").write_text("module.exports = 1;\n")

    files = list(walk_files(sample_codebase))

    assert not any("node_modules" in path for path in files)


def test_walk_files_build_dirs_only_excluded_at_root(temp_dir):
    """Build output is pruned at the top level; nested bin/ and build/ are source."""
    for rel_path in ["src/bin/cli.rs", "tools/build/gen.py", "build/out.js", "bin/run.sh", "target/debug.txt"]:
        path = temp_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("content\n")

    files = list(walk_files(temp_dir))

    assert files == ["src/bin/cli.rs", "tools/build/gen.py"]


def test_walk_files_missing_root(temp_dir):
    """A missing root is an enumeration failure."""
    with pytest.raises(EnumerationError):
        list(walk_files(temp_dir / "does-not-exist"))


def test_walk_files_root_is_file(sample_codebase):
    """A file passed as root is an enumeration failure."""
    with pytest.raises(EnumerationError):
        list(walk_files(sample_codebase / "sample.py"))


def test_is_text_file():
    """Known text extensions and extensionless files are indexable."""
    assert is_text_file("main.py")
    assert is_text_file("src/App.TSX")
    assert is_text_file("Makefile")
    assert is_text_file("config.toml")
    assert not is_text_file("image.png")
    assert not is_text_file("archive.tar.gz")


def test_fingerprint_file(sample_codebase):
    """Fingerprint captures the byte hash, size and mtime."""
    scanned = fingerprint_file(sample_codebase, "src/utils.py")
    raw = (sample_codebase / "src" / "utils.py").read_bytes()
    stat = os.stat(sample_codebase / "src" / "utils.py")

    assert scanned.rel_path == "src/utils.py"
    assert scanned.content_hash == compute_hash(raw)
    assert len(scanned.content_hash) == 64
    assert scanned.file_size == stat.st_size
    assert scanned.last_modified == stat.st_mtime
    assert scanned.file_type == ".py"
    assert "utility_function" in scanned.content


def test_fingerprint_file_invalid_utf8(temp_dir):
    """Undecodable bytes are replaced; the hash still covers the raw bytes."""
    raw = b"ok \xff\xfe done\n"
    (temp_dir / "weird.txt").write_bytes(raw)

    scanned = fingerprint_file(temp_dir, "weird.txt")

    assert "�" in scanned.content
    assert scanned.content_hash == compute_hash(raw)


def _fp(content_hash="abc", file_size=10, last_modified=100.0):
    return FileFingerprint(content_hash=content_hash, file_size=file_size, last_modified=last_modified)


def test_classify_new_file():
    assert classify(None, _fp()) is FileChange.ADDED


def test_classify_unchanged_when_triple_matches():
    assert classify(_fp(), _fp()) is FileChange.UNCHANGED


def test_classify_unchanged_when_stored_mtime_is_newer():
    """Equal or newer stored mtimes count as covered."""
    assert classify(_fp(last_modified=200.0), _fp(last_modified=100.0)) is FileChange.UNCHANGED


def test_classify_updated_when_hash_differs():
    assert classify(_fp(), _fp(content_hash="def")) is FileChange.UPDATED


def test_classify_updated_when_size_differs():
    assert classify(_fp(), _fp(file_size=11)) is FileChange.UPDATED


def test_classify_updated_when_touched():
    """Same content but a newer mtime is re-indexed."""
    assert classify(_fp(last_modified=100.0), _fp(last_modified=101.0)) is FileChange.UPDATED


def test_find_deleted():
    """Snapshot paths missing from the walk are deleted, in sorted order."""
    snapshot = {"b.py": _fp(), "a.py": _fp(), "keep.py": _fp()}

    assert find_deleted(snapshot, {"keep.py", "new.py"}) == ["a.py", "b.py"]
    assert find_deleted({}, {"x.py"}) == []


def test_build_exclude_spec_has_no_deprecation_warnings():
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        spec = build_exclude_spec(["node_modules/", "/build/", "*.log"])

    assert not [w for w in caught if issubclass(w.category, DeprecationWarning)]
    assert spec.match_file("a/node_modules/x.js")
    assert spec.match_file("build/x.js")
    assert not spec.match_file("a/build/x.js")
