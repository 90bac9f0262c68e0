"""
Pytest fixtures for ctxvault tests.

Provides reusable fixtures for temporary directories, a sample codebase, a
real LanceDB store in a temp directory and an offline embedding model that
produces deterministic fallback vectors.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from ctxvault.config import Config
from ctxvault.context import VaultContext
from ctxvault.embeddings import EmbeddingModel
from ctxvault.indexer import Indexer
from ctxvault.jobs import JobManager
from ctxvault.progress import ProgressSink
from ctxvault.store import VectorStore


class RecordingSink(ProgressSink):
    """Progress sink that keeps every update for assertions."""

    def __init__(self):
        self.percents = []
        self.messages = []
        self.logs = []

    def progress(self, percent, message=None):
        self.percents.append(percent)
        if message:
            self.messages.append(message)

    def log(self, message, level="info"):
        self.logs.append((level, message))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def sample_codebase(temp_dir):
    """
    Create a small sample codebase.

    Five indexable text files, plus entries that must never be indexed: a
    dependency directory, a hidden directory, a log file and a binary image.
    """
    repo = temp_dir / "repo"
    repo.mkdir()

    (repo / "sample.py").write_text('''"""Sample Python module for testing."""

def hello_world():
    """Print hello world."""
    print("Hello, World!")
    return "Hello"


class Calculator:
    """A simple calculator class."""

    def add(self, a, b):
        return a + b
''')

    (repo / "README.md").write_text('''# Sample Document

This is a sample markdown document for testing.

## Section 1

Some content here.
''')

    src_dir = repo / "src"
    src_dir.mkdir()
    (src_dir / "utils.py").write_text('''
def utility_function():
    """A utility function."""
    return "utility"
''')
    (src_dir / "main.py").write_text('''
from utils import utility_function

def main():
    print(utility_function())

if __name__ == "__main__":
    main()
''')

    tests_dir = repo / "tests"
    tests_dir.mkdir()
    (tests_dir / "test_utils.py").write_text('''
def test_utility():
    assert True
''')

    # Never indexed
    (repo / "node_modules").mkdir()
    (repo / "node_modules" / "lib.js").write_text("module.exports = {};\n")
    (repo / ".hidden").mkdir()
    (repo / ".hidden" / "secret.txt").write_text("secret\n")
    (repo / "app.log").write_text("log line\n")
    (repo / "image.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")

    return repo


@pytest.fixture
def sample_files():
    """Relative paths of the indexable files in sample_codebase, in walk order."""
    return [
        "README.md",
        "sample.py",
        "src/main.py",
        "src/utils.py",
        "tests/test_utils.py",
    ]


@pytest.fixture
def config(temp_dir):
    """Create a test configuration (defaults, no env overrides)."""
    config = Config(config_path=temp_dir / "config.toml", use_env=False)
    config.set("storage", "db_path", value=str(temp_dir / "db" / "data.lance"))
    return config


@pytest.fixture
def embedding_model():
    """Embedding model that never loads weights and uses fallback vectors."""
    return EmbeddingModel(offline=True)


@pytest.fixture
def vector_store(config):
    """Create a vector store for testing."""
    return VectorStore(config.db_path)


@pytest.fixture
def indexer(vector_store, embedding_model, config):
    """Create an indexer for testing."""
    return Indexer(vector_store, embedding_model, config)


@pytest.fixture
def job_manager():
    """Create a job manager with an in-memory store."""
    return JobManager()


@pytest.fixture
def vault(config, vector_store, embedding_model, indexer, job_manager):
    """A fully wired context sharing the fixtures above."""
    return VaultContext(
        config=config,
        store=vector_store,
        embeddings=embedding_model,
        indexer=indexer,
        jobs=job_manager,
    )


@pytest.fixture
def recording_sink():
    return RecordingSink()
