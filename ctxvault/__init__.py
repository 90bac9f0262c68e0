"""
ctxvault - Semantic code search over incrementally indexed repositories.

This package provides:
- Line-bounded chunking and embedding of source trees into LanceDB
- Delta indexing driven by (hash, size, mtime) fingerprints
- Background index jobs with progress, logs and history
- REST (FastAPI) and MCP adapters plus a CLI
"""

from .models import (
    ChunkDocument,
    ChunkMetadata,
    DeltaStats,
    IndexResult,
    ProjectMetadata,
    ProjectStats,
    ProjectSummary,
    SearchResult,
)
from .config import Config
from .embeddings import EmbeddingModel
from .store import VectorStore
from .indexer import Indexer
from .jobs import InMemoryJobStore, Job, JobManager, JobStatus, JobStore, JobType
from .chunkers import ChunkStrategy, LineChunker
from .context import VaultContext

__version__ = "0.1.0"

__all__ = [
    # Models
    "ChunkDocument",
    "ChunkMetadata",
    "DeltaStats",
    "IndexResult",
    "ProjectMetadata",
    "ProjectStats",
    "ProjectSummary",
    "SearchResult",
    # Core components
    "Config",
    "EmbeddingModel",
    "VectorStore",
    "Indexer",
    "VaultContext",
    # Jobs
    "Job",
    "JobManager",
    "JobStatus",
    "JobStore",
    "JobType",
    "InMemoryJobStore",
    # Chunkers
    "ChunkStrategy",
    "LineChunker",
]
