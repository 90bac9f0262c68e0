"""
Data models for ctxvault.

Defines the LanceDB schemas for chunk documents and project metadata, plus the
Pydantic models returned to callers (search results, project summaries, index
results). Caller-facing models serialize with camelCase aliases, matching the
wire format of the REST and MCP adapters.
"""

import functools
import time
import uuid
from datetime import datetime
from typing import Optional

from lancedb.pydantic import LanceModel, Vector
from pydantic import BaseModel, ConfigDict, Field, create_model
from pydantic.alias_generators import to_camel

# Output dimension of the default sentence-transformers model
EMBEDDING_DIMENSION = 384


class CamelModel(BaseModel):
    """Base for models exposed through the adapters."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChunkMetadata(CamelModel):
    """Per-chunk metadata describing the source file and line range."""
    file_size: int
    file_type: str
    last_modified: float
    content_hash: str
    start_line: int
    end_line: int


class ChunkDocument(LanceModel):
    """
    One chunk of a source file.

    Chunks of a file are identified by ``(project_id, file_path, chunk_index)``
    and are always replaced as a complete set. The table schema is built by
    ``chunk_schema`` for the embedding dimension in use.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Generated unique key")
    project_id: str = Field(description="Logical project namespace", min_length=1)
    file_path: str = Field(description="File path relative to the indexed root")
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    content: str = Field(description="Header plus chunk text")
    vector: list[float] = Field(description="Embedding of content")
    file_size: int = Field(description="Size of the source file in bytes")
    file_type: str = Field(description="File extension including the dot, or empty")
    last_modified: float = Field(description="Source file mtime (unix seconds)")
    content_hash: str = Field(description="SHA256 of the source file bytes")
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    created_at: float = Field(default_factory=time.time)

    @property
    def metadata(self) -> ChunkMetadata:
        """Metadata group of this chunk."""
        return ChunkMetadata(
            file_size=self.file_size,
            file_type=self.file_type,
            last_modified=self.last_modified,
            content_hash=self.content_hash,
            start_line=self.start_line,
            end_line=self.end_line,
        )


@functools.lru_cache(maxsize=None)
def chunk_schema(dimension: int) -> type[ChunkDocument]:
    """
    LanceDB table schema for chunks embedded with ``dimension``-long vectors.

    Args:
        dimension: Output dimension of the embedding model

    Returns:
        ChunkDocument subclass whose vector is a fixed-size list
    """
    if dimension <= 0:
        raise ValueError("dimension must be positive")
    return create_model(
        f"ChunkDocument{dimension}",
        __base__=ChunkDocument,
        vector=(Vector(dimension), Field(description="Embedding of content")),
    )


class ProjectRecord(LanceModel):
    """LanceDB row holding the metadata of one project."""
    project_id: str
    directory_path: str
    exclude_patterns: list[str] = Field(default_factory=list)
    created_at: float
    last_indexed: float
    updated_at: float


class ProjectMetadata(CamelModel):
    """Metadata persisted for a project after every successful index run."""
    project_id: str
    directory_path: str
    exclude_patterns: list[str] = Field(default_factory=list)
    created_at: datetime
    last_indexed: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ProjectRecord) -> "ProjectMetadata":
        return cls(
            project_id=record.project_id,
            directory_path=record.directory_path,
            exclude_patterns=list(record.exclude_patterns),
            created_at=record.created_at,
            last_indexed=record.last_indexed,
            updated_at=record.updated_at,
        )


class FileFingerprint(BaseModel):
    """The (hash, size, mtime) triple used to detect file changes."""
    content_hash: str
    file_size: int
    last_modified: float


class SearchResult(CamelModel):
    """A chunk returned by similarity search with its cosine score."""
    id: str
    project_id: str
    file_path: str
    content: str
    metadata: ChunkMetadata
    score: float

    def __str__(self) -> str:
        """Format search result for display."""
        return (
            f"{self.file_path}:{self.metadata.start_line}-{self.metadata.end_line} "
            f"({self.score:.3f})"
        )


class ProjectSummary(CamelModel):
    """One entry of the project listing."""
    project_id: str
    document_count: int
    last_modified: Optional[datetime] = None
    directory_path: Optional[str] = None
    exclude_patterns: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    last_indexed: Optional[datetime] = None


class ProjectStats(CamelModel):
    """Chunk and file counts for a project."""
    project_id: str
    total_documents: int = 0
    total_files: int = 0
    files: list[str] = Field(default_factory=list)

    def __str__(self) -> str:
        """Format stats for display."""
        return "\n".join([
            f"Project: {self.project_id}",
            f"Total documents: {self.total_documents}",
            f"Total files: {self.total_files}",
        ])


class DeltaStats(CamelModel):
    """Per-file decisions made by a delta run."""
    skipped: int = 0
    updated: int = 0
    added: int = 0
    deleted: int = 0
    total: int = 0


class IndexResult(CamelModel):
    """Outcome of one orchestrator run."""
    success: bool = True
    project_id: str
    files_processed: int = 0
    chunks_indexed: int = 0
    files_total: int = 0
    delta_stats: Optional[DeltaStats] = None
