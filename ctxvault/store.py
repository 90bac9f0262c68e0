"""
Document store for ctxvault.

Provides a clean interface over LanceDB with two tables: ``chunks`` holds one
row per embedded chunk, ``project_metadata`` one row per project. Every backend
failure is surfaced as ``StoreError`` so the orchestrator can treat storage
problems as fatal.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Optional

import lancedb
import numpy as np
from lancedb.table import Table

from .exceptions import StoreError
from .models import (
    EMBEDDING_DIMENSION,
    ChunkDocument,
    ChunkMetadata,
    FileFingerprint,
    ProjectMetadata,
    ProjectRecord,
    ProjectStats,
    ProjectSummary,
    SearchResult,
    chunk_schema,
)
from .utils import sql_quote

logger = logging.getLogger(__name__)


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against every row of ``matrix``; 0 for zero vectors."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores


class VectorStore:
    """
    Abstraction over LanceDB for chunk storage and retrieval.

    Features:
    - Lazy database connection and table creation
    - Bulk insert and per-file / per-project deletion of chunks
    - File fingerprint snapshot for delta indexing
    - Project metadata upsert and listing
    - Linear-scan cosine similarity search
    """

    def __init__(
        self,
        db_path: Path,
        table_name: str = "chunks",
        metadata_table_name: str = "project_metadata",
        dimension: int = EMBEDDING_DIMENSION,
    ):
        """
        Initialize the vector store.

        Args:
            db_path: Path to the LanceDB database directory
            table_name: Name of the chunk table
            metadata_table_name: Name of the project metadata table
            dimension: Length of the chunk vectors stored in this database
        """
        self.db_path = Path(db_path)
        self.table_name = table_name
        self.metadata_table_name = metadata_table_name
        self.dimension = dimension
        self._db: Optional[lancedb.DBConnection] = None
        self._table: Optional[Table] = None
        self._metadata_table: Optional[Table] = None
        self._open_lock = threading.Lock()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def db(self) -> lancedb.DBConnection:
        """Lazy-load the database connection."""
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.db_path))
            logger.info(f"Connected to LanceDB at {self.db_path}")
        return self._db

    def _open_or_create(self, name: str, schema: type) -> Table:
        with self._open_lock:
            if name in self.db.table_names():
                logger.debug(f"Opened existing table: {name}")
                return self.db.open_table(name)
            try:
                table = self.db.create_table(name, schema=schema, mode="create")
                logger.info(f"Created new table: {name}")
                return table
            except Exception as e:
                # Another process created it between the check and the create
                if "already exists" in str(e):
                    return self.db.open_table(name)
                raise

    @property
    def table(self) -> Table:
        """Get or create the chunk table, checking its vector dimension."""
        if self._table is None:
            table = self._open_or_create(self.table_name, chunk_schema(self.dimension))
            stored = getattr(table.schema.field("vector").type, "list_size", None)
            if stored is not None and stored != self.dimension:
                raise StoreError(
                    f"Table {self.table_name} stores {stored}-dimensional vectors, "
                    f"but the embedding model produces {self.dimension}"
                )
            self._table = table
        return self._table

    @property
    def metadata_table(self) -> Table:
        """Get or create the project metadata table."""
        if self._metadata_table is None:
            self._metadata_table = self._open_or_create(self.metadata_table_name, ProjectRecord)
        return self._metadata_table

    # Chunk operations

    def add_chunks(self, chunks: list[ChunkDocument]) -> None:
        """
        Bulk insert chunk documents.

        Args:
            chunks: Chunks to add

        Raises:
            StoreError: If the insert fails
        """
        if not chunks:
            return

        for chunk in chunks:
            if len(chunk.vector) != self.dimension:
                raise StoreError(
                    f"Chunk {chunk.file_path}#{chunk.chunk_index} has a {len(chunk.vector)}-dimensional "
                    f"vector, expected {self.dimension}"
                )

        try:
            data = [chunk.model_dump() for chunk in chunks]
            self.table.add(data)
            logger.info(f"Added {len(chunks)} chunks to {self.table_name}")
        except Exception as e:
            logger.error(f"Failed to add chunks: {e}")
            raise StoreError(f"Bulk insert failed: {e}") from e

    def delete_chunks(self, project_id: str, file_path: str) -> int:
        """
        Delete all chunks of one file in a project.

        Args:
            project_id: Project namespace
            file_path: Relative file path

        Returns:
            Number of chunks deleted
        """
        where = f"project_id = {sql_quote(project_id)} AND file_path = {sql_quote(file_path)}"
        try:
            count = self.table.count_rows(where)
            if count:
                self.table.delete(where)
                logger.debug(f"Deleted {count} chunks for {project_id}:{file_path}")
            return count
        except Exception as e:
            logger.error(f"Failed to delete chunks for {file_path}: {e}")
            raise StoreError(f"Delete failed for {file_path}: {e}") from e

    def _rows(self, project_id: Optional[str] = None, file_path: Optional[str] = None) -> list[dict[str, Any]]:
        """All chunk rows as plain dicts, optionally filtered, in table order."""
        try:
            rows = self.table.to_arrow().to_pylist()
        except Exception as e:
            raise StoreError(f"Failed to read chunks: {e}") from e
        if project_id is not None:
            rows = [row for row in rows if row["project_id"] == project_id]
        if file_path is not None:
            rows = [row for row in rows if row["file_path"] == file_path]
        return rows

    def get_chunks(self, project_id: str, file_path: Optional[str] = None) -> list[ChunkDocument]:
        """
        Chunks of a project (or one of its files) ordered by path and index.

        Args:
            project_id: Project namespace
            file_path: Optional relative file path

        Returns:
            List of ChunkDocument objects
        """
        rows = self._rows(project_id, file_path)
        rows.sort(key=lambda row: (row["file_path"], row["chunk_index"]))
        return [ChunkDocument(**row) for row in rows]

    def get_file_snapshot(self, project_id: str) -> dict[str, FileFingerprint]:
        """
        Fingerprint of every file currently indexed for a project.

        Args:
            project_id: Project namespace

        Returns:
            Mapping of relative file path to its stored fingerprint
        """
        snapshot: dict[str, FileFingerprint] = {}
        for row in self._rows(project_id):
            if row["file_path"] in snapshot:
                continue
            snapshot[row["file_path"]] = FileFingerprint(
                content_hash=row["content_hash"],
                file_size=row["file_size"],
                last_modified=row["last_modified"],
            )
        return snapshot

    # Project metadata

    def _metadata_rows(self) -> list[dict[str, Any]]:
        try:
            return self.metadata_table.to_arrow().to_pylist()
        except Exception as e:
            raise StoreError(f"Failed to read project metadata: {e}") from e

    def _get_record(self, project_id: str) -> Optional[ProjectRecord]:
        for row in self._metadata_rows():
            if row["project_id"] == project_id:
                return ProjectRecord(**row)
        return None

    def upsert_project_metadata(
        self,
        project_id: str,
        directory_path: str,
        exclude_patterns: list[str],
    ) -> ProjectMetadata:
        """
        Create or refresh the metadata record of a project.

        ``created_at`` is kept from the existing record; ``last_indexed`` and
        ``updated_at`` are set to now.

        Args:
            project_id: Project namespace
            directory_path: Root directory that was indexed
            exclude_patterns: Caller-supplied exclude patterns

        Returns:
            The stored metadata
        """
        now = time.time()
        try:
            existing = self._get_record(project_id)
            record = ProjectRecord(
                project_id=project_id,
                directory_path=str(directory_path),
                exclude_patterns=list(exclude_patterns),
                created_at=existing.created_at if existing else now,
                last_indexed=now,
                updated_at=now,
            )
            (
                self.metadata_table.merge_insert("project_id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute([record.model_dump()])
            )
        except StoreError:
            raise
        except Exception as e:
            logger.error(f"Failed to save metadata for {project_id}: {e}")
            raise StoreError(f"Metadata upsert failed for {project_id}: {e}") from e

        logger.debug(f"Saved metadata for project {project_id}")
        return ProjectMetadata.from_record(record)

    def get_project_metadata(self, project_id: str) -> Optional[ProjectMetadata]:
        """
        Get the metadata record of a project.

        Returns:
            ProjectMetadata if the project was indexed, None otherwise
        """
        record = self._get_record(project_id)
        return ProjectMetadata.from_record(record) if record else None

    def list_projects(self) -> list[ProjectSummary]:
        """
        List projects with their document counts.

        Projects that have chunks but no metadata record (e.g. from an
        interrupted first run) are listed with an unknown directory.

        Returns:
            List of ProjectSummary objects
        """
        counts: dict[str, int] = {}
        first_created: dict[str, float] = {}
        for row in self._rows():
            counts[row["project_id"]] = counts.get(row["project_id"], 0) + 1
            first_created.setdefault(row["project_id"], row["created_at"])

        projects = []
        seen = set()
        for row in self._metadata_rows():
            record = ProjectRecord(**row)
            seen.add(record.project_id)
            projects.append(ProjectSummary(
                project_id=record.project_id,
                document_count=counts.get(record.project_id, 0),
                last_modified=record.last_indexed or record.created_at,
                directory_path=record.directory_path,
                exclude_patterns=list(record.exclude_patterns),
                created_at=record.created_at,
                last_indexed=record.last_indexed,
            ))

        for project_id, count in counts.items():
            if project_id not in seen:
                projects.append(ProjectSummary(
                    project_id=project_id,
                    document_count=count,
                    last_modified=first_created[project_id],
                ))

        return projects

    def get_project_stats(self, project_id: str) -> ProjectStats:
        """
        Get statistics about a project's indexed content.

        Returns:
            ProjectStats with document count and distinct file paths
        """
        rows = self._rows(project_id)
        files = sorted({row["file_path"] for row in rows})
        return ProjectStats(
            project_id=project_id,
            total_documents=len(rows),
            total_files=len(files),
            files=files,
        )

    def delete_project(self, project_id: str) -> int:
        """
        Delete every chunk and the metadata record of a project.

        Returns:
            Number of chunks deleted
        """
        where = f"project_id = {sql_quote(project_id)}"
        try:
            count = self.table.count_rows(where)
            if count:
                self.table.delete(where)
            self.metadata_table.delete(where)
        except Exception as e:
            logger.error(f"Failed to delete project {project_id}: {e}")
            raise StoreError(f"Delete failed for project {project_id}: {e}") from e

        logger.info(f"Deleted project {project_id} ({count} chunks)")
        return count

    # Search

    def search(
        self,
        query_vector: list[float],
        top_k: int = 3,
        project_id: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Rank chunks by cosine similarity to the query vector.

        A linear scan over every chunk (of the project, if given). Ties keep
        table order.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results
            project_id: Optional project filter

        Returns:
            List of SearchResult objects, highest score first
        """
        rows = self._rows(project_id)
        if not rows or top_k <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        matrix = np.asarray([row["vector"] for row in rows], dtype=np.float64)
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query vector has dimension {query.shape[0]}, index has {matrix.shape[1]}"
            )
        scores = cosine_similarity(query, matrix)

        # sorted() is stable, so equal scores keep table order
        ranked = sorted(range(len(rows)), key=lambda i: -scores[i])[:top_k]

        results = []
        for i in ranked:
            row = rows[i]
            results.append(SearchResult(
                id=row["id"],
                project_id=row["project_id"],
                file_path=row["file_path"],
                content=row["content"],
                metadata=ChunkMetadata(
                    file_size=row["file_size"],
                    file_type=row["file_type"],
                    last_modified=row["last_modified"],
                    content_hash=row["content_hash"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                ),
                score=float(scores[i]),
            ))

        logger.debug(f"Search over {len(rows)} chunks returned {len(results)} results")
        return results

    def __repr__(self) -> str:
        """String representation."""
        return f"VectorStore(db_path={self.db_path}, table={self.table_name}, dimension={self.dimension})"
