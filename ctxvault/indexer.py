"""
Indexing orchestrator for ctxvault.

Drives one index run for a project: enumerate files, decide per file whether
it needs (re-)embedding, chunk and embed the delta, reconcile deleted files,
persist the new chunks in one bulk insert and refresh the project metadata.
Progress milestones and log lines go to a ProgressSink.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .chunkers import ChunkStrategy, LineChunker
from .config import Config
from .embeddings import EmbeddingModel
from .exceptions import EnumerationError, StoreError
from .models import ChunkDocument, DeltaStats, IndexResult
from .progress import ProgressReporter, ProgressSink
from .scanner import (
    FileChange,
    ScannedFile,
    classify,
    find_deleted,
    fingerprint_file,
    is_text_file,
    walk_files,
)
from .store import VectorStore

logger = logging.getLogger(__name__)

# Progress checkpoints (percent)
SCAN_STARTED = 5
SCAN_DONE = 10
SNAPSHOT_LOADED = 15
FULL_FILES_START = 15
DELTA_FILES_START = 20
FILES_END = 85
DELETIONS = 87
SAVING = 90
METADATA = 95
DONE = 100


@dataclass
class _RunState:
    """Counters and pending chunks accumulated during one run."""
    documents: list[ChunkDocument] = field(default_factory=list)
    processed: int = 0
    skipped: int = 0
    updated: int = 0
    added: int = 0
    deleted: int = 0
    errors: int = 0


class Indexer:
    """
    Orchestrates full and delta indexing of a directory into a project.

    Features:
    - Stable directory walk with built-in and caller exclude patterns
    - Delta mode: skip unchanged files, replace updated ones, purge deleted ones
    - Per-file error isolation; storage and enumeration errors abort the run
    - Progress milestones suitable for a polling client
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingModel,
        config: Config,
        chunker: Optional[ChunkStrategy] = None,
    ):
        """
        Initialize the indexer.

        Args:
            store: Document store for persisting chunks
            embeddings: Embedding model for generating vectors
            config: Configuration object
            chunker: Chunking strategy (defaults to LineChunker)
        """
        self.store = store
        self.embeddings = embeddings
        self.config = config
        self.chunker = chunker or LineChunker(
            max_chunk_size=config.get("indexer", "max_chunk_size", default=2000)
        )
        self.max_file_size = config.get("indexer", "max_file_size", default=1048576)
        self.extra_exclude = list(config.get("indexer", "extra_exclude", default=[]))
        self.log_every = max(1, config.get("indexer", "log_every", default=10))

    async def run(
        self,
        root_directory: str | Path,
        project_id: str,
        exclude_patterns: Optional[list[str]] = None,
        delta_only: bool = False,
        sink: Optional[ProgressSink] = None,
    ) -> IndexResult:
        """
        Index a directory into a project.

        Args:
            root_directory: Directory to index
            project_id: Project namespace
            exclude_patterns: Caller exclude patterns (added to the built-in set)
            delta_only: Only process files changed since the last run
            sink: Receiver for progress and log lines

        Returns:
            IndexResult with counters (and delta stats in delta mode)

        Raises:
            EnumerationError: If the directory cannot be walked
            StoreError: If a store read or write fails
        """
        if not project_id:
            raise ValueError("project_id is required")

        sink = sink or ProgressSink()
        exclude_patterns = list(exclude_patterns or [])
        root = Path(root_directory).expanduser().resolve()
        mode = "delta " if delta_only else ""

        sink.log(f"Starting {mode}indexing for project: {project_id}")
        sink.log(f"Directory: {root}")
        if exclude_patterns:
            sink.log(f"Excluding: {', '.join(exclude_patterns)}")

        try:
            sink.progress(SCAN_STARTED, "Scanning directory...")
            files = await asyncio.to_thread(
                lambda: list(walk_files(root, self.extra_exclude + exclude_patterns))
            )
            text_files = [path for path in files if is_text_file(path)]
            sink.log(
                f"Found {len(files)} files, {len(text_files)} text files to "
                f"{'check for changes' if delta_only else 'index'}"
            )
            sink.progress(SCAN_DONE, f"Found {len(text_files)} files to process")

            snapshot = {}
            if delta_only:
                snapshot = await asyncio.to_thread(self.store.get_file_snapshot, project_id)
                sink.log(f"Found {len(snapshot)} existing files in index")
                sink.progress(SNAPSHOT_LOADED, "Loaded existing file metadata")

            state = _RunState()
            reporter = ProgressReporter(
                len(text_files),
                start_percent=DELTA_FILES_START if delta_only else FULL_FILES_START,
                end_percent=FILES_END,
            )
            for rel_path in text_files:
                await self._process_file(root, rel_path, project_id, delta_only, snapshot, state, sink)
                event = reporter.update(rel_path)
                message = None
                if event.current % self.log_every == 0:
                    message = (
                        f"Processed {event.current}/{event.total} files "
                        f"(ETA {ProgressReporter.format_eta(event.eta_seconds)})"
                    )
                sink.progress(event.percent, message)
            if text_files:
                sink.log(reporter.get_summary())

            if delta_only:
                sink.progress(DELETIONS, "Checking for deleted files...")
                for rel_path in find_deleted(snapshot, set(files)):
                    await asyncio.to_thread(self.store.delete_chunks, project_id, rel_path)
                    state.deleted += 1
                if state.deleted:
                    sink.log(f"Removed {state.deleted} deleted files from index")

            if state.documents:
                sink.progress(SAVING, "Saving documents to database...")
                await asyncio.to_thread(self.store.add_chunks, state.documents)
                sink.log(
                    f"Indexed {len(state.documents)} document chunks for project {project_id}",
                    "success",
                )

            sink.progress(METADATA, "Saving project metadata...")
            await asyncio.to_thread(
                self.store.upsert_project_metadata, project_id, str(root), exclude_patterns
            )
            sink.progress(DONE, "Indexing completed successfully")

        except (EnumerationError, StoreError) as e:
            sink.log(f"Error during indexing: {e}", "error")
            raise

        result = IndexResult(
            project_id=project_id,
            files_processed=state.processed,
            chunks_indexed=len(state.documents),
            files_total=len(text_files),
        )
        if delta_only:
            result.delta_stats = DeltaStats(
                skipped=state.skipped,
                updated=state.updated,
                added=state.added,
                deleted=state.deleted,
                total=len(text_files),
            )
            sink.log(
                f"Delta stats: {state.skipped} skipped, {state.updated} updated, "
                f"{state.added} added, {state.deleted} deleted",
                "success",
            )
        if state.errors:
            logger.warning(f"{state.errors} files failed while indexing {project_id}")
        return result

    async def _process_file(
        self,
        root: Path,
        rel_path: str,
        project_id: str,
        delta_only: bool,
        snapshot: dict,
        state: _RunState,
        sink: ProgressSink,
    ) -> None:
        """
        Fingerprint, classify, chunk and embed one file.

        New chunks are queued on ``state``; the file's previous chunks are
        purged once its new chunks are embedded. Only StoreError escapes.
        """
        try:
            scanned = await asyncio.to_thread(fingerprint_file, root, rel_path)

            if len(scanned.content) > self.max_file_size:
                sink.log(f"Skipping large file: {rel_path}", "warning")
                return

            change = FileChange.ADDED
            if delta_only:
                change = classify(snapshot.get(rel_path), scanned.fingerprint)
                if change is FileChange.UNCHANGED:
                    state.skipped += 1
                    return

            documents = await self._embed_file(scanned, project_id)

            if not delta_only or change is FileChange.UPDATED:
                await asyncio.to_thread(self.store.delete_chunks, project_id, rel_path)

            if delta_only:
                if change is FileChange.UPDATED:
                    state.updated += 1
                else:
                    state.added += 1
            state.documents.extend(documents)
            state.processed += 1

        except StoreError:
            raise
        except Exception as e:
            state.errors += 1
            sink.log(f"Error processing file {rel_path}: {e}", "error")

    async def _embed_file(self, scanned: ScannedFile, project_id: str) -> list[ChunkDocument]:
        """Chunk a file and embed each chunk in line order."""
        chunks = self.chunker.chunk(scanned.content, scanned.rel_path)
        documents = []
        for index, chunk in enumerate(chunks):
            vector = await self.embeddings.embed_one(chunk.content)
            documents.append(ChunkDocument(
                project_id=project_id,
                file_path=scanned.rel_path,
                chunk_index=index,
                total_chunks=len(chunks),
                content=chunk.content,
                vector=vector,
                file_size=scanned.file_size,
                file_type=scanned.file_type,
                last_modified=scanned.last_modified,
                content_hash=scanned.content_hash,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
            ))
        return documents

    def __repr__(self) -> str:
        """String representation."""
        return f"Indexer(store={self.store})"
