"""
Component wiring for ctxvault.

A ``VaultContext`` holds the one set of components (store, embedding model,
indexer, job manager) that an adapter process shares. The REST API, the MCP
server and the CLI each build one and pass it down explicitly.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .config import Config
from .embeddings import EmbeddingModel
from .indexer import Indexer
from .jobs import JobManager
from .models import EMBEDDING_DIMENSION, SearchResult
from .store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class VaultContext:
    config: Config
    store: VectorStore
    embeddings: EmbeddingModel
    indexer: Indexer
    jobs: JobManager

    @classmethod
    def from_config(cls, config: Optional[Config] = None, offline: bool = False) -> "VaultContext":
        """
        Build all components from configuration.

        Args:
            config: Configuration (defaults to ``Config()``)
            offline: Never load the embedding model; use fallback vectors

        Returns:
            A ready VaultContext; the embedding model loads lazily
        """
        config = config or Config()
        dimension = config.get("embeddings", "dimension", default=EMBEDDING_DIMENSION)
        store = VectorStore(config.db_path, dimension=dimension)
        embeddings = EmbeddingModel(
            model_name=config.get("embeddings", "model", default="all-MiniLM-L6-v2"),
            device=config.get("embeddings", "device"),
            dimension=dimension,
            offline=offline,
        )
        indexer = Indexer(store, embeddings, config)
        jobs = JobManager.from_config(config)
        logger.debug(f"Initialized context with {store} and {embeddings}")
        return cls(config=config, store=store, embeddings=embeddings, indexer=indexer, jobs=jobs)

    async def search(self, query: str, top_k: int, project_id: Optional[str] = None) -> list[SearchResult]:
        """Embed a query and return the ``top_k`` most similar chunks."""
        query_vector = await self.embeddings.embed_one(query)
        return await asyncio.to_thread(self.store.search, query_vector, top_k, project_id)
