"""
Embedding model wrapper for ctxvault.

Wraps sentence-transformers with lazy loading and a deterministic offline
fallback: when the model cannot be loaded or an encode call fails, the text is
mapped to a pseudo-random vector derived from its hash so indexing and search
keep working in a degraded mode.
"""

import asyncio
import hashlib
import logging
import threading
from typing import Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from .exceptions import EmbeddingError
from .models import EMBEDDING_DIMENSION
from .utils import retry_on_failure

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """
    Wrapper around sentence-transformers for generating embeddings.

    Features:
    - Lazy model loading (only loads when first needed)
    - Automatic GPU detection with CPU fallback
    - Deterministic hash-based fallback vectors when the model is unavailable
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: Optional[str] = None,
        dimension: int = EMBEDDING_DIMENSION,
        offline: bool = False,
    ):
        """
        Initialize the embedding model.

        Args:
            model_name: Name of the sentence-transformers model to use
            device: Device to use ('cuda', 'cpu', or None for auto-detect)
            dimension: Expected output dimension (also used for fallback vectors)
            offline: Never load the model; always use fallback vectors
        """
        self.model_name = model_name
        self.device = device
        self.dimension = dimension
        self.offline = offline
        self._model: Optional[SentenceTransformer] = None
        self._model_lock = threading.Lock()  # Thread safety for lazy loading
        self._load_error: Optional[str] = None

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first access (thread-safe)."""
        if self.offline:
            raise EmbeddingError("Embedding model disabled (offline mode)")
        if self._load_error is not None:
            raise EmbeddingError(f"Embedding model unavailable: {self._load_error}")
        if self._model is None:
            with self._model_lock:
                # Double-check pattern: another thread might have loaded it
                if self._model is None:
                    logger.info(f"Loading embedding model: {self.model_name}")
                    model = self._load_model()
                    actual = model.get_sentence_embedding_dimension()
                    if actual is not None and actual != self.dimension:
                        self._load_error = (
                            f"{self.model_name} produces {actual}-dimensional vectors, "
                            f"configured dimension is {self.dimension}"
                        )
                        raise EmbeddingError(f"Embedding model unavailable: {self._load_error}")
                    self._model = model
                    logger.info(f"Model loaded on device: {model.device}")
        return self._model

    @retry_on_failure(max_attempts=3, delay=0.5, exceptions=(RuntimeError, OSError))
    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(self.model_name, device=self.device)

    @property
    def available(self) -> bool:
        """True unless the model is disabled or failed to load."""
        return not self.offline and self._load_error is None

    def warm_up(self) -> bool:
        """
        Load the model eagerly and report whether it is usable.

        A failure is logged and remembered; every later call goes straight to
        the fallback vectors instead of retrying the load.

        Returns:
            True if the model loaded, False if running on fallback vectors
        """
        if self.offline:
            logger.info("Embedding model in offline mode, using fallback vectors")
            return False
        try:
            _ = self.model
            return True
        except EmbeddingError as e:
            logger.warning(str(e))
            return False
        except Exception as e:
            self._load_error = str(e)
            logger.warning(f"Embedding model failed to load: {e}")
            logger.warning("Falling back to deterministic hash-based embeddings")
            return False

    def fallback_embedding(self, text: str) -> list[float]:
        """
        Deterministic pseudo-random vector for ``text``.

        Args:
            text: Text to embed

        Returns:
            Vector of ``self.dimension`` floats, identical for identical text
        """
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        seed = int.from_bytes(digest[:4], "big", signed=True)
        values = np.sin(seed + np.arange(self.dimension, dtype=np.float64)) * 0.1
        return values.tolist()

    def embed_text(self, text: str) -> list[float]:
        """
        Generate embedding for a single text, falling back on any failure.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats
        """
        clean_text = text.replace("\n", " ").strip()
        if not clean_text or not self.available:
            return self.fallback_embedding(text)
        try:
            embedding = self.model.encode(
                clean_text,
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=True,  # Normalize for better similarity scores
            )
            return embedding.tolist()
        except Exception as e:
            if self._model is None and self._load_error is None:
                self._load_error = str(e)
            logger.warning(f"Embedding failed ({e}), using fallback vector")
            return self.fallback_embedding(text)

    async def embed_one(self, text: str) -> list[float]:
        """
        Embed one text without blocking the event loop.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats
        """
        return await asyncio.to_thread(self.embed_text, text)

    def __repr__(self) -> str:
        """String representation."""
        if self.offline:
            state = "offline"
        elif self._model is not None:
            state = "loaded"
        elif self._load_error is not None:
            state = "unavailable"
        else:
            state = "not loaded"
        return f"EmbeddingModel(model={self.model_name}, {state})"
