"""
Unit tests for the embeddings module.

Tests the EmbeddingModel wrapper around sentence-transformers. The model
class is patched so no weights are downloaded.
"""

import math
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from ctxvault.embeddings import EmbeddingModel
from ctxvault.exceptions import EmbeddingError


def fake_transformer(dimension=384):
    model = MagicMock()
    model.device = "cpu"
    model.get_sentence_embedding_dimension.return_value = dimension

    def encode(texts, **kwargs):
        if isinstance(texts, str):
            return np.full(dimension, 1.0 / math.sqrt(dimension))
        return np.array([np.full(dimension, 1.0 / math.sqrt(dimension)) for _ in texts])

    model.encode.side_effect = encode
    return model


def test_embedding_model_lazy_loading():
    """Test that the model is lazy-loaded on first use."""
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=fake_transformer()) as cls:
        model = EmbeddingModel()
        assert model._model is None

        _ = model.model
        assert model._model is not None
        cls.assert_called_once_with("all-MiniLM-L6-v2", device=None)


def test_embed_text_uses_model():
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=fake_transformer()):
        model = EmbeddingModel()
        embedding = model.embed_text("def hello():\n    pass")

    assert len(embedding) == 384
    assert all(isinstance(x, float) for x in embedding)
    norm = math.sqrt(sum(x * x for x in embedding))
    assert abs(norm - 1.0) < 0.01


def test_fallback_is_deterministic():
    model = EmbeddingModel(offline=True)

    first = model.embed_text("same text")
    second = model.embed_text("same text")
    other = model.embed_text("different text")

    assert first == second
    assert first != other
    assert len(first) == 384
    assert all(-0.1 <= x <= 0.1 for x in first)


def test_fallback_respects_dimension():
    model = EmbeddingModel(offline=True, dimension=16)
    assert len(model.fallback_embedding("x")) == 16


def test_offline_model_is_unavailable():
    model = EmbeddingModel(offline=True)

    assert model.available is False
    assert model.warm_up() is False
    with pytest.raises(EmbeddingError):
        _ = model.model
    assert "offline" in repr(model)


def test_load_failure_falls_back():
    """A model that cannot be loaded is reported once and fallback vectors are used."""
    with patch("ctxvault.embeddings.SentenceTransformer", side_effect=ValueError("no such model")):
        model = EmbeddingModel(model_name="missing-model")

        assert model.warm_up() is False
        assert model.available is False
        embedding = model.embed_text("query")

    assert embedding == model.fallback_embedding("query")
    assert "unavailable" in repr(model)


def test_encode_failure_falls_back():
    broken = fake_transformer()
    broken.encode.side_effect = RuntimeError("cuda error")
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=broken):
        model = EmbeddingModel()
        embedding = model.embed_text("query")

    assert embedding == model.fallback_embedding("query")


def test_blank_text_uses_fallback():
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=fake_transformer()) as cls:
        model = EmbeddingModel()
        embedding = model.embed_text("\n\n")

    assert embedding == model.fallback_embedding("\n\n")
    cls.assert_not_called()


@pytest.mark.asyncio
async def test_embed_one_matches_embed_text():
    model = EmbeddingModel(offline=True)

    assert await model.embed_one("async text") == model.embed_text("async text")


def test_dimension_mismatch_uses_fallback():
    """A model whose output does not match the configured dimension is not used."""
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=fake_transformer(dimension=768)):
        model = EmbeddingModel(dimension=384)

        assert model.warm_up() is False
        assert model.available is False
        embedding = model.embed_text("query")

    assert len(embedding) == 384
    assert embedding == model.fallback_embedding("query")


def test_matching_custom_dimension():
    with patch("ctxvault.embeddings.SentenceTransformer", return_value=fake_transformer(dimension=768)):
        model = EmbeddingModel(model_name="all-mpnet-base-v2", dimension=768)

        assert model.warm_up() is True
        assert len(model.embed_text("query")) == 768
