"""Shared test fixtures."""

import numpy as np
import pytest

from hybrid_memory.memory.embeddings import HashEmbeddingProvider
from hybrid_memory.memory.errors import EmbeddingError
from hybrid_memory.memory.manager import MemoryManager
from hybrid_memory.memory.store import MemoryDatabase


class FailingEmbedder(HashEmbeddingProvider):
    """Hash provider whose every embedding call fails."""

    async def embed(self, text: str) -> np.ndarray:
        msg = "embedding service down"
        raise EmbeddingError(msg)

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        msg = "embedding service down"
        raise EmbeddingError(msg)


@pytest.fixture
def db(tmp_path):
    """An open MemoryDatabase backed by a temporary file."""
    database = MemoryDatabase(tmp_path / "memory.db")
    database.open()
    yield database
    database.close()


@pytest.fixture
def embedder() -> HashEmbeddingProvider:
    return HashEmbeddingProvider()


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()


@pytest.fixture
async def manager(tmp_path):
    """An initialized MemoryManager using hash embeddings."""
    mgr = MemoryManager(tmp_path / "memory.db", HashEmbeddingProvider())
    await mgr.initialize()
    yield mgr
    await mgr.shutdown()
