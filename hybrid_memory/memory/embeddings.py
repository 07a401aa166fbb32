"""Embedding providers and vector math.

Callers depend only on :class:`EmbeddingProvider`.  Two implementations:

- :class:`HashEmbeddingProvider` — deterministic n-gram hashing.  No model,
  no network.  Similar strings share n-grams and so land closer together,
  which is enough to exercise the whole search pipeline.  Not semantic.
- :class:`OllamaEmbeddingProvider` — delegates to a local Ollama server.
  Any transport, HTTP or shape problem surfaces as ``EmbeddingError``.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod

import httpx
import numpy as np

from hybrid_memory.memory.errors import DimensionMismatchError, EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Maps text to a fixed-width unit-length float32 vector."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier stored alongside each embedding."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Width of every vector this provider returns."""

    @abstractmethod
    async def initialize(self) -> None:
        """Load the model / open connections. Called once before use."""

    @abstractmethod
    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Embed several texts, in order."""

    @abstractmethod
    async def dispose(self) -> None:
        """Release resources."""


# -- Hash-based reference provider -------------------------------------------


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic pseudo-embeddings from character trigrams and words.

    Each feature is SHA-256 hashed: the first four bytes pick a bucket,
    the next four a signed magnitude.  A small contribution from the hash
    of the whole text keeps distinct strings distinct.  The result is
    L2-normalized, so identical text always yields the identical vector.
    """

    MODEL_NAME = "simple-hash-v1"

    def __init__(self, dimensions: int = 128) -> None:
        if dimensions <= 0:
            msg = f"dimensions must be positive, got {dimensions}"
            raise ValueError(msg)
        self._dimensions = dimensions

    @property
    def model_name(self) -> str:
        return self.MODEL_NAME

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def initialize(self) -> None:
        pass

    async def embed(self, text: str) -> np.ndarray:
        return self._hash_to_vector(text)

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        return [self._hash_to_vector(text) for text in texts]

    async def dispose(self) -> None:
        pass

    def _hash_to_vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self._dimensions, dtype=np.float32)
        normalized = text.lower().strip()
        if not normalized:
            return vec

        features = [normalized[i : i + 3] for i in range(len(normalized) - 2)]
        features.extend(normalized.split())

        for feature in features:
            digest = hashlib.sha256(feature.encode("utf-8")).digest()
            position = int.from_bytes(digest[0:4], "little") % self._dimensions
            magnitude = int.from_bytes(digest[4:8], "little", signed=True) / 2147483647 * 0.1
            vec[position] += magnitude

        global_digest = np.frombuffer(
            hashlib.sha256(normalized.encode("utf-8")).digest(), dtype=np.uint8
        ).astype(np.float32)
        vec += (global_digest[np.arange(self._dimensions) % 32] - 128) / 2560

        return normalize(vec)


# -- Ollama-backed provider --------------------------------------------------


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embeddings from a local Ollama server (``POST /api/embed``).

    ``transport`` is only for tests (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "all-minilm",
        dimensions: int = 384,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._dimensions = dimensions
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def initialize(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.info("Ollama embeddings: %s at %s", self._model, self._base_url)

    async def embed(self, text: str) -> np.ndarray:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        if not texts:
            return []
        if self._client is None:
            msg = "OllamaEmbeddingProvider not initialized. Call initialize() first."
            raise EmbeddingError(msg)

        try:
            resp = await self._client.post(
                "/api/embed", json={"model": self._model, "input": texts}
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            msg = f"Ollama embedding request failed: {exc}"
            raise EmbeddingError(msg) from exc
        except ValueError as exc:
            msg = f"Ollama returned invalid JSON: {exc}"
            raise EmbeddingError(msg) from exc

        raw_vectors = body.get("embeddings") if isinstance(body, dict) else None
        if not isinstance(raw_vectors, list) or len(raw_vectors) != len(texts):
            msg = f"Ollama returned {type(raw_vectors).__name__} for {len(texts)} inputs"
            raise EmbeddingError(msg)

        vectors = []
        for raw in raw_vectors:
            try:
                vec = np.asarray(raw, dtype=np.float32)
            except (TypeError, ValueError) as exc:
                msg = f"Ollama returned a non-numeric embedding: {exc}"
                raise EmbeddingError(msg) from exc
            if vec.ndim != 1 or vec.shape[0] != self._dimensions:
                msg = f"Expected {self._dimensions}-dim embedding, got shape {vec.shape}"
                raise EmbeddingError(msg)
            vectors.append(normalize(vec))
        return vectors

    async def dispose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# -- Vector math -------------------------------------------------------------


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two unit vectors, in [-1, 1].

    Vectors are assumed normalized, so this is just the dot product.
    Raises ``DimensionMismatchError`` when lengths differ.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    return float(np.dot(a, b))


def normalize(vec: np.ndarray) -> np.ndarray:
    """Scale *vec* to unit length in place. All-zero vectors are left alone."""
    magnitude = float(np.linalg.norm(vec))
    if magnitude > 0:
        vec /= magnitude
    return vec
