"""MemoryManager — coordinates every memory component.

Single entry point for database lifecycle, CRUD with automatic embedding,
hybrid search, auto-capture, auto-recall and maintenance.  Components are
built here and passed to each other explicitly; nothing is a global.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hybrid_memory.memory.capture import CaptureConfig, MemoryCapture
from hybrid_memory.memory.embeddings import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    OllamaEmbeddingProvider,
)
from hybrid_memory.memory.errors import EmbeddingError, NotInitializedError
from hybrid_memory.memory.models import (
    CreateMemoryInput,
    MemoryCategory,
    ReembedReport,
    UpdateMemoryInput,
)
from hybrid_memory.memory.recall import MemoryRecaller, RecallConfig, RecallResult
from hybrid_memory.memory.search import HybridSearcher, SearchOptions
from hybrid_memory.memory.store import MemoryDatabase

if TYPE_CHECKING:
    from pathlib import Path

    from hybrid_memory.config import Settings
    from hybrid_memory.memory.capture import ExtractFn
    from hybrid_memory.memory.models import MemoryRecord, MemoryStats, SearchResult

logger = logging.getLogger(__name__)


class MemoryManager:
    """Owns the database and embedding provider for one memory store.

    Call ``await initialize()`` before anything else and ``await shutdown()``
    when done.  Every mutating call saves the database before returning.
    """

    def __init__(
        self,
        db_path: Path,
        embedder: EmbeddingProvider | None = None,
        *,
        capture_config: CaptureConfig | None = None,
        recall_config: RecallConfig | None = None,
    ) -> None:
        self._db = MemoryDatabase(db_path)
        self._embedder = embedder or HashEmbeddingProvider()
        self._capture_config = capture_config or CaptureConfig()
        self._recall_config = recall_config or RecallConfig()
        self._searcher: HybridSearcher | None = None
        self._capturer: MemoryCapture | None = None
        self._recaller: MemoryRecaller | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def database(self) -> MemoryDatabase:
        return self._db

    @property
    def embedder(self) -> EmbeddingProvider:
        return self._embedder

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self) -> None:
        if self._initialized:
            return

        self._db.open()
        await self._embedder.initialize()

        self._searcher = HybridSearcher(self._db, self._embedder)
        self._capturer = MemoryCapture(self._db, self._embedder, self._capture_config)
        self._recaller = MemoryRecaller(self._searcher, self._recall_config)
        self._initialized = True
        logger.info(
            "Memory manager ready: %s (%d memories, embeddings: %s)",
            self._db.path,
            self._db.count(),
            self._embedder.model_name,
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        self._db.close()
        await self._embedder.dispose()
        self._initialized = False

    # -- CRUD ------------------------------------------------------------------

    async def store(self, data: CreateMemoryInput) -> str:
        """Store a memory, embedding it first if no vector was supplied.

        An embedding failure is logged and the memory is stored without a
        vector; it stays keyword-searchable.
        """
        self._require_initialized()

        if data.embedding is None:
            try:
                embedding = await self._embedder.embed(data.content)
            except EmbeddingError:
                logger.warning("Failed to generate embedding; storing keyword-only", exc_info=True)
            else:
                data = data.model_copy(
                    update={"embedding": embedding, "embedding_model": self._embedder.model_name}
                )
        elif data.embedding_model is None:
            data = data.model_copy(update={"embedding_model": self._embedder.model_name})

        memory_id = self._db.create(data)
        self._db.save()
        return memory_id

    def get(self, memory_id: str) -> MemoryRecord | None:
        self._require_initialized()
        return self._db.get(memory_id)

    def list(
        self,
        *,
        category: MemoryCategory | str | None = None,
        source_session: str | None = None,
        order_by: str = "updated_at",
        order: str = "DESC",
        limit: int = 100,
        offset: int = 0,
    ) -> list[MemoryRecord]:
        self._require_initialized()
        return self._db.list(
            category=category,
            source_session=source_session,
            order_by=order_by,
            order=order,
            limit=limit,
            offset=offset,
        )

    async def update(self, memory_id: str, data: UpdateMemoryInput) -> bool:
        """Partial update. Returns False if the memory does not exist.

        New content is re-embedded.  If that fails the old vector is dropped
        rather than left describing text that no longer exists.
        """
        self._require_initialized()

        if data.content is not None and data.embedding is None:
            try:
                embedding = await self._embedder.embed(data.content)
            except EmbeddingError:
                logger.warning("Failed to re-embed %s; clearing its vector", memory_id, exc_info=True)
                data = data.model_copy(update={"clear_embedding": True})
            else:
                data = data.model_copy(
                    update={"embedding": embedding, "embedding_model": self._embedder.model_name}
                )
        elif data.embedding is not None and data.embedding_model is None:
            data = data.model_copy(update={"embedding_model": self._embedder.model_name})

        updated = self._db.update(memory_id, data)
        if updated:
            self._db.save()
        return updated

    def delete(self, memory_id: str) -> bool:
        self._require_initialized()
        deleted = self._db.delete(memory_id)
        if deleted:
            self._db.save()
        return deleted

    def delete_by_session(self, session_id: str) -> int:
        self._require_initialized()
        deleted = self._db.delete_by_session(session_id)
        if deleted:
            self._db.save()
        return deleted

    def count(self, category: MemoryCategory | str | None = None) -> int:
        self._require_initialized()
        return self._db.count(category)

    # -- Search / capture / recall ---------------------------------------------

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        self._require_initialized()
        return await self._searcher.search(query, options)

    async def capture_from_conversation(
        self,
        user_message: str,
        assistant_message: str,
        session_id: str,
        extract_fn: ExtractFn,
    ) -> list[str]:
        """Extract and store memories from one exchange. Returns new IDs."""
        self._require_initialized()
        ids = await self._capturer.capture_from_conversation(
            user_message, assistant_message, session_id, extract_fn
        )
        if ids:
            self._db.save()
        return ids

    async def recall(self, user_message: str) -> RecallResult:
        """Relevant memories plus a formatted block for prompt injection."""
        self._require_initialized()
        return await self._recaller.recall(user_message)

    # -- Stats & maintenance ---------------------------------------------------

    def stats(self) -> MemoryStats:
        self._require_initialized()
        return self._db.stats()

    async def reembed_all(self, batch_size: int = 50) -> ReembedReport:
        """Re-embed every memory, e.g. after switching embedding model."""
        self._require_initialized()
        if batch_size <= 0:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)

        total = self._db.count()
        records = self._db.list(order_by="created_at", order="ASC", limit=max(total, 1))
        succeeded = 0
        failed = 0

        for start in range(0, len(records), batch_size):
            batch = records[start : start + batch_size]
            try:
                embeddings = await self._embedder.embed_batch([r.content for r in batch])
            except EmbeddingError:
                logger.exception("Batch re-embed failed at offset %d", start)
                failed += len(batch)
                continue

            for record, embedding in zip(batch, embeddings, strict=True):
                self._db.update(
                    record.id,
                    UpdateMemoryInput(
                        embedding=embedding, embedding_model=self._embedder.model_name
                    ),
                )
                succeeded += 1

        self._db.save()
        logger.info("Re-embedded %d/%d memories (%d failed)", succeeded, len(records), failed)
        return ReembedReport(total=len(records), succeeded=succeeded, failed=failed)

    def rebuild_index(self) -> None:
        """Regenerate the keyword index from record content."""
        self._require_initialized()
        self._db.rebuild_keyword_index()
        self._db.save()

    # -- Internal helpers ------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            msg = "MemoryManager not initialized. Call initialize() first."
            raise NotInitializedError(msg)


def create_embedder(settings: Settings) -> EmbeddingProvider:
    """Build the embedding provider named by ``settings.embedding_provider``."""
    if settings.embedding_provider == "ollama":
        return OllamaEmbeddingProvider(
            base_url=settings.ollama_base_url,
            model=settings.ollama_embedding_model,
            dimensions=settings.ollama_embedding_dimensions,
            timeout=settings.ollama_timeout_seconds,
        )
    if settings.embedding_provider == "hash":
        return HashEmbeddingProvider(dimensions=settings.embedding_dimensions)
    msg = f"Unknown embedding provider: {settings.embedding_provider!r}. Use 'hash' or 'ollama'."
    raise ValueError(msg)


def create_memory_manager(
    settings: Settings, embedder: EmbeddingProvider | None = None
) -> MemoryManager:
    """Wire a MemoryManager from settings. Call ``initialize()`` on the result."""
    categories = [MemoryCategory(c) for c in settings.get_capture_categories()] or list(
        MemoryCategory
    )
    return MemoryManager(
        settings.memory_db_path,
        embedder or create_embedder(settings),
        capture_config=CaptureConfig(
            enabled=settings.capture_enabled,
            deduplication_threshold=settings.capture_dedup_threshold,
            min_confidence=settings.capture_min_confidence,
            max_per_turn=settings.capture_max_per_turn,
            categories=categories,
        ),
        recall_config=RecallConfig(
            enabled=settings.recall_enabled,
            max_recall=settings.recall_max_results,
            min_score=settings.recall_min_score,
            vector_weight=settings.recall_vector_weight,
            keyword_weight=settings.recall_keyword_weight,
        ),
    )
