"""Memory system — records, storage, embeddings, hybrid search, capture and recall."""

from hybrid_memory.memory.capture import CaptureConfig, MemoryCapture
from hybrid_memory.memory.embeddings import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    OllamaEmbeddingProvider,
)
from hybrid_memory.memory.errors import (
    CorruptDatabaseError,
    DimensionMismatchError,
    EmbeddingError,
    MemoryEngineError,
    NotInitializedError,
)
from hybrid_memory.memory.manager import MemoryManager, create_memory_manager
from hybrid_memory.memory.models import (
    CreateMemoryInput,
    MemoryCategory,
    MemoryRecord,
    SearchResult,
    SourceType,
    UpdateMemoryInput,
)
from hybrid_memory.memory.recall import MemoryRecaller, RecallConfig, RecallResult
from hybrid_memory.memory.search import HybridSearcher, SearchOptions
from hybrid_memory.memory.store import MemoryDatabase

__all__ = [
    "CaptureConfig",
    "CorruptDatabaseError",
    "CreateMemoryInput",
    "DimensionMismatchError",
    "EmbeddingError",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "HybridSearcher",
    "MemoryCapture",
    "MemoryCategory",
    "MemoryDatabase",
    "MemoryEngineError",
    "MemoryManager",
    "MemoryRecaller",
    "MemoryRecord",
    "NotInitializedError",
    "OllamaEmbeddingProvider",
    "RecallConfig",
    "RecallResult",
    "SearchOptions",
    "SearchResult",
    "SourceType",
    "UpdateMemoryInput",
    "create_memory_manager",
]
