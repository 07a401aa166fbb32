"""Data models for memory records and search results."""

from __future__ import annotations

import json
import sqlite3
import time
from enum import StrEnum
from typing import Any, Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

EMBEDDING_DTYPE = np.dtype("<f4")

MatchType = Literal["vector", "keyword", "hybrid"]


class MemoryCategory(StrEnum):
    """What kind of thing a memory describes.

    - preference: "User prefers dark mode"
    - fact: "User lives in Lisbon"
    - decision: "We agreed to ship on Friday"
    - entity: people, places, projects
    - procedure: how-to knowledge
    - other: uncategorized
    """

    PREFERENCE = "preference"
    FACT = "fact"
    DECISION = "decision"
    ENTITY = "entity"
    PROCEDURE = "procedure"
    OTHER = "other"


class SourceType(StrEnum):
    """Provenance of a memory."""

    MANUAL = "manual"
    AUTO_CAPTURE = "auto_capture"
    IMPORT = "import"


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


# -- Embedding codec ---------------------------------------------------------


def encode_embedding(vector: np.ndarray | list[float]) -> bytes:
    """Pack a vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    """Unpack little-endian float32 bytes into a writable float32 vector."""
    return np.frombuffer(blob, dtype=EMBEDDING_DTYPE).astype(np.float32)


def _coerce_vector(value: Any) -> np.ndarray | None:
    if value is None:
        return None
    vec = np.asarray(value, dtype=np.float32)
    if vec.ndim != 1:
        msg = f"Embedding must be one-dimensional, got shape {vec.shape}"
        raise ValueError(msg)
    return vec


# -- Records -----------------------------------------------------------------


class MemoryRecord(BaseModel):
    """A single persisted memory."""

    id: str
    category: MemoryCategory = MemoryCategory.OTHER
    content: str
    embedding: bytes | None = None
    embedding_model: str | None = None
    embedding_dims: int | None = None
    source_type: SourceType = SourceType.MANUAL
    source_session: str | None = None
    source_message_index: int | None = None
    confidence: float = 1.0
    tags: list[str] = Field(default_factory=list)
    created_at: int
    updated_at: int
    last_accessed_at: int
    access_count: int = 0

    def embedding_vector(self) -> np.ndarray | None:
        """Decode the stored embedding, or None when the record has none."""
        if self.embedding is None:
            return None
        return decode_embedding(self.embedding)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> MemoryRecord:
        """Deserialize from a ``memories`` row."""
        return cls(
            id=row["id"],
            category=row["category"],
            content=row["content"],
            embedding=bytes(row["embedding"]) if row["embedding"] is not None else None,
            embedding_model=row["embedding_model"],
            embedding_dims=row["embedding_dims"],
            source_type=row["source_type"],
            source_session=row["source_session"],
            source_message_index=row["source_message_index"],
            confidence=row["confidence"],
            tags=json.loads(row["tags"] or "[]"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_accessed_at=row["last_accessed_at"],
            access_count=row["access_count"],
        )


class CreateMemoryInput(BaseModel):
    """Input for a new memory. ID and timestamps are generated by the store."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: str = Field(min_length=1)
    category: MemoryCategory = MemoryCategory.OTHER
    embedding: np.ndarray | None = None
    embedding_model: str | None = None
    source_type: SourceType = SourceType.MANUAL
    source_session: str | None = None
    source_message_index: int | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "content must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("embedding", mode="before")
    @classmethod
    def _as_vector(cls, value: Any) -> np.ndarray | None:
        return _coerce_vector(value)


class UpdateMemoryInput(BaseModel):
    """Partial update. Fields left as None are not touched."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: str | None = Field(default=None, min_length=1)
    category: MemoryCategory | None = None
    embedding: np.ndarray | None = None
    embedding_model: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    tags: list[str] | None = None
    # Drop a stored vector that no longer matches new content.
    clear_embedding: bool = False

    @field_validator("embedding", mode="before")
    @classmethod
    def _as_vector(cls, value: Any) -> np.ndarray | None:
        return _coerce_vector(value)

    def is_empty(self) -> bool:
        return not self.clear_embedding and all(
            getattr(self, name) is None
            for name in ("content", "category", "embedding", "embedding_model", "confidence", "tags")
        )


# -- Search / stats ----------------------------------------------------------


class SearchResult(BaseModel):
    """A hydrated search hit. ``score`` is always within [0, 1]."""

    record: MemoryRecord
    score: float
    match_type: MatchType


class MemoryStats(BaseModel):
    """Database statistics for monitoring."""

    total: int
    with_embeddings: int
    by_category: dict[str, int]
    size_bytes: int


class ReembedReport(BaseModel):
    """Outcome of re-embedding every stored memory."""

    total: int
    succeeded: int
    failed: int
