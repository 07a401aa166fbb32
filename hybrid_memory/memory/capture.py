"""Automatic memory capture from conversation exchanges.

After each user/assistant exchange the caller hands us an ``extract_fn``
(any async prompt -> text callable, usually a cheap LLM).  It classifies the
exchange into candidate facts, which are filtered by confidence and
category, then checked for near-duplicates by embedding similarity before
being stored.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hybrid_memory.memory.embeddings import cosine_similarity
from hybrid_memory.memory.errors import DimensionMismatchError, EmbeddingError
from hybrid_memory.memory.models import CreateMemoryInput, MemoryCategory, SourceType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hybrid_memory.memory.embeddings import EmbeddingProvider
    from hybrid_memory.memory.store import MemoryDatabase

    ExtractFn = Callable[[str], Awaitable[str]]

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.6

MEMORY_EXTRACTION_PROMPT = """\
You are a memory extraction system. Analyze the conversation and extract key facts, \
preferences, decisions, and entities that should be remembered for future conversations.

Rules:
1. Only extract information that is EXPLICITLY stated or clearly implied
2. Do NOT infer or assume beyond what is directly communicated
3. Focus on information the user would want remembered across conversations
4. Skip small talk, greetings, and transient information
5. Each memory should be a single, self-contained fact
6. NEVER extract sensitive information (passwords, government IDs, financial details)
7. Rate your confidence: 1.0 = explicitly stated, 0.8 = clearly implied, 0.6 = somewhat implied

Respond with a JSON array. Each element:
{
  "content": "concise fact in third person (e.g., 'User prefers dark mode')",
  "category": "preference" | "fact" | "decision" | "entity" | "procedure" | "other",
  "confidence": 0.6-1.0,
  "tags": ["relevant", "tags"]
}

If nothing worth remembering, respond with: []"""


# -- Data structures ---------------------------------------------------------


@dataclass
class ExtractedMemory:
    content: str
    category: MemoryCategory
    confidence: float
    tags: list[str] = field(default_factory=list)


@dataclass
class CaptureConfig:
    """Auto-capture policy.

    Attributes:
        enabled: Master switch.
        deduplication_threshold: Remapped similarity in [0, 1] at or above
            which a candidate counts as a duplicate of a stored memory.
        min_confidence: Candidates below this are dropped.
        max_per_turn: At most this many candidates are stored per exchange.
        categories: Categories eligible for capture.
    """

    enabled: bool = True
    deduplication_threshold: float = 0.90
    min_confidence: float = 0.6
    max_per_turn: int = 5
    categories: list[MemoryCategory] = field(default_factory=lambda: list(MemoryCategory))


# -- Prompt building ---------------------------------------------------------


def build_extraction_prompt(user_message: str, assistant_message: str) -> str:
    """Full prompt sent to the extraction model."""
    conversation = f"USER: {user_message}\n\nASSISTANT: {assistant_message}"
    return f"{MEMORY_EXTRACTION_PROMPT}\n\n---\n\nConversation:\n{conversation}"


# -- Parsing -----------------------------------------------------------------


def _as_category(value: object) -> MemoryCategory:
    try:
        return MemoryCategory(str(value or "other"))
    except ValueError:
        return MemoryCategory.OTHER


def _as_confidence(value: object) -> float:
    try:
        confidence = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_CONFIDENCE
    if not math.isfinite(confidence) or confidence == 0:
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def parse_extraction_response(text: str) -> list[ExtractedMemory]:
    """Parse the model's JSON array, tolerating surrounding prose or fences.

    Anything malformed yields an empty list, never an exception.
    """
    start = text.find("[")
    end = text.rfind("]") + 1
    if start < 0 or end <= start:
        return []

    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        logger.warning("Failed to parse extraction JSON")
        return []

    if not isinstance(data, list):
        return []

    memories = []
    for item in data:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        tags = item.get("tags")
        memories.append(
            ExtractedMemory(
                content=content.strip(),
                category=_as_category(item.get("category")),
                confidence=_as_confidence(item.get("confidence")),
                tags=[t for t in tags if isinstance(t, str)] if isinstance(tags, list) else [],
            )
        )
    return memories


# -- Main pipeline -----------------------------------------------------------


class MemoryCapture:
    """Extracts, filters, deduplicates and stores memories from exchanges.

    Does not save the database; the caller decides when to flush.
    """

    def __init__(
        self,
        db: MemoryDatabase,
        embedder: EmbeddingProvider,
        config: CaptureConfig | None = None,
    ) -> None:
        self._db = db
        self._embedder = embedder
        self._config = config or CaptureConfig()

    @property
    def config(self) -> CaptureConfig:
        return self._config

    async def capture_from_conversation(
        self,
        user_message: str,
        assistant_message: str,
        session_id: str,
        extract_fn: ExtractFn,
    ) -> list[str]:
        """Extract memories from one exchange. Returns the IDs actually stored."""
        if not self._config.enabled:
            return []

        prompt = build_extraction_prompt(user_message, assistant_message)
        try:
            raw_response = await extract_fn(prompt)
        except Exception:
            logger.exception("Memory extraction call failed (non-fatal)")
            return []

        candidates = self.filter_candidates(parse_extraction_response(raw_response))

        stored_ids = []
        for candidate in candidates:
            memory_id = await self.store_with_deduplication(candidate, session_id)
            if memory_id:
                stored_ids.append(memory_id)

        if stored_ids:
            logger.info("Captured %d memories from session %s", len(stored_ids), session_id)
        return stored_ids

    def filter_candidates(self, candidates: list[ExtractedMemory]) -> list[ExtractedMemory]:
        """Apply the confidence floor, category allow-list and per-turn cap."""
        allowed = set(self._config.categories)
        kept = [
            c
            for c in candidates
            if c.confidence >= self._config.min_confidence and c.category in allowed
        ]
        return kept[: self._config.max_per_turn]

    async def store_with_deduplication(
        self, memory: ExtractedMemory, session_id: str
    ) -> str | None:
        """Store *memory* unless a near-duplicate exists. Returns the new ID or None."""
        data = CreateMemoryInput(
            content=memory.content,
            category=memory.category,
            confidence=memory.confidence,
            tags=memory.tags,
            source_type=SourceType.AUTO_CAPTURE,
            source_session=session_id,
        )

        try:
            embedding = await self._embedder.embed(memory.content)
        except EmbeddingError:
            logger.warning("Embedding failed; storing without deduplication", exc_info=True)
            return self._db.create(data)

        for existing_id, existing in self._db.all_embeddings():
            try:
                similarity = cosine_similarity(embedding, existing)
            except DimensionMismatchError:
                continue
            normalized = (similarity + 1) / 2
            if normalized >= self._config.deduplication_threshold:
                logger.info(
                    "Duplicate of %s (%.3f similarity), skipping: %r",
                    existing_id,
                    normalized,
                    memory.content[:50],
                )
                return None

        data.embedding = embedding
        data.embedding_model = self._embedder.model_name
        return self._db.create(data)
