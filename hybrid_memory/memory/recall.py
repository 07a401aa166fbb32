"""Recall relevant memories for a user message and format them for a prompt."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hybrid_memory.memory.search import SearchOptions

if TYPE_CHECKING:
    from hybrid_memory.memory.models import SearchResult
    from hybrid_memory.memory.search import HybridSearcher

logger = logging.getLogger(__name__)


@dataclass
class RecallConfig:
    enabled: bool = True
    max_recall: int = 5
    min_score: float = 0.3
    vector_weight: float = 0.7
    keyword_weight: float = 0.3


@dataclass
class RecallResult:
    memories: list[SearchResult] = field(default_factory=list)
    context_block: str = ""


def format_context_block(results: list[SearchResult]) -> str:
    """Render results as a ``<relevant-memories>`` block. Empty input -> ""."""
    if not results:
        return ""

    lines = []
    for index, result in enumerate(results, start=1):
        record = result.record
        tags = f' tags="{", ".join(record.tags)}"' if record.tags else ""
        lines.append(
            f'  <memory index="{index}" category="{record.category}" '
            f'confidence="{record.confidence:.2f}" '
            f'relevance="{result.score:.3f}" match="{result.match_type}"{tags}>\n'
            f"    {record.content}\n"
            f"  </memory>"
        )

    body = "\n".join(lines)
    return f'<relevant-memories count="{len(results)}">\n{body}\n</relevant-memories>'


class MemoryRecaller:
    """Runs a fixed-configuration hybrid search and formats the hits."""

    def __init__(self, searcher: HybridSearcher, config: RecallConfig | None = None) -> None:
        self._searcher = searcher
        self._config = config or RecallConfig()

    async def recall(self, user_message: str) -> RecallResult:
        if not self._config.enabled:
            return RecallResult()

        options = SearchOptions(
            max_results=self._config.max_recall,
            min_score=self._config.min_score,
            vector_weight=self._config.vector_weight,
            keyword_weight=self._config.keyword_weight,
        )
        try:
            memories = await self._searcher.search(user_message, options)
        except Exception:
            logger.exception("Memory recall search failed")
            return RecallResult()

        if not memories:
            return RecallResult()
        return RecallResult(memories=memories, context_block=format_context_block(memories))
