"""HybridSearcher — weighted merge of vector and keyword search.

1. Vector: embed the query, cosine against every stored embedding
   (brute force; fine for tens of thousands of records).
2. Keyword: FTS4 match with BM25-approximated scores, re-normalized so the
   best keyword hit is 1.0.
3. Merge by ID with configurable weights, drop weak hits, hydrate records.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from hybrid_memory.memory.embeddings import cosine_similarity
from hybrid_memory.memory.errors import DimensionMismatchError, EmbeddingError
from hybrid_memory.memory.models import MatchType, MemoryCategory, SearchResult

if TYPE_CHECKING:
    from hybrid_memory.memory.embeddings import EmbeddingProvider
    from hybrid_memory.memory.store import MemoryDatabase

logger = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    """Tuning knobs for a hybrid search."""

    max_results: int = Field(default=6, ge=1)
    min_score: float = Field(default=0.3, ge=0.0, le=1.0)
    vector_search: bool = True
    keyword_search: bool = True
    vector_weight: float = Field(default=0.7, ge=0.0)
    keyword_weight: float = Field(default=0.3, ge=0.0)
    category: MemoryCategory | None = None
    candidate_multiplier: int = Field(default=4, ge=1)

    @property
    def candidate_limit(self) -> int:
        return self.max_results * self.candidate_multiplier


@dataclass
class ScoredId:
    """An unhydrated hit from one or both retrieval signals."""

    id: str
    score: float
    match_type: MatchType


class HybridSearcher:
    """Runs both retrieval signals and merges them into one ranked list."""

    def __init__(self, db: MemoryDatabase, embedder: EmbeddingProvider) -> None:
        self._db = db
        self._embedder = embedder

    async def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        """Hybrid search. Scores are in [0, 1], best first."""
        opts = options or SearchOptions()
        limit = opts.candidate_limit

        vector_hits, keyword_hits = await asyncio.gather(
            self.vector_search(query, limit) if opts.vector_search else _no_hits(),
            self.keyword_search(query, limit) if opts.keyword_search else _no_hits(),
        )

        merged = merge_results(
            vector_hits,
            keyword_hits,
            vector_weight=opts.vector_weight,
            keyword_weight=opts.keyword_weight,
        )
        candidates = [hit for hit in merged if hit.score >= opts.min_score]
        if not candidates:
            return []

        # Records deleted since scoring are silently dropped.
        records = {record.id: record for record in self._db.by_ids(hit.id for hit in candidates)}

        results: list[SearchResult] = []
        for hit in candidates:
            record = records.get(hit.id)
            if record is None:
                continue
            if opts.category is not None and record.category != opts.category:
                continue
            results.append(
                SearchResult(
                    record=record,
                    score=min(1.0, max(0.0, hit.score)),
                    match_type=hit.match_type,
                )
            )
            if len(results) >= opts.max_results:
                break

        logger.debug(
            "Hybrid search %r: %d vector + %d keyword -> %d merged -> %d results",
            query[:80],
            len(vector_hits),
            len(keyword_hits),
            len(merged),
            len(results),
        )
        return results

    async def vector_search(self, query: str, limit: int) -> list[ScoredId]:
        """Cosine similarity against every stored embedding, remapped to [0, 1]."""
        try:
            query_vec = await self._embedder.embed(query)
        except EmbeddingError:
            logger.warning("Query embedding failed; skipping vector search", exc_info=True)
            return []

        hits = []
        for memory_id, vector in self._db.all_embeddings():
            try:
                similarity = cosine_similarity(query_vec, vector)
            except DimensionMismatchError:
                continue
            score = (similarity + 1) / 2
            if score > 0:
                hits.append(ScoredId(memory_id, score, "vector"))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def keyword_search(self, query: str, limit: int) -> list[ScoredId]:
        """FTS hits with scores divided by the best score in the set."""
        raw = self._db.keyword_search(query, limit)
        if not raw:
            return []

        best = max(score for _, score in raw)
        normalizer = best if best > 0 else 1.0
        return [ScoredId(memory_id, score / normalizer, "keyword") for memory_id, score in raw]


def merge_results(
    vector_hits: list[ScoredId],
    keyword_hits: list[ScoredId],
    *,
    vector_weight: float = 0.7,
    keyword_weight: float = 0.3,
) -> list[ScoredId]:
    """Weighted merge by ID, best first.

    Every hit is scored ``vector_weight * v + keyword_weight * k`` with a
    missing signal counting as zero.  Hits found by both signals are
    tagged ``hybrid``.
    """
    by_id: dict[str, list[float]] = {}
    for hit in vector_hits:
        by_id[hit.id] = [hit.score, 0.0]
    for hit in keyword_hits:
        by_id.setdefault(hit.id, [0.0, 0.0])[1] = hit.score

    merged = []
    for memory_id, (vector_score, keyword_score) in by_id.items():
        if vector_score > 0 and keyword_score > 0:
            match_type: MatchType = "hybrid"
        elif vector_score > 0:
            match_type = "vector"
        else:
            match_type = "keyword"
        score = vector_weight * vector_score + keyword_weight * keyword_score
        merged.append(ScoredId(memory_id, score, match_type))

    merged.sort(key=lambda hit: hit.score, reverse=True)
    return merged


async def _no_hits() -> list[ScoredId]:
    return []
