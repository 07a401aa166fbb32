"""Tests for hybrid search — merging, ranking and degradation."""

import numpy as np
import pytest

from hybrid_memory.memory.embeddings import HashEmbeddingProvider
from hybrid_memory.memory.models import CreateMemoryInput, MemoryCategory
from hybrid_memory.memory.search import HybridSearcher, ScoredId, SearchOptions, merge_results
from hybrid_memory.memory.store import MemoryDatabase


async def _add(
    db: MemoryDatabase,
    embedder: HashEmbeddingProvider,
    content: str,
    category: MemoryCategory = MemoryCategory.OTHER,
) -> str:
    return db.create(
        CreateMemoryInput(
            content=content,
            category=category,
            embedding=await embedder.embed(content),
            embedding_model=embedder.model_name,
        )
    )


# -- merge_results -----------------------------------------------------------


def test_merge_weights_both_signals() -> None:
    merged = merge_results(
        [ScoredId("a", 0.8, "vector")],
        [ScoredId("a", 1.0, "keyword")],
        vector_weight=0.7,
        keyword_weight=0.3,
    )
    assert len(merged) == 1
    assert merged[0].match_type == "hybrid"
    assert merged[0].score == pytest.approx(0.7 * 0.8 + 0.3 * 1.0)


def test_merge_weights_single_source_hits() -> None:
    merged = merge_results(
        [ScoredId("v", 0.9, "vector")],
        [ScoredId("k", 0.5, "keyword")],
        vector_weight=0.7,
        keyword_weight=0.3,
    )
    by_id = {hit.id: hit for hit in merged}
    assert by_id["v"].match_type == "vector"
    assert by_id["v"].score == pytest.approx(0.63)
    assert by_id["k"].match_type == "keyword"
    assert by_id["k"].score == pytest.approx(0.15)


def test_merge_sorts_best_first() -> None:
    merged = merge_results(
        [ScoredId("low", 0.2, "vector"), ScoredId("both", 0.6, "vector")],
        [ScoredId("both", 0.9, "keyword")],
    )
    assert [hit.id for hit in merged] == ["both", "low"]


def test_merge_hybrid_at_least_as_good_as_same_vector_score() -> None:
    merged = merge_results(
        [ScoredId("hybrid", 0.7, "vector"), ScoredId("vector-only", 0.7, "vector")],
        [ScoredId("hybrid", 0.4, "keyword")],
    )
    assert merged[0].id == "hybrid"


def test_merge_empty() -> None:
    assert merge_results([], []) == []


def test_candidate_limit() -> None:
    assert SearchOptions(max_results=3).candidate_limit == 12
    assert SearchOptions(max_results=3, candidate_multiplier=2).candidate_limit == 6


# -- HybridSearcher ----------------------------------------------------------


async def test_search_empty_database(db, embedder) -> None:
    searcher = HybridSearcher(db, embedder)
    assert await searcher.search("anything") == []


async def test_hybrid_match_ranks_first(db, embedder) -> None:
    dark = await _add(db, embedder, "User prefers dark mode in every editor")
    await _add(db, embedder, "User enjoys hiking on weekends")
    await _add(db, embedder, "Project deadline is next Friday")

    results = await HybridSearcher(db, embedder).search("dark mode")

    assert results
    assert results[0].record.id == dark
    assert results[0].match_type == "hybrid"
    single_source = [r.score for r in results if r.match_type != "hybrid"]
    assert all(results[0].score >= score for score in single_source)


async def test_scores_within_unit_range_and_sorted(db, embedder) -> None:
    for text in ("alpha beta", "beta gamma", "gamma delta", "delta alpha"):
        await _add(db, embedder, text)

    results = await HybridSearcher(db, embedder).search("beta", SearchOptions(min_score=0.0))
    scores = [r.score for r in results]
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert scores == sorted(scores, reverse=True)


async def test_max_results_truncates(db, embedder) -> None:
    for i in range(8):
        await _add(db, embedder, f"note {i} about gardening")

    results = await HybridSearcher(db, embedder).search(
        "gardening", SearchOptions(max_results=3)
    )
    assert len(results) == 3


async def test_min_score_filters(db, embedder) -> None:
    await _add(db, embedder, "User prefers dark mode")
    results = await HybridSearcher(db, embedder).search(
        "completely unrelated words", SearchOptions(min_score=0.99)
    )
    assert results == []


async def test_category_filter(db, embedder) -> None:
    await _add(db, embedder, "Dark mode everywhere", MemoryCategory.PREFERENCE)
    fact = await _add(db, embedder, "Dark mode was enabled in March", MemoryCategory.FACT)

    results = await HybridSearcher(db, embedder).search(
        "dark mode", SearchOptions(category=MemoryCategory.FACT, min_score=0.0)
    )
    assert [r.record.id for r in results] == [fact]


async def test_keyword_only(db, embedder) -> None:
    memory_id = await _add(db, embedder, "User collects vinyl records")
    results = await HybridSearcher(db, embedder).search(
        "vinyl", SearchOptions(vector_search=False, min_score=0.1)
    )
    assert [r.record.id for r in results] == [memory_id]
    assert results[0].match_type == "keyword"
    assert results[0].score == pytest.approx(0.3)


async def test_vector_only(db, embedder) -> None:
    await _add(db, embedder, "User collects vinyl records")
    results = await HybridSearcher(db, embedder).search(
        "vinyl", SearchOptions(keyword_search=False, min_score=0.0)
    )
    assert results
    assert {r.match_type for r in results} == {"vector"}


async def test_embedding_failure_falls_back_to_keywords(db, embedder, failing_embedder) -> None:
    memory_id = await _add(db, embedder, "User collects vinyl records")
    results = await HybridSearcher(db, failing_embedder).search(
        "vinyl", SearchOptions(min_score=0.1)
    )
    assert [r.record.id for r in results] == [memory_id]
    assert results[0].match_type == "keyword"


async def test_mismatched_dimensions_are_skipped(db, embedder) -> None:
    db.create(
        CreateMemoryInput(
            content="Stored with another model",
            embedding=np.ones(16, dtype=np.float32) / 4,
            embedding_model="other-model",
        )
    )
    results = await HybridSearcher(db, embedder).search(
        "stored", SearchOptions(min_score=0.0)
    )
    assert len(results) == 1
    assert results[0].match_type == "keyword"


async def test_record_deleted_before_hydration_is_dropped(db, embedder, monkeypatch) -> None:
    gone = await _add(db, embedder, "User prefers dark mode")
    kept = await _add(db, embedder, "Dark mode in the terminal too")
    by_ids = db.by_ids

    def delete_then_fetch(ids):
        db.delete(gone)
        return by_ids(ids)

    monkeypatch.setattr(db, "by_ids", delete_then_fetch)

    results = await HybridSearcher(db, embedder).search("dark mode", SearchOptions(min_score=0.0))

    assert [r.record.id for r in results] == [kept]


async def test_search_does_not_bump_access(db, embedder) -> None:
    await _add(db, embedder, "User prefers dark mode")
    results = await HybridSearcher(db, embedder).search("dark mode")
    assert results[0].record.access_count == 0
