"""Keyword query building and BM25-style scoring over FTS4 match statistics.

SQLite FTS4 has no native BM25. It does expose ``matchinfo(table, 'pcnalx')``,
a flat buffer of 32-bit counters.  :class:`MatchStats` unpacks that buffer
into named fields and :func:`bm25_score` turns them into an approximate
relevance in [0, 1].
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

K1 = 1.2
B = 0.75

# Empirical divisor that maps raw BM25 sums into [0, 1]. Tunable; not calibrated.
NORMALIZATION_FACTOR = 5.0

MATCHINFO_FORMAT = "pcnalx"


def tokenize(query: str) -> list[str]:
    """Lower-case, split on whitespace, drop quotes and tokens of length <= 1."""
    tokens = []
    for raw in query.lower().split():
        token = raw.replace('"', "")
        if len(token) > 1:
            tokens.append(token)
    return tokens


def build_match_expression(query: str) -> str:
    """Build an FTS4 MATCH expression where every token must appear.

    Returns an empty string when nothing survives tokenization, so callers
    can return no results instead of matching everything.
    """
    return " ".join(f'"{token}"' for token in tokenize(query))


@dataclass(frozen=True)
class PhraseHits:
    """Hit counts for one query phrase in one column."""

    hits_in_row: int
    hits_in_all_rows: int
    docs_with_hits: int


@dataclass(frozen=True)
class MatchStats:
    """Positional statistics for one matching row.

    Attributes:
        phrase_count: Number of matchable phrases in the query (``p``).
        column_count: Number of indexed columns (``c``).
        row_count: Rows in the index (``n``).
        avg_tokens: Average tokens per column across all rows (``a``).
        row_tokens: Tokens per column in this row (``l``).
        hits: ``hits[phrase][column]`` counters (``x``).
    """

    phrase_count: int
    column_count: int
    row_count: int
    avg_tokens: tuple[int, ...]
    row_tokens: tuple[int, ...]
    hits: tuple[tuple[PhraseHits, ...], ...]

    @classmethod
    def from_matchinfo(cls, blob: bytes) -> MatchStats:
        """Unpack a ``matchinfo(..., 'pcnalx')`` buffer (machine byte order)."""
        info = np.frombuffer(blob, dtype=np.uint32)
        if len(info) < 3:
            msg = f"matchinfo buffer too short: {len(info)} values"
            raise ValueError(msg)

        p, c, n = (int(v) for v in info[:3])
        expected = 3 + 2 * c + 3 * p * c
        if len(info) < expected:
            msg = f"matchinfo buffer has {len(info)} values, expected {expected}"
            raise ValueError(msg)

        avg_tokens = tuple(int(v) for v in info[3 : 3 + c])
        row_tokens = tuple(int(v) for v in info[3 + c : 3 + 2 * c])

        x_base = 3 + 2 * c
        hits = []
        for i in range(p):
            per_column = []
            for j in range(c):
                offset = x_base + 3 * (i * c + j)
                per_column.append(
                    PhraseHits(
                        hits_in_row=int(info[offset]),
                        hits_in_all_rows=int(info[offset + 1]),
                        docs_with_hits=int(info[offset + 2]),
                    )
                )
            hits.append(tuple(per_column))

        return cls(
            phrase_count=p,
            column_count=c,
            row_count=n,
            avg_tokens=avg_tokens,
            row_tokens=row_tokens,
            hits=tuple(hits),
        )


def bm25_score(
    stats: MatchStats,
    *,
    k1: float = K1,
    b: float = B,
    normalization: float = NORMALIZATION_FACTOR,
) -> float:
    """Approximate Okapi BM25 relevance, clamped to [0, 1]."""
    n = stats.row_count
    p = stats.phrase_count
    if n == 0 or p == 0:
        return 0.0

    score = 0.0
    for i in range(p):
        for j in range(stats.column_count):
            phrase = stats.hits[i][j]
            if phrase.hits_in_row == 0 or phrase.docs_with_hits == 0:
                continue

            avg_len = stats.avg_tokens[j] or 1
            length = stats.row_tokens[j] or 1
            df = phrase.docs_with_hits
            tf_raw = phrase.hits_in_row

            idf = math.log((n - df + 0.5) / (df + 0.5) + 1)
            tf = (tf_raw * (k1 + 1)) / (tf_raw + k1 * (1 - b + b * (length / avg_len)))
            score += idf * tf

    return min(1.0, score / (p * normalization))
