"""MemoryDatabase — SQLite record store with an FTS4 keyword index.

The whole database lives in memory and is persisted as a single file:
``open()`` loads the file image, ``save()`` serializes the image to a
temporary file and atomically renames it over the target.  Readers of the
file therefore only ever see the previous complete state or the new one.

Not thread-safe.  Callers serialize writes.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from typing import TYPE_CHECKING

from hybrid_memory.memory.errors import CorruptDatabaseError, NotInitializedError
from hybrid_memory.memory.keyword import (
    MATCHINFO_FORMAT,
    MatchStats,
    bm25_score,
    build_match_expression,
)
from hybrid_memory.memory.models import (
    MemoryCategory,
    MemoryRecord,
    MemoryStats,
    decode_embedding,
    encode_embedding,
    now_ms,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    import numpy as np

    from hybrid_memory.memory.models import CreateMemoryInput, UpdateMemoryInput

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

ORDER_COLUMNS = frozenset({"created_at", "updated_at", "last_accessed_at", "confidence"})

_CREATE_META = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_CREATE_MEMORIES = """
CREATE TABLE IF NOT EXISTS memories (
    doc_id INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    category TEXT NOT NULL DEFAULT 'other',
    content TEXT NOT NULL,
    embedding BLOB,
    embedding_model TEXT,
    embedding_dims INTEGER,
    source_type TEXT NOT NULL DEFAULT 'manual',
    source_session TEXT,
    source_message_index INTEGER,
    confidence REAL NOT NULL DEFAULT 1.0,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    last_accessed_at INTEGER NOT NULL,
    access_count INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_FTS = """
CREATE VIRTUAL TABLE IF NOT EXISTS memories_fts USING fts4(
    content,
    tokenize=unicode61
)
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category)",
    "CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_memories_updated ON memories(updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_memories_source_session ON memories(source_session)",
    "CREATE INDEX IF NOT EXISTS idx_memories_confidence ON memories(confidence)",
)

_MEMORY_COLUMNS = (
    "id, category, content, embedding, embedding_model, embedding_dims, "
    "source_type, source_session, source_message_index, confidence, tags, "
    "created_at, updated_at, last_accessed_at, access_count"
)


def _dump_tags(tags: list[str]) -> str:
    return json.dumps(list(tags))


class MemoryDatabase:
    """Persists memory records and their keyword index in one SQLite image.

    Construct with the target file path, then call ``open()``.  Every
    mutation marks the database dirty; ``save()`` flushes it.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def dirty(self) -> bool:
        return self._dirty

    # -- Lifecycle -------------------------------------------------------------

    def open(self) -> None:
        """Load the database file, or start an empty database if none exists.

        Raises ``CorruptDatabaseError`` if an existing file cannot be loaded.
        """
        if self._conn is not None:
            return

        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row

        if self._db_path.exists():
            try:
                data = self._db_path.read_bytes()
                if not data:
                    raise sqlite3.DatabaseError("file is empty")
                conn.deserialize(data)
                self._check_integrity(conn)
                self._apply_schema(conn)
            except (OSError, sqlite3.DatabaseError) as exc:
                conn.close()
                msg = f"Cannot load memory database {self._db_path}: {exc}"
                raise CorruptDatabaseError(msg) from exc
            logger.info("Opened memory database: %s", self._db_path)
        else:
            self._apply_schema(conn)
            logger.info("Created memory database: %s", self._db_path)

        self._conn = conn
        self._dirty = True
        self.save()

    def save(self) -> None:
        """Flush to disk via a temporary file and an atomic rename."""
        conn = self._require_conn()
        if not self._dirty:
            return

        conn.commit()
        data = conn.serialize()
        tmp_path = self._db_path.with_name(self._db_path.name + ".tmp")

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._db_path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

        self._dirty = False
        logger.debug("Saved memory database (%d bytes): %s", len(data), self._db_path)

    def close(self) -> None:
        """Save pending changes and release the connection."""
        if self._conn is None:
            return
        self.save()
        self._conn.close()
        self._conn = None

    # -- CRUD ------------------------------------------------------------------

    def create(self, data: CreateMemoryInput) -> str:
        """Insert a new memory and its keyword index entry. Returns the new ID."""
        conn = self._require_conn()
        memory_id = str(uuid.uuid4())
        now = now_ms()

        embedding_blob = None
        embedding_dims = None
        if data.embedding is not None:
            embedding_blob = encode_embedding(data.embedding)
            embedding_dims = len(data.embedding)

        with conn:
            cursor = conn.execute(
                f"""
                INSERT INTO memories ({_MEMORY_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    memory_id,
                    str(data.category),
                    data.content,
                    embedding_blob,
                    data.embedding_model if embedding_blob is not None else None,
                    embedding_dims,
                    str(data.source_type),
                    data.source_session,
                    data.source_message_index,
                    data.confidence,
                    _dump_tags(data.tags),
                    now,
                    now,
                    now,
                ),
            )
            conn.execute(
                "INSERT INTO memories_fts (docid, content) VALUES (?, ?)",
                (cursor.lastrowid, data.content),
            )

        self._dirty = True
        logger.debug("Created memory %s [%s]: %s", memory_id, data.category, data.content[:80])
        return memory_id

    def get(self, memory_id: str) -> MemoryRecord | None:
        """Fetch a memory by ID, bumping its access tracking. None if missing."""
        conn = self._require_conn()
        with conn:
            cursor = conn.execute(
                """
                UPDATE memories
                SET last_accessed_at = ?, access_count = access_count + 1
                WHERE id = ?
                """,
                (now_ms(), memory_id),
            )
        if cursor.rowcount == 0:
            return None

        self._dirty = True
        row = conn.execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        return MemoryRecord.from_row(row)

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
        """List memories with optional filters. Does not bump access tracking."""
        conn = self._require_conn()

        if order_by not in ORDER_COLUMNS:
            msg = f"Cannot order by {order_by!r}; choose one of {sorted(ORDER_COLUMNS)}"
            raise ValueError(msg)
        direction = order.upper()
        if direction not in ("ASC", "DESC"):
            msg = f"Order must be ASC or DESC, got {order!r}"
            raise ValueError(msg)

        conditions: list[str] = []
        params: list[object] = []
        if category:
            conditions.append("category = ?")
            params.append(str(category))
        if source_session:
            conditions.append("source_session = ?")
            params.append(source_session)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])
        rows = conn.execute(
            f"""
            SELECT {_MEMORY_COLUMNS} FROM memories {where}
            ORDER BY {order_by} {direction}, doc_id {direction}
            LIMIT ? OFFSET ?
            """,
            params,
        ).fetchall()
        return [MemoryRecord.from_row(row) for row in rows]

    def count(self, category: MemoryCategory | str | None = None) -> int:
        """Count memories, optionally restricted to one category."""
        conn = self._require_conn()
        if category:
            row = conn.execute(
                "SELECT COUNT(*) FROM memories WHERE category = ?", (str(category),)
            ).fetchone()
        else:
            row = conn.execute("SELECT COUNT(*) FROM memories").fetchone()
        return row[0]

    def update(self, memory_id: str, data: UpdateMemoryInput) -> bool:
        """Apply a partial update. Returns True only if a row was changed.

        A content change rewrites the keyword index entry in the same
        transaction (FTS4 rows are deleted and re-inserted, never updated).
        """
        conn = self._require_conn()

        sets: list[str] = []
        params: list[object] = []
        if data.content is not None:
            sets.append("content = ?")
            params.append(data.content)
        if data.category is not None:
            sets.append("category = ?")
            params.append(str(data.category))
        # The model name is always rewritten alongside the vector.
        if data.embedding is not None:
            sets.extend(["embedding = ?", "embedding_dims = ?", "embedding_model = ?"])
            params.extend(
                [encode_embedding(data.embedding), len(data.embedding), data.embedding_model]
            )
        elif data.clear_embedding:
            sets.extend(["embedding = NULL", "embedding_dims = NULL", "embedding_model = NULL"])
        if data.confidence is not None:
            sets.append("confidence = ?")
            params.append(data.confidence)
        if data.tags is not None:
            sets.append("tags = ?")
            params.append(_dump_tags(data.tags))

        if not sets:
            return False

        sets.append("updated_at = MAX(created_at, ?)")
        params.extend([now_ms(), memory_id])

        with conn:
            cursor = conn.execute(
                f"UPDATE memories SET {', '.join(sets)} WHERE id = ?", params
            )
            if cursor.rowcount == 0:
                return False
            if data.content is not None:
                doc_id = self._doc_id(conn, memory_id)
                conn.execute("DELETE FROM memories_fts WHERE docid = ?", (doc_id,))
                conn.execute(
                    "INSERT INTO memories_fts (docid, content) VALUES (?, ?)",
                    (doc_id, data.content),
                )

        self._dirty = True
        return True

    def delete(self, memory_id: str) -> bool:
        """Delete a memory and its keyword entry. Returns True if it existed."""
        conn = self._require_conn()
        with conn:
            doc_id = self._doc_id(conn, memory_id)
            if doc_id is None:
                return False
            conn.execute("DELETE FROM memories_fts WHERE docid = ?", (doc_id,))
            conn.execute("DELETE FROM memories WHERE doc_id = ?", (doc_id,))

        self._dirty = True
        logger.info("Deleted memory: %s", memory_id)
        return True

    def delete_by_session(self, session_id: str) -> int:
        """Delete every memory captured from *session_id*. Returns the count."""
        conn = self._require_conn()
        with conn:
            rows = conn.execute(
                "SELECT doc_id FROM memories WHERE source_session = ?", (session_id,)
            ).fetchall()
            if not rows:
                return 0
            conn.executemany(
                "DELETE FROM memories_fts WHERE docid = ?", [(row[0],) for row in rows]
            )
            cursor = conn.execute(
                "DELETE FROM memories WHERE source_session = ?", (session_id,)
            )

        self._dirty = True
        logger.info("Deleted %d memories from session %s", cursor.rowcount, session_id)
        return cursor.rowcount

    # -- Search support --------------------------------------------------------

    def all_embeddings(self) -> list[tuple[str, np.ndarray]]:
        """Return ``(id, vector)`` for every memory that has an embedding."""
        conn = self._require_conn()
        rows = conn.execute(
            "SELECT id, embedding FROM memories WHERE embedding IS NOT NULL"
        ).fetchall()
        return [(row["id"], decode_embedding(row["embedding"])) for row in rows]

    def by_ids(self, ids: Iterable[str]) -> list[MemoryRecord]:
        """Fetch several memories, in the order given. Missing IDs are skipped."""
        conn = self._require_conn()
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []

        placeholders = ",".join("?" for _ in wanted)
        rows = conn.execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE id IN ({placeholders})", wanted
        ).fetchall()
        found = {row["id"]: MemoryRecord.from_row(row) for row in rows}
        return [found[memory_id] for memory_id in wanted if memory_id in found]

    def keyword_search(self, query: str, limit: int = 20) -> list[tuple[str, float]]:
        """Full-text search. Returns ``(id, score)`` pairs, best first.

        Scores are BM25 approximations in [0, 1].  Queries with no usable
        tokens and malformed MATCH expressions return an empty list.
        """
        conn = self._require_conn()
        expression = build_match_expression(query)
        if not expression:
            return []

        try:
            rows = conn.execute(
                f"""
                SELECT m.id, matchinfo(memories_fts, '{MATCHINFO_FORMAT}') AS mi
                FROM memories_fts
                JOIN memories m ON m.doc_id = memories_fts.docid
                WHERE memories_fts MATCH ?
                """,
                (expression,),
            ).fetchall()
        except sqlite3.OperationalError as exc:
            logger.warning("Keyword search failed for %r: %s", query, exc)
            return []

        scored = [(row["id"], bm25_score(MatchStats.from_matchinfo(row["mi"]))) for row in rows]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    # -- Maintenance -----------------------------------------------------------

    def rebuild_keyword_index(self) -> None:
        """Clear the keyword index and regenerate it from record content."""
        conn = self._require_conn()
        with conn:
            conn.execute("DELETE FROM memories_fts")
            conn.execute(
                "INSERT INTO memories_fts (docid, content) SELECT doc_id, content FROM memories"
            )
        self._dirty = True
        logger.info("Rebuilt keyword index")

    def stats(self) -> MemoryStats:
        """Counts by category plus the serialized database size."""
        conn = self._require_conn()
        with_embeddings = conn.execute(
            "SELECT COUNT(*) FROM memories WHERE embedding IS NOT NULL"
        ).fetchone()[0]
        by_category = {
            row[0]: row[1]
            for row in conn.execute(
                "SELECT category, COUNT(*) FROM memories GROUP BY category"
            ).fetchall()
        }
        conn.commit()
        return MemoryStats(
            total=self.count(),
            with_embeddings=with_embeddings,
            by_category=by_category,
            size_bytes=len(conn.serialize()),
        )

    # -- Internal helpers ------------------------------------------------------

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = "MemoryDatabase not opened. Call open() first."
            raise NotInitializedError(msg)
        return self._conn

    @staticmethod
    def _doc_id(conn: sqlite3.Connection, memory_id: str) -> int | None:
        row = conn.execute("SELECT doc_id FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return row[0] if row else None

    @staticmethod
    def _check_integrity(conn: sqlite3.Connection) -> None:
        result = conn.execute("PRAGMA quick_check").fetchone()
        if result is None or result[0] != "ok":
            detail = result[0] if result else "no result"
            msg = f"integrity check failed: {detail}"
            raise sqlite3.DatabaseError(msg)

    @staticmethod
    def _apply_schema(conn: sqlite3.Connection) -> None:
        conn.execute(_CREATE_META)
        conn.execute(_CREATE_MEMORIES)
        conn.execute(_CREATE_FTS)
        for statement in _CREATE_INDEXES:
            conn.execute(statement)
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
