#!/usr/bin/env python3
"""Inspect and maintain the memory database.

Usage examples:
    # Counts by category and file size
    python scripts/memory_admin.py stats

    # Regenerate the keyword index from stored content
    python scripts/memory_admin.py rebuild-index

    # Re-embed everything after switching EMBEDDING_PROVIDER
    python scripts/memory_admin.py reembed --batch-size 100

    # Hybrid search
    python scripts/memory_admin.py search "dark mode" --limit 10

    # Most recently updated preferences
    python scripts/memory_admin.py list --category preference
"""

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hybrid_memory.config import settings
from hybrid_memory.memory.manager import MemoryManager, create_memory_manager
from hybrid_memory.memory.models import MemoryCategory, MemoryRecord
from hybrid_memory.memory.search import SearchOptions


def format_record(record: MemoryRecord) -> str:
    """One line per memory: short id, category, updated time, content."""
    updated = datetime.fromtimestamp(record.updated_at / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")
    tags = f"  [{', '.join(record.tags)}]" if record.tags else ""
    return f"{record.id[:8]}  {record.category:10s} {updated}  {record.content}{tags}"


async def run(args: argparse.Namespace, manager: MemoryManager) -> None:
    if args.command == "stats":
        stats = manager.stats()
        print(f"Database:        {manager.database.path}")
        print(f"Total memories:  {stats.total}")
        print(f"With embeddings: {stats.with_embeddings}")
        print(f"Size:            {stats.size_bytes / 1024:.1f} KB")
        for category, count in sorted(stats.by_category.items()):
            print(f"  {category:10s} {count}")

    elif args.command == "rebuild-index":
        manager.rebuild_index()
        print(f"Rebuilt keyword index for {manager.count()} memories.")

    elif args.command == "reembed":
        report = await manager.reembed_all(batch_size=args.batch_size)
        print(
            f"Re-embedded {report.succeeded}/{report.total} memories "
            f"with {manager.embedder.model_name} ({report.failed} failed)."
        )

    elif args.command == "search":
        results = await manager.search(args.query, SearchOptions(max_results=args.limit))
        if not results:
            print("No memories found matching query.")
            return
        for result in results:
            print(f"{result.score:.3f} {result.match_type:7s} {format_record(result.record)}")

    elif args.command == "list":
        records = manager.list(category=args.category, limit=args.limit)
        if not records:
            print("No memories stored yet.")
            return
        for record in records:
            print(format_record(record))


async def amain(args: argparse.Namespace) -> None:
    manager = create_memory_manager(settings)
    await manager.initialize()
    try:
        await run(args, manager)
    finally:
        await manager.shutdown()


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect and maintain the memory database")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Show memory counts and database size")
    sub.add_parser("rebuild-index", help="Regenerate the keyword index")

    reembed = sub.add_parser("reembed", help="Re-embed every memory with the current provider")
    reembed.add_argument("--batch-size", type=int, default=50, help="Texts per batch (default: 50)")

    search = sub.add_parser("search", help="Hybrid search")
    search.add_argument("query", help="Search text")
    search.add_argument("--limit", "-n", type=int, default=6, help="Max results (default: 6)")

    list_cmd = sub.add_parser("list", help="List recently updated memories")
    list_cmd.add_argument(
        "--category", "-c", choices=[c.value for c in MemoryCategory], help="Filter by category"
    )
    list_cmd.add_argument("--limit", "-n", type=int, default=20, help="Max memories (default: 20)")

    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    asyncio.run(amain(args))


if __name__ == "__main__":
    main()
