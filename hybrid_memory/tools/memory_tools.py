"""Explicit memory tools.

Tools a model can call when the user asks it to remember, look up, list or
forget something.  ``create_memory_tools`` binds all of them to one manager.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from hybrid_memory.memory.models import (
    CreateMemoryInput,
    MemoryCategory,
    MemoryRecord,
    SourceType,
)
from hybrid_memory.memory.search import SearchOptions
from hybrid_memory.tools.registry import MemoryTool, MemoryToolRegistry, ToolParams, ToolResult

if TYPE_CHECKING:
    from hybrid_memory.memory.manager import MemoryManager

_CATEGORY_HELP = "Category: preference, fact, decision, entity, procedure, or other"

# -- Params ------------------------------------------------------------------


class StoreParams(ToolParams):
    content: str = Field(description="The memory content to store (a single, concise fact)")
    category: MemoryCategory = Field(default=MemoryCategory.OTHER, description=_CATEGORY_HELP)
    tags: str = Field(default="", description="Comma-separated tags for organization")


class SearchParams(ToolParams):
    query: str = Field(description="Natural language search query")
    max_results: int = Field(default=5, ge=1, le=50, description="Maximum number of results")
    category: MemoryCategory | None = Field(default=None, description="Filter by category")


class ForgetParams(ToolParams):
    memory_id: str = Field(description="The ID of the memory to delete")


class ListParams(ToolParams):
    category: MemoryCategory | None = Field(default=None, description="Filter by category")
    limit: int = Field(default=20, ge=1, le=100, description="Max memories to return")


class StatsParams(ToolParams):
    pass


def _split_tags(raw: str) -> list[str]:
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _summary(record: MemoryRecord) -> dict:
    return {
        "id": record.id,
        "content": record.content,
        "category": str(record.category),
        "tags": record.tags,
    }


# -- Handlers ----------------------------------------------------------------


async def memory_store(manager: MemoryManager, params: StoreParams) -> ToolResult:
    tags = _split_tags(params.tags)
    memory_id = await manager.store(
        CreateMemoryInput(
            content=params.content,
            category=params.category,
            tags=tags,
            source_type=SourceType.MANUAL,
        )
    )
    return ToolResult(data={
        "stored": True,
        "id": memory_id,
        "category": str(params.category),
        "tags": tags,
    })


async def memory_search(manager: MemoryManager, params: SearchParams) -> ToolResult:
    results = await manager.search(
        params.query, SearchOptions(max_results=params.max_results, category=params.category)
    )
    items = [
        {**_summary(r.record), "score": round(r.score, 3), "match": r.match_type}
        for r in results
    ]
    return ToolResult(data={"results": items, "count": len(items)})


async def memory_forget(manager: MemoryManager, params: ForgetParams) -> ToolResult:
    deleted = manager.delete(params.memory_id)
    return ToolResult(data={"deleted": deleted, "id": params.memory_id})


async def memory_list(manager: MemoryManager, params: ListParams) -> ToolResult:
    items = [_summary(m) for m in manager.list(category=params.category, limit=params.limit)]
    return ToolResult(data={"memories": items, "count": len(items)})


async def memory_stats(manager: MemoryManager, params: StatsParams) -> ToolResult:
    stats = manager.stats()
    return ToolResult(data={
        "total": stats.total,
        "with_embeddings": stats.with_embeddings,
        "by_category": stats.by_category,
        "size_kb": round(stats.size_bytes / 1024, 1),
    })


MEMORY_TOOLS: tuple[MemoryTool, ...] = (
    MemoryTool(
        name="memory_store",
        description=(
            "Store a new memory. Use when the user explicitly asks you to "
            "remember something, or when you identify information worth "
            "preserving across conversations."
        ),
        params_model=StoreParams,
        handler=memory_store,
    ),
    MemoryTool(
        name="memory_search",
        description=(
            "Search stored memories in natural language (hybrid vector + keyword). "
            "Use when the user asks 'do you remember...' or 'what do you know about...'."
        ),
        params_model=SearchParams,
        handler=memory_search,
    ),
    MemoryTool(
        name="memory_forget",
        description=(
            "Delete a specific memory by its ID. Use when the user asks to "
            "forget something or when information is no longer accurate."
        ),
        params_model=ForgetParams,
        handler=memory_forget,
    ),
    MemoryTool(
        name="memory_list",
        description="List recently updated memories, optionally filtered by category.",
        params_model=ListParams,
        handler=memory_list,
    ),
    MemoryTool(
        name="memory_stats",
        description="Get statistics about the memory system: totals, embeddings, categories, size.",
        params_model=StatsParams,
        handler=memory_stats,
    ),
)


def create_memory_tools(manager: MemoryManager) -> MemoryToolRegistry:
    """A registry holding every memory tool, bound to *manager*."""
    registry = MemoryToolRegistry(manager)
    for tool in MEMORY_TOOLS:
        registry.add(tool)
    return registry
