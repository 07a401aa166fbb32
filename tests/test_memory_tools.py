"""Tests for the explicit memory tools."""

import pytest

from hybrid_memory.memory.manager import MemoryManager
from hybrid_memory.memory.models import CreateMemoryInput, SourceType
from hybrid_memory.tools.memory_tools import create_memory_tools
from hybrid_memory.tools.registry import MemoryToolRegistry


@pytest.fixture
def tools(manager: MemoryManager) -> MemoryToolRegistry:
    return create_memory_tools(manager)


async def test_all_tools_registered(tools: MemoryToolRegistry) -> None:
    assert set(tools.tool_names) == {
        "memory_store",
        "memory_search",
        "memory_forget",
        "memory_list",
        "memory_stats",
    }


async def test_store_schema_requires_only_content(tools: MemoryToolRegistry) -> None:
    schema = next(s for s in tools.get_schemas() if s["name"] == "memory_store")
    assert schema["input_schema"]["required"] == ["content"]


# -- memory_store ------------------------------------------------------------


async def test_memory_store(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    result = await tools.execute(
        "memory_store",
        {"content": "User prefers dark mode", "category": "preference", "tags": "ui, editor,"},
    )

    assert result.success
    assert result.data["tags"] == ["ui", "editor"]
    record = manager.get(result.data["id"])
    assert record.content == "User prefers dark mode"
    assert record.category == "preference"
    assert record.tags == ["ui", "editor"]
    assert record.source_type == SourceType.MANUAL


async def test_memory_store_defaults(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    result = await tools.execute("memory_store", {"content": "Plain note"})
    assert result.success
    assert result.data["category"] == "other"
    assert manager.get(result.data["id"]).tags == []


async def test_memory_store_rejects_unknown_category(tools: MemoryToolRegistry) -> None:
    result = await tools.execute("memory_store", {"content": "x", "category": "gossip"})
    assert not result.success


# -- memory_search -----------------------------------------------------------


async def test_memory_search(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    memory_id = await manager.store(CreateMemoryInput(content="User prefers dark mode"))

    result = await tools.execute("memory_search", {"query": "dark mode"})

    assert result.success
    assert result.data["count"] >= 1
    top = result.data["results"][0]
    assert top["id"] == memory_id
    assert top["match"] == "hybrid"
    assert 0.0 <= top["score"] <= 1.0


async def test_memory_search_no_results(tools: MemoryToolRegistry) -> None:
    result = await tools.execute("memory_search", {"query": "anything"})
    assert result.success
    assert result.data == {"results": [], "count": 0}


# -- memory_forget -----------------------------------------------------------


async def test_memory_forget(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    memory_id = await manager.store(CreateMemoryInput(content="Forget me"))

    result = await tools.execute("memory_forget", {"memory_id": memory_id})
    assert result.data == {"deleted": True, "id": memory_id}
    assert manager.get(memory_id) is None

    again = await tools.execute("memory_forget", {"memory_id": memory_id})
    assert again.success
    assert again.data["deleted"] is False


# -- memory_list -------------------------------------------------------------


async def test_memory_list(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    await manager.store(CreateMemoryInput(content="Likes tea", category="preference"))
    await manager.store(CreateMemoryInput(content="Lives in Porto", category="fact"))

    everything = await tools.execute("memory_list", {})
    assert everything.data["count"] == 2

    facts = await tools.execute("memory_list", {"category": "fact"})
    assert [m["content"] for m in facts.data["memories"]] == ["Lives in Porto"]


async def test_memory_list_limit_is_validated(tools: MemoryToolRegistry) -> None:
    result = await tools.execute("memory_list", {"limit": 0})
    assert not result.success


# -- memory_stats ------------------------------------------------------------


async def test_memory_stats(tools: MemoryToolRegistry, manager: MemoryManager) -> None:
    await manager.store(CreateMemoryInput(content="Likes tea", category="preference"))

    result = await tools.execute("memory_stats", {})

    assert result.success
    assert result.data["total"] == 1
    assert result.data["with_embeddings"] == 1
    assert result.data["by_category"] == {"preference": 1}
    assert result.data["size_kb"] > 0
