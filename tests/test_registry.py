"""Tests for the memory tool registry."""

from types import SimpleNamespace

import pytest
from pydantic import Field

from hybrid_memory.memory.manager import MemoryManager
from hybrid_memory.memory.models import CreateMemoryInput
from hybrid_memory.tools.registry import MemoryTool, MemoryToolRegistry, ToolParams, ToolResult

# -- Fixtures ----------------------------------------------------------------


class CountParams(ToolParams):
    category: str | None = Field(default=None, description="Only count this category")


async def count_memories(manager: MemoryManager, params: CountParams) -> ToolResult:
    return ToolResult(data={"count": manager.count(params.category)})


async def explode(manager: MemoryManager, params: CountParams) -> ToolResult:
    msg = "kaboom"
    raise RuntimeError(msg)


COUNT = MemoryTool(
    name="memory_count",
    description="Count memories",
    params_model=CountParams,
    handler=count_memories,
)


@pytest.fixture
def reg(manager: MemoryManager) -> MemoryToolRegistry:
    registry = MemoryToolRegistry(manager)
    registry.add(COUNT)
    return registry


# -- Registration ------------------------------------------------------------


async def test_add_and_get(reg: MemoryToolRegistry, manager: MemoryManager) -> None:
    assert reg.tool_names == ["memory_count"]
    assert reg.get("memory_count") is COUNT
    assert reg.get("missing") is None
    assert reg.manager is manager


async def test_add_rejects_duplicate_name(reg: MemoryToolRegistry) -> None:
    with pytest.raises(ValueError, match="already registered"):
        reg.add(COUNT)


async def test_get_schemas(reg: MemoryToolRegistry) -> None:
    [schema] = reg.get_schemas()
    assert schema["name"] == "memory_count"
    assert schema["description"] == "Count memories"
    assert schema["input_schema"]["type"] == "object"
    assert "category" in schema["input_schema"]["properties"]
    assert "required" not in schema["input_schema"]
    assert "title" not in schema["input_schema"]


# -- Execution ---------------------------------------------------------------


async def test_execute_passes_manager_and_params(
    reg: MemoryToolRegistry, manager: MemoryManager
) -> None:
    await manager.store(CreateMemoryInput(content="Likes tea", category="preference"))
    await manager.store(CreateMemoryInput(content="Lives in Porto", category="fact"))

    assert (await reg.execute("memory_count", {})).data == {"count": 2}
    assert (await reg.execute("memory_count", None)).data == {"count": 2}
    assert (await reg.execute("memory_count", {"category": "fact"})).data == {"count": 1}


async def test_execute_unknown_tool(reg: MemoryToolRegistry) -> None:
    result = await reg.execute("nonexistent", {})
    assert not result.success
    assert "Unknown tool" in result.error


async def test_execute_with_invalid_params(reg: MemoryToolRegistry) -> None:
    result = await reg.execute("memory_count", {"category": ["not", "a", "string"]})
    assert not result.success
    assert result.error.startswith("Invalid arguments for memory_count")


async def test_execute_handler_exception(reg: MemoryToolRegistry) -> None:
    reg.add(MemoryTool(name="boom", description="Boom", params_model=CountParams, handler=explode))
    result = await reg.execute("boom", {})
    assert not result.success
    assert "failed" in result.error


async def test_execute_before_initialize_is_an_error_result(tmp_path) -> None:
    registry = MemoryToolRegistry(MemoryManager(tmp_path / "memory.db"))
    registry.add(COUNT)
    result = await registry.execute("memory_count", {})
    assert not result.success
    assert "initialize" in result.error


async def test_handle_tool_use(reg: MemoryToolRegistry) -> None:
    block = SimpleNamespace(id="toolu_01", name="memory_count", input={})
    assert await reg.handle_tool_use(block) == {
        "type": "tool_result",
        "tool_use_id": "toolu_01",
        "content": '{"count": 0}',
        "is_error": False,
    }

    bad = SimpleNamespace(id="toolu_02", name="nope", input={})
    answer = await reg.handle_tool_use(bad)
    assert answer["is_error"] is True
    assert answer["tool_use_id"] == "toolu_02"


# -- ToolResult serialization ------------------------------------------------


def test_tool_result_success_serialization() -> None:
    r = ToolResult(data={"key": "val"})
    assert r.success
    assert r.to_content() == '{"key": "val"}'


def test_tool_result_error_serialization() -> None:
    r = ToolResult(error="something broke")
    assert not r.success
    assert r.to_content() == '{"error": "something broke"}'


def test_tool_result_empty_serialization() -> None:
    assert ToolResult().to_content() == "{}"
