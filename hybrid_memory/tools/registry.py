"""Memory tool registry — the memory tools a model can call, bound to one manager."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from hybrid_memory.memory.errors import MemoryEngineError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hybrid_memory.memory.manager import MemoryManager

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Outcome of one tool call: either ``data`` or an ``error`` message."""

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data or {})

    def to_block(self, tool_use_id: str) -> dict[str, Any]:
        """A ``tool_result`` content block answering *tool_use_id*."""
        return {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": self.to_content(),
            "is_error": not self.success,
        }


class ToolParams(BaseModel):
    """Arguments of a memory tool. The JSON schema comes from ``model_json_schema()``."""


@dataclass(frozen=True)
class MemoryTool:
    """A memory operation exposed to the model.

    The handler receives the registry's manager and the validated params.
    """

    name: str
    description: str
    params_model: type[ToolParams]
    handler: Callable[[MemoryManager, Any], Awaitable[ToolResult]]

    def schema(self) -> dict[str, Any]:
        input_schema = self.params_model.model_json_schema()
        input_schema.pop("title", None)
        return {"name": self.name, "description": self.description, "input_schema": input_schema}


class MemoryToolRegistry:
    """Memory tools keyed by name, all operating on one ``MemoryManager``."""

    def __init__(self, manager: MemoryManager) -> None:
        self._manager = manager
        self._tools: dict[str, MemoryTool] = {}

    @property
    def manager(self) -> MemoryManager:
        return self._manager

    def add(self, tool: MemoryTool) -> None:
        if tool.name in self._tools:
            msg = f"Memory tool '{tool.name}' is already registered"
            raise ValueError(msg)
        self._tools[tool.name] = tool

    def get(self, name: str) -> MemoryTool | None:
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_schemas(self) -> list[dict[str, Any]]:
        """Tool definitions for the ``tools`` parameter of a Messages request."""
        return [tool.schema() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any] | None) -> ToolResult:
        """Run a tool by name. Failures come back as error results."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(error=f"Unknown tool: {name}")

        try:
            params = tool.params_model.model_validate(arguments or {})
        except ValidationError as exc:
            logger.warning("Invalid arguments for '%s': %s", name, exc)
            return ToolResult(error=f"Invalid arguments for {name}: {exc.error_count()} error(s)")

        logger.info("Memory tool '%s' called with %s", name, params.model_dump(mode="json"))
        t0 = time.monotonic()
        try:
            result = await tool.handler(self._manager, params)
        except MemoryEngineError as exc:
            logger.warning("Memory tool '%s' failed: %s", name, exc)
            return ToolResult(error=str(exc))
        except Exception:
            logger.exception("Memory tool '%s' failed in %.2fs", name, time.monotonic() - t0)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

        logger.info("Memory tool '%s' finished in %.2fs", name, time.monotonic() - t0)
        return result

    async def handle_tool_use(self, block: Any) -> dict[str, Any]:
        """Answer a model ``tool_use`` block (``id``, ``name``, ``input``) with a result block."""
        result = await self.execute(block.name, block.input)
        return result.to_block(block.id)
