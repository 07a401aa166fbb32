"""Memory tools a model can call, and the registry that dispatches them."""

from hybrid_memory.tools.memory_tools import MEMORY_TOOLS, create_memory_tools
from hybrid_memory.tools.registry import MemoryTool, MemoryToolRegistry, ToolParams, ToolResult

__all__ = [
    "MEMORY_TOOLS",
    "MemoryTool",
    "MemoryToolRegistry",
    "ToolParams",
    "ToolResult",
    "create_memory_tools",
]
