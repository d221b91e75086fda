from parley.tools.builtin import BuiltinTools, register_default_tools
from parley.tools.registry import Tool, ToolDispatcher, ToolResult

__all__ = ["BuiltinTools", "Tool", "ToolDispatcher", "ToolResult", "register_default_tools"]
