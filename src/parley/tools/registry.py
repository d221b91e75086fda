"""Keyword-scored tool dispatch.

A single best-match heuristic, not a planner: every registered keyword found
(case-insensitively) in the input scores its own length, tools matching more
than one keyword get ``5 × matches`` on top, and the strictly highest score
wins. Ties go to the tool registered first.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MULTI_MATCH_BONUS = 5


@dataclass
class ToolResult:
    """Outcome of a tool handler. ``result`` on success, ``error`` otherwise."""

    success: bool
    result: str = ""
    error: str | None = None
    tool_name: str | None = None
    metadata: dict = field(default_factory=dict)


# (free-text input) -> ToolResult, sync or async
ToolHandler = Callable[[str], "ToolResult | Awaitable[ToolResult]"]


@dataclass
class Tool:
    name: str
    handler: ToolHandler
    keywords: list[str]
    description: str = ""

    def score(self, text: str) -> int:
        normalized = text.lower()
        matched = [k for k in self.keywords if k and k.lower() in normalized]
        score = sum(len(k) for k in matched)
        if len(matched) > 1:
            score += MULTI_MATCH_BONUS * len(matched)
        return score

    def describe(self) -> dict:
        return {"name": self.name, "description": self.description, "keywords": list(self.keywords)}


class ToolDispatcher:
    """Registry of tools held for the process lifetime."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register_tool(
        self,
        name: str,
        handler: ToolHandler,
        keywords: list[str],
        description: str = "",
    ) -> None:
        if name in self._tools:
            logger.info("Replacing tool: %s", name)
        self._tools[name] = Tool(name, handler, list(keywords), description)
        logger.debug("Registered tool: %s (%d keywords)", name, len(keywords))

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def describe_tools(self) -> list[dict]:
        return [tool.describe() for tool in self._tools.values()]

    def find_matching_tool(self, text: str) -> Tool | None:
        best: Tool | None = None
        best_score = 0
        for tool in self._tools.values():
            score = tool.score(text)
            if score > best_score:
                best, best_score = tool, score
        return best

    async def execute_tool_from_prompt(self, text: str) -> ToolResult:
        tool = self.find_matching_tool(text)
        if tool is None:
            return ToolResult(success=False, error="No matching tool found for this prompt")

        logger.info("Dispatching tool %s", tool.name)
        try:
            result = tool.handler(text)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("Tool %s failed: %s", tool.name, e)
            return ToolResult(
                success=False,
                error=f"Error executing tool {tool.name}: {e}",
                tool_name=tool.name,
            )
        if not isinstance(result, ToolResult):
            logger.error(
                "Tool %s returned %s, expected ToolResult", tool.name, type(result).__name__
            )
            return ToolResult(
                success=False,
                error=f"Error executing tool {tool.name}: invalid result {type(result).__name__}",
                tool_name=tool.name,
            )
        if result.tool_name is None:
            result.tool_name = tool.name
        return result
