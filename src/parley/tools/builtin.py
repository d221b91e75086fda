"""Default shell and git tools."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from parley.tools.registry import ToolDispatcher, ToolResult
from parley.tools.shell import run_command

logger = logging.getLogger(__name__)

_READ_FILE_RE = re.compile(r"(?:read|show|cat|display|view) file\s+(\S+)", re.IGNORECASE)
_COMMAND_RE = re.compile(
    r"\b(?:run command|shell command|bash command|terminal command|execute)\b\s*:?\s*(.+)",
    re.IGNORECASE | re.DOTALL,
)


class BuiltinTools:
    """Handlers for the default tool set, all run against ``cwd``."""

    def __init__(self, cwd: Path | None = None, timeout: float = 30.0) -> None:
        self.cwd = cwd
        self.timeout = timeout

    @property
    def _cwd(self) -> str:
        return str(self.cwd or Path.cwd())

    async def _run(self, tool_name: str, args: list[str] | str) -> ToolResult:
        try:
            out = await run_command(args, cwd=self._cwd, timeout=self.timeout)
        except FileNotFoundError:
            name = args[0] if isinstance(args, list) else args.split()[0]
            return ToolResult(False, error=f"`{name}` not found. Is it installed and on PATH?")
        except asyncio.TimeoutError:
            return ToolResult(False, error=f"{tool_name} timed out after {self.timeout:.0f}s")

        stderr = out.stderr.strip()
        if "not a git repository" in stderr:
            return ToolResult(False, error="Current directory is not a git repository")
        if not out.ok:
            return ToolResult(False, error=f"Error: {stderr or f'exit code {out.returncode}'}")
        return ToolResult(True, result=out.stdout, tool_name=tool_name)

    async def git_pull_request(self, prompt: str) -> ToolResult:
        result = await self._run("git_pull_request", ["gh", "pr", "view"])
        if not result.success and "no pull requests found" in (result.error or ""):
            return ToolResult(False, error="No pull request found for the current branch")
        return result

    async def git_diff(self, prompt: str) -> ToolResult:
        result = await self._run("git_diff", ["git", "diff"])
        if result.success and not result.result.strip():
            result.result = "No changes detected in the working directory"
        return result

    async def git_status(self, prompt: str) -> ToolResult:
        return await self._run("git_status", ["git", "status"])

    async def list_directory(self, prompt: str) -> ToolResult:
        return await self._run("list_directory", ["ls"])

    async def read_file(self, prompt: str) -> ToolResult:
        match = _READ_FILE_RE.search(prompt)
        if not match:
            return ToolResult(False, error="No filename specified. Please specify a file to read.")

        file_name = match.group(1)
        path = Path(self._cwd) / Path(file_name).expanduser()
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(False, error=f"Error reading file: {e}")
        return ToolResult(True, result=content, tool_name="read_file", metadata={"file": file_name})

    async def execute_command(self, prompt: str) -> ToolResult:
        match = _COMMAND_RE.search(prompt)
        command = match.group(1).strip() if match else ""
        if not command:
            return ToolResult(False, error="No command specified after the trigger phrase.")
        logger.info("Executing shell command: %s", command)
        return await self._run("execute_command", command)


def register_default_tools(dispatcher: ToolDispatcher, cwd: Path | None = None) -> BuiltinTools:
    tools = BuiltinTools(cwd)
    dispatcher.register_tool(
        "git_pull_request",
        tools.git_pull_request,
        ["pull request", "pr", "github pr", "check pr", "show pr"],
        "Check current branch pull request details",
    )
    dispatcher.register_tool(
        "git_diff",
        tools.git_diff,
        [
            "diff", "changes", "git diff", "check changes", "show changes", "what changed",
            "changes made", "modifications", "git status changes", "working directory changes",
        ],
        "Show git diff of current changes",
    )
    dispatcher.register_tool(
        "git_status",
        tools.git_status,
        ["git status", "status", "repository status", "repo status", "working tree status"],
        "Show git repository status",
    )
    dispatcher.register_tool(
        "list_directory",
        tools.list_directory,
        ["list files", "ls", "show files", "directory contents", "current directory",
         "list directory"],
        "List files in the current directory",
    )
    dispatcher.register_tool(
        "read_file",
        tools.read_file,
        ["read file", "show file", "cat file", "display file", "view file"],
        "Read and display file contents",
    )
    dispatcher.register_tool(
        "execute_command",
        tools.execute_command,
        ["run command", "execute", "shell command", "bash command", "terminal command"],
        "Execute a shell command",
    )
    return tools
