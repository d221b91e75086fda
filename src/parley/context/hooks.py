"""Built-in context hooks that can be attached to a conversation by name."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from parley.context.manager import Hook
from parley.tools.shell import run_command


def git_status_hook(cwd: Path | None = None) -> Hook:
    async def hook() -> str:
        out = await run_command(["git", "status", "--short", "--branch"], cwd=_str(cwd))
        if not out.ok:
            raise RuntimeError(out.stderr.strip() or "git status failed")
        return out.stdout.strip()

    return hook


def git_diff_hook(cwd: Path | None = None) -> Hook:
    async def hook() -> str:
        out = await run_command(["git", "diff"], cwd=_str(cwd))
        if not out.ok:
            raise RuntimeError(out.stderr.strip() or "git diff failed")
        return out.stdout.strip() or "(no unstaged changes)"

    return hook


def directory_hook(cwd: Path | None = None) -> Hook:
    def hook() -> str:
        root = cwd or Path.cwd()
        entries = sorted(p.name + ("/" if p.is_dir() else "") for p in root.iterdir())
        return f"{root}\n" + "\n".join(e for e in entries if not e.startswith("."))

    return hook


def _str(path: Path | None) -> str | None:
    return str(path) if path else None


BUILTIN_HOOKS: dict[str, Callable[[Path | None], Hook]] = {
    "git_status": git_status_hook,
    "git_diff": git_diff_hook,
    "directory": directory_hook,
}
