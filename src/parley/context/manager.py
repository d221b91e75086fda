"""Per-conversation context files and hooks, rendered into outbound prompts.

Context is keyed by conversation id but lives independently of the store:
deleting a conversation must be followed by ``cleanup_conversation``.
Nothing here is persisted.
"""

from __future__ import annotations

import inspect
import logging
import math
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Zero-argument callable producing text, sync or async
Hook = Callable[[], "str | Awaitable[str]"]

MAX_FILE_SIZE = 1024 * 1024
TOKENS_PER_CHAR = 0.25

SUPPORTED_EXTENSIONS = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
        ".cs", ".php", ".rb", ".go", ".rs", ".kt", ".swift", ".scala",
        ".html", ".css", ".scss", ".less", ".xml", ".json", ".yaml", ".yml",
        ".md", ".txt", ".sql", ".sh", ".bash", ".zsh", ".fish",
        ".dockerfile", ".gitignore", ".env", ".toml", ".ini", ".cfg",
    }
)

SKIPPED_DIRS = frozenset({"node_modules", "dist", "build", "out", ".git"})


def estimate_token_count(text: str | None) -> int:
    """Approximate token count: characters × 0.25, rounded up. Not a tokenizer."""
    if not text:
        return 0
    return math.ceil(len(text) * TOKENS_PER_CHAR)


@dataclass
class FileResult:
    file: str
    success: bool
    error: str | None = None
    is_directory: bool = False
    files_added: int = 0
    files_skipped: int = 0


@dataclass
class FileBatchResult:
    success: bool
    results: list[FileResult] = field(default_factory=list)
    total_files: int = 0


@dataclass
class FileTokenCount:
    path: str
    tokens: int
    size: int
    error: str | None = None


@dataclass
class ContextTokenCounts:
    files: list[FileTokenCount] = field(default_factory=list)
    total_tokens: int = 0
    total_files: int = 0


class ContextAssembler:
    """Context files and hooks for each conversation, created lazily."""

    def __init__(self, cwd: Path | None = None) -> None:
        self._cwd = cwd
        self._files: dict[str, dict[Path, None]] = {}
        self._hooks: dict[str, dict[str, Hook]] = {}

    @property
    def cwd(self) -> Path:
        return self._cwd or Path.cwd()

    def _file_set(self, conversation_id: str) -> dict[Path, None]:
        return self._files.setdefault(conversation_id, {})

    def _hook_set(self, conversation_id: str) -> dict[str, Hook]:
        return self._hooks.setdefault(conversation_id, {})

    def _resolve(self, path: str | Path) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.cwd / p
        return Path(os.path.abspath(p))

    def _display_path(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.cwd)
        except ValueError:
            return str(path)

    # ── Files ────────────────────────────────────────────────

    def add_files(self, conversation_id: str, paths: list[str | Path]) -> FileBatchResult:
        """Add files or directories. Succeeds if at least one file was added."""
        files = self._file_set(conversation_id)
        results: list[FileResult] = []

        for raw in paths:
            resolved = self._resolve(raw)
            if not resolved.exists():
                results.append(FileResult(str(raw), False, "Path does not exist"))
                continue
            if resolved.is_dir():
                results.append(self._add_directory(conversation_id, resolved, str(raw)))
                continue
            results.append(self._add_single_file(conversation_id, resolved, str(raw)))

        return FileBatchResult(
            success=any(r.success for r in results),
            results=results,
            total_files=len(files),
        )

    def _add_single_file(self, conversation_id: str, path: Path, label: str) -> FileResult:
        try:
            if not path.is_file():
                return FileResult(label, False, "Path is not a file")
            if path.stat().st_size > MAX_FILE_SIZE:
                return FileResult(
                    label, False, f"File too large (max {MAX_FILE_SIZE // (1024 * 1024)}MB)"
                )
            ext = path.suffix.lower()
            if ext and ext not in SUPPORTED_EXTENSIONS:
                return FileResult(label, False, "File type not supported")
            path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return FileResult(label, False, str(e))

        self._file_set(conversation_id)[path] = None
        return FileResult(label, True)

    def _add_directory(self, conversation_id: str, root: Path, label: str) -> FileResult:
        added = 0
        skipped = 0
        error: str | None = None

        try:
            for dirpath, dirnames, filenames in os.walk(root):
                kept = []
                for name in sorted(dirnames):
                    if name.startswith(".") or name in SKIPPED_DIRS:
                        skipped += 1
                    else:
                        kept.append(name)
                dirnames[:] = kept

                for name in sorted(filenames):
                    if name.startswith("."):
                        skipped += 1
                        continue
                    path = Path(dirpath) / name
                    if self._add_single_file(conversation_id, path, str(path)).success:
                        added += 1
                    else:
                        skipped += 1
        except OSError as e:
            error = str(e)

        return FileResult(
            label,
            added > 0,
            error=error or (None if added else "No supported files found"),
            is_directory=True,
            files_added=added,
            files_skipped=skipped,
        )

    def remove_files(self, conversation_id: str, paths: list[str | Path]) -> FileBatchResult:
        """Remove files. Succeeds only if every requested path was in context."""
        files = self._file_set(conversation_id)
        results: list[FileResult] = []

        for raw in paths:
            resolved = self._resolve(raw)
            if resolved in files:
                del files[resolved]
                results.append(FileResult(str(raw), True))
            else:
                results.append(FileResult(str(raw), False, "File not in context"))

        return FileBatchResult(
            success=all(r.success for r in results),
            results=results,
            total_files=len(files),
        )

    def clear_files(self, conversation_id: str) -> int:
        files = self._file_set(conversation_id)
        count = len(files)
        files.clear()
        return count

    def get_context_files(self, conversation_id: str) -> list[Path]:
        return list(self._file_set(conversation_id))

    def get_supported_extensions(self) -> list[str]:
        return sorted(SUPPORTED_EXTENSIONS)

    # ── Hooks ────────────────────────────────────────────────

    def add_hook(self, conversation_id: str, name: str, fn: Hook) -> None:
        self._hook_set(conversation_id)[name] = fn

    def remove_hook(self, conversation_id: str, name: str) -> bool:
        return self._hook_set(conversation_id).pop(name, None) is not None

    def get_hooks(self, conversation_id: str) -> list[str]:
        return list(self._hook_set(conversation_id))

    # ── Rendering ────────────────────────────────────────────

    def get_context_content(self, conversation_id: str) -> str:
        files = self.get_context_files(conversation_id)
        if not files:
            return ""

        parts = ["\n--- CONTEXT FILES ---\n"]
        for path in files:
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Context file %s unreadable: %s", path, e)
                parts.append(
                    f"\n=== {self._display_path(path)} ===\n"
                    f"[Error reading file: {e}]\n=== END OF FILE ===\n"
                )
                continue
            parts.append(
                f"\n=== {self._display_path(path)} ===\n{content}\n=== END OF FILE ===\n"
            )
        parts.append("--- END CONTEXT FILES ---\n\n")
        return "".join(parts)

    async def execute_hooks(self, conversation_id: str) -> str:
        hooks = self._hook_set(conversation_id)
        if not hooks:
            return ""

        parts = ["\n--- CONTEXT HOOKS ---\n"]
        for name, fn in list(hooks.items()):
            try:
                content = fn()
                if inspect.isawaitable(content):
                    content = await content
            except Exception as e:
                logger.warning("Context hook %s failed: %s", name, e)
                parts.append(f"\n=== {name} ===\n[Error executing hook: {e}]\n=== END HOOK ===\n")
                continue
            if content:
                parts.append(f"\n=== {name} ===\n{content}\n=== END HOOK ===\n")
        parts.append("--- END CONTEXT HOOKS ---\n\n")
        return "".join(parts)

    async def get_full_context(self, conversation_id: str) -> str:
        """Files then hooks. Per-item failures are rendered inline, never raised."""
        return self.get_context_content(conversation_id) + await self.execute_hooks(
            conversation_id
        )

    def estimate_token_count(self, text: str | None) -> int:
        return estimate_token_count(text)

    def get_context_token_counts(self, conversation_id: str) -> ContextTokenCounts:
        counts = ContextTokenCounts()
        for path in self.get_context_files(conversation_id):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                counts.files.append(FileTokenCount(str(path), 0, 0, error=str(e)))
                continue
            tokens = estimate_token_count(content)
            counts.files.append(FileTokenCount(self._display_path(path), tokens, len(content)))
            counts.total_tokens += tokens
        counts.total_files = len(counts.files)
        return counts

    def cleanup_conversation(self, conversation_id: str) -> None:
        self._files.pop(conversation_id, None)
        self._hooks.pop(conversation_id, None)
