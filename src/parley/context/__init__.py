"""Context assembly: files and hooks injected into outbound prompts only."""

from parley.context.hooks import BUILTIN_HOOKS
from parley.context.manager import (
    ContextAssembler,
    ContextTokenCounts,
    FileBatchResult,
    FileResult,
    FileTokenCount,
    estimate_token_count,
)

__all__ = [
    "BUILTIN_HOOKS",
    "ContextAssembler",
    "ContextTokenCounts",
    "FileBatchResult",
    "FileResult",
    "FileTokenCount",
    "estimate_token_count",
]
