from parley.providers.base import (
    CompletionOptions,
    CompletionResult,
    ModelClient,
    ModelListResult,
    TokenUsage,
)
from parley.providers.ollama import OllamaClient

__all__ = [
    "CompletionOptions",
    "CompletionResult",
    "ModelClient",
    "ModelListResult",
    "OllamaClient",
    "TokenUsage",
]
