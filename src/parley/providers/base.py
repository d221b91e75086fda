"""Model client protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class CompletionOptions:
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2048
    # {name, description, keywords} descriptors, used for prompt augmentation only
    tools: list[dict] = field(default_factory=list)


@dataclass
class CompletionResult:
    """Reply from the model server. ``response`` on success, ``error`` otherwise."""

    success: bool
    response: str = ""
    error: str | None = None
    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class ModelListResult:
    success: bool
    models: list[dict] = field(default_factory=list)
    error: str | None = None

    @property
    def names(self) -> list[str]:
        return [m.get("name", "") for m in self.models]


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    requests: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@runtime_checkable
class ModelClient(Protocol):
    """Protocol that model backends must implement."""

    @property
    def name(self) -> str: ...

    async def generate_chat_completion(
        self, messages: list[dict], options: CompletionOptions
    ) -> CompletionResult:
        """Send role/content messages and return the assistant reply."""
        ...

    async def list_models(self) -> ModelListResult: ...

    def get_token_usage(self) -> TokenUsage: ...

    def reset_token_usage(self) -> None: ...
