"""Ollama HTTP client: ``/api/chat`` and ``/api/tags`` over aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

import aiohttp

from parley.providers.base import (
    CompletionOptions,
    CompletionResult,
    ModelListResult,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434/api"
DEFAULT_MODEL = "llama3.2:latest"


def render_tool_prompt(tools: list[dict]) -> str:
    """Describe registered tools so the model can mention them in replies."""
    lines = [
        "The chat client can run these local tools when the user's message "
        "contains one of their keywords:"
    ]
    for tool in tools:
        keywords = ", ".join(tool.get("keywords", []))
        lines.append(f"- {tool['name']}: {tool.get('description', '')} (keywords: {keywords})")
    return "\n".join(lines)


@dataclass
class OllamaClient:
    """Non-streaming client for a local Ollama server."""

    base_url: str = DEFAULT_BASE_URL
    default_model: str = DEFAULT_MODEL
    timeout: int = 120
    default_options: dict = field(default_factory=lambda: {"top_p": 0.9, "top_k": 40})
    _usage: TokenUsage = field(default_factory=TokenUsage, repr=False)

    @property
    def name(self) -> str:
        return "ollama"

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        """Perform one HTTP call and decode the JSON body.

        Raises ``aiohttp.ClientError``, ``asyncio.TimeoutError`` or
        ``ValueError`` (undecodable body); callers turn these into results.
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, self._url(path), json=payload) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    try:
                        detail = json.loads(text).get("error", text)
                    except (json.JSONDecodeError, AttributeError):
                        detail = text
                    raise aiohttp.ClientResponseError(
                        resp.request_info,
                        resp.history,
                        status=resp.status,
                        message=str(detail).strip() or resp.reason or "",
                    )
                return json.loads(text)

    def build_payload(self, messages: list[dict], options: CompletionOptions) -> dict:
        chat = [{"role": m["role"], "content": m["content"]} for m in messages]
        if options.tools:
            chat.insert(0, {"role": "system", "content": render_tool_prompt(options.tools)})
        return {
            "model": options.model or self.default_model,
            "messages": chat,
            "stream": False,
            "options": {
                **self.default_options,
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }

    async def generate_chat_completion(
        self, messages: list[dict], options: CompletionOptions | None = None
    ) -> CompletionResult:
        payload = self.build_payload(messages, options or CompletionOptions())
        logger.debug(
            "Chat request: model=%s messages=%d", payload["model"], len(payload["messages"])
        )

        try:
            data = await self._request("POST", "chat", payload)
        except aiohttp.ClientResponseError as e:
            logger.error("Ollama error (status=%d): %s", e.status, e.message)
            return CompletionResult(False, error=f"Ollama error ({e.status}): {e.message}")
        except asyncio.TimeoutError:
            logger.error("Ollama request timed out after %ds", self.timeout)
            return CompletionResult(False, error=f"Request timed out after {self.timeout}s")
        except (aiohttp.ClientError, ValueError) as e:
            logger.error("Ollama request failed: %s", e)
            return CompletionResult(False, error=f"Could not reach Ollama at {self.base_url}: {e}")

        message = data.get("message") or {}
        if "content" not in message:
            return CompletionResult(False, error="Malformed response from Ollama", raw=data)

        prompt_tokens = data.get("prompt_eval_count")
        completion_tokens = data.get("eval_count")
        self._usage.requests += 1
        self._usage.prompt_tokens += prompt_tokens or 0
        self._usage.completion_tokens += completion_tokens or 0

        return CompletionResult(
            True,
            response=message["content"],
            model=data.get("model"),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            raw=data,
        )

    async def list_models(self) -> ModelListResult:
        try:
            data = await self._request("GET", "tags")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Error listing models: %s", e)
            return ModelListResult(False, error=str(e) or type(e).__name__)
        return ModelListResult(True, models=list(data.get("models", [])))

    def get_token_usage(self) -> TokenUsage:
        return TokenUsage(
            self._usage.prompt_tokens, self._usage.completion_tokens, self._usage.requests
        )

    def reset_token_usage(self) -> None:
        self._usage = TokenUsage()

    async def health_check(self) -> bool:
        return (await self.list_models()).success
