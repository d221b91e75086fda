"""Session orchestrator: one active conversation, one turn at a time.

Per turn:
1. Tool dispatch: a keyword-matched tool that succeeds answers the turn
   and the model is not called
2. Context assembly: files and hooks for the active conversation
3. Store: append the raw user text (context is never persisted)
4. Model call: history with context spliced into the last user turn
5. Store: append the reply, or nothing if the model failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import datetime
from pathlib import Path

from parley.config import ParleyConfig, SessionSettings
from parley.context.manager import ContextAssembler
from parley.memory.base import ConversationStore
from parley.memory.export import export_conversation
from parley.memory.models import Conversation, Message
from parley.providers.base import (
    CompletionOptions,
    CompletionResult,
    ModelClient,
    ModelListResult,
    TokenUsage,
)
from parley.tools.registry import ToolDispatcher, ToolResult

logger = logging.getLogger(__name__)

_SETTING_NAMES = {f.name for f in fields(SessionSettings)}


@dataclass
class TurnResult:
    """Outcome of ``send_message``. The CLI prints ``error`` verbatim."""

    success: bool
    message: Message | None = None
    error: str | None = None
    is_tool_result: bool = False
    tool_result: ToolResult | None = None
    completion: CompletionResult | None = None


class ChatSession:
    """Composes store, context assembler, tool dispatcher and model client."""

    def __init__(
        self,
        config: ParleyConfig,
        store: ConversationStore,
        client: ModelClient,
        context: ContextAssembler | None = None,
        tools: ToolDispatcher | None = None,
    ) -> None:
        self.config = config
        self.settings = replace(config.settings)
        self.memory = store
        self.client = client
        self.context = context or ContextAssembler()
        self.tools = tools or ToolDispatcher()
        self.initialized = False

    @property
    def active_conversation_id(self) -> str | None:
        return self.memory.active_conversation_id

    @property
    def model(self) -> str:
        return self.settings.model or self.config.ollama.default_model

    # ── Lifecycle ─────────────────────────────────────────────

    def initialize(self) -> str:
        """Resume the most recently updated conversation, or start a fresh one."""
        if self.initialized and self.active_conversation_id:
            return self.active_conversation_id

        conversations = self.memory.get_all_conversations()
        if not conversations:
            conversation_id = self.create_new_conversation()
        else:
            latest = max(conversations, key=lambda c: _parse_ts(c.metadata.last_updated))
            self.memory.set_active_conversation(latest.id)
            conversation_id = latest.id
            logger.info("Resumed conversation %s", conversation_id)

        self.initialized = True
        return conversation_id

    def close(self) -> None:
        self.memory.close()

    # ── Turn execution ───────────────────────────────────────

    async def send_message(self, text: str) -> TurnResult:
        self.initialize()
        conversation_id = self.active_conversation_id

        tool_result = await self.tools.execute_tool_from_prompt(text)
        if tool_result.success:
            self.memory.add_message("user", text, conversation_id)
            reply = self.memory.add_message(
                "assistant",
                f"[Tool: {tool_result.tool_name}]\n\n{tool_result.result}",
                conversation_id,
            )
            return TurnResult(True, message=reply, is_tool_result=True, tool_result=tool_result)
        if tool_result.tool_name:
            logger.info(
                "Tool %s failed, falling back to model: %s",
                tool_result.tool_name,
                tool_result.error,
            )

        context_text = await self.context.get_full_context(conversation_id)
        self.memory.add_message("user", text, conversation_id)
        request = self._build_request(conversation_id, context_text, text)

        options = CompletionOptions(
            model=self.model,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            tools=self.tools.describe_tools(),
        )
        try:
            result = await self.client.generate_chat_completion(request, options)
        except Exception as e:
            logger.error("Model client %s raised: %s", self.client.name, e)
            result = CompletionResult(False, error=f"Model client error: {e}")

        if not result.success:
            return TurnResult(False, error=result.error, completion=result)

        reply = self.memory.add_message("assistant", result.response, conversation_id)
        return TurnResult(True, message=reply, completion=result)

    def _build_request(self, conversation_id: str, context_text: str, text: str) -> list[dict]:
        """History view for the model; context goes into the last user turn only."""
        conversation = self.memory.get_conversation(conversation_id)
        request: list[dict] = []
        if conversation and conversation.summary:
            request.append(
                {"role": "system", "content": f"[Conversation Summary: {conversation.summary}]"}
            )
        messages = self.memory.get_messages(conversation_id) or []
        request += [{"role": m.role, "content": m.content} for m in messages]
        if context_text and request and request[-1]["role"] == "user":
            request[-1]["content"] = context_text + text
        return request

    # ── Conversations ────────────────────────────────────────

    def create_new_conversation(self, title: str | None = None, **metadata) -> str:
        conversation_id = self.memory.create_conversation(
            {
                **metadata,
                "title": title or "New Conversation",
                "model": metadata.get("model") or self.model,
            }
        )
        if self.settings.include_system_prompt and self.settings.system_prompt:
            self.memory.add_message("system", self.settings.system_prompt, conversation_id)
        logger.info("Created conversation %s", conversation_id)
        return conversation_id

    def switch_conversation(self, conversation_id: str) -> bool:
        return self.memory.set_active_conversation(conversation_id)

    def get_current_conversation(self) -> Conversation | None:
        return self.memory.get_active_conversation()

    def get_all_conversations(self) -> list[Conversation]:
        return self.memory.get_all_conversations()

    def get_formatted_history(self) -> str | None:
        return self.memory.get_formatted_history()

    def delete_conversation(self, conversation_id: str) -> bool:
        was_active = conversation_id == self.active_conversation_id
        if not self.memory.delete_conversation(conversation_id):
            return False

        self.context.cleanup_conversation(conversation_id)
        logger.info("Deleted conversation %s", conversation_id)
        if was_active:
            self.create_new_conversation()
        return True

    def export_conversation(self, path: Path, conversation_id: str | None = None) -> Path | None:
        conversation = (
            self.memory.get_conversation(conversation_id)
            if conversation_id
            else self.memory.get_active_conversation()
        )
        if conversation is None:
            return None
        return export_conversation(conversation, path)

    # ── Settings ─────────────────────────────────────────────

    def update_settings(self, **changes) -> SessionSettings:
        unknown = set(changes) - _SETTING_NAMES
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(sorted(unknown)))
        self.settings = replace(
            self.settings, **{k: v for k, v in changes.items() if k in _SETTING_NAMES}
        )
        return self.settings

    def update_system_prompt(self, system_prompt: str) -> bool:
        """Replace the system message of the active conversation.

        The old system message is removed and the new one appended at the
        end of the live sequence; ``message_count`` still only grows.
        """
        self.initialize()
        self.settings.system_prompt = system_prompt

        removed = self.memory.remove_system_messages(self.active_conversation_id)
        if removed or self.settings.include_system_prompt:
            self.memory.add_message("system", system_prompt, self.active_conversation_id)
        return True

    # ── Model server ─────────────────────────────────────────

    async def list_models(self) -> ModelListResult:
        return await self.client.list_models()

    def get_token_usage(self) -> TokenUsage:
        return self.client.get_token_usage()

    def reset_token_usage(self) -> None:
        self.client.reset_token_usage()


def _parse_ts(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return datetime.min
