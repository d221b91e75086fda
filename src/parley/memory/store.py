"""Volatile, process-local conversation store.

Also serves as the in-memory cache behind the SQLite store, which is why
``append_message`` reports the retention outcome instead of hiding it.
"""

from __future__ import annotations

import logging

from parley.memory.base import AppendOutcome
from parley.memory.models import (
    DEFAULT_TITLE,
    ROLES,
    Conversation,
    ConversationMetadata,
    Message,
    now_iso,
)
from parley.memory.retention import RetentionPolicy

logger = logging.getLogger(__name__)


class InMemoryConversationStore:
    """Conversations held in a dict, keyed by id, in creation order."""

    def __init__(self, policy: RetentionPolicy | None = None) -> None:
        self.policy = policy or RetentionPolicy()
        self._conversations: dict[str, Conversation] = {}
        self._active_id: str | None = None

    @property
    def active_conversation_id(self) -> str | None:
        return self._active_id

    # ── Conversations ────────────────────────────────────────

    def create_conversation(self, metadata: dict | None = None) -> str:
        data = dict(metadata or {})
        ts = now_iso()
        conversation = Conversation(
            metadata=ConversationMetadata(
                created=ts,
                last_updated=ts,
                message_count=0,
                title=data.pop("title", None) or DEFAULT_TITLE,
                model=data.pop("model", None),
                extra=data,
            )
        )
        self._conversations[conversation.id] = conversation
        self._active_id = conversation.id
        return conversation.id

    def load(self, conversation: Conversation) -> None:
        """Insert an already-built conversation without touching the active id."""
        self._conversations[conversation.id] = conversation

    def set_active_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        self._active_id = conversation_id
        return True

    def get_active_conversation(self) -> Conversation | None:
        if not self._active_id:
            return None
        return self.get_conversation(self._active_id)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.snapshot() if conversation else None

    def delete_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        del self._conversations[conversation_id]
        if self._active_id == conversation_id:
            self._active_id = None
        return True

    def get_all_conversations(self) -> list[Conversation]:
        return [c.snapshot() for c in self._conversations.values()]

    def clear_all_conversations(self) -> None:
        self._conversations.clear()
        self._active_id = None

    # ── Messages ─────────────────────────────────────────────

    def _resolve(self, conversation_id: str | None) -> Conversation | None:
        target = conversation_id or self._active_id
        if not target:
            return None
        return self._conversations.get(target)

    def append_message(
        self, role: str, content: str, conversation_id: str | None = None
    ) -> AppendOutcome | None:
        """Append and apply retention, returning everything that changed."""
        if role not in ROLES:
            logger.warning("Rejected message with unknown role %r", role)
            return None
        conversation = self._resolve(conversation_id)
        if conversation is None:
            return None

        message = Message(role=role, content=content)
        conversation.messages.append(message)
        conversation.metadata.message_count += 1
        conversation.metadata.last_updated = message.timestamp

        retention = self.policy.apply(conversation)
        return AppendOutcome(conversation.id, message, retention)

    def add_message(
        self, role: str, content: str, conversation_id: str | None = None
    ) -> Message | None:
        outcome = self.append_message(role, content, conversation_id)
        return outcome.message if outcome else None

    def get_messages(self, conversation_id: str | None = None) -> list[Message] | None:
        conversation = self._resolve(conversation_id)
        if conversation is None:
            return None
        return list(conversation.messages)

    def get_formatted_history(self, conversation_id: str | None = None) -> str | None:
        conversation = self._resolve(conversation_id)
        if conversation is None:
            return None

        parts: list[str] = []
        if conversation.summary:
            parts.append(f"[Conversation Summary: {conversation.summary}]")
        for message in conversation.messages:
            parts.append(f"{message.role.capitalize()}: {message.content}")
        return "\n\n".join(parts)

    def update_summary(self, conversation_id: str, summary: str) -> bool:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False
        conversation.summary = summary
        return True

    def remove_system_messages(self, conversation_id: str | None = None) -> list[Message]:
        conversation = self._resolve(conversation_id)
        if conversation is None:
            return []
        removed = [m for m in conversation.messages if m.role == "system"]
        if removed:
            conversation.messages = [m for m in conversation.messages if m.role != "system"]
        return removed

    def close(self) -> None:
        pass
