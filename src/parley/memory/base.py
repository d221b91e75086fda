"""Conversation store protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from parley.memory.models import Conversation, Message
from parley.memory.retention import RetentionOutcome


@dataclass
class AppendOutcome:
    """Result of a successful append, including what retention removed."""

    conversation_id: str
    message: Message
    retention: RetentionOutcome


@runtime_checkable
class ConversationStore(Protocol):
    """Contract shared by the volatile and durable conversation stores.

    Operations on a missing conversation return ``None``/``False``; none of
    them raise for not-found.
    """

    @property
    def active_conversation_id(self) -> str | None: ...

    def create_conversation(self, metadata: dict | None = None) -> str:
        """Create an empty conversation, make it active, return its id."""
        ...

    def set_active_conversation(self, conversation_id: str) -> bool: ...

    def get_active_conversation(self) -> Conversation | None: ...

    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    def add_message(
        self, role: str, content: str, conversation_id: str | None = None
    ) -> Message | None:
        """Append to the given (or active) conversation, then apply retention."""
        ...

    def get_messages(self, conversation_id: str | None = None) -> list[Message] | None: ...

    def get_formatted_history(self, conversation_id: str | None = None) -> str | None: ...

    def update_summary(self, conversation_id: str, summary: str) -> bool: ...

    def remove_system_messages(self, conversation_id: str | None = None) -> list[Message]:
        """Drop every system message from the live sequence."""
        ...

    def delete_conversation(self, conversation_id: str) -> bool: ...

    def get_all_conversations(self) -> list[Conversation]: ...

    def clear_all_conversations(self) -> None: ...

    def close(self) -> None: ...
