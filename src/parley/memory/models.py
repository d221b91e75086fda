"""Conversation and message entities."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

Role = Literal["system", "user", "assistant"]

ROLES: tuple[str, ...] = ("system", "user", "assistant")

DEFAULT_TITLE = "New Conversation"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def now_iso() -> str:
    return datetime.now().isoformat()


@dataclass(frozen=True)
class Message:
    """A single turn. Immutable once created."""

    role: Role
    content: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=now_iso)


@dataclass
class ConversationMetadata:
    """Bookkeeping for a conversation.

    ``message_count`` counts appends and is never decremented, so it drifts
    above ``len(messages)`` once eviction starts.
    """

    created: str = field(default_factory=now_iso)
    last_updated: str = ""
    message_count: int = 0
    title: str = DEFAULT_TITLE
    model: str | None = None
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.last_updated:
            self.last_updated = self.created

    def to_dict(self) -> dict:
        return {
            **self.extra,
            "created": self.created,
            "lastUpdated": self.last_updated,
            "messageCount": self.message_count,
            "title": self.title,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ConversationMetadata:
        known = {"created", "lastUpdated", "messageCount", "title", "model"}
        return cls(
            created=data.get("created") or now_iso(),
            last_updated=data.get("lastUpdated", ""),
            message_count=int(data.get("messageCount", 0)),
            title=data.get("title") or DEFAULT_TITLE,
            model=data.get("model"),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class Conversation:
    """An ordered, bounded sequence of messages plus metadata and summary."""

    id: str = field(default_factory=new_id)
    messages: list[Message] = field(default_factory=list)
    metadata: ConversationMetadata = field(default_factory=ConversationMetadata)
    summary: str | None = None

    def snapshot(self) -> Conversation:
        """Copy that shares no mutable state with the stored conversation."""
        return replace(
            self,
            messages=list(self.messages),
            metadata=replace(self.metadata, extra=dict(self.metadata.extra)),
        )
