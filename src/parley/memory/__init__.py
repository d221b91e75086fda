"""Conversation memory: data model, stores and retention.

Two interchangeable stores satisfy ``ConversationStore``:

    InMemoryConversationStore   process-local, lost on exit
    SqliteConversationStore     write-through to ~/.parley/memory.db

    conversations (id, metadata, summary, created_at, updated_at)
    messages      (id, conversation_id, role, content, timestamp)

Both run the same ``RetentionPolicy`` after every append.
"""

from parley.memory.base import AppendOutcome, ConversationStore
from parley.memory.models import Conversation, ConversationMetadata, Message
from parley.memory.retention import RetentionOutcome, RetentionPolicy, noop_summarizer
from parley.memory.sqlite import SqliteConversationStore
from parley.memory.store import InMemoryConversationStore

__all__ = [
    "AppendOutcome",
    "Conversation",
    "ConversationMetadata",
    "ConversationStore",
    "InMemoryConversationStore",
    "Message",
    "RetentionOutcome",
    "RetentionPolicy",
    "SqliteConversationStore",
    "noop_summarizer",
]
