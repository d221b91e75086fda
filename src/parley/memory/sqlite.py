"""Durable conversation store: SQLite write-through over the in-memory store.

Every mutating call updates the in-memory cache, then persists the same
change in a single transaction. A failed write is logged and the in-memory
outcome is still returned; there is no retry and no rollback of the cache.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from parley.memory.models import Conversation, ConversationMetadata, Message
from parley.memory.retention import RetentionPolicy
from parley.memory.store import InMemoryConversationStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    metadata TEXT,
    summary TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT,
    role TEXT,
    content TEXT,
    timestamp TEXT,
    FOREIGN KEY (conversation_id) REFERENCES conversations (id)
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation
    ON messages (conversation_id, timestamp);
"""


class SqliteConversationStore:
    """Persistent store backed by a single SQLite file."""

    def __init__(self, conn: sqlite3.Connection, policy: RetentionPolicy | None = None) -> None:
        self._conn = conn
        self._cache = InMemoryConversationStore(policy)

    @classmethod
    def open(cls, db_path: Path, policy: RetentionPolicy | None = None) -> SqliteConversationStore:
        """Open (creating if needed) the database and load every conversation.

        Raises ``sqlite3.Error`` if the file cannot be opened or read.
        """
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        conn.executescript(SCHEMA)
        store = cls(conn, policy)
        store._load()
        logger.info(
            "Opened conversation database %s (%d conversations)",
            db_path,
            len(store._cache.get_all_conversations()),
        )
        return store

    @property
    def policy(self) -> RetentionPolicy:
        return self._cache.policy

    @property
    def active_conversation_id(self) -> str | None:
        return self._cache.active_conversation_id

    def _load(self) -> None:
        rows = self._conn.execute("SELECT * FROM conversations ORDER BY created_at").fetchall()
        for row in rows:
            messages = [
                Message(
                    id=m["id"],
                    role=m["role"],
                    content=m["content"],
                    timestamp=m["timestamp"],
                )
                for m in self._conn.execute(
                    "SELECT * FROM messages WHERE conversation_id = ? "
                    "ORDER BY timestamp ASC, rowid ASC",
                    (row["id"],),
                )
            ]
            try:
                metadata = ConversationMetadata.from_dict(json.loads(row["metadata"] or "{}"))
            except json.JSONDecodeError:
                logger.warning("Corrupt metadata for conversation %s, using defaults", row["id"])
                metadata = ConversationMetadata(
                    created=row["created_at"], last_updated=row["updated_at"]
                )
            self._cache.load(
                Conversation(
                    id=row["id"],
                    messages=messages,
                    metadata=metadata,
                    summary=row["summary"],
                )
            )

    # ── Writes ───────────────────────────────────────────────

    def _write_metadata(self, conversation: Conversation) -> None:
        self._conn.execute(
            "UPDATE conversations SET metadata = ?, summary = ?, updated_at = ? WHERE id = ?",
            (
                json.dumps(conversation.metadata.to_dict()),
                conversation.summary,
                conversation.metadata.last_updated,
                conversation.id,
            ),
        )

    def create_conversation(self, metadata: dict | None = None) -> str:
        conversation_id = self._cache.create_conversation(metadata)
        conversation = self._cache.get_conversation(conversation_id)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO conversations (id, metadata, summary, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        conversation_id,
                        json.dumps(conversation.metadata.to_dict()),
                        conversation.summary,
                        conversation.metadata.created,
                        conversation.metadata.last_updated,
                    ),
                )
        except sqlite3.Error as e:
            logger.error("Failed to persist conversation %s: %s", conversation_id, e)
        return conversation_id

    def add_message(
        self, role: str, content: str, conversation_id: str | None = None
    ) -> Message | None:
        outcome = self._cache.append_message(role, content, conversation_id)
        if outcome is None:
            return None

        message = outcome.message
        conversation = self._cache.get_conversation(outcome.conversation_id)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO messages (id, conversation_id, role, content, timestamp) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (message.id, conversation.id, message.role, message.content, message.timestamp),
                )
                if outcome.retention.evicted:
                    self._conn.executemany(
                        "DELETE FROM messages WHERE id = ?",
                        [(m.id,) for m in outcome.retention.evicted],
                    )
                self._write_metadata(conversation)
        except sqlite3.Error as e:
            logger.error("Failed to persist message in %s: %s", conversation.id, e)
        return message

    def update_summary(self, conversation_id: str, summary: str) -> bool:
        if not self._cache.update_summary(conversation_id, summary):
            return False
        try:
            with self._conn:
                self._conn.execute(
                    "UPDATE conversations SET summary = ? WHERE id = ?",
                    (summary, conversation_id),
                )
        except sqlite3.Error as e:
            logger.error("Failed to update summary for %s: %s", conversation_id, e)
        return True

    def remove_system_messages(self, conversation_id: str | None = None) -> list[Message]:
        removed = self._cache.remove_system_messages(conversation_id)
        if not removed:
            return removed
        try:
            with self._conn:
                self._conn.executemany(
                    "DELETE FROM messages WHERE id = ?", [(m.id,) for m in removed]
                )
        except sqlite3.Error as e:
            logger.error("Failed to delete system messages: %s", e)
        return removed

    def delete_conversation(self, conversation_id: str) -> bool:
        if not self._cache.delete_conversation(conversation_id):
            return False
        try:
            with self._conn:
                self._conn.execute(
                    "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
                )
                self._conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        except sqlite3.Error as e:
            logger.error("Failed to delete conversation %s: %s", conversation_id, e)
        return True

    def clear_all_conversations(self) -> None:
        self._cache.clear_all_conversations()
        try:
            with self._conn:
                self._conn.execute("DELETE FROM messages")
                self._conn.execute("DELETE FROM conversations")
        except sqlite3.Error as e:
            logger.error("Failed to clear conversations: %s", e)

    # ── Reads (served from the cache) ────────────────────────

    def set_active_conversation(self, conversation_id: str) -> bool:
        return self._cache.set_active_conversation(conversation_id)

    def get_active_conversation(self) -> Conversation | None:
        return self._cache.get_active_conversation()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._cache.get_conversation(conversation_id)

    def get_messages(self, conversation_id: str | None = None) -> list[Message] | None:
        return self._cache.get_messages(conversation_id)

    def get_formatted_history(self, conversation_id: str | None = None) -> str | None:
        return self._cache.get_formatted_history(conversation_id)

    def get_all_conversations(self) -> list[Conversation]:
        return self._cache.get_all_conversations()

    def close(self) -> None:
        self._conn.close()
