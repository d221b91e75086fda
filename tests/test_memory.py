"""Tests for conversation stores and the retention policy."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from parley.memory import (
    ConversationStore,
    InMemoryConversationStore,
    RetentionPolicy,
    SqliteConversationStore,
)
from parley.memory.export import export_conversation, render_conversation


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore(RetentionPolicy(max_messages=5, summarize_threshold=3))


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "memory.db"


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path: Path):
    policy = RetentionPolicy(max_messages=5, summarize_threshold=3)
    if request.param == "memory":
        s = InMemoryConversationStore(policy)
    else:
        s = SqliteConversationStore.open(tmp_path / "contract.db", policy)
    yield s
    s.close()


class TestStoreContract:
    def test_implements_protocol(self, any_store):
        assert isinstance(any_store, ConversationStore)

    def test_create_sets_active(self, any_store):
        cid = any_store.create_conversation({"title": "Hello", "model": "llama3"})
        conv = any_store.get_active_conversation()
        assert conv.id == cid
        assert conv.messages == []
        assert conv.summary is None
        assert conv.metadata.message_count == 0
        assert conv.metadata.title == "Hello"
        assert conv.metadata.model == "llama3"
        assert conv.metadata.created == conv.metadata.last_updated

    def test_create_generates_unique_ids(self, any_store):
        ids = {any_store.create_conversation() for _ in range(20)}
        assert len(ids) == 20

    def test_set_active_missing(self, any_store):
        assert any_store.set_active_conversation("nope") is False
        assert any_store.get_active_conversation() is None

    def test_set_active_existing(self, any_store):
        first = any_store.create_conversation()
        any_store.create_conversation()
        assert any_store.set_active_conversation(first) is True
        assert any_store.active_conversation_id == first

    def test_add_message_without_target(self, any_store):
        assert any_store.add_message("user", "hi") is None

    def test_add_message_unknown_conversation(self, any_store):
        any_store.create_conversation()
        assert any_store.add_message("user", "hi", "missing") is None

    def test_add_message_rejects_unknown_role(self, any_store):
        any_store.create_conversation()
        assert any_store.add_message("tool", "hi") is None
        assert any_store.get_messages() == []

    def test_add_message_updates_metadata(self, any_store):
        cid = any_store.create_conversation()
        msg = any_store.add_message("user", "hello")
        conv = any_store.get_conversation(cid)
        assert msg.role == "user"
        assert msg.content == "hello"
        assert conv.metadata.message_count == 1
        assert conv.metadata.last_updated == msg.timestamp

    def test_add_message_to_explicit_conversation(self, any_store):
        first = any_store.create_conversation()
        any_store.create_conversation()
        any_store.add_message("user", "to first", first)
        assert [m.content for m in any_store.get_messages(first)] == ["to first"]
        assert any_store.get_messages() == []

    def test_get_messages_is_snapshot(self, any_store):
        any_store.create_conversation()
        any_store.add_message("user", "one")
        messages = any_store.get_messages()
        messages.clear()
        assert len(any_store.get_messages()) == 1

    def test_get_conversation_is_snapshot(self, any_store):
        cid = any_store.create_conversation()
        conv = any_store.get_conversation(cid)
        conv.metadata.message_count = 99
        conv.messages.append(None)
        fresh = any_store.get_conversation(cid)
        assert fresh.metadata.message_count == 0
        assert fresh.messages == []

    def test_message_is_immutable(self, any_store):
        any_store.create_conversation()
        msg = any_store.add_message("user", "x")
        with pytest.raises(AttributeError):
            msg.content = "y"

    def test_formatted_history(self, any_store):
        cid = any_store.create_conversation()
        any_store.add_message("system", "Be brief")
        any_store.add_message("user", "Hi")
        any_store.add_message("assistant", "Hello")
        assert any_store.get_formatted_history() == (
            "System: Be brief\n\nUser: Hi\n\nAssistant: Hello"
        )
        any_store.update_summary(cid, "greetings exchanged")
        assert any_store.get_formatted_history().startswith(
            "[Conversation Summary: greetings exchanged]\n\nSystem: Be brief"
        )

    def test_formatted_history_missing(self, any_store):
        assert any_store.get_formatted_history("missing") is None

    def test_update_summary_missing(self, any_store):
        assert any_store.update_summary("missing", "x") is False

    def test_delete_active_clears_active(self, any_store):
        cid = any_store.create_conversation()
        any_store.add_message("user", "bye")
        assert any_store.delete_conversation(cid) is True
        assert any_store.get_active_conversation() is None
        assert any_store.get_messages(cid) is None
        assert any_store.delete_conversation(cid) is False

    def test_delete_inactive_keeps_active(self, any_store):
        first = any_store.create_conversation()
        second = any_store.create_conversation()
        any_store.delete_conversation(first)
        assert any_store.active_conversation_id == second

    def test_get_all_conversations(self, any_store):
        a = any_store.create_conversation()
        b = any_store.create_conversation()
        assert {c.id for c in any_store.get_all_conversations()} == {a, b}

    def test_clear_all(self, any_store):
        any_store.create_conversation()
        any_store.create_conversation()
        any_store.clear_all_conversations()
        assert any_store.get_all_conversations() == []
        assert any_store.active_conversation_id is None

    def test_remove_system_messages(self, any_store):
        cid = any_store.create_conversation()
        any_store.add_message("system", "old prompt")
        any_store.add_message("user", "hi")
        removed = any_store.remove_system_messages()
        assert [m.content for m in removed] == ["old prompt"]
        assert [m.role for m in any_store.get_messages()] == ["user"]
        # Structural edit does not rewind the append counter
        assert any_store.get_conversation(cid).metadata.message_count == 2


class TestRetention:
    def test_eviction_bound_holds_after_every_append(self, store: InMemoryConversationStore):
        store.create_conversation()
        for i in range(20):
            store.add_message("user", f"m{i}")
            assert len(store.get_messages()) <= 5

    def test_oldest_first_eviction(self, store: InMemoryConversationStore):
        store.create_conversation()
        for i in range(8):
            store.add_message("user", f"m{i}")
        assert [m.content for m in store.get_messages()] == ["m3", "m4", "m5", "m6", "m7"]

    def test_message_count_keeps_growing(self, store: InMemoryConversationStore):
        cid = store.create_conversation()
        previous = 0
        for i in range(12):
            store.add_message("user", f"m{i}")
            count = store.get_conversation(cid).metadata.message_count
            assert count == previous + 1
            previous = count
        assert previous == 12
        assert len(store.get_messages()) == 5

    def test_system_message_is_evicted(self, store: InMemoryConversationStore):
        store.create_conversation()
        store.add_message("system", "You are helpful")
        for i in range(5):
            store.add_message("user", f"m{i}")
        roles = [m.role for m in store.get_messages()]
        assert "system" not in roles

    def test_unbounded_when_max_messages_not_positive(self):
        s = InMemoryConversationStore(RetentionPolicy(max_messages=0, summarize_threshold=1000))
        s.create_conversation()
        for i in range(150):
            s.add_message("user", f"m{i}")
        assert len(s.get_messages()) == 150

    def test_default_summarizer_is_noop(self, store: InMemoryConversationStore, caplog):
        cid = store.create_conversation()
        with caplog.at_level("INFO", logger="parley.memory.retention"):
            for i in range(4):
                store.add_message("user", f"m{i}")
        assert store.get_conversation(cid).summary is None
        assert "Summarization requested" in caplog.text

    def test_summarizer_runs_before_eviction(self):
        seen: list[list[str]] = []

        def summarizer(conversation):
            seen.append([m.content for m in conversation.messages])
            return f"{len(conversation.messages)} messages so far"

        s = InMemoryConversationStore(
            RetentionPolicy(max_messages=2, summarize_threshold=2, summarizer=summarizer)
        )
        cid = s.create_conversation()
        for i in range(3):
            s.add_message("user", f"m{i}")

        # The summarizer saw all three messages before two survived eviction
        assert seen == [["m0", "m1", "m2"]]
        assert s.get_conversation(cid).summary == "3 messages so far"
        assert [m.content for m in s.get_messages()] == ["m1", "m2"]

    def test_summary_survives_eviction(self):
        s = InMemoryConversationStore(
            RetentionPolicy(max_messages=2, summarize_threshold=100)
        )
        cid = s.create_conversation()
        s.update_summary(cid, "kept")
        for i in range(6):
            s.add_message("user", f"m{i}")
        assert s.get_conversation(cid).summary == "kept"

    def test_failing_summarizer_still_evicts(self, caplog):
        def summarizer(conversation):
            raise RuntimeError("summarizer down")

        s = InMemoryConversationStore(
            RetentionPolicy(max_messages=2, summarize_threshold=1, summarizer=summarizer)
        )
        cid = s.create_conversation()
        with caplog.at_level("ERROR", logger="parley.memory.retention"):
            for i in range(3):
                assert s.add_message("user", f"m{i}") is not None

        assert [m.content for m in s.get_messages()] == ["m1", "m2"]
        assert s.get_conversation(cid).summary is None
        assert "summarizer down" in caplog.text

    def test_append_outcome_reports_evictions(self):
        s = InMemoryConversationStore(RetentionPolicy(max_messages=1, summarize_threshold=10))
        s.create_conversation()
        first = s.add_message("user", "a")
        outcome = s.append_message("user", "b")
        assert outcome.retention.evicted == [first]
        assert outcome.retention.summary_changed is False


class TestSqliteStore:
    def test_creates_schema(self, db_path: Path):
        s = SqliteConversationStore.open(db_path)
        s.close()
        conn = sqlite3.connect(str(db_path))
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()
        assert {"conversations", "messages"} <= tables

    def test_round_trip(self, db_path: Path):
        s = SqliteConversationStore.open(db_path)
        expected = {}
        for n in range(3):
            cid = s.create_conversation({"title": f"conv {n}"})
            s.add_message("system", "prompt", cid)
            for m in range(4):
                s.add_message("user" if m % 2 == 0 else "assistant", f"c{n} m{m}", cid)
            expected[cid] = s.get_conversation(cid)
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        loaded = {c.id: c for c in reopened.get_all_conversations()}
        assert set(loaded) == set(expected)
        for cid, conv in expected.items():
            got = loaded[cid]
            assert [(m.id, m.role, m.content, m.timestamp) for m in got.messages] == [
                (m.id, m.role, m.content, m.timestamp) for m in conv.messages
            ]
            assert got.metadata.title == conv.metadata.title
            assert got.metadata.message_count == 5
        reopened.close()

    def test_reopen_has_no_active_conversation(self, db_path: Path):
        s = SqliteConversationStore.open(db_path)
        s.create_conversation()
        s.close()
        reopened = SqliteConversationStore.open(db_path)
        assert reopened.get_active_conversation() is None
        reopened.close()

    def test_failing_summarizer_keeps_disk_in_step(self, db_path: Path):
        def summarizer(conversation):
            raise RuntimeError("summarizer down")

        s = SqliteConversationStore.open(
            db_path,
            RetentionPolicy(max_messages=10, summarize_threshold=1, summarizer=summarizer),
        )
        cid = s.create_conversation()
        s.add_message("user", "one", cid)
        s.add_message("user", "two", cid)
        in_memory = [m.content for m in s.get_messages(cid)]
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        assert [m.content for m in reopened.get_messages(cid)] == in_memory == ["one", "two"]
        reopened.close()

    def test_eviction_is_persisted(self, db_path: Path):
        s = SqliteConversationStore.open(
            db_path, RetentionPolicy(max_messages=3, summarize_threshold=100)
        )
        cid = s.create_conversation()
        for i in range(7):
            s.add_message("user", f"m{i}", cid)
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        conv = reopened.get_conversation(cid)
        assert [m.content for m in conv.messages] == ["m4", "m5", "m6"]
        assert conv.metadata.message_count == 7
        reopened.close()

    def test_summary_is_persisted(self, db_path: Path):
        s = SqliteConversationStore.open(
            db_path,
            RetentionPolicy(max_messages=10, summarize_threshold=1, summarizer=lambda c: "sum"),
        )
        cid = s.create_conversation()
        s.add_message("user", "a", cid)
        s.add_message("user", "b", cid)
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        assert reopened.get_conversation(cid).summary == "sum"
        reopened.update_summary(cid, "updated")
        reopened.close()

        again = SqliteConversationStore.open(db_path)
        assert again.get_conversation(cid).summary == "updated"
        again.close()

    def test_delete_is_persisted(self, db_path: Path):
        s = SqliteConversationStore.open(db_path)
        keep = s.create_conversation()
        drop = s.create_conversation()
        s.add_message("user", "gone", drop)
        s.delete_conversation(drop)
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        assert [c.id for c in reopened.get_all_conversations()] == [keep]
        reopened.close()
        conn = sqlite3.connect(str(db_path))
        orphans = conn.execute(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (drop,)
        ).fetchone()[0]
        conn.close()
        assert orphans == 0

    def test_system_message_removal_is_persisted(self, db_path: Path):
        s = SqliteConversationStore.open(db_path)
        cid = s.create_conversation()
        s.add_message("system", "old", cid)
        s.add_message("user", "hi", cid)
        s.remove_system_messages(cid)
        s.close()

        reopened = SqliteConversationStore.open(db_path)
        assert [m.role for m in reopened.get_messages(cid)] == ["user"]
        reopened.close()

    def test_write_failure_keeps_in_memory_outcome(self, db_path: Path, caplog):
        s = SqliteConversationStore.open(db_path)
        cid = s.create_conversation()
        s._conn.execute("DROP TABLE messages")

        with caplog.at_level("ERROR", logger="parley.memory.sqlite"):
            msg = s.add_message("user", "still here", cid)

        assert msg is not None
        assert [m.content for m in s.get_messages(cid)] == ["still here"]
        assert "Failed to persist message" in caplog.text
        s.close()


class TestExport:
    def test_render_has_front_matter(self, store: InMemoryConversationStore):
        cid = store.create_conversation({"title": "Notes", "model": "llama3"})
        store.add_message("user", "What is 2+2?")
        store.add_message("assistant", "4")
        text = render_conversation(store.get_conversation(cid))

        assert text.startswith("---\n")
        assert f"id: {cid}" in text
        assert "title: Notes" in text
        assert "message_count: 2" in text
        assert "# Notes" in text
        assert "What is 2+2?" in text

    def test_export_writes_file(self, store: InMemoryConversationStore, tmp_path: Path):
        import frontmatter

        cid = store.create_conversation({"title": "Saved"})
        store.add_message("user", "hello")
        target = export_conversation(store.get_conversation(cid), tmp_path / "out" / "c.md")

        post = frontmatter.load(str(target))
        assert post["id"] == cid
        assert post["title"] == "Saved"
        assert "hello" in post.content
