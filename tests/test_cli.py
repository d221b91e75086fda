"""Tests for the CLI connector's slash commands."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from parley.config import MemoryConfig, ParleyConfig
from parley.connectors.cli import CLIConnector
from parley.context import ContextAssembler
from parley.core import ChatSession, TurnResult
from parley.memory import InMemoryConversationStore
from parley.providers.base import CompletionResult, ModelListResult, TokenUsage


class StubClient:
    @property
    def name(self) -> str:
        return "stub"

    async def generate_chat_completion(self, messages, options) -> CompletionResult:
        return CompletionResult(True, response="Hi there", prompt_tokens=4, completion_tokens=2)

    async def list_models(self) -> ModelListResult:
        return ModelListResult(True, models=[{"name": "llama3.2:latest"}, {"name": "phi3"}])

    def get_token_usage(self) -> TokenUsage:
        return TokenUsage(10, 5, 2)

    def reset_token_usage(self) -> None:
        pass


@pytest.fixture
def session(tmp_path: Path) -> ChatSession:
    s = ChatSession(
        ParleyConfig(memory=MemoryConfig(persist=False)),
        InMemoryConversationStore(),
        StubClient(),
        context=ContextAssembler(cwd=tmp_path),
    )
    s.initialize()
    return s


@pytest.fixture
def out() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def cli(session: ChatSession, out: io.StringIO) -> CLIConnector:
    return CLIConnector(session, out=out)


class TestCommands:
    @pytest.mark.asyncio
    async def test_help(self, cli: CLIConnector, out: io.StringIO):
        await cli.handle_command("/help")
        assert "/context add <paths...>" in out.getvalue()

    @pytest.mark.asyncio
    async def test_unknown(self, cli: CLIConnector, out: io.StringIO):
        await cli.handle_command("/frobnicate")
        assert "Unknown command: frobnicate" in out.getvalue()

    @pytest.mark.asyncio
    async def test_new_and_list(self, cli: CLIConnector, session: ChatSession, out):
        await cli.handle_command("/new Release notes")
        assert session.get_current_conversation().metadata.title == "Release notes"

        await cli.handle_command("/list")
        listing = out.getvalue()
        assert f"* {session.active_conversation_id} - Release notes" in listing

    @pytest.mark.asyncio
    async def test_switch_missing(self, cli: CLIConnector, out: io.StringIO):
        await cli.handle_command("/switch nope")
        assert "Conversation not found: nope" in out.getvalue()

    @pytest.mark.asyncio
    async def test_delete_active(self, cli: CLIConnector, session: ChatSession):
        conversation_id = session.active_conversation_id
        await cli.handle_command(f"/delete {conversation_id}")
        assert session.active_conversation_id not in (None, conversation_id)

    @pytest.mark.asyncio
    async def test_temp_validation(self, cli: CLIConnector, session: ChatSession, out):
        await cli.handle_command("/temp 1.5")
        assert "between 0.0 and 1.0" in out.getvalue()
        assert session.settings.temperature == 0.7

        await cli.handle_command("/temp warm")
        assert "valid temperature" in out.getvalue()

        await cli.handle_command("/temp 0.3")
        assert session.settings.temperature == 0.3

    @pytest.mark.asyncio
    async def test_model(self, cli: CLIConnector, session: ChatSession):
        await cli.handle_command("/model phi3")
        assert session.model == "phi3"

    @pytest.mark.asyncio
    async def test_models_marks_current(self, cli: CLIConnector, out: io.StringIO):
        await cli.handle_command("/models")
        assert "* llama3.2:latest" in out.getvalue()
        assert "  phi3" in out.getvalue()

    @pytest.mark.asyncio
    async def test_system_keeps_full_text(self, cli: CLIConnector, session: ChatSession):
        await cli.handle_command("/system Answer like a pirate, briefly.")
        system = [m for m in session.memory.get_messages() if m.role == "system"]
        assert system[-1].content == "Answer like a pirate, briefly."

    @pytest.mark.asyncio
    async def test_history(self, cli: CLIConnector, session: ChatSession, out):
        await session.send_message("Hello")
        await cli.handle_command("/history")
        assert "User: Hello\n\nAssistant: Hi there" in out.getvalue()

    @pytest.mark.asyncio
    async def test_usage(self, cli: CLIConnector, out: io.StringIO):
        await cli.handle_command("/usage")
        assert "Requests: 2 | prompt: 10 | completion: 5 | total: 15" in out.getvalue()

    @pytest.mark.asyncio
    async def test_exit_stops(self, cli: CLIConnector, out: io.StringIO):
        cli._running = True
        await cli.handle_command("/exit")
        assert cli._running is False
        assert "Goodbye!" in out.getvalue()

    @pytest.mark.asyncio
    async def test_export(self, cli: CLIConnector, out: io.StringIO, tmp_path: Path):
        target = tmp_path / "chat.md"
        await cli.handle_command(f"/export {target}")
        assert target.exists()
        assert f"Exported to {target.resolve()}" in out.getvalue()


class TestContextCommands:
    @pytest.mark.asyncio
    async def test_add_show_remove(self, cli: CLIConnector, out: io.StringIO, tmp_path: Path):
        (tmp_path / "notes.md").write_text("# notes\n", encoding="utf-8")

        await cli.handle_command("/context add notes.md")
        assert "notes.md: added" in out.getvalue()
        assert "Context now has 1 files" in out.getvalue()

        await cli.handle_command("/context")
        assert "file: " in out.getvalue()

        await cli.handle_command("/context rm notes.md missing.md")
        assert "missing.md: File not in context" in out.getvalue()

    @pytest.mark.asyncio
    async def test_tokens(self, cli: CLIConnector, out: io.StringIO, tmp_path: Path):
        (tmp_path / "four.txt").write_text("aaaa", encoding="utf-8")
        await cli.handle_command("/context add four.txt")
        await cli.handle_command("/context tokens")
        assert "four.txt: ~1 tokens, 4 chars" in out.getvalue()
        assert "Total: ~1 tokens in 1 files" in out.getvalue()

    @pytest.mark.asyncio
    async def test_hooks(self, cli: CLIConnector, session: ChatSession, out: io.StringIO):
        await cli.handle_command("/context hooks add directory bogus")
        assert "directory: attached" in out.getvalue()
        assert "bogus: unknown hook" in out.getvalue()
        assert session.context.get_hooks(session.active_conversation_id) == ["directory"]

        await cli.handle_command("/context hooks rm directory")
        assert session.context.get_hooks(session.active_conversation_id) == []


class TestReply:
    def test_error(self, cli: CLIConnector, out: io.StringIO):
        cli.reply(TurnResult(False, error="Ollama error (404): model not found"))
        assert out.getvalue().strip() == "Error: Ollama error (404): model not found"

    @pytest.mark.asyncio
    async def test_success_shows_token_counts(self, cli, session, out: io.StringIO):
        cli.reply(await session.send_message("Hello"))
        assert "Assistant: Hi there" in out.getvalue()
        assert "[prompt: 4 tokens | reply: 2 tokens]" in out.getvalue()
