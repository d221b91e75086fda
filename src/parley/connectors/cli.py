"""Interactive terminal REPL with slash commands."""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from parley.context.hooks import BUILTIN_HOOKS

if TYPE_CHECKING:
    from parley.core import ChatSession, TurnResult

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Available commands:
  /help                     Show this help
  /history                  Show the active conversation
  /new [title]              Start a new conversation
  /list                     List conversations
  /switch <id>              Switch to a conversation
  /delete <id>              Delete a conversation
  /system <prompt>          Replace the system prompt
  /temp <0.0-1.0>           Set the temperature
  /model <name>             Change the model
  /models                   List models on the server
  /context [show]           Show files and hooks in context
  /context tokens           Estimated tokens per context file
  /context add <paths...>   Add files or directories
  /context rm <paths...>    Remove files
  /context clear            Remove all files
  /context hooks [add|rm <name>]
                            List, attach or detach context hooks
  /tools                    List tools
  /usage [reset]            Token usage for this session
  /export <path>            Write the conversation as Markdown
  /exit                     Quit"""


class CLIConnector:
    """REPL over stdin/stdout. Commands map 1:1 to session methods."""

    def __init__(self, session: ChatSession, out: TextIO | None = None) -> None:
        self.session = session
        self._out = out or sys.stdout
        self._running = False

    @property
    def name(self) -> str:
        return "cli"

    def _print(self, text: str = "") -> None:
        print(text, file=self._out)

    async def start(self) -> None:
        self._running = True
        loop = asyncio.get_running_loop()

        conversation_id = self.session.initialize()
        self._print("Parley: local LLM chat (type /help for commands, /exit to quit)")
        self._print("-" * 64)
        self._print(f"Model: {self.session.model}  Conversation: {conversation_id}")

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except (EOFError, KeyboardInterrupt):
                self._print("\nBye!")
                break

            if line is None:
                self._print("Bye!")
                break

            text = line.strip()
            if not text:
                continue

            if text.startswith("/"):
                await self.handle_command(text)
            else:
                self._print("Assistant is thinking...")
                result = await self.session.send_message(text)
                self.reply(result)

    def _read_input(self) -> str | None:
        try:
            sys.stdout.write("\nYou: ")
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    async def stop(self) -> None:
        self._running = False

    def reply(self, result: TurnResult) -> None:
        if not result.success:
            self._print(f"Error: {result.error}")
            return
        self._print(f"\nAssistant: {result.message.content if result.message else ''}")
        completion = result.completion
        if completion and completion.completion_tokens is not None:
            self._print(
                f"  [prompt: {completion.prompt_tokens or 0} tokens | "
                f"reply: {completion.completion_tokens} tokens]"
            )

    # ── Commands ─────────────────────────────────────────────

    async def handle_command(self, line: str) -> None:
        try:
            parts = shlex.split(line[1:])
        except ValueError:
            parts = line[1:].split()
        if not parts:
            self._print("Type /help for available commands")
            return

        command, args = parts[0].lower(), parts[1:]
        raw_args = line[1:].strip()[len(parts[0]):].strip()
        s = self.session

        if command == "help":
            self._print(HELP_TEXT)
        elif command == "history":
            history = s.get_formatted_history()
            self._print(history or "No messages in this conversation.")
        elif command == "new":
            conversation_id = s.create_new_conversation(raw_args or None)
            self._print(f"Created new conversation with ID: {conversation_id}")
        elif command == "list":
            for conv in s.get_all_conversations():
                marker = "*" if conv.id == s.active_conversation_id else " "
                meta = conv.metadata
                self._print(f"{marker} {conv.id} - {meta.title} ({meta.message_count} messages)")
        elif command == "switch":
            if not args:
                self._print("Please provide a conversation ID")
            elif s.switch_conversation(args[0]):
                self._print(f"Switched to conversation: {args[0]}")
            else:
                self._print(f"Conversation not found: {args[0]}")
        elif command == "delete":
            if not args:
                self._print("Please provide a conversation ID")
            elif s.delete_conversation(args[0]):
                self._print(f"Deleted conversation: {args[0]}")
            else:
                self._print(f"Conversation not found: {args[0]}")
        elif command == "system":
            if not raw_args:
                self._print("Please provide a system prompt")
            else:
                s.update_system_prompt(raw_args)
                self._print("System prompt updated")
        elif command == "temp":
            self._set_temperature(args)
        elif command == "model":
            if not args:
                self._print("Please provide a model name")
            else:
                s.update_settings(model=args[0])
                self._print(f"Model updated to {args[0]}")
        elif command == "models":
            await self._list_models()
        elif command == "context":
            await self._context_command(args)
        elif command == "tools":
            for tool in s.tools.get_all_tools():
                self._print(f"  {tool.name} - {tool.description}")
                self._print(f"      keywords: {', '.join(tool.keywords)}")
        elif command == "usage":
            if args and args[0] == "reset":
                s.reset_token_usage()
                self._print("Token usage reset")
            else:
                usage = s.get_token_usage()
                self._print(
                    f"Requests: {usage.requests} | prompt: {usage.prompt_tokens} | "
                    f"completion: {usage.completion_tokens} | total: {usage.total_tokens}"
                )
        elif command == "export":
            if not args:
                self._print("Please provide a file path")
            else:
                path = s.export_conversation(Path(args[0]))
                self._print(f"Exported to {path}" if path else "No active conversation")
        elif command in ("exit", "quit"):
            self._print("Goodbye!")
            await self.stop()
        else:
            self._print(f"Unknown command: {command}")
            self._print("Type /help for available commands")

    def _set_temperature(self, args: list[str]) -> None:
        try:
            temp = float(args[0])
        except (IndexError, ValueError):
            self._print("Please provide a valid temperature value (0.0-1.0)")
            return
        if not 0.0 <= temp <= 1.0:
            self._print("Temperature must be between 0.0 and 1.0")
            return
        self.session.update_settings(temperature=temp)
        self._print(f"Temperature updated to {temp}")

    async def _list_models(self) -> None:
        self._print("Fetching available models...")
        result = await self.session.list_models()
        if not result.success:
            self._print(f"Error fetching models: {result.error or 'Unknown error'}")
            return
        for name in result.names:
            marker = "*" if name == self.session.model else " "
            self._print(f"{marker} {name}")

    async def _context_command(self, args: list[str]) -> None:
        ctx = self.session.context
        conversation_id = self.session.active_conversation_id
        sub = args[0].lower() if args else "show"
        rest = args[1:]

        if sub == "show":
            files = ctx.get_context_files(conversation_id)
            hooks = ctx.get_hooks(conversation_id)
            if not files and not hooks:
                self._print("No context files or hooks")
            for path in files:
                self._print(f"  file: {path}")
            for name in hooks:
                self._print(f"  hook: {name}")
        elif sub == "tokens":
            counts = ctx.get_context_token_counts(conversation_id)
            for f in counts.files:
                suffix = f" (error: {f.error})" if f.error else ""
                self._print(f"  {f.path}: ~{f.tokens} tokens, {f.size} chars{suffix}")
            self._print(f"Total: ~{counts.total_tokens} tokens in {counts.total_files} files")
        elif sub == "add":
            if not rest:
                self._print("Please provide file or directory paths")
                return
            batch = ctx.add_files(conversation_id, rest)
            for r in batch.results:
                if r.is_directory:
                    self._print(
                        f"  {r.file}: {r.files_added} added, {r.files_skipped} skipped"
                    )
                elif r.success:
                    self._print(f"  {r.file}: added")
                else:
                    self._print(f"  {r.file}: {r.error}")
            self._print(f"Context now has {batch.total_files} files")
        elif sub in ("rm", "remove"):
            if not rest:
                self._print("Please provide file paths")
                return
            batch = ctx.remove_files(conversation_id, rest)
            for r in batch.results:
                self._print(f"  {r.file}: {'removed' if r.success else r.error}")
            self._print(f"Context now has {batch.total_files} files")
        elif sub == "clear":
            self._print(f"Cleared {ctx.clear_files(conversation_id)} files from context")
        elif sub == "hooks":
            self._hooks_command(conversation_id, rest)
        else:
            self._print(f"Unknown context command: {sub}")

    def _hooks_command(self, conversation_id: str, args: list[str]) -> None:
        ctx = self.session.context
        if not args:
            hooks = ctx.get_hooks(conversation_id)
            self._print("Attached hooks: " + (", ".join(hooks) if hooks else "(none)"))
            self._print("Available: " + ", ".join(BUILTIN_HOOKS))
            return

        action, names = args[0].lower(), args[1:]
        if action == "add":
            for name in names:
                factory = BUILTIN_HOOKS.get(name)
                if factory is None:
                    self._print(f"  {name}: unknown hook")
                    continue
                ctx.add_hook(conversation_id, name, factory(ctx.cwd))
                self._print(f"  {name}: attached")
        elif action in ("rm", "remove"):
            for name in names:
                removed = ctx.remove_hook(conversation_id, name)
                self._print(f"  {name}: {'detached' if removed else 'not attached'}")
        else:
            self._print(f"Unknown hooks command: {action}")
