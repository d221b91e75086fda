"""Entry point: python -m parley [chat|models|config]

- No args / "chat": Interactive REPL
- "models":         List models available on the Ollama server
- "config":         Print the effective configuration
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import sys
from dataclasses import asdict
from typing import TYPE_CHECKING

from parley.config import ParleyConfig, load_config

if TYPE_CHECKING:
    from parley.core import ChatSession


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_session(config: ParleyConfig) -> ChatSession:
    """Wire store, context, tools and client into a ChatSession."""
    from parley.core import ChatSession
    from parley.memory import InMemoryConversationStore, RetentionPolicy, SqliteConversationStore
    from parley.providers.ollama import OllamaClient
    from parley.tools import ToolDispatcher, register_default_tools

    policy = RetentionPolicy(
        max_messages=config.memory.max_messages,
        summarize_threshold=config.memory.summarize_threshold,
    )
    if config.memory.persist:
        store = SqliteConversationStore.open(config.memory.db_path, policy)
    else:
        store = InMemoryConversationStore(policy)

    client = OllamaClient(
        base_url=config.ollama.base_url,
        default_model=config.ollama.default_model,
        timeout=config.ollama.timeout,
    )
    tools = ToolDispatcher()
    register_default_tools(tools)
    return ChatSession(config, store, client, tools=tools)


def _run_cli() -> None:
    """Interactive REPL mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from parley.connectors.cli import CLIConnector

    try:
        session = build_session(config)
    except sqlite3.Error as e:
        print(f"Could not open conversation database {config.memory.db_path}: {e}", file=sys.stderr)
        sys.exit(1)

    cli = CLIConnector(session)
    try:
        asyncio.run(cli.start())
    except KeyboardInterrupt:
        pass
    finally:
        session.close()


def _run_models() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from parley.providers.ollama import OllamaClient

    client = OllamaClient(
        base_url=config.ollama.base_url,
        default_model=config.ollama.default_model,
        timeout=config.ollama.timeout,
    )
    result = asyncio.run(client.list_models())
    if not result.success:
        print(f"Error fetching models: {result.error}", file=sys.stderr)
        sys.exit(1)
    for name in result.names:
        marker = "*" if name == config.ollama.default_model else " "
        print(f"{marker} {name}")


def _run_config() -> None:
    config = load_config()
    for section, values in asdict(config).items():
        if isinstance(values, dict):
            print(f"[{section}]")
            for key, value in values.items():
                print(f"  {key} = {value}")
        else:
            print(f"{section} = {values}")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "chat"

    if cmd in ("chat", "repl"):
        _run_cli()
    elif cmd == "models":
        _run_models()
    elif cmd == "config":
        _run_config()
    else:
        print("Usage: python -m parley [chat|models|config]")
        print("  chat     Interactive REPL (default)")
        print("  models   List models on the Ollama server")
        print("  config   Show the effective configuration")
        sys.exit(1)


if __name__ == "__main__":
    main()
