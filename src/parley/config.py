"""Configuration loading from environment variables and parley.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_HOME_DIR = Path.home() / ".parley"
_DEFAULT_DB_PATH = _HOME_DIR / "memory.db"
_CONFIG_FILENAME = "parley.toml"

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Respond concisely and accurately."


@dataclass
class OllamaConfig:
    """Local model server connection."""

    base_url: str = "http://localhost:11434/api"
    default_model: str = "llama3.2:latest"
    timeout: int = 120


@dataclass
class MemoryConfig:
    """Conversation storage and retention."""

    persist: bool = True
    max_messages: int = 100
    summarize_threshold: int = 50
    db_path: Path = _DEFAULT_DB_PATH


@dataclass
class SessionSettings:
    """Per-session generation settings, mutable at runtime."""

    include_system_prompt: bool = True
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.7
    max_tokens: int = 2048
    model: str | None = None


@dataclass
class ParleyConfig:
    """Top-level Parley configuration."""

    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    settings: SessionSettings = field(default_factory=SessionSettings)
    log_level: str = "WARNING"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def load_config(config_path: Path | None = None) -> ParleyConfig:
    """Load configuration from environment variables and optional parley.toml.

    Priority: environment variables > parley.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.parley/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _HOME_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    ollama_data = file_data.get("ollama", {})
    memory_data = file_data.get("memory", {})
    settings_data = file_data.get("settings", {})

    config = ParleyConfig(
        ollama=OllamaConfig(
            base_url=os.getenv(
                "OLLAMA_BASE_URL", ollama_data.get("base_url", "http://localhost:11434/api")
            ),
            default_model=os.getenv(
                "OLLAMA_DEFAULT_MODEL", ollama_data.get("default_model", "llama3.2:latest")
            ),
            timeout=int(os.getenv("PARLEY_TIMEOUT", ollama_data.get("timeout", 120))),
        ),
        memory=MemoryConfig(
            persist=_env_bool("PERSIST_MEMORY", bool(memory_data.get("persist", True))),
            max_messages=int(os.getenv("MAX_MESSAGES", memory_data.get("max_messages", 100))),
            summarize_threshold=int(
                os.getenv("SUMMARIZE_THRESHOLD", memory_data.get("summarize_threshold", 50))
            ),
            db_path=Path(
                os.getenv("PARLEY_DB_PATH", memory_data.get("db_path", str(_DEFAULT_DB_PATH)))
            ).expanduser(),
        ),
        settings=SessionSettings(
            include_system_prompt=_env_bool(
                "INCLUDE_SYSTEM_PROMPT", bool(settings_data.get("include_system_prompt", True))
            ),
            system_prompt=os.getenv(
                "SYSTEM_PROMPT", settings_data.get("system_prompt", DEFAULT_SYSTEM_PROMPT)
            ),
            temperature=float(os.getenv("TEMPERATURE", settings_data.get("temperature", 0.7))),
            max_tokens=int(os.getenv("MAX_TOKENS", settings_data.get("max_tokens", 2048))),
            model=settings_data.get("model"),
        ),
        log_level=os.getenv("PARLEY_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
    return config
