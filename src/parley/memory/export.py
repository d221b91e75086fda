"""Export a conversation as Markdown with a YAML front-matter header."""

from __future__ import annotations

import logging
from pathlib import Path

import frontmatter

from parley.memory.models import Conversation

logger = logging.getLogger(__name__)

_ROLE_HEADINGS = {"system": "System", "user": "You", "assistant": "Assistant"}


def render_conversation(conversation: Conversation) -> str:
    """Render the live messages of a conversation as a front-matter document."""
    meta = conversation.metadata
    lines = [f"# {meta.title}", ""]
    if conversation.summary:
        lines += [f"> Summary: {conversation.summary}", ""]
    for message in conversation.messages:
        heading = _ROLE_HEADINGS.get(message.role, message.role.capitalize())
        lines += [f"## {heading} ({message.timestamp})", "", message.content, ""]

    post = frontmatter.Post(
        "\n".join(lines).rstrip() + "\n",
        id=conversation.id,
        title=meta.title,
        model=meta.model,
        created=meta.created,
        last_updated=meta.last_updated,
        message_count=meta.message_count,
        summary=conversation.summary,
    )
    return frontmatter.dumps(post) + "\n"


def export_conversation(conversation: Conversation, path: Path) -> Path:
    """Write the rendered conversation to ``path`` and return its absolute form."""
    target = path.expanduser().resolve()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_conversation(conversation), encoding="utf-8")
    logger.info("Exported conversation %s to %s", conversation.id, target)
    return target
