"""Retention policy: summarize-then-evict, applied after every append.

Order matters: the summarizer runs before eviction so that a conversation
crossing both thresholds on the same append can capture a summary before
its oldest turns are dropped. The default summarizer only logs, so an
unconfigured deployment silently loses the oldest turns (system prompt
included) once ``max_messages`` is exceeded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from parley.memory.models import Conversation, Message

logger = logging.getLogger(__name__)

# (conversation snapshot) -> new summary, or None to leave it unchanged
Summarizer = Callable[[Conversation], "str | None"]


def noop_summarizer(conversation: Conversation) -> str | None:
    logger.info(
        "Summarization requested for conversation %s (%d live messages)",
        conversation.id,
        len(conversation.messages),
    )
    return None


@dataclass
class RetentionOutcome:
    """What the policy did to a conversation on one append."""

    summary: str | None = None
    evicted: list[Message] = field(default_factory=list)

    @property
    def summary_changed(self) -> bool:
        return self.summary is not None


@dataclass
class RetentionPolicy:
    max_messages: int = 100
    summarize_threshold: int = 50
    summarizer: Summarizer = noop_summarizer

    def apply(self, conversation: Conversation) -> RetentionOutcome:
        """Mutate ``conversation`` in place and report what changed."""
        outcome = RetentionOutcome()

        if len(conversation.messages) > self.summarize_threshold:
            try:
                summary = self.summarizer(conversation.snapshot())
            except Exception as e:
                logger.error("Summarizer failed for conversation %s: %s", conversation.id, e)
                summary = None
            if summary is not None:
                conversation.summary = summary
                outcome.summary = summary

        if self.max_messages > 0 and len(conversation.messages) > self.max_messages:
            excess = len(conversation.messages) - self.max_messages
            outcome.evicted = conversation.messages[:excess]
            del conversation.messages[:excess]
            logger.debug(
                "Evicted %d oldest message(s) from conversation %s", excess, conversation.id
            )

        return outcome
