"""Tiered summarisation: how finely each turn is represented in context.

The further a turn is from the generation point, the coarser its
representation:

    turns_from_end > 14   sentence summary (falls back to `summary`)
    turns_from_end > 7    paragraph summary
    otherwise             full content

A missing summary falls through to the next finer tier. Compacted messages
are always full, and so is the current container when the model treats it
as always-full.

`render_spine` feeds both context assembly and the size estimates shown to
the author, so the two cannot drift apart.
"""

from __future__ import annotations

import math
from enum import IntEnum

from pydantic import BaseModel

from story_context.config import EngineSettings
from story_context.models import Message, ModelCapabilities

_DEFAULTS = EngineSettings()


class Fidelity(IntEnum):
    """Ordered coarse → fine."""

    SENTENCE = 0
    PARAGRAPH = 1
    FULL = 2


def choose_fidelity(
    message: Message,
    turns_from_end: int,
    always_full_current: bool,
    is_current_container: bool,
    settings: EngineSettings = _DEFAULTS,
) -> Fidelity:
    if message.is_compacted:
        return Fidelity.FULL
    if always_full_current and is_current_container:
        return Fidelity.FULL
    if turns_from_end > settings.paragraph_tail_turns and (message.sentence_summary or message.summary):
        return Fidelity.SENTENCE
    if turns_from_end > settings.full_tail_turns and message.paragraph_summary:
        return Fidelity.PARAGRAPH
    return Fidelity.FULL


def content_at(message: Message, fidelity: Fidelity) -> str:
    if fidelity is Fidelity.SENTENCE:
        return message.sentence_summary or message.summary or message.content
    if fidelity is Fidelity.PARAGRAPH:
        return message.paragraph_summary or message.content
    return message.content


def select_fidelity(
    message: Message,
    turns_from_end: int,
    always_full_current: bool,
    is_current_container: bool,
    settings: EngineSettings = _DEFAULTS,
) -> str:
    """The text to send for one message at its distance from the cursor."""
    fidelity = choose_fidelity(message, turns_from_end, always_full_current, is_current_container, settings)
    return content_at(message, fidelity)


def render_spine(
    messages: list[Message],
    capabilities: ModelCapabilities,
    is_current_container: bool = True,
    settings: EngineSettings = _DEFAULTS,
) -> list[tuple[Message, Fidelity, str]]:
    """Render a run of messages, distance measured from the end of the run."""
    total = len(messages)
    rendered = []
    for position, msg in enumerate(messages, start=1):
        fidelity = choose_fidelity(
            msg,
            total - position,
            capabilities.treats_current_container_as_always_full,
            is_current_container,
            settings,
        )
        rendered.append((msg, fidelity, content_at(msg, fidelity)))
    return rendered


# ---------------------------------------------------------------------------
# Size estimates
# ---------------------------------------------------------------------------

class ContextStats(BaseModel):
    word_count: int
    char_count: int
    estimated_tokens: int
    sentence_count: int = 0
    paragraph_count: int = 0
    full_count: int = 0
    summary_count: int = 0  # previous chapters sent as their summary


def narrative_messages(messages: list[Message]) -> list[Message]:
    return [m for m in messages if not m.is_query and m.role == "assistant" and m.type != "chapter"]


def estimate_tokens(text: str, chars_per_token: float) -> int:
    return math.ceil(len(text) / chars_per_token)
