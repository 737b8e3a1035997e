"""Smart-context adapter.

The scene-relevance analyzer is an external collaborator that picks the
messages most relevant to the author's direction. It may call an LLM, take
arbitrarily long, or fail. This module bounds it with a timeout and turns any
failure into "no smart context available" so assembly falls back to the
deterministic tiered path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from story_context.activity import ActivitySink
from story_context.llm import LLM
from story_context.models import Chapter, Character, ContextOptions, Message

logger = logging.getLogger(__name__)


class SceneRelevanceAnalyzer(Protocol):
    async def analyze(
        self,
        input_text: str,
        messages: list[Message],
        characters: list[Character],
        context_items: list[dict],
        chapters: list[Chapter],
        llm: LLM | None,
        target_message_id: str | None,
        force: bool = False,
    ) -> list[Message]: ...


async def select_smart_messages(
    analyzer: SceneRelevanceAnalyzer | None,
    options: ContextOptions,
    llm: LLM | None,
    timeout: float,
    sink: ActivitySink,
) -> list[Message] | None:
    """Non-blank messages chosen by the analyzer, or None when assembly should fall back."""
    if analyzer is None:
        _fallback(sink, "no analyzer configured")
        return None

    try:
        selected = await asyncio.wait_for(
            analyzer.analyze(
                options.input_text,
                options.messages,
                options.characters,
                options.context_items,
                options.chapters,
                llm,
                options.target_message_id,
                options.force_missing_summaries,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("smart context timed out after %ss, using tiered context", timeout)
        _fallback(sink, f"timed out after {timeout}s")
        return None
    except Exception as e:
        logger.warning("smart context failed, using tiered context: %s", e)
        _fallback(sink, str(e) or type(e).__name__)
        return None

    selected = [m for m in selected or [] if m.content.strip()]
    if not selected:
        logger.warning("smart context returned no usable messages, using tiered context")
        _fallback(sink, "empty selection")
        return None
    return selected


def _fallback(sink: ActivitySink, reason: str) -> None:
    sink.record("context.smart_fallback", reason=reason)
