"""Context assembler — turns "the story so far" into a bounded message list.

Assembly flow:
  1. Resolve the active path when branch choices exist.
  2. Build the spine: non-query narrative messages on the active path.
  3. Find the current container (node chapter, legacy chapter, or none).
  4. System block: Q&A persona or the story voice prompt.
  5. smart-story only: ask the analyzer; on success its picks replace 6–7.
  6. Previous containers (skip / summary / full), then the current
     container's messages through the tiered selector. Missing summaries
     and oversized flat stories fail here.
  7. Character context block.
  8. Query history (query contexts only).
  9. Final direction block.
 10. Cache hints on the last narrative blocks and the character context.

Steps 1–3 and 6 live in `projection`, shared with the size estimates.
The assembler holds no state between calls and never mutates its inputs, so
equal options always produce an equal list.
"""

from __future__ import annotations

import logging

from story_context import prompts
from story_context.activity import ActivitySink, LoggingActivitySink
from story_context.config import EngineSettings, ModelRegistry
from story_context.containers import Container
from story_context.llm import LLM
from story_context.models import CacheControl, ChatMessage, ContextOptions, Message

from .projection import NarrativeBlock, narrative_blocks, project, resolve_capabilities
from .smart import SceneRelevanceAnalyzer, select_smart_messages

logger = logging.getLogger(__name__)


def _viewpoint_name(options: ContextOptions, current: Container | None) -> str | None:
    if options.viewpoint_character_name:
        return options.viewpoint_character_name
    if current is not None and current.viewpoint_character_id:
        for character in options.characters:
            if character.id == current.viewpoint_character_id:
                return character.name
    return options.protagonist_name


async def generate_context_messages(
    options: ContextOptions,
    *,
    analyzer: SceneRelevanceAnalyzer | None = None,
    llm: LLM | None = None,
    sink: ActivitySink | None = None,
    registry: ModelRegistry | None = None,
    settings: EngineSettings | None = None,
) -> list[ChatMessage]:
    """Assemble the ordered, role-tagged context for one generation call.

    Raises MissingSummariesError or OversizedFlatStoryError when the story
    cannot be sent without silently dropping content; both are bypassed by
    `force_missing_summaries`.
    """
    settings = settings or EngineSettings()
    sink = sink or LoggingActivitySink()
    capabilities = resolve_capabilities(options, registry)
    cache = CacheControl(ttl=settings.cache_ttl) if capabilities.supports_prompt_caching else None

    logger.debug(
        "assembling context type=%s messages=%d nodes=%d chapters=%d target=%s",
        options.context_type, len(options.messages), len(options.nodes),
        len(options.chapters), options.target_message_id,
    )

    # 1–3. Active path, spine, current container
    projection = project(options, sink)
    spine, layout = projection.spine, projection.layout
    goal = layout.current.goal if layout.current is not None else None

    # 4. System block
    chat: list[ChatMessage] = []
    if options.context_type == "query":
        chat.append(ChatMessage(role="system", content=prompts.QUERY_SYSTEM_PROMPT))
    else:
        chat.append(ChatMessage(role="system", content=prompts.story_system_prompt(
            options.story_setting,
            options.person,
            options.tense,
            _viewpoint_name(options, layout.current),
            is_new_story=not spine,
            chapter_goal=goal,
        )))

    # 5. Smart context
    smart: list[Message] | None = None
    if options.context_type == "smart-story":
        smart = await select_smart_messages(
            analyzer, options, llm, settings.smart_context_timeout, sink
        )

    if smart:
        chat.extend(ChatMessage(role="assistant", content=m.content) for m in smart)
    else:
        # 6. Containers
        blocks = narrative_blocks(options, projection, capabilities, settings, sink)
        chat.extend(_narrative_chat(blocks, cache, settings))

        # 7. Character context
        character_context = (options.character_context or "").strip()
        if character_context:
            chat.append(ChatMessage(
                role="user",
                content=prompts.character_context_block(character_context),
                cache_control=cache,
            ))

    # 8. Query history
    if options.context_type == "query" and options.include_query_history:
        chat.extend(_query_history(options, settings))

    # 9. Direction
    if options.context_type == "query":
        chat.append(ChatMessage(role="user", content=prompts.question_block(options.input_text)))
    else:
        chat.append(ChatMessage(role="user", content=prompts.direction_block(
            options.input_text, is_new_story=not spine, paragraphs_per_turn=options.paragraphs_per_turn,
        )))

    sink.record(
        "context.assembled",
        context_type=options.context_type,
        model=options.model,
        blocks=len(chat),
        chars=sum(len(m.content) for m in chat),
        cached_blocks=sum(1 for m in chat if m.cache_control is not None),
        smart=bool(smart),
    )
    logger.info("assembled %d context blocks for %s", len(chat), options.model or "default model")
    return chat


def _narrative_chat(
    blocks: list[NarrativeBlock], cache: CacheControl | None, settings: EngineSettings
) -> list[ChatMessage]:
    """Assistant blocks; the last `cache_tail_blocks` of the current container carry the cache hint."""
    cached = 0
    if cache is not None and settings.cache_tail_blocks > 0:
        cached = min(settings.cache_tail_blocks, sum(1 for b in blocks if b.is_tail))
    first_cached = len(blocks) - cached
    return [
        ChatMessage(role="assistant", content=b.text, cache_control=cache if i >= first_cached else None)
        for i, b in enumerate(blocks)
    ]


def _query_history(options: ContextOptions, settings: EngineSettings) -> list[ChatMessage]:
    limit = options.max_query_history
    if limit is None:
        limit = settings.max_query_history
    if limit <= 0:
        return []

    queries = [m for m in options.messages if m.is_query and m.role == "assistant"][-limit:]
    blocks: list[ChatMessage] = []
    for query in queries:
        if query.instruction:
            blocks.append(ChatMessage(role="user", content=prompts.question_block(query.instruction)))
        if query.content:
            blocks.append(ChatMessage(role="assistant", content=query.content))
    return blocks
