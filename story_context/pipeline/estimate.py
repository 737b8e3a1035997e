"""Context size estimates for the author.

Estimates run the same projection and block rendering as assembly, without
the validation guards, and measure the narrative blocks that would be sent:
previous chapters as summaries or full content, then the current container
through the tiered selector. The system prompt, character context and
direction block are not counted. Smart-story selection is not predicted;
estimates always describe the deterministic path.
"""

from __future__ import annotations

from story_context.config import EngineSettings, ModelRegistry
from story_context.models import ContextOptions
from story_context.tiers import ContextStats, Fidelity, estimate_tokens

from .projection import NarrativeBlock, narrative_blocks, project, resolve_capabilities

_DEFAULTS = EngineSettings()


def _blocks(
    options: ContextOptions, registry: ModelRegistry | None, settings: EngineSettings
) -> tuple[list[NarrativeBlock], int]:
    projection = project(options)
    capabilities = resolve_capabilities(options, registry)
    blocks = narrative_blocks(options, projection, capabilities, settings, validate=False)
    story_text = " ".join(m.content for m in projection.spine).strip()
    return blocks, len(story_text.split()) if story_text else 0


def story_stats(
    options: ContextOptions,
    *,
    registry: ModelRegistry | None = None,
    settings: EngineSettings = _DEFAULTS,
) -> ContextStats:
    """Word count of the story on the active path and the size of its rendered context."""
    blocks, word_count = _blocks(options, registry, settings)
    context_text = "\n\n".join(b.text for b in blocks)

    counts = {f: 0 for f in Fidelity}
    for block in blocks:
        if block.fidelity is not None:
            counts[block.fidelity] += 1

    return ContextStats(
        word_count=word_count,
        char_count=len(context_text),
        estimated_tokens=estimate_tokens(context_text, settings.chars_per_token),
        sentence_count=counts[Fidelity.SENTENCE],
        paragraph_count=counts[Fidelity.PARAGRAPH],
        full_count=counts[Fidelity.FULL],
        summary_count=sum(1 for b in blocks if b.kind == "summary"),
    )


def messages_in_context(
    options: ContextOptions,
    context_size: int,
    *,
    registry: ModelRegistry | None = None,
    settings: EngineSettings = _DEFAULTS,
) -> set[str]:
    """Ids of the messages whose blocks fit a `context_size` token budget.

    If the whole rendered context fits, every message with a block is in
    context. Otherwise blocks are taken from the end until the budget runs
    out; chapter headers and summaries use budget but name no message.
    """
    blocks, _ = _blocks(options, registry, settings)
    chars_per_token = settings.chars_per_token

    whole = "\n\n".join(b.text for b in blocks)
    if estimate_tokens(whole, chars_per_token) <= context_size:
        return {b.message.id for b in blocks if b.message is not None}

    selected: set[str] = set()
    used = 0
    for block in reversed(blocks):
        cost = estimate_tokens(block.text, chars_per_token)
        if used + cost > context_size:
            break
        if block.message is not None:
            selected.add(block.message.id)
        used += cost
    return selected
