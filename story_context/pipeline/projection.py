"""Narrative projection shared by context assembly and size estimates.

`project` resolves the storyline: the active path, the spine of narrative
messages on it, and the container layout (current container, previous
containers, which container each message belongs to).

`narrative_blocks` turns a projection into the ordered story text sent to the
model: previous containers as skip / summary / full content, then the current
container through the tiered selector. The assembler wraps these blocks as
chat messages; the estimator measures the very same blocks, so what the
author is shown is what gets sent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from story_context import prompts
from story_context.activity import ActivitySink
from story_context.branches import resolve_active_path
from story_context.config import EngineSettings, ModelRegistry
from story_context.containers import (
    Container,
    chapter_nodes_before,
    container_from_node,
    containers_from_chapters,
    nodes_in_story_order,
    owning_chapter_id,
)
from story_context.models import (
    FULL_CONTENT,
    OMIT,
    SUMMARY_ONLY,
    ActivePath,
    ContextOptions,
    Message,
    ModelCapabilities,
    Node,
)
from story_context.tiers import Fidelity, narrative_messages, render_spine

from .errors import MissingSummariesError, OversizedFlatStoryError

logger = logging.getLogger(__name__)

BlockKind = Literal["header", "summary", "message"]


@dataclass
class Layout:
    current: Container | None = None
    previous: list[Container] = field(default_factory=list)
    container_of: dict[str, str] = field(default_factory=dict)  # message id → container id

    def messages_in(self, container_id: str, spine: list[Message]) -> list[Message]:
        return [m for m in spine if self.container_of.get(m.id) == container_id]


@dataclass
class Projection:
    spine: list[Message]
    layout: Layout
    active: ActivePath | None = None


@dataclass
class NarrativeBlock:
    """One piece of story text in context order."""

    kind: BlockKind
    text: str
    message: Message | None = None
    fidelity: Fidelity | None = None
    is_tail: bool = False  # belongs to the current container's run


def resolve_capabilities(options: ContextOptions, registry: ModelRegistry | None = None) -> ModelCapabilities:
    """Explicit capabilities on the options win over the registry entry."""
    return options.capabilities or (registry or ModelRegistry.default()).capabilities(options.model)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

def _current_container(options: ContextOptions, spine: list[Message], container_of: dict[str, str]) -> str | None:
    """Container id of the target message, else of the last spine message that has one."""
    if options.target_message_id:
        for msg in options.messages:
            if msg.id == options.target_message_id:
                if msg.id in container_of:
                    return container_of[msg.id]
                break
    for msg in reversed(spine):
        if msg.id in container_of:
            return container_of[msg.id]
    return None


def _node_layout(options: ContextOptions, spine: list[Message], active: ActivePath | None) -> Layout:
    nodes = options.nodes
    chapter_for_node = {n.id: owning_chapter_id(nodes, n.id) for n in nodes}
    container_of = {
        m.id: chapter_for_node[m.node_id]
        for m in options.messages
        if m.node_id and chapter_for_node.get(m.node_id)
    }
    current_id = _current_container(options, spine, container_of)
    if current_id is None:
        return Layout(container_of=container_of)

    previous = chapter_nodes_before(nodes, current_id)
    if active is not None:
        active_containers = set(active.active_node_ids)
        active_containers.update(
            chapter_for_node[n] for n in active.active_node_ids if chapter_for_node.get(n)
        )
        previous = [n for n in previous if n.id in active_containers]

    current = next(container_from_node(n) for n in nodes if n.id == current_id)
    return Layout(
        current=current,
        previous=[container_from_node(n) for n in previous],
        container_of=container_of,
    )


def _chapter_layout(options: ContextOptions, spine: list[Message]) -> Layout:
    containers = containers_from_chapters(options.chapters, options.messages)
    known = {c.id for c in containers}
    container_of = {m.id: m.chapter_id for m in options.messages if m.chapter_id in known}
    current_id = _current_container(options, spine, container_of)
    if current_id is None:
        return Layout(container_of=container_of)

    index = next(i for i, c in enumerate(containers) if c.id == current_id)
    return Layout(current=containers[index], previous=containers[:index], container_of=container_of)


def _layout(options: ContextOptions, spine: list[Message], active: ActivePath | None) -> Layout:
    """Chapter nodes first, then legacy chapters, then a flat story."""
    if options.nodes:
        layout = _node_layout(options, spine, active)
        if layout.current is not None:
            return layout
        logger.debug("no chapter node holds the story, trying legacy chapters")
    if options.chapters:
        return _chapter_layout(options, spine)
    return Layout()


def _in_story_order(messages: list[Message], nodes: list[Node]) -> list[Message]:
    """Node traversal order, then message `order`; messages without a known node go last."""
    position = {n.id: i for i, n in enumerate(nodes_in_story_order(nodes))}
    unplaced = len(position)
    return sorted(messages, key=lambda m: (position.get(m.node_id or "", unplaced), m.order))


def project(options: ContextOptions, sink: ActivitySink | None = None) -> Projection:
    """Active path, spine and container layout for one assembly call."""
    active: ActivePath | None = None
    if options.branch_choices and options.nodes:
        active = resolve_active_path(options.messages, options.nodes, options.branch_choices)
        if sink is not None:
            sink.record(
                "context.active_path",
                messages=len(active.active_message_ids),
                nodes=len(active.active_node_ids),
            )

    spine = [
        m for m in narrative_messages(options.messages)
        if active is None or m.id in active.active_message_ids
    ]
    if options.nodes:
        spine = _in_story_order(spine, options.nodes)

    return Projection(spine=spine, layout=_layout(options, spine, active), active=active)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def _has_content(messages: list[Message]) -> bool:
    return any(m.content.strip() for m in messages)


def narrative_blocks(
    options: ContextOptions,
    projection: Projection,
    capabilities: ModelCapabilities,
    settings: EngineSettings,
    sink: ActivitySink | None = None,
    validate: bool = True,
) -> list[NarrativeBlock]:
    """Story text for the context, previous containers first, blanks dropped.

    With `validate` the missing-summary and oversized-flat-story guards run
    (unless the options force past them). Without it the blocks are those a
    forced assembly would send.
    """
    spine, layout = projection.spine, projection.layout
    enforce = validate and not options.force_missing_summaries
    blocks: list[NarrativeBlock] = []

    if layout.current is None:
        # Flat story: the whole spine is the current container.
        limit = settings.flat_story_limit
        if enforce and len(spine) > limit and capabilities.treats_current_container_as_always_full:
            if sink is not None:
                sink.record("context.validation_failed", reason="oversized_flat_story", messages=len(spine))
            raise OversizedFlatStoryError(len(spine), limit, options.model)
        current_messages = spine
    else:
        missing = [
            c.title for c in layout.previous
            if c.include_in_full == SUMMARY_ONLY
            and not c.summary
            and _has_content(layout.messages_in(c.id, spine))
        ]
        if enforce and missing:
            if sink is not None:
                sink.record("context.validation_failed", reason="missing_summaries", titles=missing)
            raise MissingSummariesError(missing)

        for container in layout.previous:
            blocks.extend(_previous_container_blocks(container, layout.messages_in(container.id, spine)))
        current_messages = layout.messages_in(layout.current.id, spine)

    blocks.extend(
        NarrativeBlock(kind="message", text=text, message=msg, fidelity=fidelity, is_tail=True)
        for msg, fidelity, text in render_spine(current_messages, capabilities, settings=settings)
        if text.strip()
    )
    return blocks


def _previous_container_blocks(container: Container, messages: list[Message]) -> list[NarrativeBlock]:
    if container.include_in_full == OMIT:
        logger.debug("skipping container %s (omitted)", container.title)
        return []

    if container.include_in_full == FULL_CONTENT and messages:
        logger.debug("including container %s in full", container.title)
        blocks = [NarrativeBlock(kind="header", text=prompts.chapter_full_header(container.title))]
        blocks.extend(
            NarrativeBlock(kind="message", text=m.content, message=m, fidelity=Fidelity.FULL)
            for m in messages if m.content.strip()
        )
        return blocks

    if container.summary:
        return [NarrativeBlock(
            kind="summary",
            text=prompts.chapter_summary_block(container.title, container.summary),
        )]
    return []
