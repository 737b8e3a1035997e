"""Containers and story-order traversal of the node tree.

A container is the unit of summarisation: a chapter-type node or, for older
stories, a legacy Chapter record. Both are projected onto one Container model
so the assembler walks them with a single code path.

Story order is a depth-first pre-order walk of the node tree, siblings sorted
by their `order` value. Creation time plays no part.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Literal

from pydantic import BaseModel

from story_context.models import SUMMARY_ONLY, Chapter, Message, Node

logger = logging.getLogger(__name__)


class Container(BaseModel):
    id: str
    title: str
    order: int
    parent_id: str | None = None
    summary: str | None = None
    include_in_full: int = SUMMARY_ONLY
    goal: str | None = None
    viewpoint_character_id: str | None = None
    kind: Literal["node", "chapter"]


def container_from_node(node: Node) -> Container:
    return Container(
        id=node.id,
        title=node.title,
        order=node.order,
        parent_id=node.parent_id,
        summary=node.summary,
        include_in_full=node.include_in_full,
        goal=node.goal,
        viewpoint_character_id=node.viewpoint_character_id,
        kind="node",
    )


def container_from_chapter(chapter: Chapter) -> Container:
    return Container(
        id=chapter.id,
        title=chapter.title,
        order=chapter.order,
        summary=chapter.summary,
        include_in_full=chapter.include_in_full,
        kind="chapter",
    )


# ---------------------------------------------------------------------------
# Node tree traversal
# ---------------------------------------------------------------------------

def _children_map(nodes: list[Node]) -> dict[str | None, list[Node]]:
    known = {n.id for n in nodes}
    children: dict[str | None, list[Node]] = {}
    for node in nodes:
        # Orphans (parent not in the list) are treated as roots.
        parent = node.parent_id if node.parent_id in known else None
        children.setdefault(parent, []).append(node)
    for siblings in children.values():
        siblings.sort(key=lambda n: n.order)
    return children


def _walk(nodes: list[Node]) -> Iterator[Node]:
    children = _children_map(nodes)
    seen: set[str] = set()

    def visit(parent_id: str | None) -> Iterator[Node]:
        for child in children.get(parent_id, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            yield child
            yield from visit(child.id)

    yield from visit(None)


def nodes_in_story_order(nodes: list[Node]) -> list[Node]:
    """Every node, depth-first by `order`."""
    return list(_walk(nodes))


def chapter_nodes_in_story_order(nodes: list[Node]) -> list[Node]:
    return [n for n in _walk(nodes) if n.type == "chapter"]


def chapter_nodes_before(nodes: list[Node], node_id: str) -> list[Node]:
    """Chapter nodes that come strictly before `node_id` in story order.

    Returns [] when the node is unknown. The node itself and its descendants
    are never included.
    """
    if not any(n.id == node_id for n in nodes):
        return []
    result: list[Node] = []
    for node in _walk(nodes):
        if node.id == node_id:
            break
        if node.type == "chapter":
            result.append(node)
    return result


def nodes_up_to(nodes: list[Node], node_id: str) -> list[Node]:
    """All nodes (any type) up to and including `node_id` in story order."""
    if not any(n.id == node_id for n in nodes):
        return []
    result: list[Node] = []
    for node in _walk(nodes):
        result.append(node)
        if node.id == node_id:
            break
    return result


def owning_chapter_id(nodes: list[Node], node_id: str | None) -> str | None:
    """Nearest chapter ancestor-or-self of a node.

    Messages attached to scene nodes belong to their chapter's container.
    Returns None when the node is unknown or has no chapter above it.
    """
    by_id = {n.id: n for n in nodes}
    seen: set[str] = set()
    current = by_id.get(node_id) if node_id else None
    while current is not None and current.id not in seen:
        if current.type == "chapter":
            return current.id
        seen.add(current.id)
        current = by_id.get(current.parent_id) if current.parent_id else None
    return None


def messages_in_story_order(
    messages: list[Message], nodes: list[Node], target_message_id: str
) -> list[Message]:
    """Messages from the start of the story up to and including the target.

    Ordered by node traversal, then by message `order` inside each node.
    When the target has no node the plain list order is used instead.
    """
    target = next((m for m in messages if m.id == target_message_id), None)
    if target is None:
        raise LookupError(f"Target message not found: {target_message_id}")

    if not target.node_id:
        logger.warning("target message %s has no node, using list order", target_message_id)
        index = messages.index(target)
        return messages[: index + 1]

    ordered_nodes = nodes_up_to(nodes, target.node_id)
    by_node = messages_by_node(messages)

    result: list[Message] = []
    for node in ordered_nodes:
        node_messages = by_node.get(node.id, [])
        if node.id != target.node_id:
            result.extend(node_messages)
            continue
        for msg in node_messages:
            result.append(msg)
            if msg.id == target_message_id:
                break
        break
    return result


def messages_by_node(messages: list[Message]) -> dict[str, list[Message]]:
    """Group messages by node id, each group sorted by `order`."""
    grouped: dict[str, list[Message]] = {}
    for msg in messages:
        if msg.node_id:
            grouped.setdefault(msg.node_id, []).append(msg)
    for group in grouped.values():
        group.sort(key=lambda m: m.order)
    return grouped


# ---------------------------------------------------------------------------
# Container adapters
# ---------------------------------------------------------------------------

def containers_from_nodes(nodes: list[Node]) -> list[Container]:
    """Chapter-type nodes as containers, in story order."""
    return [container_from_node(n) for n in chapter_nodes_in_story_order(nodes)]


def containers_from_chapters(chapters: list[Chapter], messages: list[Message]) -> list[Container]:
    """Legacy chapters as containers, sorted by `order`.

    Chapters sharing an `order` value keep the order in which they first
    appear on the timeline; chapters with no messages come after those.
    """
    first_seen: dict[str, int] = {}
    for index, msg in enumerate(messages):
        if msg.chapter_id and msg.chapter_id not in first_seen:
            first_seen[msg.chapter_id] = index
    never = len(messages)
    ordered = sorted(chapters, key=lambda c: (c.order, first_seen.get(c.id, never)))
    return [container_from_chapter(c) for c in ordered]
