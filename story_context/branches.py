"""Branch resolution: the single storyline implied by the choices made so far.

A branch message offers options, each pointing at a (node, message) pair.
Walking the story in order and jumping to the chosen target at every branch
yields the active path. The walk stops at:

  - a branch with no choice recorded (the branch message itself is active),
  - a choice naming an unknown option or a missing target,
  - a branch visited twice (a loop),
  - the end of the story.

Everything here is pure: no function raises on malformed choices, and the
path is recomputed from scratch on every call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from story_context.containers import messages_by_node, nodes_in_story_order
from story_context.models import ActivePath, BranchOption, Message, Node

logger = logging.getLogger(__name__)


@dataclass
class _Cursor:
    node_index: int = 0
    message_index: int = 0


class _StoryWalk:
    """Message-by-message walk that follows branch choices."""

    def __init__(self, messages: list[Message], nodes: list[Node], choices: dict[str, str]) -> None:
        self.nodes = nodes_in_story_order(nodes)
        self.by_node = messages_by_node(messages)
        self.choices = choices
        self._node_index = {n.id: i for i, n in enumerate(self.nodes)}

    def chosen_option(self, message: Message) -> BranchOption | None:
        option_id = self.choices.get(message.id)
        if not option_id:
            logger.debug("path stops at unselected branch %s", message.id)
            return None
        option = next((o for o in message.options if o.id == option_id), None)
        if option is None:
            logger.warning("selected option %s not found in branch %s", option_id, message.id)
        return option

    def target_of(self, option: BranchOption) -> _Cursor | None:
        node_index = self._node_index.get(option.target_node_id)
        if node_index is None:
            logger.warning("branch target node not found: %s", option.target_node_id)
            return None
        targets = self.by_node.get(option.target_node_id, [])
        message_index = next(
            (i for i, m in enumerate(targets) if m.id == option.target_message_id), None
        )
        if message_index is None:
            logger.warning("branch target message not found: %s", option.target_message_id)
            return None
        return _Cursor(node_index, message_index)

    def __iter__(self) -> Iterator[tuple[Node, Message]]:
        """Yield (node, message) along the path; the walk ends where the path ends."""
        cursor = _Cursor()
        while cursor.node_index < len(self.nodes):
            node = self.nodes[cursor.node_index]
            node_messages = self.by_node.get(node.id, [])
            jumped = False
            while cursor.message_index < len(node_messages):
                message = node_messages[cursor.message_index]
                yield node, message
                if message.is_branch:
                    option = self.chosen_option(message)
                    target = self.target_of(option) if option else None
                    if target is None:
                        return
                    cursor = target
                    jumped = True
                    break
                cursor.message_index += 1
            if not jumped:
                cursor = _Cursor(cursor.node_index + 1, 0)


def resolve_active_path(
    messages: list[Message], nodes: list[Node], branch_choices: dict[str, str]
) -> ActivePath:
    """Messages and nodes reachable under the current branch choices."""
    path = ActivePath()
    if not messages or not nodes:
        return path

    visited_branches: set[str] = set()
    for node, message in _StoryWalk(messages, nodes, branch_choices):
        if message.is_branch:
            if message.id in visited_branches:
                logger.warning("loop detected at branch %s", message.id)
                break
            visited_branches.add(message.id)
        path.active_node_ids.add(node.id)
        path.active_message_ids.add(message.id)

    logger.debug(
        "active path: %d messages, %d nodes",
        len(path.active_message_ids), len(path.active_node_ids),
    )
    return path


def find_next_message_in_path(
    message_id: str,
    messages: list[Message],
    nodes: list[Node],
    branch_choices: dict[str, str],
) -> str | None:
    """Id of the message that follows `message_id` on the path, or None."""
    current = next((m for m in messages if m.id == message_id), None)
    if current is None or not current.node_id:
        return None

    if current.is_branch:
        option_id = branch_choices.get(current.id)
        option = next((o for o in current.options if o.id == option_id), None)
        return option.target_message_id if option else None

    by_node = messages_by_node(messages)
    siblings = by_node.get(current.node_id, [])
    index = next(i for i, m in enumerate(siblings) if m.id == message_id)
    if index + 1 < len(siblings):
        return siblings[index + 1].id

    ordered = nodes_in_story_order(nodes)
    node_index = next((i for i, n in enumerate(ordered) if n.id == current.node_id), None)
    if node_index is None:
        return None
    for node in ordered[node_index + 1:]:
        following = by_node.get(node.id)
        if following:
            return following[0].id
    return None


def detect_path_loop(
    messages: list[Message],
    nodes: list[Node],
    branch_choices: dict[str, str],
    new_choice: tuple[str, str] | None = None,
) -> bool:
    """True if following the choices (plus an optional candidate) revisits a message.

    `new_choice` is a (branch_message_id, option_id) pair applied on top of
    the recorded choices without modifying them.
    """
    choices = dict(branch_choices)
    if new_choice is not None:
        branch_id, option_id = new_choice
        choices[branch_id] = option_id

    visited: set[str] = set()
    # Every message can be visited at most once on a loop-free path.
    limit = len(messages) * 2
    for steps, (_, message) in enumerate(_StoryWalk(messages, nodes, choices), start=1):
        if message.id in visited:
            logger.warning("loop detected at message %s", message.id)
            return True
        if steps > limit:
            return True
        visited.add(message.id)
    return False


def path_preview(
    branch_message_id: str,
    option_id: str,
    messages: list[Message],
    nodes: list[Node],
    branch_choices: dict[str, str],
) -> ActivePath:
    """The active path that choosing `option_id` at a branch would produce."""
    return resolve_active_path(messages, nodes, {**branch_choices, branch_message_id: option_id})
