"""Create a demo story for development/testing.

"The Lantern Road": two chapters under one book. Chapter one is summarized;
chapter two is in progress and ends in a branch with two scenes to choose from.
"""

import shutil

from backend import state
from story_context.models import BranchOption, Character, Message, Node, Story

DEMO_SLUG = "the-lantern-road"

DEMO_NODES = [
    Node(id="book", type="book", title="The Lantern Road"),
    Node(
        id="ch1", parent_id="book", type="chapter", order=0, title="The Ferry",
        summary="Mira crosses the flooded river with the ferryman Oskar, who warns "
                "her that the lantern road has been closed since the spring.",
    ),
    Node(
        id="ch2", parent_id="book", type="chapter", order=1, title="The Toll House",
        goal="Mira learns who closed the road.",
        viewpoint_character_id="mira",
    ),
    Node(id="scene-cellar", parent_id="ch2", type="scene", order=0, title="The Cellar"),
    Node(id="scene-door", parent_id="ch2", type="scene", order=1, title="The Front Door"),
]

DEMO_CHARACTERS = [
    Character(id="mira", name="Mira", description="A courier with a borrowed lantern.",
              is_main_character=True),
    Character(id="oskar", name="Oskar", description="The ferryman. Knows every rumour."),
]


def _demo_messages() -> list[Message]:
    return [
        Message(id="m1", order=0, node_id="ch1",
                content="Rain hammered the ferry deck as Mira climbed aboard.",
                sentence_summary="Mira boards the ferry in the rain."),
        Message(id="m2", order=1, node_id="ch1",
                content="Oskar leaned on his pole. \"Nobody walks the lantern road now,\" he said.",
                sentence_summary="Oskar warns her off the lantern road."),
        Message(id="m3", order=2, node_id="ch2",
                content="The toll house squatted at the head of the road, every window dark.",
                sentence_summary="Mira reaches the dark toll house."),
        Message(id="m4", order=3, node_id="ch2", type="branch",
                content="Two ways in: the front door, or the cellar hatch half-hidden by nettles.",
                options=[
                    BranchOption(id="door", label="Knock at the door",
                                 target_node_id="scene-door", target_message_id="m5"),
                    BranchOption(id="cellar", label="Try the cellar",
                                 target_node_id="scene-cellar", target_message_id="m6"),
                ]),
        Message(id="m5", order=0, node_id="scene-door",
                content="She knocked twice. Somewhere inside, a chair scraped."),
        Message(id="m6", order=0, node_id="scene-cellar",
                content="The hatch groaned open onto a smell of lamp oil and old apples."),
    ]


def create_demo_data() -> Story:
    """Wipe existing stories and write the demo story."""
    store = state.store()
    stories_dir = state.data_dir() / "stories"
    if stories_dir.exists():
        shutil.rmtree(stories_dir)
    stories_dir.mkdir(parents=True, exist_ok=True)

    story = Story(
        slug=DEMO_SLUG,
        title="The Lantern Road",
        setting="fantasy",
        person="third",
        tense="past",
        protagonist_name="Mira",
        paragraphs_per_turn=2,
        branch_choices={"m4": "door"},
    )
    store.save_story(
        story,
        messages=_demo_messages(),
        nodes=DEMO_NODES,
        characters=DEMO_CHARACTERS,
    )
    return story
